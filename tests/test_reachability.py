import pytest

from src.reachkit.services.isochrones.models import (
    UNREACHABLE,
    CutoffPolygon,
    FailureSet,
    PolygonSet,
    ReachabilityMatrix,
    ReachabilityRow,
)
from src.reachkit.services.isochrones.reachability import build_row

from tests.fakes import point, square

ORIGIN = point("Origin")


def _polygon_set(*bands) -> PolygonSet:
    polygons = tuple(
        CutoffPolygon(origin_id=ORIGIN.id, cutoff_minutes=minutes, geometry=geometry, simplified=geometry)
        for minutes, geometry in bands
    )
    return PolygonSet(origin=ORIGIN, query_time=None, polygons=polygons)


def test_minimum_cutoff_wins_without_assuming_nesting() -> None:
    # The 90 minute polygon sits to the east and does not cover the 30 minute one.
    polygon_set = _polygon_set((30, square(0, 0, 0.1)), (90, square(0.5, 0, 0.2)))
    destinations = [point("inner", 0.0, 0.05), point("east", 0.0, 0.5), point("far", 5.0, 5.0)]

    row = build_row(polygon_set, destinations)

    assert row.times["inner"] == 30
    assert row.times["east"] == 90
    assert row.times["far"] == UNREACHABLE
    assert row.minutes("far") is None
    assert row.reachable_count == 2


def test_destination_on_polygon_boundary_is_contained() -> None:
    polygon_set = _polygon_set((60, square(0, 0, 0.1)))

    row = build_row(polygon_set, [point("edge", 0.0, 0.1)])

    assert row.minutes("edge") == 60


def test_matrix_rejects_duplicate_and_unknown_rows() -> None:
    matrix = ReachabilityMatrix(["d1", "d2"])
    matrix.merge(ReachabilityRow(key="o1", origin_id="o1", times={"d1": 30.0}))

    with pytest.raises(ValueError):
        matrix.merge(ReachabilityRow(key="o1", origin_id="o1", times={"d1": 60.0}))
    with pytest.raises(ValueError):
        matrix.merge(ReachabilityRow(key="o2", origin_id="o2", times={"d9": 60.0}))

    assert len(matrix) == 1
    assert matrix.to_table() == {"o1": {"d1": 30.0, "d2": None}}


def test_exclusion_message_reports_count_and_percentage() -> None:
    failures = FailureSet()
    failures.add("o1", "PATH_NOT_FOUND")

    assert failures.exclusion_message(2) == "1 out of 2 origins excluded (50%)"
    assert failures.exclusion_message(3) == "1 out of 3 origins excluded (33.3%)"
    assert FailureSet().exclusion_message(0) == "0 out of 0 origins excluded (0%)"
