from datetime import datetime

import pytest
import shapely
from shapely.geometry import GeometryCollection, LineString

from src.reachkit.errors import ConfigurationError
from src.reachkit.models.domain import TravelParams
from src.reachkit.services.geospatial import polygonal_part
from src.reachkit.services.isochrones.intersection import (
    IntersectionEngine,
    MultiOriginIntersector,
    resolve_origin_request,
)
from src.reachkit.services.isochrones.models import CutoffPolygon, PolygonSet
from src.reachkit.services.routing.models import RawResult

from tests.fakes import StubRoutingClient, isochrone_result, point, square

START = datetime(2024, 3, 5, 9, 0)
PARAMS = TravelParams(modes="WALK,TRANSIT")


def _polygon_set(name: str, geometry) -> PolygonSet:
    origin = point(name)
    polygon = CutoffPolygon(origin_id=origin.id, cutoff_minutes=60, geometry=geometry, simplified=geometry)
    return PolygonSet(origin=origin, query_time=START, polygons=(polygon,))


def test_progressive_intersection_matches_batch_intersection() -> None:
    shapes = [square(0, 0, 0.3), square(0.1, 0.1, 0.3), square(-0.05, 0.15, 0.25)]
    forward = IntersectionEngine()
    backward = IntersectionEngine()

    for index, geometry in enumerate(shapes):
        forward.accumulate(_polygon_set(f"o{index}", geometry))
    for index, geometry in reversed(list(enumerate(shapes))):
        backward.accumulate(_polygon_set(f"o{index}", geometry))

    expected = shapely.intersection_all(shapes)
    assert forward.result().symmetric_difference(expected).area < 1e-9
    assert backward.result().symmetric_difference(expected).area < 1e-9
    assert forward.all_polygons().area == pytest.approx(shapely.union_all(shapes).area)
    assert forward.degenerate == []


def test_first_polygon_seeds_both_accumulators() -> None:
    engine = IntersectionEngine()
    assert engine.is_empty

    engine.accumulate(_polygon_set("only", square(0, 0, 0.1)))

    assert engine.result().area == pytest.approx(0.04)
    assert engine.all_polygons().area == pytest.approx(0.04)
    assert engine.origin_ids == ["only"]


def test_disjoint_polygons_leave_an_empty_intersection() -> None:
    engine = IntersectionEngine()
    engine.accumulate(_polygon_set("west", square(-1, 0, 0.1)))
    engine.accumulate(_polygon_set("east", square(1, 0, 0.1)))
    engine.accumulate(_polygon_set("middle", square(0, 0, 2)))

    assert engine.is_empty
    assert len(engine.degenerate) == 1
    assert engine.degenerate[0].step == 2
    assert engine.all_polygons().area == pytest.approx(16.0)


def test_touching_polygons_drop_the_shared_edge() -> None:
    engine = IntersectionEngine()
    engine.accumulate(_polygon_set("left", square(0, 0, 0.1)))
    engine.accumulate(_polygon_set("right", square(0.2, 0, 0.1)))

    assert engine.is_empty
    assert engine.degenerate[0].geom_type == "LineString"


def test_polygonal_part_keeps_polygons_from_mixed_collections() -> None:
    polygon = square(0, 0, 0.1)
    mixed = GeometryCollection([polygon, LineString([(1, 1), (2, 2)])])

    assert polygonal_part(mixed).equals(polygon)
    assert polygonal_part(LineString([(0, 0), (1, 1)])).is_empty


def test_intersector_skips_failed_origins() -> None:
    client = StubRoutingClient(
        isochrones={
            "a": isochrone_result((3600, square(0, 0, 0.2))),
            "b": isochrone_result((3600, square(0.1, 0, 0.2))),
            "c": RawResult(status="TIMEOUT", message="read timeout"),
        }
    )

    result = MultiOriginIntersector(client, tolerance=0).run(
        [point("a"), point("b"), point("c")], START, PARAMS, cutoff=60
    )

    assert not result.is_empty
    assert result.polygon.area == pytest.approx(0.3 * 0.4)
    assert list(result.failures) == ["c"]
    assert result.exclusion_message == "1 out of 3 origins excluded (33.3%)"
    assert all(call[1] == [60] for call in client.isochrone_calls)


def test_origin_attributes_override_run_defaults() -> None:
    origin = point("depot", mode="Driving", max_duration="45", time="07:30 AM", date="2024-04-01")

    request = resolve_origin_request(origin, PARAMS, 60, START)

    assert request.params.modes == "CAR"
    assert request.cutoff == 45
    assert request.query_time == datetime(2024, 4, 1, 7, 30)


def test_invalid_override_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        resolve_origin_request(point("depot", max_duration="soon"), PARAMS, 60, START)
    with pytest.raises(ConfigurationError):
        resolve_origin_request(point("depot", time="teatime"), PARAMS, 60, START)


def test_series_ignores_per_origin_times() -> None:
    client = StubRoutingClient(isochrones={"a": isochrone_result((3600, square(0, 0, 0.2)))})
    times = [START, datetime(2024, 3, 5, 9, 30)]

    results = MultiOriginIntersector(client).run_series([point("a", time="06:00")], times, PARAMS, cutoff=60)

    assert [result.query_time for result in results] == times
    assert [call[2] for call in client.isochrone_calls] == times
