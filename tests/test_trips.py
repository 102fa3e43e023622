from datetime import datetime

import pytest

from src.reachkit.errors import ConfigurationError
from src.reachkit.models.domain import TravelParams
from src.reachkit.persistence.filesystem import CheckpointWriter, FileStorage
from src.reachkit.services.isochrones.aggregator import time_series
from src.reachkit.services.outputs.formatter import trip_fieldnames, trips_to_csv
from src.reachkit.services.routing.models import OK, RawResult
from src.reachkit.services.trips.itineraries import parse_itinerary
from src.reachkit.services.trips.loop import JourneyLoop, PairFilter, build_pairs, run_trip_loop, run_trip_series

from tests.fakes import StubRoutingClient, plan_result, point

START = datetime(2024, 3, 5, 9, 0)
PARAMS = TravelParams(modes="WALK,TRANSIT")


def test_parse_itinerary_summarises_first_itinerary() -> None:
    result = plan_result(duration=1800, walk=600, transit=1200, waiting=90, transfers=1, legs=(1500.0, 2500.0))

    record = parse_itinerary(result, point("a"), point("b"))

    assert record.status == OK
    assert record.start_time == "2024-03-05 09:00:00"
    assert record.end_time == "2024-03-05 09:30:00"
    assert record.distance_km == 4.0
    assert record.duration_mins == 30.0
    assert record.walk_time_mins == 10.0
    assert record.transit_time_mins == 20.0
    assert record.waiting_time_mins == 1.5
    assert record.transfers == 1


def test_parse_itinerary_failures_keep_only_status() -> None:
    empty = RawResult(status=OK, payload='{"plan": {"itineraries": []}}')

    assert parse_itinerary(empty, point("a"), point("b")).status == "NO_ITINERARY"
    assert parse_itinerary(RawResult(status=OK, payload="<html>"), point("a"), point("b")).status == "PARSE_ERROR"
    failed = parse_itinerary(RawResult(status="PATH_NOT_FOUND"), point("a"), point("b"))
    assert failed.status == "PATH_NOT_FOUND"
    assert failed.duration_mins is None


def test_pair_filter_drop_conditions() -> None:
    pair_filter = PairFilter(max_distance_km=100)
    london, reading, leeds = point("London", 51.5, -0.12), point("Reading", 51.45, -0.97), point("Leeds", 53.8, -1.55)

    assert pair_filter.drop_reason(london, reading) is None
    assert "already been processed" in pair_filter.drop_reason(london, reading)
    assert "same" in pair_filter.drop_reason(london, london)
    assert "km apart" in pair_filter.drop_reason(london, leeds)


def test_build_pairs_for_each_loop_mode() -> None:
    origins = [point("o1"), point("o2")]
    destinations = [point("d1"), point("d2"), point("d3")]

    all_pairs = build_pairs(origins, destinations, JourneyLoop.ALL_PAIRS)
    to_one = build_pairs(origins, destinations, JourneyLoop.ALL_ORIGINS_TO_ONE, destination_row=3)
    from_one = build_pairs(origins, destinations, JourneyLoop.ONE_ORIGIN_TO_ALL, origin_row=2, return_journey=True)

    assert len(all_pairs) == 6
    assert [(o.name, d.name) for o, d in to_one] == [("o1", "d3"), ("o2", "d3")]
    assert [(o.name, d.name) for o, d in from_one] == [
        ("o2", "d1"),
        ("o2", "d2"),
        ("o2", "d3"),
        ("d1", "o2"),
        ("d2", "o2"),
        ("d3", "o2"),
    ]
    with pytest.raises(ConfigurationError):
        build_pairs(origins, destinations, JourneyLoop.ONE_ORIGIN_TO_ALL, origin_row=5)


def test_trip_loop_drops_same_name_pairs_and_checkpoints(tmp_path) -> None:
    storage = FileStorage(root=tmp_path)
    checkpoint = CheckpointWriter(storage, storage.make_run_directory(prefix="trips"))
    client = StubRoutingClient(
        plans={("B", "C"): RawResult(status="PATH_NOT_FOUND", message="none")},
        default_plan=plan_result(),
    )

    result = run_trip_loop(
        client,
        [point("A"), point("B")],
        [point("A"), point("C")],
        START,
        PARAMS,
        checkpoint=checkpoint,
        checkpoint_every=2,
    )

    assert [(call[0], call[1]) for call in client.plan_calls] == [("B", "A"), ("A", "C"), ("B", "C")]
    assert len(result.records) == 3
    assert len(result.dropped) == 1
    assert [record.status for record in result.failed] == ["PATH_NOT_FOUND"]
    assert result.summary.total == 3
    lines = checkpoint.path(CheckpointWriter.TRIPS_FILE).read_text(encoding="utf-8").splitlines()
    assert len(lines) == 3


def test_car_trips_rename_walk_column() -> None:
    record = parse_itinerary(plan_result(), point("a"), point("b"))

    csv_text = trips_to_csv([record], "CAR")

    assert csv_text.splitlines()[0].split(",")[7] == "drive_time_mins"
    assert "cycle_time_mins" in trip_fieldnames("BICYCLE")
    assert "walk_time_mins" in trip_fieldnames("WALK,TRANSIT")


def test_nearest_loop_pairs_each_origin_with_its_closest_destinations() -> None:
    london, leeds = point("London", 51.5, -0.12), point("Leeds", 53.8, -1.55)
    destinations = [
        point("York", 53.96, -1.08),
        point("Reading", 51.45, -0.97),
        point("Bradford", 53.79, -1.75),
        point("Oxford", 51.75, -1.26),
    ]

    pairs = build_pairs([london, leeds], destinations, JourneyLoop.NEAREST, nearest_count=2)
    with_return = build_pairs([london], destinations, JourneyLoop.NEAREST, return_journey=True)

    assert [(o.name, d.name) for o, d in pairs] == [
        ("London", "Reading"),
        ("London", "Oxford"),
        ("Leeds", "Bradford"),
        ("Leeds", "York"),
    ]
    assert [(o.name, d.name) for o, d in with_return] == [("London", "Reading"), ("Reading", "London")]
    with pytest.raises(ConfigurationError):
        build_pairs([london], destinations, JourneyLoop.NEAREST, nearest_count=5)


def test_trip_series_plans_one_pair_at_every_query_time(tmp_path) -> None:
    storage = FileStorage(root=tmp_path)
    checkpoint = CheckpointWriter(storage, storage.make_run_directory(prefix="trips"))
    times = time_series(START, datetime(2024, 3, 5, 10, 0), 30)

    def answer(origin, destination, query_time, params):
        if query_time.minute == 30:
            return RawResult(status="PATH_NOT_FOUND", message="none")
        return plan_result()

    client = StubRoutingClient(default_plan=answer)

    result = run_trip_series(client, point("a"), point("b"), times, PARAMS, checkpoint=checkpoint, checkpoint_every=2)

    assert [call[2] for call in client.plan_calls] == times
    assert result.query_times == times
    assert [record.status for record in result.records] == ["OK", "PATH_NOT_FOUND", "OK"]
    assert result.summary.succeeded == 2
    assert checkpoint.writes == 1
    lines = checkpoint.path(CheckpointWriter.TRIPS_FILE).read_text(encoding="utf-8").splitlines()
    assert len(lines) == 3


def test_trip_runs_reject_a_zero_checkpoint_interval() -> None:
    client = StubRoutingClient(default_plan=plan_result())

    with pytest.raises(ConfigurationError):
        run_trip_loop(client, [point("a")], [point("b")], START, PARAMS, checkpoint_every=0)
    with pytest.raises(ConfigurationError):
        run_trip_series(client, point("a"), point("b"), [START], PARAMS, checkpoint_every=0)

    assert client.plan_calls == []
