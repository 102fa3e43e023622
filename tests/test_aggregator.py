import threading
from datetime import datetime

import pytest

from src.reachkit.errors import ConfigurationError
from src.reachkit.models.domain import TravelParams
from src.reachkit.persistence.filesystem import CheckpointWriter, FileStorage
from src.reachkit.services.isochrones.aggregator import MultiOriginAggregator, time_series
from src.reachkit.services.routing.models import OK, RawResult

from tests.fakes import StubRoutingClient, bowtie, isochrone_result, point, square

START = datetime(2024, 3, 5, 9, 0)
PARAMS = TravelParams(modes="WALK,TRANSIT")


def _ok_isochrone():
    return isochrone_result((3600, square(0, 0, 0.1)), (5400, square(0, 0, 0.3)))


def test_end_to_end_matrix_with_one_failed_origin() -> None:
    client = StubRoutingClient(
        isochrones={
            "O1": RawResult(status="PATH_NOT_FOUND", message="no path"),
            "O2": _ok_isochrone(),
        }
    )
    origins = [point("O1", 1.0, 1.0), point("O2")]
    destinations = [point("dest1", 0.0, 0.05), point("dest2", 0.2, 0.2)]

    result = MultiOriginAggregator(client, tolerance=0).run(origins, destinations, START, PARAMS)

    assert result.matrix.row_keys == ["O2"]
    assert result.matrix.to_table() == {"O2": {"dest1": 60.0, "dest2": 90.0}}
    assert "O1" in result.failures
    assert result.exclusion_message == "1 out of 2 origins excluded (50%)"
    assert result.missing_cutoffs == {"O2": [30.0]}
    assert [call[1] for call in client.isochrone_calls] == [[30, 60, 90], [30, 60, 90]]


def test_unparseable_origin_is_isolated() -> None:
    client = StubRoutingClient(
        isochrones={
            "a": _ok_isochrone(),
            "b": RawResult(status=OK, payload="{broken"),
            "c": _ok_isochrone(),
            "d": _ok_isochrone(),
        }
    )
    origins = [point(name) for name in "abcd"]

    result = MultiOriginAggregator(client).run(origins, [point("dest", 0.0, 0.05)], START, PARAMS)

    assert len(result.matrix) == 3
    assert "b" not in result.matrix
    assert list(result.failures) == ["b"]
    assert result.summary.succeeded == 3
    assert result.summary.failed == 1


class CrashingCheckpoint(CheckpointWriter):
    """Writes through, then dies right after the second flush lands on disk."""

    def write(self, files) -> None:
        super().write(files)
        if self.writes == 2:
            raise RuntimeError("process killed")


def test_checkpoint_survives_a_crash_mid_run(tmp_path) -> None:
    storage = FileStorage(root=tmp_path)
    run_dir = storage.make_run_directory(prefix="matrix")
    checkpoint = CrashingCheckpoint(storage, run_dir)
    client = StubRoutingClient(isochrones={f"o{index}": _ok_isochrone() for index in range(1, 6)})
    origins = [point(f"o{index}") for index in range(1, 6)]

    with pytest.raises(RuntimeError):
        MultiOriginAggregator(client, checkpoint=checkpoint).run(
            origins, [point("dest", 0.0, 0.05)], START, PARAMS, checkpoint_every=2
        )

    lines = (run_dir / CheckpointWriter.MATRIX_FILE).read_text(encoding="utf-8").splitlines()
    assert lines[0] == "origin,dest"
    assert [line.split(",")[0] for line in lines[1:]] == ["o1", "o2", "o3", "o4"]
    assert checkpoint.writes == 2
    assert [call[0] for call in client.isochrone_calls] == ["o1", "o2", "o3", "o4"]
    assert (run_dir / CheckpointWriter.FAILURES_FILE).read_text(encoding="utf-8") == "origin,reason\n"


@pytest.mark.parametrize("every", [0, -3])
def test_non_positive_checkpoint_interval_is_rejected(every) -> None:
    client = StubRoutingClient(isochrones={"a": _ok_isochrone()})

    with pytest.raises(ConfigurationError):
        MultiOriginAggregator(client).run([point("a")], [point("dest")], START, PARAMS, checkpoint_every=every)

    assert client.isochrone_calls == []


def test_self_intersecting_isochrone_does_not_abort_the_run() -> None:
    client = StubRoutingClient(
        isochrones={
            "bad": isochrone_result((3600, bowtie()), (3600, square(3, 3, 0.1))),
            "good": _ok_isochrone(),
        }
    )
    destinations = [point("inside", 0.2, 0.75), point("far", 40.0, 40.0)]

    result = MultiOriginAggregator(client, tolerance=0).run(
        [point("bad"), point("good")], destinations, START, PARAMS
    )

    assert result.matrix.row_keys == ["bad", "good"]
    assert result.matrix.to_table()["bad"] == {"inside": 60.0, "far": None}
    assert len(result.failures) == 0


def test_time_series_rows_are_keyed_by_origin_and_time() -> None:
    client = StubRoutingClient(isochrones={"O1": _ok_isochrone()})
    times = time_series(START, datetime(2024, 3, 5, 9, 30), 30)

    result = MultiOriginAggregator(client).run([point("O1")], [point("dest", 0.0, 0.05)], times, PARAMS)

    assert result.matrix.row_keys == ["O1 2024-03-05 09:00", "O1 2024-03-05 09:30"]
    assert [call[2] for call in client.isochrone_calls] == times


def test_time_series_is_inclusive_and_validated() -> None:
    assert time_series(START, datetime(2024, 3, 5, 10, 0), 30) == [
        datetime(2024, 3, 5, 9, 0),
        datetime(2024, 3, 5, 9, 30),
        datetime(2024, 3, 5, 10, 0),
    ]
    with pytest.raises(ConfigurationError):
        time_series(START, START, 0)
    with pytest.raises(ConfigurationError):
        time_series(START, datetime(2024, 3, 5, 8, 0), 15)


def test_duplicate_origins_fail_before_any_request() -> None:
    client = StubRoutingClient()

    with pytest.raises(ConfigurationError):
        MultiOriginAggregator(client).run([point("a"), point("a")], [point("dest")], START, PARAMS)

    assert client.isochrone_calls == []


def test_cancellation_stops_before_the_next_origin() -> None:
    cancel = threading.Event()

    def answer(*args):
        cancel.set()
        return _ok_isochrone()

    client = StubRoutingClient(isochrones={"a": answer, "b": answer})

    result = MultiOriginAggregator(client, cancel_event=cancel).run(
        [point("a"), point("b")], [point("dest", 0.0, 0.05)], START, PARAMS
    )

    assert result.summary.cancelled is True
    assert result.matrix.row_keys == ["a"]
    assert len(client.isochrone_calls) == 1
