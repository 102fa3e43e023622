"""Sequential batch driver with progress/ETA messages and cooperative cancellation."""

from __future__ import annotations

import logging
import statistics
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Generic, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ItemState(str, Enum):
    PENDING = "PENDING"
    REQUESTING = "REQUESTING"
    PARSED = "PARSED"
    FAILED = "FAILED"
    AGGREGATED = "AGGREGATED"
    SKIPPED = "SKIPPED"


_TRANSITIONS: dict[ItemState, frozenset[ItemState]] = {
    ItemState.PENDING: frozenset({ItemState.REQUESTING, ItemState.SKIPPED}),
    ItemState.REQUESTING: frozenset({ItemState.PARSED, ItemState.FAILED}),
    ItemState.PARSED: frozenset({ItemState.AGGREGATED, ItemState.SKIPPED}),
    ItemState.FAILED: frozenset(),
    ItemState.AGGREGATED: frozenset(),
    ItemState.SKIPPED: frozenset(),
}

TERMINAL_STATES = frozenset({ItemState.FAILED, ItemState.AGGREGATED, ItemState.SKIPPED})


@dataclass(slots=True)
class BatchItem(Generic[T]):
    """One unit of work moving through PENDING -> REQUESTING -> PARSED/FAILED -> AGGREGATED/SKIPPED."""

    index: int
    value: T
    state: ItemState = ItemState.PENDING
    detail: str = ""
    dropped: bool = False

    def advance(self, state: ItemState, detail: str = "") -> None:
        if state not in _TRANSITIONS[self.state]:
            raise ValueError(f"Invalid batch item transition {self.state.value} -> {state.value}")
        self.state = state
        if detail:
            self.detail = detail

    def drop(self, reason: str) -> None:
        """Skip the item before any request is made; it no longer counts toward the total."""

        self.advance(ItemState.SKIPPED, reason)
        self.dropped = True

    @property
    def outcome(self) -> str:
        if self.dropped:
            return "dropped"
        if self.state == ItemState.AGGREGATED:
            return "success"
        return "failure"


@dataclass(slots=True)
class BatchSummary:
    total: int
    processed: int = 0
    dropped: int = 0
    cancelled: bool = False
    elapsed: list[float] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=lambda: {"success": 0, "failure": 0, "dropped": 0})

    @property
    def elapsed_seconds(self) -> float:
        return sum(self.elapsed)

    @property
    def succeeded(self) -> int:
        return self.counts["success"]

    @property
    def failed(self) -> int:
        return self.counts["failure"]


def estimate_remaining(elapsed: Sequence[float], total: int) -> float:
    """mean(elapsed) x total - sum(elapsed), floored at zero."""

    if not elapsed:
        return 0.0
    return max(statistics.fmean(elapsed) * total - sum(elapsed), 0.0)


def progress_message(done: int, total: int, elapsed: Sequence[float], label: str) -> str:
    taken = round(sum(elapsed), 2)
    if done < total:
        remaining = round(estimate_remaining(elapsed, total), 2)
        return (
            f"{done} out of {total} {label} complete. Time taken {taken} seconds. "
            f"Estimated time left is approx. {remaining} seconds."
        )
    return f"{done} out of {total} {label} complete. Time taken {taken} seconds."


class BatchRunner:
    """Runs ``body`` over items one at a time.

    ``body`` receives a ``BatchItem`` and must leave it in a terminal state.
    Exceptions raised by ``body`` propagate unchanged. Setting ``cancel_event``
    stops the loop before the next item starts.
    """

    def __init__(
        self,
        label: str = "items",
        *,
        cancel_event: threading.Event | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.label = label
        self.cancel_event = cancel_event
        self._clock = clock

    def run(self, items: Sequence[T], body: Callable[[BatchItem[T]], None]) -> BatchSummary:
        summary = BatchSummary(total=len(items))
        logger.info(f"Running {len(items)} {self.label}, please wait...")

        for index, value in enumerate(items):
            if self.cancel_event is not None and self.cancel_event.is_set():
                summary.cancelled = True
                logger.warning(
                    f"Batch cancelled after {summary.processed} of {summary.total} {self.label}; "
                    f"{len(items) - index} left unprocessed"
                )
                break

            item: BatchItem[T] = BatchItem(index=index, value=value)
            started = self._clock()
            body(item)
            if item.state not in TERMINAL_STATES:
                raise ValueError(f"Batch item {index} left in non-terminal state {item.state.value}")

            summary.counts[item.outcome] += 1
            if item.dropped:
                summary.dropped += 1
                summary.total -= 1
                logger.info(f"Dropped item {index + 1}: {item.detail}")
                continue

            summary.processed += 1
            summary.elapsed.append(round(self._clock() - started, 2))
            logger.info(progress_message(summary.processed, summary.total, summary.elapsed, self.label))

        return summary
