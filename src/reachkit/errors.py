"""Error taxonomy for routing analyses.

Only ``ConfigurationError`` and ``RoutingUnavailableError`` are raised out of an
analysis run. Request and parse failures are carried as values so a batch can
record them and move on; degenerate geometry is recorded on the intersection
accumulator.
"""

from __future__ import annotations


class ReachkitError(Exception):
    """Base class for all analysis errors."""


class ConfigurationError(ReachkitError):
    """Caller mistake detected before any network call (bad row, missing column)."""


class RequestError(ReachkitError):
    """The routing service returned a non-OK status or could not be reached."""

    def __init__(self, status: str, message: str = "") -> None:
        self.status = status
        self.message = message
        super().__init__(f"{status}: {message}" if message else status)


class ParseError(ReachkitError):
    """A routing response could not be decoded into polygons."""


class GeometryDegenerateError(ReachkitError):
    """An intersection step produced a non-polygonal or empty result."""

    def __init__(self, step: int, geom_type: str) -> None:
        self.step = step
        self.geom_type = geom_type
        super().__init__(f"intersection step {step} produced {geom_type}")


class RoutingUnavailableError(ReachkitError):
    """No routing service is configured, so no analysis can be run."""
