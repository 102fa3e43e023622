"""HTTP client for interacting with an OpenTripPlanner router."""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime
from typing import Sequence

import httpx

from ...config import settings
from ...errors import ConfigurationError, RoutingUnavailableError
from ...models.domain import Point, TravelParams
from .models import OK, RawResult

logger = logging.getLogger(__name__)

OTP_DATE_FORMAT = "%m-%d-%Y"


def format_otp_time(value: datetime) -> str:
    """Render a time the way the OTP REST API expects it, e.g. ``09:00am``."""

    return value.strftime("%I:%M%p").lower()


class OTPClient:
    """Issues isochrone and plan requests against a single OTP router.

    Every call blocks until the router answers or the per-request timeout
    expires. Failures are returned as a non-OK ``RawResult``; nothing is retried.
    """

    def __init__(
        self,
        base_url: str | None = None,
        router: str | None = None,
        timeout: float | None = None,
        connect_timeout: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        base = base_url or settings.otp_base_url
        if not base:
            raise RoutingUnavailableError("OTP base URL is not configured.")
        self.router_url = f"{base.rstrip('/')}/otp/routers/{router or settings.otp_router}"
        self.timeout = timeout if timeout is not None else settings.otp_request_timeout_seconds
        connect = connect_timeout if connect_timeout is not None else settings.otp_connect_timeout_seconds
        self._client = client or httpx.Client(timeout=httpx.Timeout(self.timeout, connect=connect))

    def __enter__(self) -> "OTPClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def isochrone(
        self,
        origin: Point,
        cutoffs_minutes: Sequence[int],
        query_time: datetime,
        params: TravelParams,
    ) -> RawResult:
        """Request one isochrone polygon per cutoff around ``origin``."""

        if not cutoffs_minutes:
            raise ConfigurationError("At least one isochrone cutoff is required.")
        query = self._base_query(query_time, params)
        query.append(("fromPlace", origin.lat_lon))
        query.append(("batch", "true"))
        for cutoff in cutoffs_minutes:
            query.append(("cutoffSec", str(int(round(cutoff * 60)))))
        return self._get("isochrone", query)

    def plan(
        self,
        origin: Point,
        destination: Point,
        query_time: datetime,
        params: TravelParams,
    ) -> RawResult:
        """Request a single itinerary from ``origin`` to ``destination``."""

        query = self._base_query(query_time, params)
        query.append(("fromPlace", origin.lat_lon))
        query.append(("toPlace", destination.lat_lon))
        query.append(("numItineraries", "1"))
        return self._get("plan", query)

    @staticmethod
    def _base_query(query_time: datetime, params: TravelParams) -> list[tuple[str, str]]:
        query = [
            ("date", query_time.strftime(OTP_DATE_FORMAT)),
            ("time", format_otp_time(query_time)),
        ]
        query.extend(params.to_query().items())
        return query

    def _get(self, endpoint: str, query: list[tuple[str, str]]) -> RawResult:
        url = f"{self.router_url}/{endpoint}"
        started = time.perf_counter()
        try:
            response = self._client.get(url, params=query)
        except httpx.TimeoutException as exc:
            logger.warning(f"OTP {endpoint} request timed out after {self.timeout:.0f}s: {exc}")
            return RawResult(status="TIMEOUT", message=str(exc), elapsed_seconds=time.perf_counter() - started)
        except httpx.HTTPError as exc:
            logger.warning(f"OTP {endpoint} request failed: {exc}")
            return RawResult(status="REQUEST_FAILED", message=str(exc), elapsed_seconds=time.perf_counter() - started)

        elapsed = time.perf_counter() - started
        logger.debug(f"OTP {endpoint} responded {response.status_code} in {elapsed:.2f}s")
        engine_status, engine_message = _engine_error(response.text)
        if response.status_code >= 400:
            return RawResult(
                status=engine_status or f"HTTP_{response.status_code}",
                message=engine_message or response.reason_phrase,
                elapsed_seconds=elapsed,
            )
        if engine_status:
            return RawResult(status=engine_status, message=engine_message, elapsed_seconds=elapsed)
        return RawResult(status=OK, payload=response.text, elapsed_seconds=elapsed)


def _engine_error(body: str) -> tuple[str | None, str]:
    """Extract an OTP ``error`` object from a JSON body, if there is one."""

    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return None, ""
    if not isinstance(data, dict):
        return None, ""
    error = data.get("error")
    if not error:
        return None, ""
    if isinstance(error, dict):
        code = error.get("msg") or error.get("id") or "ENGINE_ERROR"
        return str(code), str(error.get("message") or "")
    return "ENGINE_ERROR", str(error)


def check_health(base_url: str | None = None, router: str | None = None) -> bool:
    """Check that the OTP router index answers."""

    base = base_url or settings.otp_base_url
    if not base:
        return False
    url = f"{base.rstrip('/')}/otp/routers/{router or settings.otp_router}"
    try:
        response = httpx.get(url, timeout=5.0)
        response.raise_for_status()
        return True
    except httpx.HTTPError:
        return False
