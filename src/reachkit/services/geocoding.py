"""Postcode to latitude/longitude lookup with a fallback provider."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

import httpx

from ..config import settings

logger = logging.getLogger(__name__)


class PostcodeGeocoder:
    """Resolve UK postcodes via a primary provider, falling back to a second one."""

    def __init__(
        self,
        primary_url: str | None = None,
        fallback_url: str | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.primary_url = (primary_url or settings.postcode_primary_url).rstrip("/")
        self.fallback_url = (fallback_url or settings.postcode_fallback_url).rstrip("/")
        self._client = client or httpx.Client(timeout=settings.geocoder_timeout_seconds)

    def lookup(self, postcode: str) -> Optional[tuple[float, float]]:
        postcode = postcode.strip()
        if not postcode:
            return None
        located = self._query(f"{self.primary_url}/{quote(postcode)}")
        if located is None:
            logger.debug(f"Primary postcode provider could not resolve '{postcode}', trying fallback")
            located = self._query(f"{self.fallback_url}/{quote(postcode)}")
        return located

    def _query(self, url: str) -> Optional[tuple[float, float]]:
        try:
            response = self._client.get(url)
        except httpx.HTTPError as exc:
            logger.warning(f"Postcode lookup failed for {url}: {exc}")
            return None
        if response.status_code >= 400:
            return None
        try:
            payload = response.json()
        except ValueError:
            return None
        return _extract_coordinates(payload)


def _extract_coordinates(payload: object) -> Optional[tuple[float, float]]:
    """Both providers wrap coordinates in ``data`` or ``result`` objects."""

    if not isinstance(payload, dict):
        return None
    if str(payload.get("status", "")).lower() in {"404", "no_match", "match_not_found"}:
        return None
    body = payload.get("data") or payload.get("result")
    if not isinstance(body, dict):
        return None
    try:
        return float(body["latitude"]), float(body["longitude"])
    except (KeyError, TypeError, ValueError):
        return None
