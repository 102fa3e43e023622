"""API routes for isochrone and journey analyses."""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from fastapi import APIRouter, HTTPException, status

from ...errors import ConfigurationError, RoutingUnavailableError
from ...schemas.analysis import (
    ChoroplethRequest,
    ChoroplethResponse,
    IntersectionRequest,
    IntersectionResponse,
    MatrixRequest,
    MatrixResponse,
    TripsRequest,
    TripsResponse,
)
from ...services.isochrones.service import process_intersection_request, process_matrix_request
from ...services.trips.service import process_choropleth_request, process_trips_request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analyses", tags=["analyses"])

R = TypeVar("R")


def _run(label: str, handler: Callable[[], R]) -> R:
    try:
        return handler()
    except ConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except RoutingUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Routing service unavailable: {exc}",
        ) from exc
    except Exception as exc:
        logger.exception(f"Error running {label}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to run {label}: {exc}",
        ) from exc


@router.post("/isochrone-matrix", response_model=MatrixResponse, status_code=status.HTTP_200_OK)
def isochrone_matrix(payload: MatrixRequest) -> MatrixResponse:
    """Minimum isochrone cutoff at which each destination is reachable from each origin."""
    return _run("isochrone matrix", lambda: process_matrix_request(payload))


@router.post("/intersection", response_model=IntersectionResponse, status_code=status.HTTP_200_OK)
def intersection(payload: IntersectionRequest) -> IntersectionResponse:
    """Area reachable from every origin within the cutoff."""
    return _run("isochrone intersection", lambda: process_intersection_request(payload))


@router.post("/trips", response_model=TripsResponse, status_code=status.HTTP_200_OK)
def trips(payload: TripsRequest) -> TripsResponse:
    return _run("point to point trips", lambda: process_trips_request(payload))


@router.post("/choropleth", response_model=ChoroplethResponse, status_code=status.HTTP_200_OK)
def choropleth(payload: ChoroplethRequest) -> ChoroplethResponse:
    return _run("choropleth", lambda: process_choropleth_request(payload))
