"""Origin/destination point and origin area uploads."""

from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, File, HTTPException, UploadFile, status

from ...data.points_repository import parse_polygon_features, read_points_csv
from ...errors import ConfigurationError
from ...schemas.analysis import AreasUploadResponse, PointModel, PointsUploadResponse

router = APIRouter(prefix="/points", tags=["points"])


async def _read_upload(file: UploadFile, suffixes: set[str]) -> str:
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Filename is required.")

    suffix = Path(file.filename).suffix.lower()
    if suffix not in suffixes:
        allowed = " and ".join(sorted(suffixes))
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=f"Only {allowed} files are supported.",
        )

    contents = await file.read()
    try:
        return contents.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File must be UTF-8 encoded.") from exc


@router.post("/upload", response_model=PointsUploadResponse, status_code=status.HTTP_200_OK)
async def upload_points(file: UploadFile = File(...)) -> PointsUploadResponse:
    """Parse an origin or destination CSV into points ready for an analysis request.

    The CSV needs a ``name`` column plus ``lat``/``lon`` or ``postcode``.
    Postcodes are geocoded and rows that cannot be located are dropped.
    """
    text = await _read_upload(file, {".csv"})
    try:
        points = read_points_csv(text, source=file.filename)
    except ConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return PointsUploadResponse(file_name=file.filename, points=[PointModel.from_point(point) for point in points])


@router.post("/areas", response_model=AreasUploadResponse, status_code=status.HTTP_200_OK)
async def upload_origin_areas(file: UploadFile = File(...)) -> AreasUploadResponse:
    text = await _read_upload(file, {".geojson", ".json"})
    try:
        features = parse_polygon_features(text, file.filename)
    except ConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return AreasUploadResponse(file_name=file.filename, features=features)
