"""HTTP route definitions for the query service."""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import TypeAdapter, ValidationError

from app.schemas import ReadingsResponse, SensorListResponse
from models.records import TimedSensorValues
from services.errors import QueryError, UnknownSensorError
from services.sensor_store import SensorStore, build_default_store

router = APIRouter()

_DURATION = TypeAdapter(timedelta)


def get_store() -> SensorStore:
    return build_default_store()


def _parse_duration(raw: str) -> timedelta:
    candidate = raw.strip()
    try:
        return timedelta(seconds=float(candidate))
    except (OverflowError, ValueError):
        pass
    try:
        return _DURATION.validate_python(candidate)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid duration {raw!r}; use seconds or an ISO 8601 duration.",
        ) from exc


def _query_failed(exc: QueryError) -> HTTPException:
    if isinstance(exc, UnknownSensorError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(exc),
    )


@router.get(
    "/sensors",
    response_model=SensorListResponse,
    summary="List provisioned sensors.",
)
async def list_sensors(store: SensorStore = Depends(get_store)) -> SensorListResponse:
    try:
        sensors = store.list_sensors()
    except QueryError as exc:
        raise _query_failed(exc) from exc
    return SensorListResponse(sensors=sensors)


@router.get(
    "/sensors/{sensor_id}/last",
    response_model=TimedSensorValues,
    summary="Fetch the most recent reading of a sensor.",
)
async def read_last_value(
    sensor_id: str,
    store: SensorStore = Depends(get_store),
) -> TimedSensorValues:
    try:
        reading = store.read_last_value(sensor_id)
    except QueryError as exc:
        raise _query_failed(exc) from exc
    if reading is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Sensor {sensor_id!r} has no readings yet.",
        )
    return reading


@router.get(
    "/sensors/{sensor_id}/values",
    response_model=ReadingsResponse,
    summary="Fetch every reading of a sensor within the last duration.",
)
async def read_values(
    sensor_id: str,
    duration: str = Query(
        ...,
        description="Window length in seconds or as an ISO 8601 duration (e.g. PT1H).",
    ),
    store: SensorStore = Depends(get_store),
) -> ReadingsResponse:
    window = _parse_duration(duration)
    try:
        start, end = store.window(window)
        readings = store.read_window(sensor_id, start, end)
    except QueryError as exc:
        raise _query_failed(exc) from exc
    return ReadingsResponse(
        sensor_id=sensor_id,
        start=start,
        end=end,
        count=len(readings),
        readings=readings,
    )


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}
