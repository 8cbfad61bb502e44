"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas import (
    AlertEventOut,
    DailyVolume,
    DashboardSnapshot,
    ReadingCreate,
    ReadingCreated,
    ReadingOut,
)
from datastore.readings_store import SourceError
from services.dashboard import DashboardService, build_default_dashboard

router = APIRouter()


def get_dashboard() -> DashboardService:
    return build_default_dashboard()


@router.post(
    "/readings",
    status_code=status.HTTP_201_CREATED,
    response_model=ReadingCreated,
    summary="Append a sensor reading stamped with the server time.",
)
async def create_reading(
    payload: ReadingCreate,
    dashboard: DashboardService = Depends(get_dashboard),
) -> ReadingCreated:
    try:
        reading_id = dashboard.record_reading(ph=payload.ph, temp=payload.temp, laju=payload.laju)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except SourceError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return ReadingCreated(id=reading_id)


@router.get(
    "/readings",
    response_model=List[ReadingOut],
    summary="Fetch the most recent readings once, oldest first.",
)
async def list_readings(
    limit: int = Query(200, ge=1, le=1000),
    dashboard: DashboardService = Depends(get_dashboard),
) -> List[ReadingOut]:
    try:
        readings = dashboard.fetch_once(limit)
    except SourceError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return [ReadingOut.model_validate(reading) for reading in readings]


@router.get(
    "/dashboard",
    response_model=DashboardSnapshot,
    summary="Chart series and summary values for the live window.",
)
async def get_dashboard_snapshot(
    dashboard: DashboardService = Depends(get_dashboard),
) -> DashboardSnapshot:
    return DashboardSnapshot.model_validate(dashboard.snapshot())


@router.get(
    "/volume",
    response_model=List[DailyVolume],
    summary="Daily gas volume integrated from the flow-rate signal.",
)
async def get_daily_volume(
    dashboard: DashboardService = Depends(get_dashboard),
) -> List[DailyVolume]:
    return [DailyVolume.model_validate(bucket) for bucket in dashboard.daily_volume()]


@router.get(
    "/alerts",
    response_model=List[AlertEventOut],
    summary="Recently fired alerts, newest first.",
)
async def list_alerts(
    limit: int = Query(20, ge=1, le=500),
    dashboard: DashboardService = Depends(get_dashboard),
) -> List[AlertEventOut]:
    return [AlertEventOut.model_validate(event) for event in dashboard.feed.recent(limit)]


@router.post(
    "/alerts/test",
    response_model=List[AlertEventOut],
    summary="Push a simulated out-of-range reading through the alert path.",
)
async def trigger_test_alert(
    dashboard: DashboardService = Depends(get_dashboard),
) -> List[AlertEventOut]:
    return [AlertEventOut.model_validate(event) for event in dashboard.trigger_test_alert()]


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(
    dashboard: DashboardService = Depends(get_dashboard),
) -> dict[str, object]:
    subscription = dashboard.subscription
    return {
        "status": "ok",
        "subscribed": bool(subscription and subscription.active),
        "window_size": len(dashboard.buffer),
    }


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
