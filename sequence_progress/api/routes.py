"""
API routes for sequence progress.

The authenticated user arrives in ``X-User-Id`` (identity is handled upstream);
the user's IANA zone in ``X-Time-Zone``. Engine errors propagate as
``ProgressError`` and are rendered by the handler registered in ``api.main``.
"""
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from sequence_progress.core.engine import ProgressEngine
from sequence_progress.domain.experiment import ExperimentView
from sequence_progress.domain.models import CompletionRecord, SequenceProgress, UnlockState
from sequence_progress.domain.reveal import RevealPolicy
from sequence_progress.domain.streak import milestones_reached
from sequence_progress.monitoring.logging import bind_progress_context

from .schemas import (
    CompleteItemRequest,
    HealthCheckResponse,
    ItemAccessResponse,
    ReflectionRequest,
    StreakResponse,
)

logger = structlog.get_logger(__name__)


# Dependency injection
def get_engine(request: Request) -> ProgressEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Progress engine not initialized")
    return engine


async def get_user_id(x_user_id: str = Header(..., min_length=1)) -> str:
    bind_progress_context(user_id=x_user_id)
    return x_user_id


async def bind_sequence(sequence_id: str) -> str:
    bind_progress_context(sequence_id=sequence_id)
    return sequence_id


def get_time_zone(x_time_zone: Optional[str] = Header(default=None)) -> Optional[str]:
    if x_time_zone is None:
        return None
    try:
        ZoneInfo(x_time_zone)
    except (ZoneInfoNotFoundError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown time zone: {x_time_zone}",
        )
    return x_time_zone


# Create routers
sequence_router = APIRouter(
    prefix="/sequences", tags=["sequences"], dependencies=[Depends(bind_sequence)]
)
streak_router = APIRouter(tags=["streaks"])
experiment_router = APIRouter(
    prefix="/experiments", tags=["experiments"], dependencies=[Depends(bind_sequence)]
)
monitoring_router = APIRouter(tags=["monitoring"])


@sequence_router.post(
    "/{sequence_id}/items/{item_number}/complete",
    response_model=CompletionRecord,
    summary="Complete an item",
    description="Record a completion; retries return the original record",
)
async def complete_item(
    sequence_id: str,
    item_number: int,
    body: Optional[CompleteItemRequest] = None,
    user_id: str = Depends(get_user_id),
    time_zone: Optional[str] = Depends(get_time_zone),
    engine: ProgressEngine = Depends(get_engine),
) -> CompletionRecord:
    """
    Complete ``item_number`` of ``sequence_id`` for the calling user.

    This endpoint is idempotent - duplicate requests return the same record.
    """
    body = body or CompleteItemRequest()
    return await engine.record_completion(
        user_id,
        sequence_id,
        item_number,
        idempotency_key=body.idempotency_key,
        time_zone=time_zone,
        note=body.note,
    )


@sequence_router.get(
    "/{sequence_id}/unlock-state",
    response_model=UnlockState,
    summary="Get unlock state",
)
async def get_unlock_state(
    sequence_id: str,
    user_id: str = Depends(get_user_id),
    engine: ProgressEngine = Depends(get_engine),
) -> UnlockState:
    return await engine.get_unlock_state(user_id, sequence_id)


@sequence_router.get(
    "/{sequence_id}/progress",
    response_model=SequenceProgress,
    summary="Get sequence progress",
)
async def get_progress(
    sequence_id: str,
    user_id: str = Depends(get_user_id),
    engine: ProgressEngine = Depends(get_engine),
) -> SequenceProgress:
    return await engine.get_progress(user_id, sequence_id)


@sequence_router.get(
    "/{sequence_id}/items/{item_number}",
    response_model=ItemAccessResponse,
    summary="Open an item",
    description="Guarded item access; locked items are refused whatever the entry point",
)
async def open_item(
    sequence_id: str,
    item_number: int,
    sub_units: int = Query(default=1, ge=0, description="Number of sub-units in the item"),
    policy: RevealPolicy = Query(default=RevealPolicy.MANUAL),
    word_counts: Optional[List[int]] = Query(
        default=None, description="Per sub-unit word counts for timed pacing"
    ),
    user_id: str = Depends(get_user_id),
    engine: ProgressEngine = Depends(get_engine),
) -> Dict[str, Any]:
    access = await engine.open_item(
        user_id,
        sequence_id,
        item_number,
        total_sub_units=sub_units,
        policy=policy,
        word_counts=word_counts,
    )
    logger.info("item_opened", item_number=item_number, status=access.status.value)
    return {
        "sequence_id": access.sequence_id,
        "item_number": access.item_number,
        "status": access.status,
        "policy": access.pacer.policy,
        "total_sub_units": access.pacer.total_sub_units,
        "revealed_count": access.pacer.revealed_count,
        "can_complete": access.pacer.can_complete,
        "durations_seconds": (
            access.pacer.durations if access.pacer.policy is RevealPolicy.TIMED else None
        ),
    }


@streak_router.get(
    "/streak",
    response_model=StreakResponse,
    summary="Get streak summary",
)
async def get_streak(
    group: Optional[str] = Query(default=None, description="Restrict to one streak group"),
    user_id: str = Depends(get_user_id),
    time_zone: Optional[str] = Depends(get_time_zone),
    engine: ProgressEngine = Depends(get_engine),
) -> Dict[str, Any]:
    summary = await engine.get_streak_summary(user_id, streak_group_id=group, time_zone=time_zone)
    return {
        "current_streak": summary.current_streak,
        "longest_streak": summary.longest_streak,
        "last_completed_date": (
            summary.last_completed_date.isoformat() if summary.last_completed_date else None
        ),
        "next_expected_date": (
            summary.next_expected_date.isoformat() if summary.next_expected_date else None
        ),
        "milestones": milestones_reached(summary.longest_streak),
    }


@experiment_router.get(
    "/{sequence_id}",
    response_model=ExperimentView,
    summary="Get experiment calendar",
)
async def get_experiment(
    sequence_id: str,
    user_id: str = Depends(get_user_id),
    time_zone: Optional[str] = Depends(get_time_zone),
    engine: ProgressEngine = Depends(get_engine),
) -> ExperimentView:
    try:
        return await engine.get_experiment(user_id, sequence_id, time_zone=time_zone)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@experiment_router.put(
    "/{sequence_id}/reflection",
    response_model=ExperimentView,
    summary="Save experiment reflection",
)
async def save_reflection(
    sequence_id: str,
    body: ReflectionRequest,
    user_id: str = Depends(get_user_id),
    time_zone: Optional[str] = Depends(get_time_zone),
    engine: ProgressEngine = Depends(get_engine),
) -> ExperimentView:
    try:
        return await engine.save_reflection(user_id, sequence_id, body.text, time_zone=time_zone)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
)
async def health(request: Request) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    ready = getattr(request.app.state, "engine", None) is not None
    return {
        "status": "healthy" if ready else "unhealthy",
        "checks": {"engine": "ok" if ready else "not_initialized"},
    }


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    include_in_schema=False,  # Don't include in OpenAPI docs
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
