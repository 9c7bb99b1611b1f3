"""
Pydantic schemas for API request/response models.

Read models (CompletionRecord, UnlockState, SequenceProgress, StreakSummary,
ExperimentView) are served as-is from the domain layer; only the shapes that
exist purely for HTTP live here.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from sequence_progress.domain.models import UnlockStatus
from sequence_progress.domain.reveal import RevealPolicy


class CompleteItemRequest(BaseModel):
    """Request schema for completing an item."""

    idempotency_key: Optional[str] = Field(
        default=None,
        max_length=512,
        description="Client idempotency key ({sequence_id}:{item_number}:{YYYY-MM-DD})",
    )
    note: Optional[str] = Field(default=None, max_length=10_000, description="Optional note")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"idempotency_key": "journey-anxiety:3:2024-03-10", "note": "Felt calmer"},
                {},
            ]
        }
    }


class ReflectionRequest(BaseModel):
    """Request schema for saving an experiment reflection."""

    text: str = Field(..., min_length=1, max_length=10_000, description="Reflection text")


class ItemAccessResponse(BaseModel):
    """Response schema for opening an item."""

    sequence_id: str = Field(..., description="Sequence ID")
    item_number: int = Field(..., description="1-based item number")
    status: UnlockStatus = Field(..., description="unlocked or completed")
    policy: RevealPolicy = Field(..., description="Reveal policy")
    total_sub_units: int = Field(..., description="Number of sub-units in the item")
    revealed_count: int = Field(..., description="Sub-units visible on open")
    can_complete: bool = Field(..., description="Whether completion may be offered now")
    durations_seconds: Optional[List[float]] = Field(
        default=None, description="Estimated seconds per sub-unit (timed pacing only)"
    )


class StreakResponse(BaseModel):
    """Response schema for the streak summary."""

    current_streak: int
    longest_streak: int
    last_completed_date: Optional[str] = Field(default=None, description="ISO date")
    next_expected_date: Optional[str] = Field(default=None, description="ISO date")
    milestones: List[int] = Field(default_factory=list, description="Milestones reached")


class HealthCheckResponse(BaseModel):
    """Response schema for health check."""

    status: str = Field(..., description="Overall health status")
    checks: Dict[str, str] = Field(default_factory=dict, description="Individual checks")
