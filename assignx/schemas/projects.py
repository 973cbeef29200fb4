#assignx/schemas/projects.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from assignx.models.enums import ServiceType, UrgencyTier


class ProjectCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=256)
    service_type: ServiceType
    subject: Optional[str] = Field(default=None, max_length=128)
    word_count: Optional[int] = Field(default=None, ge=0)
    deadline: datetime
    urgency: UrgencyTier = UrgencyTier.standard
    instructions: Optional[str] = None
    intermediary_id: Optional[uuid.UUID] = None


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_number: str
    client_id: uuid.UUID
    intermediary_id: uuid.UUID
    worker_id: Optional[uuid.UUID] = None

    title: str
    service_type: str
    subject: Optional[str] = None
    word_count: Optional[int] = None
    deadline: datetime
    urgency: str

    status: str
    progress_percentage: int

    # paise
    client_quote: Optional[int] = None
    worker_payout: Optional[int] = None
    intermediary_commission: Optional[int] = None
    platform_fee: Optional[int] = None
    is_paid: bool

    revision_count: int
    qc_rejection_count: int
    cancellation_reason: Optional[str] = None

    quoted_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    created_at: datetime
    version: int


class StatusHistoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    seq: int
    from_status: Optional[str] = None
    to_status: str
    event: str
    actor_id: Optional[uuid.UUID] = None
    actor_role: Optional[str] = None
    notes: Optional[str] = None
    metadata_json: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class ProgressUpdate(BaseModel):
    percent: int = Field(..., ge=0, le=100)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=512)
