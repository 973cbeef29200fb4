from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from assignx.models.enums import QCDecision


class DeliverableRefs(BaseModel):
    """References (URLs / storage keys) to files already uploaded elsewhere."""

    deliverable_refs: List[str] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=2048)


class QCDecisionRequest(BaseModel):
    decision: QCDecision
    notes: Optional[str] = Field(default=None, max_length=2048)


class RevisionRequest(BaseModel):
    notes: str = Field(..., min_length=1, max_length=4096)


class RevisionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    revision_number: int
    requested_by: uuid.UUID
    requested_by_role: str
    notes: str
    requested_at: datetime
    resolved_at: Optional[datetime] = None


class DeliverableOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: str
    ref: str
    cycle: int
    is_current: bool
    created_at: datetime
