from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AssignRequest(BaseModel):
    worker_id: uuid.UUID


class DeclineRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=512)


class ReassignRequest(BaseModel):
    new_worker_id: uuid.UUID
    reason: Optional[str] = Field(default=None, max_length=512)


class AssignmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    worker_id: uuid.UUID
    assigned_by: uuid.UUID
    state: str
    end_reason: Optional[str] = None
    replaced_by_id: Optional[uuid.UUID] = None
    assigned_at: datetime
    ended_at: Optional[datetime] = None


class AvailabilityUpdate(BaseModel):
    is_available: bool
    max_concurrent_projects: Optional[int] = Field(default=None, ge=0)


class WorkerProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    participant_id: uuid.UUID
    is_available: bool
    max_concurrent_projects: int
    active_assignment_count: int


class BlacklistRequest(BaseModel):
    worker_id: uuid.UUID
    reason: Optional[str] = Field(default=None, max_length=512)


class BlacklistOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    intermediary_id: uuid.UUID
    worker_id: uuid.UUID
    reason: Optional[str] = None
    created_at: datetime
