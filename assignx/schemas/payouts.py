from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from assignx.models.enums import PayoutMethod


class PayoutCreate(BaseModel):
    amount: int = Field(gt=0, description="paise")
    method: PayoutMethod = PayoutMethod.bank_transfer
    destination_ref: Optional[str] = Field(default=None, max_length=128)


class PayoutComplete(BaseModel):
    gateway_reference: Optional[str] = Field(default=None, max_length=128)


class PayoutFail(BaseModel):
    reason: str = Field(min_length=1, max_length=1024)


class PayoutOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    requester_id: uuid.UUID
    requester_role: str
    amount: int
    fee: int
    net_amount: int
    method: str
    destination_ref: Optional[str] = None
    status: str
    reviewed_by: Optional[uuid.UUID] = None
    reviewed_at: Optional[datetime] = None
    gateway_reference: Optional[str] = None
    failure_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: datetime


class PayoutBalanceOut(BaseModel):
    balance: int
    held: int
    available: int
    minimum: int
    fee_bps: int
