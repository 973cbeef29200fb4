from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from assignx.models.enums import UrgencyTier


class QuoteCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: int = Field(..., description="paise")
    notes: Optional[str] = Field(default=None, max_length=1024)


class QuoteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    amount: int
    worker_amount: int
    intermediary_amount: int
    platform_amount: int
    state: str
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    issued_at: datetime
    responded_at: Optional[datetime] = None


class QuoteReject(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=512)


class ReopenRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=512)


class QuoteSuggestion(BaseModel):
    word_count: int
    urgency: UrgencyTier
    suggested_amount: int


class PaymentOrderRequest(BaseModel):
    quote_id: uuid.UUID


class PaymentOrderOut(BaseModel):
    project_id: str
    quote_id: str
    order_ref: str
    amount: int
    key_id: str


class PaymentCapture(BaseModel):
    model_config = ConfigDict(extra="forbid")

    quote_id: uuid.UUID
    payment_reference: str = Field(..., min_length=1, max_length=128)
    order_ref: str = Field(..., min_length=1, max_length=128)
    signature: str = Field(..., min_length=1)
