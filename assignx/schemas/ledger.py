from __future__ import annotations

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LedgerEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    seq: int
    owner_role: str
    owner_id: Optional[uuid.UUID] = None
    amount: int
    reason: str
    prev_hash: str
    entry_hash: str
    created_at: datetime


class LedgerOut(BaseModel):
    project_id: uuid.UUID
    balance: int
    entries: List[LedgerEntryOut]


class LedgerVerifyOut(BaseModel):
    project_id: uuid.UUID
    valid: bool
    entries: int


class RefundRequest(BaseModel):
    amount: Optional[int] = Field(default=None, description="paise; defaults to the full refundable balance")


class WalletOut(BaseModel):
    owner_role: str
    owner_id: Optional[str] = None
    balance: int
    by_reason: Dict[str, int]
    entries: int
