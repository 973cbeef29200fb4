# assignx/models/payout_request.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from assignx.core.clock import utcnow
from assignx.db.base import Base
from assignx.db.types import GUID, UTCDateTime
from assignx.models.enums import PayoutStatus


class PayoutRequest(Base):
    """
    A worker's or intermediary's request to withdraw wallet earnings.

    pending -> processing (admin approved) -> completed | failed
    pending -> cancelled (requester) | failed (admin rejected)

    Money only leaves the wallet on completion, as a withdrawal ledger entry.
    Until then the amount is held: it no longer counts as available.
    """

    __tablename__ = "payout_requests"

    id: Mapped[uuid.UUID] = mapped_column(GUID, primary_key=True, default=uuid.uuid4)

    requester_id: Mapped[uuid.UUID] = mapped_column(
        GUID, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False
    )
    requester_role: Mapped[str] = mapped_column(String(32), nullable=False)  # WORKER | INTERMEDIARY

    # paise
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    net_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    method: Mapped[str] = mapped_column(String(32), nullable=False)
    destination_ref: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)  # masked account / UPI id

    status: Mapped[str] = mapped_column(String(32), nullable=False, default=PayoutStatus.pending.value)

    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    gateway_reference: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payout_amount_positive"),
        CheckConstraint("fee >= 0 AND fee <= amount", name="ck_payout_fee_bounded"),
        Index("ix_payout_requester_status", "requester_id", "status"),
    )
