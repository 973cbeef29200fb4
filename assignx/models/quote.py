# assignx/models/quote.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, String, func, text
from sqlalchemy.orm import Mapped, mapped_column

from assignx.core.clock import utcnow
from assignx.db.base import Base
from assignx.db.types import GUID, UTCDateTime
from assignx.models.enums import QuoteState


class Quote(Base):
    """
    A priced offer for a project. Only one row per project is `active`;
    issuing a new quote flips the previous one to `superseded`.
    """

    __tablename__ = "project_quotes"

    id: Mapped[uuid.UUID] = mapped_column(GUID, primary_key=True, default=uuid.uuid4)

    project_id: Mapped[uuid.UUID] = mapped_column(
        GUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    quoted_by: Mapped[uuid.UUID] = mapped_column(
        GUID, ForeignKey("participants.id", ondelete="RESTRICT"), nullable=False
    )

    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)  # paise charged to the client
    worker_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    intermediary_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    platform_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    notes: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    state: Mapped[str] = mapped_column(String(16), nullable=False, default=QuoteState.active.value)
    rejection_reason: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    order_ref: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)  # latest gateway order

    issued_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )
    responded_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_quote_amount_positive"),
        CheckConstraint(
            "worker_amount + intermediary_amount + platform_amount = amount",
            name="ck_quote_distribution_conserved",
        ),
        Index(
            "uq_quote_one_active_per_project",
            "project_id",
            unique=True,
            postgresql_where=text("state = 'active'"),
            sqlite_where=text("state = 'active'"),
        ),
        Index("ix_quotes_project", "project_id", "issued_at"),
    )
