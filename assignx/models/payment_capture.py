# assignx/models/payment_capture.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import BigInteger, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from assignx.core.clock import utcnow
from assignx.db.base import Base
from assignx.db.types import GUID, JSONType, UTCDateTime


class PaymentCapture(Base):
    """
    A verified gateway payment against one quote.

    The (project_id, quote_id) uniqueness is what turns a concurrent second
    capture into a replay of the first one.
    """

    __tablename__ = "payment_captures"

    id: Mapped[uuid.UUID] = mapped_column(GUID, primary_key=True, default=uuid.uuid4)

    project_id: Mapped[uuid.UUID] = mapped_column(
        GUID, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    quote_id: Mapped[uuid.UUID] = mapped_column(
        GUID, ForeignKey("project_quotes.id", ondelete="RESTRICT"), nullable=False
    )

    order_ref: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    payment_reference: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # SettlementPreview as returned to the first caller; replays return it verbatim.
    preview_json: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    captured_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("project_id", "quote_id", name="uq_payment_capture_project_quote"),
    )
