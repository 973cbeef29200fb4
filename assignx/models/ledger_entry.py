# assignx/models/ledger_entry.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from assignx.core.clock import utcnow
from assignx.db.base import Base
from assignx.db.types import GUID, JSONType, UTCDateTime


class LedgerEntry(Base):
    """
    Append-only hash-chained money movements. One chain per project, plus one
    chain per completed payout, since a wallet withdrawal spans projects.

    amount is signed paise: negative debits the owner, positive credits them.
    entry_hash = SHA256(prev_hash + canonical(payload_json))
    """

    __tablename__ = "ledger_entries"

    id: Mapped[uuid.UUID] = mapped_column(GUID, primary_key=True, default=uuid.uuid4)

    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True,
    )
    payout_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID,
        ForeignKey("payout_requests.id", ondelete="CASCADE"),
        nullable=True,
    )

    seq: Mapped[int] = mapped_column(Integer, nullable=False)  # monotonic per chain

    owner_role: Mapped[str] = mapped_column(String(32), nullable=False)
    owner_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)  # NULL for PLATFORM
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reason: Mapped[str] = mapped_column(String(64), nullable=False)

    prev_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    entry_hash: Mapped[str] = mapped_column(String(128), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )
    payload_json: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("project_id", "seq", name="uq_ledger_project_seq"),
        UniqueConstraint("payout_request_id", "seq", name="uq_ledger_payout_seq"),
        CheckConstraint(
            "(project_id IS NULL) <> (payout_request_id IS NULL)",
            name="ck_ledger_one_chain",
        ),
        Index("ix_ledger_owner", "owner_role", "owner_id"),
        Index("ix_ledger_reason", "reason"),
    )
