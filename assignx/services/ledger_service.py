#assignx/services/ledger_service.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from assignx.core.clock import utcnow
from assignx.core.hashing import hash_chain
from assignx.models.enums import LedgerOwnerRole, LedgerReason
from assignx.models.ledger_entry import LedgerEntry


class LedgerService:
    """
    Append-only money ledger, hash-chained per project (or per payout for
    wallet withdrawals).
    This is the economic source of truth.

    append_entry only flushes; the calling service commits the whole
    operation at once so a failure never leaves half a settlement behind.
    """

    GENESIS_HASH = "0" * 64

    # ─────────────────────────────────────────────
    # INTERNAL HELPERS
    # ─────────────────────────────────────────────

    def _chain(self, project_id: Optional[uuid.UUID], payout_request_id: Optional[uuid.UUID]):
        if (project_id is None) == (payout_request_id is None):
            raise ValueError("A ledger chain is either a project or a payout request.")
        if project_id is not None:
            return LedgerEntry.project_id == project_id
        return LedgerEntry.payout_request_id == payout_request_id

    def _get_last_entry(
        self,
        db: Session,
        *,
        project_id: Optional[uuid.UUID] = None,
        payout_request_id: Optional[uuid.UUID] = None,
    ) -> Optional[LedgerEntry]:
        return db.execute(
            select(LedgerEntry)
            .where(self._chain(project_id, payout_request_id))
            .order_by(LedgerEntry.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    # ─────────────────────────────────────────────
    # PUBLIC API
    # ─────────────────────────────────────────────

    def append_entry(
        self,
        db: Session,
        *,
        project_id: Optional[uuid.UUID] = None,
        payout_request_id: Optional[uuid.UUID] = None,
        owner_role: LedgerOwnerRole,
        owner_id: Optional[uuid.UUID],
        amount: int,
        reason: LedgerReason,
        details: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> LedgerEntry:
        """
        Append a single immutable ledger entry.

        Positive amounts credit the owner, negative amounts debit them.
        """
        last = self._get_last_entry(db, project_id=project_id, payout_request_id=payout_request_id)

        prev_hash = last.entry_hash if last else self.GENESIS_HASH
        seq = 1 if not last else last.seq + 1
        created_at = now or utcnow()

        entry_payload = {
            "project_id": str(project_id) if project_id else None,
            "seq": seq,
            "owner_role": LedgerOwnerRole(owner_role).value,
            "owner_id": str(owner_id) if owner_id else None,
            "amount": int(amount),
            "reason": LedgerReason(reason).value,
            "details": details or {},
            "created_at": created_at.isoformat(),
        }
        if payout_request_id is not None:
            entry_payload["payout_request_id"] = str(payout_request_id)

        row = LedgerEntry(
            project_id=project_id,
            payout_request_id=payout_request_id,
            seq=seq,
            owner_role=entry_payload["owner_role"],
            owner_id=owner_id,
            amount=int(amount),
            reason=entry_payload["reason"],
            prev_hash=prev_hash,
            entry_hash=hash_chain(prev_hash, entry_payload),
            payload_json=entry_payload,
            created_at=created_at,
        )

        db.add(row)
        db.flush()
        return row

    # ─────────────────────────────────────────────
    # READ-ONLY HELPERS (AUDIT)
    # ─────────────────────────────────────────────

    def list_entries(
        self,
        db: Session,
        *,
        project_id: Optional[uuid.UUID] = None,
        payout_request_id: Optional[uuid.UUID] = None,
        reasons: Optional[List[LedgerReason]] = None,
    ) -> List[LedgerEntry]:
        stmt = select(LedgerEntry).where(self._chain(project_id, payout_request_id))
        if reasons:
            stmt = stmt.where(LedgerEntry.reason.in_([LedgerReason(r).value for r in reasons]))
        return list(db.execute(stmt.order_by(LedgerEntry.seq.asc())).scalars().all())

    def verify_chain(
        self,
        db: Session,
        *,
        project_id: Optional[uuid.UUID] = None,
        payout_request_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """
        Verifies the entire hash chain.
        Used by auditors.
        """
        entries = self.list_entries(db, project_id=project_id, payout_request_id=payout_request_id)

        prev_hash = self.GENESIS_HASH

        for e in entries:
            if e.prev_hash != prev_hash:
                return False
            if e.entry_hash != hash_chain(prev_hash, e.payload_json):
                return False
            if e.payload_json.get("amount") != e.amount or e.payload_json.get("seq") != e.seq:
                return False
            prev_hash = e.entry_hash

        return True

    def project_balance(self, db: Session, *, project_id: uuid.UUID) -> int:
        """Sum of every entry on the project; zero once settled or refunded."""
        total = db.execute(
            select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(LedgerEntry.project_id == project_id)
        ).scalar_one()
        return int(total)

    def owner_balance(
        self,
        db: Session,
        *,
        owner_role: LedgerOwnerRole,
        owner_id: Optional[uuid.UUID],
    ) -> Dict[str, Any]:
        """Wallet view across all projects for one participant (or the platform)."""
        stmt = select(
            LedgerEntry.reason,
            func.coalesce(func.sum(LedgerEntry.amount), 0),
            func.count(LedgerEntry.id),
        ).where(LedgerEntry.owner_role == LedgerOwnerRole(owner_role).value)
        if owner_id is None:
            stmt = stmt.where(LedgerEntry.owner_id.is_(None))
        else:
            stmt = stmt.where(LedgerEntry.owner_id == owner_id)

        by_reason: Dict[str, int] = {}
        entries = 0
        for reason, amount, count in db.execute(stmt.group_by(LedgerEntry.reason)).all():
            by_reason[reason] = int(amount)
            entries += int(count)

        return {
            "owner_role": LedgerOwnerRole(owner_role).value,
            "owner_id": str(owner_id) if owner_id else None,
            "balance": sum(by_reason.values()),
            "by_reason": by_reason,
            "entries": entries,
        }
