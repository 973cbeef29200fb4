# assignx/services/payout_service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from assignx.core.clock import utcnow
from assignx.core.config import Settings, get_settings
from assignx.core.errors import IllegalTransition, InvalidAmount, InvalidInput, NotFound, NotPermitted
from assignx.models.enums import LedgerOwnerRole, LedgerReason, ParticipantRole, PayoutMethod, PayoutStatus
from assignx.models.ledger_entry import LedgerEntry
from assignx.models.participant import Participant
from assignx.models.payout_request import PayoutRequest
from assignx.services.distribution import BPS
from assignx.services.ledger_service import LedgerService
from assignx.services.notification_service import NotificationDispatcher, queue_notification
from assignx.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)

PAYOUT_ROLES = {ParticipantRole.WORKER, ParticipantRole.INTERMEDIARY}

# Requests in these states still hold their amount against the wallet.
HELD_STATUSES = {PayoutStatus.pending, PayoutStatus.processing}

PAYOUT_TRANSITIONS: Dict[str, Set[PayoutStatus]] = {
    "approve": {PayoutStatus.pending},
    "complete": {PayoutStatus.processing},
    "fail": {PayoutStatus.pending, PayoutStatus.processing},
    "cancel": {PayoutStatus.pending},
}


class PayoutService:
    """
    Wallet withdrawals for workers and intermediaries.

    A request may not exceed the available balance (ledger balance minus
    amounts already held by open requests) and must meet the configured
    minimum. Requests are serialized per requester by locking the
    participant row. Status moves use a conditional UPDATE, so a payout can
    complete (and debit the wallet) only once.
    """

    def __init__(
        self,
        notifier: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
    ):
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.ledger = LedgerService()

    # ─────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────

    def get(self, db: Session, *, payout_id: uuid.UUID) -> PayoutRequest:
        row = db.get(PayoutRequest, payout_id)
        if row is None:
            raise NotFound("Payout request not found.", payout_id=str(payout_id))
        return row

    def list_requests(
        self,
        db: Session,
        *,
        requester_id: Optional[uuid.UUID] = None,
        status: Optional[PayoutStatus] = None,
    ) -> List[PayoutRequest]:
        stmt = select(PayoutRequest)
        if requester_id is not None:
            stmt = stmt.where(PayoutRequest.requester_id == requester_id)
        if status is not None:
            stmt = stmt.where(PayoutRequest.status == PayoutStatus(status).value)
        return list(db.execute(stmt.order_by(PayoutRequest.created_at.desc())).scalars().all())

    def held_amount(self, db: Session, *, requester_id: uuid.UUID) -> int:
        total = db.execute(
            select(func.coalesce(func.sum(PayoutRequest.amount), 0)).where(
                PayoutRequest.requester_id == requester_id,
                PayoutRequest.status.in_([s.value for s in HELD_STATUSES]),
            )
        ).scalar_one()
        return int(total)

    def available_balance(self, db: Session, *, owner_role: LedgerOwnerRole, owner_id: uuid.UUID) -> Dict[str, int]:
        wallet = self.ledger.owner_balance(db, owner_role=owner_role, owner_id=owner_id)
        held = self.held_amount(db, requester_id=owner_id)
        return {"balance": wallet["balance"], "held": held, "available": wallet["balance"] - held}

    def fee_for(self, amount: int) -> int:
        return amount * self.settings.payout_processing_fee_bps // BPS

    # ─────────────────────────────────────────────
    # Requester
    # ─────────────────────────────────────────────

    def request_payout(
        self,
        db: Session,
        *,
        requester_id: uuid.UUID,
        requester_role: ParticipantRole,
        amount: int,
        method: PayoutMethod,
        destination_ref: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PayoutRequest:
        role = ParticipantRole(requester_role)
        if role not in PAYOUT_ROLES:
            raise NotPermitted("Only workers and intermediaries hold a withdrawable wallet.")
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidAmount("Payout amount must be an integer number of paise.")
        if amount < self.settings.payout_minimum_paise:
            raise InvalidAmount(
                "Payout amount is below the minimum.",
                minimum=self.settings.payout_minimum_paise,
                requested=amount,
            )
        method = PayoutMethod(method)
        now = now or utcnow()

        with unit_of_work(db, self.notifier):
            # Serializes concurrent requests from the same wallet.
            participant = db.execute(
                select(Participant).where(Participant.id == requester_id).with_for_update()
            ).scalar_one_or_none()
            if participant is None:
                raise NotFound("Participant not found.", participant_id=str(requester_id))

            wallet = self.available_balance(db, owner_role=LedgerOwnerRole(role.value), owner_id=requester_id)
            if amount > wallet["available"]:
                raise InvalidAmount(
                    "Payout amount exceeds the available balance.",
                    available=wallet["available"],
                    requested=amount,
                )

            fee = self.fee_for(amount)
            row = PayoutRequest(
                requester_id=requester_id,
                requester_role=role.value,
                amount=amount,
                fee=fee,
                net_amount=amount - fee,
                method=method.value,
                destination_ref=(destination_ref or "").strip() or None,
                status=PayoutStatus.pending.value,
                created_at=now,
            )
            db.add(row)
            db.flush()

        logger.info(
            "payout requested",
            extra={"payout_id": str(row.id), "requester_id": str(requester_id), "amount": amount, "fee": fee},
        )
        db.refresh(row)
        return row

    def cancel(self, db: Session, *, payout_id: uuid.UUID, requester_id: uuid.UUID) -> PayoutRequest:
        with unit_of_work(db, self.notifier):
            row = self.get(db, payout_id=payout_id)
            if row.requester_id != requester_id:
                raise NotFound("Payout request not found.", payout_id=str(payout_id))
            self._move(db, row, "cancel", PayoutStatus.cancelled)
        db.refresh(row)
        return row

    # ─────────────────────────────────────────────
    # Admin review
    # ─────────────────────────────────────────────

    def approve(
        self,
        db: Session,
        *,
        payout_id: uuid.UUID,
        admin_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> PayoutRequest:
        now = now or utcnow()
        with unit_of_work(db, self.notifier):
            row = self.get(db, payout_id=payout_id)
            self._move(db, row, "approve", PayoutStatus.processing, reviewed_by=admin_id, reviewed_at=now)
            self._notify(db, row, PayoutStatus.processing)
        db.refresh(row)
        return row

    def complete(
        self,
        db: Session,
        *,
        payout_id: uuid.UUID,
        admin_id: uuid.UUID,
        gateway_reference: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PayoutRequest:
        """processing → completed; debits the wallet and credits the platform's fee."""
        now = now or utcnow()
        with unit_of_work(db, self.notifier):
            row = self.get(db, payout_id=payout_id)
            self._move(
                db,
                row,
                "complete",
                PayoutStatus.completed,
                completed_at=now,
                gateway_reference=gateway_reference,
            )
            entries = self._write_ledger(db, row, admin_id=admin_id, now=now)
            self._notify(db, row, PayoutStatus.completed)

        logger.info(
            "payout completed",
            extra={
                "payout_id": str(row.id),
                "requester_id": str(row.requester_id),
                "amount": row.amount,
                "net_amount": row.net_amount,
                "entries": len(entries),
            },
        )
        db.refresh(row)
        return row

    def fail(
        self,
        db: Session,
        *,
        payout_id: uuid.UUID,
        admin_id: uuid.UUID,
        reason: str,
        now: Optional[datetime] = None,
    ) -> PayoutRequest:
        """Rejects a pending request or records a failed transfer; the held amount is released."""
        if not (reason or "").strip():
            raise InvalidInput("A failure reason is required.")
        now = now or utcnow()
        with unit_of_work(db, self.notifier):
            row = self.get(db, payout_id=payout_id)
            self._move(
                db,
                row,
                "fail",
                PayoutStatus.failed,
                failure_reason=reason.strip(),
                reviewed_by=row.reviewed_by or admin_id,
                reviewed_at=row.reviewed_at or now,
            )
            self._notify(db, row, PayoutStatus.failed)

        logger.info("payout failed", extra={"payout_id": str(row.id), "reason": reason.strip()})
        db.refresh(row)
        return row

    def ledger_entries(self, db: Session, *, payout_id: uuid.UUID) -> List[LedgerEntry]:
        return self.ledger.list_entries(db, payout_request_id=payout_id)

    # ─────────────────────────────────────────────
    # Internal helpers
    # ─────────────────────────────────────────────

    def _move(self, db: Session, row: PayoutRequest, event: str, to: PayoutStatus, **values: Any) -> None:
        allowed = PAYOUT_TRANSITIONS[event]
        res = db.execute(
            update(PayoutRequest)
            .where(
                PayoutRequest.id == row.id,
                PayoutRequest.status.in_([s.value for s in allowed]),
            )
            .values(status=to.value, **values)
            .execution_options(synchronize_session=False)
        )
        db.refresh(row)
        if res.rowcount == 0:
            raise IllegalTransition(row.status, event, detail=f"Payout cannot {event} from '{row.status}'.")

    def _write_ledger(self, db: Session, row: PayoutRequest, *, admin_id: uuid.UUID, now: datetime) -> List[LedgerEntry]:
        wallet = self.ledger.owner_balance(
            db, owner_role=LedgerOwnerRole(row.requester_role), owner_id=row.requester_id
        )
        if wallet["balance"] < row.amount:
            raise InvalidAmount(
                "Wallet balance no longer covers this payout.",
                balance=wallet["balance"],
                requested=row.amount,
            )

        details = {"method": row.method, "approved_by": str(admin_id), "gateway_reference": row.gateway_reference}
        entries = [
            self.ledger.append_entry(
                db,
                payout_request_id=row.id,
                owner_role=LedgerOwnerRole(row.requester_role),
                owner_id=row.requester_id,
                amount=-row.amount,
                reason=LedgerReason.withdrawal,
                details=details,
                now=now,
            )
        ]
        if row.fee:
            entries.append(
                self.ledger.append_entry(
                    db,
                    payout_request_id=row.id,
                    owner_role=LedgerOwnerRole.PLATFORM,
                    owner_id=None,
                    amount=row.fee,
                    reason=LedgerReason.payout_fee,
                    details={"payout_request_id": str(row.id)},
                    now=now,
                )
            )
        return entries

    def _notify(self, db: Session, row: PayoutRequest, status: PayoutStatus) -> None:
        queue_notification(
            db,
            recipient_id=row.requester_id,
            event_type=f"payout.{status.value}",
            payload={"payout_id": str(row.id), "amount": row.amount, "net_amount": row.net_amount},
        )
