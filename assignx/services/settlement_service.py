# assignx/services/settlement_service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from assignx.core.clock import utcnow
from assignx.core.config import Settings, get_settings
from assignx.core.errors import AlreadySettled, IllegalTransition, InvalidAmount
from assignx.core.status_graph import SETTLEABLE_STATUSES, WORK_STARTED_STATUSES
from assignx.models.enums import (
    LedgerOwnerRole,
    LedgerReason,
    LifecycleEvent,
    ProjectStatus,
    SettlementKind,
)
from assignx.models.ledger_entry import LedgerEntry
from assignx.models.project import Project
from assignx.models.settlement_record import SettlementRecord
from assignx.services.assignment_service import AssignmentService
from assignx.services.distribution import BPS
from assignx.services.ledger_service import LedgerService
from assignx.services.lifecycle_service import LifecycleService, load_project
from assignx.services.notification_service import NotificationDispatcher, queue_notification
from assignx.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)

_SETTLEMENT_REASONS = [
    LedgerReason.worker_payout,
    LedgerReason.intermediary_commission,
    LedgerReason.platform_fee,
]

_REFUND_REASONS = [
    LedgerReason.client_refund,
    LedgerReason.worker_penalty_share,
    LedgerReason.intermediary_penalty_share,
    LedgerReason.platform_fee,
]


class SettlementService:
    """
    Releases captured money to worker, intermediary and platform once a
    project is approved, or back to the client after a cancellation.

    One SettlementRecord per (project, kind); the unique constraint decides
    any race and the loser gets AlreadySettled with the winner's entries.
    """

    def __init__(
        self,
        notifier: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
    ):
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.ledger = LedgerService()
        self.lifecycle = LifecycleService()
        self.assignments = AssignmentService(notifier=notifier)

    # ─────────────────────────────────────────────
    # Internal helpers
    # ─────────────────────────────────────────────

    def get_record(self, db: Session, *, project_id: uuid.UUID, kind: SettlementKind) -> Optional[SettlementRecord]:
        return db.execute(
            select(SettlementRecord).where(
                SettlementRecord.project_id == project_id,
                SettlementRecord.kind == SettlementKind(kind).value,
            )
        ).scalar_one_or_none()

    def _entries_for(self, db: Session, project_id: uuid.UUID, kind: SettlementKind) -> List[LedgerEntry]:
        reasons = _SETTLEMENT_REASONS if kind == SettlementKind.settlement else _REFUND_REASONS
        return self.ledger.list_entries(db, project_id=project_id, reasons=reasons)

    def _already(self, db: Session, project_id: uuid.UUID, kind: SettlementKind) -> AlreadySettled:
        entries = self._entries_for(db, project_id, kind)
        label = "settled" if kind == SettlementKind.settlement else "refunded"
        return AlreadySettled(f"Project already {label}.", existing=entries)

    # ─────────────────────────────────────────────
    # Settlement
    # ─────────────────────────────────────────────

    def settle_in_tx(self, db: Session, project: Project, *, now: datetime) -> List[LedgerEntry]:
        status = project.status_enum
        if status not in SETTLEABLE_STATUSES:
            raise IllegalTransition(status.value, "settle", detail="Settlement is released only after approval.")
        if self.get_record(db, project_id=project.id, kind=SettlementKind.settlement):
            raise self._already(db, project.id, SettlementKind.settlement)
        if not project.is_paid or project.client_quote is None:
            raise InvalidAmount("Project has no captured payment to settle.")

        record = SettlementRecord(
            project_id=project.id,
            kind=SettlementKind.settlement.value,
            triggered_by_status=status.value,
            client_quote=project.client_quote,
            worker_amount=project.worker_payout,
            intermediary_amount=project.intermediary_commission,
            platform_amount=project.platform_fee,
            client_amount=0,
            computed_at=now,
        )
        db.add(record)
        db.flush()

        entries = [
            self.ledger.append_entry(
                db,
                project_id=project.id,
                owner_role=LedgerOwnerRole.WORKER,
                owner_id=project.worker_id,
                amount=project.worker_payout,
                reason=LedgerReason.worker_payout,
                now=now,
            ),
            self.ledger.append_entry(
                db,
                project_id=project.id,
                owner_role=LedgerOwnerRole.INTERMEDIARY,
                owner_id=project.intermediary_id,
                amount=project.intermediary_commission,
                reason=LedgerReason.intermediary_commission,
                now=now,
            ),
            self.ledger.append_entry(
                db,
                project_id=project.id,
                owner_role=LedgerOwnerRole.PLATFORM,
                owner_id=None,
                amount=project.platform_fee,
                reason=LedgerReason.platform_fee,
                now=now,
            ),
        ]
        record.receipt_json = {
            "rates_bps": {
                "worker": self.settings.worker_share_bps,
                "intermediary": self.settings.intermediary_share_bps,
                "platform": self.settings.platform_share_bps,
            },
            "entries": [{"seq": e.seq, "entry_hash": e.entry_hash} for e in entries],
        }
        db.flush()

        payload = {"project_id": str(project.id), "kind": SettlementKind.settlement.value}
        queue_notification(db, recipient_id=project.worker_id, event_type="settlement.released", payload=payload)
        queue_notification(db, recipient_id=project.intermediary_id, event_type="settlement.released", payload=payload)

        logger.info(
            "settlement released",
            extra={
                "project_id": str(project.id),
                "client_quote": project.client_quote,
                "worker": project.worker_payout,
                "intermediary": project.intermediary_commission,
                "platform": project.platform_fee,
            },
        )
        return entries

    def finalize_in_tx(
        self,
        db: Session,
        project: Project,
        event: LifecycleEvent,
        *,
        actor_id: Optional[uuid.UUID],
        actor_role: Optional[str],
        now: datetime,
        notes: Optional[str] = None,
    ) -> List[LedgerEntry]:
        """delivered → completed / auto_approved, free the worker's slot, release the money."""
        self.lifecycle.apply(db, project, event, actor_id=actor_id, actor_role=actor_role, notes=notes, now=now)
        project.progress_percentage = 100
        self.assignments.release_for_project_in_tx(db, project, now=now, reason=LifecycleEvent(event).value)
        return self.settle_in_tx(db, project, now=now)

    def settle(self, db: Session, *, project_id: uuid.UUID, now: Optional[datetime] = None) -> List[LedgerEntry]:
        now = now or utcnow()
        try:
            with unit_of_work(db, self.notifier):
                project = load_project(db, project_id, for_update=True)
                entries = self.settle_in_tx(db, project, now=now)
        except IntegrityError:
            if self.get_record(db, project_id=project_id, kind=SettlementKind.settlement) is None:
                raise
            raise self._already(db, project_id, SettlementKind.settlement)
        return entries

    # ─────────────────────────────────────────────
    # Refund
    # ─────────────────────────────────────────────

    def refund_breakdown(self, project: Project, amount: Optional[int] = None) -> Dict[str, Any]:
        """
        Split a cancelled project's captured quote into client refund,
        retained penalty shares and platform remainder. Pure.
        """
        quote = int(project.client_quote or 0)
        work_started = project.cancelled_from_status in {s.value for s in WORK_STARTED_STATUSES}

        worker_penalty = 0
        intermediary_penalty = 0
        if work_started:
            if project.worker_id is not None:
                worker_penalty = quote * self.settings.refund_penalty_worker_bps // BPS
            intermediary_penalty = quote * self.settings.refund_penalty_intermediary_bps // BPS

        refundable = quote - worker_penalty - intermediary_penalty
        client_amount = refundable if amount is None else amount
        if isinstance(client_amount, bool) or not isinstance(client_amount, int):
            raise InvalidAmount("Refund amount must be an integer number of paise.")
        if client_amount <= 0:
            raise InvalidAmount("Refund amount must be positive.")
        if client_amount > refundable:
            raise InvalidAmount(
                "Refund amount exceeds the refundable balance.",
                refundable=refundable,
                requested=client_amount,
            )

        return {
            "client_quote": quote,
            "work_started": work_started,
            "refundable": refundable,
            "client": client_amount,
            "worker": worker_penalty,
            "intermediary": intermediary_penalty,
            "platform": quote - client_amount - worker_penalty - intermediary_penalty,
        }

    def refund(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        actor_id: uuid.UUID,
        actor_role: str,
        amount: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[LedgerEntry]:
        now = now or utcnow()
        try:
            with unit_of_work(db, self.notifier):
                project = load_project(db, project_id, for_update=True)

                if self.get_record(db, project_id=project.id, kind=SettlementKind.refund):
                    raise self._already(db, project.id, SettlementKind.refund)
                if project.status_enum != ProjectStatus.cancelled:
                    raise IllegalTransition(project.status, LifecycleEvent.refund.value)
                if not project.is_paid:
                    raise IllegalTransition(
                        project.status,
                        LifecycleEvent.refund.value,
                        detail="No captured payment to refund.",
                    )

                split = self.refund_breakdown(project, amount)

                record = SettlementRecord(
                    project_id=project.id,
                    kind=SettlementKind.refund.value,
                    triggered_by_status=project.status,
                    actor_id=actor_id,
                    client_quote=split["client_quote"],
                    worker_amount=split["worker"],
                    intermediary_amount=split["intermediary"],
                    platform_amount=split["platform"],
                    client_amount=split["client"],
                    computed_at=now,
                )
                db.add(record)
                db.flush()

                entries = [
                    self.ledger.append_entry(
                        db,
                        project_id=project.id,
                        owner_role=LedgerOwnerRole.CLIENT,
                        owner_id=project.client_id,
                        amount=split["client"],
                        reason=LedgerReason.client_refund,
                        details={"work_started": split["work_started"]},
                        now=now,
                    )
                ]
                if split["worker"] > 0:
                    entries.append(
                        self.ledger.append_entry(
                            db,
                            project_id=project.id,
                            owner_role=LedgerOwnerRole.WORKER,
                            owner_id=project.worker_id,
                            amount=split["worker"],
                            reason=LedgerReason.worker_penalty_share,
                            now=now,
                        )
                    )
                if split["intermediary"] > 0:
                    entries.append(
                        self.ledger.append_entry(
                            db,
                            project_id=project.id,
                            owner_role=LedgerOwnerRole.INTERMEDIARY,
                            owner_id=project.intermediary_id,
                            amount=split["intermediary"],
                            reason=LedgerReason.intermediary_penalty_share,
                            now=now,
                        )
                    )
                if split["platform"] > 0:
                    entries.append(
                        self.ledger.append_entry(
                            db,
                            project_id=project.id,
                            owner_role=LedgerOwnerRole.PLATFORM,
                            owner_id=None,
                            amount=split["platform"],
                            reason=LedgerReason.platform_fee,
                            details={"source": "refund_remainder"},
                            now=now,
                        )
                    )

                record.receipt_json = {
                    "breakdown": split,
                    "entries": [{"seq": e.seq, "entry_hash": e.entry_hash} for e in entries],
                }

                self.lifecycle.apply(
                    db,
                    project,
                    LifecycleEvent.refund,
                    actor_id=actor_id,
                    actor_role=actor_role,
                    metadata={"client_amount": split["client"]},
                    now=now,
                )
                queue_notification(
                    db,
                    recipient_id=project.client_id,
                    event_type="refund.issued",
                    payload={"project_id": str(project.id), "amount": split["client"]},
                )
        except IntegrityError:
            if self.get_record(db, project_id=project_id, kind=SettlementKind.refund) is None:
                raise
            raise self._already(db, project_id, SettlementKind.refund)

        logger.info(
            "refund issued",
            extra={"project_id": str(project_id), "client_amount": split["client"], "platform": split["platform"]},
        )
        return entries
