# assignx/services/payment_service.py
from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from assignx.core.clock import utcnow
from assignx.core.config import Settings, get_settings
from assignx.core.errors import AlreadyPaid, PaymentVerificationFailed
from assignx.models.enums import (
    LedgerOwnerRole,
    LedgerReason,
    LifecycleEvent,
    ParticipantRole,
    ProjectStatus,
    QuoteState,
)
from assignx.models.payment_capture import PaymentCapture
from assignx.policies.projects_policy import require_client
from assignx.services.audit_service import AuditAction, audit_event
from assignx.services.distribution import ShareRates, distribute
from assignx.services.ledger_service import LedgerService
from assignx.services.lifecycle_service import LifecycleService, load_project
from assignx.services.notification_service import NotificationDispatcher, queue_notification
from assignx.services.payment_gateway import PaymentGateway, get_payment_gateway
from assignx.services.quote_service import QuoteService
from assignx.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)

CLIENT = ParticipantRole.CLIENT.value


@dataclass(frozen=True)
class PaymentOrder:
    project_id: str
    quote_id: str
    order_ref: str
    amount: int
    key_id: str

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PaymentService:
    """
    The money gate: nothing past `paid` happens without a verified capture.

    A capture is keyed by (project_id, quote_id). Replaying the same
    payment reference returns the stored preview; anything else against an
    already captured quote is AlreadyPaid.
    """

    def __init__(
        self,
        gateway: Optional[PaymentGateway] = None,
        notifier: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
    ):
        self.gateway = gateway or get_payment_gateway()
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.lifecycle = LifecycleService()
        self.ledger = LedgerService()
        self.quotes = QuoteService(notifier=notifier, settings=self.settings)

    def get_capture(self, db: Session, *, project_id: uuid.UUID, quote_id: uuid.UUID) -> Optional[PaymentCapture]:
        return db.execute(
            select(PaymentCapture).where(
                PaymentCapture.project_id == project_id,
                PaymentCapture.quote_id == quote_id,
            )
        ).scalar_one_or_none()

    def _project_capture(self, db: Session, project_id: uuid.UUID) -> Optional[PaymentCapture]:
        return db.execute(
            select(PaymentCapture).where(PaymentCapture.project_id == project_id).limit(1)
        ).scalar_one_or_none()

    def _replay(self, capture: PaymentCapture, payment_reference: str) -> Dict[str, Any]:
        if capture.payment_reference == payment_reference:
            logger.info(
                "payment capture replayed",
                extra={"project_id": str(capture.project_id), "payment_reference": payment_reference},
            )
            return dict(capture.preview_json)
        raise AlreadyPaid("Project has already been paid.", existing=dict(capture.preview_json))

    # ─────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────

    def initiate_payment(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        client_id: uuid.UUID,
        quote_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> PaymentOrder:
        now = now or utcnow()
        with unit_of_work(db, self.notifier):
            project = load_project(db, project_id, for_update=True)
            require_client(project, client_id)
            quote = self.quotes.require_active(db, project_id=project.id, quote_id=quote_id)

            # A retried checkout in payment_pending just gets a fresh order.
            if project.status_enum != ProjectStatus.payment_pending:
                self.lifecycle.apply(
                    db,
                    project,
                    LifecycleEvent.initiate_payment,
                    actor_id=client_id,
                    actor_role=CLIENT,
                    metadata={"quote_id": str(quote.id)},
                    now=now,
                )

            order_ref = self.gateway.create_order(quote.amount, receipt=project.project_number)
            quote.order_ref = order_ref
            db.flush()

            order = PaymentOrder(
                project_id=str(project.id),
                quote_id=str(quote.id),
                order_ref=order_ref,
                amount=quote.amount,
                key_id=self.settings.payment_gateway_key_id,
            )
        return order

    def capture_payment(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        quote_id: uuid.UUID,
        payment_reference: str,
        order_ref: str,
        signature: str,
        actor_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Returns the SettlementPreview (how the quote will be split once
        released). Exactly one client debit is ever written per quote.
        """
        now = now or utcnow()
        try:
            with unit_of_work(db, self.notifier):
                preview = self._capture_in_tx(
                    db,
                    project_id=project_id,
                    quote_id=quote_id,
                    payment_reference=payment_reference,
                    order_ref=order_ref,
                    signature=signature,
                    actor_id=actor_id,
                    now=now,
                )
        except IntegrityError:
            # Lost the race: the winner's capture row is now visible.
            existing = self.get_capture(db, project_id=project_id, quote_id=quote_id)
            if existing is None:
                raise
            return self._replay(existing, payment_reference)
        except PaymentVerificationFailed:
            audit_event(
                db,
                request=None,
                actor_participant_id=str(actor_id) if actor_id else "gateway",
                actor_role=CLIENT if actor_id else "GATEWAY",
                project_id=project_id,
                action=AuditAction.PAYMENT_VERIFICATION_FAILED,
                status="rejected",
                payload_summary={
                    "quote_id": str(quote_id),
                    "order_ref": order_ref,
                    "payment_reference": payment_reference,
                },
            )
            logger.warning(
                "payment verification failed",
                extra={"project_id": str(project_id), "quote_id": str(quote_id)},
            )
            raise
        return preview

    def _capture_in_tx(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        quote_id: uuid.UUID,
        payment_reference: str,
        order_ref: str,
        signature: str,
        actor_id: Optional[uuid.UUID],
        now: datetime,
    ) -> Dict[str, Any]:
        project = load_project(db, project_id, for_update=True)
        if actor_id is not None:
            require_client(project, actor_id)

        existing = self.get_capture(db, project_id=project.id, quote_id=quote_id)
        if existing is not None:
            return self._replay(existing, payment_reference)
        if project.is_paid:
            prior = self._project_capture(db, project.id)
            raise AlreadyPaid(
                "Project has already been paid.",
                existing=dict(prior.preview_json) if prior else None,
            )

        quote = self.quotes.require_active(db, project_id=project.id, quote_id=quote_id)

        if quote.order_ref and order_ref != quote.order_ref:
            raise PaymentVerificationFailed("Order reference does not match the issued order.")
        if not self.gateway.verify_payment(order_ref, payment_reference, signature):
            raise PaymentVerificationFailed("Payment signature could not be verified.")

        if project.status_enum == ProjectStatus.quoted:
            self.lifecycle.apply(
                db,
                project,
                LifecycleEvent.initiate_payment,
                actor_id=actor_id,
                actor_role=CLIENT,
                metadata={"quote_id": str(quote.id)},
                now=now,
            )
        self.lifecycle.apply(
            db,
            project,
            LifecycleEvent.capture_payment,
            actor_id=actor_id,
            actor_role=CLIENT,
            metadata={"quote_id": str(quote.id), "payment_reference": payment_reference},
            now=now,
        )

        dist = distribute(quote.amount, ShareRates.from_settings(self.settings))
        project.client_quote = dist.client_quote
        project.worker_payout = dist.worker_payout
        project.intermediary_commission = dist.intermediary_commission
        project.platform_fee = dist.platform_fee
        project.is_paid = True

        quote.state = QuoteState.accepted.value
        quote.responded_at = now

        preview = {
            "project_id": str(project.id),
            "quote_id": str(quote.id),
            "payment_reference": payment_reference,
            "order_ref": order_ref,
            "captured_at": now.isoformat(),
            **dist.as_dict(),
        }

        db.add(
            PaymentCapture(
                project_id=project.id,
                quote_id=quote.id,
                order_ref=order_ref,
                payment_reference=payment_reference,
                amount=quote.amount,
                preview_json=preview,
                captured_at=now,
            )
        )
        db.flush()

        self.ledger.append_entry(
            db,
            project_id=project.id,
            owner_role=LedgerOwnerRole.CLIENT,
            owner_id=project.client_id,
            amount=-dist.client_quote,
            reason=LedgerReason.client_payment,
            details={"quote_id": str(quote.id), "payment_reference": payment_reference},
            now=now,
        )

        queue_notification(
            db,
            recipient_id=project.intermediary_id,
            event_type="payment.captured",
            payload={"project_id": str(project.id), "amount": dist.client_quote},
        )
        logger.info(
            "payment captured",
            extra={"project_id": str(project.id), "quote_id": str(quote.id), "amount": dist.client_quote},
        )
        return preview
