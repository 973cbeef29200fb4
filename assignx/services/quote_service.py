# assignx/services/quote_service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from assignx.core.clock import utcnow
from assignx.core.config import Settings, get_settings
from assignx.core.errors import InvalidAmount, NotFound, StaleQuote
from assignx.models.enums import LifecycleEvent, ParticipantRole, QuoteState
from assignx.models.project import Project
from assignx.models.quote import Quote
from assignx.policies.projects_policy import require_client, require_intermediary
from assignx.services.distribution import ShareRates, distribute
from assignx.services.lifecycle_service import LifecycleService, load_project
from assignx.services.notification_service import NotificationDispatcher, queue_notification
from assignx.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)

INTERMEDIARY = ParticipantRole.INTERMEDIARY.value


class QuoteService:
    def __init__(
        self,
        notifier: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
    ):
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.lifecycle = LifecycleService()

    # ─────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────

    def active_quote(self, db: Session, *, project_id: uuid.UUID) -> Optional[Quote]:
        return db.execute(
            select(Quote).where(Quote.project_id == project_id, Quote.state == QuoteState.active.value)
        ).scalar_one_or_none()

    def get_quote(self, db: Session, *, project_id: uuid.UUID, quote_id: uuid.UUID) -> Quote:
        q = db.execute(
            select(Quote).where(Quote.id == quote_id, Quote.project_id == project_id)
        ).scalar_one_or_none()
        if not q:
            raise NotFound("Quote not found.", quote_id=str(quote_id))
        return q

    def require_active(self, db: Session, *, project_id: uuid.UUID, quote_id: uuid.UUID) -> Quote:
        q = db.execute(
            select(Quote).where(Quote.id == quote_id, Quote.project_id == project_id)
        ).scalar_one_or_none()
        if q is None or q.state != QuoteState.active.value:
            raise StaleQuote(
                "Quote is no longer the active quote for this project.",
                quote_id=str(quote_id),
                state=q.state if q else None,
            )
        return q

    def list_quotes(self, db: Session, *, project_id: uuid.UUID) -> List[Quote]:
        return list(
            db.execute(select(Quote).where(Quote.project_id == project_id).order_by(Quote.issued_at.asc()))
            .scalars()
            .all()
        )

    def _supersede_active(self, db: Session, project_id: uuid.UUID, now: datetime) -> None:
        db.execute(
            update(Quote)
            .where(Quote.project_id == project_id, Quote.state == QuoteState.active.value)
            .values(state=QuoteState.superseded.value, responded_at=now)
            .execution_options(synchronize_session=False)
        )
        db.flush()

    # ─────────────────────────────────────────────
    # Intermediary actions
    # ─────────────────────────────────────────────

    def start_analysis(
        self, db: Session, *, project_id: uuid.UUID, intermediary_id: uuid.UUID, now: Optional[datetime] = None
    ) -> Project:
        now = now or utcnow()
        with unit_of_work(db, self.notifier):
            project = load_project(db, project_id, for_update=True)
            require_intermediary(project, intermediary_id)
            self.lifecycle.apply(
                db, project, LifecycleEvent.start_analysis, actor_id=intermediary_id, actor_role=INTERMEDIARY, now=now
            )
        db.refresh(project)
        return project

    def issue_quote(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        intermediary_id: uuid.UUID,
        amount: int,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Quote:
        now = now or utcnow()
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidAmount("Quote amount must be an integer number of paise.")
        if amount <= 0:
            raise InvalidAmount("Quote amount must be positive.", amount=amount)
        if amount > self.settings.max_quote_paise:
            raise InvalidAmount(
                "Quote amount exceeds the maximum allowed.",
                amount=amount,
                max_quote_paise=self.settings.max_quote_paise,
            )

        dist = distribute(amount, ShareRates.from_settings(self.settings))

        with unit_of_work(db, self.notifier):
            project = load_project(db, project_id, for_update=True)
            require_intermediary(project, intermediary_id)

            self.lifecycle.apply(
                db,
                project,
                LifecycleEvent.issue_quote,
                actor_id=intermediary_id,
                actor_role=INTERMEDIARY,
                notes=notes,
                metadata={"amount": amount},
                now=now,
            )
            self._supersede_active(db, project.id, now)

            quote = Quote(
                project_id=project.id,
                quoted_by=intermediary_id,
                amount=amount,
                worker_amount=dist.worker_payout,
                intermediary_amount=dist.intermediary_commission,
                platform_amount=dist.platform_fee,
                notes=notes,
                issued_at=now,
            )
            db.add(quote)
            db.flush()

            queue_notification(
                db,
                recipient_id=project.client_id,
                event_type="quote.issued",
                payload={"project_id": str(project.id), "quote_id": str(quote.id), "amount": amount},
            )

        logger.info("quote issued", extra={"project_id": str(project_id), "amount": amount})
        db.refresh(quote)
        return quote

    def reopen_quote(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        intermediary_id: uuid.UUID,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Project:
        """Back to `analyzing` before payment; the active quote is superseded."""
        now = now or utcnow()
        with unit_of_work(db, self.notifier):
            project = load_project(db, project_id, for_update=True)
            require_intermediary(project, intermediary_id)
            self.lifecycle.apply(
                db,
                project,
                LifecycleEvent.reopen_quote,
                actor_id=intermediary_id,
                actor_role=INTERMEDIARY,
                notes=reason,
                now=now,
            )
            self._supersede_active(db, project.id, now)
        db.refresh(project)
        return project

    # ─────────────────────────────────────────────
    # Client actions
    # ─────────────────────────────────────────────

    def reject_quote(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        client_id: uuid.UUID,
        quote_id: uuid.UUID,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Quote:
        now = now or utcnow()
        with unit_of_work(db, self.notifier):
            project = load_project(db, project_id, for_update=True)
            require_client(project, client_id)
            quote = self.require_active(db, project_id=project.id, quote_id=quote_id)

            self.lifecycle.apply(
                db,
                project,
                LifecycleEvent.reject_quote,
                actor_id=client_id,
                actor_role=ParticipantRole.CLIENT.value,
                notes=reason,
                metadata={"quote_id": str(quote.id)},
                now=now,
            )
            quote.state = QuoteState.rejected.value
            quote.rejection_reason = reason
            quote.responded_at = now
            db.flush()

        db.refresh(quote)
        return quote
