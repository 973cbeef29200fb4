# assignx/services/notification_service.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from assignx.core.errors import NotFound
from assignx.models.notification import Notification

logger = logging.getLogger(__name__)

OUTBOX_KEY = "assignx.outbox"


class NotificationDispatcher(Protocol):
    def notify(self, recipient_id: uuid.UUID, event_type: str, payload: Dict[str, Any]) -> None:
        ...


@dataclass
class PendingNotification:
    recipient_id: uuid.UUID
    event_type: str
    payload: Dict[str, Any] = field(default_factory=dict)


class DatabaseNotificationDispatcher:
    """
    Writes one `Notification` row per recipient. Rows are committed by
    `dispatch_pending` once every queued message has been handed over.
    """

    def __init__(self, db: Session):
        self.db = db

    def notify(self, recipient_id: uuid.UUID, event_type: str, payload: Dict[str, Any]) -> None:
        pid = payload.get("project_id")
        self.db.add(
            Notification(
                recipient_id=recipient_id,
                project_id=uuid.UUID(str(pid)) if pid else None,
                event_type=event_type,
                payload_json=payload,
            )
        )


def queue_notification(
    db: Session,
    *,
    recipient_id: Optional[uuid.UUID],
    event_type: str,
    payload: Dict[str, Any],
) -> None:
    """
    Park a message on the session. Nothing leaves the process until the
    surrounding unit of work has committed.
    """
    if recipient_id is None:
        return
    db.info.setdefault(OUTBOX_KEY, []).append(
        PendingNotification(recipient_id=recipient_id, event_type=event_type, payload=payload)
    )


def discard_pending(db: Session) -> None:
    db.info.pop(OUTBOX_KEY, None)


def dispatch_pending(db: Session, dispatcher: Optional[NotificationDispatcher] = None) -> int:
    """
    Hand queued messages to the dispatcher. Failures are logged and dropped:
    the operation that produced them has already committed.
    """
    pending: List[PendingNotification] = db.info.pop(OUTBOX_KEY, [])
    if not pending:
        return 0

    dispatcher = dispatcher or DatabaseNotificationDispatcher(db)
    sent = 0
    for n in pending:
        try:
            dispatcher.notify(n.recipient_id, n.event_type, n.payload)
            sent += 1
        except Exception:
            logger.exception(
                "notification dispatch failed",
                extra={"recipient_id": str(n.recipient_id), "event_type": n.event_type},
            )

    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("notification commit failed", extra={"count": len(pending)})
        return 0
    return sent


class NotificationService:
    def list_for_recipient(
        self,
        db: Session,
        *,
        recipient_id: uuid.UUID,
        unread_only: bool = False,
        limit: int = 100,
    ) -> List[Notification]:
        stmt = select(Notification).where(Notification.recipient_id == recipient_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc()).limit(limit)
        return list(db.execute(stmt).scalars().all())

    def mark_read(self, db: Session, *, recipient_id: uuid.UUID, notification_id: uuid.UUID) -> Notification:
        row = db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.recipient_id == recipient_id,
            )
        ).scalar_one_or_none()
        if not row:
            raise NotFound("Notification not found.")
        row.is_read = True
        db.commit()
        db.refresh(row)
        return row
