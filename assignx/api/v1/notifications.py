# assignx/api/v1/notifications.py
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from assignx.core.auth_deps import get_current_principal
from assignx.db.session import get_db
from assignx.policies.rbac import Principal
from assignx.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications")


def _resp(n) -> dict:
    return {
        "notificationId": str(n.id),
        "eventType": n.event_type,
        "projectId": str(n.project_id) if n.project_id else None,
        "payload": n.payload_json or {},
        "isRead": bool(n.is_read),
        "createdAtIso": n.created_at.isoformat() if n.created_at else None,
    }


@router.get("")
def list_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    rows = NotificationService().list_for_recipient(
        db, recipient_id=principal.id, unread_only=unread_only, limit=limit
    )
    return [_resp(n) for n in rows]


@router.post("/{notification_id}/read")
def mark_notification_read(
    notification_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return _resp(NotificationService().mark_read(db, recipient_id=principal.id, notification_id=notification_id))
