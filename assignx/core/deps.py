# /assignx/core/deps.py
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import HTTPException

from assignx.services.notification_service import NotificationDispatcher
from assignx.services.payment_gateway import PaymentGateway, get_payment_gateway
from assignx.services.timer_ports import TimerPort, get_timer_port

# Collaborators are resolved through FastAPI dependencies so tests can swap
# them with app.dependency_overrides.


def payment_gateway_dep() -> PaymentGateway:
    return get_payment_gateway()


def timer_port_dep() -> TimerPort:
    return get_timer_port()


def notifier_dep() -> Optional[NotificationDispatcher]:
    # None means "write Notification rows on the request's session".
    return None


def parse_uuid(raw: str, name: str = "id") -> uuid.UUID:
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{name} must be UUID.")
