# assignx/core/errors.py
from __future__ import annotations

from typing import Any, Optional


class LifecycleError(ValueError):
    """
    Base for every typed failure raised by the lifecycle services.

    Routers map `status_code` / `code` straight onto the HTTP response so the
    caller can show the specific reason (e.g. "Doer at capacity").
    """

    code = "lifecycle_error"
    status_code = 400

    def __init__(self, detail: str, **context: Any):
        super().__init__(detail)
        self.detail = detail
        self.context = context

    def to_dict(self) -> dict:
        return {"code": self.code, "detail": self.detail}


class NotFound(LifecycleError):
    code = "not_found"
    status_code = 404


class NotPermitted(LifecycleError):
    code = "not_permitted"
    status_code = 403


class IllegalTransition(LifecycleError):
    code = "illegal_transition"
    status_code = 409

    def __init__(self, current: str, event: str, detail: Optional[str] = None):
        super().__init__(
            detail or f"Event '{event}' is not allowed from status '{current}'.",
            current=current,
            event=event,
        )
        self.current = current
        self.event = event


class ConcurrentModification(LifecycleError):
    code = "concurrent_modification"
    status_code = 409


class StaleQuote(LifecycleError):
    code = "stale_quote"
    status_code = 409


class AlreadyPaid(LifecycleError):
    """Carries the stored capture result so callers can treat it as a replay."""

    code = "already_paid"
    status_code = 409

    def __init__(self, detail: str, existing: Any = None):
        super().__init__(detail)
        self.existing = existing


class AlreadySettled(LifecycleError):
    """Carries the ledger entries written by the first settlement."""

    code = "already_settled"
    status_code = 409

    def __init__(self, detail: str, existing: Any = None):
        super().__init__(detail)
        self.existing = existing


class PaymentVerificationFailed(LifecycleError):
    code = "payment_verification_failed"
    status_code = 402


class WorkerUnavailable(LifecycleError):
    code = "worker_unavailable"
    status_code = 409


class WorkerAtCapacity(LifecycleError):
    code = "worker_at_capacity"
    status_code = 409


class WorkerBlacklisted(LifecycleError):
    code = "worker_blacklisted"
    status_code = 409


class NoDeliverables(LifecycleError):
    code = "no_deliverables"
    status_code = 422


class InvalidAmount(LifecycleError):
    code = "invalid_amount"
    status_code = 422


class TimerAlreadyArmed(LifecycleError):
    code = "timer_already_armed"
    status_code = 409


class InvalidInput(LifecycleError):
    code = "invalid_input"
    status_code = 422
