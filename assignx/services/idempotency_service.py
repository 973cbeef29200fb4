# assignx/services/idempotency_service.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from assignx.core.errors import LifecycleError
from assignx.core.hashing import payload_hash
from assignx.models.idempotency_key import IdempotencyKeyRecord

logger = logging.getLogger(__name__)


class IdempotencyConflict(LifecycleError):
    code = "idempotency_conflict"
    status_code = 409


@dataclass(frozen=True)
class IdempotencyScope:
    """Who retried what: one stored response per scope."""

    project_id: uuid.UUID
    participant_id: str
    endpoint_key: str
    idem_key: str


@dataclass(frozen=True)
class IdempotentCall:
    scope: IdempotencyScope
    request_hash: str
    replay_json: Optional[Dict[str, Any]] = None
    replay_status: Optional[int] = None

    @property
    def is_replay(self) -> bool:
        return self.replay_json is not None


class IdempotencyService:
    """
    Retry protection for the money endpoints (capture, settlement, refund).

    The first successful response under a key is stored; a retry with the same
    body gets it back verbatim, a retry with a different body is a conflict.
    The services underneath are idempotent on their own, this only keeps the
    HTTP answer stable for clients that retry blindly.
    """

    def lookup(self, db: Session, scope: IdempotencyScope) -> Optional[IdempotencyKeyRecord]:
        return db.execute(
            select(IdempotencyKeyRecord).where(
                IdempotencyKeyRecord.project_id == scope.project_id,
                IdempotencyKeyRecord.participant_id == scope.participant_id,
                IdempotencyKeyRecord.endpoint_key == scope.endpoint_key,
                IdempotencyKeyRecord.idem_key == scope.idem_key,
            )
        ).scalar_one_or_none()

    def begin(self, db: Session, scope: IdempotencyScope, request_payload: Dict[str, Any]) -> IdempotentCall:
        request_hash = payload_hash(request_payload)
        stored = self.lookup(db, scope)
        if stored is None:
            return IdempotentCall(scope=scope, request_hash=request_hash)

        if stored.request_hash != request_hash:
            logger.warning(
                "idempotency key reused with a different body",
                extra={"project_id": str(scope.project_id), "endpoint": scope.endpoint_key},
            )
            raise IdempotencyConflict("Idempotency-Key reuse with different payload is not allowed.")

        logger.info(
            "idempotent replay",
            extra={"project_id": str(scope.project_id), "endpoint": scope.endpoint_key},
        )
        return IdempotentCall(
            scope=scope,
            request_hash=request_hash,
            replay_json=dict(stored.response_json),
            replay_status=int(stored.response_status),
        )

    def remember(self, db: Session, call: IdempotentCall, body: Dict[str, Any], status: int = 200) -> None:
        # First writer wins; a concurrent retry's answer is identical anyway.
        if call.is_replay or self.lookup(db, call.scope) is not None:
            return

        scope = call.scope
        db.add(
            IdempotencyKeyRecord(
                project_id=scope.project_id,
                participant_id=scope.participant_id,
                endpoint_key=scope.endpoint_key,
                idem_key=scope.idem_key,
                request_hash=call.request_hash,
                response_status=str(status),
                response_json=body,
            )
        )
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
