# assignx/services/auth_service.py
from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from assignx.core.errors import InvalidInput
from assignx.core.security import hash_password, verify_password
from assignx.models.enums import ParticipantRole
from assignx.models.participant import Participant
from assignx.models.worker_profile import WorkerProfile
from assignx.policies.rbac import Principal

logger = logging.getLogger(__name__)


def _principal(p: Participant) -> Principal:
    return Principal(
        participant_id=str(p.id),
        role=ParticipantRole(p.role),
        display_name=p.display_name,
    )


def authenticate(db: Session, username: str, password: str) -> Principal | None:
    p = db.execute(
        select(Participant).where(
            Participant.username == username,
            Participant.is_active.is_(True),
        )
    ).scalar_one_or_none()

    if not p:
        return None

    if not verify_password(password, p.password_hash):
        logger.warning("login rejected", extra={"username": username})
        return None

    return _principal(p)


def register_participant(
    db: Session,
    *,
    username: str,
    password: str,
    role: ParticipantRole,
    display_name: str,
    max_concurrent_projects: int = 3,
    participant_id: Optional[uuid.UUID] = None,
) -> Participant:
    """
    Create an account. Workers get their WorkerProfile in the same commit
    so they are assignable immediately.
    """
    p = Participant(
        id=participant_id or uuid.uuid4(),
        role=ParticipantRole(role).value,
        display_name=display_name,
        username=username,
        password_hash=hash_password(password),
    )
    db.add(p)
    if p.role == ParticipantRole.WORKER.value:
        db.add(WorkerProfile(participant_id=p.id, max_concurrent_projects=max_concurrent_projects))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise InvalidInput("Username is already taken.", username=username)
    db.refresh(p)
    return p


def overwrite_password(db: Session, username: str, new_password: str) -> bool:
    p = db.execute(
        select(Participant).where(
            Participant.username == username,
            Participant.is_active.is_(True),
        )
    ).scalar_one_or_none()

    if not p:
        return False

    p.password_hash = hash_password(new_password)
    db.commit()
    return True
