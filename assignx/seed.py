from sqlalchemy import select
from sqlalchemy.orm import Session

from assignx.db.base import Base
from assignx.db.session import SessionLocal, engine
from assignx.models.enums import ParticipantRole
from assignx.models.participant import Participant
from assignx.services.auth_service import register_participant

import assignx.models  # noqa: F401

DEMO_PASSWORD = "pass123"

DEMO_PARTICIPANTS = [
    ("client1", ParticipantRole.CLIENT, "Asha (client)"),
    ("client2", ParticipantRole.CLIENT, "Rohan (client)"),
    ("supervisor1", ParticipantRole.INTERMEDIARY, "Meera (supervisor)"),
    ("supervisor2", ParticipantRole.INTERMEDIARY, "Kabir (supervisor)"),
    ("doer1", ParticipantRole.WORKER, "Ishaan (doer)"),
    ("doer2", ParticipantRole.WORKER, "Priya (doer)"),
    ("doer3", ParticipantRole.WORKER, "Vikram (doer)"),
    ("admin", ParticipantRole.ADMIN, "Platform admin"),
]


def seed():
    Base.metadata.create_all(bind=engine)
    db: Session = SessionLocal()

    for username, role, display_name in DEMO_PARTICIPANTS:
        exists = db.execute(select(Participant.id).where(Participant.username == username)).first()
        if exists:
            continue
        register_participant(
            db,
            username=username,
            password=DEMO_PASSWORD,
            role=role,
            display_name=display_name,
        )

    db.close()


if __name__ == "__main__":
    seed()
