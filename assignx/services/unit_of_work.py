from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from assignx.core.errors import ConcurrentModification
from assignx.services.notification_service import (
    NotificationDispatcher,
    discard_pending,
    dispatch_pending,
)

logger = logging.getLogger(__name__)

AFTER_COMMIT_KEY = "assignx.after_commit"


def after_commit(db: Session, fn: Callable[[], None]) -> None:
    """Run `fn` once the current unit of work commits; dropped on rollback."""
    db.info.setdefault(AFTER_COMMIT_KEY, []).append(fn)


@contextmanager
def unit_of_work(db: Session, notifier: Optional[NotificationDispatcher] = None) -> Iterator[Session]:
    """
    One commit per public operation.

    Any exception rolls the whole operation back, so the project row and every
    child row it touched are left exactly as they were. Queued notifications and
    after-commit hooks only run once the commit has succeeded.
    """
    try:
        yield db
        db.commit()
    except StaleDataError:
        db.rollback()
        _drop_deferred(db)
        raise ConcurrentModification("Project was modified concurrently; reload and retry.")
    except BaseException:
        db.rollback()
        _drop_deferred(db)
        raise

    hooks: List[Callable[[], None]] = db.info.pop(AFTER_COMMIT_KEY, [])
    for fn in hooks:
        try:
            fn()
        except Exception:
            logger.exception("after-commit hook failed")

    dispatch_pending(db, notifier)


def _drop_deferred(db: Session) -> None:
    db.info.pop(AFTER_COMMIT_KEY, None)
    discard_pending(db)
