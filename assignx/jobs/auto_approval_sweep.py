"""
Cron entry point for the 72h auto-approval.

    python -m assignx.jobs.auto_approval_sweep

Fires every armed timer whose deadline has passed. Running it twice, or
alongside the in-process backend, is harmless: each fire re-checks the row.
"""
import logging

from assignx.core.config import get_settings
from assignx.core.logging import configure_logging
from assignx.db.session import session_scope
from assignx.services.timer_service import TimerService

logger = logging.getLogger(__name__)


def main() -> int:
    settings = get_settings()
    configure_logging(settings)

    with session_scope() as db:
        fired = TimerService(settings=settings).fire_due(db)

    logger.info("auto-approval sweep job done", extra={"fired": len(fired)})
    return len(fired)


if __name__ == "__main__":
    main()
