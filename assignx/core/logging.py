import logging
import sys
from contextvars import ContextVar
from typing import Optional

from pythonjsonlogger import jsonlogger
from assignx.core.config import Settings

# Set by RequestIdMiddleware for the life of one HTTP request.
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
project_id_var: ContextVar[Optional[str]] = ContextVar("project_id", default=None)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(request_id)s %(project_id)s %(message)s"


class RequestContextFilter(logging.Filter):
    """
    Stamps request_id / project_id onto every record so service logs can be
    joined to the HTTP request that caused them. Values passed explicitly
    via `extra=` win over the request context.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_var.get()
        if getattr(record, "project_id", None) is None:
            record.project_id = project_id_var.get()
        else:
            record.project_id = str(record.project_id)
        return True


def configure_logging(settings: Settings) -> None:
    """
    Structured logging (JSON) for the whole service.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    # clear handlers if reloaded
    root.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            LOG_FORMAT,
            rename_fields={"levelname": "level", "name": "logger"},
        )
    )
    root.addHandler(handler)

    # access lines are replaced by the middleware's "request completed"
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.db_echo else logging.WARNING)
