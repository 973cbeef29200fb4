import logging
import re
import time
import uuid
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from assignx.core.logging import project_id_var, request_id_var

logger = logging.getLogger("assignx.http")

_PROJECT_PATH = re.compile(r"/projects/([0-9a-fA-F-]{36})(?:/|$)")


def project_id_from_path(path: str) -> Optional[str]:
    m = _PROJECT_PATH.search(path)
    return m.group(1).lower() if m else None


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Gives every request a request-id (echoed in the response headers) and
    binds it, plus the project id from /projects/{id}/... paths, to the
    logging context. Emits one "request completed" line per request.
    """

    def __init__(self, app, header_name: str = "X-Request-Id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.request_id = rid

        rid_token = request_id_var.set(rid)
        pid_token = project_id_var.set(project_id_from_path(request.url.path))
        started = time.perf_counter()
        try:
            response = await call_next(request)
            logger.info(
                "request completed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 1),
                },
            )
        finally:
            project_id_var.reset(pid_token)
            request_id_var.reset(rid_token)

        response.headers[self.header_name] = rid
        return response
