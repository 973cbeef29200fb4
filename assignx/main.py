import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from assignx.api.v1.router import v1_router
from assignx.core.config import get_settings
from assignx.core.errors import LifecycleError
from assignx.core.logging import configure_logging
from assignx.core.middleware import RequestIdMiddleware

logger = logging.getLogger(__name__)


async def lifecycle_error_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    logger.info(
        "request rejected",
        extra={
            "code": exc.code,
            "path": request.url.path,
            "request_id": getattr(request.state, "request_id", None),
        },
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
    )
    # Middleware: Request ID
    app.add_middleware(RequestIdMiddleware, header_name=settings.request_id_header)

    # Typed lifecycle failures -> {"code", "detail"} with the error's status
    app.add_exception_handler(LifecycleError, lifecycle_error_handler)

    # API v1
    app.include_router(v1_router, prefix=settings.api_prefix)

    return app


app = create_app()
