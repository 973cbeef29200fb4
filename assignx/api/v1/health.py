from fastapi import APIRouter, Request

from assignx.core.config import get_settings

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    rid = getattr(request.state, "request_id", None)
    return {"status": "ok", "request_id": rid, "timer_backend": get_settings().timer_backend}
