from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from assignx.core.auth_deps import get_current_principal
from assignx.core.deps import parse_uuid
from assignx.db.session import get_db
from assignx.policies.rbac import Principal
from assignx.services.idempotency_service import IdempotencyConflict, IdempotencyScope, IdempotencyService

IDEMPOTENCY_HEADER = "Idempotency-Key"
MAX_KEY_LENGTH = 128


async def require_idempotency_key(request: Request) -> str:
    key = (request.headers.get(IDEMPOTENCY_HEADER) or "").strip()
    if not key:
        raise HTTPException(status_code=400, detail=f"Missing {IDEMPOTENCY_HEADER} header.")
    if len(key) > MAX_KEY_LENGTH:
        raise HTTPException(status_code=400, detail=f"{IDEMPOTENCY_HEADER} too long.")
    return key


async def idempotency_guard(
    request: Request,
    idem_key: str = Depends(require_idempotency_key),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> str:
    """
    For money-moving POSTs under /projects/{project_id}/...

    Leaves an IdempotentCall on request.state.idempotent_call; handlers use
    replay_or_none() first and remember_response() once they succeed.
    """
    project_id = parse_uuid(request.path_params.get("project_id"), "project_id")

    body = await request.body()
    try:
        payload = await request.json() if body else {}
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body must be JSON.")

    scope = IdempotencyScope(
        project_id=project_id,
        participant_id=principal.participant_id,
        endpoint_key=f"{request.method}:{request.url.path}",
        idem_key=idem_key,
    )
    try:
        call = IdempotencyService().begin(
            db, scope, payload if isinstance(payload, dict) else {"_": payload}
        )
    except IdempotencyConflict as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)

    request.state.idempotent_call = call
    return idem_key


def replay_or_none(request: Request) -> Optional[JSONResponse]:
    call = getattr(request.state, "idempotent_call", None)
    if call is None or not call.is_replay:
        return None
    return JSONResponse(status_code=call.replay_status or 200, content=call.replay_json)


def remember_response(db: Session, request: Request, body: Dict[str, Any], status: int = 200) -> None:
    IdempotencyService().remember(db, request.state.idempotent_call, body, status=status)
