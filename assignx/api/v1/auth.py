# assignx/api/v1/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from assignx.core.auth_deps import get_current_principal, require_roles
from assignx.core.security import token_for
from assignx.db.session import get_db
from assignx.models.enums import ParticipantRole
from assignx.schemas.auth import LoginRequest, MeResponse, ResetPasswordRequest, TokenResponse
from assignx.services.auth_service import authenticate, overwrite_password

router = APIRouter(prefix="/auth")


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    principal = authenticate(db, req.username, req.password)
    if not principal:
        raise HTTPException(status_code=401, detail="Invalid credentials.")
    return TokenResponse(access_token=token_for(principal))


@router.post("/reset-password", dependencies=[Depends(require_roles(ParticipantRole.ADMIN))])
def reset_password(req: ResetPasswordRequest, db: Session = Depends(get_db)):
    ok = overwrite_password(db, req.username, req.new_password)
    if not ok:
        raise HTTPException(status_code=404, detail="User not found")

    return {"status": "password overwritten"}


@router.get("/me", response_model=MeResponse)
def get_me(principal=Depends(get_current_principal)):
    return {
        "participant_id": principal.participant_id,
        "role": principal.role.value,
        "display_name": principal.display_name,
    }
