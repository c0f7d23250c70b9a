"""Authentication endpoints for agent accounts."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..security import create_token_pair, require_agent
from ..services import (
    AgentAlreadyExistsError,
    AgentService,
    InactiveAgentError,
    InvalidCredentialsError,
)

router = APIRouter(prefix="/auth", tags=["auth"])


def _auth_response(agent: models.Agent) -> schemas.AuthResponse:
    return schemas.AuthResponse(
        agent=schemas.AgentRead.model_validate(agent),
        tokens=schemas.TokenResponse(**create_token_pair(agent)),
    )


@router.post(
    "/register",
    response_model=schemas.AuthResponse,
    status_code=status.HTTP_201_CREATED,
)
def register_agent(
    payload: schemas.AgentRegisterRequest,
    db: Session = Depends(get_db),
) -> schemas.AuthResponse:
    """Create an agent account and sign it in."""

    try:
        agent = AgentService.register(db, payload)
    except AgentAlreadyExistsError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _auth_response(agent)


@router.post("/login", response_model=schemas.AuthResponse)
def login(
    payload: schemas.AgentLoginRequest,
    db: Session = Depends(get_db),
) -> schemas.AuthResponse:
    """Authenticate an agent and return a fresh token pair."""

    try:
        agent = AgentService.authenticate(db, payload.email, payload.password)
    except InvalidCredentialsError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    except InactiveAgentError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    return _auth_response(agent)


@router.post("/refresh", response_model=schemas.TokenResponse)
def refresh_tokens(
    payload: schemas.RefreshTokenRequest,
    db: Session = Depends(get_db),
) -> schemas.TokenResponse:
    try:
        agent = AgentService.resolve_refresh_token(db, payload.refresh_token)
    except (InvalidCredentialsError, InactiveAgentError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    return schemas.TokenResponse(**create_token_pair(agent))


@router.post("/change-password", status_code=status.HTTP_204_NO_CONTENT)
def change_password(
    payload: schemas.ChangePasswordRequest,
    agent: models.Agent = Depends(require_agent),
    db: Session = Depends(get_db),
) -> None:
    try:
        AgentService.change_password(db, agent, payload.old_password, payload.new_password)
    except InvalidCredentialsError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
