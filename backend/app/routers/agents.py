"""Profile, settings and statistics of the signed-in agent."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..security import require_agent
from ..services import AgentAlreadyExistsError, AgentService

router = APIRouter(dependencies=[Depends(require_agent)])


@router.get("/profile", response_model=schemas.AgentRead)
def get_profile(agent: models.Agent = Depends(require_agent)) -> schemas.AgentRead:
    return agent


@router.put("/profile", response_model=schemas.AgentRead)
def update_profile(
    payload: schemas.AgentProfileUpdate,
    agent: models.Agent = Depends(require_agent),
    db: Session = Depends(get_db),
) -> schemas.AgentRead:
    """Update contact details of the current agent."""

    try:
        return AgentService.update_profile(db, agent, payload)
    except AgentAlreadyExistsError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


@router.put("/settings", response_model=schemas.AgentRead)
def update_settings(
    payload: schemas.AgentSettingsUpdate,
    agent: models.Agent = Depends(require_agent),
    db: Session = Depends(get_db),
) -> schemas.AgentRead:
    """Merge the provided keys into the agent's settings object."""

    return AgentService.merge_settings(db, agent, payload.settings)


@router.get("/stats", response_model=schemas.AgentStats)
def get_stats(
    agent: models.Agent = Depends(require_agent),
    db: Session = Depends(get_db),
) -> schemas.AgentStats:
    return AgentService.get_stats(db, agent)
