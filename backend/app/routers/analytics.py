"""Dashboard metrics scoped to the signed-in agent."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..security import require_agent
from ..services import AnalyticsService, GroupBy

router = APIRouter(dependencies=[Depends(require_agent)])


def _validate_range(start_date: Optional[date], end_date: Optional[date]) -> None:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date must be on or before end_date",
        )


@router.get("/overview", response_model=schemas.AnalyticsOverview)
def get_overview(
    start_date: Optional[date] = Query(None, description="Inclusive start date (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Inclusive end date (YYYY-MM-DD)"),
    agent: models.Agent = Depends(require_agent),
    db: Session = Depends(get_db),
) -> schemas.AnalyticsOverview:
    """Return headline totals for conversations, properties and leads."""

    _validate_range(start_date, end_date)
    return AnalyticsService.overview(db, agent.id, start_date, end_date)


@router.get("/conversations", response_model=schemas.ConversationAnalytics)
def get_conversation_analytics(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    group_by: GroupBy = Query(GroupBy.DAY, description="Bucket size of the time series"),
    agent: models.Agent = Depends(require_agent),
    db: Session = Depends(get_db),
) -> schemas.ConversationAnalytics:
    """Return started/closed/escalated conversations per period."""

    _validate_range(start_date, end_date)
    return AnalyticsService.conversation_analytics(db, agent.id, group_by, start_date, end_date)


@router.get("/leads", response_model=schemas.LeadDistribution)
def get_lead_analytics(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    agent: models.Agent = Depends(require_agent),
    db: Session = Depends(get_db),
) -> schemas.LeadDistribution:
    _validate_range(start_date, end_date)
    return AnalyticsService.lead_distribution(db, agent.id, start_date, end_date)


@router.get("/properties", response_model=schemas.PropertyAnalytics)
def get_property_analytics(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    agent: models.Agent = Depends(require_agent),
    db: Session = Depends(get_db),
) -> schemas.PropertyAnalytics:
    _validate_range(start_date, end_date)
    return AnalyticsService.property_analytics(db, agent.id, start_date, end_date)
