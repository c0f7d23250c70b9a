"""Router exposing WhatsApp conversations and the agent actions on them."""

from __future__ import annotations

import enum
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db, get_session_factory
from ..security import require_agent
from ..services import (
    ConversationService,
    ConversationSessionStore,
    ConversationStateError,
    ExportFormat,
    MessageDeliveryError,
    PaginationParams,
    SortOrder,
    WhatsAppClient,
    get_session_store,
    get_whatsapp_client,
)

router = APIRouter(dependencies=[Depends(require_agent)])


class ConversationSortField(str, enum.Enum):
    CREATED_AT = "created_at"
    LAST_ACTIVITY_AT = "last_activity_at"
    LEAD_SCORE = "lead_score"


def _get_owned_conversation(
    db: Session, agent: models.Agent, conversation_id: str, *, with_messages: bool = False
) -> models.Conversation:
    conversation = ConversationService.get_conversation(
        db, agent.id, conversation_id, with_messages=with_messages
    )
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    return conversation


def _conflict(exc: ConversationStateError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.get("", response_model=schemas.ConversationListResponse)
def list_conversations(
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: int = Query(10, ge=1, le=100, description="Maximum number of conversations per page"),
    sort_by: ConversationSortField = Query(ConversationSortField.LAST_ACTIVITY_AT),
    sort_order: SortOrder = Query(SortOrder.DESC),
    status_filter: Optional[str] = Query(
        None,
        alias="status",
        pattern="^(all|active|idle|waiting_agent|closed)$",
        description="Filter by conversation status",
    ),
    lead_quality: Optional[str] = Query(
        None, pattern="^(all|hot|warm|cold)$", description="Filter by lead quality"
    ),
    search: Optional[str] = Query(
        None, max_length=100, description="Customer name (case-insensitive) or phone number"
    ),
    agent: models.Agent = Depends(require_agent),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> schemas.ConversationListResponse:
    """Return the agent's conversations with pagination and optional filters."""

    result = ConversationService.list_conversations(
        session_factory,
        agent.id,
        PaginationParams(
            page=page, limit=limit, sort_by=sort_by.value, sort_order=sort_order
        ),
        status=(
            models.ConversationStatus(status_filter)
            if status_filter and status_filter != "all"
            else None
        ),
        lead_quality=(
            models.LeadQuality(lead_quality) if lead_quality and lead_quality != "all" else None
        ),
        search=search,
    )
    return schemas.ConversationListResponse.model_validate(result, from_attributes=True)


@router.get("/{conversation_id}", response_model=schemas.ConversationDetail)
def get_conversation(
    conversation_id: str,
    agent: models.Agent = Depends(require_agent),
    db: Session = Depends(get_db),
    store: Optional[ConversationSessionStore] = Depends(get_session_store),
) -> schemas.ConversationDetail:
    """Return a conversation with its messages and the live session, if any."""

    conversation = _get_owned_conversation(db, agent, conversation_id, with_messages=True)
    detail = schemas.ConversationDetail.model_validate(conversation)
    summary = ConversationService.live_session_summary(store, conversation)
    if summary is not None:
        detail.active_session = schemas.LiveSessionSummary(**summary)
    return detail


@router.post("/{conversation_id}/takeover", response_model=schemas.ConversationSummary)
def takeover_conversation(
    conversation_id: str,
    agent: models.Agent = Depends(require_agent),
    db: Session = Depends(get_db),
    store: Optional[ConversationSessionStore] = Depends(get_session_store),
) -> schemas.ConversationSummary:
    """Hand the conversation over from the assistant to the agent."""

    conversation = _get_owned_conversation(db, agent, conversation_id)
    try:
        return ConversationService.takeover(db, conversation, agent, store)
    except ConversationStateError as exc:
        raise _conflict(exc) from exc


@router.post("/{conversation_id}/release", response_model=schemas.ConversationSummary)
def release_conversation(
    conversation_id: str,
    agent: models.Agent = Depends(require_agent),
    db: Session = Depends(get_db),
    store: Optional[ConversationSessionStore] = Depends(get_session_store),
) -> schemas.ConversationSummary:
    """Give the conversation back to the assistant."""

    conversation = _get_owned_conversation(db, agent, conversation_id)
    try:
        return ConversationService.release(db, conversation, store)
    except ConversationStateError as exc:
        raise _conflict(exc) from exc


@router.post("/{conversation_id}/close", response_model=schemas.ConversationSummary)
def close_conversation(
    conversation_id: str,
    payload: Optional[schemas.ConversationCloseRequest] = None,
    agent: models.Agent = Depends(require_agent),
    db: Session = Depends(get_db),
    store: Optional[ConversationSessionStore] = Depends(get_session_store),
) -> schemas.ConversationSummary:
    conversation = _get_owned_conversation(db, agent, conversation_id)
    reason = payload.reason if payload is not None else None
    try:
        return ConversationService.close(db, conversation, reason, store)
    except ConversationStateError as exc:
        raise _conflict(exc) from exc


@router.post(
    "/{conversation_id}/messages",
    response_model=schemas.MessageRead,
    status_code=status.HTTP_201_CREATED,
)
def send_message(
    conversation_id: str,
    payload: schemas.AgentMessageCreate,
    agent: models.Agent = Depends(require_agent),
    db: Session = Depends(get_db),
    client: WhatsAppClient = Depends(get_whatsapp_client),
) -> schemas.MessageRead:
    """Send a WhatsApp message to the customer on behalf of the agent."""

    conversation = _get_owned_conversation(db, agent, conversation_id)
    try:
        return ConversationService.send_agent_message(db, conversation, payload.content, client)
    except ConversationStateError as exc:
        raise _conflict(exc) from exc
    except MessageDeliveryError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"WhatsApp delivery failed: {exc}",
        ) from exc


@router.get("/{conversation_id}/export")
def export_conversation(
    conversation_id: str,
    export_format: ExportFormat = Query(ExportFormat.JSON, alias="format"),
    agent: models.Agent = Depends(require_agent),
    db: Session = Depends(get_db),
):
    """Download the conversation transcript as JSON, plain text or CSV."""

    conversation = _get_owned_conversation(db, agent, conversation_id, with_messages=True)
    if export_format is ExportFormat.JSON:
        return schemas.ConversationDetail.model_validate(conversation)

    export = ConversationService.export_conversation(conversation, export_format)
    headers = {
        "Content-Disposition": f"attachment; filename={export.filename}",
        "Cache-Control": "no-store",
    }
    return Response(content=export.content, media_type=export.media_type, headers=headers)
