"""Business logic for customer conversations handled by the assistant."""

from __future__ import annotations

import csv
import enum
import io
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import redis
from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session, selectinload

from .. import models
from ..database import session_scope
from ..db_types import ensure_utc
from ..formatting import format_phone_number
from .job_monitor import JOB_IDLE_MONITOR, JobMonitor
from .pagination import PaginatedResult, PaginationParams, SqlAlchemyListingStore, paginate
from .sessions import (
    ConversationSessionStore,
    SessionNotFoundError,
    SessionState,
    SessionStoreError,
)
from .whatsapp import WhatsAppClient, WhatsAppError

LOGGER = logging.getLogger(__name__)

CONVERSATION_SORT_FIELDS = {
    "created_at": models.Conversation.created_at,
    "last_activity_at": models.Conversation.last_activity_at,
    "lead_score": models.Conversation.lead_score,
}
LIVE_STATUSES = frozenset(
    {models.ConversationStatus.ACTIVE, models.ConversationStatus.WAITING_AGENT}
)

IDLE_TIMEOUT_MINUTES_ENV = "IDLE_TIMEOUT_MINUTES"
IDLE_CHECK_INTERVAL_MINUTES_ENV = "IDLE_CHECK_INTERVAL_MINUTES"
DEFAULT_IDLE_TIMEOUT_MINUTES = 30
DEFAULT_IDLE_CHECK_INTERVAL_MINUTES = 5


class ExportFormat(str, enum.Enum):
    JSON = "json"
    TEXT = "text"
    CSV = "csv"


class ConversationServiceError(RuntimeError):
    """Base error for conversation operations."""


class ConversationStateError(ConversationServiceError):
    """Raised when an action is not allowed in the conversation's current status."""


class MessageDeliveryError(ConversationServiceError):
    """Raised when WhatsApp does not accept an agent message."""


@dataclass
class ConversationExport:
    content: str
    media_type: str
    filename: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _sync_live_session(
    store: Optional[ConversationSessionStore],
    conversation: models.Conversation,
    action: Callable[[ConversationSessionStore, str], Any],
    description: str,
) -> None:
    """Apply ``action`` to the customer's live session; failures are logged only."""

    if store is None:
        return
    try:
        session = store.find(conversation.customer_phone)
        if session is None:
            LOGGER.debug("No live session for conversation %s", conversation.id)
            return
        action(store, session.customer_id)
    except SessionNotFoundError:
        LOGGER.debug("No live session for conversation %s", conversation.id)
    except (SessionStoreError, redis.RedisError) as exc:
        LOGGER.warning(
            "Could not %s for conversation %s: %s", description, conversation.id, exc
        )


class ConversationService:
    """Encapsulates conversation queries and agent actions."""

    @staticmethod
    def list_conversations(
        session_factory: Callable[[], Session],
        agent_id: str,
        params: PaginationParams,
        *,
        status: Optional[models.ConversationStatus] = None,
        lead_quality: Optional[models.LeadQuality] = None,
        search: Optional[str] = None,
    ) -> PaginatedResult[models.Conversation]:
        where: list[Any] = [models.Conversation.agent_id == agent_id]
        if status is not None:
            where.append(models.Conversation.status == status)
        if lead_quality is not None:
            where.append(models.Conversation.lead_quality == lead_quality)
        if search and search.strip():
            term = search.strip()
            where.append(
                or_(
                    models.Conversation.customer_name.icontains(term, autoescape=True),
                    models.Conversation.customer_phone.contains(term, autoescape=True),
                )
            )

        store = SqlAlchemyListingStore(
            session_factory, models.Conversation, sortable=CONVERSATION_SORT_FIELDS
        )
        return paginate(store, where, params)

    @staticmethod
    def get_conversation(
        db: Session, agent_id: str, conversation_id: str, *, with_messages: bool = False
    ) -> Optional[models.Conversation]:
        statement = select(models.Conversation).where(
            models.Conversation.id == conversation_id,
            models.Conversation.agent_id == agent_id,
        )
        if with_messages:
            statement = statement.options(selectinload(models.Conversation.messages))
        return db.scalars(statement).first()

    @staticmethod
    def live_session_summary(
        store: Optional[ConversationSessionStore], conversation: models.Conversation
    ) -> Optional[dict[str, Any]]:
        if store is None or conversation.status not in LIVE_STATUSES:
            return None
        try:
            session = store.find(conversation.customer_phone)
        except (SessionStoreError, redis.RedisError) as exc:
            LOGGER.warning("Could not load live session for %s: %s", conversation.id, exc)
            return None
        return session.summary() if session is not None else None

    @staticmethod
    def takeover(
        db: Session,
        conversation: models.Conversation,
        agent: models.Agent,
        store: Optional[ConversationSessionStore] = None,
    ) -> models.Conversation:
        if conversation.status == models.ConversationStatus.CLOSED:
            raise ConversationStateError("Closed conversations cannot be taken over")
        now = _utcnow()
        conversation.status = models.ConversationStatus.WAITING_AGENT
        conversation.last_activity_at = now
        conversation.meta = {
            **(conversation.meta or {}),
            "taken_over_at": now.isoformat(),
            "taken_over_by": agent.id,
        }
        db.commit()
        db.refresh(conversation)
        _sync_live_session(
            store,
            conversation,
            lambda s, customer: s.escalate(customer, "agent_takeover"),
            "escalate live session",
        )
        LOGGER.info("Agent %s took over conversation %s", agent.id, conversation.id)
        return conversation

    @staticmethod
    def release(
        db: Session,
        conversation: models.Conversation,
        store: Optional[ConversationSessionStore] = None,
    ) -> models.Conversation:
        if conversation.status != models.ConversationStatus.WAITING_AGENT:
            raise ConversationStateError("Only conversations waiting for an agent can be released")
        conversation.status = models.ConversationStatus.ACTIVE
        conversation.last_activity_at = _utcnow()
        db.commit()
        db.refresh(conversation)
        _sync_live_session(
            store,
            conversation,
            lambda s, customer: s.transition(customer, SessionState.ACTIVE),
            "release live session",
        )
        return conversation

    @staticmethod
    def close(
        db: Session,
        conversation: models.Conversation,
        reason: Optional[str] = None,
        store: Optional[ConversationSessionStore] = None,
    ) -> models.Conversation:
        if conversation.status == models.ConversationStatus.CLOSED:
            raise ConversationStateError("Conversation is already closed")
        now = _utcnow()
        metadata = dict(conversation.meta or {})
        if reason:
            metadata["close_reason"] = reason
        metadata["closed_by"] = "agent"
        conversation.status = models.ConversationStatus.CLOSED
        conversation.closed_at = now
        conversation.last_activity_at = now
        conversation.meta = metadata
        db.commit()
        db.refresh(conversation)
        _sync_live_session(
            store,
            conversation,
            lambda s, customer: s.transition(customer, SessionState.CLOSED),
            "close live session",
        )
        LOGGER.info("Closed conversation %s", conversation.id)
        return conversation

    @staticmethod
    def send_agent_message(
        db: Session,
        conversation: models.Conversation,
        content: str,
        client: WhatsAppClient,
    ) -> models.Message:
        if conversation.status == models.ConversationStatus.CLOSED:
            raise ConversationStateError("Cannot send messages to a closed conversation")

        try:
            result = client.send_text(recipient=conversation.customer_phone, body=content)
        except WhatsAppError as exc:
            raise MessageDeliveryError(str(exc)) from exc
        if not result.success:
            LOGGER.warning(
                "WhatsApp rejected message for conversation %s: %s (%s)",
                conversation.id,
                result.error,
                result.status_code,
            )
            raise MessageDeliveryError(result.error or "WhatsApp rejected the message")

        now = _utcnow()
        message = models.Message(
            conversation_id=conversation.id,
            role=models.MessageRole.AGENT,
            content=content,
            message_type=models.MessageType.TEXT,
            whatsapp_message_id=result.provider_message_id,
            created_at=now,
        )
        db.add(message)
        conversation.last_activity_at = now
        if conversation.status == models.ConversationStatus.IDLE:
            conversation.status = models.ConversationStatus.ACTIVE
        db.commit()
        db.refresh(message)
        return message

    @staticmethod
    def export_conversation(
        conversation: models.Conversation, export_format: ExportFormat
    ) -> ConversationExport:
        """Render the transcript of ``conversation`` (messages must be loaded)."""

        export_format = ExportFormat(export_format)
        if export_format is ExportFormat.TEXT:
            return ConversationExport(
                content=_render_text(conversation),
                media_type="text/plain",
                filename=f"conversation-{conversation.id}.txt",
            )
        if export_format is ExportFormat.CSV:
            return ConversationExport(
                content=_render_csv(conversation),
                media_type="text/csv",
                filename=f"conversation-{conversation.id}.csv",
            )
        raise ValueError("JSON exports are rendered by the API schema")

    @staticmethod
    def mark_idle_conversations(
        db: Session, *, idle_after: timedelta, now: Optional[datetime] = None
    ) -> int:
        """Move active conversations without recent activity to ``idle``."""

        cutoff = (now or _utcnow()) - idle_after
        result = db.execute(
            update(models.Conversation)
            .where(
                models.Conversation.status == models.ConversationStatus.ACTIVE,
                models.Conversation.last_activity_at < cutoff,
            )
            .values(status=models.ConversationStatus.IDLE)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)


def _isoformat(value: Optional[datetime]) -> str:
    value = ensure_utc(value)
    return value.isoformat() if value is not None else ""


def _render_text(conversation: models.Conversation) -> str:
    lead_quality = conversation.lead_quality.value if conversation.lead_quality else "N/A"
    lines = [
        "Conversation Export",
        "==================",
        f"Customer: {conversation.customer_name or 'Unknown'} "
        f"({format_phone_number(conversation.customer_phone)})",
        f"Started: {_isoformat(conversation.started_at)}",
        f"Status: {conversation.status.value}",
        f"Lead Quality: {lead_quality}",
        "",
        "Messages:",
        "=========",
        "",
    ]
    for message in conversation.messages:
        lines.append(f"[{_isoformat(message.created_at)}] {message.role.value.upper()}:")
        lines.append(message.content)
        lines.append("")
    return "\n".join(lines)


def _render_csv(conversation: models.Conversation) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(["Timestamp", "Role", "Message Type", "Content"])
    for message in conversation.messages:
        writer.writerow(
            [
                _isoformat(message.created_at),
                message.role.value,
                message.message_type.value,
                message.content,
            ]
        )
    return buffer.getvalue()


def _read_minutes(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        LOGGER.warning("Invalid %s=%s; using %s", name, raw, default)
        return default
    if value <= 0:
        LOGGER.warning("%s must be positive; using %s", name, default)
        return default
    return value


_idle_monitor_thread: Optional[threading.Thread] = None
_idle_monitor_stop = threading.Event()


def _idle_worker() -> None:
    idle_after = timedelta(
        minutes=_read_minutes(IDLE_TIMEOUT_MINUTES_ENV, DEFAULT_IDLE_TIMEOUT_MINUTES)
    )
    interval = 60 * _read_minutes(
        IDLE_CHECK_INTERVAL_MINUTES_ENV, DEFAULT_IDLE_CHECK_INTERVAL_MINUTES
    )
    while not _idle_monitor_stop.is_set():
        try:
            with session_scope() as session:
                updated = ConversationService.mark_idle_conversations(
                    session, idle_after=idle_after
                )
                if updated:
                    LOGGER.info("Marked %s conversations as idle", updated)
        except Exception as exc:
            LOGGER.exception("Failed to mark idle conversations: %s", exc)
            JobMonitor.record_error(JOB_IDLE_MONITOR, str(exc))
        JobMonitor.record_tick(JOB_IDLE_MONITOR)
        _idle_monitor_stop.wait(interval)


def start_idle_monitor() -> None:
    """Start the background task that marks inactive conversations as idle."""

    global _idle_monitor_thread
    if _idle_monitor_thread and _idle_monitor_thread.is_alive():
        return
    _idle_monitor_stop.clear()
    _idle_monitor_thread = threading.Thread(
        target=_idle_worker, name="idle-conversation-monitor", daemon=True
    )
    _idle_monitor_thread.start()


def stop_idle_monitor() -> None:
    """Stop the idle conversation monitor."""

    _idle_monitor_stop.set()
    if _idle_monitor_thread and _idle_monitor_thread.is_alive():
        _idle_monitor_thread.join(timeout=5)
