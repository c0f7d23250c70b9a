"""Access to the assistant's live conversation sessions stored in Redis.

Each customer has one JSON document under ``session:<customer id>`` where the
customer id is the WhatsApp address the assistant received, with or without
the ``whatsapp:`` channel prefix (``whatsapp:+201234567890``, ``201234567890``). The
assistant owns the document's lifecycle; the back-office only reads it and
performs the handful of state changes agents and operators need.
"""

from __future__ import annotations

import enum
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import redis

LOGGER = logging.getLogger(__name__)

REDIS_URL_ENV = "REDIS_URL"
DEFAULT_REDIS_URL = "redis://localhost:6379"
SESSION_KEY_PREFIX = "session:"
WHATSAPP_PREFIX = "whatsapp:"


class SessionState(str, enum.Enum):
    NEW = "NEW"
    ACTIVE = "ACTIVE"
    WAITING_AGENT = "WAITING_AGENT"
    IDLE = "IDLE"
    CLOSED = "CLOSED"


VALID_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.NEW: frozenset({SessionState.ACTIVE}),
    SessionState.ACTIVE: frozenset(
        {SessionState.IDLE, SessionState.WAITING_AGENT, SessionState.CLOSED}
    ),
    SessionState.IDLE: frozenset({SessionState.ACTIVE, SessionState.CLOSED}),
    SessionState.WAITING_AGENT: frozenset({SessionState.ACTIVE, SessionState.CLOSED}),
    SessionState.CLOSED: frozenset(),
}


class SessionStoreError(RuntimeError):
    """Base error for live session operations."""


class SessionNotFoundError(SessionStoreError):
    """Raised when no session exists for a customer."""


class InvalidSessionTransition(SessionStoreError):
    """Raised when a state change is not allowed from the current state."""


def session_customer_id(phone: str) -> str:
    """Return the session customer id for a phone number or WhatsApp address."""

    phone = phone.strip()
    if phone.startswith(WHATSAPP_PREFIX):
        return phone
    return f"{WHATSAPP_PREFIX}{phone}"


def strip_channel_prefix(customer_id: str) -> str:
    customer_id = customer_id.strip()
    if customer_id.startswith(WHATSAPP_PREFIX):
        return customer_id[len(WHATSAPP_PREFIX):]
    return customer_id


def customer_id_candidates(phone: str) -> list[str]:
    """Session ids to try for a phone: as given, then the other stored forms.

    The assistant keys sessions by the sender it received, which may carry the
    ``whatsapp:`` prefix or be the bare Cloud API number without ``+``.
    """

    given = phone.strip()
    bare = strip_channel_prefix(given)
    candidates: list[str] = []
    for candidate in (given, session_customer_id(given), bare, bare.lstrip("+")):
        if candidate and candidate not in candidates:
            candidates.append(candidate)
    return candidates


def can_transition(current: SessionState, target: SessionState) -> bool:
    return current is target or target in VALID_TRANSITIONS[current]


@dataclass
class LiveSession:
    """Parsed session document; ``document`` keeps unknown fields intact."""

    customer_id: str
    document: dict[str, Any]

    @property
    def context(self) -> dict[str, Any]:
        return self.document.setdefault("context", {})

    @property
    def state(self) -> SessionState:
        raw = self.document.get("state", SessionState.NEW.value)
        try:
            return SessionState(raw)
        except ValueError as exc:
            raise SessionStoreError(
                f"Session for {self.customer_id} has unknown state {raw!r}"
            ) from exc

    @state.setter
    def state(self, value: SessionState) -> None:
        self.document["state"] = SessionState(value).value

    @property
    def message_count(self) -> int:
        return len(self.context.get("messageHistory") or [])

    @property
    def escalation_time(self) -> Optional[str]:
        return self.context.get("escalationTime")

    @property
    def escalation_reason(self) -> Optional[str]:
        return self.context.get("escalationReason")

    def summary(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "last_activity": self.context.get("lastActivity"),
            "current_intent": self.context.get("currentIntent"),
            "extracted_info": self.context.get("extractedInfo") or {},
            "message_count": self.message_count,
            "escalation_reason": self.escalation_reason,
        }


class ConversationSessionStore:
    """Reads and transitions session documents in Redis."""

    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    @staticmethod
    def key(customer_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}{customer_id}"

    def get(self, customer_id: str) -> Optional[LiveSession]:
        raw = self.client.get(self.key(customer_id))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            document = json.loads(raw)
        except ValueError as exc:
            raise SessionStoreError(f"Session for {customer_id} is not valid JSON") from exc
        if not isinstance(document, dict):
            raise SessionStoreError(f"Session for {customer_id} is not a JSON object")
        session = LiveSession(customer_id=customer_id, document=document)
        session.state  # raises SessionStoreError for unknown states
        return session

    def find(self, phone: str) -> Optional[LiveSession]:
        """Return the first session stored under any of the phone's key forms."""

        for customer_id in customer_id_candidates(phone):
            session = self.get(customer_id)
            if session is not None:
                return session
        return None

    def require(self, customer_id: str) -> LiveSession:
        session = self.get(customer_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found for {customer_id}")
        return session

    def save(self, session: LiveSession) -> None:
        session.context["lastActivity"] = datetime.now(timezone.utc).isoformat()
        payload = json.dumps(session.document, separators=(",", ":"), default=str)
        # keepttl preserves the expiry the assistant assigned to the session.
        self.client.set(self.key(session.customer_id), payload, keepttl=True)

    def transition(self, customer_id: str, target: SessionState) -> LiveSession:
        """Move a session to ``target`` if the state machine allows it."""

        session = self.require(customer_id)
        current = session.state
        if not can_transition(current, target):
            raise InvalidSessionTransition(
                f"Invalid session transition from {current.value} to {target.value}"
            )
        if current is target:
            return session
        session.state = target
        if target is SessionState.ACTIVE:
            session.context.pop("escalationTime", None)
            session.context.pop("escalationReason", None)
        self.save(session)
        LOGGER.info(
            "Session %s moved from %s to %s", customer_id, current.value, target.value
        )
        return session

    def escalate(self, customer_id: str, reason: str) -> LiveSession:
        """Hand the session over to a human agent."""

        session = self.require(customer_id)
        current = session.state
        if not can_transition(current, SessionState.WAITING_AGENT):
            raise InvalidSessionTransition(
                f"Invalid session transition from {current.value} to WAITING_AGENT"
            )
        session.state = SessionState.WAITING_AGENT
        session.context["escalationTime"] = datetime.now(timezone.utc).isoformat()
        session.context["escalationReason"] = reason
        self.save(session)
        LOGGER.info("Session %s escalated to agent (%s)", customer_id, reason)
        return session

    def reset_escalation(self, customer_id: str) -> tuple[SessionState, LiveSession]:
        """Force a session back to ``ACTIVE`` and drop its escalation markers.

        This is an operator override and is accepted from every state. The
        previous state is returned so callers can report what was overridden.
        """

        session = self.require(customer_id)
        previous = session.state
        if previous is not SessionState.WAITING_AGENT:
            LOGGER.warning(
                "Forcing session %s from %s to ACTIVE", customer_id, previous.value
            )
        session.state = SessionState.ACTIVE
        session.context.pop("escalationTime", None)
        session.context.pop("escalationReason", None)
        self.save(session)
        return previous, session

    def delete(self, customer_id: str) -> bool:
        removed = bool(self.client.delete(self.key(customer_id)))
        if removed:
            LOGGER.info("Deleted session %s", customer_id)
        return removed


_redis_client: Optional[redis.Redis] = None


def get_redis_client(url: Optional[str] = None) -> redis.Redis:
    """Return the shared Redis client, creating it on first use."""

    global _redis_client
    if url is not None:
        return redis.from_url(
            url, decode_responses=True, socket_connect_timeout=5, socket_timeout=5
        )
    if _redis_client is None:
        _redis_client = redis.from_url(
            os.getenv(REDIS_URL_ENV, DEFAULT_REDIS_URL),
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
    return _redis_client


def get_session_store() -> Optional[ConversationSessionStore]:
    """FastAPI dependency returning the live session store when Redis is configured."""

    if not os.getenv(REDIS_URL_ENV):
        return None
    return ConversationSessionStore(get_redis_client())
