"""Command line entry-point to hand an escalated WhatsApp session back to the assistant."""

from __future__ import annotations

import argparse
import logging
import os
from typing import Optional

import redis
from sqlalchemy import update

from .. import models
from ..database import session_scope
from ..services.sessions import (
    DEFAULT_REDIS_URL,
    REDIS_URL_ENV,
    ConversationSessionStore,
    LiveSession,
    SessionStoreError,
    customer_id_candidates,
    get_redis_client,
)

LOGGER = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Reset a WhatsApp conversation session to ACTIVE and clear its escalation."
    )
    parser.add_argument(
        "phone",
        nargs="?",
        help="Customer phone number, e.g. whatsapp:+201234567890 or +201234567890.",
    )
    parser.add_argument(
        "--redis-url",
        default=os.getenv(REDIS_URL_ENV, DEFAULT_REDIS_URL),
        help="Redis connection URL (default: $REDIS_URL or redis://localhost:6379).",
    )
    parser.add_argument(
        "--no-sync",
        action="store_true",
        help="Do not move matching waiting_agent conversations back to active.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print additional debugging information.",
    )
    return parser.parse_args(argv)


def _print_summary(session: LiveSession) -> None:
    print("Current session state:")
    print(f"  - State: {session.state.value}")
    print(f"  - Customer: {session.document.get('customerId', session.customer_id)}")
    print(f"  - Messages: {session.message_count}")
    if session.escalation_time:
        print(f"  - Escalated at: {session.escalation_time}")
    if session.escalation_reason:
        print(f"  - Escalation reason: {session.escalation_reason}")


def sync_conversations(customer_id: str) -> int:
    """Move the customer's ``waiting_agent`` conversations back to ``active``.

    Conversation rows may store the phone with or without the ``whatsapp:``
    prefix, so every form of the id is matched.
    """

    phones = customer_id_candidates(customer_id)

    with session_scope() as session:
        result = session.execute(
            update(models.Conversation)
            .where(
                models.Conversation.customer_phone.in_(phones),
                models.Conversation.status == models.ConversationStatus.WAITING_AGENT,
            )
            .values(status=models.ConversationStatus.ACTIVE)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)

    if not args.phone or not args.phone.strip():
        LOGGER.error("Phone number required, e.g. whatsapp:+201234567890")
        return 1

    phone = args.phone.strip()
    store = ConversationSessionStore(get_redis_client(args.redis_url))
    LOGGER.debug(
        "Looking for session under %s",
        ", ".join(store.key(candidate) for candidate in customer_id_candidates(phone)),
    )

    try:
        current = store.find(phone)
        if current is None:
            LOGGER.error("Session not found for %s", phone)
            return 1
        customer_id = current.customer_id
        _print_summary(current)
        previous, _ = store.reset_escalation(customer_id)
    except (SessionStoreError, redis.RedisError) as exc:
        LOGGER.error("Could not reset session %s: %s", phone, exc)
        return 1

    print(f"Session reset from {previous.value} to ACTIVE; escalation cleared.")

    if not args.no_sync:
        updated = sync_conversations(customer_id)
        print(f"Conversations moved back to active: {updated}")

    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
