"""Command line entry-point to create an agent account without the HTTP API."""

from __future__ import annotations

import argparse
import logging
from typing import Optional

from pydantic import ValidationError

from .. import schemas
from ..database import session_scope
from ..security import generate_temporary_password
from ..services import AgentAlreadyExistsError, AgentService

LOGGER = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create an agent account.")
    parser.add_argument("--email", required=True, help="Login email of the agent.")
    parser.add_argument("--full-name", required=True, help="Display name of the agent.")
    parser.add_argument(
        "--whatsapp-number",
        required=True,
        help="WhatsApp Business number in international format, e.g. +201234567890.",
    )
    parser.add_argument("--phone-number", help="Optional contact phone number.")
    parser.add_argument("--company-name", help="Optional brokerage or developer name.")
    parser.add_argument(
        "--password",
        help="Initial password; a random one is generated and printed when omitted.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print additional debugging information.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)

    generated = args.password is None
    password = args.password or generate_temporary_password()

    try:
        payload = schemas.AgentRegisterRequest(
            email=args.email,
            password=password,
            full_name=args.full_name,
            phone_number=args.phone_number,
            company_name=args.company_name,
            whatsapp_number=args.whatsapp_number,
        )
    except ValidationError as exc:
        LOGGER.error("Invalid agent data: %s", exc)
        return 2

    try:
        with session_scope() as session:
            agent = AgentService.register(session, payload)
            agent_id = agent.id
    except AgentAlreadyExistsError as exc:
        LOGGER.error("%s", exc)
        return 1

    print(f"Created agent {agent_id} ({payload.email})")
    if generated:
        print(f"Temporary password: {password}")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
