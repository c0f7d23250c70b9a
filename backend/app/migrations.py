"""Bring the database schema to the latest Alembic revision on startup."""

from __future__ import annotations

import errno
import logging
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine.reflection import Inspector

from .database import SQLALCHEMY_DATABASE_URL

LOGGER = logging.getLogger(__name__)

BACKEND_DIR = Path(__file__).resolve().parent.parent
LOCK_PATH = BACKEND_DIR / ".alembic-migration.lock"
LOCK_POLL_SECONDS = 0.25
LOCK_TIMEOUT_ENV = "ALEMBIC_MIGRATION_LOCK_TIMEOUT"
DEFAULT_LOCK_TIMEOUT = 30.0

# Tables and index created by the initial revision; their presence means an
# existing database was built from the ORM metadata and only needs stamping.
SCHEMA_TABLES = ("agents", "properties", "payment_plans", "conversations", "messages")
SCHEMA_INDEX = ("conversations", "conversations_agent_status_idx")

if os.name == "posix":  # pragma: no cover - platform specific
    import fcntl
else:  # pragma: no cover - platform specific
    import msvcrt


def _lock_timeout() -> float:
    raw = os.getenv(LOCK_TIMEOUT_ENV)
    if not raw:
        return DEFAULT_LOCK_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        value = 0.0
    if value <= 0:
        LOGGER.warning(
            "Ignoring %s=%r; waiting %.1f seconds for the migration lock",
            LOCK_TIMEOUT_ENV,
            raw,
            DEFAULT_LOCK_TIMEOUT,
        )
        return DEFAULT_LOCK_TIMEOUT
    return value


def _try_lock(handle: IO[str]) -> bool:
    try:
        if os.name == "posix":  # pragma: no cover - platform specific
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        else:  # pragma: no cover - platform specific
            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
    except OSError as error:
        # Windows reports a held lock as ERROR_SHARING_VIOLATION / ERROR_LOCK_VIOLATION.
        if error.errno in {errno.EACCES, errno.EAGAIN, errno.EBUSY} or getattr(
            error, "winerror", None
        ) in {32, 33}:
            return False
        raise
    return True


def _unlock(handle: IO[str]) -> None:
    if os.name == "posix":  # pragma: no cover - platform specific
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    else:  # pragma: no cover - platform specific
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)


@contextmanager
def migration_lock(path: Path = LOCK_PATH, *, timeout: float | None = None) -> Iterator[None]:
    """Serialise migrations across workers starting at the same time."""

    deadline = time.monotonic() + (timeout if timeout is not None else _lock_timeout())
    with path.open("a+") as handle:
        while not _try_lock(handle):
            if time.monotonic() >= deadline:
                raise TimeoutError(f"Timed out waiting for migration lock {path}")
            time.sleep(LOCK_POLL_SECONDS)
        try:
            yield
        finally:
            _unlock(handle)


def schema_matches_models(inspector: Inspector) -> bool:
    """Whether the initial revision's tables already exist without Alembic metadata."""

    if not all(inspector.has_table(table) for table in SCHEMA_TABLES):
        return False
    table, index_name = SCHEMA_INDEX
    return index_name in {index["name"] for index in inspector.get_indexes(table)}


def _alembic_config(database_url: str) -> Config:
    config = Config(str(BACKEND_DIR / "alembic.ini"))
    config.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    config.set_main_option("sqlalchemy.url", database_url)
    config.attributes["configure_logger"] = False
    return config


def run_database_migrations() -> None:
    """Upgrade the database to head, stamping schemas created outside Alembic."""

    database_url = os.getenv("DATABASE_URL") or SQLALCHEMY_DATABASE_URL
    config = _alembic_config(database_url)
    head = ScriptDirectory.from_config(config).get_current_head()
    LOGGER.info("Migrating database at %s to revision %s", database_url, head)

    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    with migration_lock():
        engine = create_engine(database_url, connect_args=connect_args)
        try:
            inspector = inspect(engine)
            if not inspector.has_table("alembic_version") and schema_matches_models(inspector):
                LOGGER.info("Schema already present; stamping revision %s", head)
                command.stamp(config, "head")
                return
        finally:
            engine.dispose()
        command.upgrade(config, "head")
