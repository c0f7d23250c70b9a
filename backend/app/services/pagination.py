"""Generic offset pagination over listing stores.

A listing is produced by two reads against the same filter: a count of every
matching record and a sorted, offset/limited fetch of a single page. Both
reads are issued concurrently and the caller blocks until both have finished.
If either read fails the whole call fails with the store's original exception;
nothing is retried and no partial result is returned.

The two reads are not wrapped in a shared transaction, so a record written
between them may show up in the count but not in the page (or the other way
round).
"""

from __future__ import annotations

import enum
import logging
import os
import threading
from concurrent.futures import FIRST_EXCEPTION, Executor, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Generic,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Type,
    TypeVar,
)

from sqlalchemy import func, inspect, select
from sqlalchemy.orm import Session, selectinload

LOGGER = logging.getLogger(__name__)

MAX_WORKERS_ENV = "PAGINATION_MAX_WORKERS"
DEFAULT_MAX_WORKERS = 8

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)
F_contra = TypeVar("F_contra", contravariant=True)
M = TypeVar("M")


class InvalidParameterError(ValueError):
    """Raised when pagination parameters are outside their allowed range."""


class SortOrder(str, enum.Enum):
    """Direction applied to the sort field."""

    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class PaginationParams:
    """Raw paging request: 1-based page, page size and sort order."""

    page: int = 1
    limit: int = 10
    sort_by: str = "created_at"
    sort_order: SortOrder = SortOrder.DESC


@dataclass(frozen=True)
class PaginationMeta:
    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool


@dataclass(frozen=True)
class PaginatedResult(Generic[T]):
    """One page of records together with its pagination metadata."""

    items: Tuple[T, ...]
    pagination: PaginationMeta


class ListingStore(Protocol[F_contra, T_co]):
    """Read capability required by :func:`paginate`."""

    def count(self, where: F_contra) -> int:
        ...

    def fetch(
        self,
        where: F_contra,
        *,
        sort_by: str,
        sort_order: SortOrder,
        skip: int,
        take: int,
        include: Optional[Sequence[str]] = None,
    ) -> Sequence[T_co]:
        ...


def page_window(params: PaginationParams) -> Tuple[int, int]:
    """Return the ``(skip, take)`` pair for the requested page."""

    if params.page < 1:
        raise InvalidParameterError("page must be greater than or equal to 1")
    if params.limit < 1:
        raise InvalidParameterError("limit must be greater than or equal to 1")
    return (params.page - 1) * params.limit, params.limit


def calculate_pagination_meta(total: int, page: int, limit: int) -> PaginationMeta:
    """Derive page count and the "has more" flag from a record count."""

    if limit <= 0:
        raise InvalidParameterError("limit must be greater than zero")
    if total < 0:
        raise InvalidParameterError("total cannot be negative")
    total_pages = -(-total // limit)
    return PaginationMeta(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_more=page < total_pages,
    )


_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def _read_max_workers() -> int:
    raw = os.getenv(MAX_WORKERS_ENV)
    if raw is None:
        return DEFAULT_MAX_WORKERS
    try:
        value = int(raw)
    except ValueError:
        LOGGER.warning("Invalid %s=%s; using %s", MAX_WORKERS_ENV, raw, DEFAULT_MAX_WORKERS)
        return DEFAULT_MAX_WORKERS
    if value < 1:
        LOGGER.warning("%s must be positive; using %s", MAX_WORKERS_ENV, DEFAULT_MAX_WORKERS)
        return DEFAULT_MAX_WORKERS
    return value


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(
                max_workers=_read_max_workers(), thread_name_prefix="pagination"
            )
        return _executor


def shutdown_executor() -> None:
    """Release the worker threads used for listing reads."""

    global _executor
    with _executor_lock:
        if _executor is not None:
            _executor.shutdown(wait=True)
            _executor = None


def paginate(
    store: ListingStore[Any, T],
    where: Any,
    params: PaginationParams,
    *,
    include: Optional[Sequence[str]] = None,
    executor: Optional[Executor] = None,
) -> PaginatedResult[T]:
    """Count and fetch one page of ``store`` records matching ``where``."""

    skip, take = page_window(params)
    pool = executor or _get_executor()

    count_future = pool.submit(store.count, where)
    fetch_future = pool.submit(
        store.fetch,
        where,
        sort_by=params.sort_by,
        sort_order=params.sort_order,
        skip=skip,
        take=take,
        include=include,
    )

    done, pending = wait((count_future, fetch_future), return_when=FIRST_EXCEPTION)
    for future in (count_future, fetch_future):
        if future in done and future.exception() is not None:
            for outstanding in pending:
                outstanding.cancel()
            raise future.exception()  # type: ignore[misc]

    total = count_future.result()
    items = tuple(fetch_future.result())
    return PaginatedResult(
        items=items,
        pagination=calculate_pagination_meta(total, params.page, params.limit),
    )


class SqlAlchemyListingStore(Generic[M]):
    """Listing store over a mapped model.

    ``where`` is a sequence of SQLAlchemy boolean clauses. Every read opens its
    own session from ``session_factory`` so that the count and the page fetch
    can run on separate pooled connections at the same time. Fetched objects
    are detached when the session closes; relations named in ``include`` are
    loaded eagerly beforehand.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        model: Type[M],
        *,
        sortable: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.session_factory = session_factory
        self.model = model
        mapper = inspect(model)
        self._primary_key = mapper.primary_key
        if sortable is None:
            sortable = {attr.key: getattr(model, attr.key) for attr in mapper.column_attrs}
        self._sortable = dict(sortable)

    def _resolve_sort_column(self, sort_by: str) -> Any:
        try:
            return self._sortable[sort_by]
        except KeyError:
            raise InvalidParameterError(
                f"Unsupported sort field '{sort_by}' for {self.model.__name__}"
            ) from None

    def count(self, where: Sequence[Any]) -> int:
        statement = select(func.count()).select_from(self.model).where(*where)
        with self.session_factory() as session:
            return int(session.execute(statement).scalar_one())

    def fetch(
        self,
        where: Sequence[Any],
        *,
        sort_by: str,
        sort_order: SortOrder,
        skip: int,
        take: int,
        include: Optional[Sequence[str]] = None,
    ) -> Sequence[M]:
        column = self._resolve_sort_column(sort_by)
        descending = SortOrder(sort_order) is SortOrder.DESC
        ordering = [column.desc() if descending else column.asc()]
        ordering.extend(key.desc() if descending else key.asc() for key in self._primary_key)

        statement = select(self.model).where(*where).order_by(*ordering).offset(skip).limit(take)
        for relation in include or ():
            statement = statement.options(selectinload(getattr(self.model, relation)))

        with self.session_factory() as session:
            return list(session.scalars(statement).all())
