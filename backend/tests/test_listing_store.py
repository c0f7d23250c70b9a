from __future__ import annotations

from decimal import Decimal

import pytest

from backend.app import models
from backend.app.database import SessionLocal
from backend.app.services.pagination import (
    InvalidParameterError,
    PaginationParams,
    SortOrder,
    SqlAlchemyListingStore,
    paginate,
)
from backend.app.services.properties import PROPERTY_SORT_FIELDS


@pytest.fixture
def store() -> SqlAlchemyListingStore:
    return SqlAlchemyListingStore(SessionLocal, models.Property, sortable=PROPERTY_SORT_FIELDS)


def test_store_counts_and_fetches_with_filter(store, agent, make_agent, make_property):
    other = make_agent()
    for price in (1_000_000, 2_000_000, 3_000_000):
        make_property(agent, base_price=Decimal(price))
    make_property(other, base_price=Decimal("9000000"))

    where = [models.Property.agent_id == agent.id]
    result = paginate(
        store,
        where,
        PaginationParams(page=1, limit=2, sort_by="base_price", sort_order=SortOrder.ASC),
    )

    assert result.pagination.total == 3
    assert result.pagination.total_pages == 2
    assert result.pagination.has_more is True
    assert [item.base_price for item in result.items] == [
        Decimal("1000000.00"),
        Decimal("2000000.00"),
    ]


def test_equal_sort_values_are_ordered_by_primary_key(store, agent, make_property):
    created = [make_property(agent, base_price=Decimal("1500000")) for _ in range(5)]
    expected = sorted(prop.id for prop in created)

    where = [models.Property.agent_id == agent.id]
    pages = [
        paginate(
            store,
            where,
            PaginationParams(page=page, limit=2, sort_by="base_price", sort_order=SortOrder.ASC),
        )
        for page in (1, 2, 3)
    ]

    seen = [item.id for result in pages for item in result.items]
    assert seen == expected


def test_included_relations_are_available_after_the_session_closes(store, agent, make_property):
    prop = make_property(agent)
    with SessionLocal() as session:
        session.add(
            models.PaymentPlan(
                property_id=prop.id,
                plan_name="10% down",
                down_payment_percentage=Decimal("10"),
                installment_years=8,
                monthly_payment=Decimal("28125"),
            )
        )
        session.commit()

    result = paginate(
        store,
        [models.Property.agent_id == agent.id],
        PaginationParams(),
        include=("payment_plans",),
    )

    assert [plan.plan_name for plan in result.items[0].payment_plans] == ["10% down"]


def test_unknown_sort_field_is_rejected(store, agent):
    with pytest.raises(InvalidParameterError):
        paginate(
            store,
            [models.Property.agent_id == agent.id],
            PaginationParams(sort_by="password_hash"),
        )
