"""Aggregated metrics for the analytics dashboard."""

from __future__ import annotations

import enum
from collections import Counter
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .. import models, schemas
from ..db_types import ensure_utc

RECENT_ACTIVITY_LIMIT = 5
PRICE_RANGES = (
    ("0-1M", Decimal("1000000")),
    ("1-2M", Decimal("2000000")),
    ("2-5M", Decimal("5000000")),
    ("5-10M", Decimal("10000000")),
)
PRICE_RANGE_OVERFLOW = "10M+"
TWO_PLACES = Decimal("0.01")


class GroupBy(str, enum.Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


def _round(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _date_filters(column, start_date: Optional[date], end_date: Optional[date]) -> list[Any]:
    filters: list[Any] = []
    if start_date is not None:
        filters.append(column >= datetime.combine(start_date, time.min, tzinfo=timezone.utc))
    if end_date is not None:
        next_day = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
        filters.append(column < next_day)
    return filters


def period_start(moment: datetime, group_by: GroupBy) -> date:
    """Return the first day of the bucket containing ``moment`` (weeks start on Sunday)."""

    day = moment.date()
    if group_by is GroupBy.DAY:
        return day
    if group_by is GroupBy.WEEK:
        return day - timedelta(days=(day.weekday() + 1) % 7)
    return day.replace(day=1)


class AnalyticsService:
    """Read-only metrics scoped to a single agent."""

    @staticmethod
    def lead_distribution(
        db: Session,
        agent_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> schemas.LeadDistribution:
        conversation = models.Conversation
        rows = db.execute(
            select(
                conversation.lead_quality,
                func.count(conversation.id),
                func.avg(conversation.lead_score),
            )
            .where(
                conversation.agent_id == agent_id,
                *_date_filters(conversation.created_at, start_date, end_date),
            )
            .group_by(conversation.lead_quality)
        ).all()

        counts: dict[str, int] = {}
        score_total = Decimal("0")
        scored = 0
        for quality, count, average in rows:
            key = quality.value if quality is not None else "unqualified"
            counts[key] = int(count)
            if quality is not None and average is not None:
                score_total += Decimal(str(average)) * int(count)
                scored += int(count)

        qualified = sum(value for key, value in counts.items() if key != "unqualified")
        return schemas.LeadDistribution(
            hot=counts.get("hot", 0),
            warm=counts.get("warm", 0),
            cold=counts.get("cold", 0),
            unqualified=counts.get("unqualified", 0),
            total=qualified,
            average_score=_round(score_total / scored) if scored else Decimal("0"),
        )

    @staticmethod
    def overview(
        db: Session,
        agent_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> schemas.AnalyticsOverview:
        conversation = models.Conversation
        date_filters = _date_filters(conversation.created_at, start_date, end_date)

        status_rows = db.execute(
            select(conversation.status, func.count(conversation.id))
            .where(conversation.agent_id == agent_id, *date_filters)
            .group_by(conversation.status)
        ).all()
        by_status = {status.value: int(count) for status, count in status_rows}
        total_conversations = sum(by_status.values())

        total_messages = int(
            db.execute(
                select(func.count(models.Message.id))
                .join(conversation, models.Message.conversation_id == conversation.id)
                .where(conversation.agent_id == agent_id, *date_filters)
            ).scalar_one()
        )
        average_messages = Decimal("0")
        if total_conversations:
            average_messages = _round(Decimal(total_messages) / Decimal(total_conversations))

        property_rows = db.execute(
            select(models.Property.status, func.count(models.Property.id))
            .where(models.Property.agent_id == agent_id)
            .group_by(models.Property.status)
        ).all()
        by_property_status = {status.value: int(count) for status, count in property_rows}

        recent = db.scalars(
            select(conversation)
            .where(conversation.agent_id == agent_id, *date_filters)
            .order_by(conversation.last_activity_at.desc(), conversation.id.desc())
            .limit(RECENT_ACTIVITY_LIMIT)
        ).all()

        return schemas.AnalyticsOverview(
            conversations=schemas.ConversationTotals(
                total=total_conversations,
                active=by_status.get(models.ConversationStatus.ACTIVE.value, 0),
                idle=by_status.get(models.ConversationStatus.IDLE.value, 0),
                waiting_agent=by_status.get(models.ConversationStatus.WAITING_AGENT.value, 0),
                closed=by_status.get(models.ConversationStatus.CLOSED.value, 0),
                total_messages=total_messages,
                avg_messages_per_conversation=average_messages,
            ),
            properties=schemas.PropertyTotals(
                total=sum(by_property_status.values()),
                available=by_property_status.get(models.PropertyStatus.AVAILABLE.value, 0),
                sold=by_property_status.get(models.PropertyStatus.SOLD.value, 0),
                reserved=by_property_status.get(models.PropertyStatus.RESERVED.value, 0),
            ),
            leads=AnalyticsService.lead_distribution(db, agent_id, start_date, end_date),
            recent_activity=[schemas.ConversationSummary.model_validate(item) for item in recent],
        )

    @staticmethod
    def conversation_analytics(
        db: Session,
        agent_id: str,
        group_by: GroupBy = GroupBy.DAY,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> schemas.ConversationAnalytics:
        group_by = GroupBy(group_by)
        conversation = models.Conversation
        rows = db.execute(
            select(
                conversation.created_at,
                conversation.closed_at,
                conversation.status,
                conversation.meta,
            ).where(
                conversation.agent_id == agent_id,
                *_date_filters(conversation.created_at, start_date, end_date),
            )
        ).all()

        started: Counter[date] = Counter()
        closed: Counter[date] = Counter()
        escalated: Counter[date] = Counter()
        status_distribution: Counter[str] = Counter()
        duration_total = Decimal("0")
        durations = 0

        for created_at, closed_at, status, metadata in rows:
            created_at = ensure_utc(created_at)
            bucket = period_start(created_at, group_by)
            started[bucket] += 1
            status_distribution[status.value] += 1
            if status == models.ConversationStatus.WAITING_AGENT or (
                metadata and "taken_over_at" in metadata
            ):
                escalated[bucket] += 1
            if closed_at is not None:
                closed_at = ensure_utc(closed_at)
                closed[period_start(closed_at, group_by)] += 1
                minutes = Decimal(str((closed_at - created_at).total_seconds())) / 60
                duration_total += max(minutes, Decimal("0"))
                durations += 1

        buckets = sorted(set(started) | set(closed))
        return schemas.ConversationAnalytics(
            group_by=group_by.value,
            series=[
                schemas.ConversationTimeBucket(
                    period_start=bucket,
                    started=started.get(bucket, 0),
                    closed=closed.get(bucket, 0),
                    escalated=escalated.get(bucket, 0),
                )
                for bucket in buckets
            ],
            status_distribution=dict(status_distribution),
            average_duration_minutes=_round(duration_total / durations) if durations else Decimal("0"),
        )

    @staticmethod
    def property_analytics(
        db: Session,
        agent_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> schemas.PropertyAnalytics:
        prop = models.Property
        rows = db.execute(
            select(prop.property_type, prop.status, prop.city, prop.base_price).where(
                prop.agent_id == agent_id,
                *_date_filters(prop.created_at, start_date, end_date),
            )
        ).all()

        by_type: Counter[str] = Counter()
        by_status: Counter[str] = Counter()
        by_city: Counter[str] = Counter()
        price_ranges = {label: 0 for label, _ in PRICE_RANGES}
        price_ranges[PRICE_RANGE_OVERFLOW] = 0

        for property_type, status, city, base_price in rows:
            by_type[property_type] += 1
            by_status[status.value] += 1
            by_city[city] += 1
            price = Decimal(str(base_price))
            for label, upper in PRICE_RANGES:
                if price < upper:
                    price_ranges[label] += 1
                    break
            else:
                price_ranges[PRICE_RANGE_OVERFLOW] += 1

        return schemas.PropertyAnalytics(
            total=len(rows),
            by_type=dict(by_type),
            by_status=dict(by_status),
            by_city=dict(by_city),
            price_ranges=price_ranges,
        )
