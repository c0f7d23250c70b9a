"""Business logic for properties and their payment plans."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional, Sequence

from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from .. import models, schemas
from ..formatting import format_price
from .pagination import PaginatedResult, PaginationParams, SqlAlchemyListingStore, paginate

LOGGER = logging.getLogger(__name__)

PROPERTY_SORT_FIELDS = {
    "created_at": models.Property.created_at,
    "base_price": models.Property.base_price,
    "area": models.Property.area,
}
MAX_BULK_UPLOAD_ROWS = 500
REQUIRED_FIELDS = frozenset(
    {"project_name", "property_type", "city", "area", "base_price", "status", "currency"}
)


class PropertyServiceError(RuntimeError):
    """Base error for property operations."""


class BulkUploadValidationError(PropertyServiceError):
    """Raised when at least one uploaded row fails validation."""

    def __init__(self, row_errors: Sequence[schemas.PropertyRowError], total: int) -> None:
        super().__init__(f"{len(row_errors)} properties failed validation")
        self.row_errors = list(row_errors)
        self.total = total


def format_validation_errors(error: ValidationError) -> list[str]:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        messages.append(f"{location}: {item['msg']}" if location else item["msg"])
    return messages


class PropertyService:
    """Encapsulates CRUD operations for properties."""

    @staticmethod
    def list_properties(
        session_factory: Callable[[], Session],
        agent_id: str,
        params: PaginationParams,
        *,
        status: Optional[models.PropertyStatus] = None,
        property_type: Optional[str] = None,
        city: Optional[str] = None,
        bedrooms: Optional[int] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
    ) -> PaginatedResult[models.Property]:
        where: list[Any] = [models.Property.agent_id == agent_id]
        if status is not None:
            where.append(models.Property.status == status)
        if property_type:
            where.append(func.lower(models.Property.property_type) == property_type.strip().lower())
        if city:
            where.append(models.Property.city.icontains(city.strip(), autoescape=True))
        if bedrooms is not None:
            where.append(models.Property.bedrooms == bedrooms)
        if min_price is not None:
            where.append(models.Property.base_price >= min_price)
        if max_price is not None:
            where.append(models.Property.base_price <= max_price)

        store = SqlAlchemyListingStore(
            session_factory, models.Property, sortable=PROPERTY_SORT_FIELDS
        )
        return paginate(store, where, params, include=("payment_plans",))

    @staticmethod
    def get_property(db: Session, agent_id: str, property_id: str) -> Optional[models.Property]:
        return db.scalars(
            select(models.Property)
            .options(selectinload(models.Property.payment_plans))
            .where(models.Property.id == property_id, models.Property.agent_id == agent_id)
        ).first()

    @staticmethod
    def _build_plans(plans: Iterable[schemas.PaymentPlanCreate]) -> list[models.PaymentPlan]:
        ordered = sorted(plans, key=lambda plan: plan.installment_years)
        return [models.PaymentPlan(**plan.model_dump()) for plan in ordered]

    @staticmethod
    def _build_property(agent_id: str, data: schemas.PropertyCreate) -> models.Property:
        values = data.model_dump(exclude={"payment_plans"})
        if values.get("price_per_meter") is None:
            values["price_per_meter"] = (data.base_price / data.area).quantize(Decimal("0.01"))
        prop = models.Property(agent_id=agent_id, **values)
        prop.payment_plans = PropertyService._build_plans(data.payment_plans)
        return prop

    @staticmethod
    def create_property(
        db: Session, agent_id: str, data: schemas.PropertyCreate
    ) -> models.Property:
        prop = PropertyService._build_property(agent_id, data)
        db.add(prop)
        db.commit()
        db.refresh(prop)
        LOGGER.info(
            "Created property %s (%s) for agent %s",
            prop.id,
            format_price(prop.base_price, prop.currency),
            agent_id,
        )
        return prop

    @staticmethod
    def update_property(
        db: Session, prop: models.Property, data: schemas.PropertyUpdate
    ) -> models.Property:
        changes = data.model_dump(exclude_unset=True, exclude={"payment_plans"})
        for field, value in changes.items():
            if value is None and field in REQUIRED_FIELDS:
                continue
            setattr(prop, field, value)
        if ("base_price" in changes or "area" in changes) and "price_per_meter" not in changes:
            prop.price_per_meter = (Decimal(prop.base_price) / Decimal(prop.area)).quantize(
                Decimal("0.01")
            )
        if data.payment_plans is not None:
            prop.payment_plans = PropertyService._build_plans(data.payment_plans)
        db.commit()
        db.refresh(prop)
        return prop

    @staticmethod
    def delete_property(db: Session, prop: models.Property) -> None:
        db.delete(prop)
        db.commit()
        LOGGER.info("Deleted property %s", prop.id)

    @staticmethod
    def bulk_create(
        db: Session, agent_id: str, rows: Sequence[dict[str, Any]]
    ) -> list[models.Property]:
        """Validate every row and create them all, or none if any row is invalid."""

        if not rows:
            raise PropertyServiceError("No properties supplied")
        if len(rows) > MAX_BULK_UPLOAD_ROWS:
            raise PropertyServiceError(
                f"A single upload accepts at most {MAX_BULK_UPLOAD_ROWS} properties"
            )

        parsed: list[schemas.PropertyCreate] = []
        row_errors: list[schemas.PropertyRowError] = []
        for index, row in enumerate(rows):
            try:
                parsed.append(schemas.PropertyCreate.model_validate(row))
            except ValidationError as exc:
                row_errors.append(
                    schemas.PropertyRowError(index=index, errors=format_validation_errors(exc))
                )

        if row_errors:
            LOGGER.warning(
                "Bulk upload rejected for agent %s: %s of %s rows invalid",
                agent_id,
                len(row_errors),
                len(rows),
            )
            raise BulkUploadValidationError(row_errors, total=len(rows))

        created = [PropertyService._build_property(agent_id, data) for data in parsed]
        db.add_all(created)
        db.commit()
        LOGGER.info("Bulk upload created %s properties for agent %s", len(created), agent_id)
        return created
