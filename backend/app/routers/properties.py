"""Router containing CRUD operations for an agent's property inventory."""

from __future__ import annotations

import enum
from decimal import Decimal
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db, get_session_factory
from ..security import require_agent
from ..services import (
    BulkUploadValidationError,
    PaginationParams,
    PropertyService,
    PropertyServiceError,
    SortOrder,
)

router = APIRouter(dependencies=[Depends(require_agent)])

STATUS_FILTER_PATTERN = "^(all|available|sold|reserved)$"


class PropertySortField(str, enum.Enum):
    CREATED_AT = "created_at"
    BASE_PRICE = "base_price"
    AREA = "area"


def _get_owned_property(db: Session, agent: models.Agent, property_id: str) -> models.Property:
    prop = PropertyService.get_property(db, agent.id, property_id)
    if prop is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
    return prop


@router.get("", response_model=schemas.PropertyListResponse)
def list_properties(
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: int = Query(10, ge=1, le=100, description="Maximum number of properties per page"),
    sort_by: PropertySortField = Query(PropertySortField.CREATED_AT),
    sort_order: SortOrder = Query(SortOrder.DESC),
    status_filter: Optional[str] = Query(
        None, alias="status", pattern=STATUS_FILTER_PATTERN, description="Filter by status"
    ),
    property_type: Optional[str] = Query(None, max_length=50),
    city: Optional[str] = Query(None, max_length=100, description="Case-insensitive match"),
    bedrooms: Optional[int] = Query(None, ge=0),
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    agent: models.Agent = Depends(require_agent),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> schemas.PropertyListResponse:
    """Return the agent's properties with pagination, filters and payment plans."""

    if min_price is not None and max_price is not None and min_price > max_price:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="min_price cannot be greater than max_price",
        )
    status_value = None
    if status_filter and status_filter != "all":
        status_value = models.PropertyStatus(status_filter)

    result = PropertyService.list_properties(
        session_factory,
        agent.id,
        PaginationParams(
            page=page, limit=limit, sort_by=sort_by.value, sort_order=sort_order
        ),
        status=status_value,
        property_type=property_type,
        city=city,
        bedrooms=bedrooms,
        min_price=min_price,
        max_price=max_price,
    )
    return schemas.PropertyListResponse.model_validate(result, from_attributes=True)


@router.post("", response_model=schemas.PropertyRead, status_code=status.HTTP_201_CREATED)
def create_property(
    payload: schemas.PropertyCreate,
    agent: models.Agent = Depends(require_agent),
    db: Session = Depends(get_db),
) -> schemas.PropertyRead:
    """Create a property together with its payment plans."""

    return PropertyService.create_property(db, agent.id, payload)


@router.post(
    "/bulk-upload",
    response_model=schemas.PropertyBulkUploadResult,
    status_code=status.HTTP_201_CREATED,
)
def bulk_upload_properties(
    payload: schemas.PropertyBulkUploadRequest,
    agent: models.Agent = Depends(require_agent),
    db: Session = Depends(get_db),
) -> schemas.PropertyBulkUploadResult:
    """Create many properties at once; nothing is stored if any row is invalid."""

    try:
        created = PropertyService.bulk_create(db, agent.id, payload.properties)
    except BulkUploadValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": str(exc),
                "total": exc.total,
                "invalid_properties": [error.model_dump() for error in exc.row_errors],
            },
        ) from exc
    except PropertyServiceError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return schemas.PropertyBulkUploadResult(
        created=len(created), property_ids=[prop.id for prop in created]
    )


@router.get("/{property_id}", response_model=schemas.PropertyRead)
def get_property(
    property_id: str,
    agent: models.Agent = Depends(require_agent),
    db: Session = Depends(get_db),
) -> schemas.PropertyRead:
    return _get_owned_property(db, agent, property_id)


@router.put("/{property_id}", response_model=schemas.PropertyRead)
def update_property(
    property_id: str,
    payload: schemas.PropertyUpdate,
    agent: models.Agent = Depends(require_agent),
    db: Session = Depends(get_db),
) -> schemas.PropertyRead:
    """Update a property's information."""

    prop = _get_owned_property(db, agent, property_id)
    return PropertyService.update_property(db, prop, payload)


@router.delete("/{property_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_property(
    property_id: str,
    agent: models.Agent = Depends(require_agent),
    db: Session = Depends(get_db),
) -> None:
    """Delete a property and its payment plans."""

    prop = _get_owned_property(db, agent, property_id)
    PropertyService.delete_property(db, prop)
