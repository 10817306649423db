"""
Services API routes.
"""
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from mekacash.api.dependencies import get_db
from mekacash.api.middleware.error_handler import NotFoundException
from mekacash.models.services import Service, ServiceCategory


# Pydantic schemas
class ServiceResponse(BaseModel):
    """Service with its rating summary."""
    id: UUID
    name: str
    category: str
    provider_id: str
    description: Optional[str] = None
    base_price: float
    duration_minutes: int
    active: bool = True
    rating_average: float
    rating_total: int
    rating_percentage: float
    rating_distribution: Dict[str, int]
    total_bookings: int
    average_completion_time: float

    @classmethod
    def from_model(cls, s: Service) -> "ServiceResponse":
        return cls(
            id=s.id,
            name=s.name,
            category=s.category.value,
            provider_id=s.provider_id,
            description=s.description,
            base_price=float(s.base_price),
            duration_minutes=s.duration_minutes,
            active=s.active,
            rating_average=s.rating_average,
            rating_total=s.rating_total,
            rating_percentage=s.rating_percentage,
            rating_distribution=s.rating_distribution,
            total_bookings=s.total_bookings,
            average_completion_time=s.average_completion_time,
        )


# Router
router = APIRouter(prefix="/services", tags=["services"])


@router.get("", response_model=List[ServiceResponse])
def list_services(
    category: Optional[ServiceCategory] = Query(None, description="Filter by category"),
    active_only: bool = Query(True, description="Show only active services"),
    db: Session = Depends(get_db),
) -> List[ServiceResponse]:
    """
    List services, best rated first.

    Query parameters:
    - category: Filter by service category
    - active_only: Show only active services (default: true)
    """
    stmt = select(Service)

    if active_only:
        stmt = stmt.where(Service.active.is_(True))

    if category:
        stmt = stmt.where(Service.category == category)

    stmt = stmt.order_by(Service.rating_average.desc(), Service.name)

    services = db.execute(stmt).scalars().all()
    return [ServiceResponse.from_model(s) for s in services]


@router.get("/{service_id}", response_model=ServiceResponse)
def get_service(service_id: UUID, db: Session = Depends(get_db)) -> ServiceResponse:
    service = db.get(Service, service_id)
    if service is None:
        raise NotFoundException("Service", str(service_id))
    return ServiceResponse.from_model(service)
