"""
Inventory endpoints
"""

from typing import Any
from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_inventory_ledger
from app.core.database import get_session, db_manager
from app.core.security import CurrentUser, get_current_user, require_admin
from app.schemas.inventory import AvailabilityResponse, CapacityUpdate
from app.schemas.response import SuccessResponse
from app.services.booking_target import ResourceType
from app.services.inventory_ledger import Availability, InventoryLedger

router = APIRouter()


def _availability_response(availability: Availability) -> AvailabilityResponse:
    return AvailabilityResponse(
        resource_type=availability.resource_type,
        resource_id=availability.resource_id,
        capacity=availability.capacity,
        used=availability.used,
        available=availability.available,
    )


@router.get("/{resource_type}/{resource_id}", response_model=SuccessResponse[AvailabilityResponse])
async def get_availability(
    resource_type: ResourceType,
    resource_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    ledger: InventoryLedger = Depends(get_inventory_ledger)
) -> Any:
    availability = await ledger.check_availability(db, resource_type, resource_id)
    return SuccessResponse(data=_availability_response(availability))


@router.patch("/{resource_type}/{resource_id}/capacity", response_model=SuccessResponse[AvailabilityResponse])
async def update_capacity(
    resource_type: ResourceType,
    resource_id: UUID,
    update: CapacityUpdate,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
    ledger: InventoryLedger = Depends(get_inventory_ledger)
) -> Any:
    """Resize a resource without dropping existing bookings"""
    async with db_manager.transaction(db):
        availability = await ledger.set_capacity(db, resource_type, resource_id, update.capacity)
    return SuccessResponse(data=_availability_response(availability), message="Capacity updated successfully")
