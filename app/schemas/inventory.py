"""
Inventory schemas
"""

from pydantic import Field
import uuid

from app.schemas.base import BaseSchema
from app.services.booking_target import ResourceType


class AvailabilityResponse(BaseSchema):
    resource_type: ResourceType
    resource_id: uuid.UUID
    capacity: int
    used: int
    available: int


class CapacityUpdate(BaseSchema):
    capacity: int = Field(..., ge=0)
