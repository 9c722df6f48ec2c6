from decimal import Decimal
from typing import Literal, Optional
from pydantic import BaseModel, Field

PropertyType = Literal["apartment", "house", "condo", "townhouse", "studio"]
PropertyStatus = Literal["available", "occupied", "maintenance", "inactive"]


class PropertyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    address: str = Field(..., min_length=1, max_length=255)
    type: PropertyType = "apartment"
    bedrooms: int = Field(0, ge=0, le=20)
    bathrooms: int = Field(0, ge=0, le=20)
    size: int = Field(1, ge=1, le=100000)
    rent: Decimal = Field(..., gt=0, le=1_000_000_000, decimal_places=2)
    status: PropertyStatus = "available"
    description: Optional[str] = None


class PropertyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    address: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[PropertyType] = None
    bedrooms: Optional[int] = Field(None, ge=0, le=20)
    bathrooms: Optional[int] = Field(None, ge=0, le=20)
    size: Optional[int] = Field(None, ge=1, le=100000)
    rent: Optional[Decimal] = Field(None, gt=0, le=1_000_000_000, decimal_places=2)
    status: Optional[PropertyStatus] = None
    description: Optional[str] = None


class PropertyResponse(BaseModel):
    id: str
    name: str
    address: str
    type: str
    bedrooms: int
    bathrooms: int
    size: int
    rent: Decimal
    status: str
    description: Optional[str] = None
    tenant: Optional[str] = None
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}
