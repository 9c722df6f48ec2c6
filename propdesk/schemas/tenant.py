from datetime import date
from decimal import Decimal
from typing import List, Literal, Optional
from pydantic import BaseModel, EmailStr, Field, model_validator

TenantStatus = Literal["active", "inactive", "overdue", "pending"]

PHONE_PATTERN = r"^\+?[1-9]\d{1,14}$"
NAME_PATTERN = r"^[a-zA-Z\s'-]+$"


class EmergencyContact(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    email: Optional[EmailStr] = None


class TenantCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, pattern=NAME_PATTERN)
    email: EmailStr
    phone: str = Field(..., pattern=PHONE_PATTERN)
    rent: Decimal = Field(..., gt=0, le=1_000_000_000, decimal_places=2)
    deposit: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    lease_start: date
    lease_end: date
    property_id: Optional[str] = None
    status: TenantStatus = "active"
    notes: Optional[str] = None
    emergency_contacts: List[EmergencyContact] = Field(default_factory=list)
    id_document_url: Optional[str] = None
    lease_document_url: Optional[str] = None
    avatar_url: Optional[str] = None

    @model_validator(mode="after")
    def _lease_order(self):
        if self.lease_end < self.lease_start:
            raise ValueError("lease_end must be on or after lease_start")
        return self


class TenantUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100, pattern=NAME_PATTERN)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    rent: Optional[Decimal] = Field(None, gt=0, le=1_000_000_000, decimal_places=2)
    deposit: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    lease_start: Optional[date] = None
    lease_end: Optional[date] = None
    property_id: Optional[str] = None
    status: Optional[TenantStatus] = None
    notes: Optional[str] = None
    emergency_contacts: Optional[List[EmergencyContact]] = None
    id_document_url: Optional[str] = None
    lease_document_url: Optional[str] = None
    avatar_url: Optional[str] = None


class TenantPropertySummary(BaseModel):
    id: str
    name: str
    address: str


class TenantResponse(BaseModel):
    id: str
    name: str
    email: str
    phone: str
    rent: Decimal
    deposit: Optional[Decimal] = None
    lease_start: str
    lease_end: str
    status: str
    notes: Optional[str] = None
    emergency_contacts: List[EmergencyContact] = []
    id_document_url: Optional[str] = None
    lease_document_url: Optional[str] = None
    avatar_url: Optional[str] = None
    property: Optional[TenantPropertySummary] = None
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}
