from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from propdesk.database import get_db
from propdesk.middleware.auth import get_current_user
from propdesk.middleware.authorization import require_roles
from propdesk.models.property import Property
from propdesk.models.tenant import Tenant
from propdesk.routes.common import iso, parse_uuid
from propdesk.schemas.common import PaginatedResponse, Pagination, page_offset
from propdesk.schemas.tenant import (
    TenantCreate,
    TenantUpdate,
    TenantResponse,
    TenantPropertySummary,
)

logger = structlog.get_logger()
router = APIRouter()


def _to_response(t: Tenant, prop: Optional[Property] = None) -> TenantResponse:
    return TenantResponse(
        id=str(t.id), name=t.name, email=t.email, phone=t.phone,
        rent=t.rent, deposit=t.deposit,
        lease_start=iso(t.lease_start), lease_end=iso(t.lease_end),
        status=t.status, notes=t.notes,
        emergency_contacts=t.emergency_contacts or [],
        id_document_url=t.id_document_url,
        lease_document_url=t.lease_document_url,
        avatar_url=t.avatar_url,
        property=(
            TenantPropertySummary(id=str(prop.id), name=prop.name, address=prop.address)
            if prop else None
        ),
        created_at=iso(t.created_at), updated_at=iso(t.updated_at),
    )


async def _get_or_404(db: AsyncSession, tenant_id: str) -> tuple[Tenant, Optional[Property]]:
    result = await db.execute(
        select(Tenant, Property)
        .outerjoin(Property, Tenant.property_id == Property.id)
        .where(Tenant.id == parse_uuid(tenant_id, "tenant id"))
    )
    row = result.first()
    if not row:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return row[0], row[1]


async def _check_property(db: AsyncSession, property_id: Optional[str]):
    if not property_id:
        return None
    pid = parse_uuid(property_id, "property id")
    result = await db.execute(select(Property.id).where(Property.id == pid))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="Property not found")
    return pid


def _dump(body) -> dict:
    data = body.model_dump(exclude_unset=True, mode="python")
    if "emergency_contacts" in data and data["emergency_contacts"] is not None:
        data["emergency_contacts"] = [
            c.model_dump(mode="json") for c in body.emergency_contacts
        ]
    return data


@router.get("", response_model=PaginatedResponse[TenantResponse])
async def list_tenants(
    page: int = Query(1, ge=1), limit: int = Query(50, ge=1, le=100),
    tenant_status: str = Query(None, alias="status"),
    property_id: str = Query(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    q = select(Tenant, Property).outerjoin(Property, Tenant.property_id == Property.id)
    count_q = select(func.count(Tenant.id))
    if tenant_status:
        q = q.where(Tenant.status == tenant_status)
        count_q = count_q.where(Tenant.status == tenant_status)
    if property_id:
        pid = parse_uuid(property_id, "property id")
        q = q.where(Tenant.property_id == pid)
        count_q = count_q.where(Tenant.property_id == pid)

    total = (await db.execute(count_q)).scalar() or 0
    result = await db.execute(
        q.order_by(Tenant.name).offset(page_offset(page, limit)).limit(limit)
    )
    items = [_to_response(t, p) for t, p in result.all()]
    return PaginatedResponse(data=items, pagination=Pagination.of(page, limit, total))


@router.get("/{tenant_id}", response_model=TenantResponse)
async def get_tenant(
    tenant_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    tenant, prop = await _get_or_404(db, tenant_id)
    return _to_response(tenant, prop)


@router.post("", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    body: TenantCreate,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    data = _dump(body)
    data["property_id"] = await _check_property(db, body.property_id)
    tenant = Tenant(**data)
    db.add(tenant)
    await db.flush()
    logger.info("tenant_created", tenant_id=str(tenant.id))
    tenant, prop = await _get_or_404(db, str(tenant.id))
    return _to_response(tenant, prop)


@router.patch("/{tenant_id}", response_model=TenantResponse)
async def update_tenant(
    tenant_id: str, body: TenantUpdate,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    tenant, _ = await _get_or_404(db, tenant_id)
    data = _dump(body)
    if "property_id" in data:
        data["property_id"] = await _check_property(db, data["property_id"])
    for field, val in data.items():
        setattr(tenant, field, val)
    if tenant.lease_end < tenant.lease_start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="lease_end must be on or after lease_start",
        )
    await db.flush()
    tenant, prop = await _get_or_404(db, tenant_id)
    return _to_response(tenant, prop)


@router.delete("/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tenant(
    tenant_id: str,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    tenant, _ = await _get_or_404(db, tenant_id)
    await db.delete(tenant)
    logger.info("tenant_deleted", tenant_id=tenant_id)
