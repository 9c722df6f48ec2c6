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
from propdesk.schemas.property import PropertyCreate, PropertyUpdate, PropertyResponse

logger = structlog.get_logger()
router = APIRouter()


def _to_response(p: Property, tenant_name: Optional[str] = None) -> PropertyResponse:
    return PropertyResponse(
        id=str(p.id), name=p.name, address=p.address, type=p.type,
        bedrooms=p.bedrooms, bathrooms=p.bathrooms, size=p.size, rent=p.rent,
        status=p.status, description=p.description, tenant=tenant_name,
        created_at=iso(p.created_at), updated_at=iso(p.updated_at),
    )


async def _tenant_name(db: AsyncSession, property_id) -> Optional[str]:
    result = await db.execute(
        select(Tenant.name).where(Tenant.property_id == property_id).limit(1)
    )
    return result.scalar()


async def _get_or_404(db: AsyncSession, property_id: str) -> Property:
    result = await db.execute(
        select(Property).where(Property.id == parse_uuid(property_id, "property id"))
    )
    prop = result.scalar_one_or_none()
    if not prop:
        raise HTTPException(status_code=404, detail="Property not found")
    return prop


@router.get("", response_model=PaginatedResponse[PropertyResponse])
async def list_properties(
    page: int = Query(1, ge=1), limit: int = Query(50, ge=1, le=100),
    prop_status: str = Query(None, alias="status"),
    search: str = Query(None, max_length=100),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    q = select(Property)
    count_q = select(func.count(Property.id))
    if prop_status:
        q = q.where(Property.status == prop_status)
        count_q = count_q.where(Property.status == prop_status)
    if search:
        pattern = f"%{search}%"
        cond = Property.name.ilike(pattern) | Property.address.ilike(pattern)
        q = q.where(cond)
        count_q = count_q.where(cond)

    total = (await db.execute(count_q)).scalar() or 0
    result = await db.execute(
        q.order_by(Property.name).offset(page_offset(page, limit)).limit(limit)
    )
    items = []
    for p in result.scalars().all():
        items.append(_to_response(p, await _tenant_name(db, p.id)))
    return PaginatedResponse(data=items, pagination=Pagination.of(page, limit, total))


@router.get("/{property_id}", response_model=PropertyResponse)
async def get_property(
    property_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    prop = await _get_or_404(db, property_id)
    return _to_response(prop, await _tenant_name(db, prop.id))


@router.post("", response_model=PropertyResponse, status_code=status.HTTP_201_CREATED)
async def create_property(
    body: PropertyCreate,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    prop = Property(**body.model_dump())
    db.add(prop)
    await db.flush()
    await db.refresh(prop)
    logger.info("property_created", property_id=str(prop.id))
    return _to_response(prop)


@router.patch("/{property_id}", response_model=PropertyResponse)
async def update_property(
    property_id: str, body: PropertyUpdate,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    prop = await _get_or_404(db, property_id)
    for field, val in body.model_dump(exclude_unset=True).items():
        setattr(prop, field, val)
    await db.flush()
    await db.refresh(prop)
    return _to_response(prop, await _tenant_name(db, prop.id))


@router.delete("/{property_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_property(
    property_id: str,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    prop = await _get_or_404(db, property_id)
    await db.delete(prop)
    logger.info("property_deleted", property_id=property_id)
