from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from propdesk.database import get_db
from propdesk.middleware.auth import get_current_user
from propdesk.models.payment import Payment
from propdesk.models.property import Property
from propdesk.models.tenant import Tenant
from propdesk.services.reconciliation import OPEN_STATUSES

router = APIRouter()


def _month_bounds(today):
    start = today.replace(day=1)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


@router.get("/summary")
async def get_dashboard_summary(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    today = datetime.utcnow().date()
    month_start, month_end = _month_bounds(today)

    total_properties = (await db.execute(select(func.count(Property.id)))).scalar() or 0
    active_tenants = (
        await db.execute(select(func.count(Tenant.id)).where(Tenant.status == "active"))
    ).scalar() or 0

    # Collected this month, by the date the money landed
    monthly_revenue = (
        await db.execute(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(
                Payment.status == "paid",
                Payment.paid_date >= month_start,
                Payment.paid_date < month_end,
            )
        )
    ).scalar() or Decimal("0")

    payment_requests = (
        await db.execute(
            select(func.count(Payment.id)).where(
                Payment.momo_reference_id.is_not(None),
                Payment.status.in_([s.value for s in OPEN_STATUSES]),
            )
        )
    ).scalar() or 0

    # Collection rate over everything due this month
    due_this_month = (
        await db.execute(
            select(func.count(Payment.id)).where(
                Payment.due_date >= month_start,
                Payment.due_date < month_end,
                Payment.status != "cancelled",
            )
        )
    ).scalar() or 0
    paid_this_month = (
        await db.execute(
            select(func.count(Payment.id)).where(
                Payment.due_date >= month_start,
                Payment.due_date < month_end,
                Payment.status == "paid",
            )
        )
    ).scalar() or 0
    collection_rate = round(paid_this_month * 100 / due_this_month, 1) if due_this_month else 0.0

    return {
        "total_properties": total_properties,
        "active_tenants": active_tenants,
        "monthly_revenue": str(monthly_revenue),
        "payment_requests": payment_requests,
        "collection_rate_percent": collection_rate,
    }
