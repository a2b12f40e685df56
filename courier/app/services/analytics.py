"""
Analytics Service.

Aggregates parcel and user statistics for the admin dashboard.
Focused on READ-ONLY operations.
"""

from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from courier.app.models.parcel import Parcel
from courier.app.models.parcel_enums import ParcelStatus
from courier.app.models.user import User
from courier.app.models.enums import UserRole
from courier.app.schemas.parcel import ParcelStatsResponse, StatusBreakdown
from courier.app.schemas.admin import UserStatsResponse


def _month_bounds(now: datetime):
    """Start of the current UTC month and start of the next one."""
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class AnalyticsService:

    @staticmethod
    async def get_parcel_stats(db: AsyncSession, now: datetime = None) -> ParcelStatsResponse:
        """
        Parcel statistics across the whole system.

        Blocked parcels are counted in the bucket of their current status.
        """
        now = now or datetime.now(timezone.utc)

        # 1. Status breakdown
        status_query = select(Parcel.current_status, func.count(Parcel.id)).group_by(Parcel.current_status)
        buckets = {status.value: 0 for status in ParcelStatus}
        for status, count in (await db.execute(status_query)).all():
            buckets[status.value] = count

        breakdown = StatusBreakdown(**buckets)

        # 2. Revenue for the current calendar month
        month_start, month_end = _month_bounds(now)
        revenue_query = select(func.sum(Parcel.total_fee)).where(
            Parcel.created_at >= month_start,
            Parcel.created_at < month_end,
            Parcel.current_status != ParcelStatus.CANCELLED
        )
        revenue = (await db.execute(revenue_query)).scalar() or 0.0

        # 3. Average delivery time over delivered parcels
        delivery_query = select(Parcel.created_at, Parcel.delivered_at).where(
            Parcel.current_status == ParcelStatus.DELIVERED,
            Parcel.delivered_at.is_not(None)
        )
        durations = [
            (_as_utc(delivered_at) - _as_utc(created_at)).total_seconds() / 86400
            for created_at, delivered_at in (await db.execute(delivery_query)).all()
        ]
        if durations:
            average_delivery_time = f"{sum(durations) / len(durations):.1f} days"
        else:
            average_delivery_time = "N/A"

        return ParcelStatsResponse(
            total_parcels=sum(buckets.values()),
            delivered_parcels=breakdown.delivered,
            in_transit_parcels=breakdown.in_transit + breakdown.out_for_delivery + breakdown.picked_up,
            pending_parcels=breakdown.requested + breakdown.approved,
            cancelled_parcels=breakdown.cancelled + breakdown.returned + breakdown.failed_delivery,
            average_delivery_time=average_delivery_time,
            revenue_this_month=round(revenue, 2),
            status_breakdown=breakdown
        )

    @staticmethod
    async def get_user_stats(db: AsyncSession) -> UserStatsResponse:
        """User counts by role and block state."""
        role_query = select(User.role, func.count(User.id)).group_by(User.role)
        roles = {role: 0 for role in UserRole}
        for role, count in (await db.execute(role_query)).all():
            roles[role] = count

        blocked_query = select(func.count(User.id)).where(User.is_blocked == True)
        blocked = (await db.execute(blocked_query)).scalar() or 0

        total = sum(roles.values())
        return UserStatsResponse(
            total_users=total,
            admin_count=roles[UserRole.ADMIN],
            sender_count=roles[UserRole.SENDER],
            receiver_count=roles[UserRole.RECEIVER],
            blocked_users=blocked,
            active_users=total - blocked
        )
