"""
Analytics Service Tests.
"""

import pytest
from datetime import datetime, timezone

from courier.app.models.parcel_enums import ParcelStatus
from courier.app.services.analytics import AnalyticsService

NOW = datetime(2024, 3, 20, 12, 0, tzinfo=timezone.utc)


def at(day, month=3, hour=9):
    return datetime(2024, month, day, hour, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_parcel_stats(db_session, sender, make_parcel):
    await make_parcel(sender, status=ParcelStatus.REQUESTED, created_at=at(5))
    await make_parcel(sender, status=ParcelStatus.APPROVED, weight=2, created_at=at(6))
    await make_parcel(sender, status=ParcelStatus.IN_TRANSIT, created_at=at(7))
    await make_parcel(sender, status=ParcelStatus.DELIVERED, created_at=at(1), delivered_at=at(3))
    await make_parcel(sender, status=ParcelStatus.DELIVERED, created_at=at(2), delivered_at=at(3))
    await make_parcel(sender, status=ParcelStatus.CANCELLED, created_at=at(8))
    await make_parcel(sender, status=ParcelStatus.PICKED_UP, created_at=at(9), is_blocked=True)
    # Last month: counted, but not in this month's revenue
    await make_parcel(sender, status=ParcelStatus.REQUESTED, created_at=at(10, month=2))

    stats = await AnalyticsService.get_parcel_stats(db_session, now=NOW)

    assert stats.total_parcels == 8
    assert stats.delivered_parcels == 2
    assert stats.in_transit_parcels == 2
    assert stats.pending_parcels == 3
    assert stats.cancelled_parcels == 1
    assert stats.average_delivery_time == "1.5 days"
    assert stats.revenue_this_month == 370.0
    assert stats.status_breakdown.requested == 2
    assert stats.status_breakdown.picked_up == 1
    assert stats.status_breakdown.returned == 0


@pytest.mark.asyncio
async def test_parcel_stats_on_empty_database(db_session):
    stats = await AnalyticsService.get_parcel_stats(db_session, now=NOW)

    assert stats.total_parcels == 0
    assert stats.average_delivery_time == "N/A"
    assert stats.revenue_this_month == 0.0


@pytest.mark.asyncio
async def test_december_revenue_window(db_session, sender, make_parcel):
    await make_parcel(sender, created_at=datetime(2024, 12, 31, 23, 0, tzinfo=timezone.utc))
    await make_parcel(sender, created_at=datetime(2025, 1, 1, 0, 30, tzinfo=timezone.utc))

    stats = await AnalyticsService.get_parcel_stats(
        db_session, now=datetime(2024, 12, 15, tzinfo=timezone.utc)
    )

    assert stats.revenue_this_month == 60.0
