"""
Parcel API Tests.

End-to-end flows through the HTTP layer:
- Sender creates, edits and cancels parcels
- Admin drives the lifecycle, blocks and assigns personnel
- Receiver lists and confirms parcels
- Public tracking
- Role enforcement and listing queries
"""

import pytest

from courier.app.core.jwt import create_user_token
from courier.app.models.enums import UserRole
from courier.app.models.parcel_enums import ParcelStatus


async def create_parcel(client, headers, payload):
    response = await client.post("/v1/parcels", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def move(client, headers, parcel_id, status, **extra):
    return await client.patch(
        f"/v1/parcels/{parcel_id}/status",
        json={"status": status, **extra},
        headers=headers
    )


# ============================================================================
# TEST 1: Happy path
# ============================================================================

@pytest.mark.asyncio
async def test_parcel_full_lifecycle(client, admin_headers, sender_headers, receiver_headers, parcel_payload):
    """Sender creates, admin dispatches, receiver confirms."""
    parcel = await create_parcel(client, sender_headers, parcel_payload(weight=1, urgency="standard"))

    assert parcel["trackingId"].startswith("TRK-")
    assert parcel["currentStatus"] == "requested"
    assert parcel["pricing"]["totalFee"] == 60.0
    assert parcel["pricing"]["baseFee"] == 50.0
    assert parcel["sender"]["email"] == "sender@test.com"
    assert len(parcel["statusHistory"]) == 1
    assert parcel["statusHistory"][0]["updatedBy"]["kind"] == "user"

    for status in ("approved", "picked_up", "in_transit", "out_for_delivery"):
        response = await move(client, admin_headers, parcel["id"], status, location="Dhaka Hub")
        assert response.status_code == 200, response.text
        assert response.json()["currentStatus"] == status

    response = await client.patch(f"/v1/parcels/{parcel['id']}/confirm-delivery", headers=receiver_headers)
    assert response.status_code == 200, response.text

    delivered = response.json()
    assert delivered["currentStatus"] == "delivered"
    assert delivered["deliveredAt"] is not None
    assert len(delivered["statusHistory"]) == 6
    assert delivered["statusHistory"][-1]["note"] == "Delivery confirmed by receiver"


@pytest.mark.asyncio
async def test_express_parcel_pricing(client, sender_headers, parcel_payload):
    parcel = await create_parcel(client, sender_headers, parcel_payload(weight=2, urgency="express"))

    assert parcel["pricing"] == {
        "baseFee": 50.0,
        "weightFee": 20.0,
        "urgencyFee": 25.0,
        "totalFee": 95.0,
        "discount": None,
        "couponCode": None,
    }


@pytest.mark.asyncio
async def test_public_tracking(client, sender_headers, parcel_payload):
    parcel = await create_parcel(client, sender_headers, parcel_payload())

    response = await client.get(f"/v1/parcels/track/{parcel['trackingId']}")
    assert response.status_code == 200
    assert response.json()["id"] == parcel["id"]

    response = await client.get("/v1/parcels/track/TRK-123")
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid tracking ID format"

    response = await client.get("/v1/parcels/track/TRK-19990101-999999")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_status_history_endpoint(client, admin_headers, sender_headers, parcel_payload):
    parcel = await create_parcel(client, sender_headers, parcel_payload())
    await move(client, admin_headers, parcel["id"], "approved", note="Looks good")

    response = await client.get(f"/v1/parcels/{parcel['id']}/status-history", headers=sender_headers)

    assert response.status_code == 200
    history = response.json()
    assert [entry["status"] for entry in history] == ["requested", "approved"]
    assert history[-1]["note"] == "Looks good"


# ============================================================================
# TEST 2: Validation and lifecycle errors
# ============================================================================

@pytest.mark.asyncio
async def test_overweight_parcel_rejected(client, sender_headers, parcel_payload):
    response = await client.post("/v1/parcels", json=parcel_payload(weight=51), headers=sender_headers)

    assert response.status_code == 400
    assert response.json()["details"]["errors"] == ["Weight cannot exceed 50kg"]


@pytest.mark.asyncio
async def test_nan_weight_rejected(client, sender_headers, parcel_payload):
    response = await client.post("/v1/parcels", json=parcel_payload(weight="NaN"), headers=sender_headers)

    assert response.status_code == 400
    assert response.json()["details"]["errors"] == ["Weight must be greater than 0"]


@pytest.mark.asyncio
async def test_invalid_urgency_rejected(client, sender_headers, parcel_payload):
    response = await client.post("/v1/parcels", json=parcel_payload(urgency="overnight"), headers=sender_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_past_delivery_date_rejected(client, sender_headers, parcel_payload):
    payload = parcel_payload()
    payload["deliveryInfo"]["preferredDeliveryDate"] = "2001-01-01T00:00:00Z"

    response = await client.post("/v1/parcels", json=payload, headers=sender_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_illegal_transition_returns_400(client, admin_headers, sender_headers, parcel_payload):
    parcel = await create_parcel(client, sender_headers, parcel_payload())

    response = await move(client, admin_headers, parcel["id"], "delivered")

    assert response.status_code == 400
    body = response.json()
    assert body["error_code"] == "ERR_TRANSITION_001"
    assert body["details"] == {"current_status": "requested", "requested_status": "delivered"}


@pytest.mark.asyncio
async def test_unknown_status_value_returns_422(client, admin_headers, sender_headers, parcel_payload):
    parcel = await create_parcel(client, sender_headers, parcel_payload())

    response = await move(client, admin_headers, parcel["id"], "lost")
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_cancel_flow(client, admin_headers, sender_headers, parcel_payload):
    parcel = await create_parcel(client, sender_headers, parcel_payload())

    response = await client.patch(
        f"/v1/parcels/{parcel['id']}/cancel",
        json={"reason": "Ordered twice"},
        headers=sender_headers
    )
    assert response.status_code == 200
    assert response.json()["currentStatus"] == "cancelled"
    assert response.json()["isCancelled"] is True

    response = await client.patch(f"/v1/parcels/{parcel['id']}/cancel", headers=sender_headers)
    assert response.status_code == 409
    assert response.json()["message"] == "Parcel is already cancelled"

    response = await move(client, admin_headers, parcel["id"], "approved")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_update_parcel_before_dispatch(client, admin_headers, sender_headers, parcel_payload):
    parcel = await create_parcel(client, sender_headers, parcel_payload())

    response = await client.patch(
        f"/v1/parcels/{parcel['id']}",
        json={"parcelDetails": {"weight": 3}, "deliveryInfo": {"deliveryInstructions": "Call first"}},
        headers=sender_headers
    )
    assert response.status_code == 200, response.text
    updated = response.json()
    assert updated["parcelDetails"]["weight"] == 3.0
    assert updated["pricing"]["totalFee"] == 80.0
    assert updated["deliveryInfo"]["deliveryInstructions"] == "Call first"

    await move(client, admin_headers, parcel["id"], "approved")
    await move(client, admin_headers, parcel["id"], "picked_up")

    response = await client.patch(
        f"/v1/parcels/{parcel['id']}",
        json={"parcelDetails": {"weight": 4}},
        headers=sender_headers
    )
    assert response.status_code == 409
    assert response.json()["message"] == "Cannot update parcel after it has been dispatched"


@pytest.mark.asyncio
async def test_blocked_parcel_cannot_move(client, admin_headers, sender_headers, parcel_payload):
    parcel = await create_parcel(client, sender_headers, parcel_payload())

    response = await client.patch(
        f"/v1/parcels/{parcel['id']}/block",
        json={"isBlocked": True, "reason": "Address check"},
        headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["isBlocked"] is True
    assert response.json()["statusHistory"][-1]["note"] == "Parcel blocked by admin: Address check"

    response = await move(client, admin_headers, parcel["id"], "approved")
    assert response.status_code == 409
    assert response.json()["message"] == "Cannot update status of blocked parcel"

    response = await client.patch(f"/v1/parcels/{parcel['id']}/cancel", headers=sender_headers)
    assert response.status_code == 409

    await client.patch(f"/v1/parcels/{parcel['id']}/block", json={"isBlocked": False}, headers=admin_headers)
    response = await move(client, admin_headers, parcel["id"], "approved")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_confirm_before_out_for_delivery(client, admin_headers, sender_headers, receiver_headers, parcel_payload):
    parcel = await create_parcel(client, sender_headers, parcel_payload())
    await move(client, admin_headers, parcel["id"], "approved")

    response = await client.patch(f"/v1/parcels/{parcel['id']}/confirm-delivery", headers=receiver_headers)

    assert response.status_code == 400
    assert response.json()["message"] == "Parcel must be out for delivery to confirm delivery"


# ============================================================================
# TEST 3: Role enforcement
# ============================================================================

@pytest.mark.asyncio
async def test_receiver_cannot_create_parcel(client, receiver_headers, parcel_payload):
    response = await client.post("/v1/parcels", json=parcel_payload(), headers=receiver_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_sender_cannot_change_status(client, sender_headers, parcel_payload):
    parcel = await create_parcel(client, sender_headers, parcel_payload())

    response = await move(client, sender_headers, parcel["id"], "approved")
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_unauthenticated_requests_rejected(client):
    response = await client.get("/v1/parcels/my-sent")
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_other_users_cannot_view_parcel(client, make_user, sender_headers, parcel_payload):
    stranger = await make_user("stranger@test.com", UserRole.RECEIVER)
    parcel = await create_parcel(client, sender_headers, parcel_payload())

    headers = {"Authorization": f"Bearer {create_user_token(stranger)}"}
    response = await client.get(f"/v1/parcels/{parcel['id']}", headers=headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_receiver_views_addressed_parcel(client, sender_headers, receiver_headers, parcel_payload):
    parcel = await create_parcel(client, sender_headers, parcel_payload())

    response = await client.get(f"/v1/parcels/{parcel['id']}", headers=receiver_headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_wrong_receiver_cannot_confirm(client, admin_headers, sender_headers, receiver_headers, parcel_payload):
    parcel = await create_parcel(client, sender_headers, parcel_payload(receiver_email="someone.else@test.com"))
    for status in ("approved", "picked_up", "in_transit", "out_for_delivery"):
        await move(client, admin_headers, parcel["id"], status)

    response = await client.patch(f"/v1/parcels/{parcel['id']}/confirm-delivery", headers=receiver_headers)
    assert response.status_code == 403


# ============================================================================
# TEST 4: Listings
# ============================================================================

@pytest.mark.asyncio
async def test_sender_lists_own_parcels(client, sender_headers, parcel_payload):
    for index in range(3):
        await create_parcel(client, sender_headers, parcel_payload(description=f"Box {index}"))

    response = await client.get("/v1/parcels/my-sent?limit=2&page=2", headers=sender_headers)

    assert response.status_code == 200
    body = response.json()
    assert len(body["items"]) == 1
    assert body["meta"] == {"page": 2, "limit": 2, "total": 3, "totalPage": 2}


@pytest.mark.asyncio
async def test_admin_list_with_search_and_projection(client, admin_headers, sender_headers, parcel_payload):
    await create_parcel(client, sender_headers, parcel_payload(description="Fragile vase"))
    await create_parcel(client, sender_headers, parcel_payload(description="Winter jacket"))

    response = await client.get(
        "/v1/parcels?search=vase&fields=trackingId,currentStatus",
        headers=admin_headers
    )

    assert response.status_code == 200
    items = response.json()["items"]
    assert len(items) == 1
    assert set(items[0].keys()) == {"id", "trackingId", "currentStatus"}


@pytest.mark.asyncio
async def test_unknown_filter_returns_400(client, admin_headers):
    response = await client.get("/v1/parcels?hashedPassword=x", headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["message"] == "Unknown query field 'hashedPassword'"


@pytest.mark.asyncio
async def test_receiver_lists_and_history(client, admin_headers, sender_headers, receiver_headers, parcel_payload):
    first = await create_parcel(client, sender_headers, parcel_payload())
    await create_parcel(client, sender_headers, parcel_payload())
    await create_parcel(client, sender_headers, parcel_payload(receiver_email="someone.else@test.com"))

    for status in ("approved", "picked_up", "in_transit", "out_for_delivery"):
        await move(client, admin_headers, first["id"], status)
    await client.patch(f"/v1/parcels/{first['id']}/confirm-delivery", headers=receiver_headers)

    response = await client.get("/v1/parcels/my-received", headers=receiver_headers)
    assert response.json()["meta"]["total"] == 2

    response = await client.get("/v1/parcels/delivery-history", headers=receiver_headers)
    items = response.json()["items"]
    assert [item["id"] for item in items] == [first["id"]]


# ============================================================================
# TEST 5: Admin operations
# ============================================================================

@pytest.mark.asyncio
async def test_assign_personnel(client, admin_headers, sender_headers, parcel_payload):
    parcel = await create_parcel(client, sender_headers, parcel_payload())

    response = await client.patch(
        f"/v1/parcels/{parcel['id']}/assign",
        json={"name": "Karim Rider", "phone": "+8801788888888"},
        headers=admin_headers
    )

    assert response.status_code == 200
    assert response.json()["deliveryPersonnel"] == {
        "id": None,
        "name": "Karim Rider",
        "phone": "+8801788888888",
    }


@pytest.mark.asyncio
async def test_assign_requires_reference(client, admin_headers, sender_headers, parcel_payload):
    parcel = await create_parcel(client, sender_headers, parcel_payload())

    response = await client.patch(f"/v1/parcels/{parcel['id']}/assign", json={}, headers=admin_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_delete_parcel(client, admin_headers, sender_headers, parcel_payload):
    parcel = await create_parcel(client, sender_headers, parcel_payload())

    response = await client.delete(f"/v1/parcels/{parcel['id']}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["success"] is True

    response = await client.get(f"/v1/parcels/{parcel['id']}", headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_parcel_events_are_audited(client, admin_headers, sender_headers, parcel_payload):
    parcel = await create_parcel(client, sender_headers, parcel_payload())
    await move(client, admin_headers, parcel["id"], "approved")

    response = await client.get(f"/v1/admin/audit-logs?parcel_id={parcel['id']}", headers=admin_headers)

    assert response.status_code == 200
    actions = [log["action"] for log in response.json()["logs"]]
    assert actions == ["PARCEL_STATUS_CHANGED", "PARCEL_CREATED"]


@pytest.mark.asyncio
async def test_parcel_stats_endpoint(client, admin_headers, sender_headers, parcel_payload):
    parcel = await create_parcel(client, sender_headers, parcel_payload())
    await create_parcel(client, sender_headers, parcel_payload(weight=2))
    await client.patch(f"/v1/parcels/{parcel['id']}/cancel", headers=sender_headers)

    response = await client.get("/v1/parcels/stats", headers=admin_headers)

    assert response.status_code == 200
    stats = response.json()
    assert stats["totalParcels"] == 2
    assert stats["pendingParcels"] == 1
    assert stats["cancelledParcels"] == 1
    assert stats["averageDeliveryTime"] == "N/A"
    assert stats["revenueThisMonth"] == 70.0
    assert stats["statusBreakdown"]["requested"] == 1
    assert stats["statusBreakdown"]["cancelled"] == 1
    assert set(stats["statusBreakdown"]) == {status.value for status in ParcelStatus}


@pytest.mark.asyncio
async def test_stats_require_admin(client, sender_headers):
    response = await client.get("/v1/parcels/stats", headers=sender_headers)
    assert response.status_code == 403
