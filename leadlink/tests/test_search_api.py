import logging
import uuid

import pytest

from leadlink.common.security import create_access_token
from leadlink.integrations.razorpay_client import sign_payment

BASE = "/api/v1/search"


async def _enquire(client, headers, keyword="plumber"):
    return await client.post(
        f"{BASE}/enquire",
        headers=headers,
        json={"search_keyword": keyword, "explanation": "Bathroom tap leaking"},
    )


async def _accept_and_pay(client, enquiry_id, headers, signature=None):
    resp = await client.post(f"{BASE}/enquiry/{enquiry_id}/accept/payment", headers=headers)
    assert resp.status_code == 200
    order_id = resp.json()["data"]["order_id"]
    return await client.post(
        f"{BASE}/enquiry/{enquiry_id}/verify-payment",
        headers=headers,
        json={
            "order_id": order_id,
            "payment_id": "pay_test",
            "signature": signature or sign_payment(order_id, "pay_test"),
        },
    )


# ---------- Health and auth ----------


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_missing_token_is_401_envelope(client):
    response = await client.get(f"{BASE}/my-enquiries")
    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "AUTHENTICATION_REQUIRED"


@pytest.mark.asyncio
async def test_garbage_token_is_401(client):
    response = await client.get(f"{BASE}/my-enquiries", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_for_unknown_account_is_401(client):
    token = create_access_token({"sub": str(uuid.uuid4()), "role": "user"})
    response = await client.get(f"{BASE}/my-enquiries", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_vendor_cannot_use_user_endpoints(client, vendor_auth_headers):
    response = await client.get(f"{BASE}/my-enquiries", headers=vendor_auth_headers)
    assert response.status_code == 403
    assert response.json()["error"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_user_cannot_use_vendor_endpoints(client, auth_headers):
    response = await client.get(f"{BASE}/vendor/enquiries", headers=auth_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_inactive_vendor_is_403(client, make_vendor, headers_for):
    dormant = await make_vendor(active=False)
    response = await client.get(f"{BASE}/vendor/enquiries", headers=headers_for(dormant))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_access_log_names_the_caller(client, vendor, vendor_auth_headers, caplog):
    caplog.set_level(logging.INFO, logger="leadlink.middleware")
    response = await client.get(
        f"{BASE}/vendor/enquiries", headers={**vendor_auth_headers, "X-Request-ID": "req-42"}
    )

    assert response.headers["X-Request-ID"] == "req-42"
    assert "X-Request-Duration-Ms" in response.headers
    lines = [r.getMessage() for r in caplog.records if r.name == "leadlink.middleware"]
    assert any(f"account=vendor:{vendor.id}" in line and "request=req-42" in line for line in lines)


@pytest.mark.asyncio
async def test_access_log_without_token(client, caplog):
    caplog.set_level(logging.INFO, logger="leadlink.middleware")
    response = await client.get("/health")

    assert response.headers["X-Request-ID"]
    lines = [r.getMessage() for r in caplog.records if r.name == "leadlink.middleware"]
    assert any("/health 200" in line and "account=anonymous" in line for line in lines)


# ---------- Location ----------


@pytest.mark.asyncio
async def test_update_and_read_location(client, make_user, headers_for):
    user = await make_user(latitude=None, longitude=None)
    headers = headers_for(user)

    response = await client.get(f"{BASE}/location", headers=headers)
    assert response.status_code == 200
    assert response.json()["data"] is None

    response = await client.put(
        f"{BASE}/location",
        headers=headers,
        json={"latitude": 19.076, "longitude": 72.8777, "city": "Mumbai", "pincode": "400001"},
    )
    assert response.status_code == 200
    assert response.json()["data"]["city"] == "Mumbai"

    response = await client.get(f"{BASE}/location", headers=headers)
    assert response.json()["data"]["latitude"] == 19.076


@pytest.mark.asyncio
async def test_location_out_of_range_is_400(client, auth_headers):
    response = await client.put(f"{BASE}/location", headers=auth_headers, json={"latitude": 91, "longitude": 0})
    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"


# ---------- Enquiries ----------


@pytest.mark.asyncio
async def test_enquire_creates_leads(client, auth_headers, vendor, transport):
    response = await _enquire(client, auth_headers)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["matched_vendors"] == 1
    match = body["data"]["matches"][0]
    assert match["vendor_id"] == str(vendor.id)
    assert match["status"] == "pending"
    assert match["vendor"]["business_name"] == vendor.business_name
    assert transport.sent[0][0] == f"vendor-{vendor.id}"


@pytest.mark.asyncio
async def test_enquire_with_no_vendors_is_404(client, auth_headers, make_vendor):
    await make_vendor(latitude=19.2000, longitude=72.9500)
    response = await _enquire(client, auth_headers)

    assert response.status_code == 404
    assert response.json()["error"] == "NO_VENDORS_FOUND"

    listing = await client.get(f"{BASE}/my-enquiries", headers=auth_headers)
    assert listing.json()["count"] == 0


@pytest.mark.asyncio
async def test_enquire_without_location_is_400(client, make_user, headers_for, vendor):
    user = await make_user(latitude=None, longitude=None)
    response = await _enquire(client, headers_for(user))
    assert response.status_code == 400
    assert "location" in response.json()["message"]


@pytest.mark.asyncio
async def test_blank_keyword_is_400(client, auth_headers):
    response = await _enquire(client, auth_headers, keyword="   ")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_my_enquiries_lists_own(client, auth_headers, vendor):
    await _enquire(client, auth_headers)
    response = await client.get(f"{BASE}/my-enquiries", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["count"] == 1


@pytest.mark.asyncio
async def test_vendor_only_sees_own_lead(client, auth_headers, make_vendor, headers_for):
    first = await make_vendor()
    second = await make_vendor(latitude=19.0790, longitude=72.8790)
    await _enquire(client, auth_headers)

    response = await client.get(f"{BASE}/vendor/enquiries", headers=headers_for(first))
    assert response.status_code == 200
    matches = response.json()["data"][0]["matches"]
    assert [m["vendor_id"] for m in matches] == [str(first.id)]

    response = await client.get(f"{BASE}/vendor/enquiries", headers=headers_for(second))
    assert [m["vendor_id"] for m in response.json()["data"][0]["matches"]] == [str(second.id)]


# ---------- Vendor responses ----------


@pytest.mark.asyncio
async def test_paid_acceptance_flow(client, auth_headers, vendor_auth_headers, user, vendor, transport):
    enquiry_id = (await _enquire(client, auth_headers)).json()["data"]["id"]

    order_resp = await client.post(f"{BASE}/enquiry/{enquiry_id}/accept/payment", headers=vendor_auth_headers)
    assert order_resp.status_code == 200
    order = order_resp.json()["data"]
    assert order["amount_minor"] == 900
    assert order["currency"] == "INR"
    assert order["gateway_public_key"]

    response = await client.post(
        f"{BASE}/enquiry/{enquiry_id}/verify-payment",
        headers=vendor_auth_headers,
        json={
            "order_id": order["order_id"],
            "payment_id": "pay_test",
            "signature": sign_payment(order["order_id"], "pay_test"),
        },
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "accepted"
    assert response.json()["data"]["payment_status"] == "paid"

    updates = transport.on(f"user-{user.id}", "enquiry-update")
    assert len(updates) == 1
    assert updates[0]["status"] == "accepted"

    payments = await client.get(f"{BASE}/vendor/payments", headers=vendor_auth_headers)
    assert payments.json()["count"] == 1
    assert payments.json()["data"][0]["status"] == "success"


@pytest.mark.asyncio
async def test_tampered_payment_is_400(client, auth_headers, vendor_auth_headers, vendor):
    enquiry_id = (await _enquire(client, auth_headers)).json()["data"]["id"]

    response = await _accept_and_pay(client, enquiry_id, vendor_auth_headers, signature="f" * 64)
    assert response.status_code == 400
    assert response.json()["error"] == "PAYMENT_VERIFICATION_FAILED"

    payments = await client.get(f"{BASE}/vendor/payments", headers=vendor_auth_headers)
    assert payments.json()["data"][0]["status"] == "failed"

    listing = await client.get(f"{BASE}/vendor/enquiries", headers=vendor_auth_headers)
    assert listing.json()["data"][0]["matches"][0]["status"] == "pending"


@pytest.mark.asyncio
async def test_accepting_twice_is_409(client, auth_headers, vendor_auth_headers, vendor):
    enquiry_id = (await _enquire(client, auth_headers)).json()["data"]["id"]
    await _accept_and_pay(client, enquiry_id, vendor_auth_headers)

    response = await client.post(f"{BASE}/enquiry/{enquiry_id}/accept/payment", headers=vendor_auth_headers)
    assert response.status_code == 409
    assert response.json()["message"] == "You have already accepted this enquiry"


@pytest.mark.asyncio
async def test_reject(client, auth_headers, vendor_auth_headers, vendor):
    enquiry_id = (await _enquire(client, auth_headers)).json()["data"]["id"]

    response = await client.post(
        f"{BASE}/enquiry/{enquiry_id}/reject",
        headers=vendor_auth_headers,
        json={"response_message": "Not in my area"},
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "rejected"

    again = await client.post(f"{BASE}/enquiry/{enquiry_id}/reject", headers=vendor_auth_headers)
    assert again.status_code == 409
    assert again.json()["error"] == "CONFLICTING_STATE"


@pytest.mark.asyncio
async def test_legacy_status_update(client, auth_headers, vendor_auth_headers, vendor):
    enquiry_id = (await _enquire(client, auth_headers)).json()["data"]["id"]

    response = await client.put(
        f"{BASE}/enquiry/{enquiry_id}/status",
        headers=vendor_auth_headers,
        json={"status": "accepted", "response_message": "Coming by at 5"},
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "accepted"
    assert response.json()["data"]["vendor_response"] == "Coming by at 5"


@pytest.mark.asyncio
async def test_legacy_status_update_rejects_unknown_status(client, auth_headers, vendor_auth_headers, vendor):
    enquiry_id = (await _enquire(client, auth_headers)).json()["data"]["id"]
    response = await client.put(
        f"{BASE}/enquiry/{enquiry_id}/status", headers=vendor_auth_headers, json={"status": "maybe"}
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unknown_enquiry_is_404(client, vendor_auth_headers):
    response = await client.post(
        f"{BASE}/enquiry/{uuid.uuid4()}/accept/payment", headers=vendor_auth_headers
    )
    assert response.status_code == 404
    assert response.json()["success"] is False


# ---------- Autocomplete ----------


@pytest.mark.asyncio
async def test_vendor_autocomplete(client, auth_headers, make_vendor):
    near = await make_vendor()
    await make_vendor(latitude=19.2000, longitude=72.9500)

    response = await client.get(
        f"{BASE}/vendors",
        headers=auth_headers,
        params={"keyword": "plumb", "latitude": 19.076, "longitude": 72.8777},
    )
    assert response.status_code == 200
    assert [v["id"] for v in response.json()["data"]] == [str(near.id)]

    response = await client.get(f"{BASE}/vendors", headers=auth_headers, params={"keyword": "plumb"})
    assert response.json()["count"] == 2


@pytest.mark.asyncio
async def test_vendor_autocomplete_needs_both_coordinates(client, auth_headers):
    response = await client.get(
        f"{BASE}/vendors", headers=auth_headers, params={"keyword": "plumb", "latitude": 19.0}
    )
    assert response.status_code == 400
