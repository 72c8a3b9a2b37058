"""
Integration tests for payment messages.

Tests sending, inbox and pending views, status transitions and request
approval.
"""

from decimal import Decimal

import pytest

from backend.app.models.enums import UserRole


@pytest.fixture
async def team(make_member, headers_for):
    owner = await make_member("02keyperson", UserRole.KEY_PERSON)
    staff = await make_member("02staff", UserRole.STAFF)
    return headers_for(owner), headers_for(staff)


async def send(client, headers, recipient, message_type="request", amount="120.50", **extra):
    payload = {"recipient_public_key": recipient, "message_type": message_type, "amount": amount, **extra}
    return await client.post("/api/messages", json=payload, headers=headers)


@pytest.mark.asyncio
async def test_send_and_receive_request(client, team):
    owner_headers, staff_headers = team

    response = await send(client, staff_headers, "02keyperson", purpose="Office chairs")
    assert response.status_code == 201
    message = response.json()
    assert message["status"] == "pending"
    assert message["sender_public_key"] == "02staff"
    assert Decimal(message["amount"]) == Decimal("120.50")

    inbox = (await client.get("/api/messages", headers=owner_headers)).json()
    assert [m["id"] for m in inbox] == [message["id"]]

    sent = (await client.get("/api/messages/sent", headers=staff_headers)).json()
    assert [m["purpose"] for m in sent] == ["Office chairs"]

    pending = (await client.get("/api/messages/pending/02keyperson", headers=staff_headers)).json()
    assert len(pending) == 1


@pytest.mark.asyncio
async def test_request_needs_amount(client, team):
    _, staff_headers = team
    response = await send(client, staff_headers, "02keyperson", amount=None)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unknown_recipient(client, team):
    _, staff_headers = team
    response = await send(client, staff_headers, "02nobody", message_type="notification", amount=None)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_only_recipient_can_acknowledge(client, team):
    owner_headers, staff_headers = team
    message_id = (await send(client, staff_headers, "02keyperson")).json()["id"]

    response = await client.patch(f"/api/messages/{message_id}", json={"status": "acknowledged"}, headers=staff_headers)
    assert response.status_code == 403

    response = await client.patch(f"/api/messages/{message_id}", json={"status": "acknowledged"}, headers=owner_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "acknowledged"

    # Acknowledged messages are final
    response = await client.patch(f"/api/messages/{message_id}", json={"status": "error"}, headers=owner_headers)
    assert response.status_code == 409

    pending = (await client.get("/api/messages/pending/02keyperson", headers=owner_headers)).json()
    assert pending == []


@pytest.mark.asyncio
async def test_approve_request_replies_to_sender(client, team):
    owner_headers, staff_headers = team
    request_id = (await send(client, staff_headers, "02keyperson", purpose="Travel")).json()["id"]

    response = await client.post(f"/api/messages/{request_id}/approve", headers=owner_headers)

    assert response.status_code == 201
    approval = response.json()
    assert approval["message_type"] == "approval"
    assert approval["recipient_public_key"] == "02staff"
    assert approval["in_reply_to"] == request_id
    assert approval["body"] == f"Approved request #{request_id}"

    inbox = (await client.get("/api/messages", headers=staff_headers)).json()
    assert [m["message_type"] for m in inbox] == ["approval"]


@pytest.mark.asyncio
async def test_only_requests_can_be_approved(client, team):
    owner_headers, staff_headers = team
    message_id = (await send(client, staff_headers, "02keyperson", message_type="notification", amount=None)).json()["id"]

    response = await client.post(f"/api/messages/{message_id}/approve", headers=owner_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_missing_message(client, team):
    owner_headers, _ = team
    response = await client.patch("/api/messages/999", json={"status": "acknowledged"}, headers=owner_headers)
    assert response.status_code == 404
