from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from conftest import auth
from credit_library.models.api_models import PaymentSubmission
from credit_library.models.user import ApprovalStatus, UserRole


CONTENT = b"%PDF-1.4\n" + b"x" * 991  # 1000 bytes


def soon(days: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


@pytest.fixture
def seed_pdf(api):
    async def _seed(content: bytes = CONTENT, title: str = "Calculus Notes"):
        _, container = api
        return await container.documents.add_document(content, "calc notes.pdf", title=title)

    return _seed


@pytest.mark.asyncio
async def test_health(api):
    client, _ = api
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_stream_partial_range(api, seed_pdf):
    client, _ = api
    doc = await seed_pdf()

    response = await client.get(f"/pdfs/{doc.id}", headers={"Range": "bytes=0-99"})

    assert response.status_code == 206
    assert response.headers["content-range"] == "bytes 0-99/1000"
    assert response.headers["content-length"] == "100"
    assert response.headers["accept-ranges"] == "bytes"
    assert response.headers["content-type"].startswith("application/pdf")
    assert response.content == CONTENT[:100]


@pytest.mark.asyncio
async def test_stream_range_clamped_to_object_end(api, seed_pdf):
    client, _ = api
    doc = await seed_pdf()

    response = await client.get(f"/pdfs/{doc.id}", headers={"Range": "bytes=900-2000"})

    assert response.status_code == 206
    assert response.headers["content-range"] == "bytes 900-999/1000"
    assert response.content == CONTENT[900:]


@pytest.mark.asyncio
async def test_stream_unsatisfiable_range(api, seed_pdf):
    client, _ = api
    doc = await seed_pdf()

    response = await client.get(f"/pdfs/{doc.id}", headers={"Range": "bytes=5000-"})

    assert response.status_code == 416
    assert response.headers["content-range"] == "bytes */1000"
    assert response.json()["code"] == "RANGE_NOT_SATISFIABLE"


@pytest.mark.asyncio
async def test_stream_multi_range_rejected(api, seed_pdf):
    client, _ = api
    doc = await seed_pdf()

    response = await client.get(f"/pdfs/{doc.id}", headers={"Range": "bytes=0-1,5-6"})

    assert response.status_code == 416
    assert response.headers["content-range"] == "bytes */1000"


@pytest.mark.asyncio
async def test_stream_full_object(api, seed_pdf):
    client, _ = api
    doc = await seed_pdf()

    response = await client.get(f"/pdfs/{doc.id}")

    assert response.status_code == 200
    assert response.headers["content-length"] == "1000"
    assert response.content == CONTENT


@pytest.mark.asyncio
async def test_stream_missing_record_or_bytes(api, seed_pdf, settings):
    client, _ = api
    doc = await seed_pdf()
    (settings.UPLOAD_ROOT / doc.storage_key).unlink()

    missing_bytes = await client.get(f"/pdfs/{doc.id}")
    missing_record = await client.get("/pdfs/does-not-exist")

    assert missing_bytes.status_code == 404
    assert missing_bytes.json()["error"] == "File not found on server"
    assert missing_record.status_code == 404


@pytest.mark.asyncio
async def test_download_charges_configured_cost(api, seed_pdf, make_user, db):
    client, _ = api
    doc = await seed_pdf()
    user = await make_user(balance=12, expiry=soon(10))

    response = await client.post(f"/pdfs/{doc.id}/download", headers=auth(user))

    assert response.status_code == 200
    assert response.json()["remainingCredits"] == 7
    stored = await db.get_user(user.id)
    assert stored.credit.history[-1].description == 'Download "Calculus Notes"'
    assert (await db.get_document(doc.id)).downloads == 1


@pytest.mark.asyncio
async def test_download_refused_for_expired_or_poor_accounts(api, seed_pdf, make_user, db):
    client, _ = api
    doc = await seed_pdf()
    expired = await make_user(balance=50, expiry=soon(-1))
    poor = await make_user(balance=4, expiry=soon(10))

    r_expired = await client.post(f"/pdfs/{doc.id}/download", headers=auth(expired))
    r_poor = await client.post(f"/pdfs/{doc.id}/download", headers=auth(poor))

    assert r_expired.status_code == 402
    assert r_expired.json() == {
        "success": False,
        "error": "Your credits have expired. Please purchase a plan.",
        "code": "CREDIT_EXPIRED",
    }
    assert r_poor.status_code == 402
    assert r_poor.json()["code"] == "INSUFFICIENT_CREDITS"
    assert (await db.get_document(doc.id)).downloads == 0


@pytest.mark.asyncio
async def test_requests_without_identity_are_rejected(api, seed_pdf):
    client, _ = api
    doc = await seed_pdf()

    anonymous = await client.post(f"/pdfs/{doc.id}/download")
    unknown = await client.post(f"/pdfs/{doc.id}/download", headers={"X-User-Id": "ghost"})

    assert anonymous.status_code == 401
    assert unknown.status_code == 401


@pytest.mark.asyncio
async def test_use_credits_endpoint(api, make_user):
    client, _ = api
    user = await make_user(balance=10, expiry=soon(3))

    ok = await client.post("/credits/use", json={"cost": 4, "reason": "Quiz"}, headers=auth(user))
    bad = await client.post("/credits/use", json={"cost": 0}, headers=auth(user))
    summary = await client.get("/credits/me", headers=auth(user))

    assert ok.json() == {"success": True, "remainingCredits": 6}
    assert bad.status_code == 400
    assert bad.json()["code"] == "INVALID_INPUT"
    body = summary.json()
    assert body["balance"] == 6
    assert body["active"] is True
    assert body["history"][0]["amount"] == -4
    assert body["history"][0]["kind"] == "usage"


@pytest.mark.asyncio
async def test_payment_submission_and_approval_flow(api, make_user, db):
    client, _ = api
    admin = await make_user(role=UserRole.ADMIN)
    user = await make_user(balance=3, expiry=soon(-1))
    payload = {
        "mobileNumber": "01700000000",
        "transactionId": "TX1",
        "amount": 500,
        "planName": "Standard",
        "credits": 800,
        "reference": "bkash",
    }

    created = await client.post("/payments/submit", json=payload, headers=auth(user))
    duplicate = await client.post("/payments/submit", json=payload, headers=auth(user))
    missing = await client.post(
        "/payments/submit", json={**payload, "transactionId": "TX2", "credits": None}, headers=auth(user)
    )

    assert created.status_code == 201
    payment = created.json()["data"]
    assert payment["status"] == "pending"
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "DUPLICATE_REFERENCE"
    assert missing.status_code == 400

    forbidden = await client.patch(
        f"/payments/{payment['id']}/status", json={"status": "approved"}, headers=auth(user)
    )
    assert forbidden.status_code == 403

    pending = await client.get("/payments/pending", headers=auth(admin))
    assert [p["id"] for p in pending.json()["data"]] == [payment["id"]]

    approved = await client.patch(
        f"/payments/{payment['id']}/status", json={"status": "approved"}, headers=auth(admin)
    )
    assert approved.status_code == 200
    assert approved.json()["data"]["status"] == "approved"
    assert approved.json()["data"]["decided_by"] == admin.id

    again = await client.patch(
        f"/payments/{payment['id']}/status",
        json={"status": "rejected", "rejectionReason": "late"},
        headers=auth(admin),
    )
    assert again.status_code == 409
    assert again.json()["code"] == "ALREADY_DECIDED"

    stored = await db.get_user(user.id)
    assert stored.credit.balance == 803

    mine = await client.get("/payments/my-payments", headers=auth(user))
    assert [p["transaction_id"] for p in mine.json()["data"]] == ["TX1"]
    approved_only = await client.get("/payments/all", params={"status": "approved"}, headers=auth(admin))
    assert len(approved_only.json()["data"]) == 1


@pytest.mark.asyncio
async def test_payment_status_must_be_terminal(api, make_user):
    client, container = api
    admin = await make_user(role=UserRole.ADMIN)

    response = await client.patch("/payments/unknown/status", json={"status": "approved"}, headers=auth(admin))
    assert response.status_code == 404

    user = await make_user()
    payment = await container.payments.submit(
        user.id,
        PaymentSubmission(
            mobileNumber="1", transactionId="T", amount=1, planName="Basic", credits=1, reference="r"
        ),
    )
    response = await client.patch(
        f"/payments/{payment.id}/status", json={"status": "pending"}, headers=auth(admin)
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_admin_deletes_document_and_bytes(api, seed_pdf, make_user, settings):
    client, _ = api
    admin = await make_user(role=UserRole.ADMIN)
    doc = await seed_pdf()
    path = settings.UPLOAD_ROOT / doc.storage_key
    assert path.exists()

    listed = await client.get("/pdfs")
    deleted = await client.delete(f"/pdfs/{doc.id}", headers=auth(admin))
    again = await client.delete(f"/pdfs/{doc.id}", headers=auth(admin))

    assert [d["id"] for d in listed.json()] == [doc.id]
    assert deleted.status_code == 200
    assert not path.exists()
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_mentor_registration_and_review(api, make_user):
    client, _ = api
    admin = await make_user(role=UserRole.ADMIN)

    registered = await client.post(
        "/users/register", json={"name": "Mina", "email": "mina@example.com", "role": "mentor"}
    )
    assert registered.status_code == 201
    mentor_id = registered.json()["data"]["id"]

    pending = await client.get("/users/mentors/pending", headers=auth(admin))
    assert [m["id"] for m in pending.json()["data"]] == [mentor_id]

    status_before = await client.get("/users/approval-status", headers={"X-User-Id": mentor_id})
    assert status_before.json()["approvalStatus"] == ApprovalStatus.PENDING.value

    no_reason = await client.put(f"/users/mentors/{mentor_id}/reject", json={}, headers=auth(admin))
    assert no_reason.status_code == 400

    approved = await client.put(f"/users/mentors/{mentor_id}/approve", headers=auth(admin))
    assert approved.status_code == 200
    assert approved.json()["data"]["approval_status"] == "approved"


@pytest.mark.asyncio
async def test_unexpected_errors_return_generic_message(api, make_user, monkeypatch):
    client, container = api
    user = await make_user(balance=10, expiry=soon(1))

    async def broken(*args, **kwargs):
        raise RuntimeError("connection reset by mongo at 10.0.0.3")

    monkeypatch.setattr(container.ledger, "get_summary", broken)

    response = await client.get("/credits/me", headers=auth(user))

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "Internal server error",
        "code": "INFRA_FAILURE",
    }


@pytest.mark.asyncio
async def test_favorite_details_and_tags_routes(api, make_user):
    client, container = api
    calc = await container.documents.add_document(CONTENT, "calc.pdf", title="Calc", tags=["math"])
    algebra = await container.documents.add_document(CONTENT, "algebra.pdf", tags=["math", "algebra"])
    user = await make_user()

    anonymous = await client.post(f"/pdfs/{calc.id}/favorite")
    favorited = await client.post(f"/pdfs/{calc.id}/favorite", headers=auth(user))
    details = await client.get(f"/pdfs/{calc.id}/details", headers=auth(user))
    public_details = await client.get(f"/pdfs/{calc.id}/details")
    missing = await client.get("/pdfs/nope/details")
    unfavorited = await client.post(f"/pdfs/{calc.id}/favorite", headers=auth(user))
    tags = await client.get("/pdfs/tags")

    assert anonymous.status_code == 401
    assert favorited.json() == {"success": True, "favorited": True, "favoritesCount": 1}
    body = details.json()["data"]
    assert body["pdf"]["id"] == calc.id
    assert body["isFavorite"] is True
    assert [d["id"] for d in body["similar"]] == [algebra.id]
    assert public_details.json()["data"]["isFavorite"] is False
    assert missing.status_code == 404
    assert unfavorited.json()["favorited"] is False
    assert unfavorited.json()["favoritesCount"] == 0
    assert tags.json() == {"success": True, "tags": ["algebra", "math"]}


@pytest.mark.asyncio
async def test_duplicate_registration_is_conflict(api):
    client, _ = api
    payload = {"name": "Sam", "email": "sam@example.com"}

    first = await client.post("/users/register", json=payload)
    second = await client.post("/users/register", json=payload)

    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json()["code"] == "DUPLICATE_REFERENCE"
