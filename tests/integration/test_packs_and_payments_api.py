import pytest

from booking_ledger.core.config import settings
from booking_ledger.db.models import UserRole


@pytest.fixture()
def provider_headers(auth_headers, provider_user, provider):
    return auth_headers(provider_user)


@pytest.fixture()
def client_headers(auth_headers, client_user):
    return auth_headers(client_user)


def _webhook(client, secret: str | None, **payload):
    headers = {"X-Webhook-Secret": secret} if secret is not None else {}
    return client.post("/payments/webhook", headers=headers, json=payload)


def test_provider_grants_and_pauses_packs(client, provider_headers, client_headers, client_user):
    granted = client.post(
        "/packs",
        headers=provider_headers,
        json={"client_id": client_user.id, "total_credits": 10, "label": "Ten sessions"},
    )
    assert granted.status_code == 201
    pack = granted.json()
    assert pack["credits_remaining"] == 10
    assert pack["status"] == "active"

    paused = client.patch(f"/packs/{pack['id']}/pause", headers=provider_headers)
    assert paused.json()["status"] == "paused"
    assert client.patch(f"/packs/{pack['id']}/pause", headers=provider_headers).status_code == 409

    resumed = client.patch(f"/packs/{pack['id']}/resume", headers=provider_headers)
    assert resumed.json()["status"] == "active"

    mine = client.get("/packs/me", headers=client_headers).json()
    assert [item["id"] for item in mine] == [pack["id"]]


def test_unlimited_pack_has_no_counter(client, provider_headers, client_user):
    response = client.post("/packs", headers=provider_headers, json={"client_id": client_user.id})

    assert response.status_code == 201
    assert response.json()["total_credits"] is None
    assert response.json()["credits_remaining"] is None


def test_packs_are_granted_to_clients_only(client, provider_headers, provider_user, client_headers, client_user):
    to_provider = client.post("/packs", headers=provider_headers, json={"client_id": provider_user.id})
    by_client = client.post("/packs", headers=client_headers, json={"client_id": client_user.id})

    assert to_provider.status_code == 404
    assert by_client.status_code == 403


def test_gateway_payment_moves_only_through_the_webhook(client, provider_headers, client_headers):
    payment = client.post(
        "/payments",
        headers=client_headers,
        json={"amount_cents": 12000, "currency": "usd", "provider_ref": "pi_42", "grants_pack": True, "pack_credits": 8},
    ).json()
    assert payment["status"] == "pending"
    assert payment["currency"] == "USD"
    assert payment["method"] == "external_gateway"

    manual = client.patch(f"/payments/{payment['id']}/mark-paid", headers=provider_headers)
    assert manual.status_code == 409

    paid = _webhook(client, settings.payment_webhook_secret, provider_ref="pi_42", status="paid")
    assert paid.status_code == 200
    assert paid.json()["status"] == "paid"

    redelivered = _webhook(client, settings.payment_webhook_secret, payment_id=payment["id"], status="paid")
    assert redelivered.status_code == 200

    packs = client.get("/packs/me", headers=client_headers).json()
    assert len(packs) == 1
    assert packs[0]["payment_id"] == payment["id"]
    assert packs[0]["credits_remaining"] == 8

    failed_after_paid = _webhook(client, settings.payment_webhook_secret, payment_id=payment["id"], status="failed")
    assert failed_after_paid.status_code == 409
    assert failed_after_paid.json()["error"]["code"] == "invalid_transition"

    refunded = _webhook(client, settings.payment_webhook_secret, payment_id=payment["id"], status="refunded")
    assert refunded.json()["status"] == "refunded"


def test_webhook_requires_the_shared_secret(client, client_headers):
    payment = client.post("/payments", headers=client_headers, json={"amount_cents": 100}).json()

    missing = _webhook(client, None, payment_id=payment["id"], status="paid")
    wrong = _webhook(client, "guess", payment_id=payment["id"], status="paid")

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert client.get("/payments/me", headers=client_headers).json()[0]["status"] == "pending"


def test_webhook_for_unknown_payment_is_not_found(client):
    response = _webhook(client, settings.payment_webhook_secret, provider_ref="pi_missing", status="paid")

    assert response.status_code == 404


def test_cash_payment_is_settled_by_the_provider(client, provider_headers, client_headers, client_user):
    created = client.post(
        "/payments/cash",
        headers=provider_headers,
        json={"client_id": client_user.id, "amount_cents": 3000},
    )
    assert created.status_code == 201
    payment = created.json()
    assert payment["method"] == "cash"

    gateway = _webhook(client, settings.payment_webhook_secret, payment_id=payment["id"], status="paid")
    assert gateway.status_code == 409

    failed = client.patch(f"/payments/{payment['id']}/mark-failed", headers=provider_headers)
    assert failed.status_code == 200
    assert failed.json()["status"] == "failed"

    paid_after_failed = client.patch(f"/payments/{payment['id']}/mark-paid", headers=provider_headers)
    assert paid_after_failed.status_code == 409


def test_payment_listings_are_scoped(client, provider_headers, client_headers, make_user, auth_headers):
    other = make_user("payer@example.com", UserRole.CLIENT)
    client.post("/payments", headers=client_headers, json={"amount_cents": 100})
    client.post("/payments", headers=auth_headers(other), json={"amount_cents": 200})

    mine = client.get("/payments/me", headers=client_headers).json()
    everything = client.get("/payments", headers=provider_headers).json()
    filtered = client.get(f"/payments?client_id={other.id}", headers=provider_headers).json()

    assert [item["amount_cents"] for item in mine] == [100]
    assert len(everything) == 2
    assert [item["amount_cents"] for item in filtered] == [200]
    assert client.get("/payments", headers=client_headers).status_code == 403
