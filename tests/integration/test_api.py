"""Integration tests for API endpoints"""

import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient
from gurtpay_ledger.api.main import run
from gurtpay_ledger.config import settings
from gurtpay_ledger.domain.exceptions import IdentityVerificationError
from gurtpay_ledger.domain.models import IdentityUser
from gurtpay_ledger.infrastructure.database.models import LedgerTransaction, RedemptionCode, User
from gurtpay_ledger.utils.date_utils import utcnow


VERIFY_TOKEN = "gurtpay_ledger.infrastructure.clients.identity.IdentityClient.verify_token"


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "X-Request-ID" in response.headers


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "ledger_entries_total" in response.text


@patch(VERIFY_TOKEN, new_callable=AsyncMock)
def test_login_opens_wallet_with_welcome_grant(mock_verify: AsyncMock, client: TestClient):
    mock_verify.return_value = IdentityUser(user_id="arson-42", username="ember")

    response = client.post("/v1/auth/verify", json={"token": "provider-token"})

    assert response.status_code == 200
    data = response.json()
    assert data["user"]["username"] == "ember"
    assert data["user"]["wallet_balance"] == 5000
    assert data["user"]["wallet_address"].startswith("GC")

    headers = {"Authorization": f"Bearer {data['session_token']}"}
    profile = client.get("/v1/user/profile", headers=headers)
    assert profile.status_code == 200
    assert profile.json()["id"] == data["user"]["id"]

    history = client.get("/v1/wallet/transactions", headers=headers).json()["transactions"]
    assert len(history) == 1
    assert history[0]["transaction_type"] == "welcome_grant"


@patch(VERIFY_TOKEN, new_callable=AsyncMock)
def test_login_rejected_by_identity_provider(mock_verify: AsyncMock, client: TestClient):
    mock_verify.side_effect = IdentityVerificationError("Identity provider rejected the token", status_code=401)

    response = client.post("/v1/auth/verify", json={"token": "bad"})

    assert response.status_code == 401
    assert response.json()["code"] == "identity_verification_failed"


def test_missing_and_malformed_credentials(client: TestClient):
    response = client.get("/v1/wallet/balance")
    assert response.status_code == 401
    assert response.json() == {"error": "Missing authorization header", "code": "missing_credential"}

    response = client.get("/v1/wallet/balance", headers={"Authorization": "Basic abc"})
    assert response.status_code == 401
    assert response.json()["code"] == "malformed_credential"

    response = client.get("/v1/wallet/balance", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["code"] == "invalid_credential"


def test_logout_revokes_session(client: TestClient, make_user, auth_headers):
    headers = auth_headers(make_user("alice"))

    assert client.post("/v1/auth/logout", headers=headers).json() == {"status": "logged_out"}
    assert client.get("/v1/user/profile", headers=headers).status_code == 401


def test_send_money_scenario(client: TestClient, db, make_user, auth_headers):
    alice = make_user("alice", Decimal("5000"))
    bob = make_user("bob", Decimal("10"))
    headers = auth_headers(alice)

    response = client.post(
        "/v1/wallet/send",
        json={"to_address": bob.wallet_address, "amount": 1200, "description": "rent"},
        headers=headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["amount"] == 1200
    assert data["transaction_type"] == "transfer"
    assert data["status"] == "completed"

    balance = client.get("/v1/wallet/balance", headers=headers).json()
    assert balance["balance"] == 3800
    assert balance["total_sent"] == 1200
    assert client.get("/v1/wallet/balance", headers=auth_headers(bob)).json()["balance"] == 1210


@pytest.mark.parametrize(
    "amount,to_self,error",
    [
        (0, False, "Amount must be positive"),
        (-3, False, "Amount must be positive"),
        (10001, False, "Amount exceeds daily limit of 10,000"),
        (5, True, "Cannot send money to yourself"),
    ],
)
def test_send_money_rejections(client: TestClient, make_user, auth_headers, amount, to_self, error):
    alice = make_user("alice", Decimal("50000"))
    bob = make_user("bob")
    target = alice.wallet_address if to_self else bob.wallet_address

    response = client.post(
        "/v1/wallet/send",
        json={"to_address": target, "amount": amount, "description": "x"},
        headers=auth_headers(alice),
    )

    assert response.status_code == 400
    assert response.json()["error"] == error


def test_send_money_unknown_address_and_insufficient_funds(client: TestClient, db, make_user, auth_headers):
    alice = make_user("alice", Decimal("10"))
    bob = make_user("bob")
    headers = auth_headers(alice)

    response = client.post("/v1/wallet/send", json={"to_address": "GCZZZZZZZZ", "amount": 1}, headers=headers)
    assert response.status_code == 404
    assert response.json()["error"] == "Recipient wallet address not found"

    response = client.post("/v1/wallet/send", json={"to_address": bob.wallet_address, "amount": 11}, headers=headers)
    assert response.status_code == 400
    assert response.json()["code"] == "insufficient_funds"
    assert db.query(LedgerTransaction).count() == 0


def test_money_request_flow(client: TestClient, make_user, auth_headers):
    payer = make_user("payer", Decimal("100"))
    requester = make_user("requester")

    created = client.post(
        "/v1/wallet/request",
        json={"from_address": payer.wallet_address, "amount": 25, "description": "pizza"},
        headers=auth_headers(requester),
    )
    assert created.status_code == 200
    request_id = created.json()["id"]

    payer_headers = auth_headers(payer)
    listed = client.get("/v1/wallet/requests", headers=payer_headers).json()["requests"]
    assert [r["id"] for r in listed] == [request_id]

    accepted = client.post(f"/v1/wallet/requests/{request_id}/accept", headers=payer_headers)
    assert accepted.status_code == 200
    assert accepted.json()["amount"] == 25

    again = client.post(f"/v1/wallet/requests/{request_id}/decline", headers=payer_headers)
    assert again.status_code == 400
    assert client.get("/v1/wallet/balance", headers=payer_headers).json()["balance"] == 75


def test_business_register_and_transfer(client: TestClient, make_user, auth_headers):
    owner = make_user("owner", Decimal("500"))
    headers = auth_headers(owner)

    registered = client.post(
        "/v1/business/register",
        json={"business_name": "Gadget Store", "website_url": "https://gadgets.example"},
        headers=headers,
    )
    assert registered.status_code == 200
    business = registered.json()
    assert business["api_key"].startswith("gp_")
    assert business["verified"] is True

    deposit = client.post(
        "/v1/business/transfer",
        json={"business_id": business["id"], "amount": 200, "direction": "deposit", "description": "Float"},
        headers=headers,
    )
    assert deposit.status_code == 200
    assert deposit.json()["description"] == "Float - Gadget Store"

    bad = client.post(
        "/v1/business/transfer",
        json={"business_id": business["id"], "amount": 1, "direction": "up", "description": "x"},
        headers=headers,
    )
    assert bad.status_code == 400
    assert bad.json()["error"] == "Invalid direction. Must be 'deposit' or 'withdraw'"

    listed = client.get("/v1/business/list", headers=headers).json()["businesses"]
    assert listed[0]["balance"] == 200


def test_business_transfer_on_foreign_business(client: TestClient, make_user, make_business, auth_headers):
    owner = make_user("owner")
    stranger = make_user("stranger", Decimal("50"))
    business = make_business(owner, balance=Decimal("100"))

    response = client.post(
        "/v1/business/transfer",
        json={"business_id": str(business.id), "amount": 10, "direction": "withdraw", "description": "x"},
        headers=auth_headers(stranger),
    )

    assert response.status_code == 404
    assert response.json()["error"] == "Business not found or access denied"


def test_invoice_lifecycle(client: TestClient, db, make_user, make_business, auth_headers):
    merchant = make_user("merchant")
    business = make_business(merchant, "Coffee Shop", website_url="https://coffee.example")
    api_headers = {"Authorization": f"Bearer {business.api_key}"}
    payer = make_user("payer", Decimal("100"))
    payer_headers = auth_headers(payer)

    created = client.post(
        "/v1/invoice/create",
        json={"amount": 12.5, "description": "Beans", "customer_name": "Sam"},
        headers=api_headers,
    )
    assert created.status_code == 200
    invoice = created.json()
    assert invoice["status"] == "pending"
    assert invoice["payment_url"].endswith(f"/pay/{invoice['id']}")

    status = client.get(f"/v1/invoice/status/{invoice['id']}")
    assert status.status_code == 200
    assert status.json()["business_name"] == "Coffee Shop"
    assert status.json()["amount"] == 12.5

    paid = client.post(f"/v1/invoice/pay/{invoice['id']}", headers=payer_headers)
    assert paid.status_code == 200
    assert paid.json()["status"] == "paid"

    again = client.post(f"/v1/invoice/pay/{invoice['id']}", headers=payer_headers)
    assert again.status_code == 400
    assert again.json()["error"] == "Invoice is already paid"

    verified = client.get(f"/v1/invoice/verify/{invoice['id']}", headers=api_headers)
    assert verified.json()["status"] == "paid"
    assert client.get("/v1/wallet/balance", headers=payer_headers).json()["balance"] == 87.5
    assert db.query(LedgerTransaction).count() == 1


def test_invoice_requires_valid_api_key(client: TestClient):
    response = client.post(
        "/v1/invoice/create",
        json={"amount": 1, "description": "x"},
        headers={"Authorization": "Bearer gp_unknown"},
    )
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid API key"


def test_invoice_insufficient_balance(client: TestClient, make_user, make_business, auth_headers):
    business = make_business(make_user("merchant"))
    payer = make_user("payer", Decimal("1"))

    invoice = client.post(
        "/v1/invoice/create",
        json={"amount": 5, "description": "Cake"},
        headers={"Authorization": f"Bearer {business.api_key}"},
    ).json()

    response = client.post(f"/v1/invoice/pay/{invoice['id']}", headers=auth_headers(payer))
    assert response.status_code == 400
    assert response.json()["error"] == "Insufficient balance"
    assert client.get(f"/v1/invoice/status/{invoice['id']}").json()["status"] == "pending"


def test_unknown_invoice_status(client: TestClient):
    response = client.get("/v1/invoice/status/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404


def test_codes_admin_and_redeem(client: TestClient, db, make_user, auth_headers):
    admin = make_user("admin", is_admin=True)
    user = make_user("user")

    forbidden = client.post("/v1/admin/codes/create", json={"amount": 50}, headers=auth_headers(user))
    assert forbidden.status_code == 403
    assert forbidden.json()["error"] == "Admin access required"

    created = client.post(
        "/v1/admin/codes/create",
        json={"amount": 50, "max_uses": 1, "expires_in_hours": 24},
        headers=auth_headers(admin),
    )
    assert created.status_code == 200
    code = created.json()["code"]

    user_headers = auth_headers(user)
    redeemed = client.post("/v1/codes/redeem", json={"code": code}, headers=user_headers)
    assert redeemed.status_code == 200
    assert redeemed.json()["amount"] == 50
    assert redeemed.json()["new_balance"] == 50

    repeat = client.post("/v1/codes/redeem", json={"code": code}, headers=user_headers)
    assert repeat.status_code == 400
    assert repeat.json()["error"] == "Code has reached maximum uses"

    late = make_user("late")
    exhausted = client.post("/v1/codes/redeem", json={"code": code}, headers=auth_headers(late))
    assert exhausted.json()["code"] == "exhausted_uses"


def test_deactivated_code(client: TestClient, db, make_user, auth_headers):
    admin = make_user("admin", is_admin=True)
    db.add(
        RedemptionCode(
            code="GC-TEST-0001", amount_micros=1_000_000, max_uses=None, current_uses=0,
            created_by=admin.id, created_at=utcnow(), active=True,
        )
    )
    db.commit()

    response = client.post("/v1/admin/codes/GC-TEST-0001/deactivate", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["active"] is False

    redeem = client.post("/v1/codes/redeem", json={"code": "GC-TEST-0001"}, headers=auth_headers(make_user("u")))
    assert redeem.status_code == 400
    assert redeem.json()["error"] == "Code is not active"

    missing = client.post("/v1/codes/redeem", json={"code": "GC-NOPE-0000"}, headers=auth_headers(make_user("v")))
    assert missing.status_code == 404
    assert missing.json()["error"] == "Invalid or expired code"
    assert db.query(User).count() == 3


def test_console_entry_point_serves_the_app():
    with patch("uvicorn.run") as mock_run:
        run()

    args, kwargs = mock_run.call_args
    assert args[0] == "gurtpay_ledger.api.main:app"
    assert kwargs["port"] == settings.port
