"""Integration tests for the ad auction endpoints"""

import pytest
import uuid
from decimal import Decimal
from fastapi.testclient import TestClient
from gurtpay_ledger.infrastructure.database.models import AdImpression


@pytest.fixture
def ad_market(client: TestClient, make_user, make_business, auth_headers):
    """Publisher site + slot verified by an admin, advertiser campaign funded with 1 GC"""
    admin_headers = auth_headers(make_user("admin", is_admin=True))
    publisher_owner = make_user("publisher")
    advertiser_owner = make_user("advertiser")
    publisher = make_business(publisher_owner, "News Site")
    advertiser = make_business(advertiser_owner, "Shoe Co", balance=Decimal("50"))
    publisher_headers = auth_headers(publisher_owner)
    advertiser_headers = auth_headers(advertiser_owner)

    site = client.post(
        "/v1/ads/sites",
        json={"business_id": str(publisher.id), "domain": "News.Example"},
        headers=publisher_headers,
    ).json()
    client.post(
        f"/v1/ads/sites/{site['id']}/slots",
        json={"slot_key": "top", "format": "banner", "width": 728, "height": 90},
        headers=publisher_headers,
    )
    client.post(f"/v1/ads/sites/{site['id']}/verify", headers=admin_headers)

    campaign = client.post(
        "/v1/ads/campaigns",
        json={"business_id": str(advertiser.id), "name": "Spring", "bid_model": "cpm", "max_cpm": 10},
        headers=advertiser_headers,
    ).json()
    client.post(
        f"/v1/ads/campaigns/{campaign['id']}/creatives",
        json={"format": "banner", "width": 728, "height": 90, "html": "<b>Shoes</b>", "click_url": "https://shoe.example"},
        headers=advertiser_headers,
    )
    funded = client.post(
        f"/v1/ads/campaigns/{campaign['id']}/fund", json={"amount": 1}, headers=advertiser_headers
    )
    assert funded.status_code == 200

    return {
        "site": site,
        "campaign": campaign,
        "publisher": publisher,
        "advertiser_headers": advertiser_headers,
        "publisher_headers": publisher_headers,
    }


def serve(client: TestClient, site_id: str, slot_key: str = "top"):
    return client.get("/v1/ads/serve", params={"site_id": site_id, "slot_key": slot_key})


def test_site_registration_lowercases_domain(ad_market):
    assert ad_market["site"]["domain"] == "news.example"
    assert ad_market["site"]["verified"] is False


def test_serve_start_viewable_click_flow(client: TestClient, db, ad_market):
    served = serve(client, ad_market["site"]["id"])
    assert served.status_code == 200
    body = served.json()
    assert set(body) == {"token", "creative"}
    assert body["creative"]["click"] == "https://shoe.example"
    token = body["token"]
    assert "." in token

    started = client.post("/v1/ads/beacon/start", json={"token": token, "device_hash": "device-1"})
    assert started.status_code == 200
    impression_id = started.json()["impression_id"]

    viewable = client.post(
        "/v1/ads/beacon/viewable",
        json={"impression_id": impression_id, "ms_visible": 1500, "device_hash": "device-1"},
    )
    assert viewable.status_code == 200
    assert viewable.json() == {"ok": True, "cost": 0.01}

    assert client.post("/v1/ads/beacon/click", json={"impression_id": impression_id}).json() == {"ok": True}
    assert client.post("/v1/ads/beacon/click", json={"impression_id": impression_id}).json() == {"ok": True}

    impression = db.query(AdImpression).one()
    db.refresh(impression)
    assert impression.clicked_at is not None
    assert impression.device_fingerprint != "device-1"

    listed = client.get("/v1/business/list", headers=ad_market["publisher_headers"]).json()["businesses"]
    assert listed[0]["balance"] == 0.009


def test_token_cannot_be_reused(client: TestClient, ad_market):
    token = serve(client, ad_market["site"]["id"]).json()["token"]

    assert client.post("/v1/ads/beacon/start", json={"token": token}).status_code == 200
    again = client.post("/v1/ads/beacon/start", json={"token": token})
    assert again.status_code == 400
    assert again.json() == {"error": "Ad token already used", "code": "used_token"}


def test_tampered_token_is_rejected(client: TestClient, ad_market):
    token = serve(client, ad_market["site"]["id"]).json()["token"]
    token_id, _ = token.split(".")

    response = client.post("/v1/ads/beacon/start", json={"token": f"{token_id}.{'0' * 64}"})
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_token"


def test_short_view_is_not_billable(client: TestClient, ad_market):
    token = serve(client, ad_market["site"]["id"]).json()["token"]
    impression_id = client.post("/v1/ads/beacon/start", json={"token": token}).json()["impression_id"]

    response = client.post("/v1/ads/beacon/viewable", json={"impression_id": impression_id, "ms_visible": 999})
    assert response.status_code == 400
    assert response.json()["code"] == "too_short"


def test_unknown_impression_is_a_beacon_rejection(client: TestClient, ad_market):
    response = client.post("/v1/ads/beacon/viewable", json={"impression_id": "nope", "ms_visible": 5000})
    assert response.status_code == 400
    assert response.json() == {"error": "Impression not found", "code": "impression_not_found"}

    response = client.post(
        "/v1/ads/beacon/viewable", json={"impression_id": str(uuid.uuid4()), "ms_visible": 2000}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Impression not found"

    assert client.post("/v1/ads/beacon/click", json={"impression_id": "nope"}).json() == {"ok": True}


def test_paused_campaign_yields_no_fill(client: TestClient, ad_market):
    campaign_id = ad_market["campaign"]["id"]
    paused = client.post(
        f"/v1/ads/campaigns/{campaign_id}/status",
        json={"status": "paused"},
        headers=ad_market["advertiser_headers"],
    )
    assert paused.json()["status"] == "paused"

    response = serve(client, ad_market["site"]["id"])
    assert response.status_code == 200
    assert response.json() == {"no_fill": True}


def test_unknown_slot(client: TestClient, ad_market):
    assert serve(client, ad_market["site"]["id"], "sidebar").status_code == 404
    assert serve(client, "not-a-uuid").status_code == 404


def test_campaign_funding_requires_business_funds(client: TestClient, ad_market):
    response = client.post(
        f"/v1/ads/campaigns/{ad_market['campaign']['id']}/fund",
        json={"amount": 1000},
        headers=ad_market["advertiser_headers"],
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Insufficient business funds"


def test_campaign_rejects_unknown_bid_model(client: TestClient, make_user, make_business, auth_headers):
    owner = make_user("owner")
    business = make_business(owner)

    response = client.post(
        "/v1/ads/campaigns",
        json={"business_id": str(business.id), "name": "X", "bid_model": "cpa"},
        headers=auth_headers(owner),
    )
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_bid_model"
