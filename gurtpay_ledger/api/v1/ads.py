"""Ad endpoints: inventory management, publisher-embedded serving and beacons"""

import uuid
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from gurtpay_ledger.api.dependencies import get_ad_service, get_current_principal
from gurtpay_ledger.api.v1.schemas import (
    BeaconClickRequest, BeaconStartRequest, BeaconStartResponse, BeaconViewableRequest,
    BeaconViewableResponse, CampaignCreateRequest, CampaignFundRequest, CampaignSchema,
    CampaignStatusRequest, CreativeCreateRequest, CreativeSchema, OkResponse, ServeResponse,
    ServedCreativeSchema, SiteCreateRequest, SiteSchema, SlotCreateRequest, SlotSchema,
    TransactionSchema, amount, iso, transaction_response,
)
from gurtpay_ledger.domain.exceptions import ImpressionNotFound, SlotNotFound
from gurtpay_ledger.domain.models import Principal
from gurtpay_ledger.infrastructure.database.models import AdCampaign, AdCreative, AdSite, AdSlot
from gurtpay_ledger.infrastructure.database.session import get_db, unit_of_work
from gurtpay_ledger.services.ads import AdService

router = APIRouter()


def _parse_id(value: Optional[str]) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def site_response(site: AdSite) -> SiteSchema:
    return SiteSchema(
        id=str(site.id),
        business_id=str(site.business_id),
        domain=site.domain,
        verified=bool(site.verified),
        created_at=iso(site.created_at),
    )


def slot_response(slot: AdSlot) -> SlotSchema:
    return SlotSchema(
        id=str(slot.id),
        site_id=str(slot.site_id),
        slot_key=slot.slot_key,
        format=slot.format,
        width=slot.width,
        height=slot.height,
        floor_cpm=amount(slot.floor_cpm_micros),
    )


def campaign_response(campaign: AdCampaign) -> CampaignSchema:
    return CampaignSchema(
        id=str(campaign.id),
        business_id=str(campaign.business_id),
        name=campaign.name,
        budget_total=amount(campaign.budget_total_micros),
        budget_remaining=amount(campaign.budget_remaining_micros),
        bid_model=campaign.bid_model.value,
        max_cpm=amount(campaign.max_cpm_micros),
        max_cpc=amount(campaign.max_cpc_micros),
        status=campaign.status.value,
    )


def creative_response(creative: AdCreative) -> CreativeSchema:
    return CreativeSchema(
        id=str(creative.id),
        campaign_id=str(creative.campaign_id),
        format=creative.format,
        width=creative.width,
        height=creative.height,
        html=creative.html,
        image_url=creative.image_url,
        click_url=creative.click_url,
        status=creative.status.value,
    )


# Publisher inventory


@router.post("/ads/sites", response_model=SiteSchema)
def register_site(
    body: SiteCreateRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    ads: AdService = Depends(get_ad_service),
):
    with unit_of_work(db):
        site = ads.register_site(principal, body.business_id, body.domain)
    return site_response(site)


@router.post("/ads/sites/{site_id}/verify", response_model=SiteSchema)
def verify_site(
    site_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    ads: AdService = Depends(get_ad_service),
):
    with unit_of_work(db):
        site = ads.verify_site(principal, site_id)
    return site_response(site)


@router.post("/ads/sites/{site_id}/slots", response_model=SlotSchema)
def create_slot(
    site_id: uuid.UUID,
    body: SlotCreateRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    ads: AdService = Depends(get_ad_service),
):
    with unit_of_work(db):
        slot = ads.create_slot(principal, site_id, body.slot_key, body.format, body.width, body.height, body.floor_cpm)
    return slot_response(slot)


# Advertiser inventory


@router.post("/ads/campaigns", response_model=CampaignSchema)
def create_campaign(
    body: CampaignCreateRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    ads: AdService = Depends(get_ad_service),
):
    with unit_of_work(db):
        campaign = ads.create_campaign(
            principal, body.business_id, body.name, body.bid_model, body.max_cpm, body.max_cpc
        )
    return campaign_response(campaign)


@router.post("/ads/campaigns/{campaign_id}/creatives", response_model=CreativeSchema)
def create_creative(
    campaign_id: uuid.UUID,
    body: CreativeCreateRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    ads: AdService = Depends(get_ad_service),
):
    with unit_of_work(db):
        creative = ads.create_creative(
            principal,
            campaign_id,
            body.format,
            body.width,
            body.height,
            html=body.html,
            image_url=body.image_url,
            click_url=body.click_url,
        )
    return creative_response(creative)


@router.post("/ads/campaigns/{campaign_id}/fund", response_model=TransactionSchema)
def fund_campaign(
    campaign_id: uuid.UUID,
    body: CampaignFundRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    ads: AdService = Depends(get_ad_service),
):
    with unit_of_work(db):
        entry = ads.fund_campaign(principal, campaign_id, body.amount)
    return transaction_response(entry)


@router.post("/ads/campaigns/{campaign_id}/status", response_model=CampaignSchema)
def set_campaign_status(
    campaign_id: uuid.UUID,
    body: CampaignStatusRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    ads: AdService = Depends(get_ad_service),
):
    with unit_of_work(db):
        campaign = ads.set_campaign_status(principal, campaign_id, body.status)
    return campaign_response(campaign)


# Delivery (unauthenticated, embedded in publisher pages)


@router.get("/ads/serve", response_model=ServeResponse, response_model_exclude_none=True)
def serve_ad(
    site_id: str = Query(..., description="Publisher site id"),
    slot_key: str = Query(..., description="Slot key within the site"),
    db: Session = Depends(get_db),
    ads: AdService = Depends(get_ad_service),
):
    parsed = _parse_id(site_id)
    if parsed is None:
        raise SlotNotFound()

    with unit_of_work(db):
        result = ads.serve(parsed, slot_key)

    if result.no_fill:
        return ServeResponse(no_fill=True)
    return ServeResponse(
        token=result.token,
        creative=ServedCreativeSchema(
            format=result.creative.format,
            width=result.creative.width,
            height=result.creative.height,
            html=result.creative.html,
            image_url=result.creative.image_url,
            click=result.creative.click_url,
        ),
    )


@router.post("/ads/beacon/start", response_model=BeaconStartResponse)
def beacon_start(
    body: BeaconStartRequest,
    request: Request,
    db: Session = Depends(get_db),
    ads: AdService = Depends(get_ad_service),
):
    ip_address = request.client.host if request.client else None
    with unit_of_work(db):
        impression = ads.start(body.token, body.device_hash, ip_address)
    return BeaconStartResponse(ok=True, impression_id=str(impression.id))


@router.post("/ads/beacon/viewable", response_model=BeaconViewableResponse)
def beacon_viewable(
    body: BeaconViewableRequest,
    db: Session = Depends(get_db),
    ads: AdService = Depends(get_ad_service),
):
    impression_id = _parse_id(body.impression_id)
    if impression_id is None:
        raise ImpressionNotFound()

    with unit_of_work(db):
        result = ads.finalize_viewable(impression_id, body.ms_visible, body.device_hash)
    return BeaconViewableResponse(ok=True, cost=amount(result.cost_micros))


@router.post("/ads/beacon/click", response_model=OkResponse)
def beacon_click(
    body: BeaconClickRequest,
    db: Session = Depends(get_db),
    ads: AdService = Depends(get_ad_service),
):
    """Always answers ok; clicks on unknown impressions are ignored"""
    with unit_of_work(db):
        ads.click(_parse_id(body.impression_id))
    return OkResponse(ok=True)
