"""
Ad auction engine.

Publishers register sites and slots, advertisers fund campaigns and attach
creatives. Serving picks a creative and mints a signed single-use token;
the impression state machine (started -> viewable) settles the cost from
the campaign budget and credits the publisher's business.
"""

import logging
import secrets
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from gurtpay_ledger.config import Settings
from gurtpay_ledger.domain.ads import (
    Candidate, fingerprint, publisher_credit_micros, rank_candidates, sign_token, split_token,
    verify_signature, viewable_cost_micros,
)
from gurtpay_ledger.domain.exceptions import (
    AdminRequired, BusinessNotFound, CampaignNotFound, DuplicateImpression, ExpiredToken,
    ImpressionNotFound, InsufficientBudget, InsufficientFunds, InvalidBidModel, InvalidRequest,
    InvalidStateTransition, InvalidToken, SiteNotFound, SiteUnverified, SlotNotFound, TooShort, UsedToken,
)
from gurtpay_ledger.domain.models import (
    AdServeResult, BidModel, CampaignStatus, CreativeStatus, ImpressionStatus, Principal,
    ServedCreative, TransactionKind, ViewableResult,
)
from gurtpay_ledger.domain.money import to_micros
from gurtpay_ledger.domain.state_machine import advance
from gurtpay_ledger.infrastructure.database.ad_repositories import AdDeliveryRepository, AdInventoryRepository
from gurtpay_ledger.infrastructure.database.models import (
    AdCampaign, AdCreative, AdImpression, AdSite, AdSlot, AdToken, LedgerTransaction,
)
from gurtpay_ledger.infrastructure.database.repositories import AccountRepository, LedgerRepository
from gurtpay_ledger.infrastructure.observability.metrics import ad_event_counter, ad_spend_counter
from gurtpay_ledger.services.transfers import append_entry, positive_micros
from gurtpay_ledger.utils.date_utils import is_past, utcnow

logger = logging.getLogger(__name__)


def _non_negative_micros(amount: Optional[Decimal], field: str) -> int:
    if amount is None:
        return 0
    micros = to_micros(amount)
    if micros < 0:
        raise InvalidRequest(f"{field} must not be negative")
    return micros


class AdService:
    def __init__(self, db: Session, config: Settings):
        self.db = db
        self.config = config
        self.secret = config.signing_secret
        self.inventory = AdInventoryRepository(db)
        self.delivery = AdDeliveryRepository(db)
        self.accounts = AccountRepository(db)
        self.ledger = LedgerRepository(db)

    # Ownership helpers

    def _owned_business(self, principal: Principal, business_id: uuid.UUID, for_update: bool = False):
        business = self.accounts.get_owned_business(business_id, principal.id, for_update=for_update)
        if business is None:
            raise BusinessNotFound()
        return business

    def _owned_site(self, principal: Principal, site_id: uuid.UUID) -> AdSite:
        site = self.inventory.get_site(site_id)
        if site is None or site.business.user_id != principal.id:
            raise SiteNotFound()
        return site

    def _owned_campaign(self, principal: Principal, campaign_id: uuid.UUID, for_update: bool = False) -> AdCampaign:
        campaign = self.inventory.get_campaign(campaign_id, for_update=for_update)
        if campaign is None or campaign.business.user_id != principal.id:
            raise CampaignNotFound()
        return campaign

    # Publisher inventory

    def register_site(self, principal: Principal, business_id: uuid.UUID, domain: str) -> AdSite:
        business = self._owned_business(principal, business_id)
        if not domain or not domain.strip():
            raise InvalidRequest("Domain is required")
        site = self.inventory.create_site(business.id, domain.strip().lower(), utcnow())
        logger.info("Ad site registered", extra={"site_id": str(site.id), "business_id": str(business.id)})
        return site

    def verify_site(self, principal: Principal, site_id: uuid.UUID) -> AdSite:
        if not principal.is_admin:
            raise AdminRequired()
        site = self.inventory.get_site(site_id)
        if site is None:
            raise SiteNotFound()
        site.verified = True
        self.db.flush()
        return site

    def create_slot(
        self,
        principal: Principal,
        site_id: uuid.UUID,
        slot_key: str,
        format: str,
        width: int,
        height: int,
        floor_cpm: Optional[Decimal] = None,
    ) -> AdSlot:
        site = self._owned_site(principal, site_id)
        if not slot_key or not slot_key.strip():
            raise InvalidRequest("Slot key is required")
        if self.inventory.get_slot(site.id, slot_key.strip()) is not None:
            raise InvalidRequest("Slot key already exists for this site")
        if width <= 0 or height <= 0:
            raise InvalidRequest("Slot dimensions must be positive")
        return self.inventory.create_slot(
            site.id,
            slot_key.strip(),
            format,
            width,
            height,
            _non_negative_micros(floor_cpm, "floor_cpm"),
            utcnow(),
        )

    # Advertiser inventory

    def create_campaign(
        self,
        principal: Principal,
        business_id: uuid.UUID,
        name: str,
        bid_model: str,
        max_cpm: Optional[Decimal] = None,
        max_cpc: Optional[Decimal] = None,
    ) -> AdCampaign:
        business = self._owned_business(principal, business_id)
        try:
            model = BidModel(bid_model)
        except ValueError as e:
            raise InvalidBidModel() from e
        if not name or not name.strip():
            raise InvalidRequest("Campaign name is required")

        campaign = AdCampaign(
            business_id=business.id,
            name=name.strip(),
            budget_total_micros=0,
            budget_remaining_micros=0,
            bid_model=model,
            max_cpm_micros=_non_negative_micros(max_cpm, "max_cpm"),
            max_cpc_micros=_non_negative_micros(max_cpc, "max_cpc"),
            status=CampaignStatus.ACTIVE,
            created_at=utcnow(),
        )
        return self.inventory.create_campaign(campaign)

    def create_creative(
        self,
        principal: Principal,
        campaign_id: uuid.UUID,
        format: str,
        width: int,
        height: int,
        html: Optional[str] = None,
        image_url: Optional[str] = None,
        click_url: Optional[str] = None,
    ) -> AdCreative:
        campaign = self._owned_campaign(principal, campaign_id)
        if not html and not image_url:
            raise InvalidRequest("Creative needs html or image_url")
        creative = AdCreative(
            campaign_id=campaign.id,
            format=format,
            width=width,
            height=height,
            html=html,
            image_url=image_url,
            click_url=click_url,
            status=CreativeStatus.ACTIVE,
            created_at=utcnow(),
        )
        return self.inventory.create_creative(creative)

    def set_campaign_status(self, principal: Principal, campaign_id: uuid.UUID, status: str) -> AdCampaign:
        campaign = self._owned_campaign(principal, campaign_id, for_update=True)
        try:
            target = CampaignStatus(status)
        except ValueError as e:
            raise InvalidRequest("Invalid status. Must be 'active' or 'paused'") from e
        if campaign.status != target:
            campaign.status = advance(campaign.status, target)
            self.db.flush()
        return campaign

    def fund_campaign(self, principal: Principal, campaign_id: uuid.UUID, amount: Decimal) -> LedgerTransaction:
        """Move funds from the advertiser's business balance into the campaign budget"""
        micros = positive_micros(amount)
        campaign = self._owned_campaign(principal, campaign_id, for_update=True)
        self.accounts.get_business(campaign.business_id, for_update=True)

        if not self.accounts.debit_business(campaign.business_id, micros):
            raise InsufficientFunds("Insufficient business funds")
        self.inventory.credit_budget(campaign.id, micros)

        return append_entry(
            self.ledger,
            TransactionKind.ADS_FUND,
            micros,
            f"Campaign funding: {campaign.name}",
            business_id=campaign.business_id,
        )

    # Delivery

    def serve(self, site_id: uuid.UUID, slot_key: str) -> AdServeResult:
        """
        Pick a creative for a slot and mint a token for it.

        Returns an empty result (no fill) when nothing is eligible.

        Raises:
            SlotNotFound: Unknown site or slot key
            SiteUnverified: Site has not been verified by an administrator
        """
        site = self.inventory.get_site(site_id)
        slot = self.inventory.get_slot(site_id, slot_key) if site is not None else None
        if slot is None:
            raise SlotNotFound()
        if not site.verified:
            raise SiteUnverified()

        rows = self.inventory.eligible_creatives()
        by_id = {}
        candidates = []
        for order, (creative, campaign) in enumerate(rows):
            by_id[str(creative.id)] = (creative, campaign)
            candidates.append(
                Candidate(
                    creative_id=str(creative.id),
                    campaign_id=str(campaign.id),
                    format=creative.format,
                    budget_remaining_micros=campaign.budget_remaining_micros,
                    created_order=order,
                )
            )

        ranked = rank_candidates(slot.format, candidates)
        if not ranked:
            ad_event_counter.labels(event="no_fill").inc()
            return AdServeResult()

        creative, campaign = by_id[ranked[0].creative_id]
        now = utcnow()
        token_id = secrets.token_hex(16)
        signature = sign_token(self.secret, token_id, str(site.id), str(slot.id), str(campaign.id), str(creative.id))
        self.delivery.create_token(
            AdToken(
                id=token_id,
                site_id=site.id,
                slot_id=slot.id,
                campaign_id=campaign.id,
                creative_id=creative.id,
                signature=signature,
                used=False,
                created_at=now,
                expires_at=now + timedelta(seconds=self.config.ad_token_ttl_seconds),
            )
        )
        ad_event_counter.labels(event="served").inc()

        return AdServeResult(
            token=f"{token_id}.{signature}",
            creative=ServedCreative(
                format=creative.format,
                width=creative.width,
                height=creative.height,
                html=creative.html,
                image_url=creative.image_url,
                click_url=creative.click_url,
            ),
        )

    def start(self, token: str, device_hash: Optional[str] = None, ip_address: Optional[str] = None) -> AdImpression:
        """
        Consume a token and open an impression.

        Raises:
            InvalidToken, UsedToken, ExpiredToken
        """
        parts = split_token(token or "")
        if parts is None:
            raise InvalidToken()
        token_id, signature = parts

        row = self.delivery.get_token(token_id)
        if row is None:
            raise InvalidToken()
        if not verify_signature(
            self.secret, signature, row.id, str(row.site_id), str(row.slot_id), str(row.campaign_id), str(row.creative_id)
        ):
            raise InvalidToken()
        if row.used:
            raise UsedToken()

        now = utcnow()
        if is_past(row.expires_at, now):
            raise ExpiredToken()
        if not self.delivery.consume_token(row.id):
            raise UsedToken()

        impression = self.delivery.create_impression(
            AdImpression(
                token_id=row.id,
                site_id=row.site_id,
                slot_id=row.slot_id,
                campaign_id=row.campaign_id,
                creative_id=row.creative_id,
                device_fingerprint=fingerprint(self.secret, "device", device_hash),
                ip_fingerprint=fingerprint(self.secret, "ip", ip_address),
                status=ImpressionStatus.STARTED,
                cost_micros=0,
                started_at=now,
            )
        )
        ad_event_counter.labels(event="started").inc()
        return impression

    def finalize_viewable(self, impression_id: uuid.UUID, ms_visible: int, device_hash: Optional[str] = None) -> ViewableResult:
        """
        Settle a viewable impression.

        Debits the campaign budget by the impression cost and credits the
        publisher's business with its share; the platform keeps the rest.

        Raises:
            TooShort, ImpressionNotFound, InvalidStateTransition,
            InsufficientBudget, DuplicateImpression
        """
        if ms_visible < self.config.min_viewable_ms:
            raise TooShort()

        impression = self.delivery.get_impression(impression_id, for_update=True)
        if impression is None:
            raise ImpressionNotFound()
        advance(impression.status, ImpressionStatus.VIEWABLE)

        campaign = self.inventory.get_campaign(impression.campaign_id, for_update=True)
        if campaign is None:
            raise CampaignNotFound()

        cost = viewable_cost_micros(campaign.bid_model, campaign.max_cpm_micros)
        if campaign.budget_remaining_micros < cost:
            raise InsufficientBudget()

        now = utcnow()
        device_fp = fingerprint(self.secret, "device", device_hash) if device_hash else impression.device_fingerprint
        if device_fp is not None:
            since = now - timedelta(seconds=self.config.duplicate_window_seconds)
            if self.delivery.recent_viewable_exists(impression.creative_id, device_fp, since, impression.id):
                raise DuplicateImpression()

        credit = publisher_credit_micros(cost, self.config.publisher_share)
        if cost > 0:
            if not self.inventory.debit_budget(campaign.id, cost):
                raise InsufficientBudget()
            site = self.inventory.get_site(impression.site_id)
            self.accounts.credit_business(site.business_id, credit)

        if not self.delivery.mark_viewable(impression.id, cost, ms_visible, now, device_fp):
            raise InvalidStateTransition("Impression already finalized")

        ad_event_counter.labels(event="viewable").inc()
        ad_spend_counter.inc(cost)
        return ViewableResult(impression_id=impression.id, cost_micros=cost, publisher_credit_micros=credit)

    def click(self, impression_id: Optional[uuid.UUID]) -> bool:
        """
        Record the first click on an impression.

        Repeat clicks keep the original timestamp and are not counted again.
        Returns False only for unknown impressions, which are ignored.
        """
        if impression_id is None:
            return False
        if self.delivery.record_click(impression_id, utcnow()):
            ad_event_counter.labels(event="click").inc()
            return True
        return self.delivery.get_impression(impression_id) is not None
