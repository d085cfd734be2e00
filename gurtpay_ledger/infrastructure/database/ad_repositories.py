"""Data access layer for the ads_* tables"""

import uuid
from datetime import datetime
from typing import List, Optional
from sqlalchemy import update
from sqlalchemy.orm import Session
from gurtpay_ledger.infrastructure.database.models import (
    AdSite, AdSlot, AdCampaign, AdCreative, AdToken, AdImpression,
)
from gurtpay_ledger.domain.models import CampaignStatus, CreativeStatus, ImpressionStatus


class AdInventoryRepository:
    """Repository for publisher sites/slots and advertiser campaigns/creatives"""

    def __init__(self, db: Session):
        self.db = db

    def create_site(self, business_id: uuid.UUID, domain: str, created_at: datetime) -> AdSite:
        site = AdSite(business_id=business_id, domain=domain, verified=False, created_at=created_at)
        self.db.add(site)
        self.db.flush()
        return site

    def get_site(self, site_id: uuid.UUID) -> Optional[AdSite]:
        return self.db.query(AdSite).filter(AdSite.id == site_id).first()

    def create_slot(
        self,
        site_id: uuid.UUID,
        slot_key: str,
        format: str,
        width: int,
        height: int,
        floor_cpm_micros: int,
        created_at: datetime,
    ) -> AdSlot:
        slot = AdSlot(
            site_id=site_id,
            slot_key=slot_key,
            format=format,
            width=width,
            height=height,
            floor_cpm_micros=floor_cpm_micros,
            created_at=created_at,
        )
        self.db.add(slot)
        self.db.flush()
        return slot

    def get_slot(self, site_id: uuid.UUID, slot_key: str) -> Optional[AdSlot]:
        return (
            self.db.query(AdSlot)
            .filter(AdSlot.site_id == site_id, AdSlot.slot_key == slot_key)
            .first()
        )

    def create_campaign(self, campaign: AdCampaign) -> AdCampaign:
        self.db.add(campaign)
        self.db.flush()
        return campaign

    def get_campaign(self, campaign_id: uuid.UUID, for_update: bool = False) -> Optional[AdCampaign]:
        query = self.db.query(AdCampaign).filter(AdCampaign.id == campaign_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def create_creative(self, creative: AdCreative) -> AdCreative:
        self.db.add(creative)
        self.db.flush()
        return creative

    def eligible_creatives(self) -> List[tuple[AdCreative, AdCampaign]]:
        """Active creatives of active campaigns that still have budget"""
        return (
            self.db.query(AdCreative, AdCampaign)
            .join(AdCampaign, AdCreative.campaign_id == AdCampaign.id)
            .filter(
                AdCreative.status == CreativeStatus.ACTIVE,
                AdCampaign.status == CampaignStatus.ACTIVE,
                AdCampaign.budget_remaining_micros > 0,
            )
            .order_by(AdCreative.created_at.asc())
            .all()
        )

    def debit_budget(self, campaign_id: uuid.UUID, amount_micros: int) -> bool:
        """Spend from a campaign only if the remaining budget covers it"""
        result = self.db.execute(
            update(AdCampaign)
            .where(AdCampaign.id == campaign_id, AdCampaign.budget_remaining_micros >= amount_micros)
            .values(budget_remaining_micros=AdCampaign.budget_remaining_micros - amount_micros)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    def credit_budget(self, campaign_id: uuid.UUID, amount_micros: int) -> bool:
        result = self.db.execute(
            update(AdCampaign)
            .where(AdCampaign.id == campaign_id)
            .values(
                budget_remaining_micros=AdCampaign.budget_remaining_micros + amount_micros,
                budget_total_micros=AdCampaign.budget_total_micros + amount_micros,
            )
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1


class AdDeliveryRepository:
    """Repository for ad tokens and impressions"""

    def __init__(self, db: Session):
        self.db = db

    def create_token(self, token: AdToken) -> AdToken:
        self.db.add(token)
        self.db.flush()
        return token

    def get_token(self, token_id: str) -> Optional[AdToken]:
        return self.db.query(AdToken).filter(AdToken.id == token_id).first()

    def consume_token(self, token_id: str) -> bool:
        """Flip the token to used; False when someone else consumed it first"""
        result = self.db.execute(
            update(AdToken)
            .where(AdToken.id == token_id, AdToken.used.is_(False))
            .values(used=True)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    def create_impression(self, impression: AdImpression) -> AdImpression:
        self.db.add(impression)
        self.db.flush()
        return impression

    def get_impression(self, impression_id: uuid.UUID, for_update: bool = False) -> Optional[AdImpression]:
        query = self.db.query(AdImpression).filter(AdImpression.id == impression_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def recent_viewable_exists(
        self,
        creative_id: uuid.UUID,
        device_fingerprint: str,
        since: datetime,
        exclude_id: uuid.UUID,
    ) -> bool:
        """Whether this device already produced a finalized impression of the creative since `since`"""
        return (
            self.db.query(AdImpression.id)
            .filter(
                AdImpression.creative_id == creative_id,
                AdImpression.device_fingerprint == device_fingerprint,
                AdImpression.status == ImpressionStatus.VIEWABLE,
                AdImpression.finalized_at >= since,
                AdImpression.id != exclude_id,
            )
            .first()
            is not None
        )

    def mark_viewable(
        self,
        impression_id: uuid.UUID,
        cost_micros: int,
        ms_visible: int,
        now: datetime,
        device_fingerprint: Optional[str],
    ) -> bool:
        """Compare-and-set started -> viewable with settlement fields"""
        values = {
            "status": ImpressionStatus.VIEWABLE,
            "cost_micros": cost_micros,
            "ms_visible": ms_visible,
            "viewable_at": now,
            "finalized_at": now,
        }
        if device_fingerprint is not None:
            values["device_fingerprint"] = device_fingerprint
        result = self.db.execute(
            update(AdImpression)
            .where(AdImpression.id == impression_id, AdImpression.status == ImpressionStatus.STARTED)
            .values(**values)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    def record_click(self, impression_id: uuid.UUID, now: datetime) -> bool:
        result = self.db.execute(
            update(AdImpression)
            .where(AdImpression.id == impression_id, AdImpression.clicked_at.is_(None))
            .values(clicked_at=now)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1
