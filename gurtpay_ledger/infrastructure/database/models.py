"""SQLAlchemy ORM models for accounts, ledger, invoices, codes and ads"""

import uuid
from sqlalchemy import (
    Column, String, BigInteger, Boolean, DateTime, Integer, ForeignKey, Text,
    CheckConstraint, UniqueConstraint, Index, Enum as SAEnum,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from gurtpay_ledger.domain.models import (
    TransactionKind, TransactionStatus, InvoiceStatus, MoneyRequestStatus,
    ImpressionStatus, CampaignStatus, CreativeStatus, BidModel,
)

Base = declarative_base()


def _enum(enum_cls):
    """Store enum values (not names) as plain strings on every backend"""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=32,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )


class User(Base):
    """Wallet holder"""

    __tablename__ = "users"
    __table_args__ = (CheckConstraint("wallet_balance_micros >= 0", name="ck_users_balance_non_negative"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    external_id = Column(Text, unique=True, nullable=False)
    username = Column(Text, nullable=False)
    wallet_balance_micros = Column(BigInteger, nullable=False, default=0)
    wallet_address = Column(String(16), unique=True, nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    businesses = relationship("Business", back_populates="owner")


class UserSession(Base):
    """Issued bearer session; the JWT is only honoured while its row is active"""

    __tablename__ = "user_sessions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    jwt_token = Column(Text, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False)


class Business(Base):
    """Merchant / advertiser / publisher account with its own balance"""

    __tablename__ = "businesses"
    __table_args__ = (CheckConstraint("balance_micros >= 0", name="ck_businesses_balance_non_negative"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    business_name = Column(Text, nullable=False)
    website_url = Column(Text, nullable=True)
    api_key = Column(Text, unique=True, nullable=False)
    verified = Column(Boolean, nullable=False, default=True)
    balance_micros = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    owner = relationship("User", back_populates="businesses")


class LedgerTransaction(Base):
    """Append-only record of one completed money movement"""

    __tablename__ = "transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_type = Column(_enum(TransactionKind), nullable=False)
    from_user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True)
    to_user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=True)
    amount_micros = Column(BigInteger, nullable=False)
    platform_fee_micros = Column(BigInteger, nullable=False, default=0)
    status = Column(_enum(TransactionStatus), nullable=False, default=TransactionStatus.COMPLETED)
    description = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    from_user = relationship("User", foreign_keys=[from_user_id])
    to_user = relationship("User", foreign_keys=[to_user_id])
    business = relationship("Business")


class Invoice(Base):
    """Business-issued request for a fixed payment"""

    __tablename__ = "invoices"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)
    amount_micros = Column(BigInteger, nullable=False)
    description = Column(Text, nullable=False)
    customer_name = Column(Text, nullable=True)
    status = Column(_enum(InvoiceStatus), nullable=False, default=InvoiceStatus.PENDING)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=True)

    business = relationship("Business")


class RedemptionCode(Base):
    """Pre-funded promotional code"""

    __tablename__ = "redemption_codes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(String(32), unique=True, nullable=False)
    amount_micros = Column(BigInteger, nullable=False)
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, nullable=False, default=0)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=True)
    active = Column(Boolean, nullable=False, default=True)


class CodeRedemption(Base):
    """One user's use of a code; (code_id, user_id) is unique"""

    __tablename__ = "code_redemptions"
    __table_args__ = (UniqueConstraint("code_id", "user_id", name="uq_code_redemptions_code_user"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code_id = Column(UUID(as_uuid=True), ForeignKey("redemption_codes.id"), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    amount_received_micros = Column(BigInteger, nullable=False)
    redeemed_at = Column(DateTime(timezone=True), nullable=False)


class MoneyRequest(Base):
    """Request from one user (requester) for another user (payer) to send funds"""

    __tablename__ = "money_requests"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payer_user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    requester_user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    amount_micros = Column(BigInteger, nullable=False)
    description = Column(Text, nullable=False)
    status = Column(_enum(MoneyRequestStatus), nullable=False, default=MoneyRequestStatus.PENDING)
    transaction_id = Column(UUID(as_uuid=True), ForeignKey("transactions.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    responded_at = Column(DateTime(timezone=True), nullable=True)


class DebitCard(Base):
    """Card credentials that let a business charge the holder's wallet; one active card per user"""

    __tablename__ = "debit_cards"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    card_number = Column(String(19), unique=True, nullable=False)
    cvv = Column(String(3), nullable=False)
    expiration_month = Column(Integer, nullable=False)
    expiration_year = Column(Integer, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AdSite(Base):
    """Publisher domain"""

    __tablename__ = "ads_sites"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)
    domain = Column(Text, nullable=False)
    verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    business = relationship("Business")
    slots = relationship("AdSlot", back_populates="site", cascade="all, delete-orphan")


class AdSlot(Base):
    """Named placement within a site"""

    __tablename__ = "ads_slots"
    __table_args__ = (UniqueConstraint("site_id", "slot_key", name="uq_ads_slots_site_key"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    site_id = Column(UUID(as_uuid=True), ForeignKey("ads_sites.id", ondelete="CASCADE"), nullable=False)
    slot_key = Column(Text, nullable=False)
    format = Column(String(32), nullable=False)
    width = Column(Integer, nullable=False)
    height = Column(Integer, nullable=False)
    floor_cpm_micros = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    site = relationship("AdSite", back_populates="slots")


class AdCampaign(Base):
    """Advertiser's funded intent to show creatives"""

    __tablename__ = "ads_campaigns"
    __table_args__ = (CheckConstraint("budget_remaining_micros >= 0", name="ck_ads_campaigns_budget_non_negative"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    budget_total_micros = Column(BigInteger, nullable=False, default=0)
    budget_remaining_micros = Column(BigInteger, nullable=False, default=0)
    bid_model = Column(_enum(BidModel), nullable=False, default=BidModel.CPM)
    max_cpm_micros = Column(BigInteger, nullable=False, default=0)
    max_cpc_micros = Column(BigInteger, nullable=False, default=0)
    status = Column(_enum(CampaignStatus), nullable=False, default=CampaignStatus.ACTIVE)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    business = relationship("Business")
    creatives = relationship("AdCreative", back_populates="campaign", cascade="all, delete-orphan")


class AdCreative(Base):
    """Renderable ad unit"""

    __tablename__ = "ads_creatives"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    campaign_id = Column(UUID(as_uuid=True), ForeignKey("ads_campaigns.id", ondelete="CASCADE"), nullable=False)
    format = Column(String(32), nullable=False)
    width = Column(Integer, nullable=False)
    height = Column(Integer, nullable=False)
    html = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    click_url = Column(Text, nullable=True)
    status = Column(_enum(CreativeStatus), nullable=False, default=CreativeStatus.ACTIVE)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    campaign = relationship("AdCampaign", back_populates="creatives")


class AdToken(Base):
    """Signed single-use credential for starting one impression"""

    __tablename__ = "ads_tokens"

    id = Column(String(64), primary_key=True)
    site_id = Column(UUID(as_uuid=True), ForeignKey("ads_sites.id"), nullable=False)
    slot_id = Column(UUID(as_uuid=True), ForeignKey("ads_slots.id"), nullable=False)
    campaign_id = Column(UUID(as_uuid=True), ForeignKey("ads_campaigns.id"), nullable=False)
    creative_id = Column(UUID(as_uuid=True), ForeignKey("ads_creatives.id"), nullable=False)
    signature = Column(String(64), nullable=False)
    used = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)


class AdImpression(Base):
    """One ad display, tracked from start through viewability"""

    __tablename__ = "ads_impressions"
    __table_args__ = (Index("ix_ads_impressions_dedupe", "creative_id", "device_fingerprint", "finalized_at"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    token_id = Column(String(64), ForeignKey("ads_tokens.id"), nullable=False, unique=True)
    site_id = Column(UUID(as_uuid=True), ForeignKey("ads_sites.id"), nullable=False)
    slot_id = Column(UUID(as_uuid=True), ForeignKey("ads_slots.id"), nullable=False)
    campaign_id = Column(UUID(as_uuid=True), ForeignKey("ads_campaigns.id"), nullable=False)
    creative_id = Column(UUID(as_uuid=True), ForeignKey("ads_creatives.id"), nullable=False)
    device_fingerprint = Column(String(64), nullable=True)
    ip_fingerprint = Column(String(64), nullable=True)
    status = Column(_enum(ImpressionStatus), nullable=False, default=ImpressionStatus.STARTED)
    ms_visible = Column(Integer, nullable=True)
    cost_micros = Column(BigInteger, nullable=False, default=0)
    started_at = Column(DateTime(timezone=True), nullable=False)
    viewable_at = Column(DateTime(timezone=True), nullable=True)
    finalized_at = Column(DateTime(timezone=True), nullable=True)
    clicked_at = Column(DateTime(timezone=True), nullable=True)
