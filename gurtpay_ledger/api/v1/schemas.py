"""Pydantic schemas for API request/response validation"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field

from gurtpay_ledger.domain.money import from_micros
from gurtpay_ledger.utils.date_utils import as_utc


def amount(micros: Optional[int]) -> Optional[float]:
    """Render micro-units as a JSON number of GC"""
    if micros is None:
        return None
    return float(from_micros(micros))


def iso(value: Optional[datetime]) -> Optional[str]:
    return as_utc(value).isoformat() if value is not None else None


# Auth


class VerifyRequest(BaseModel):
    """Request body for POST /v1/auth/verify"""

    token: str = Field(..., min_length=1, description="Identity provider token")


class UserSchema(BaseModel):
    id: str
    username: str
    wallet_address: str
    wallet_balance: float
    is_admin: bool
    created_at: str


class AuthResponse(BaseModel):
    session_token: str
    user: UserSchema


class StatusResponse(BaseModel):
    status: str


# Wallet


class BalanceResponse(BaseModel):
    balance: float
    address: str
    total_sent: float
    total_received: float


class TransactionSchema(BaseModel):
    """Single ledger entry"""

    id: str
    transaction_type: str
    amount: float
    platform_fee: float = 0.0
    status: str
    description: str
    from_user_id: Optional[str] = None
    to_user_id: Optional[str] = None
    business_id: Optional[str] = None
    other_party: Optional[str] = None
    created_at: str
    completed_at: Optional[str] = None


class TransactionsResponse(BaseModel):
    transactions: List[TransactionSchema]


class SendMoneyRequest(BaseModel):
    """Request body for POST /v1/wallet/send"""

    to_address: str = Field(..., min_length=1)
    amount: Decimal
    description: str = ""


class MoneyRequestCreate(BaseModel):
    from_address: str = Field(..., min_length=1)
    amount: Decimal
    description: str = ""


class MoneyRequestSchema(BaseModel):
    id: str
    payer_user_id: str
    requester_user_id: str
    amount: float
    description: str
    status: str
    transaction_id: Optional[str] = None
    created_at: str
    responded_at: Optional[str] = None


class MoneyRequestsResponse(BaseModel):
    requests: List[MoneyRequestSchema]


# Businesses


class BusinessRegisterRequest(BaseModel):
    business_name: str
    website_url: Optional[str] = None


class BusinessSchema(BaseModel):
    id: str
    business_name: str
    website_url: Optional[str] = None
    api_key: str
    verified: bool
    balance: float
    created_at: str


class BusinessListResponse(BaseModel):
    businesses: List[BusinessSchema]


class BusinessTransferRequest(BaseModel):
    business_id: uuid.UUID
    amount: Decimal
    direction: str
    description: str = "Business transfer"


# Invoices


class InvoiceCreateRequest(BaseModel):
    amount: Decimal
    description: str = Field(..., min_length=1)
    customer_name: Optional[str] = None
    expires_in_hours: Optional[int] = Field(None, gt=0)


class InvoiceSchema(BaseModel):
    id: str
    business_id: str
    amount: float
    description: str
    customer_name: Optional[str] = None
    status: str
    payment_url: Optional[str] = None
    created_at: str
    expires_at: Optional[str] = None
    paid_at: Optional[str] = None


class InvoiceStatusResponse(BaseModel):
    """Public invoice status as shown to a payer"""

    id: str
    business_name: str
    business_website: Optional[str] = None
    amount: float
    description: str
    customer_name: Optional[str] = None
    status: str
    created_at: str
    expires_at: Optional[str] = None
    paid_at: Optional[str] = None


class InvoicePaymentResponse(BaseModel):
    status: str
    invoice_id: str
    transaction_id: str
    amount: float


# Codes


class CodeCreateRequest(BaseModel):
    amount: Decimal
    max_uses: Optional[int] = None
    expires_in_hours: Optional[int] = None


class CodeSchema(BaseModel):
    id: str
    code: str
    amount: float
    max_uses: Optional[int] = None
    current_uses: int
    active: bool
    created_at: str
    expires_at: Optional[str] = None


class RedeemRequest(BaseModel):
    code: str = Field(..., min_length=1)


class RedeemResponse(BaseModel):
    code: str
    amount: float
    new_balance: float
    transaction_id: str


# Debit cards


class CardSchema(BaseModel):
    id: str
    card_number: str
    cvv: str
    expiration_month: int
    expiration_year: int
    active: bool
    created_at: str


class CardsResponse(BaseModel):
    cards: List[CardSchema]


class CardDeactivateRequest(BaseModel):
    card_id: uuid.UUID


class CardPaymentRequest(BaseModel):
    """Business charges a card holder; the business itself authenticates with its API key"""

    card_number: str = Field(..., min_length=1)
    cvv: str = Field(..., min_length=1)
    expiration_month: int = Field(..., ge=1, le=12)
    expiration_year: int
    username: str = Field(..., min_length=1)
    amount: Decimal
    description: str = "Card payment"


# Ads


class SiteCreateRequest(BaseModel):
    business_id: uuid.UUID
    domain: str


class SiteSchema(BaseModel):
    id: str
    business_id: str
    domain: str
    verified: bool
    created_at: str


class SlotCreateRequest(BaseModel):
    slot_key: str
    format: str
    width: int
    height: int
    floor_cpm: Optional[Decimal] = None


class SlotSchema(BaseModel):
    id: str
    site_id: str
    slot_key: str
    format: str
    width: int
    height: int
    floor_cpm: float


class CampaignCreateRequest(BaseModel):
    business_id: uuid.UUID
    name: str
    bid_model: str = "cpm"
    max_cpm: Optional[Decimal] = None
    max_cpc: Optional[Decimal] = None


class CampaignSchema(BaseModel):
    id: str
    business_id: str
    name: str
    budget_total: float
    budget_remaining: float
    bid_model: str
    max_cpm: float
    max_cpc: float
    status: str


class CampaignFundRequest(BaseModel):
    amount: Decimal


class CampaignStatusRequest(BaseModel):
    status: str


class CreativeCreateRequest(BaseModel):
    format: str
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    html: Optional[str] = None
    image_url: Optional[str] = None
    click_url: Optional[str] = None


class CreativeSchema(BaseModel):
    id: str
    campaign_id: str
    format: str
    width: int
    height: int
    html: Optional[str] = None
    image_url: Optional[str] = None
    click_url: Optional[str] = None
    status: str


class ServedCreativeSchema(BaseModel):
    format: str
    width: int
    height: int
    html: Optional[str] = None
    image_url: Optional[str] = None
    click: Optional[str] = None


class ServeResponse(BaseModel):
    """GET /v1/ads/serve: a token and creative, or no_fill"""

    no_fill: Optional[bool] = None
    token: Optional[str] = None
    creative: Optional[ServedCreativeSchema] = None


class BeaconStartRequest(BaseModel):
    token: str
    device_hash: Optional[str] = None


class BeaconStartResponse(BaseModel):
    ok: bool
    impression_id: str


class BeaconViewableRequest(BaseModel):
    impression_id: str
    ms_visible: int
    device_hash: Optional[str] = None


class BeaconViewableResponse(BaseModel):
    ok: bool
    cost: float


class BeaconClickRequest(BaseModel):
    impression_id: Optional[str] = None


class OkResponse(BaseModel):
    ok: bool = True


def transaction_response(entry, other_party: Optional[str] = None) -> TransactionSchema:
    """Build the wire form of a ledger entry"""
    return TransactionSchema(
        id=str(entry.id),
        transaction_type=entry.transaction_type.value,
        amount=amount(entry.amount_micros),
        platform_fee=amount(entry.platform_fee_micros or 0),
        status=entry.status.value,
        description=entry.description,
        from_user_id=str(entry.from_user_id) if entry.from_user_id else None,
        to_user_id=str(entry.to_user_id) if entry.to_user_id else None,
        business_id=str(entry.business_id) if entry.business_id else None,
        other_party=other_party,
        created_at=iso(entry.created_at),
        completed_at=iso(entry.completed_at),
    )
