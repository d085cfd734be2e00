"""Domain models - pure Python dataclasses and enums representing business entities"""

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


class TransactionKind(str, enum.Enum):
    """Kind of money movement recorded in the ledger"""

    TRANSFER = "transfer"
    BUSINESS_PAYMENT = "business_payment"
    BUSINESS_DEPOSIT = "business_deposit"
    BUSINESS_WITHDRAW = "business_withdraw"
    CODE_REDEMPTION = "code_redemption"
    WELCOME_GRANT = "welcome_grant"
    ADS_FUND = "ads_fund"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class InvoiceStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class MoneyRequestStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class ImpressionStatus(str, enum.Enum):
    STARTED = "started"
    VIEWABLE = "viewable"


class CampaignStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"


class CreativeStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"


class BidModel(str, enum.Enum):
    CPM = "cpm"
    CPC = "cpc"


class TransferDirection(str, enum.Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as produced by the session authority"""

    id: uuid.UUID
    username: str
    is_admin: bool = False


@dataclass(frozen=True)
class IdentityUser:
    """User as confirmed by the third-party identity provider"""

    user_id: str
    username: str


@dataclass
class WalletSummary:
    balance_micros: int
    address: str
    total_sent_micros: int
    total_received_micros: int


@dataclass
class HistoryEntry:
    """Ledger entry seen from one user's point of view"""

    id: uuid.UUID
    kind: TransactionKind
    amount_micros: int
    description: str
    status: TransactionStatus
    created_at: datetime
    from_user_id: Optional[uuid.UUID]
    to_user_id: Optional[uuid.UUID]
    other_party: Optional[str]


@dataclass
class ServedCreative:
    format: str
    width: int
    height: int
    html: Optional[str]
    image_url: Optional[str]
    click_url: Optional[str]


@dataclass
class AdServeResult:
    """Outcome of an ad request; `token` is None on no fill"""

    token: Optional[str] = None
    creative: Optional[ServedCreative] = None

    @property
    def no_fill(self) -> bool:
        return self.token is None


@dataclass
class ViewableResult:
    impression_id: uuid.UUID
    cost_micros: int
    publisher_credit_micros: int


@dataclass
class InvoiceView:
    """Public view of an invoice with its effective status"""

    id: uuid.UUID
    business_id: uuid.UUID
    business_name: str
    business_website: Optional[str]
    amount_micros: int
    description: str
    customer_name: Optional[str]
    status: InvoiceStatus
    created_at: datetime
    expires_at: Optional[datetime]
    paid_at: Optional[datetime]


@dataclass
class RedemptionResult:
    code: str
    amount_micros: int
    new_balance_micros: int
    transaction_id: uuid.UUID
