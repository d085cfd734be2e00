"""Data access layer for accounts, ledger entries, invoices, codes, sessions, money requests and debit cards"""

import uuid
from datetime import datetime
from typing import List, Optional
from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session, joinedload
from gurtpay_ledger.infrastructure.database.models import (
    User, UserSession, Business, LedgerTransaction, Invoice,
    RedemptionCode, CodeRedemption, MoneyRequest, DebitCard,
)
from gurtpay_ledger.domain.models import (
    TransactionKind, TransactionStatus, InvoiceStatus, MoneyRequestStatus,
)
from gurtpay_ledger.utils.date_utils import utcnow


class AccountRepository:
    """
    Repository for wallet and business balances.

    Debits are compare-and-set UPDATEs: the balance guard and the write are a
    single statement, so two concurrent debits can never both pass a check
    against the same starting balance.
    """

    def __init__(self, db: Session):
        self.db = db

    # Users

    def create_user(self, external_id: str, username: str, wallet_address: str) -> User:
        user = User(
            external_id=external_id,
            username=username,
            wallet_address=wallet_address,
            wallet_balance_micros=0,
            created_at=utcnow(),
        )
        self.db.add(user)
        self.db.flush()
        return user

    def get_user(self, user_id: uuid.UUID, for_update: bool = False) -> Optional[User]:
        query = self.db.query(User).filter(User.id == user_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_user_by_external_id(self, external_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.external_id == external_id).first()

    def get_user_by_address(self, wallet_address: str) -> Optional[User]:
        return self.db.query(User).filter(User.wallet_address == wallet_address).first()

    def address_exists(self, wallet_address: str) -> bool:
        return self.db.query(User.id).filter(User.wallet_address == wallet_address).first() is not None

    def debit_user(self, user_id: uuid.UUID, amount_micros: int) -> bool:
        """Subtract from a wallet only if it covers the amount; False means insufficient funds"""
        result = self.db.execute(
            update(User)
            .where(User.id == user_id, User.wallet_balance_micros >= amount_micros)
            .values(wallet_balance_micros=User.wallet_balance_micros - amount_micros)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    def credit_user(self, user_id: uuid.UUID, amount_micros: int) -> bool:
        result = self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(wallet_balance_micros=User.wallet_balance_micros + amount_micros)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    # Businesses

    def create_business(self, owner_id: uuid.UUID, name: str, website_url: Optional[str], api_key: str) -> Business:
        business = Business(
            user_id=owner_id,
            business_name=name,
            website_url=website_url,
            api_key=api_key,
            verified=True,
            balance_micros=0,
            created_at=utcnow(),
        )
        self.db.add(business)
        self.db.flush()
        return business

    def get_business(self, business_id: uuid.UUID, for_update: bool = False) -> Optional[Business]:
        query = self.db.query(Business).filter(Business.id == business_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_owned_business(self, business_id: uuid.UUID, owner_id: uuid.UUID, for_update: bool = False) -> Optional[Business]:
        query = self.db.query(Business).filter(Business.id == business_id, Business.user_id == owner_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_business_by_api_key(self, api_key: str) -> Optional[Business]:
        return self.db.query(Business).filter(Business.api_key == api_key).first()

    def list_businesses(self, owner_id: uuid.UUID) -> List[Business]:
        return (
            self.db.query(Business)
            .filter(Business.user_id == owner_id)
            .order_by(Business.created_at.desc())
            .all()
        )

    def debit_business(self, business_id: uuid.UUID, amount_micros: int) -> bool:
        result = self.db.execute(
            update(Business)
            .where(Business.id == business_id, Business.balance_micros >= amount_micros)
            .values(balance_micros=Business.balance_micros - amount_micros)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    def credit_business(self, business_id: uuid.UUID, amount_micros: int) -> bool:
        result = self.db.execute(
            update(Business)
            .where(Business.id == business_id)
            .values(balance_micros=Business.balance_micros + amount_micros)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1


class LedgerRepository:
    """Append-only access to the transactions table"""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        kind: TransactionKind,
        amount_micros: int,
        description: str,
        from_user_id: Optional[uuid.UUID] = None,
        to_user_id: Optional[uuid.UUID] = None,
        business_id: Optional[uuid.UUID] = None,
    ) -> LedgerTransaction:
        """Write one completed entry; platform fee is always zero"""
        now = utcnow()
        entry = LedgerTransaction(
            transaction_type=kind,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            business_id=business_id,
            amount_micros=amount_micros,
            platform_fee_micros=0,
            status=TransactionStatus.COMPLETED,
            description=description,
            created_at=now,
            completed_at=now,
        )
        self.db.add(entry)
        self.db.flush()  # Get ID without committing
        return entry

    def history_for_user(self, user_id: uuid.UUID, limit: int = 50) -> List[LedgerTransaction]:
        return (
            self.db.query(LedgerTransaction)
            .options(
                joinedload(LedgerTransaction.from_user),
                joinedload(LedgerTransaction.to_user),
                joinedload(LedgerTransaction.business),
            )
            .filter(or_(LedgerTransaction.from_user_id == user_id, LedgerTransaction.to_user_id == user_id))
            .order_by(LedgerTransaction.created_at.desc())
            .limit(limit)
            .all()
        )

    def total_sent(self, user_id: uuid.UUID) -> int:
        return int(
            self.db.query(func.coalesce(func.sum(LedgerTransaction.amount_micros), 0))
            .filter(LedgerTransaction.from_user_id == user_id)
            .scalar()
        )

    def total_received(self, user_id: uuid.UUID) -> int:
        return int(
            self.db.query(func.coalesce(func.sum(LedgerTransaction.amount_micros), 0))
            .filter(LedgerTransaction.to_user_id == user_id)
            .scalar()
        )


class InvoiceRepository:
    """Repository for invoices"""

    def __init__(self, db: Session):
        self.db = db

    def create_invoice(
        self,
        business_id: uuid.UUID,
        amount_micros: int,
        description: str,
        customer_name: Optional[str],
        expires_at: Optional[datetime],
    ) -> Invoice:
        invoice = Invoice(
            business_id=business_id,
            amount_micros=amount_micros,
            description=description,
            customer_name=customer_name,
            status=InvoiceStatus.PENDING,
            created_at=utcnow(),
            expires_at=expires_at,
        )
        self.db.add(invoice)
        self.db.flush()
        return invoice

    def get_invoice(self, invoice_id: uuid.UUID, for_update: bool = False) -> Optional[Invoice]:
        query = self.db.query(Invoice).filter(Invoice.id == invoice_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def transition(self, invoice_id: uuid.UUID, current: InvoiceStatus, target: InvoiceStatus, paid_at: Optional[datetime] = None) -> bool:
        """Compare-and-set the status; False when another writer moved it first"""
        values = {"status": target}
        if paid_at is not None:
            values["paid_at"] = paid_at
        result = self.db.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.status == current)
            .values(**values)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1


class CodeRepository:
    """Repository for redemption codes and their per-user redemptions"""

    def __init__(self, db: Session):
        self.db = db

    def create_code(
        self,
        code: str,
        amount_micros: int,
        max_uses: Optional[int],
        created_by: uuid.UUID,
        expires_at: Optional[datetime],
    ) -> RedemptionCode:
        db_code = RedemptionCode(
            code=code,
            amount_micros=amount_micros,
            max_uses=max_uses,
            current_uses=0,
            created_by=created_by,
            created_at=utcnow(),
            expires_at=expires_at,
            active=True,
        )
        self.db.add(db_code)
        self.db.flush()
        return db_code

    def code_exists(self, code: str) -> bool:
        return self.db.query(RedemptionCode.id).filter(RedemptionCode.code == code).first() is not None

    def get_by_code(self, code: str, for_update: bool = False) -> Optional[RedemptionCode]:
        query = self.db.query(RedemptionCode).filter(RedemptionCode.code == code)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def claim_use(self, code_id: uuid.UUID) -> bool:
        """Increment the use counter unless the cap is already reached"""
        result = self.db.execute(
            update(RedemptionCode)
            .where(
                RedemptionCode.id == code_id,
                or_(RedemptionCode.max_uses.is_(None), RedemptionCode.current_uses < RedemptionCode.max_uses),
            )
            .values(current_uses=RedemptionCode.current_uses + 1)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    def add_redemption(self, code_id: uuid.UUID, user_id: uuid.UUID, amount_micros: int) -> CodeRedemption:
        """Insert the (code, user) row; raises IntegrityError on a repeat redemption"""
        redemption = CodeRedemption(
            code_id=code_id,
            user_id=user_id,
            amount_received_micros=amount_micros,
            redeemed_at=utcnow(),
        )
        self.db.add(redemption)
        self.db.flush()
        return redemption


class SessionRepository:
    """Repository for issued user sessions"""

    def __init__(self, db: Session):
        self.db = db

    def create_session(self, session_id: uuid.UUID, user_id: uuid.UUID, jwt_token: str, created_at: datetime, expires_at: datetime) -> UserSession:
        db_session = UserSession(
            id=session_id,
            user_id=user_id,
            jwt_token=jwt_token,
            active=True,
            created_at=created_at,
            expires_at=expires_at,
        )
        self.db.add(db_session)
        self.db.flush()
        return db_session

    def get_active(self, session_id: uuid.UUID, jwt_token: str) -> Optional[UserSession]:
        return (
            self.db.query(UserSession)
            .filter(UserSession.id == session_id, UserSession.jwt_token == jwt_token, UserSession.active.is_(True))
            .first()
        )

    def deactivate(self, session_id: uuid.UUID) -> None:
        self.db.execute(
            update(UserSession)
            .where(UserSession.id == session_id)
            .values(active=False)
            .execution_options(synchronize_session="evaluate")
        )

    def deactivate_expired(self, now: datetime) -> int:
        result = self.db.execute(
            update(UserSession)
            .where(UserSession.expires_at < now, UserSession.active.is_(True))
            .values(active=False)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


class MoneyRequestRepository:
    """Repository for peer-to-peer money requests"""

    def __init__(self, db: Session):
        self.db = db

    def create_request(self, payer_id: uuid.UUID, requester_id: uuid.UUID, amount_micros: int, description: str) -> MoneyRequest:
        request = MoneyRequest(
            payer_user_id=payer_id,
            requester_user_id=requester_id,
            amount_micros=amount_micros,
            description=description,
            status=MoneyRequestStatus.PENDING,
            created_at=utcnow(),
        )
        self.db.add(request)
        self.db.flush()
        return request

    def get_request(self, request_id: uuid.UUID, for_update: bool = False) -> Optional[MoneyRequest]:
        query = self.db.query(MoneyRequest).filter(MoneyRequest.id == request_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def list_for_user(self, user_id: uuid.UUID, limit: int = 50) -> List[MoneyRequest]:
        return (
            self.db.query(MoneyRequest)
            .filter(or_(MoneyRequest.payer_user_id == user_id, MoneyRequest.requester_user_id == user_id))
            .order_by(MoneyRequest.created_at.desc())
            .limit(limit)
            .all()
        )

    def transition(
        self,
        request_id: uuid.UUID,
        current: MoneyRequestStatus,
        target: MoneyRequestStatus,
        responded_at: datetime,
        transaction_id: Optional[uuid.UUID] = None,
    ) -> bool:
        result = self.db.execute(
            update(MoneyRequest)
            .where(MoneyRequest.id == request_id, MoneyRequest.status == current)
            .values(status=target, responded_at=responded_at, transaction_id=transaction_id)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1


class CardRepository:
    """Repository for debit cards"""

    def __init__(self, db: Session):
        self.db = db

    def create_card(
        self, user_id: uuid.UUID, card_number: str, cvv: str, expiration_month: int, expiration_year: int
    ) -> DebitCard:
        card = DebitCard(
            user_id=user_id,
            card_number=card_number,
            cvv=cvv,
            expiration_month=expiration_month,
            expiration_year=expiration_year,
            active=True,
            created_at=utcnow(),
        )
        self.db.add(card)
        self.db.flush()
        return card

    def card_number_exists(self, card_number: str) -> bool:
        return self.db.query(DebitCard.id).filter(DebitCard.card_number == card_number).first() is not None

    def active_for_user(self, user_id: uuid.UUID) -> List[DebitCard]:
        return (
            self.db.query(DebitCard)
            .filter(DebitCard.user_id == user_id, DebitCard.active.is_(True))
            .order_by(DebitCard.created_at.desc())
            .all()
        )

    def deactivate(self, card_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        result = self.db.execute(
            update(DebitCard)
            .where(DebitCard.id == card_id, DebitCard.user_id == user_id, DebitCard.active.is_(True))
            .values(active=False)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    def deactivate_all(self, user_id: uuid.UUID) -> int:
        result = self.db.execute(
            update(DebitCard)
            .where(DebitCard.user_id == user_id, DebitCard.active.is_(True))
            .values(active=False)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount

    def find_for_payment(
        self, card_number: str, cvv: str, expiration_month: int, expiration_year: int, username: str
    ) -> Optional[DebitCard]:
        """Active card whose every detail matches, held by the named user"""
        return (
            self.db.query(DebitCard)
            .join(User, DebitCard.user_id == User.id)
            .filter(
                DebitCard.card_number == card_number,
                DebitCard.cvv == cvv,
                DebitCard.expiration_month == expiration_month,
                DebitCard.expiration_year == expiration_year,
                DebitCard.active.is_(True),
                User.username == username,
            )
            .first()
        )
