"""Transfer engine: atomic value movement between wallets and businesses"""

import logging
import uuid
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy.orm import Session

from gurtpay_ledger.config import Settings
from gurtpay_ledger.domain.exceptions import (
    AmountOverLimit, BusinessNotFound, InsufficientFunds, InvalidAmount, InvalidDirection,
    InvalidStateTransition, MoneyRequestNotFound, RecipientNotFound, SelfTransfer, UserNotFound,
)
from gurtpay_ledger.domain.models import (
    MoneyRequestStatus, Principal, TransactionKind, TransferDirection,
)
from gurtpay_ledger.domain.money import to_micros
from gurtpay_ledger.domain.state_machine import advance
from gurtpay_ledger.infrastructure.database.models import LedgerTransaction, MoneyRequest
from gurtpay_ledger.infrastructure.database.repositories import (
    AccountRepository, LedgerRepository, MoneyRequestRepository,
)
from gurtpay_ledger.infrastructure.observability.logging import log_money_movement
from gurtpay_ledger.infrastructure.observability.metrics import record_ledger_entry
from gurtpay_ledger.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


def append_entry(
    ledger: LedgerRepository,
    kind: TransactionKind,
    amount_micros: int,
    description: str,
    from_user_id: Optional[uuid.UUID] = None,
    to_user_id: Optional[uuid.UUID] = None,
    business_id: Optional[uuid.UUID] = None,
) -> LedgerTransaction:
    """Write a ledger entry and emit its metric and log record"""
    entry = ledger.record(
        kind,
        amount_micros,
        description,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        business_id=business_id,
    )
    record_ledger_entry(kind.value, amount_micros)

    # The business side of an entry is whichever side has no user
    source = from_user_id if from_user_id is not None else business_id
    target = to_user_id if to_user_id is not None else business_id
    log_money_movement(
        str(entry.id),
        kind.value,
        amount_micros,
        from_account=str(source) if source is not None else None,
        to_account=str(target) if target is not None else None,
    )
    return entry


def positive_micros(amount: Decimal) -> int:
    """Validate a caller-supplied amount and convert it to micros"""
    try:
        micros = to_micros(amount)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise InvalidAmount() from e
    if micros <= 0:
        raise InvalidAmount()
    return micros


class TransferService:
    """
    Moves value between accounts.

    Every method runs inside the caller's unit of work and never commits;
    a raised error rolls back the debit together with everything else.
    """

    def __init__(self, db: Session, config: Settings):
        self.db = db
        self.config = config
        self.accounts = AccountRepository(db)
        self.ledger = LedgerRepository(db)
        self.requests = MoneyRequestRepository(db)

    def check_ceiling(self, amount: Decimal) -> None:
        # Per-call ceiling; the historical message still calls it a daily limit
        limit = self.config.max_transfer_amount
        if Decimal(amount) > limit:
            raise AmountOverLimit(f"Amount exceeds daily limit of {limit:,}")

    # Engine primitives

    def transfer(self, from_user_id: uuid.UUID, to_user_id: uuid.UUID, amount_micros: int, description: str) -> LedgerTransaction:
        """
        Move funds wallet -> wallet.

        Raises:
            InvalidAmount, SelfTransfer, UserNotFound, InsufficientFunds
        """
        if amount_micros <= 0:
            raise InvalidAmount()
        if from_user_id == to_user_id:
            raise SelfTransfer()

        # Lock both rows in a fixed order so opposing transfers cannot deadlock
        for user_id in sorted((from_user_id, to_user_id), key=str):
            if self.accounts.get_user(user_id, for_update=True) is None:
                raise UserNotFound()

        if not self.accounts.debit_user(from_user_id, amount_micros):
            raise InsufficientFunds()
        self.accounts.credit_user(to_user_id, amount_micros)

        return append_entry(
            self.ledger,
            TransactionKind.TRANSFER,
            amount_micros,
            description,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
        )

    def transfer_to_business(
        self,
        from_user_id: uuid.UUID,
        business_id: uuid.UUID,
        amount_micros: int,
        description: str,
        insufficient_message: str = "Insufficient funds",
    ) -> LedgerTransaction:
        """Move funds wallet -> business balance as a business payment"""
        if amount_micros <= 0:
            raise InvalidAmount()
        if self.accounts.get_user(from_user_id, for_update=True) is None:
            raise UserNotFound()
        if self.accounts.get_business(business_id, for_update=True) is None:
            raise BusinessNotFound("Business not found")

        if not self.accounts.debit_user(from_user_id, amount_micros):
            raise InsufficientFunds(insufficient_message)
        self.accounts.credit_business(business_id, amount_micros)

        return append_entry(
            self.ledger,
            TransactionKind.BUSINESS_PAYMENT,
            amount_micros,
            description,
            from_user_id=from_user_id,
            business_id=business_id,
        )

    # Caller-facing operations

    def send_to_address(self, principal: Principal, to_address: str, amount: Decimal, description: str) -> LedgerTransaction:
        """Send money to a wallet address on behalf of the caller"""
        micros = positive_micros(amount)
        self.check_ceiling(amount)

        recipient = self.accounts.get_user_by_address(to_address)
        if recipient is None:
            raise RecipientNotFound()
        if recipient.id == principal.id:
            raise SelfTransfer()

        return self.transfer(principal.id, recipient.id, micros, description)

    def business_transfer(
        self,
        principal: Principal,
        business_id: uuid.UUID,
        amount: Decimal,
        direction: str,
        description: str,
    ) -> LedgerTransaction:
        """
        Move funds between the caller's wallet and a business they own.

        deposit: wallet -> business; withdraw: business -> wallet.
        """
        micros = positive_micros(amount)
        try:
            move = TransferDirection(direction)
        except ValueError as e:
            raise InvalidDirection() from e

        # Wallet row before business row, the same order as transfer_to_business
        if self.accounts.get_user(principal.id, for_update=True) is None:
            raise UserNotFound()
        business = self.accounts.get_owned_business(business_id, principal.id, for_update=True)
        if business is None:
            raise BusinessNotFound()

        if move == TransferDirection.DEPOSIT:
            if not self.accounts.debit_user(principal.id, micros):
                raise InsufficientFunds("Insufficient personal funds")
            self.accounts.credit_business(business.id, micros)
            kind, from_user_id, to_user_id = TransactionKind.BUSINESS_DEPOSIT, principal.id, None
        else:
            if not self.accounts.debit_business(business.id, micros):
                raise InsufficientFunds("Insufficient business funds")
            self.accounts.credit_user(principal.id, micros)
            kind, from_user_id, to_user_id = TransactionKind.BUSINESS_WITHDRAW, None, principal.id

        return append_entry(
            self.ledger,
            kind,
            micros,
            f"{description} - {business.business_name}",
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            business_id=business.id,
        )

    # Money requests

    def request_money(self, principal: Principal, from_address: str, amount: Decimal, description: str) -> MoneyRequest:
        """Ask the wallet at `from_address` to pay the caller"""
        micros = positive_micros(amount)
        self.check_ceiling(amount)

        payer = self.accounts.get_user_by_address(from_address)
        if payer is None:
            raise RecipientNotFound("User wallet address not found")
        if payer.id == principal.id:
            raise SelfTransfer("Cannot request money from yourself")

        return self.requests.create_request(payer.id, principal.id, micros, description)

    def list_requests(self, principal: Principal) -> List[MoneyRequest]:
        return self.requests.list_for_user(principal.id)

    def _payer_request(self, principal: Principal, request_id: uuid.UUID) -> MoneyRequest:
        request = self.requests.get_request(request_id, for_update=True)
        if request is None or request.payer_user_id != principal.id:
            raise MoneyRequestNotFound()
        return request

    def accept_request(self, principal: Principal, request_id: uuid.UUID) -> LedgerTransaction:
        """Pay a pending request; the transfer and the status change commit together"""
        request = self._payer_request(principal, request_id)
        target = advance(request.status, MoneyRequestStatus.ACCEPTED)

        entry = self.transfer(
            request.payer_user_id,
            request.requester_user_id,
            request.amount_micros,
            request.description,
        )
        if not self.requests.transition(request.id, MoneyRequestStatus.PENDING, target, utcnow(), entry.id):
            raise InvalidStateTransition("Money request was already answered")
        return entry

    def decline_request(self, principal: Principal, request_id: uuid.UUID) -> MoneyRequest:
        request = self._payer_request(principal, request_id)
        target = advance(request.status, MoneyRequestStatus.DECLINED)
        if not self.requests.transition(request.id, MoneyRequestStatus.PENDING, target, utcnow()):
            raise InvalidStateTransition("Money request was already answered")
        return request
