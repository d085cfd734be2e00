"""Debit cards: issuing, rotating and revoking card credentials, and card-authorised business payments"""

import logging
import uuid
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from gurtpay_ledger.config import Settings
from gurtpay_ledger.domain.codes import generate_card_number, generate_cvv, generate_expiration
from gurtpay_ledger.domain.exceptions import (
    CardAlreadyActive, CardDeclined, CardNotFound, LedgerError, UserNotFound,
)
from gurtpay_ledger.domain.models import Principal
from gurtpay_ledger.infrastructure.database.models import Business, DebitCard, LedgerTransaction
from gurtpay_ledger.infrastructure.database.repositories import AccountRepository, CardRepository
from gurtpay_ledger.infrastructure.observability.metrics import card_payment_counter
from gurtpay_ledger.services.transfers import TransferService, positive_micros
from gurtpay_ledger.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


class CardService:
    def __init__(self, db: Session, config: Settings, transfers: Optional[TransferService] = None):
        self.db = db
        self.config = config
        self.accounts = AccountRepository(db)
        self.cards = CardRepository(db)
        self.transfers = transfers or TransferService(db, config)

    def _lock_holder(self, principal: Principal) -> None:
        # Serialises card issuing per user so two requests cannot both pass the one-active-card check
        if self.accounts.get_user(principal.id, for_update=True) is None:
            raise UserNotFound()

    def _issue(self, user_id: uuid.UUID) -> DebitCard:
        card_number = generate_card_number()
        while self.cards.card_number_exists(card_number):
            card_number = generate_card_number()
        month, year = generate_expiration(utcnow())
        return self.cards.create_card(user_id, card_number, generate_cvv(), month, year)

    def create(self, principal: Principal) -> DebitCard:
        self._lock_holder(principal)
        if self.cards.active_for_user(principal.id):
            raise CardAlreadyActive()
        card = self._issue(principal.id)
        logger.info("Debit card issued", extra={"user_id": str(principal.id), "card_id": str(card.id)})
        return card

    def list_cards(self, principal: Principal) -> List[DebitCard]:
        return self.cards.active_for_user(principal.id)

    def regenerate(self, principal: Principal) -> DebitCard:
        """Revoke every active card and issue a fresh one in the same unit of work"""
        self._lock_holder(principal)
        revoked = self.cards.deactivate_all(principal.id)
        card = self._issue(principal.id)
        logger.info(
            "Debit card regenerated",
            extra={"user_id": str(principal.id), "card_id": str(card.id), "revoked": revoked},
        )
        return card

    def deactivate(self, principal: Principal, card_id: uuid.UUID) -> None:
        if not self.cards.deactivate(card_id, principal.id):
            raise CardNotFound()

    def charge(
        self,
        business: Business,
        card_number: str,
        cvv: str,
        expiration_month: int,
        expiration_year: int,
        username: str,
        amount: Decimal,
        description: str,
    ) -> LedgerTransaction:
        """
        Charge a card holder's wallet on behalf of a business.

        The card must be active, every detail must match and the holder must
        be the named user. Funds move through the regular wallet -> business
        payment path.

        Raises:
            InvalidAmount, AmountOverLimit, CardDeclined, InsufficientFunds
        """
        try:
            entry = self._charge(
                business, card_number, cvv, expiration_month, expiration_year, username, amount, description
            )
        except LedgerError:
            card_payment_counter.labels(outcome="rejected").inc()
            raise
        card_payment_counter.labels(outcome="paid").inc()
        return entry

    def _charge(
        self,
        business: Business,
        card_number: str,
        cvv: str,
        expiration_month: int,
        expiration_year: int,
        username: str,
        amount: Decimal,
        description: str,
    ) -> LedgerTransaction:
        micros = positive_micros(amount)
        self.transfers.check_ceiling(amount)

        card = self.cards.find_for_payment(
            card_number.strip(), cvv.strip(), expiration_month, expiration_year, username.strip()
        )
        if card is None:
            raise CardDeclined()
        now = utcnow()
        if (card.expiration_year, card.expiration_month) < (now.year, now.month):
            raise CardDeclined("Card has expired")

        return self.transfers.transfer_to_business(
            card.user_id,
            business.id,
            micros,
            f"Card payment: {description} - {business.business_name}",
        )
