"""Account store: user wallets, businesses, wallet summaries and history"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from gurtpay_ledger.config import Settings
from gurtpay_ledger.domain.codes import generate_wallet_address, generate_api_key
from gurtpay_ledger.domain.exceptions import UserNotFound, InvalidRequest, MalformedCredential, InvalidCredential
from gurtpay_ledger.domain.models import (
    HistoryEntry, IdentityUser, Principal, TransactionKind, WalletSummary,
)
from gurtpay_ledger.domain.money import to_micros
from gurtpay_ledger.infrastructure.database.models import Business, LedgerTransaction, User
from gurtpay_ledger.infrastructure.database.repositories import AccountRepository, LedgerRepository
from gurtpay_ledger.services.transfers import append_entry

logger = logging.getLogger(__name__)

WELCOME_DESCRIPTION = "Welcome to GurtPay!"


def _first_non_empty(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value and value.strip():
            return value
    return None


def other_party_for(entry: LedgerTransaction, viewer_id: uuid.UUID) -> Optional[str]:
    """Business name if one is involved, else the counterparty's username or address"""
    if entry.business is not None and entry.business.business_name.strip():
        return entry.business.business_name
    if entry.from_user_id == viewer_id:
        counterparty = entry.to_user
    else:
        counterparty = entry.from_user
    if counterparty is None:
        return None
    return _first_non_empty(counterparty.username, counterparty.wallet_address)


class AccountService:
    """Creates and reads accounts; all mutations happen inside the caller's unit of work"""

    def __init__(self, db: Session, config: Settings):
        self.db = db
        self.config = config
        self.accounts = AccountRepository(db)
        self.ledger = LedgerRepository(db)

    def _unique_address(self) -> str:
        while True:
            address = generate_wallet_address()
            if not self.accounts.address_exists(address):
                return address

    def get_or_create_user(self, identity: IdentityUser) -> User:
        """
        Find the wallet for a verified identity or open a new one.

        New wallets receive the configured welcome grant, written to the ledger
        in the same unit of work as the account itself.
        """
        user = self.accounts.get_user_by_external_id(identity.user_id)
        if user is not None:
            return user

        user = self.accounts.create_user(identity.user_id, identity.username, self._unique_address())

        grant_micros = to_micros(self.config.welcome_grant)
        if grant_micros > 0:
            self.accounts.credit_user(user.id, grant_micros)
            append_entry(
                self.ledger,
                TransactionKind.WELCOME_GRANT,
                grant_micros,
                WELCOME_DESCRIPTION,
                to_user_id=user.id,
            )

        logger.info("Wallet opened", extra={"user_id": str(user.id), "step": "user_created"})
        return user

    def get_user(self, user_id: uuid.UUID) -> User:
        user = self.accounts.get_user(user_id)
        if user is None:
            raise UserNotFound()
        return user

    def register_business(self, principal: Principal, business_name: str, website_url: Optional[str]) -> Business:
        if not business_name or not business_name.strip():
            raise InvalidRequest("Business name is required")
        return self.accounts.create_business(principal.id, business_name.strip(), website_url, generate_api_key())

    def list_businesses(self, principal: Principal) -> List[Business]:
        return self.accounts.list_businesses(principal.id)

    def business_for_api_key(self, api_key: str) -> Business:
        if not api_key:
            raise MalformedCredential()
        business = self.accounts.get_business_by_api_key(api_key)
        if business is None:
            raise InvalidCredential("Invalid API key")
        return business

    def wallet_summary(self, principal: Principal) -> WalletSummary:
        user = self.get_user(principal.id)
        return WalletSummary(
            balance_micros=user.wallet_balance_micros,
            address=user.wallet_address,
            total_sent_micros=self.ledger.total_sent(user.id),
            total_received_micros=self.ledger.total_received(user.id),
        )

    def history(self, principal: Principal, limit: int = 50) -> List[HistoryEntry]:
        entries = self.ledger.history_for_user(principal.id, limit=limit)
        return [
            HistoryEntry(
                id=entry.id,
                kind=entry.transaction_type,
                amount_micros=entry.amount_micros,
                description=entry.description,
                status=entry.status,
                created_at=entry.created_at,
                from_user_id=entry.from_user_id,
                to_user_id=entry.to_user_id,
                other_party=other_party_for(entry, principal.id),
            )
            for entry in entries
        ]
