"""Redemption code engine: capped, expiring promotional credits, at most once per user"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gurtpay_ledger.config import Settings
from gurtpay_ledger.domain.codes import generate_code
from gurtpay_ledger.domain.exceptions import (
    AdminRequired, AlreadyRedeemed, CodeExpired, CodeInactive, CodeNotFound, ExhaustedUses,
    InvalidRequest, LedgerError, UserNotFound,
)
from gurtpay_ledger.domain.models import Principal, RedemptionResult, TransactionKind
from gurtpay_ledger.infrastructure.database.models import RedemptionCode
from gurtpay_ledger.infrastructure.database.repositories import AccountRepository, CodeRepository, LedgerRepository
from gurtpay_ledger.infrastructure.observability.metrics import code_redemption_counter
from gurtpay_ledger.services.transfers import append_entry, positive_micros
from gurtpay_ledger.utils.date_utils import hours_from_now, is_past

logger = logging.getLogger(__name__)


def _require_admin(principal: Principal) -> None:
    if not principal.is_admin:
        raise AdminRequired()


class CodeService:
    def __init__(self, db: Session, config: Settings):
        self.db = db
        self.config = config
        self.codes = CodeRepository(db)
        self.accounts = AccountRepository(db)
        self.ledger = LedgerRepository(db)

    def create_code(
        self,
        principal: Principal,
        amount: Decimal,
        max_uses: Optional[int] = None,
        expires_in_hours: Optional[int] = None,
    ) -> RedemptionCode:
        _require_admin(principal)
        micros = positive_micros(amount)
        if max_uses is not None and max_uses < 1:
            raise InvalidRequest("max_uses must be at least 1")
        if expires_in_hours is not None and expires_in_hours < 1:
            raise InvalidRequest("expires_in_hours must be at least 1")

        code = generate_code()
        while self.codes.code_exists(code):
            code = generate_code()

        created = self.codes.create_code(code, micros, max_uses, principal.id, hours_from_now(expires_in_hours))
        logger.info("Redemption code created", extra={"code": code, "amount_micros": micros, "max_uses": max_uses})
        return created

    def deactivate(self, principal: Principal, code: str) -> RedemptionCode:
        _require_admin(principal)
        db_code = self.codes.get_by_code(code.strip().upper(), for_update=True)
        if db_code is None:
            raise CodeNotFound()
        db_code.active = False
        self.db.flush()
        return db_code

    def redeem(self, principal: Principal, code: str) -> RedemptionResult:
        """
        Credit the caller's wallet with a code's amount.

        Lookup, use-counter increment, redemption row, wallet credit and ledger
        entry all belong to the caller's unit of work.

        Raises:
            CodeNotFound, CodeInactive, CodeExpired, ExhaustedUses, AlreadyRedeemed
        """
        try:
            result = self._redeem(principal, code.strip().upper())
        except LedgerError:
            code_redemption_counter.labels(outcome="rejected").inc()
            raise
        code_redemption_counter.labels(outcome="redeemed").inc()
        return result

    def _redeem(self, principal: Principal, code: str) -> RedemptionResult:
        db_code = self.codes.get_by_code(code, for_update=True)
        if db_code is None:
            raise CodeNotFound()
        if not db_code.active:
            raise CodeInactive()
        if is_past(db_code.expires_at):
            raise CodeExpired()
        if db_code.max_uses is not None and db_code.current_uses >= db_code.max_uses:
            raise ExhaustedUses()

        if not self.codes.claim_use(db_code.id):
            raise ExhaustedUses()

        try:
            self.codes.add_redemption(db_code.id, principal.id, db_code.amount_micros)
        except IntegrityError as e:
            raise AlreadyRedeemed() from e

        if not self.accounts.credit_user(principal.id, db_code.amount_micros):
            raise UserNotFound()

        entry = append_entry(
            self.ledger,
            TransactionKind.CODE_REDEMPTION,
            db_code.amount_micros,
            f"Redeemed code: {db_code.code}",
            to_user_id=principal.id,
        )

        user = self.accounts.get_user(principal.id)
        return RedemptionResult(
            code=db_code.code,
            amount_micros=db_code.amount_micros,
            new_balance_micros=user.wallet_balance_micros,
            transaction_id=entry.id,
        )
