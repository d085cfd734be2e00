"""Invoice lifecycle: creation by a business, public status polling and settlement by a payer"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from gurtpay_ledger.config import Settings
from gurtpay_ledger.domain.exceptions import (
    AlreadyPaid, Forbidden, InvoiceExpired, InvoiceNotFound, InvoiceNotPayable, LedgerError,
)
from gurtpay_ledger.domain.models import InvoiceStatus, InvoiceView, Principal
from gurtpay_ledger.domain.state_machine import advance
from gurtpay_ledger.infrastructure.database.models import Business, Invoice, LedgerTransaction
from gurtpay_ledger.infrastructure.database.repositories import InvoiceRepository
from gurtpay_ledger.infrastructure.observability.metrics import invoice_settlement_counter
from gurtpay_ledger.services.transfers import TransferService, positive_micros
from gurtpay_ledger.utils.date_utils import as_utc, hours_from_now, is_past, utcnow

logger = logging.getLogger(__name__)


def effective_status(invoice: Invoice, now: Optional[datetime] = None) -> InvoiceStatus:
    """Stored status, except that a pending invoice past its expiry reads as expired"""
    if invoice.status == InvoiceStatus.PENDING and is_past(invoice.expires_at, now):
        return InvoiceStatus.EXPIRED
    return invoice.status


class InvoiceService:
    def __init__(self, db: Session, config: Settings, transfers: Optional[TransferService] = None):
        self.db = db
        self.config = config
        self.invoices = InvoiceRepository(db)
        self.transfers = transfers or TransferService(db, config)

    def payment_url(self, invoice: Invoice) -> str:
        return f"{self.config.public_base_url.rstrip('/')}/pay/{invoice.id}"

    def create(
        self,
        business: Business,
        amount: Decimal,
        description: str,
        customer_name: Optional[str] = None,
        expires_in_hours: Optional[int] = None,
    ) -> Invoice:
        micros = positive_micros(amount)
        hours = expires_in_hours if expires_in_hours is not None else self.config.invoice_default_expiry_hours
        invoice = self.invoices.create_invoice(
            business.id,
            micros,
            description,
            customer_name,
            hours_from_now(hours),
        )
        logger.info(
            "Invoice created",
            extra={"invoice_id": str(invoice.id), "business_id": str(business.id), "amount_micros": micros},
        )
        return invoice

    def _get(self, invoice_id: uuid.UUID, for_update: bool = False) -> Invoice:
        invoice = self.invoices.get_invoice(invoice_id, for_update=for_update)
        if invoice is None:
            raise InvoiceNotFound()
        return invoice

    def verify(self, business: Business, invoice_id: uuid.UUID, for_update: bool = False) -> Invoice:
        """Load an invoice on behalf of the business that issued it"""
        invoice = self._get(invoice_id, for_update=for_update)
        if invoice.business_id != business.id:
            raise Forbidden("Invoice does not belong to this business")
        return invoice

    def status(self, invoice_id: uuid.UUID) -> InvoiceView:
        """Pure read; safe for unauthenticated polling"""
        invoice = self._get(invoice_id)
        return InvoiceView(
            id=invoice.id,
            business_id=invoice.business_id,
            business_name=invoice.business.business_name,
            business_website=invoice.business.website_url,
            amount_micros=invoice.amount_micros,
            description=invoice.description,
            customer_name=invoice.customer_name,
            status=effective_status(invoice),
            created_at=as_utc(invoice.created_at),
            expires_at=as_utc(invoice.expires_at),
            paid_at=as_utc(invoice.paid_at),
        )

    def settle(self, principal: Principal, invoice_id: uuid.UUID) -> LedgerTransaction:
        """
        Pay an invoice from the caller's wallet.

        The transfer and the paid-marking run in the caller's unit of work, so
        they commit together or not at all.

        Raises:
            InvoiceNotFound, AlreadyPaid, InvoiceNotPayable, InvoiceExpired,
            InsufficientFunds ("Insufficient balance")
        """
        try:
            entry = self._settle(principal, invoice_id)
        except LedgerError:
            invoice_settlement_counter.labels(outcome="rejected").inc()
            raise
        invoice_settlement_counter.labels(outcome="paid").inc()
        return entry

    def _settle(self, principal: Principal, invoice_id: uuid.UUID) -> LedgerTransaction:
        invoice = self._get(invoice_id, for_update=True)
        if invoice.status == InvoiceStatus.PAID:
            raise AlreadyPaid()
        if invoice.status != InvoiceStatus.PENDING:
            raise InvoiceNotPayable(f"Invoice is {invoice.status.value}")

        now = utcnow()
        if is_past(invoice.expires_at, now):
            raise InvoiceExpired()

        target = advance(invoice.status, InvoiceStatus.PAID)
        entry = self.transfers.transfer_to_business(
            principal.id,
            invoice.business_id,
            invoice.amount_micros,
            f"Payment for invoice: {invoice.description}",
            insufficient_message="Insufficient balance",
        )
        if not self.invoices.transition(invoice.id, InvoiceStatus.PENDING, target, paid_at=now):
            # Another payer won the race; raising undoes our transfer
            raise AlreadyPaid()

        logger.info(
            "Invoice paid",
            extra={"invoice_id": str(invoice.id), "payer_id": str(principal.id), "transaction_id": str(entry.id)},
        )
        return entry

    def cancel(self, business: Business, invoice_id: uuid.UUID) -> Invoice:
        invoice = self.verify(business, invoice_id, for_update=True)
        target = advance(invoice.status, InvoiceStatus.CANCELLED)
        if not self.invoices.transition(invoice.id, InvoiceStatus.PENDING, target):
            raise InvoiceNotPayable("Invoice is no longer pending")
        return invoice
