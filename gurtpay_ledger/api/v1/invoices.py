"""Invoice endpoints: business-side (API key) management, public status and payer settlement"""

import logging
import uuid
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from gurtpay_ledger.api.dependencies import (
    get_api_business, get_current_principal, get_invoice_service, get_request_id,
)
from gurtpay_ledger.api.v1.schemas import (
    InvoiceCreateRequest, InvoicePaymentResponse, InvoiceSchema, InvoiceStatusResponse, amount, iso,
)
from gurtpay_ledger.domain.models import Principal
from gurtpay_ledger.infrastructure.database.models import Business, Invoice
from gurtpay_ledger.infrastructure.database.session import get_db, unit_of_work
from gurtpay_ledger.services.invoices import InvoiceService, effective_status

router = APIRouter()

logger = logging.getLogger(__name__)


def invoice_response(invoice: Invoice, service: InvoiceService) -> InvoiceSchema:
    return InvoiceSchema(
        id=str(invoice.id),
        business_id=str(invoice.business_id),
        amount=amount(invoice.amount_micros),
        description=invoice.description,
        customer_name=invoice.customer_name,
        status=effective_status(invoice).value,
        payment_url=service.payment_url(invoice),
        created_at=iso(invoice.created_at),
        expires_at=iso(invoice.expires_at),
        paid_at=iso(invoice.paid_at),
    )


@router.post("/invoice/create", response_model=InvoiceSchema)
def create_invoice(
    body: InvoiceCreateRequest,
    business: Business = Depends(get_api_business),
    db: Session = Depends(get_db),
    invoices: InvoiceService = Depends(get_invoice_service),
):
    with unit_of_work(db):
        invoice = invoices.create(
            business, body.amount, body.description, body.customer_name, body.expires_in_hours
        )
    return invoice_response(invoice, invoices)


@router.get("/invoice/verify/{invoice_id}", response_model=InvoiceSchema)
def verify_invoice(
    invoice_id: uuid.UUID,
    business: Business = Depends(get_api_business),
    invoices: InvoiceService = Depends(get_invoice_service),
):
    """Lets the issuing business confirm whether an invoice was paid"""
    return invoice_response(invoices.verify(business, invoice_id), invoices)


@router.post("/invoice/cancel/{invoice_id}", response_model=InvoiceSchema)
def cancel_invoice(
    invoice_id: uuid.UUID,
    business: Business = Depends(get_api_business),
    db: Session = Depends(get_db),
    invoices: InvoiceService = Depends(get_invoice_service),
):
    with unit_of_work(db):
        invoice = invoices.cancel(business, invoice_id)
    return invoice_response(invoice, invoices)


@router.get("/invoice/status/{invoice_id}", response_model=InvoiceStatusResponse)
def invoice_status(
    invoice_id: uuid.UUID,
    invoices: InvoiceService = Depends(get_invoice_service),
):
    """Public: no credential required"""
    view = invoices.status(invoice_id)
    return InvoiceStatusResponse(
        id=str(view.id),
        business_name=view.business_name,
        business_website=view.business_website,
        amount=amount(view.amount_micros),
        description=view.description,
        customer_name=view.customer_name,
        status=view.status.value,
        created_at=iso(view.created_at),
        expires_at=iso(view.expires_at),
        paid_at=iso(view.paid_at),
    )


@router.post("/invoice/pay/{invoice_id}", response_model=InvoicePaymentResponse)
def pay_invoice(
    invoice_id: uuid.UUID,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    invoices: InvoiceService = Depends(get_invoice_service),
):
    with unit_of_work(db):
        entry = invoices.settle(principal, invoice_id)

    logger.info(
        "Invoice settled",
        extra={"request_id": get_request_id(request), "invoice_id": str(invoice_id), "transaction_id": str(entry.id)},
    )
    return InvoicePaymentResponse(
        status="paid",
        invoice_id=str(invoice_id),
        transaction_id=str(entry.id),
        amount=amount(entry.amount_micros),
    )
