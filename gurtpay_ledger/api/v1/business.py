"""Business registration, listing and wallet <-> business transfers"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gurtpay_ledger.api.dependencies import get_account_service, get_current_principal, get_transfer_service
from gurtpay_ledger.api.v1.schemas import (
    BusinessListResponse, BusinessRegisterRequest, BusinessSchema, BusinessTransferRequest, TransactionSchema,
    amount, iso, transaction_response,
)
from gurtpay_ledger.domain.models import Principal
from gurtpay_ledger.infrastructure.database.models import Business
from gurtpay_ledger.infrastructure.database.session import get_db, unit_of_work
from gurtpay_ledger.services.accounts import AccountService
from gurtpay_ledger.services.transfers import TransferService

router = APIRouter()


def business_response(business: Business) -> BusinessSchema:
    return BusinessSchema(
        id=str(business.id),
        business_name=business.business_name,
        website_url=business.website_url,
        api_key=business.api_key,
        verified=bool(business.verified),
        balance=amount(business.balance_micros),
        created_at=iso(business.created_at),
    )


@router.post("/business/register", response_model=BusinessSchema)
def register_business(
    body: BusinessRegisterRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
):
    with unit_of_work(db):
        business = accounts.register_business(principal, body.business_name, body.website_url)
    return business_response(business)


@router.get("/business/list", response_model=BusinessListResponse)
def list_businesses(
    principal: Principal = Depends(get_current_principal),
    accounts: AccountService = Depends(get_account_service),
):
    return BusinessListResponse(businesses=[business_response(b) for b in accounts.list_businesses(principal)])


@router.post("/business/transfer", response_model=TransactionSchema)
def business_transfer(
    body: BusinessTransferRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    transfers: TransferService = Depends(get_transfer_service),
):
    """deposit moves wallet -> business, withdraw moves business -> wallet"""
    with unit_of_work(db):
        entry = transfers.business_transfer(
            principal, body.business_id, body.amount, body.direction, body.description
        )
    return transaction_response(entry)
