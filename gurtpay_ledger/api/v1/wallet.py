"""Wallet balance, history, sending and money requests"""

import uuid
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gurtpay_ledger.api.dependencies import get_account_service, get_current_principal, get_transfer_service
from gurtpay_ledger.api.v1.schemas import (
    BalanceResponse, MoneyRequestCreate, MoneyRequestSchema, MoneyRequestsResponse, SendMoneyRequest,
    TransactionSchema, TransactionsResponse, amount, iso, transaction_response,
)
from gurtpay_ledger.domain.models import Principal
from gurtpay_ledger.infrastructure.database.models import MoneyRequest
from gurtpay_ledger.infrastructure.database.session import get_db, unit_of_work
from gurtpay_ledger.services.accounts import AccountService
from gurtpay_ledger.services.transfers import TransferService

router = APIRouter()


def money_request_response(request: MoneyRequest) -> MoneyRequestSchema:
    return MoneyRequestSchema(
        id=str(request.id),
        payer_user_id=str(request.payer_user_id),
        requester_user_id=str(request.requester_user_id),
        amount=amount(request.amount_micros),
        description=request.description,
        status=request.status.value,
        transaction_id=str(request.transaction_id) if request.transaction_id else None,
        created_at=iso(request.created_at),
        responded_at=iso(request.responded_at),
    )


@router.get("/wallet/balance", response_model=BalanceResponse)
def get_balance(
    principal: Principal = Depends(get_current_principal),
    accounts: AccountService = Depends(get_account_service),
):
    summary = accounts.wallet_summary(principal)
    return BalanceResponse(
        balance=amount(summary.balance_micros),
        address=summary.address,
        total_sent=amount(summary.total_sent_micros),
        total_received=amount(summary.total_received_micros),
    )


@router.get("/wallet/transactions", response_model=TransactionsResponse)
def get_transactions(
    principal: Principal = Depends(get_current_principal),
    accounts: AccountService = Depends(get_account_service),
):
    """Latest 50 ledger entries involving the caller, newest first"""
    entries = accounts.history(principal)
    return TransactionsResponse(
        transactions=[
            TransactionSchema(
                id=str(e.id),
                transaction_type=e.kind.value,
                amount=amount(e.amount_micros),
                status=e.status.value,
                description=e.description,
                from_user_id=str(e.from_user_id) if e.from_user_id else None,
                to_user_id=str(e.to_user_id) if e.to_user_id else None,
                other_party=e.other_party,
                created_at=iso(e.created_at),
            )
            for e in entries
        ]
    )


@router.post("/wallet/send", response_model=TransactionSchema)
def send_money(
    body: SendMoneyRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    transfers: TransferService = Depends(get_transfer_service),
):
    with unit_of_work(db):
        entry = transfers.send_to_address(principal, body.to_address.strip(), body.amount, body.description)
    return transaction_response(entry)


@router.post("/wallet/request", response_model=MoneyRequestSchema)
def request_money(
    body: MoneyRequestCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    transfers: TransferService = Depends(get_transfer_service),
):
    with unit_of_work(db):
        money_request = transfers.request_money(principal, body.from_address.strip(), body.amount, body.description)
    return money_request_response(money_request)


@router.get("/wallet/requests", response_model=MoneyRequestsResponse)
def list_requests(
    principal: Principal = Depends(get_current_principal),
    transfers: TransferService = Depends(get_transfer_service),
):
    return MoneyRequestsResponse(requests=[money_request_response(r) for r in transfers.list_requests(principal)])


@router.post("/wallet/requests/{request_id}/accept", response_model=TransactionSchema)
def accept_request(
    request_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    transfers: TransferService = Depends(get_transfer_service),
):
    with unit_of_work(db):
        entry = transfers.accept_request(principal, request_id)
    return transaction_response(entry)


@router.post("/wallet/requests/{request_id}/decline", response_model=MoneyRequestSchema)
def decline_request(
    request_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    transfers: TransferService = Depends(get_transfer_service),
):
    with unit_of_work(db):
        money_request = transfers.decline_request(principal, request_id)
    return money_request_response(money_request)
