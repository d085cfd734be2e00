"""Debit card management for wallet holders and card payments for businesses"""

import logging
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from gurtpay_ledger.api.dependencies import (
    get_api_business, get_card_service, get_current_principal, get_request_id,
)
from gurtpay_ledger.api.v1.schemas import (
    CardDeactivateRequest, CardPaymentRequest, CardSchema, CardsResponse, StatusResponse,
    TransactionSchema, iso, transaction_response,
)
from gurtpay_ledger.domain.models import Principal
from gurtpay_ledger.infrastructure.database.models import Business, DebitCard
from gurtpay_ledger.infrastructure.database.session import get_db, unit_of_work
from gurtpay_ledger.services.cards import CardService

router = APIRouter()

logger = logging.getLogger(__name__)


def card_response(card: DebitCard) -> CardSchema:
    return CardSchema(
        id=str(card.id),
        card_number=card.card_number,
        cvv=card.cvv,
        expiration_month=card.expiration_month,
        expiration_year=card.expiration_year,
        active=bool(card.active),
        created_at=iso(card.created_at),
    )


@router.post("/cards/create", response_model=CardSchema)
def create_card(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    cards: CardService = Depends(get_card_service),
):
    with unit_of_work(db):
        card = cards.create(principal)
    return card_response(card)


@router.get("/cards/list", response_model=CardsResponse)
def list_cards(
    principal: Principal = Depends(get_current_principal),
    cards: CardService = Depends(get_card_service),
):
    return CardsResponse(cards=[card_response(c) for c in cards.list_cards(principal)])


@router.post("/cards/regenerate", response_model=CardSchema)
def regenerate_card(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    cards: CardService = Depends(get_card_service),
):
    with unit_of_work(db):
        card = cards.regenerate(principal)
    return card_response(card)


@router.post("/cards/deactivate", response_model=StatusResponse)
def deactivate_card(
    body: CardDeactivateRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    cards: CardService = Depends(get_card_service),
):
    with unit_of_work(db):
        cards.deactivate(principal, body.card_id)
    return StatusResponse(status="deactivated")


@router.post("/payments/process", response_model=TransactionSchema)
def process_card_payment(
    body: CardPaymentRequest,
    request: Request,
    business: Business = Depends(get_api_business),
    db: Session = Depends(get_db),
    cards: CardService = Depends(get_card_service),
):
    with unit_of_work(db):
        entry = cards.charge(
            business,
            body.card_number,
            body.cvv,
            body.expiration_month,
            body.expiration_year,
            body.username,
            body.amount,
            body.description,
        )

    logger.info(
        "Card payment processed",
        extra={"request_id": get_request_id(request), "business_id": str(business.id), "transaction_id": str(entry.id)},
    )
    return transaction_response(entry)
