"""Redemption code endpoints: admin creation/deactivation and user redemption"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gurtpay_ledger.api.dependencies import get_code_service, get_current_principal
from gurtpay_ledger.api.v1.schemas import CodeCreateRequest, CodeSchema, RedeemRequest, RedeemResponse, amount, iso
from gurtpay_ledger.domain.models import Principal
from gurtpay_ledger.infrastructure.database.models import RedemptionCode
from gurtpay_ledger.infrastructure.database.session import get_db, unit_of_work
from gurtpay_ledger.services.codes import CodeService

router = APIRouter()


def code_response(code: RedemptionCode) -> CodeSchema:
    return CodeSchema(
        id=str(code.id),
        code=code.code,
        amount=amount(code.amount_micros),
        max_uses=code.max_uses,
        current_uses=code.current_uses,
        active=bool(code.active),
        created_at=iso(code.created_at),
        expires_at=iso(code.expires_at),
    )


@router.post("/admin/codes/create", response_model=CodeSchema)
def create_code(
    body: CodeCreateRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    codes: CodeService = Depends(get_code_service),
):
    with unit_of_work(db):
        code = codes.create_code(principal, body.amount, body.max_uses, body.expires_in_hours)
    return code_response(code)


@router.post("/admin/codes/{code}/deactivate", response_model=CodeSchema)
def deactivate_code(
    code: str,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    codes: CodeService = Depends(get_code_service),
):
    with unit_of_work(db):
        db_code = codes.deactivate(principal, code)
    return code_response(db_code)


@router.post("/codes/redeem", response_model=RedeemResponse)
def redeem_code(
    body: RedeemRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    codes: CodeService = Depends(get_code_service),
):
    with unit_of_work(db):
        result = codes.redeem(principal, body.code)
    return RedeemResponse(
        code=result.code,
        amount=amount(result.amount_micros),
        new_balance=amount(result.new_balance_micros),
        transaction_id=str(result.transaction_id),
    )
