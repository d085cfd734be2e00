"""Identity login, logout and profile"""

import logging
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from gurtpay_ledger.api.dependencies import (
    get_account_service, get_bearer_token, get_current_principal, get_identity_client,
    get_request_id, get_session_authority,
)
from gurtpay_ledger.api.v1.schemas import AuthResponse, StatusResponse, UserSchema, VerifyRequest, amount, iso
from gurtpay_ledger.domain.models import Principal
from gurtpay_ledger.infrastructure.clients.identity import IdentityClient
from gurtpay_ledger.infrastructure.database.models import User
from gurtpay_ledger.infrastructure.database.session import get_db, unit_of_work
from gurtpay_ledger.infrastructure.security.sessions import SessionAuthority
from gurtpay_ledger.services.accounts import AccountService

router = APIRouter()

logger = logging.getLogger(__name__)


def user_response(user: User) -> UserSchema:
    return UserSchema(
        id=str(user.id),
        username=user.username,
        wallet_address=user.wallet_address,
        wallet_balance=amount(user.wallet_balance_micros),
        is_admin=bool(user.is_admin),
        created_at=iso(user.created_at),
    )


@router.post("/auth/verify", response_model=AuthResponse)
async def verify_identity(
    body: VerifyRequest,
    request: Request,
    db: Session = Depends(get_db),
    identity_client: IdentityClient = Depends(get_identity_client),
    accounts: AccountService = Depends(get_account_service),
    authority: SessionAuthority = Depends(get_session_authority),
):
    """
    Exchange an identity provider token for a session.

    Flow:
    1. Verify the token with the identity provider
    2. Find or open the caller's wallet (new wallets get the welcome grant)
    3. Issue a session token
    """
    identity = await identity_client.verify_token(body.token)

    with unit_of_work(db):
        user = accounts.get_or_create_user(identity)
        session_token = authority.issue(user)

    logger.info("Session issued", extra={"request_id": get_request_id(request), "user_id": str(user.id)})
    return AuthResponse(session_token=session_token, user=user_response(user))


@router.post("/auth/logout", response_model=StatusResponse)
def logout(
    token: str = Depends(get_bearer_token),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    authority: SessionAuthority = Depends(get_session_authority),
):
    with unit_of_work(db):
        authority.invalidate(token)
    return StatusResponse(status="logged_out")


@router.get("/user/profile", response_model=UserSchema)
def get_profile(
    principal: Principal = Depends(get_current_principal),
    accounts: AccountService = Depends(get_account_service),
):
    return user_response(accounts.get_user(principal.id))
