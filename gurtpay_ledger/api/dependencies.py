"""Dependency injection for FastAPI endpoints"""

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from gurtpay_ledger.config import Settings, settings
from gurtpay_ledger.domain.models import Principal
from gurtpay_ledger.infrastructure.clients.identity import IdentityClient
from gurtpay_ledger.infrastructure.database.models import Business
from gurtpay_ledger.infrastructure.database.session import get_db
from gurtpay_ledger.infrastructure.security.sessions import SessionAuthority, parse_bearer
from gurtpay_ledger.services.accounts import AccountService
from gurtpay_ledger.services.ads import AdService
from gurtpay_ledger.services.cards import CardService
from gurtpay_ledger.services.codes import CodeService
from gurtpay_ledger.services.invoices import InvoiceService
from gurtpay_ledger.services.transfers import TransferService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_settings() -> Settings:
    return settings


def get_identity_client() -> IdentityClient:
    """Provide identity provider client instance"""
    return IdentityClient()


def get_session_authority(db: Session = Depends(get_db), config: Settings = Depends(get_settings)) -> SessionAuthority:
    return SessionAuthority(db, config)


def get_bearer_token(authorization: Optional[str] = Header(None)) -> str:
    return parse_bearer(authorization)


def get_current_principal(
    token: str = Depends(get_bearer_token),
    authority: SessionAuthority = Depends(get_session_authority),
) -> Principal:
    """Resolve the bearer session; every user-scoped route depends on this"""
    return authority.validate(token)


def get_account_service(db: Session = Depends(get_db), config: Settings = Depends(get_settings)) -> AccountService:
    return AccountService(db, config)


def get_transfer_service(db: Session = Depends(get_db), config: Settings = Depends(get_settings)) -> TransferService:
    return TransferService(db, config)


def get_invoice_service(db: Session = Depends(get_db), config: Settings = Depends(get_settings)) -> InvoiceService:
    return InvoiceService(db, config)


def get_code_service(db: Session = Depends(get_db), config: Settings = Depends(get_settings)) -> CodeService:
    return CodeService(db, config)


def get_ad_service(db: Session = Depends(get_db), config: Settings = Depends(get_settings)) -> AdService:
    return AdService(db, config)


def get_card_service(db: Session = Depends(get_db), config: Settings = Depends(get_settings)) -> CardService:
    return CardService(db, config)


def get_api_business(
    authorization: Optional[str] = Header(None),
    accounts: AccountService = Depends(get_account_service),
) -> Business:
    """Businesses authenticate invoice calls with `Authorization: Bearer <api key>`"""
    return accounts.business_for_api_key(parse_bearer(authorization))
