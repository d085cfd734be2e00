"""Unit tests for the account store and the session authority"""

import pytest
from datetime import timedelta
from decimal import Decimal
from gurtpay_ledger.domain.exceptions import (
    ExpiredCredential, InvalidCredential, InvalidRequest, MalformedCredential, MissingCredential,
)
from gurtpay_ledger.domain.models import IdentityUser, TransactionKind
from gurtpay_ledger.infrastructure.database.models import LedgerTransaction, UserSession
from gurtpay_ledger.infrastructure.database.session import unit_of_work
from gurtpay_ledger.infrastructure.security.sessions import SessionAuthority, parse_bearer
from gurtpay_ledger.services.accounts import AccountService
from gurtpay_ledger.services.transfers import TransferService
from gurtpay_ledger.utils.date_utils import utcnow
from conftest import principal_of


@pytest.fixture
def accounts(db, config) -> AccountService:
    return AccountService(db, config)


@pytest.fixture
def authority(db, config) -> SessionAuthority:
    return SessionAuthority(db, config)


def test_new_identity_gets_wallet_and_welcome_grant(db, accounts):
    with unit_of_work(db):
        user = accounts.get_or_create_user(IdentityUser(user_id="arson-1", username="ember"))

    db.refresh(user)
    assert user.wallet_balance_micros == 5_000_000_000
    assert user.wallet_address.startswith("GC") and len(user.wallet_address) == 10

    entry = db.query(LedgerTransaction).one()
    assert entry.transaction_type == TransactionKind.WELCOME_GRANT
    assert entry.description == "Welcome to GurtPay!"
    assert entry.to_user_id == user.id


def test_returning_identity_is_not_granted_twice(db, accounts):
    identity = IdentityUser(user_id="arson-1", username="ember")
    with unit_of_work(db):
        first = accounts.get_or_create_user(identity)
    with unit_of_work(db):
        second = accounts.get_or_create_user(identity)

    assert first.id == second.id
    assert db.query(LedgerTransaction).count() == 1


def test_welcome_grant_can_be_disabled(db, config):
    config.welcome_grant = Decimal("0")
    with unit_of_work(db):
        user = AccountService(db, config).get_or_create_user(IdentityUser(user_id="x", username="x"))

    db.refresh(user)
    assert user.wallet_balance_micros == 0
    assert db.query(LedgerTransaction).count() == 0


def test_wallet_summary_totals(db, config, accounts, make_user):
    alice = make_user("alice", Decimal("100"))
    bob = make_user("bob", Decimal("100"))
    transfers = TransferService(db, config)

    with unit_of_work(db):
        transfers.send_to_address(principal_of(alice), bob.wallet_address, Decimal("30"), "a")
    with unit_of_work(db):
        transfers.send_to_address(principal_of(bob), alice.wallet_address, Decimal("5"), "b")

    summary = accounts.wallet_summary(principal_of(alice))
    assert summary.balance_micros == 75_000_000
    assert summary.total_sent_micros == 30_000_000
    assert summary.total_received_micros == 5_000_000


def test_history_other_party(db, config, accounts, make_user, make_business):
    alice = make_user("alice", Decimal("100"))
    bob = make_user("bob")
    shop = make_business(alice, "Alice Bakery")
    transfers = TransferService(db, config)

    with unit_of_work(db):
        transfers.send_to_address(principal_of(alice), bob.wallet_address, Decimal("10"), "gift")
    with unit_of_work(db):
        transfers.business_transfer(principal_of(alice), shop.id, Decimal("20"), "deposit", "float")

    history = accounts.history(principal_of(alice))
    by_kind = {h.kind: h for h in history}
    assert by_kind[TransactionKind.TRANSFER].other_party == "bob"
    assert by_kind[TransactionKind.BUSINESS_DEPOSIT].other_party == "Alice Bakery"

    bob_history = accounts.history(principal_of(bob))
    assert [h.other_party for h in bob_history] == ["alice"]


def test_register_business_issues_api_key(db, accounts, make_user):
    owner = make_user("owner")
    with unit_of_work(db):
        business = accounts.register_business(principal_of(owner), " Gadgets ", "https://gadgets.example")

    assert business.business_name == "Gadgets"
    assert business.api_key.startswith("gp_gc")
    assert business.verified is True
    assert accounts.business_for_api_key(business.api_key).id == business.id

    with pytest.raises(InvalidCredential):
        accounts.business_for_api_key("gp_nope")
    with pytest.raises(InvalidRequest):
        accounts.register_business(principal_of(owner), "  ", None)


def test_parse_bearer():
    assert parse_bearer("Bearer abc") == "abc"
    with pytest.raises(MissingCredential):
        parse_bearer(None)
    with pytest.raises(MalformedCredential):
        parse_bearer("Token abc")
    with pytest.raises(MalformedCredential):
        parse_bearer("Bearer ")


def test_session_roundtrip_and_logout(db, authority, make_user):
    user = make_user("carol", is_admin=True)
    with unit_of_work(db):
        token = authority.issue(user)

    principal = authority.validate(token)
    assert principal.id == user.id
    assert principal.username == "carol"
    assert principal.is_admin is True

    with unit_of_work(db):
        authority.invalidate(token)
    with pytest.raises(InvalidCredential):
        authority.validate(token)


def test_session_signed_with_other_secret_is_invalid(db, config, make_user):
    user = make_user("dave")
    with unit_of_work(db):
        token = SessionAuthority(db, config.model_copy(update={"signing_secret": "other"})).issue(user)

    with pytest.raises(InvalidCredential):
        SessionAuthority(db, config).validate(token)


def test_expired_session_row_is_deactivated(db, authority, make_user):
    user = make_user("erin")
    with unit_of_work(db):
        token = authority.issue(user)
        row = db.query(UserSession).one()
        row.expires_at = utcnow() - timedelta(minutes=1)

    with pytest.raises(ExpiredCredential):
        authority.validate(token)

    db.refresh(row)
    assert row.active is False


def test_sweep_expired_sessions(db, authority, make_user):
    user = make_user("frank")
    with unit_of_work(db):
        authority.issue(user)
        authority.issue(user)
        rows = db.query(UserSession).all()
        rows[0].expires_at = utcnow() - timedelta(hours=1)

    assert authority.sweep_expired() == 1
    assert db.query(UserSession).filter(UserSession.active.is_(True)).count() == 1
