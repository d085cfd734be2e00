"""Unit tests for the redemption code engine"""

import re
import pytest
from datetime import timedelta
from decimal import Decimal
from gurtpay_ledger.domain.exceptions import (
    AdminRequired, AlreadyRedeemed, CodeExpired, CodeInactive, CodeNotFound, ExhaustedUses,
)
from gurtpay_ledger.domain.models import TransactionKind
from gurtpay_ledger.infrastructure.database.models import CodeRedemption, LedgerTransaction, RedemptionCode
from gurtpay_ledger.infrastructure.database.session import unit_of_work
from gurtpay_ledger.services.codes import CodeService
from gurtpay_ledger.utils.date_utils import utcnow
from conftest import balance_of, principal_of


@pytest.fixture
def codes(db, config) -> CodeService:
    return CodeService(db, config)


@pytest.fixture
def admin(make_user):
    return make_user("admin", is_admin=True)


def add_code(db, admin, code="GC-ABCD-1234", amount=50_000_000, max_uses=2, expires_at=None, active=True):
    db_code = RedemptionCode(
        code=code,
        amount_micros=amount,
        max_uses=max_uses,
        current_uses=0,
        created_by=admin.id,
        created_at=utcnow(),
        expires_at=expires_at,
        active=active,
    )
    db.add(db_code)
    db.commit()
    return db_code


def test_two_use_code_scenario(db, codes, admin, make_user):
    """X redeems, X again is a repeat, Y redeems, Z finds the code exhausted"""
    code = add_code(db, admin)
    x, y, z = make_user("x"), make_user("y"), make_user("z")

    with unit_of_work(db):
        result = codes.redeem(principal_of(x), "GC-ABCD-1234")
    assert result.amount_micros == 50_000_000
    assert result.new_balance_micros == 50_000_000
    db.refresh(code)
    assert code.current_uses == 1

    with pytest.raises(AlreadyRedeemed):
        with unit_of_work(db):
            codes.redeem(principal_of(x), "GC-ABCD-1234")
    db.refresh(code)
    assert code.current_uses == 1

    with unit_of_work(db):
        codes.redeem(principal_of(y), "GC-ABCD-1234")
    db.refresh(code)
    assert code.current_uses == 2

    with pytest.raises(ExhaustedUses):
        with unit_of_work(db):
            codes.redeem(principal_of(z), "GC-ABCD-1234")
    db.refresh(code)
    assert code.current_uses == 2

    assert balance_of(db, x) == 50_000_000
    assert balance_of(db, y) == 50_000_000
    assert balance_of(db, z) == 0
    assert db.query(CodeRedemption).count() == 2


def test_redemption_writes_ledger_entry(db, codes, admin, make_user):
    add_code(db, admin, code="GC-WXYZ-0001")
    user = make_user("user")

    with unit_of_work(db):
        result = codes.redeem(principal_of(user), "gc-wxyz-0001 ")

    entry = db.query(LedgerTransaction).one()
    assert entry.id == result.transaction_id
    assert entry.transaction_type == TransactionKind.CODE_REDEMPTION
    assert entry.description == "Redeemed code: GC-WXYZ-0001"
    assert entry.to_user_id == user.id


def test_unknown_code(codes, make_user):
    with pytest.raises(CodeNotFound) as exc:
        codes.redeem(principal_of(make_user("user")), "GC-NONE-0000")
    assert exc.value.message == "Invalid or expired code"


def test_inactive_code(db, codes, admin, make_user):
    add_code(db, admin, active=False)

    with pytest.raises(CodeInactive):
        codes.redeem(principal_of(make_user("user")), "GC-ABCD-1234")


def test_expired_code(db, codes, admin, make_user):
    add_code(db, admin, expires_at=utcnow() - timedelta(seconds=1))

    with pytest.raises(CodeExpired):
        codes.redeem(principal_of(make_user("user")), "GC-ABCD-1234")


def test_unlimited_code_has_no_cap(db, codes, admin, make_user):
    code = add_code(db, admin, max_uses=None, amount=1_000_000)

    for i in range(5):
        with unit_of_work(db):
            codes.redeem(principal_of(make_user(f"user{i}")), "GC-ABCD-1234")

    db.refresh(code)
    assert code.current_uses == 5


def test_admin_creates_code(db, codes, admin):
    with unit_of_work(db):
        code = codes.create_code(principal_of(admin), Decimal("25"), max_uses=10, expires_in_hours=48)

    assert re.fullmatch(r"GC-[A-Z]{4}-\d{4}", code.code)
    assert code.amount_micros == 25_000_000
    assert code.max_uses == 10
    assert code.current_uses == 0
    assert code.expires_at is not None


def test_non_admin_cannot_create_code(codes, make_user):
    with pytest.raises(AdminRequired) as exc:
        codes.create_code(principal_of(make_user("user")), Decimal("25"))
    assert exc.value.message == "Admin access required"


def test_deactivated_code_cannot_be_redeemed(db, codes, admin, make_user):
    add_code(db, admin)

    with unit_of_work(db):
        codes.deactivate(principal_of(admin), "GC-ABCD-1234")

    with pytest.raises(CodeInactive):
        codes.redeem(principal_of(make_user("user")), "GC-ABCD-1234")
