"""Generators for human-facing identifiers: redemption codes, wallet addresses, API keys, debit cards"""

import secrets
import string
from datetime import datetime
from typing import Tuple

_LETTERS = string.ascii_uppercase
_ALPHANUMERIC = string.ascii_uppercase + string.digits


def generate_code() -> str:
    """Redemption code in the form GC-ABCD-1234"""
    letters = "".join(secrets.choice(_LETTERS) for _ in range(4))
    numbers = "".join(secrets.choice(string.digits) for _ in range(4))
    return f"GC-{letters}-{numbers}"


def generate_wallet_address() -> str:
    """Wallet address: GC followed by 8 uppercase alphanumerics"""
    return "GC" + "".join(secrets.choice(_ALPHANUMERIC) for _ in range(8))


def generate_api_key() -> str:
    """Business API key derived from a fresh code, e.g. gp_gcabcd1234"""
    return "gp_" + generate_code().replace("-", "").lower()


def generate_card_number() -> str:
    """16 digits starting with 4, grouped as XXXX-XXXX-XXXX-XXXX"""
    digits = "4" + "".join(secrets.choice(string.digits) for _ in range(15))
    return "-".join(digits[i:i + 4] for i in range(0, 16, 4))


def generate_cvv() -> str:
    return str(100 + secrets.randbelow(900))


def generate_expiration(now: datetime) -> Tuple[int, int]:
    """(month, year) between 10 and 19 years ahead"""
    return 1 + secrets.randbelow(12), now.year + 10 + secrets.randbelow(10)
