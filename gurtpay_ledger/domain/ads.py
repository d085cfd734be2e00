"""Ad settlement rules - token signing, fingerprints, pricing and creative ranking"""

import hashlib
import hmac
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional
from gurtpay_ledger.domain.models import BidModel
from gurtpay_ledger.domain.money import scale_micros

WILDCARD_FORMAT = "*"


@dataclass
class Candidate:
    """Active creative of an active, funded campaign eligible for a slot"""

    creative_id: str
    campaign_id: str
    format: str
    budget_remaining_micros: int
    created_order: int = 0


def _hmac_hex(secret: str, message: str) -> str:
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def sign_token(secret: str, token_id: str, site_id: str, slot_id: str, campaign_id: str, creative_id: str) -> str:
    """
    HMAC-SHA256 signature binding a token to {site, slot, campaign, creative}.

    The token id is part of the signed message so two tokens for the same
    placement never share a signature.
    """
    return _hmac_hex(secret, f"{token_id}{site_id}{slot_id}{campaign_id}{creative_id}")


def verify_signature(secret: str, signature: str, token_id: str, site_id: str, slot_id: str, campaign_id: str, creative_id: str) -> bool:
    expected = sign_token(secret, token_id, site_id, slot_id, campaign_id, creative_id)
    return hmac.compare_digest(expected, signature)


def split_token(token: str) -> Optional[tuple[str, str]]:
    """Split a wire token `<token_id>.<signature>`; None when malformed"""
    token_id, sep, signature = token.partition(".")
    if not sep or not token_id or not signature:
        return None
    return token_id, signature


def fingerprint(secret: str, kind: str, raw: Optional[str]) -> Optional[str]:
    """Keyed hash of a device or IP identifier; raw identifiers are never stored"""
    if not raw:
        return None
    return _hmac_hex(secret, f"{kind}:{raw}")


def matches_format(slot_format: str, creative_format: str) -> bool:
    return creative_format == WILDCARD_FORMAT or creative_format == slot_format


def rank_candidates(slot_format: str, candidates: Iterable[Candidate]) -> List[Candidate]:
    """
    Order eligible creatives for a slot.

    Requirements:
    - Format must match the slot or be the wildcard
    - Campaign must still have budget
    - Highest remaining budget wins; earlier creatives break ties
    """
    eligible = [
        c for c in candidates
        if c.budget_remaining_micros > 0 and matches_format(slot_format, c.format)
    ]
    return sorted(eligible, key=lambda c: (-c.budget_remaining_micros, c.created_order))


def viewable_cost_micros(bid_model: BidModel, max_cpm_micros: int) -> int:
    """
    Price of one viewable impression.

    cpm: max_cpm / 1000 (e.g. max_cpm 10 -> 0.01 per impression)
    cpc: charged per click, so nothing is due at viewability
    """
    if bid_model == BidModel.CPM:
        return int((Decimal(max_cpm_micros) / 1000).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return 0


def publisher_credit_micros(cost_micros: int, share: Decimal) -> int:
    """Publisher's cut of an impression cost; the remainder is retained by the platform"""
    return scale_micros(cost_micros, share)
