"""Explicit state machines for invoices, money requests and ad impressions"""

import enum
from typing import Dict, FrozenSet, Type, TypeVar
from gurtpay_ledger.domain.exceptions import InvalidStateTransition
from gurtpay_ledger.domain.models import InvoiceStatus, ImpressionStatus, MoneyRequestStatus, CampaignStatus

S = TypeVar("S", bound=enum.Enum)

# Expired is derived from wall-clock at read time and never stored
INVOICE_TRANSITIONS: Dict[InvoiceStatus, FrozenSet[InvoiceStatus]] = {
    InvoiceStatus.PENDING: frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.EXPIRED: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
}

MONEY_REQUEST_TRANSITIONS: Dict[MoneyRequestStatus, FrozenSet[MoneyRequestStatus]] = {
    MoneyRequestStatus.PENDING: frozenset({MoneyRequestStatus.ACCEPTED, MoneyRequestStatus.DECLINED}),
    MoneyRequestStatus.ACCEPTED: frozenset(),
    MoneyRequestStatus.DECLINED: frozenset(),
}

IMPRESSION_TRANSITIONS: Dict[ImpressionStatus, FrozenSet[ImpressionStatus]] = {
    ImpressionStatus.STARTED: frozenset({ImpressionStatus.VIEWABLE}),
    ImpressionStatus.VIEWABLE: frozenset(),
}

CAMPAIGN_TRANSITIONS: Dict[CampaignStatus, FrozenSet[CampaignStatus]] = {
    CampaignStatus.ACTIVE: frozenset({CampaignStatus.PAUSED}),
    CampaignStatus.PAUSED: frozenset({CampaignStatus.ACTIVE}),
}

_MACHINES: Dict[Type[enum.Enum], Dict] = {
    InvoiceStatus: INVOICE_TRANSITIONS,
    MoneyRequestStatus: MONEY_REQUEST_TRANSITIONS,
    ImpressionStatus: IMPRESSION_TRANSITIONS,
    CampaignStatus: CAMPAIGN_TRANSITIONS,
}


def can_transition(current: S, target: S) -> bool:
    """Whether `current -> target` is a legal edge of its state machine"""
    table = _MACHINES[type(current)]
    return target in table.get(current, frozenset())


def advance(current: S, target: S) -> S:
    """
    Validate a state change and return the new state.

    Raises:
        InvalidStateTransition: When the edge is not in the transition table
    """
    if type(current) is not type(target):
        raise InvalidStateTransition(f"Cannot move {current!r} to {target!r}")
    if not can_transition(current, target):
        raise InvalidStateTransition(
            f"Cannot move {type(current).__name__} from '{current.value}' to '{target.value}'"
        )
    return target
