"""
Commission-pool distribution across payees.

A split mapping is ``payee key -> percent text``. Payee keys are agent ids or
synthetic ``custom_<name>`` keys for payees that are not agents. Membership
changes redistribute equally; manual edits touch a single payee and may leave
the total off 100 until the user fixes it (soft validation only).
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

from prism.services.money import Numeric, format_amount, parse_amount, percent_of

CUSTOM_PREFIX = "custom_"

_FULL = Decimal("100")
_TOLERANCE = Decimal("0.01")


def equal_share(count: int) -> str:
    return format_amount(100 / count)


def initialize_equal_splits(payee_ids: Iterable[str]) -> Dict[str, str]:
    ids = list(dict.fromkeys(payee_ids))
    if not ids:
        return {}
    share = equal_share(len(ids))
    return {pid: share for pid in ids}


def add_payee(mapping: Mapping[str, str], payee_id: str) -> Dict[str, str]:
    """Add a payee and redistribute everyone equally (manual overrides are dropped)."""
    return initialize_equal_splits([*mapping.keys(), payee_id])


def remove_payee(mapping: Mapping[str, str], payee_id: str) -> Dict[str, str]:
    if payee_id not in mapping:
        raise KeyError(payee_id)
    return initialize_equal_splits(k for k in mapping if k != payee_id)


def set_manual_percent(mapping: Mapping[str, str], payee_id: str, value: Numeric) -> Dict[str, str]:
    if payee_id not in mapping:
        raise KeyError(payee_id)
    updated = dict(mapping)
    updated[payee_id] = "" if value is None else str(value)
    return updated


def custom_payee_key(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValueError("Custom payee name is required")
    return f"{CUSTOM_PREFIX}{cleaned}"


def is_custom_payee(key: str) -> bool:
    return key.startswith(CUSTOM_PREFIX)


def payee_display_name(key: str, names: Optional[Mapping[str, str]] = None) -> str:
    if is_custom_payee(key):
        return key[len(CUSTOM_PREFIX) :]
    return (names or {}).get(key) or key


def deal_payee_ids(owner_id: Optional[str], additional_ids: Iterable[str]) -> List[str]:
    """Deal payee order: additional agents first, then the owner."""
    ids = list(dict.fromkeys(i for i in additional_ids if i))
    if owner_id and owner_id not in ids:
        ids.append(owner_id)
    return ids


def reseed_schedule_splits(
    existing: Optional[Mapping[str, str]], payee_ids: Iterable[str]
) -> Dict[str, str]:
    """Per-schedule mapping after a deal membership change.

    Surviving payees keep their percent, new payees get the equal share of the
    new membership and payees no longer on the deal are dropped.
    """
    ids = list(dict.fromkeys(payee_ids))
    if not ids:
        return {}
    share = equal_share(len(ids))
    current = existing or {}
    return {pid: (current.get(pid) or share) for pid in ids}


def _decimal_percent(value: str) -> Decimal:
    return Decimal(format_amount(parse_amount(value)))


def splits_total(mapping: Mapping[str, str]) -> str:
    total = sum((_decimal_percent(v) for v in mapping.values()), Decimal("0"))
    return f"{total.quantize(_TOLERANCE):f}"


def splits_balanced(mapping: Mapping[str, str]) -> bool:
    if not mapping:
        return False
    return abs(Decimal(splits_total(mapping)) - _FULL) <= _TOLERANCE


def build_split_rows(
    mapping: Mapping[str, str],
    commission_amount: Numeric,
    names: Optional[Mapping[str, str]] = None,
) -> List[dict]:
    """Rows for the schedule splits batch request."""
    return [
        {
            "agentName": payee_display_name(key, names),
            "agentId": None if is_custom_payee(key) else key,
            "splitPercent": parse_amount(pct),
            "splitAmount": parse_amount(percent_of(commission_amount, pct)),
        }
        for key, pct in mapping.items()
    ]
