"""
Deal financial model: product totals, schedule commission/talent amounts and
the deal-level split roll-up.

All functions are pure. Records are never mutated in place; edits return a new
record (``dataclasses.replace``) so callers can detect no-op recalculations by
identity.

Key behaviors
- Product total = Σ schedule revenue when schedules reference the product,
  otherwise unit price × quantity.
- Schedule amounts: exactly one of split %, talent amount or commission amount
  is the edited field; the other two are re-derived from revenue.
- Deal split % = revenue-weighted average of schedule splits, falling back to a
  simple mean when no schedule with a split carries revenue.
- Cascades write a value only when it differs numerically from the stored
  text, so "350" is left alone when the computed total is 350.00.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from prism.services.money import Numeric, amounts_equal, format_amount, parse_amount


class PaymentTerms(str, Enum):
    NET_15 = "NET_15"
    NET_30 = "NET_30"
    NET_45 = "NET_45"
    NET_60 = "NET_60"
    DUE_ON_RECEIPT = "DUE_ON_RECEIPT"


class ScheduleType(str, Enum):
    REVENUE = "Revenue"


class DealStage(str, Enum):
    INITIAL_OUTREACH = "Initial Outreach"
    NEGOTIATION = "Negotiation"
    TERMS_AGREED_UPON = "Terms Agreed Upon"
    CLOSED_WON = "Closed Won"


@dataclass
class ProductLine:
    id: str
    product_name: str = ""
    product_code: str = ""
    unit_price: str = ""
    quantity: str = "1"
    total_price: str = ""
    deliverables: str = ""
    start_date: str = ""
    end_date: str = ""
    division: str = ""


@dataclass
class ScheduleLine:
    id: str
    product_id: Optional[str] = None
    description: str = ""
    schedule_date: str = ""
    revenue: str = ""
    payment_terms: str = PaymentTerms.NET_15.value
    type: str = ScheduleType.REVENUE.value
    split_percent: str = ""
    talent_amount: str = ""
    commission_amount: str = ""
    billable: bool = True
    # payee key (agent id or custom_<name>) -> percent text
    agent_splits: Optional[Dict[str, str]] = None


PRODUCT_FIELDS = frozenset(
    {
        "product_name",
        "product_code",
        "unit_price",
        "quantity",
        "total_price",
        "deliverables",
        "start_date",
        "end_date",
        "division",
    }
)

SCHEDULE_FIELDS = frozenset(
    {
        "product_id",
        "description",
        "schedule_date",
        "revenue",
        "payment_terms",
        "type",
        "split_percent",
        "talent_amount",
        "commission_amount",
        "billable",
    }
)


def as_text(value: Numeric) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# -----------------------------
# Products
# -----------------------------


def schedules_for_product(product_id: str, schedules: Iterable[ScheduleLine]) -> List[ScheduleLine]:
    return [s for s in schedules if s.product_id == product_id]


def compute_product_total(
    product: ProductLine, schedules_for_product: Sequence[ScheduleLine]
) -> str:
    if schedules_for_product:
        return format_amount(sum(parse_amount(s.revenue) for s in schedules_for_product))
    return format_amount(parse_amount(product.unit_price) * parse_amount(product.quantity))


def update_product(product: ProductLine, field: str, value: Numeric) -> ProductLine:
    if field not in PRODUCT_FIELDS:
        raise ValueError(f"Unknown product field: {field}")

    updated = replace(product, **{field: as_text(value)})
    if field in ("unit_price", "quantity"):
        updated.total_price = compute_product_total(updated, ())
    return updated


def sync_product_total(product: ProductLine, schedules: Iterable[ScheduleLine]) -> ProductLine:
    """Roll schedule revenue up into the product total (cascade step)."""
    own = schedules_for_product(product.id, schedules)
    if not own:
        return product

    total = compute_product_total(product, own)
    if amounts_equal(product.total_price, total):
        return product
    return replace(product, total_price=total)


def release_product_total(product: ProductLine) -> ProductLine:
    """Back to unit price x quantity once no schedule references the product."""
    return replace(product, total_price=compute_product_total(product, ()))


def product_total_locked(product_id: str, schedules: Iterable[ScheduleLine]) -> bool:
    return any(s.product_id == product_id for s in schedules)


def compute_deal_amount(products: Sequence[ProductLine], current_amount: str) -> Optional[str]:
    """Deal amount derived from products, or None while the amount is manual."""
    if not products:
        return None

    total = format_amount(sum(parse_amount(p.total_price) for p in products))
    if amounts_equal(current_amount, total) and current_amount.strip():
        return current_amount
    return total


# -----------------------------
# Schedules
# -----------------------------


def update_schedule(schedule: ScheduleLine, field: str, value: Numeric) -> ScheduleLine:
    if field not in SCHEDULE_FIELDS:
        raise ValueError(f"Unknown schedule field: {field}")

    if field == "billable":
        if not isinstance(value, bool):
            raise ValueError("billable must be a boolean")
        return replace(schedule, billable=value)

    if field == "product_id":
        return replace(schedule, product_id=(str(value) if value else None))

    text = as_text(value)
    if field == "payment_terms":
        try:
            text = PaymentTerms(text).value
        except ValueError:
            raise ValueError(f"Invalid payment terms: {text}") from None
    if field == "type":
        try:
            text = ScheduleType(text).value
        except ValueError:
            raise ValueError(f"Invalid schedule type: {text}") from None

    updated = replace(schedule, **{field: text})

    if field in ("revenue", "split_percent"):
        revenue = parse_amount(updated.revenue)
        split = parse_amount(updated.split_percent)
        updated.commission_amount = format_amount(revenue * (split / 100))
        updated.talent_amount = format_amount(revenue * (1 - split / 100))

    elif field == "talent_amount":
        revenue = parse_amount(schedule.revenue)
        commission = revenue - parse_amount(text)
        updated.commission_amount = format_amount(commission)
        if revenue > 0:
            updated.split_percent = format_amount((commission / revenue) * 100)

    elif field == "commission_amount":
        revenue = parse_amount(schedule.revenue)
        commission = parse_amount(text)
        updated.talent_amount = format_amount(revenue - commission)
        if revenue > 0:
            updated.split_percent = format_amount((commission / revenue) * 100)

    return updated


def schedule_has_split(schedule: ScheduleLine) -> bool:
    return parse_amount(schedule.split_percent) > 0


# -----------------------------
# Deal split roll-up
# -----------------------------


def compute_deal_split_percent(schedules: Iterable[ScheduleLine]) -> Optional[str]:
    """Deal split % from schedule splits; None leaves the manual value in place."""
    split_schedules = [s for s in schedules if schedule_has_split(s)]
    if not split_schedules:
        return None

    revenue_schedules = [s for s in split_schedules if parse_amount(s.revenue) > 0]
    if revenue_schedules:
        total_revenue = sum(parse_amount(s.revenue) for s in revenue_schedules)
        weighted = sum(
            parse_amount(s.split_percent) * parse_amount(s.revenue) for s in revenue_schedules
        )
        return format_amount(weighted / total_revenue)

    mean = sum(parse_amount(s.split_percent) for s in split_schedules) / len(split_schedules)
    return format_amount(mean)


def deal_split_locked(schedules: Iterable[ScheduleLine], split_on_schedule_basis: bool) -> bool:
    return split_on_schedule_basis or any(schedule_has_split(s) for s in schedules)
