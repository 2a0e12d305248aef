"""
Deal draft aggregate: the pre-submission deal with its products, schedules,
agent splits and staged attachments.

A draft is owned by a single writer: each request loads it, applies one
operation and saves it. Every operation ends with ``recalculate`` so stored
drafts are always consistent (schedule -> product totals -> deal amount ->
deal split %).
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from prism import models
from prism.services import agent_splits
from prism.services.deal_financials import (
    DealStage,
    ProductLine,
    ScheduleLine,
    as_text,
    compute_deal_amount,
    compute_deal_split_percent,
    deal_split_locked,
    product_total_locked,
    release_product_total,
    sync_product_total,
    update_product,
    update_schedule,
)
from prism.services.money import Numeric, format_amount, parse_amount


class DraftItemNotFound(LookupError):
    pass


class ReadOnlyFieldError(ValueError):
    pass


class DraftAlreadySubmitted(ValueError):
    pass


@dataclass
class AgentRef:
    id: str
    name: str = ""


@dataclass
class AttachmentRef:
    id: str
    file_name: str
    file_type: str
    file_size: int
    storage_uri: str
    description: str = ""


@dataclass
class DealDraft:
    name: str = ""
    stage: str = DealStage.INITIAL_OUTREACH.value
    division: str = ""
    industry: str = ""
    description: str = ""
    brand_id: str = ""
    brand_name: str = ""
    owner: Optional[AgentRef] = None
    additional_agents: List[AgentRef] = field(default_factory=list)
    talent_client_ids: List[str] = field(default_factory=list)
    amount: str = ""
    contract_amount: str = ""
    split_percent: str = ""
    split_on_schedule_basis: bool = False
    agent_splits: Dict[str, str] = field(default_factory=dict)
    contract_start_date: str = ""
    contract_end_date: str = ""
    close_date: str = ""
    clm_contract_number: str = ""
    attachments: List[AttachmentRef] = field(default_factory=list)
    products: List[ProductLine] = field(default_factory=list)
    schedules: List[ScheduleLine] = field(default_factory=list)

    @property
    def payee_ids(self) -> List[str]:
        return agent_splits.deal_payee_ids(
            self.owner.id if self.owner else None,
            [a.id for a in self.additional_agents],
        )

    @property
    def payee_names(self) -> Dict[str, str]:
        names = {a.id: a.name for a in self.additional_agents}
        if self.owner:
            names[self.owner.id] = self.owner.name
        return names


DEAL_FIELDS = frozenset(
    {
        "name",
        "stage",
        "division",
        "industry",
        "description",
        "brand_id",
        "brand_name",
        "talent_client_ids",
        "amount",
        "contract_amount",
        "split_percent",
        "contract_start_date",
        "contract_end_date",
        "close_date",
        "clm_contract_number",
    }
)


def _new_id(kind: str) -> str:
    return f"{kind}-{uuid.uuid4().hex[:12]}"


def find_product(draft: DealDraft, product_id: str) -> ProductLine:
    for p in draft.products:
        if p.id == product_id:
            return p
    raise DraftItemNotFound(f"Product {product_id} not found")


def find_schedule(draft: DealDraft, schedule_id: str) -> ScheduleLine:
    for s in draft.schedules:
        if s.id == schedule_id:
            return s
    raise DraftItemNotFound(f"Schedule {schedule_id} not found")


def _replace_schedule(draft: DealDraft, updated: ScheduleLine) -> None:
    draft.schedules = [updated if s.id == updated.id else s for s in draft.schedules]


def _require_schedule_mode(draft: DealDraft) -> None:
    if not draft.split_on_schedule_basis:
        raise ValueError("Schedule-level splits are disabled for this draft")


# -----------------------------
# Cascades
# -----------------------------


def _release_products(draft: DealDraft, product_ids: List[Optional[str]]) -> None:
    for product_id in product_ids:
        if product_id and not product_total_locked(product_id, draft.schedules):
            draft.products = [
                release_product_total(p) if p.id == product_id else p for p in draft.products
            ]


def recalculate(draft: DealDraft) -> DealDraft:
    draft.products = [sync_product_total(p, draft.schedules) for p in draft.products]

    amount = compute_deal_amount(draft.products, draft.amount)
    if amount is not None:
        draft.amount = amount

    split = compute_deal_split_percent(draft.schedules)
    if split is not None:
        draft.split_percent = split
    return draft


def amount_locked(draft: DealDraft) -> bool:
    return bool(draft.products)


def split_percent_locked(draft: DealDraft) -> bool:
    return deal_split_locked(draft.schedules, draft.split_on_schedule_basis)


# -----------------------------
# Deal fields
# -----------------------------


def new_draft(**fields: Any) -> DealDraft:
    draft = DealDraft()
    if fields:
        update_deal_fields(draft, fields)
    return recalculate(draft)


def update_deal_fields(draft: DealDraft, changes: Dict[str, Any]) -> DealDraft:
    unknown = set(changes) - DEAL_FIELDS
    if unknown:
        raise ValueError(f"Unknown deal field(s): {', '.join(sorted(unknown))}")

    if "amount" in changes and amount_locked(draft):
        raise ReadOnlyFieldError("Deal amount is derived from products")
    if "split_percent" in changes and split_percent_locked(draft):
        raise ReadOnlyFieldError("Deal split % is auto-calculated from schedule splits")
    if "stage" in changes:
        try:
            DealStage(changes["stage"])
        except ValueError:
            raise ValueError(f"Invalid stage: {changes['stage']}") from None

    for key, value in changes.items():
        if key == "talent_client_ids":
            draft.talent_client_ids = [str(v) for v in (value or [])]
        else:
            setattr(draft, key, as_text(value))
    return recalculate(draft)


# -----------------------------
# Products
# -----------------------------


def add_product(draft: DealDraft, **fields: Any) -> ProductLine:
    product = ProductLine(id=_new_id("product"))
    for key, value in fields.items():
        product = update_product(product, key, value)
    draft.products.append(product)
    recalculate(draft)
    return find_product(draft, product.id)


def update_product_field(
    draft: DealDraft, product_id: str, field_name: str, value: Numeric
) -> ProductLine:
    product = find_product(draft, product_id)
    if field_name == "total_price" and product_total_locked(product_id, draft.schedules):
        raise ReadOnlyFieldError("Product total is derived from its schedules")

    updated = update_product(product, field_name, value)
    draft.products = [updated if p.id == product_id else p for p in draft.products]
    recalculate(draft)
    return find_product(draft, product_id)


def remove_product(draft: DealDraft, product_id: str) -> DealDraft:
    find_product(draft, product_id)
    draft.products = [p for p in draft.products if p.id != product_id]
    draft.schedules = [s for s in draft.schedules if s.product_id != product_id]
    return recalculate(draft)


# -----------------------------
# Schedules
# -----------------------------


def add_schedule(
    draft: DealDraft, product_id: Optional[str] = None, **fields: Any
) -> ScheduleLine:
    if product_id:
        find_product(draft, product_id)

    schedule = ScheduleLine(
        id=_new_id("schedule"),
        product_id=product_id or None,
        split_percent=draft.split_percent or "",
        agent_splits=(
            agent_splits.initialize_equal_splits(draft.payee_ids)
            if draft.split_on_schedule_basis
            else None
        ),
    )
    for key, value in fields.items():
        if key == "product_id":
            continue
        schedule = update_schedule(schedule, key, value)

    draft.schedules.append(schedule)
    recalculate(draft)
    return find_schedule(draft, schedule.id)


def update_schedule_field(
    draft: DealDraft, schedule_id: str, field_name: str, value: Numeric
) -> ScheduleLine:
    schedule = find_schedule(draft, schedule_id)
    if field_name == "product_id" and value:
        find_product(draft, str(value))

    _replace_schedule(draft, update_schedule(schedule, field_name, value))
    if field_name == "product_id":
        _release_products(draft, [schedule.product_id])
    recalculate(draft)
    return find_schedule(draft, schedule_id)


def remove_schedule(draft: DealDraft, schedule_id: str) -> DealDraft:
    removed = find_schedule(draft, schedule_id)
    draft.schedules = [s for s in draft.schedules if s.id != schedule_id]
    _release_products(draft, [removed.product_id])
    return recalculate(draft)


# -----------------------------
# Agents and splits
# -----------------------------


def set_agents(
    draft: DealDraft, owner: Optional[AgentRef], additional: List[AgentRef]
) -> DealDraft:
    owner_id = owner.id if owner else None
    seen = set()
    cleaned: List[AgentRef] = []
    for agent in additional:
        if not agent.id or agent.id == owner_id or agent.id in seen:
            continue
        seen.add(agent.id)
        cleaned.append(agent)

    before = set(draft.payee_ids)
    draft.owner = owner
    draft.additional_agents = cleaned
    after = draft.payee_ids

    if set(after) != before:
        draft.agent_splits = agent_splits.initialize_equal_splits(after)
        if draft.split_on_schedule_basis:
            draft.schedules = [
                replace(s, agent_splits=agent_splits.reseed_schedule_splits(s.agent_splits, after))
                for s in draft.schedules
            ]
    return recalculate(draft)


def set_deal_agent_percent(draft: DealDraft, payee_id: str, value: Numeric) -> DealDraft:
    if draft.split_on_schedule_basis:
        raise ReadOnlyFieldError("Agent splits are managed per schedule")
    try:
        draft.agent_splits = agent_splits.set_manual_percent(draft.agent_splits, payee_id, value)
    except KeyError:
        raise DraftItemNotFound(f"Payee {payee_id} not found") from None
    return draft


def set_split_mode(draft: DealDraft, enabled: bool) -> DealDraft:
    if enabled == draft.split_on_schedule_basis:
        return draft

    draft.split_on_schedule_basis = enabled
    if enabled:
        seeded = agent_splits.initialize_equal_splits(draft.payee_ids)
        draft.schedules = [replace(s, agent_splits=dict(seeded)) for s in draft.schedules]
    else:
        draft.schedules = [replace(s, agent_splits=None) for s in draft.schedules]
    return recalculate(draft)


def add_schedule_payee(
    draft: DealDraft,
    schedule_id: str,
    *,
    agent_id: Optional[str] = None,
    custom_name: Optional[str] = None,
) -> ScheduleLine:
    _require_schedule_mode(draft)
    schedule = find_schedule(draft, schedule_id)

    if bool(agent_id) == bool(custom_name and custom_name.strip()):
        raise ValueError("Provide either agent_id or custom_name")
    if agent_id:
        if agent_id not in draft.payee_ids:
            raise DraftItemNotFound(f"Agent {agent_id} is not on this deal")
        key = agent_id
    else:
        key = agent_splits.custom_payee_key(custom_name or "")

    current = schedule.agent_splits or {}
    if key in current:
        raise ValueError(f"Payee {key} already has a split on this schedule")

    _replace_schedule(draft, replace(schedule, agent_splits=agent_splits.add_payee(current, key)))
    return find_schedule(draft, schedule_id)


def remove_schedule_payee(draft: DealDraft, schedule_id: str, payee_key: str) -> ScheduleLine:
    _require_schedule_mode(draft)
    schedule = find_schedule(draft, schedule_id)
    try:
        mapping = agent_splits.remove_payee(schedule.agent_splits or {}, payee_key)
    except KeyError:
        raise DraftItemNotFound(f"Payee {payee_key} not found") from None
    _replace_schedule(draft, replace(schedule, agent_splits=mapping))
    return find_schedule(draft, schedule_id)


def set_schedule_payee_percent(
    draft: DealDraft, schedule_id: str, payee_key: str, value: Numeric
) -> ScheduleLine:
    _require_schedule_mode(draft)
    schedule = find_schedule(draft, schedule_id)
    try:
        mapping = agent_splits.set_manual_percent(schedule.agent_splits or {}, payee_key, value)
    except KeyError:
        raise DraftItemNotFound(f"Payee {payee_key} not found") from None
    _replace_schedule(draft, replace(schedule, agent_splits=mapping))
    return find_schedule(draft, schedule_id)


# -----------------------------
# Attachments
# -----------------------------


def find_attachment(draft: DealDraft, attachment_id: str) -> AttachmentRef:
    for a in draft.attachments:
        if a.id == attachment_id:
            return a
    raise DraftItemNotFound(f"Attachment {attachment_id} not found")


def add_attachment(draft: DealDraft, ref: AttachmentRef) -> AttachmentRef:
    draft.attachments.append(ref)
    return ref


def describe_attachment(draft: DealDraft, attachment_id: str, description: str) -> AttachmentRef:
    ref = find_attachment(draft, attachment_id)
    ref.description = description or ""
    return ref


def remove_attachment(draft: DealDraft, attachment_id: str) -> AttachmentRef:
    ref = find_attachment(draft, attachment_id)
    draft.attachments = [a for a in draft.attachments if a.id != attachment_id]
    return ref


# -----------------------------
# Summary
# -----------------------------


def summarize(draft: DealDraft) -> Dict[str, Any]:
    """Financial summary shown next to the deal form."""
    total_product_value = sum(parse_amount(p.total_price) for p in draft.products)
    total_schedule_revenue = sum(parse_amount(s.revenue) for s in draft.schedules)

    if draft.schedules:
        commission = sum(parse_amount(s.commission_amount) for s in draft.schedules)
        talent = sum(parse_amount(s.talent_amount) for s in draft.schedules)
    elif draft.amount.strip():
        commission = parse_amount(draft.amount) * (parse_amount(draft.split_percent) / 100)
        talent = parse_amount(draft.amount) - commission
    else:
        commission = 0.0
        talent = 0.0

    names = draft.payee_names
    payees = [
        {
            "payee_id": key,
            "name": agent_splits.payee_display_name(key, names),
            "percent": pct,
            "amount": format_amount(commission * (parse_amount(pct) / 100)),
        }
        for key, pct in draft.agent_splits.items()
    ]

    schedule_splits = [
        {
            "schedule_id": s.id,
            "total": agent_splits.splits_total(s.agent_splits or {}),
            "balanced": agent_splits.splits_balanced(s.agent_splits or {}),
        }
        for s in draft.schedules
        if s.agent_splits is not None
    ]

    return {
        "total_product_value": format_amount(total_product_value),
        "total_schedule_revenue": format_amount(total_schedule_revenue),
        "commission_amount": format_amount(commission),
        "talent_amount": format_amount(talent),
        "amount_locked": amount_locked(draft),
        "split_percent_locked": split_percent_locked(draft),
        "agent_splits_total": agent_splits.splits_total(draft.agent_splits),
        "agent_splits_balanced": agent_splits.splits_balanced(draft.agent_splits),
        "payees": payees,
        "schedule_splits": schedule_splits,
    }


# -----------------------------
# Storage
# -----------------------------


def to_document(draft: DealDraft) -> Dict[str, Any]:
    return asdict(draft)


def from_document(doc: Dict[str, Any]) -> DealDraft:
    data = dict(doc or {})
    owner = data.pop("owner", None)
    additional = data.pop("additional_agents", None) or []
    attachments = data.pop("attachments", None) or []
    products = data.pop("products", None) or []
    schedules = data.pop("schedules", None) or []
    known = {k: v for k, v in data.items() if k in DealDraft.__dataclass_fields__}

    return DealDraft(
        **known,
        owner=AgentRef(**owner) if owner else None,
        additional_agents=[AgentRef(**a) for a in additional],
        attachments=[AttachmentRef(**a) for a in attachments],
        products=[ProductLine(**p) for p in products],
        schedules=[ScheduleLine(**s) for s in schedules],
    )


def create_draft_record(
    db: Session, draft: DealDraft, created_by: Optional[str] = None
) -> models.DealDraftRecord:
    record = models.DealDraftRecord(
        name=draft.name or None,
        division=draft.division or None,
        status=models.DraftStatus.open,
        document=to_document(draft),
        created_by=created_by,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def get_draft_record(db: Session, draft_id: int) -> models.DealDraftRecord:
    record = db.get(models.DealDraftRecord, draft_id)
    if not record:
        raise DraftItemNotFound(f"Draft {draft_id} not found")
    return record


def load_editable_draft(record: models.DealDraftRecord) -> DealDraft:
    if record.status == models.DraftStatus.submitting:
        raise DraftAlreadySubmitted(f"Draft {record.id} is being submitted")
    if record.status != models.DraftStatus.open:
        raise DraftAlreadySubmitted(f"Draft {record.id} was already submitted")
    return from_document(record.document)


def claim_for_submission(db: Session, record: models.DealDraftRecord) -> None:
    """Move an open draft to `submitting`. Only one of two racing claims wins."""
    claimed = (
        db.query(models.DealDraftRecord)
        .filter(
            models.DealDraftRecord.id == record.id,
            models.DealDraftRecord.status == models.DraftStatus.open,
        )
        .update(
            {models.DealDraftRecord.status: models.DraftStatus.submitting},
            synchronize_session=False,
        )
    )
    db.commit()
    if claimed != 1:
        raise DraftAlreadySubmitted(f"Draft {record.id} is being submitted")
    db.refresh(record)


def release_submission_claim(db: Session, record: models.DealDraftRecord) -> None:
    record.status = models.DraftStatus.open
    db.commit()


def save_draft(db: Session, record: models.DealDraftRecord, draft: DealDraft) -> None:
    record.document = to_document(draft)
    record.name = draft.name or None
    record.division = draft.division or None
    db.add(record)
    db.commit()
    db.refresh(record)
