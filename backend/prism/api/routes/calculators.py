from fastapi import APIRouter, HTTPException, status

from prism.schemas.calculators import (
    AgentSplitsRequest,
    AgentSplitsResponse,
    DealSplitRequest,
    DealSplitResponse,
    ProductTotalRequest,
    ProductTotalResponse,
    ScheduleCalcRequest,
    ScheduleCalcResponse,
)
from prism.services import agent_splits
from prism.services.deal_financials import (
    ProductLine,
    ScheduleLine,
    as_text,
    compute_deal_split_percent,
    compute_product_total,
    deal_split_locked,
    update_schedule,
)

router = APIRouter(prefix="/calculators", tags=["calculators"])


@router.post("/product-total", response_model=ProductTotalResponse)
def preview_product_total(payload: ProductTotalRequest) -> ProductTotalResponse:
    product = ProductLine(
        id="preview",
        unit_price=as_text(payload.unit_price),
        quantity=as_text(payload.quantity),
    )
    schedules = [
        ScheduleLine(id=f"preview-{i}", product_id=product.id, revenue=as_text(r))
        for i, r in enumerate(payload.schedule_revenues)
    ]
    return ProductTotalResponse(
        total_price=compute_product_total(product, schedules),
        derived_from="schedules" if schedules else "unit_price",
    )


@router.post("/schedule", response_model=ScheduleCalcResponse)
def preview_schedule(payload: ScheduleCalcRequest) -> ScheduleCalcResponse:
    """Apply one edit to a schedule's amounts and return the re-derived values."""
    schedule = ScheduleLine(
        id="preview",
        revenue=as_text(payload.revenue),
        split_percent=as_text(payload.split_percent),
        talent_amount=as_text(payload.talent_amount),
        commission_amount=as_text(payload.commission_amount),
    )
    updated = update_schedule(schedule, payload.edited_field, payload.value)
    return ScheduleCalcResponse(
        revenue=updated.revenue,
        split_percent=updated.split_percent,
        talent_amount=updated.talent_amount,
        commission_amount=updated.commission_amount,
    )


@router.post("/deal-split", response_model=DealSplitResponse)
def preview_deal_split(payload: DealSplitRequest) -> DealSplitResponse:
    schedules = [
        ScheduleLine(
            id=f"preview-{i}",
            revenue=as_text(s.revenue),
            split_percent=as_text(s.split_percent),
        )
        for i, s in enumerate(payload.schedules)
    ]
    return DealSplitResponse(
        split_percent=compute_deal_split_percent(schedules),
        locked=deal_split_locked(schedules, payload.split_on_schedule_basis),
    )


@router.post("/agent-splits", response_model=AgentSplitsResponse)
def preview_agent_splits(payload: AgentSplitsRequest) -> AgentSplitsResponse:
    op = payload.operation
    if op in ("add", "remove", "set") and not payload.payee_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"payee_id is required for '{op}'"
        )

    try:
        if op == "equal":
            splits = agent_splits.initialize_equal_splits(payload.payee_ids)
        elif op == "add":
            if payload.payee_id in payload.splits:
                raise ValueError(f"Payee {payload.payee_id} already has a split")
            splits = agent_splits.add_payee(payload.splits, payload.payee_id)
        elif op == "remove":
            splits = agent_splits.remove_payee(payload.splits, payload.payee_id)
        else:
            splits = agent_splits.set_manual_percent(payload.splits, payload.payee_id, payload.value)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Payee {payload.payee_id} not found"
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    rows = None
    if payload.commission_amount is not None:
        rows = agent_splits.build_split_rows(splits, payload.commission_amount, payload.names)

    return AgentSplitsResponse(
        splits=splits,
        total=agent_splits.splits_total(splits),
        balanced=agent_splits.splits_balanced(splits),
        rows=rows,
    )
