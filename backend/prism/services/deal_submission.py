"""
Deal submission: create the deal upstream, then best-effort follow-ups.

1. ``POST /deals`` with the nested products/schedules payload. A failure here
   aborts the submission and nothing else is sent.
2. Staged attachments are uploaded concurrently.
3. Schedule-level agent splits are saved concurrently, one batch per created
   schedule that maps back to a draft schedule with splits.

Follow-up failures are logged and reported in the result; they never undo the
created deal.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from prism.models import SubmissionOutcome
from prism.services.agent_splits import build_split_rows
from prism.services.attachment_storage import read_attachment_base64
from prism.services.backend_client import PrismBackendClient
from prism.services.deal_drafts import AttachmentRef, DealDraft
from prism.services.deal_financials import ScheduleLine
from prism.services.money import parse_amount, parse_optional_amount

logger = logging.getLogger("prism.submission")


class SubmissionError(RuntimeError):
    pass


@dataclass
class SubmissionResult:
    deal_id: str
    failed_attachments: List[str] = field(default_factory=list)
    failed_split_schedules: List[str] = field(default_factory=list)
    unmatched_schedules: List[str] = field(default_factory=list)
    omitted_schedules: List[str] = field(default_factory=list)

    @property
    def outcome(self) -> SubmissionOutcome:
        if self.failed_attachments or self.failed_split_schedules:
            return SubmissionOutcome.partially_succeeded
        return SubmissionOutcome.succeeded


def _schedule_payload(s: ScheduleLine) -> Dict[str, Any]:
    return {
        "Description": s.description,
        "ScheduleDate": s.schedule_date,
        "Revenue": parse_amount(s.revenue),
        "WD_Payment_Term__c": s.payment_terms,
        "Type": s.type,
        "Talent_Invoice_Line_Amount__c": parse_amount(s.talent_amount),
        "Wasserman_Invoice_Line_Amount__c": parse_amount(s.commission_amount),
        "Split_Percent__c": parse_amount(s.split_percent),
        "Active__c": bool(s.billable),
    }


def build_create_deal_payload(
    draft: DealDraft, talent_client_ids: Optional[Iterable[str]] = None
) -> Dict[str, Any]:
    owner_id = draft.owner.id if draft.owner else None
    agent_ids = draft.payee_ids

    payload: Dict[str, Any] = {
        "Name": draft.name,
        "StageName": draft.stage,
        "Division__c": draft.division,
        "Account_Industry__c": draft.industry,
        "Description": draft.description,
        "brandId": draft.brand_id,
        "ownerId": owner_id or None,
        "agentIds": agent_ids or None,
        "Amount": parse_optional_amount(draft.amount),
        "Contract_Amount__c": parse_optional_amount(draft.contract_amount),
        "splitPercent": parse_optional_amount(draft.split_percent),
        "Contract_Start_Date__c": draft.contract_start_date or None,
        "Contract_End_Date__c": draft.contract_end_date or None,
        "CloseDate": draft.close_date or None,
        "clmContractNumber": draft.clm_contract_number or None,
        "products": [
            {
                "Product_Name__c": p.product_name,
                "ProductCode": p.product_code,
                "UnitPrice": parse_amount(p.unit_price),
                "Quantity": parse_amount(p.quantity) or 1,
                "TotalPrice": parse_amount(p.total_price),
                "Project_Deliverables__c": p.deliverables,
                "Division__c": p.division,
                "schedules": [_schedule_payload(s) for s in draft.schedules if s.product_id == p.id],
            }
            for p in draft.products
        ],
        "talentClientIds": list(
            draft.talent_client_ids if talent_client_ids is None else talent_client_ids
        ),
    }
    return {k: v for k, v in payload.items() if v is not None}


def unattached_schedules(draft: DealDraft) -> List[ScheduleLine]:
    product_ids = {p.id for p in draft.products}
    return [s for s in draft.schedules if s.product_id not in product_ids]


def match_created_schedule(
    created: Dict[str, Any], drafts: Sequence[ScheduleLine]
) -> Optional[ScheduleLine]:
    """Map a schedule returned by the create call back to its draft.

    The create response carries no client ids, so the match is on schedule
    date (date part only) plus description. Drafts sharing both values are
    ambiguous; the first one wins.
    """
    created_date = str(created.get("ScheduleDate") or "").split("T")[0]
    created_desc = created.get("Description") or ""

    matches = [s for s in drafts if s.schedule_date == created_date and s.description == created_desc]
    if not matches:
        logger.warning(
            "schedule_match_missing",
            extra={"schedule_id": created.get("id"), "schedule_date": created_date},
        )
        return None
    if len(matches) > 1:
        logger.warning(
            "schedule_match_ambiguous",
            extra={
                "schedule_id": created.get("id"),
                "schedule_date": created_date,
                "candidates": [s.id for s in matches],
            },
        )
    return matches[0]


async def _upload_attachment(
    client: PrismBackendClient, ref: AttachmentRef, deal_id: str, uploaded_by: Optional[str]
) -> None:
    payload: Dict[str, Any] = {
        "fileName": ref.file_name,
        "fileType": ref.file_type,
        "fileSize": ref.file_size,
        "base64Data": read_attachment_base64(ref.storage_uri),
        "dealId": deal_id,
    }
    if ref.description:
        payload["description"] = ref.description
    if uploaded_by:
        payload["uploadedById"] = uploaded_by
    await client.upload_attachment(payload)


async def submit_draft(
    draft: DealDraft,
    client: PrismBackendClient,
    *,
    uploaded_by: Optional[str] = None,
) -> SubmissionResult:
    omitted = unattached_schedules(draft)
    if omitted:
        logger.warning(
            "deal_schedules_omitted",
            extra={"schedule_ids": [s.id for s in omitted], "reason": "not attached to a product"},
        )

    payload = build_create_deal_payload(draft)
    try:
        created = await client.create_deal(payload)
    except Exception as exc:
        logger.exception("deal_create_failed", extra={"deal_name": draft.name})
        raise SubmissionError(f"Failed to create deal: {exc}") from exc

    deal_id = str(created["id"])
    result = SubmissionResult(deal_id=deal_id, omitted_schedules=[s.id for s in omitted])
    logger.info("deal_created", extra={"deal_id": deal_id, "products": len(draft.products)})

    # Attachments
    if draft.attachments:
        outcomes = await asyncio.gather(
            *(_upload_attachment(client, ref, deal_id, uploaded_by) for ref in draft.attachments),
            return_exceptions=True,
        )
        for ref, outcome in zip(draft.attachments, outcomes):
            if isinstance(outcome, Exception):
                logger.error(
                    "attachment_upload_failed",
                    extra={"deal_id": deal_id, "file_name": ref.file_name, "error": str(outcome)},
                )
                result.failed_attachments.append(ref.file_name)

    # Schedule splits
    names = draft.payee_names
    batches = []
    for product in created.get("products") or []:
        for created_schedule in product.get("schedules") or []:
            created_id = created_schedule.get("id")
            if not created_id:
                logger.warning(
                    "created_schedule_missing_id",
                    extra={"deal_id": deal_id, "description": created_schedule.get("Description")},
                )
                result.unmatched_schedules.append(str(created_schedule.get("Description") or ""))
                continue
            original = match_created_schedule(created_schedule, draft.schedules)
            if original is None:
                result.unmatched_schedules.append(str(created_id))
                continue
            if not original.agent_splits:
                continue
            rows = build_split_rows(original.agent_splits, original.commission_amount, names)
            batches.append((str(created_id), rows))

    if batches:
        outcomes = await asyncio.gather(
            *(client.save_schedule_splits(sid, rows) for sid, rows in batches),
            return_exceptions=True,
        )
        for (sid, _), outcome in zip(batches, outcomes):
            if isinstance(outcome, Exception):
                logger.error(
                    "schedule_splits_failed",
                    extra={"deal_id": deal_id, "schedule_id": sid, "error": str(outcome)},
                )
                result.failed_split_schedules.append(sid)

    logger.info(
        "deal_submission_complete",
        extra={
            "deal_id": deal_id,
            "outcome": result.outcome.value,
            "failed_attachments": len(result.failed_attachments),
            "failed_split_schedules": len(result.failed_split_schedules),
        },
    )
    return result
