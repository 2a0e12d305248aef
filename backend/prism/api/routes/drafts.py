import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from prism import models
from prism.api.deps import current_user_id, get_backend_client, get_db, request_context
from prism.schemas.drafts import (
    AgentsUpdate,
    AttachmentRead,
    AttachmentUpdate,
    DraftCreate,
    DraftListItem,
    DraftRead,
    DraftSummaryRead,
    DraftUpdate,
    PercentUpdate,
    ProductIn,
    ProductRead,
    ScheduleIn,
    SchedulePayeeCreate,
    ScheduleRead,
    SplitModeUpdate,
    SubmissionLogRead,
    SubmissionRead,
)
from prism.services import attachment_storage, deal_drafts
from prism.services.audit import audit_event
from prism.services.backend_client import PrismBackendClient
from prism.services.deal_drafts import (
    AgentRef,
    AttachmentRef,
    DealDraft,
    DraftAlreadySubmitted,
    ReadOnlyFieldError,
)
from prism.services.deal_submission import SubmissionError, submit_draft
from prism.services.labels import labels_for_division

logger = logging.getLogger("prism.drafts")

router = APIRouter(prefix="/drafts", tags=["drafts"])


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, attachment_storage.AttachmentTooLarge):
        return HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(exc))
    if isinstance(exc, (ReadOnlyFieldError, DraftAlreadySubmitted)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, LookupError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc).strip("'"))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _load(db: Session, draft_id: int, *, editable: bool = True):
    try:
        record = deal_drafts.get_draft_record(db, draft_id)
        draft = (
            deal_drafts.load_editable_draft(record)
            if editable
            else deal_drafts.from_document(record.document)
        )
    except (ValueError, LookupError) as exc:
        raise _http_error(exc)
    return record, draft


def _attachment_read(ref: AttachmentRef) -> AttachmentRead:
    return AttachmentRead(
        id=ref.id,
        file_name=ref.file_name,
        file_type=ref.file_type,
        file_size=ref.file_size,
        file_size_label=attachment_storage.format_file_size(ref.file_size),
        icon=attachment_storage.file_icon(ref.file_type),
        description=ref.description,
    )


def _draft_read(record: models.DealDraftRecord, draft: DealDraft) -> DraftRead:
    body = deal_drafts.to_document(draft)
    body["attachments"] = [_attachment_read(a) for a in draft.attachments]
    return DraftRead(
        id=record.id,
        draft_uuid=record.draft_uuid,
        status=record.status,
        upstream_deal_id=record.upstream_deal_id,
        created_by=record.created_by,
        created_at=record.created_at,
        updated_at=record.updated_at,
        amount_locked=deal_drafts.amount_locked(draft),
        split_percent_locked=deal_drafts.split_percent_locked(draft),
        deal=body,
    )


# -----------------------------
# Drafts
# -----------------------------


@router.post("", response_model=DraftRead, status_code=status.HTTP_201_CREATED)
def create_draft(
    payload: DraftCreate,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(current_user_id),
    ctx: dict = Depends(request_context),
):
    try:
        draft = deal_drafts.new_draft(**payload.changes())
        if payload.owner or payload.additional_agents:
            deal_drafts.set_agents(
                draft,
                AgentRef(**payload.owner.model_dump()) if payload.owner else None,
                [AgentRef(**a.model_dump()) for a in payload.additional_agents],
            )
        if payload.split_on_schedule_basis:
            deal_drafts.set_split_mode(draft, True)
    except (ValueError, LookupError) as exc:
        raise _http_error(exc)

    record = deal_drafts.create_draft_record(db, draft, created_by=user_id)
    audit_event(
        "deal_draft.created",
        user_id,
        {"draft_id": record.id, "name": draft.name, "division": draft.division},
        db=db,
        **ctx,
    )
    return _draft_read(record, draft)


@router.get("", response_model=list[DraftListItem])
def list_drafts(
    draft_status: Optional[models.DraftStatus] = Query(None, alias="status"),
    division: Optional[str] = Query(None, min_length=1, max_length=128),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    query = db.query(models.DealDraftRecord)
    if draft_status:
        query = query.filter(models.DealDraftRecord.status == draft_status)
    if division:
        query = query.filter(models.DealDraftRecord.division == division.strip())
    return query.order_by(models.DealDraftRecord.id.desc()).limit(limit).all()


@router.get("/{draft_id}", response_model=DraftRead)
def get_draft(draft_id: int, db: Session = Depends(get_db)):
    record, draft = _load(db, draft_id, editable=False)
    return _draft_read(record, draft)


@router.patch("/{draft_id}", response_model=DraftRead)
def update_draft(draft_id: int, payload: DraftUpdate, db: Session = Depends(get_db)):
    record, draft = _load(db, draft_id)
    try:
        deal_drafts.update_deal_fields(draft, payload.changes())
    except (ValueError, LookupError) as exc:
        raise _http_error(exc)
    deal_drafts.save_draft(db, record, draft)
    return _draft_read(record, draft)


@router.delete("/{draft_id}", status_code=status.HTTP_204_NO_CONTENT)
def discard_draft(
    draft_id: int,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(current_user_id),
    ctx: dict = Depends(request_context),
):
    record, _ = _load(db, draft_id, editable=False)
    if record.status == models.DraftStatus.submitting:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail=f"Draft {draft_id} is being submitted"
        )
    draft_uuid = record.draft_uuid
    db.delete(record)
    db.commit()
    attachment_storage.delete_draft_attachments(draft_uuid)
    audit_event("deal_draft.discarded", user_id, {"draft_id": draft_id}, db=db, **ctx)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{draft_id}/summary", response_model=DraftSummaryRead)
def get_draft_summary(draft_id: int, db: Session = Depends(get_db)):
    _, draft = _load(db, draft_id, editable=False)
    summary = deal_drafts.summarize(draft)
    summary["labels"] = labels_for_division(db, draft.division)
    return summary


@router.get("/{draft_id}/submissions", response_model=list[SubmissionLogRead])
def list_submissions(draft_id: int, db: Session = Depends(get_db)):
    record, _ = _load(db, draft_id, editable=False)
    return (
        db.query(models.DealSubmission)
        .filter(models.DealSubmission.draft_id == record.id)
        .order_by(models.DealSubmission.id.asc())
        .all()
    )


# -----------------------------
# Products
# -----------------------------


@router.post("/{draft_id}/products", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
def add_product(draft_id: int, payload: ProductIn, db: Session = Depends(get_db)):
    record, draft = _load(db, draft_id)
    try:
        product = deal_drafts.add_product(draft, **payload.model_dump(exclude_unset=True, mode="json"))
    except (ValueError, LookupError) as exc:
        raise _http_error(exc)
    deal_drafts.save_draft(db, record, draft)
    return ProductRead.model_validate(product, from_attributes=True)


@router.patch("/{draft_id}/products/{product_id}", response_model=ProductRead)
def update_product(draft_id: int, product_id: str, payload: ProductIn, db: Session = Depends(get_db)):
    record, draft = _load(db, draft_id)
    try:
        product = None
        for field_name, value in payload.model_dump(exclude_unset=True, mode="json").items():
            product = deal_drafts.update_product_field(draft, product_id, field_name, value)
        if product is None:
            product = deal_drafts.find_product(draft, product_id)
    except (ValueError, LookupError) as exc:
        raise _http_error(exc)
    deal_drafts.save_draft(db, record, draft)
    return ProductRead.model_validate(product, from_attributes=True)


@router.delete("/{draft_id}/products/{product_id}", response_model=DraftRead)
def remove_product(draft_id: int, product_id: str, db: Session = Depends(get_db)):
    record, draft = _load(db, draft_id)
    try:
        deal_drafts.remove_product(draft, product_id)
    except (ValueError, LookupError) as exc:
        raise _http_error(exc)
    deal_drafts.save_draft(db, record, draft)
    return _draft_read(record, draft)


# -----------------------------
# Schedules
# -----------------------------


@router.post("/{draft_id}/schedules", response_model=ScheduleRead, status_code=status.HTTP_201_CREATED)
def add_schedule(draft_id: int, payload: ScheduleIn, db: Session = Depends(get_db)):
    record, draft = _load(db, draft_id)
    fields = payload.model_dump(exclude_unset=True, mode="json")
    product_id = fields.pop("product_id", None)
    try:
        schedule = deal_drafts.add_schedule(draft, product_id, **fields)
    except (ValueError, LookupError) as exc:
        raise _http_error(exc)
    deal_drafts.save_draft(db, record, draft)
    return ScheduleRead.model_validate(schedule, from_attributes=True)


@router.patch("/{draft_id}/schedules/{schedule_id}", response_model=ScheduleRead)
def update_schedule(
    draft_id: int, schedule_id: str, payload: ScheduleIn, db: Session = Depends(get_db)
):
    record, draft = _load(db, draft_id)
    try:
        schedule = deal_drafts.find_schedule(draft, schedule_id)
        for field_name, value in payload.model_dump(exclude_unset=True, mode="json").items():
            schedule = deal_drafts.update_schedule_field(draft, schedule_id, field_name, value)
    except (ValueError, LookupError) as exc:
        raise _http_error(exc)
    deal_drafts.save_draft(db, record, draft)
    return ScheduleRead.model_validate(schedule, from_attributes=True)


@router.delete("/{draft_id}/schedules/{schedule_id}", response_model=DraftRead)
def remove_schedule(draft_id: int, schedule_id: str, db: Session = Depends(get_db)):
    record, draft = _load(db, draft_id)
    try:
        deal_drafts.remove_schedule(draft, schedule_id)
    except (ValueError, LookupError) as exc:
        raise _http_error(exc)
    deal_drafts.save_draft(db, record, draft)
    return _draft_read(record, draft)


# -----------------------------
# Agents and splits
# -----------------------------


@router.put("/{draft_id}/agents", response_model=DraftRead)
def set_agents(draft_id: int, payload: AgentsUpdate, db: Session = Depends(get_db)):
    record, draft = _load(db, draft_id)
    deal_drafts.set_agents(
        draft,
        AgentRef(**payload.owner.model_dump()) if payload.owner else None,
        [AgentRef(**a.model_dump()) for a in payload.additional_agents],
    )
    deal_drafts.save_draft(db, record, draft)
    return _draft_read(record, draft)


@router.put("/{draft_id}/split-mode", response_model=DraftRead)
def set_split_mode(draft_id: int, payload: SplitModeUpdate, db: Session = Depends(get_db)):
    record, draft = _load(db, draft_id)
    deal_drafts.set_split_mode(draft, payload.enabled)
    deal_drafts.save_draft(db, record, draft)
    return _draft_read(record, draft)


@router.put("/{draft_id}/agent-splits/{payee_id}", response_model=DraftRead)
def set_deal_agent_percent(
    draft_id: int, payee_id: str, payload: PercentUpdate, db: Session = Depends(get_db)
):
    record, draft = _load(db, draft_id)
    try:
        deal_drafts.set_deal_agent_percent(draft, payee_id, payload.percent)
    except (ValueError, LookupError) as exc:
        raise _http_error(exc)
    deal_drafts.save_draft(db, record, draft)
    return _draft_read(record, draft)


@router.post(
    "/{draft_id}/schedules/{schedule_id}/payees",
    response_model=ScheduleRead,
    status_code=status.HTTP_201_CREATED,
)
def add_schedule_payee(
    draft_id: int, schedule_id: str, payload: SchedulePayeeCreate, db: Session = Depends(get_db)
):
    record, draft = _load(db, draft_id)
    try:
        schedule = deal_drafts.add_schedule_payee(
            draft, schedule_id, agent_id=payload.agent_id, custom_name=payload.custom_name
        )
    except (ValueError, LookupError) as exc:
        raise _http_error(exc)
    deal_drafts.save_draft(db, record, draft)
    return ScheduleRead.model_validate(schedule, from_attributes=True)


@router.put("/{draft_id}/schedules/{schedule_id}/payees/{payee_key}", response_model=ScheduleRead)
def set_schedule_payee_percent(
    draft_id: int,
    schedule_id: str,
    payee_key: str,
    payload: PercentUpdate,
    db: Session = Depends(get_db),
):
    record, draft = _load(db, draft_id)
    try:
        schedule = deal_drafts.set_schedule_payee_percent(
            draft, schedule_id, payee_key, payload.percent
        )
    except (ValueError, LookupError) as exc:
        raise _http_error(exc)
    deal_drafts.save_draft(db, record, draft)
    return ScheduleRead.model_validate(schedule, from_attributes=True)


@router.delete("/{draft_id}/schedules/{schedule_id}/payees/{payee_key}", response_model=ScheduleRead)
def remove_schedule_payee(
    draft_id: int, schedule_id: str, payee_key: str, db: Session = Depends(get_db)
):
    record, draft = _load(db, draft_id)
    try:
        schedule = deal_drafts.remove_schedule_payee(draft, schedule_id, payee_key)
    except (ValueError, LookupError) as exc:
        raise _http_error(exc)
    deal_drafts.save_draft(db, record, draft)
    return ScheduleRead.model_validate(schedule, from_attributes=True)


# -----------------------------
# Attachments
# -----------------------------


@router.post(
    "/{draft_id}/attachments", response_model=AttachmentRead, status_code=status.HTTP_201_CREATED
)
async def upload_attachment(
    draft_id: int,
    file: UploadFile = File(...),
    description: str = Form(""),
    db: Session = Depends(get_db),
):
    record, draft = _load(db, draft_id)
    content = await file.read()
    attachment_id = uuid.uuid4().hex
    try:
        stored = attachment_storage.write_draft_attachment_bytes(
            draft_uuid=record.draft_uuid,
            attachment_id=attachment_id,
            filename=file.filename or "",
            content=content,
            content_type=file.content_type or "",
        )
    except ValueError as exc:
        raise _http_error(exc)

    ref = deal_drafts.add_attachment(
        draft,
        AttachmentRef(
            id=attachment_id,
            file_name=stored["file_name"],
            file_type=stored["file_type"],
            file_size=stored["file_size"],
            storage_uri=stored["storage_uri"],
            description=description or "",
        ),
    )
    deal_drafts.save_draft(db, record, draft)
    logger.info(
        "draft_attachment_staged",
        extra={"draft_id": record.id, "attachment_id": attachment_id, "size": ref.file_size},
    )
    return _attachment_read(ref)


@router.patch("/{draft_id}/attachments/{attachment_id}", response_model=AttachmentRead)
def describe_attachment(
    draft_id: int, attachment_id: str, payload: AttachmentUpdate, db: Session = Depends(get_db)
):
    record, draft = _load(db, draft_id)
    try:
        ref = deal_drafts.describe_attachment(draft, attachment_id, payload.description)
    except (ValueError, LookupError) as exc:
        raise _http_error(exc)
    deal_drafts.save_draft(db, record, draft)
    return _attachment_read(ref)


@router.delete("/{draft_id}/attachments/{attachment_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_attachment(draft_id: int, attachment_id: str, db: Session = Depends(get_db)):
    record, draft = _load(db, draft_id)
    try:
        ref = deal_drafts.remove_attachment(draft, attachment_id)
    except (ValueError, LookupError) as exc:
        raise _http_error(exc)
    deal_drafts.save_draft(db, record, draft)
    attachment_storage.delete_attachment_file(ref.storage_uri)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# -----------------------------
# Submission
# -----------------------------


@router.post("/{draft_id}/submit", response_model=SubmissionRead)
async def submit(
    draft_id: int,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(current_user_id),
    ctx: dict = Depends(request_context),
    client: PrismBackendClient = Depends(get_backend_client),
):
    record, draft = _load(db, draft_id)
    try:
        deal_drafts.claim_for_submission(db, record)
    except DraftAlreadySubmitted as exc:
        raise _http_error(exc)

    try:
        async with client:
            result = await submit_draft(draft, client, uploaded_by=user_id)
    except SubmissionError as exc:
        record.status = models.DraftStatus.open
        db.add(
            models.DealSubmission(
                draft_id=record.id,
                outcome=models.SubmissionOutcome.failed,
                error=str(exc),
                submitted_by=user_id,
            )
        )
        db.commit()
        audit_event(
            "deal_draft.submit_failed", user_id, {"draft_id": record.id, "error": str(exc)}, db=db, **ctx
        )
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    except Exception:
        deal_drafts.release_submission_claim(db, record)
        raise

    record.status = models.DraftStatus.submitted
    record.upstream_deal_id = result.deal_id
    db.add(
        models.DealSubmission(
            draft_id=record.id,
            outcome=result.outcome,
            upstream_deal_id=result.deal_id,
            failed_attachments=result.failed_attachments,
            failed_split_schedules=result.failed_split_schedules,
            unmatched_schedules=result.unmatched_schedules,
            submitted_by=user_id,
        )
    )
    db.commit()

    # Staged files are kept while any upload still needs a retry.
    if not result.failed_attachments:
        attachment_storage.delete_draft_attachments(record.draft_uuid)

    audit_event(
        "deal_draft.submitted",
        user_id,
        {"draft_id": record.id, "deal_id": result.deal_id, "outcome": result.outcome.value},
        db=db,
        **ctx,
    )

    return SubmissionRead(
        draft_id=record.id,
        deal_id=result.deal_id,
        outcome=result.outcome,
        failed_attachments=result.failed_attachments,
        failed_split_schedules=result.failed_split_schedules,
        unmatched_schedules=result.unmatched_schedules,
        omitted_schedules=result.omitted_schedules,
    )
