from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from prism.api.deps import current_user_id, get_db, request_context
from prism.schemas.labels import (
    AllLabelMappingsRead,
    LabelMappingRead,
    LabelMappingUpdate,
    LabelSeedResult,
)
from prism.services import labels
from prism.services.audit import audit_event

router = APIRouter(prefix="/label-mappings", tags=["label_mappings"])


@router.get("", response_model=LabelMappingRead)
def get_label_mappings(
    division: Optional[str] = Query(None, max_length=128),
    db: Session = Depends(get_db),
):
    return LabelMappingRead(
        division=division or "default",
        labels=labels.labels_for_division(db, division),
    )


@router.get("/all", response_model=AllLabelMappingsRead)
def get_all_label_mappings(db: Session = Depends(get_db)):
    return AllLabelMappingsRead(mappings=labels.all_label_mappings(db))


@router.put("", response_model=LabelMappingRead)
def update_label_mappings(
    payload: LabelMappingUpdate,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(current_user_id),
    ctx: dict = Depends(request_context),
):
    try:
        saved = labels.update_label_mappings(
            db, payload.division, payload.labels.model_dump(), updated_by=user_id
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    audit_event(
        "label_mappings.updated",
        user_id,
        {"division": payload.division, "labels": saved},
        db=db,
        **ctx,
    )
    return LabelMappingRead(division=payload.division.strip(), labels=saved)


@router.post("/seed", response_model=LabelSeedResult)
def seed_label_mappings(db: Session = Depends(get_db)):
    return LabelSeedResult(created=labels.seed_default_labels(db))
