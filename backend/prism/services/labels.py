"""Per-division terminology (e.g. Brillstein calls agents "Managers" and deals "Slips")."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from prism import models

logger = logging.getLogger("prism.labels")

LABEL_KEYS = ("agent", "agents", "deal", "deals")

_STANDARD = {"agent": "Agent", "agents": "Agents", "deal": "Deal", "deals": "Deals"}

DEFAULT_LABELS: Dict[str, Dict[str, str]] = {
    "Brillstein": {"agent": "Manager", "agents": "Managers", "deal": "Slip", "deals": "Slips"},
    "Talent": dict(_STANDARD),
    "Marketing": dict(_STANDARD),
    "Properties": dict(_STANDARD),
    "Consulting": dict(_STANDARD),
    "Brand Partnerships": dict(_STANDARD),
    "default": dict(_STANDARD),
}


def default_labels_for_division(division: Optional[str]) -> Dict[str, str]:
    if not division:
        return dict(DEFAULT_LABELS["default"])
    return dict(DEFAULT_LABELS.get(division) or DEFAULT_LABELS["default"])


def _row_labels(row: models.LabelMapping) -> Dict[str, str]:
    return {key: getattr(row, key) for key in LABEL_KEYS}


def labels_for_division(db: Session, division: Optional[str]) -> Dict[str, str]:
    if division:
        row = db.query(models.LabelMapping).filter(models.LabelMapping.division == division).first()
        if row:
            return _row_labels(row)
    return default_labels_for_division(division)


def all_label_mappings(db: Session) -> Dict[str, Dict[str, str]]:
    out = {division: dict(labels) for division, labels in DEFAULT_LABELS.items()}
    for row in db.query(models.LabelMapping).order_by(models.LabelMapping.division.asc()).all():
        out[row.division] = _row_labels(row)
    return out


def update_label_mappings(
    db: Session, division: str, labels: Dict[str, str], *, updated_by: Optional[str] = None
) -> Dict[str, str]:
    division = (division or "").strip()
    if not division:
        raise ValueError("division is required")

    missing = [k for k in LABEL_KEYS if not (labels.get(k) or "").strip()]
    if missing:
        raise ValueError(f"Missing label(s): {', '.join(missing)}")

    row = db.query(models.LabelMapping).filter(models.LabelMapping.division == division).first()
    if row is None:
        row = models.LabelMapping(division=division)
        db.add(row)
    for key in LABEL_KEYS:
        setattr(row, key, labels[key].strip())
    row.updated_by = updated_by

    db.commit()
    db.refresh(row)
    logger.info("label_mappings_updated", extra={"division": division})
    return _row_labels(row)


def seed_default_labels(db: Session) -> int:
    """Insert the default mappings for divisions that have none. Returns rows created."""
    existing = {d for (d,) in db.query(models.LabelMapping.division).all()}
    created = 0
    for division, labels in DEFAULT_LABELS.items():
        if division in existing:
            continue
        db.add(models.LabelMapping(division=division, **labels))
        created += 1
    if created:
        db.commit()
    logger.info("label_mappings_seeded", extra={"rows_created": created})
    return created
