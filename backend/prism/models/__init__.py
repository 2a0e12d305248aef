from prism.models.domain import (
    AuditLog,
    DealDraftRecord,
    DealSubmission,
    DraftStatus,
    LabelMapping,
    SubmissionOutcome,
)

__all__ = [
    "AuditLog",
    "DealDraftRecord",
    "DealSubmission",
    "DraftStatus",
    "LabelMapping",
    "SubmissionOutcome",
]
