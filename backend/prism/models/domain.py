import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from prism.database import Base


class DraftStatus(PyEnum):
    open = "open"
    submitting = "submitting"
    submitted = "submitted"


class SubmissionOutcome(PyEnum):
    succeeded = "succeeded"
    partially_succeeded = "partially_succeeded"
    failed = "failed"


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    # Upstream user ids are opaque strings (sent by clients as X-User-Id).
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    payload_json: Mapped[str | None] = mapped_column(Text)

    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(256), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class DealDraftRecord(Base):
    __tablename__ = "deal_drafts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    draft_uuid: Mapped[str] = mapped_column(
        String(36), unique=True, default=lambda: str(uuid.uuid4()), index=True
    )
    # Denormalized for listing; the document is the source of truth.
    name: Mapped[str | None] = mapped_column(String(255), index=True)
    division: Mapped[str | None] = mapped_column(String(128), index=True)
    status: Mapped[DraftStatus] = mapped_column(
        Enum(DraftStatus, native_enum=False), default=DraftStatus.open, nullable=False, index=True
    )
    document: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    upstream_deal_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    submissions = relationship(
        "DealSubmission", back_populates="draft", cascade="all, delete-orphan"
    )


class DealSubmission(Base):
    __tablename__ = "deal_submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    draft_id: Mapped[int] = mapped_column(ForeignKey("deal_drafts.id"), nullable=False, index=True)
    outcome: Mapped[SubmissionOutcome] = mapped_column(
        Enum(SubmissionOutcome, native_enum=False), nullable=False
    )
    upstream_deal_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    failed_attachments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    failed_split_schedules: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    unmatched_schedules: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    draft = relationship("DealDraftRecord", back_populates="submissions")


class LabelMapping(Base):
    __tablename__ = "label_mappings"
    __table_args__ = (UniqueConstraint("division", name="uq_label_mappings_division"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    division: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    agent: Mapped[str] = mapped_column(String(64), nullable=False)
    agents: Mapped[str] = mapped_column(String(64), nullable=False)
    deal: Mapped[str] = mapped_column(String(64), nullable=False)
    deals: Mapped[str] = mapped_column(String(64), nullable=False)
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
