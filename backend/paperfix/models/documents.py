"""
SQLAlchemy ORM Models — Documents, Processing Jobs & Action Items

Using SQLAlchemy 2.x mapped classes for full async support. Column types
are portable (generic Uuid / Numeric / DateTime) so the same models run on
PostgreSQL in production and SQLite in the test-suite.

Ownership: every Document carries the owner's user id; routes filter on it.
The pipeline itself never looks at ownership.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from paperfix.core.dates import utcnow


# ---------------------------------------------------------------------------
# Declarative base — shared across all models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Document model — documents
# ---------------------------------------------------------------------------

class Document(Base):
    """
    One uploaded letter (PDF or photo) plus everything derived from it.

    The derived columns (doc_type … extracted_text) are NULL until the
    document's job reaches DONE, and are cleared again on retry/reclaim.
    """

    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(
            "doc_type IS NULL OR doc_type IN "
            "('BELASTING', 'BOETE', 'VERZEKERING', 'ABONNEMENT', 'OVERIG')",
            name="documents_doc_type_check",
        ),
        CheckConstraint(
            "confidence IS NULL OR (confidence >= 0 AND confidence <= 100)",
            name="documents_confidence_check",
        ),
        Index("idx_documents_owner_id", "owner_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Uploader, supplied by the auth collaborator
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    # Stored file reference
    file_ref: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Storage reference: relative path (local) or object key (s3)",
    )
    media_type: Mapped[str] = mapped_column(Text, nullable=False)
    original_filename: Mapped[str] = mapped_column(Text, nullable=False)

    language: Mapped[str] = mapped_column(
        String(8),
        nullable=False,
        default="nl",
        server_default="nl",
    )

    # Derived fields: written only by the persistence transaction
    doc_type:       Mapped[Optional[str]]      = mapped_column(String(16), nullable=True)
    sender:         Mapped[Optional[str]]      = mapped_column(Text, nullable=True)
    amount:         Mapped[Optional[Decimal]]  = mapped_column(Numeric(12, 2), nullable=True)
    deadline:       Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    summary:        Mapped[Optional[str]]      = mapped_column(Text, nullable=True)
    confidence:     Mapped[Optional[int]]      = mapped_column(Integer, nullable=True)
    extracted_text: Mapped[Optional[str]]      = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    job: Mapped["ProcessingJob"] = relationship(
        back_populates="document",
        uselist=False,
        cascade="all, delete-orphan",
    )
    action_items: Mapped[list["ActionItem"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="ActionItem.created_at",
    )

    def __repr__(self) -> str:
        return (
            f"<Document id={self.id} owner={self.owner_id} "
            f"type={self.doc_type} file={self.original_filename!r}>"
        )


# ---------------------------------------------------------------------------
# ProcessingJob model — processing_jobs
# ---------------------------------------------------------------------------

class ProcessingJob(Base):
    """
    Exactly one per Document.

    State machine (status column):
        PENDING    — waiting to be claimed
        PROCESSING — claimed by exactly one worker
        DONE       — extraction persisted
        FAILED     — terminal until a human retry (see error)

    Only JobStore.claim() moves PENDING → PROCESSING, as a single
    conditional UPDATE that also stamps a new claim_token.
    """

    __tablename__ = "processing_jobs"
    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'PROCESSING', 'DONE', 'FAILED')",
            name="processing_jobs_status_check",
        ),
        Index("idx_processing_jobs_status_created", "status", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="PENDING",
        server_default="PENDING",
    )
    error: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Populated only when status='FAILED'",
    )
    claim_token: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
        comment="Fresh per claim; completion writes must present the current one",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    document: Mapped[Document] = relationship(back_populates="job")

    def __repr__(self) -> str:
        return f"<ProcessingJob id={self.id} doc={self.document_id} status={self.status}>"


# ---------------------------------------------------------------------------
# ActionItem model — action_items
# ---------------------------------------------------------------------------

class ActionItem(Base):
    """
    A task derived from a document ("pay before 2026-01-20").
    The whole set is replaced on every successful extraction.
    """

    __tablename__ = "action_items"
    __table_args__ = (
        CheckConstraint(
            "status IN ('OPEN', 'DONE')",
            name="action_items_status_check",
        ),
        Index("idx_action_items_document_id", "document_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )

    title:       Mapped[str]                = mapped_column(String(200), nullable=False)
    description: Mapped[str]                = mapped_column(Text, nullable=False)
    deadline:    Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    status:      Mapped[str]                = mapped_column(
        String(8),
        nullable=False,
        default="OPEN",
        server_default="OPEN",
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    document: Mapped[Document] = relationship(back_populates="action_items")

    def __repr__(self) -> str:
        return f"<ActionItem id={self.id} doc={self.document_id} status={self.status}>"
