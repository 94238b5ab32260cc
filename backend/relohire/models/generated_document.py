from __future__ import annotations

from enum import Enum as PyEnum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from relohire.core.base import Base


class DocumentKind(str, PyEnum):
    assessment_certificate = "assessment_certificate"
    employment_contract = "employment_contract"
    visa_invitation = "visa_invitation"
    work_permit_letter = "work_permit_letter"
    accommodation_letter = "accommodation_letter"


class DocumentStatus(str, PyEnum):
    pending = "pending"
    ready = "ready"
    failed = "failed"


class GeneratedDocument(Base):
    __tablename__ = "generated_documents"
    __table_args__ = (
        UniqueConstraint("application_id", "kind", name="uq_generated_documents_application_kind"),
    )

    id = Column(Integer, primary_key=True, index=True)
    application_id = Column(
        Integer,
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    kind = Column(String(40), nullable=False)
    status = Column(String(20), nullable=False, default=DocumentStatus.pending.value)
    file_path = Column(String(500), nullable=True)
    error_message = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0, server_default="0")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    application = relationship("Application", back_populates="document_rows")
