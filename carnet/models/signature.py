# carnet/models/signature.py
import enum

from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from .base import Base


class SignatureType(str, enum.Enum):
    STANDARD = "standard"
    END_OF_YEAR = "end_of_year"


class TemplateSignature(Base):
    __tablename__ = "template_signatures"

    template_assignment_id = Column(UUID(as_uuid=True), ForeignKey("template_assignments.id"), nullable=False, index=True)
    signer_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    type = Column(String(20), default=SignatureType.STANDARD.value, nullable=False)
    # "" for signatures not tied to a level
    level = Column(String(20), default="", nullable=False)
    signed_at = Column(DateTime(timezone=True), nullable=False)

    signature_period_id = Column(String(120), nullable=False)
    school_year_id = Column(UUID(as_uuid=True), nullable=True)
    school_year_name = Column(String(50), nullable=True)

    # At most one signature per assignment, type, period and level
    __table_args__ = (
        UniqueConstraint(
            "template_assignment_id", "type", "signature_period_id", "level",
            name="uq_signature_period_level",
        ),
    )
