# carnet/models/archive.py
from sqlalchemy import Column, String, Boolean, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from .base import Base


class StudentCompetencyStatus(Base):
    __tablename__ = "student_competency_statuses"

    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id"), nullable=False, index=True)
    competency_id = Column(String(100), nullable=False)
    en = Column(Boolean, default=False, nullable=False)
    fr = Column(Boolean, default=False, nullable=False)
    ar = Column(Boolean, default=False, nullable=False)
    note = Column(String(500), nullable=True)
    updated_by = Column(UUID(as_uuid=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("student_id", "competency_id", name="uq_student_competency"),
    )


class SavedGradebook(Base):
    """Immutable snapshot of a student's gradebook at a level."""
    __tablename__ = "saved_gradebooks"

    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id"), nullable=False, index=True)
    school_year_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    level = Column(String(20), nullable=False, index=True)
    class_id = Column(UUID(as_uuid=True), nullable=True)
    template_id = Column(UUID(as_uuid=True), nullable=False)
    template_assignment_id = Column(UUID(as_uuid=True), nullable=False)
    snapshot_reason = Column(String(20), default="promotion", nullable=False)
    meta = Column(JSON, default=dict, nullable=False)
    data = Column(JSON, nullable=False)

    __table_args__ = (
        UniqueConstraint("template_assignment_id", "school_year_id", "snapshot_reason", name="uq_saved_gradebook"),
    )
