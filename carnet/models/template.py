# carnet/models/template.py
import enum

from sqlalchemy import Column, String, Integer, Boolean, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from .base import Base


class GradebookTemplate(Base):
    __tablename__ = "gradebook_templates"

    name = Column(String(200), nullable=False)
    current_version = Column(Integer, default=1, nullable=False)
    # [{"title": ..., "blocks": [{"type": ..., "props": {...}}]}]
    pages = Column(JSON, default=list, nullable=False)


class AssignmentStatus(str, enum.Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SIGNED = "signed"


class TemplateAssignment(Base):
    __tablename__ = "template_assignments"

    template_id = Column(UUID(as_uuid=True), ForeignKey("gradebook_templates.id"), nullable=False, index=True)
    template_version = Column(Integer, default=1, nullable=False)
    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id"), nullable=False, index=True)
    completion_school_year_id = Column(UUID(as_uuid=True), ForeignKey("school_years.id"), nullable=True)
    assigned_teacher_ids = Column(JSON, default=list, nullable=False)

    status = Column(String(20), default=AssignmentStatus.DRAFT.value, nullable=False, index=True)

    # Assignment-level completion flags; is_completed predates semesters
    is_completed = Column(Boolean, default=False, nullable=False)
    is_completed_sem1 = Column(Boolean, default=False, nullable=False)
    is_completed_sem2 = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    completed_by = Column(UUID(as_uuid=True), nullable=True)

    # {"block_overrides": {...}, "promotion_history": [...]}, see AssignmentData
    data = Column(JSON, default=dict, nullable=False)

    teacher_completions = relationship(
        "CompletionRecord",
        back_populates="assignment",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("template_id", "student_id", "completion_school_year_id", name="uq_template_student_year"),
    )


class CompletionRecord(Base):
    __tablename__ = "teacher_completions"

    template_assignment_id = Column(UUID(as_uuid=True), ForeignKey("template_assignments.id"), nullable=False, index=True)
    teacher_id = Column(UUID(as_uuid=True), nullable=False)

    completed_sem1 = Column(Boolean, default=False, nullable=False)
    completed_at_sem1 = Column(DateTime(timezone=True), nullable=True)
    completed_sem2 = Column(Boolean, default=False, nullable=False)
    completed_at_sem2 = Column(DateTime(timezone=True), nullable=True)
    # Single-flag model from before semesters; read-only
    completed_legacy = Column(Boolean, default=False, nullable=False)

    assignment = relationship("TemplateAssignment", back_populates="teacher_completions")

    __table_args__ = (
        UniqueConstraint("template_assignment_id", "teacher_id", name="uq_completion_teacher"),
    )
