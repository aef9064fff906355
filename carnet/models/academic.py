# carnet/models/academic.py
import enum

from sqlalchemy import Column, String, Integer, DateTime, Boolean, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from .base import Base


class SchoolYear(Base):
    __tablename__ = "school_years"

    name = Column(String(50), nullable=False, index=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    # Monotonic ordering key; older rows may not have one
    sequence = Column(Integer, nullable=True, unique=True)
    active = Column(Boolean, default=False, nullable=False, index=True)
    active_semester = Column(Integer, default=1, nullable=False)


class Level(Base):
    __tablename__ = "levels"

    name = Column(String(20), nullable=False, unique=True)
    order = Column(Integer, nullable=False, unique=True)
    is_exit_level = Column(Boolean, default=False, nullable=False)


class ClassGroup(Base):
    __tablename__ = "classes"

    name = Column(String(50), nullable=False)
    level = Column(String(20), nullable=True, index=True)
    school_year_id = Column(UUID(as_uuid=True), ForeignKey("school_years.id"), nullable=False, index=True)


class TeacherClassLink(Base):
    __tablename__ = "teacher_class_links"

    teacher_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    class_id = Column(UUID(as_uuid=True), ForeignKey("classes.id"), nullable=False, index=True)
    school_year_id = Column(UUID(as_uuid=True), ForeignKey("school_years.id"), nullable=False, index=True)

    # Language codes taught in this class, e.g. ["ar"]; empty means every language
    languages = Column(JSON, default=list, nullable=False)
    is_generalist = Column(Boolean, default=False, nullable=False)

    __table_args__ = (
        UniqueConstraint("teacher_id", "class_id", name="uq_teacher_class_link"),
    )


class EnrollmentStatus(str, enum.Enum):
    ACTIVE = "active"
    PROMOTED = "promoted"


class Enrollment(Base):
    __tablename__ = "enrollments"

    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id"), nullable=False, index=True)
    school_year_id = Column(UUID(as_uuid=True), ForeignKey("school_years.id"), nullable=False, index=True)
    # Promoted students wait without a class until they are placed
    class_id = Column(UUID(as_uuid=True), ForeignKey("classes.id"), nullable=True, index=True)
    status = Column(String(20), default=EnrollmentStatus.ACTIVE.value, nullable=False)
