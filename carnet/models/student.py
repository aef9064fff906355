# carnet/models/student.py
from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from .base import Base

class Student(Base):
    __tablename__ = "students"

    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)

    # Current level; a promotion only stages next_level until class placement
    level = Column(String(20), nullable=True, index=True)
    next_level = Column(String(20), nullable=True)
    school_year_id = Column(UUID(as_uuid=True), ForeignKey("school_years.id"), nullable=True, index=True)
    status = Column(String(20), default="active", nullable=False)

    promotions = relationship(
        "PromotionRecord",
        back_populates="student",
        lazy="selectin",
        order_by="PromotionRecord.promoted_at",
    )


class PromotionRecord(Base):
    __tablename__ = "student_promotions"

    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id"), nullable=False, index=True)
    school_year_id = Column(UUID(as_uuid=True), ForeignKey("school_years.id"), nullable=False)
    promoted_at = Column(DateTime(timezone=True), nullable=False)
    from_level = Column(String(20), nullable=True)
    to_level = Column(String(20), nullable=False)
    promoted_by = Column(UUID(as_uuid=True), nullable=False)
    idempotency_key = Column(String(100), nullable=True, unique=True)

    student = relationship("Student", back_populates="promotions")

    # Exactly one promotion per student and school year
    __table_args__ = (
        UniqueConstraint("student_id", "school_year_id", name="uq_student_promotion_year"),
    )
