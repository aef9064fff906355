# carnet/services/class_context.py
"""Resolve the class and level a student is currently attached to."""
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from ..models.academic import ClassGroup, Enrollment, EnrollmentStatus
from ..models.student import Student
from .school_year_service import SchoolYearInfo


@dataclass(frozen=True)
class ClassContext:
    enrollment: Optional[Enrollment]
    class_group: Optional[ClassGroup]
    level: Optional[str]
    school_year_id: Optional[UUID]

    @property
    def class_id(self) -> Optional[UUID]:
        return self.class_group.id if self.class_group is not None else None


Strategy = Callable[["ClassContextResolver", Student, Optional[SchoolYearInfo]], Awaitable[Optional[ClassContext]]]


class ClassContextResolver:
    """Tries each strategy in order and stops at the first match."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.strategies: List[Strategy] = [
            ClassContextResolver._active_enrollment_in_active_year,
            ClassContextResolver._any_active_enrollment,
            ClassContextResolver._latest_promoted_enrollment,
            ClassContextResolver._student_level,
        ]

    async def resolve(self, student: Student, active_year: Optional[SchoolYearInfo]) -> ClassContext:
        for strategy in self.strategies:
            context = await strategy(self, student, active_year)
            if context is not None:
                return context
        return ClassContext(None, None, student.level, student.school_year_id)

    async def _enrolled_context(self, stmt) -> Optional[ClassContext]:
        stmt = (
            stmt.add_columns(ClassGroup)
            .join(ClassGroup, ClassGroup.id == Enrollment.class_id)
            .where(Enrollment.is_deleted == False, ClassGroup.is_deleted == False)
            .order_by(Enrollment.created_at.desc())
            .limit(1)
        )
        row = (await self.db.execute(stmt)).first()
        if row is None:
            return None
        enrollment, class_group = row
        return ClassContext(enrollment, class_group, class_group.level, enrollment.school_year_id)

    async def _active_enrollment_in_active_year(self, student, active_year):
        if active_year is None:
            return None
        return await self._enrolled_context(
            select(Enrollment).where(
                Enrollment.student_id == student.id,
                Enrollment.school_year_id == active_year.id,
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
            )
        )

    async def _any_active_enrollment(self, student, active_year):
        return await self._enrolled_context(
            select(Enrollment).where(
                Enrollment.student_id == student.id,
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
            )
        )

    async def _latest_promoted_enrollment(self, student, active_year):
        return await self._enrolled_context(
            select(Enrollment).where(
                Enrollment.student_id == student.id,
                Enrollment.status == EnrollmentStatus.PROMOTED.value,
            )
        )

    async def _student_level(self, student, active_year):
        if not student.level:
            return None
        return ClassContext(None, None, student.level, student.school_year_id or (active_year.id if active_year else None))
