# carnet/services/promotion_service.py
"""Exactly-once promotion of a student to the next level and school year."""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select

from ..core.exceptions import (
    AlreadyPromoted,
    CannotDetermineNextLevel,
    IdempotencyKeyConflict,
    NoNextSchoolYear,
    NotSignedByReviewer,
)
from ..models.academic import Enrollment, EnrollmentStatus
from ..models.archive import SavedGradebook, StudentCompetencyStatus
from ..models.signature import SignatureType, TemplateSignature
from ..models.student import PromotionRecord, Student
from ..models.template import TemplateAssignment
from ..schemas.assignment_data import AssignmentData, PromotionNote
from .authorization_service import AuthorizationScoper
from .class_context import ClassContext
from .level_ladder import LevelLadder
from .school_year_service import SchoolYearInfo, SchoolYearLedger
from .signature_service import SignatureLedger
from .signature_window import SignatureWindow

logger = logging.getLogger(__name__)

SNAPSHOT_REASON = "promotion"


@dataclass
class PromotionOutcome:
    assignment: TemplateAssignment
    student: Student
    record: PromotionRecord
    replayed: bool = False


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _str(value) -> Optional[str]:
    return str(value) if value is not None else None


class PromotionEngine:
    def __init__(
        self,
        db: AsyncSession,
        ladder: LevelLadder,
        years: SchoolYearLedger,
        signatures: SignatureLedger,
        scoper: AuthorizationScoper,
    ):
        self.db = db
        self.ladder = ladder
        self.years = years
        self.signatures = signatures
        self.scoper = scoper

    async def find_by_key(self, key: Optional[str]) -> Optional[PromotionRecord]:
        if not key:
            return None
        stmt = select(PromotionRecord).where(PromotionRecord.idempotency_key == key)
        return (await self.db.execute(stmt)).scalar_one_or_none()

    def current_year_id(self, student: Student, context: ClassContext, active_year: Optional[SchoolYearInfo]):
        if context.enrollment is not None:
            return context.enrollment.school_year_id
        if context.school_year_id is not None:
            return context.school_year_id
        return active_year.id if active_year else None

    async def promote(
        self,
        assignment: TemplateAssignment,
        student: Student,
        actor_id: UUID,
        context: ClassContext,
        window: SignatureWindow,
        active_year: Optional[SchoolYearInfo],
        now: datetime,
        requested_next_level: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> PromotionOutcome:
        final_signatures = await self.signatures.visible(assignment.id, window, SignatureType.END_OF_YEAR)
        if not any(s.signer_id == actor_id for s in final_signatures):
            raise NotSignedByReviewer("Sign the end of year gradebook before promoting")

        await self.scoper.ensure_authorized(actor_id, assignment, student, context)

        replay = await self.find_by_key(idempotency_key)
        if replay is not None:
            if replay.student_id != student.id:
                raise IdempotencyKeyConflict(
                    "Idempotency key was used for another student",
                    idempotency_key=idempotency_key,
                )
            logger.info(f"Promotion {replay.id} replayed for key {idempotency_key}")
            return PromotionOutcome(assignment, student, replay, replayed=True)

        year_id = self.current_year_id(student, context, active_year)
        if any(p.school_year_id == year_id for p in student.promotions):
            raise AlreadyPromoted("Student already promoted this school year")

        current_level = student.level or context.level
        next_level = await self.ladder.next_level(current_level) or requested_next_level
        if not next_level:
            raise CannotDetermineNextLevel(f"No level follows {current_level or 'an unset level'}")

        current_year = await self.years.get_info(year_id)
        next_year = await self.years.next_year(current_year) if current_year else None
        if next_year is None:
            raise NoNextSchoolYear("Next school year is not configured")

        # Archive first; the mutations below are flushed after it
        snapshot = await self._snapshot(assignment, student, context, final_signatures, current_year, current_level, window)
        self.db.add(snapshot)
        await self._flush()

        record = await self._apply(
            assignment, student, actor_id, current_year, next_year,
            current_level, next_level, idempotency_key, now,
        )
        return PromotionOutcome(assignment, student, record)

    async def _competencies(self, student_id) -> List[Dict[str, Any]]:
        stmt = select(StudentCompetencyStatus).where(
            StudentCompetencyStatus.student_id == student_id,
            StudentCompetencyStatus.is_deleted == False,
        )
        rows = (await self.db.execute(stmt)).scalars().all()
        return [
            {"competency_id": r.competency_id, "en": r.en, "fr": r.fr, "ar": r.ar, "note": r.note}
            for r in rows
        ]

    async def _snapshot(
        self,
        assignment: TemplateAssignment,
        student: Student,
        context: ClassContext,
        final_signatures: List[TemplateSignature],
        current_year: SchoolYearInfo,
        level: Optional[str],
        window: SignatureWindow,
    ) -> SavedGradebook:
        enrollment = context.enrollment
        data = {
            "student": {
                "id": str(student.id),
                "first_name": student.first_name,
                "last_name": student.last_name,
                "level": student.level,
                "next_level": student.next_level,
                "school_year_id": _str(student.school_year_id),
            },
            "enrollment": {
                "id": str(enrollment.id),
                "class_id": _str(enrollment.class_id),
                "school_year_id": str(enrollment.school_year_id),
                "status": enrollment.status,
            } if enrollment is not None else None,
            "competencies": await self._competencies(student.id),
            "assignment": {
                "id": str(assignment.id),
                "template_id": str(assignment.template_id),
                "template_version": assignment.template_version,
                "status": assignment.status,
                "is_completed_sem1": assignment.is_completed_sem1,
                "is_completed_sem2": assignment.is_completed_sem2,
                "data": assignment.data or {},
                "teacher_completions": [
                    {
                        "teacher_id": str(r.teacher_id),
                        "completed_sem1": r.completed_sem1,
                        "completed_sem2": r.completed_sem2,
                        "completed_legacy": r.completed_legacy,
                    }
                    for r in assignment.teacher_completions
                ],
            },
            "signatures": [
                {
                    "signer_id": str(s.signer_id),
                    "type": s.type,
                    "level": s.level,
                    "signed_at": _iso(s.signed_at),
                    "school_year_name": s.school_year_name,
                }
                for s in final_signatures
            ],
        }
        final = final_signatures[-1] if final_signatures else None
        return SavedGradebook(
            student_id=student.id,
            school_year_id=current_year.id,
            level=level or "",
            class_id=context.class_id,
            template_id=assignment.template_id,
            template_assignment_id=assignment.id,
            snapshot_reason=SNAPSHOT_REASON,
            meta={
                "template_version": assignment.template_version,
                "data_version": len(AssignmentData.from_raw(assignment.data).promotion_history),
                "signature_period_id": final.signature_period_id if final else None,
                "school_year_id": str(current_year.id),
                "school_year_name": current_year.name,
                "level": level,
                "snapshot_reason": SNAPSHOT_REASON,
            },
            data=data,
        )

    async def _apply(
        self,
        assignment: TemplateAssignment,
        student: Student,
        actor_id: UUID,
        current_year: SchoolYearInfo,
        next_year: SchoolYearInfo,
        current_level: Optional[str],
        next_level: str,
        idempotency_key: Optional[str],
        now: datetime,
    ) -> PromotionRecord:
        stmt = select(Enrollment).where(
            Enrollment.student_id == student.id,
            Enrollment.is_deleted == False,
            Enrollment.status == EnrollmentStatus.ACTIVE.value,
        )
        active = (await self.db.execute(stmt)).scalars().all()
        for enrollment in active:
            if enrollment.school_year_id == current_year.id:
                enrollment.status = EnrollmentStatus.PROMOTED.value
        if not any(e.school_year_id == next_year.id for e in active):
            # Unplaced until a class is assigned in the new year
            self.db.add(Enrollment(
                student_id=student.id,
                school_year_id=next_year.id,
                class_id=None,
                status=EnrollmentStatus.ACTIVE.value,
            ))

        record = PromotionRecord(
            school_year_id=current_year.id,
            promoted_at=now,
            from_level=current_level,
            to_level=next_level,
            promoted_by=actor_id,
            idempotency_key=idempotency_key,
        )
        student.promotions.append(record)
        student.next_level = next_level
        student.school_year_id = next_year.id

        data = AssignmentData.from_raw(assignment.data)
        data.promotion_history.append(PromotionNote(
            from_level=current_level,
            to_level=next_level,
            date=now,
            promoted_by=str(actor_id),
            school_year_id=str(current_year.id),
            school_year_name=current_year.name,
        ))
        assignment.data = {**(assignment.data or {}), **data.to_raw()}

        await self._flush()
        return record

    async def _flush(self):
        try:
            await self.db.flush()
        except IntegrityError:
            # Another request promoted the student for this year first
            await self.db.rollback()
            raise AlreadyPromoted("Student already promoted this school year")
