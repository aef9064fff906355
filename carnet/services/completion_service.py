# carnet/services/completion_service.py
"""Per-teacher semester completion and the assignment-level flags derived from it."""
from datetime import datetime
from typing import Optional
from uuid import UUID
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import NotAuthorized
from ..models.template import AssignmentStatus, CompletionRecord, TemplateAssignment

logger = logging.getLogger(__name__)


class CompletionTracker:
    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def record_for(assignment: TemplateAssignment, teacher_id) -> Optional[CompletionRecord]:
        key = str(teacher_id)
        return next(
            (r for r in assignment.teacher_completions if str(r.teacher_id) == key),
            None,
        )

    @staticmethod
    def is_assigned(assignment: TemplateAssignment, teacher_id) -> bool:
        return str(teacher_id) in {str(t) for t in assignment.assigned_teacher_ids or []}

    async def set_completion(
        self,
        assignment: TemplateAssignment,
        teacher_id: UUID,
        semester: int,
        done: bool,
        now: datetime,
    ) -> CompletionRecord:
        if not self.is_assigned(assignment, teacher_id):
            raise NotAuthorized("Teacher is not assigned to this gradebook")

        record = self.record_for(assignment, teacher_id)
        if record is None:
            record = CompletionRecord(
                teacher_id=teacher_id,
                completed_sem1=False,
                completed_sem2=False,
                completed_legacy=False,
            )
            assignment.teacher_completions.append(record)

        if semester == 2:
            record.completed_sem2 = done
            record.completed_at_sem2 = now if done else None
        else:
            record.completed_sem1 = done
            record.completed_at_sem1 = now if done else None

        self.recompute(assignment, semester, teacher_id, now)
        await self.db.flush()
        return record

    def recompute(self, assignment: TemplateAssignment, semester: int, actor_id: UUID, now: datetime):
        """Recompute the flag of the toggled semester only.

        A flag holds once every assigned teacher completed that semester. The
        other semester's flag may be an administrator override and is left as is;
        only semester 1 drives the assignment status.
        """
        teachers = [str(t) for t in assignment.assigned_teacher_ids or []]
        records = [self.record_for(assignment, t) for t in teachers]

        if semester == 2:
            assignment.is_completed_sem2 = bool(teachers) and all(
                r is not None and r.completed_sem2 for r in records
            )
            return

        sem1 = bool(teachers) and all(r is not None and (r.completed_sem1 or r.completed_legacy) for r in records)
        assignment.is_completed_sem1 = sem1
        assignment.is_completed = sem1
        self._apply_status(assignment, sem1, actor_id, now)

    def mark_complete(
        self,
        assignment: TemplateAssignment,
        actor_id: UUID,
        semester: int,
        done: bool,
        now: datetime,
    ):
        """Administrator override of the assignment-level flag."""
        if semester == 2:
            assignment.is_completed_sem2 = done
            return
        assignment.is_completed_sem1 = done
        assignment.is_completed = done
        self._apply_status(assignment, done, actor_id, now)

    @staticmethod
    def _apply_status(assignment: TemplateAssignment, completed: bool, actor_id: UUID, now: datetime):
        if assignment.status == AssignmentStatus.SIGNED.value:
            return
        if completed:
            if assignment.status != AssignmentStatus.COMPLETED.value:
                assignment.status = AssignmentStatus.COMPLETED.value
                assignment.completed_at = now
                assignment.completed_by = actor_id
        elif assignment.status == AssignmentStatus.COMPLETED.value:
            assignment.status = AssignmentStatus.IN_PROGRESS.value
            assignment.completed_at = None
            assignment.completed_by = None
