# carnet/services/assignment_lifecycle_service.py
"""Entry point for everything that moves a template assignment through its lifecycle.

Each public method is one unit of work: load, check scope, validate, mutate,
commit. Audit and live notifications run after the commit and never fail
the operation.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from ..core.cache import CacheManager, cache_manager
from ..core.exceptions import NotAuthorized, NotFound
from ..models.base import utcnow
from ..models.signature import SignatureType, TemplateSignature
from ..models.student import Student
from ..models.template import AssignmentStatus, GradebookTemplate, TemplateAssignment
from ..schemas.assignment_data import AssignmentData
from ..schemas.lifecycle_schemas import (
    AssignmentResponse,
    CategoryStatus,
    PromoteResponse,
    PromotionRecordResponse,
    ReviewView,
    SignatureResponse,
    StudentResponse,
    TeacherCompletionStatus,
    TemplateView,
    UnsignResponse,
)
from ..schemas.template_schemas import merge_block_overrides
from .audit_service import AuditSink, LoggingAuditSink, safe_record
from .authorization_service import AuthorizationScoper, GatingPolicy
from .class_context import ClassContext, ClassContextResolver
from .completion_service import CompletionTracker
from .eligibility_service import EligibilityEvaluator, EligibilityReport
from .level_ladder import LevelLadder
from .notification_bus import NotificationBus, notification_bus
from .promotion_service import PromotionEngine
from .school_year_service import SchoolYearInfo, SchoolYearLedger
from .signature_service import SignatureLedger
from .signature_window import SignatureWindow, attribute_school_year, resolve_window

logger = logging.getLogger(__name__)


@dataclass
class LoadedAssignment:
    assignment: TemplateAssignment
    student: Student
    template: GradebookTemplate
    context: ClassContext
    years: List[SchoolYearInfo]
    active_year: Optional[SchoolYearInfo]
    level: Optional[str]
    window: SignatureWindow

    @property
    def active_semester(self) -> int:
        return self.active_year.active_semester if self.active_year else 1


def _latest(signatures: List[TemplateSignature], signature_type: SignatureType) -> Optional[TemplateSignature]:
    matching = [s for s in signatures if s.type == signature_type.value]
    return matching[-1] if matching else None


class AssignmentLifecycleService:
    def __init__(
        self,
        db: AsyncSession,
        audit: Optional[AuditSink] = None,
        bus: Optional[NotificationBus] = None,
        cache: CacheManager = cache_manager,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.audit = audit if audit is not None else LoggingAuditSink()
        self.bus = bus if bus is not None else notification_bus
        self.clock = clock

        self.ladder = LevelLadder(db)
        self.years = SchoolYearLedger(db, cache)
        self.contexts = ClassContextResolver(db)
        self.completions = CompletionTracker(db)
        self.eligibility = EligibilityEvaluator(db)
        self.scoper = AuthorizationScoper(db)
        self.signatures = SignatureLedger(db)
        self.promotions = PromotionEngine(db, self.ladder, self.years, self.signatures, self.scoper)

    # Loading

    async def _get_active(self, model, id: UUID, label: str):
        stmt = select(model).where(model.id == id, model.is_deleted == False)
        obj = (await self.db.execute(stmt)).scalar_one_or_none()
        if obj is None:
            raise NotFound(f"{label} not found")
        return obj

    async def load(self, assignment_id: UUID) -> LoadedAssignment:
        assignment = await self._get_active(TemplateAssignment, assignment_id, "Assignment")
        student = await self._get_active(Student, assignment.student_id, "Student")
        template = await self._get_active(GradebookTemplate, assignment.template_id, "Template")

        years = await self.years.list_years()
        active_year = next((y for y in years if y.active), None)
        context = await self.contexts.resolve(student, active_year)
        level = student.level or context.level
        window = resolve_window(years, active_year, level, student.promotions, self.clock())
        return LoadedAssignment(assignment, student, template, context, years, active_year, level, window)

    async def _evaluate(self, loaded: LoadedAssignment) -> EligibilityReport:
        return await self.eligibility.evaluate(
            loaded.assignment,
            loaded.template.pages,
            loaded.level,
            loaded.context.class_id,
        )

    def _is_promoted(self, loaded: LoadedAssignment) -> bool:
        year_id = self.promotions.current_year_id(loaded.student, loaded.context, loaded.active_year)
        return any(p.school_year_id == year_id for p in loaded.student.promotions)

    async def _notify(self, assignment_id: UUID, event: str, patch: Dict[str, Any], actor_id: UUID):
        message = {
            "type": "assignment_patch",
            "assignment_id": str(assignment_id),
            "event": event,
            "patch": patch,
        }
        try:
            await self.bus.publish(assignment_id, message, exclude_user=actor_id)
        except Exception as e:
            logger.warning(f"Notification for {assignment_id} dropped: {e}")

    # Read side

    async def get_review_view(self, assignment_id: UUID, viewer_id: UUID) -> ReviewView:
        loaded = await self.load(assignment_id)
        assignment, student = loaded.assignment, loaded.student
        await self.scoper.ensure_authorized(viewer_id, assignment, student, loaded.context)

        report = await self._evaluate(loaded)
        visible = await self.signatures.visible(assignment.id, loaded.window)
        standard = _latest(visible, SignatureType.STANDARD)
        final = _latest(visible, SignatureType.END_OF_YEAR)
        is_promoted = self._is_promoted(loaded)

        data = AssignmentData.from_raw(assignment.data)
        template = TemplateView(
            id=loaded.template.id,
            name=loaded.template.name,
            version=assignment.template_version,
            pages=merge_block_overrides(loaded.template.pages, data.block_overrides),
        )
        category_status = [
            CategoryStatus(
                category=c.category.value,
                teachers=[
                    TeacherCompletionStatus(
                        teacher_id=t,
                        completed_sem1=bool(c.records.get(t) and (c.records[t].completed_sem1 or c.records[t].completed_legacy)),
                        completed_sem2=bool(c.records.get(t) and c.records[t].completed_sem2),
                    )
                    for t in c.teacher_ids
                ],
                complete_standard=c.is_complete(SignatureType.STANDARD),
                complete_end_of_year=c.is_complete(SignatureType.END_OF_YEAR),
            )
            for c in report.categories
        ]

        return ReviewView(
            assignment=AssignmentResponse.model_validate(assignment),
            template=template,
            student=StudentResponse.model_validate(student),
            signature=SignatureResponse.model_validate(standard) if standard else None,
            final_signature=SignatureResponse.model_validate(final) if final else None,
            is_signed_by_me=any(s.signer_id == viewer_id for s in visible),
            can_edit=not is_promoted,
            is_promoted=is_promoted,
            active_semester=loaded.active_semester,
            eligible_for_standard_sign=report.is_eligible(SignatureType.STANDARD),
            eligible_for_final_sign=report.is_eligible(SignatureType.END_OF_YEAR),
            category_status=category_status,
        )

    # Teacher side

    async def set_teacher_completion(
        self, assignment_id: UUID, teacher_id: UUID, semester: int, done: bool
    ) -> AssignmentResponse:
        loaded = await self.load(assignment_id)
        assignment = loaded.assignment
        if self._is_promoted(loaded):
            raise NotAuthorized("Gradebook is read-only after promotion")
        await self.completions.set_completion(assignment, teacher_id, semester, done, self.clock())
        await self.db.commit()

        logger.info(f"Teacher {teacher_id} set semester {semester} done={done} on {assignment.id}")
        await safe_record(self.audit, teacher_id, "teacher_completion", {
            "assignment_id": str(assignment.id), "semester": semester, "done": done,
        })
        await self._notify(assignment.id, "completion", {
            "status": assignment.status,
            "is_completed_sem1": assignment.is_completed_sem1,
            "is_completed_sem2": assignment.is_completed_sem2,
        }, teacher_id)
        return AssignmentResponse.model_validate(assignment)

    async def update_assignment_data(
        self, assignment_id: UUID, teacher_id: UUID, block_overrides: Dict[str, Any]
    ) -> AssignmentResponse:
        loaded = await self.load(assignment_id)
        assignment = loaded.assignment
        if not self.completions.is_assigned(assignment, teacher_id):
            raise NotAuthorized("Teacher is not assigned to this gradebook")
        if self._is_promoted(loaded):
            raise NotAuthorized("Gradebook is read-only after promotion")

        data = AssignmentData.from_raw(assignment.data)
        data.block_overrides.update(block_overrides)
        assignment.data = {**(assignment.data or {}), **data.to_raw()}
        if assignment.status == AssignmentStatus.DRAFT.value:
            assignment.status = AssignmentStatus.IN_PROGRESS.value
        await self.db.commit()

        logger.info(f"Teacher {teacher_id} updated {len(block_overrides)} blocks on {assignment.id}")
        await safe_record(self.audit, teacher_id, "update_assignment_data", {
            "assignment_id": str(assignment.id), "keys": sorted(block_overrides),
        })
        await self._notify(assignment.id, "data", {"block_overrides": block_overrides}, teacher_id)
        return AssignmentResponse.model_validate(assignment)

    # Sub-administrator side

    async def mark_complete(
        self, assignment_id: UUID, actor_id: UUID, semester: int = 1, done: bool = True
    ) -> AssignmentResponse:
        loaded = await self.load(assignment_id)
        assignment = loaded.assignment
        await self.scoper.ensure_authorized(actor_id, assignment, loaded.student, loaded.context)

        self.completions.mark_complete(assignment, actor_id, semester, done, self.clock())
        await self.db.commit()

        logger.info(f"User {actor_id} marked semester {semester} done={done} on {assignment.id}")
        await safe_record(self.audit, actor_id, "mark_complete" if done else "unmark_complete", {
            "assignment_id": str(assignment.id), "semester": semester,
        })
        await self._notify(assignment.id, "completion", {
            "status": assignment.status,
            "is_completed_sem1": assignment.is_completed_sem1,
            "is_completed_sem2": assignment.is_completed_sem2,
        }, actor_id)
        return AssignmentResponse.model_validate(assignment)

    async def sign(
        self, assignment_id: UUID, signer_id: UUID, signature_type: SignatureType = SignatureType.STANDARD
    ) -> SignatureResponse:
        loaded = await self.load(assignment_id)
        assignment, student = loaded.assignment, loaded.student
        await self.scoper.ensure_authorized(signer_id, assignment, student, loaded.context)

        policy = await GatingPolicy.load(self.db)
        bypassed = await self.scoper.bypass_applies(
            signer_id, policy, signature_type, student, loaded.context, loaded.level
        )
        eligible = bypassed or (await self._evaluate(loaded)).is_eligible(signature_type)

        now = self.clock()
        year_id, year_name = attribute_school_year(loaded.years, now, signature_type)
        signature = await self.signatures.sign(
            assignment,
            signer_id,
            signature_type,
            loaded.window,
            period_id=loaded.window.period_id(loaded.active_year.id if loaded.active_year else None, signature_type),
            signed_at=now,
            active_semester=loaded.active_semester,
            eligible=eligible,
            bypassed=bypassed,
            school_year_id=year_id,
            school_year_name=year_name,
        )
        await self.db.commit()

        logger.info(f"User {signer_id} signed {assignment.id} ({signature_type.value}, level {signature.level})")
        await safe_record(self.audit, signer_id, "sign_template", {
            "assignment_id": str(assignment.id),
            "type": signature_type.value,
            "level": signature.level,
            "bypassed": bypassed,
        })
        response = SignatureResponse.model_validate(signature)
        await self._notify(assignment.id, "signed", {
            "status": assignment.status,
            "signature": response.model_dump(mode="json"),
        }, signer_id)
        return response

    async def unsign(
        self, assignment_id: UUID, signer_id: UUID, signature_type: SignatureType = SignatureType.STANDARD
    ) -> UnsignResponse:
        loaded = await self.load(assignment_id)
        assignment = loaded.assignment
        await self.scoper.ensure_authorized(signer_id, assignment, loaded.student, loaded.context)

        removed = await self.signatures.unsign(assignment, signature_type, loaded.window)
        await self.db.commit()

        logger.info(f"User {signer_id} removed {signature_type.value} signature {removed.id} from {assignment.id}")
        await safe_record(self.audit, signer_id, "unsign_template", {
            "assignment_id": str(assignment.id),
            "type": signature_type.value,
            "original_signer_id": str(removed.signer_id),
        })
        await self._notify(assignment.id, "unsigned", {
            "status": assignment.status, "type": signature_type.value,
        }, signer_id)
        return UnsignResponse(assignment_status=assignment.status)

    async def promote(
        self,
        assignment_id: UUID,
        actor_id: UUID,
        requested_next_level: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> PromoteResponse:
        loaded = await self.load(assignment_id)
        outcome = await self.promotions.promote(
            loaded.assignment,
            loaded.student,
            actor_id,
            loaded.context,
            loaded.window,
            loaded.active_year,
            self.clock(),
            requested_next_level=requested_next_level,
            idempotency_key=idempotency_key,
        )
        response = PromoteResponse(
            assignment=AssignmentResponse.model_validate(outcome.assignment),
            student=StudentResponse.model_validate(outcome.student),
            promotion=PromotionRecordResponse.model_validate(outcome.record),
            replayed=outcome.replayed,
        )
        if outcome.replayed:
            return response

        await self.db.commit()
        record = outcome.record
        logger.info(f"User {actor_id} promoted student {outcome.student.id} from {record.from_level} to {record.to_level}")
        await safe_record(self.audit, actor_id, "promote_student", {
            "assignment_id": str(outcome.assignment.id),
            "student_id": str(outcome.student.id),
            "from_level": record.from_level,
            "to_level": record.to_level,
            "school_year_id": str(record.school_year_id),
        })
        await self._notify(outcome.assignment.id, "promoted", {
            "next_level": record.to_level,
            "promotion_history": outcome.assignment.data.get("promotion_history", []),
        }, actor_id)
        return response
