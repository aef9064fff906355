# carnet/services/authorization_service.py
"""Who may act on an assignment, and who may skip the signing gates."""
from dataclasses import dataclass
from typing import Iterable, List, Optional
from uuid import UUID
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from ..core.config import settings
from ..core.exceptions import NotAuthorized
from ..models.academic import Enrollment, EnrollmentStatus, TeacherClassLink
from ..models.base import as_utc
from ..models.governance import BypassScope, BypassScopeType, RoleScope, Setting, SupervisionLink
from ..models.signature import SignatureType
from ..models.student import Student
from ..models.template import TemplateAssignment
from .class_context import ClassContext

logger = logging.getLogger(__name__)

RESTRICTIONS_KEY = "signature_restrictions_enabled"
EXEMPT_STANDARD_KEY = "signature_exempt_standard"
EXEMPT_END_OF_YEAR_KEY = "signature_exempt_end_of_year"


def as_uuids(values: Iterable) -> List[UUID]:
    uuids = []
    for value in values or []:
        try:
            uuids.append(value if isinstance(value, UUID) else UUID(str(value)))
        except ValueError:
            logger.warning(f"Ignoring malformed teacher id {value!r}")
    return uuids


@dataclass(frozen=True)
class GatingPolicy:
    restrictions_enabled: bool = True
    exempt_standard: bool = False
    exempt_end_of_year: bool = False

    def is_exempt(self, signature_type: SignatureType) -> bool:
        if signature_type == SignatureType.END_OF_YEAR:
            return self.exempt_end_of_year
        return self.exempt_standard

    @classmethod
    async def load(cls, db: AsyncSession) -> "GatingPolicy":
        """Stored flags win over the process defaults."""
        stmt = select(Setting).where(
            Setting.key.in_([RESTRICTIONS_KEY, EXEMPT_STANDARD_KEY, EXEMPT_END_OF_YEAR_KEY]),
            Setting.is_deleted == False,
        )
        stored = {row.key: row.value for row in (await db.execute(stmt)).scalars().all()}

        def flag(key: str, default: bool) -> bool:
            value = stored.get(key)
            return default if value is None else bool(value)

        return cls(
            restrictions_enabled=flag(RESTRICTIONS_KEY, settings.signature_restrictions_enabled),
            exempt_standard=flag(EXEMPT_STANDARD_KEY, settings.signature_exempt_standard),
            exempt_end_of_year=flag(EXEMPT_END_OF_YEAR_KEY, settings.signature_exempt_end_of_year),
        )


class AuthorizationScoper:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _exists(self, stmt) -> bool:
        result = await self.db.execute(stmt.limit(1))
        return result.first() is not None

    async def supervises_assigned_teacher(self, actor_id: UUID, assignment: TemplateAssignment) -> bool:
        teacher_ids = as_uuids(assignment.assigned_teacher_ids)
        if not teacher_ids:
            return False
        return await self._exists(
            select(SupervisionLink.id).where(
                SupervisionLink.sub_admin_id == actor_id,
                SupervisionLink.teacher_id.in_(teacher_ids),
                SupervisionLink.is_deleted == False,
            )
        )

    async def supervises_enrolled_class(self, actor_id: UUID, student: Student) -> bool:
        return await self._exists(
            select(SupervisionLink.id)
            .join(TeacherClassLink, TeacherClassLink.teacher_id == SupervisionLink.teacher_id)
            .join(Enrollment, Enrollment.class_id == TeacherClassLink.class_id)
            .where(
                SupervisionLink.sub_admin_id == actor_id,
                SupervisionLink.is_deleted == False,
                TeacherClassLink.is_deleted == False,
                Enrollment.student_id == student.id,
                Enrollment.is_deleted == False,
                Enrollment.status.in_([EnrollmentStatus.ACTIVE.value, EnrollmentStatus.PROMOTED.value]),
            )
        )

    async def level_in_scope(self, actor_id: UUID, level: Optional[str]) -> bool:
        if not level:
            return False
        stmt = select(RoleScope).where(RoleScope.user_id == actor_id, RoleScope.is_deleted == False)
        scope = (await self.db.execute(stmt)).scalar_one_or_none()
        return scope is not None and level in (scope.levels or [])

    @staticmethod
    def authored_last_promotion(actor_id: UUID, student: Student) -> bool:
        if not student.promotions:
            return False
        last = max(student.promotions, key=lambda p: as_utc(p.promoted_at))
        return last.promoted_by == actor_id

    async def is_authorized(
        self,
        actor_id: UUID,
        assignment: TemplateAssignment,
        student: Student,
        context: ClassContext,
    ) -> bool:
        if await self.supervises_assigned_teacher(actor_id, assignment):
            return True
        if await self.supervises_enrolled_class(actor_id, student):
            return True
        if await self.level_in_scope(actor_id, context.level or student.level):
            return True
        return self.authored_last_promotion(actor_id, student)

    async def ensure_authorized(self, actor_id, assignment, student, context):
        if not await self.is_authorized(actor_id, assignment, student, context):
            logger.warning(f"User {actor_id} is outside the scope of assignment {assignment.id}")
            raise NotAuthorized("Not authorized to act on this assignment")

    async def bypass_applies(
        self,
        actor_id: UUID,
        policy: GatingPolicy,
        signature_type: SignatureType,
        student: Student,
        context: ClassContext,
        level: Optional[str],
    ) -> bool:
        """True when completion gating must be skipped for this actor and target."""
        if not policy.restrictions_enabled or policy.is_exempt(signature_type):
            return True

        stmt = select(BypassScope).where(BypassScope.subject_id == actor_id, BypassScope.is_deleted == False)
        scopes = (await self.db.execute(stmt)).scalars().all()
        for scope in scopes:
            if scope.type == BypassScopeType.ALL.value:
                return True
            if scope.type == BypassScopeType.LEVEL.value and level and scope.value == level:
                return True
            if scope.type == BypassScopeType.CLASS.value and context.class_id and scope.value == str(context.class_id):
                return True
            if scope.type == BypassScopeType.STUDENT.value and scope.value == str(student.id):
                return True
        return False
