# carnet/services/signature_service.py
"""Signing and unsigning of template assignments."""
from datetime import datetime
from typing import List, Optional
from uuid import UUID
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select

from ..core.exceptions import AlreadySigned, NotCompleted, NotFound, Semester2Required
from ..models.base import as_utc
from ..models.signature import SignatureType, TemplateSignature
from ..models.template import AssignmentStatus, TemplateAssignment
from .base_service import BaseService
from .signature_window import SignatureWindow, visible_signatures

logger = logging.getLogger(__name__)


def _semester_flag(assignment: TemplateAssignment, signature_type: SignatureType) -> bool:
    if signature_type == SignatureType.END_OF_YEAR:
        return bool(assignment.is_completed_sem2)
    return bool(assignment.is_completed_sem1 or assignment.is_completed)


class SignatureLedger(BaseService[TemplateSignature]):
    def __init__(self, db: AsyncSession):
        super().__init__(TemplateSignature, db)

    async def for_assignment(self, assignment_id: UUID) -> List[TemplateSignature]:
        stmt = self._active(
            select(TemplateSignature).where(TemplateSignature.template_assignment_id == assignment_id)
        )
        result = await self.db.execute(stmt)
        return sorted(result.scalars().all(), key=lambda s: as_utc(s.signed_at))

    async def visible(
        self,
        assignment_id: UUID,
        window: SignatureWindow,
        signature_type: Optional[SignatureType] = None,
    ) -> List[TemplateSignature]:
        signatures = visible_signatures(await self.for_assignment(assignment_id), window)
        if signature_type is not None:
            signatures = [s for s in signatures if s.type == signature_type.value]
        return signatures

    async def sign(
        self,
        assignment: TemplateAssignment,
        signer_id: UUID,
        signature_type: SignatureType,
        window: SignatureWindow,
        *,
        period_id: str,
        signed_at: datetime,
        active_semester: int,
        eligible: bool,
        bypassed: bool,
        school_year_id: Optional[UUID] = None,
        school_year_name: Optional[str] = None,
    ) -> TemplateSignature:
        if await self.visible(assignment.id, window, signature_type):
            raise AlreadySigned(f"Assignment already carries a {signature_type.value} signature")

        if not bypassed:
            if signature_type == SignatureType.END_OF_YEAR and active_semester != 2:
                raise Semester2Required("End of year signatures open in semester 2")
            if not (eligible and _semester_flag(assignment, signature_type)):
                semester = 2 if signature_type == SignatureType.END_OF_YEAR else 1
                raise NotCompleted(
                    f"Teachers have not completed semester {semester}",
                    code=f"not_completed_sem{semester}",
                )

        signature = TemplateSignature(
            template_assignment_id=assignment.id,
            signer_id=signer_id,
            type=signature_type.value,
            level=window.level or "",
            signed_at=signed_at,
            signature_period_id=period_id,
            school_year_id=school_year_id,
            school_year_name=school_year_name,
        )
        self.db.add(signature)
        try:
            await self.db.flush()
        except IntegrityError:
            # A concurrent or out-of-window signature holds the same period slot
            await self.db.rollback()
            raise AlreadySigned(f"Assignment already carries a {signature_type.value} signature")

        assignment.status = AssignmentStatus.SIGNED.value
        await self.db.flush()
        return signature

    async def unsign(
        self,
        assignment: TemplateAssignment,
        signature_type: SignatureType,
        window: SignatureWindow,
    ) -> TemplateSignature:
        matching = await self.visible(assignment.id, window, signature_type)
        if not matching:
            raise NotFound(f"No {signature_type.value} signature to remove")

        removed = matching[-1]
        await self.db.delete(removed)
        await self.db.flush()

        remaining = await self.visible(assignment.id, window)
        if not remaining and assignment.status == AssignmentStatus.SIGNED.value:
            assignment.status = AssignmentStatus.COMPLETED.value
            await self.db.flush()
        return removed
