# carnet/routers/lifecycle.py
"""Assignment lifecycle endpoints."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from ..core.auth import get_actor_id
from ..core.database import get_db
from ..models.signature import SignatureType
from ..schemas.lifecycle_schemas import (
    AssignmentResponse,
    CompletionRequest,
    DataPatchRequest,
    MarkDoneRequest,
    PromoteRequest,
    PromoteResponse,
    ReviewView,
    SignRequest,
    SignatureResponse,
    UnsignResponse,
)
from ..services.assignment_lifecycle_service import AssignmentLifecycleService

router = APIRouter(prefix="/api/v1/assignments", tags=["Assignment Lifecycle"])


@router.get("/{assignment_id}/review", response_model=ReviewView)
async def get_review_view(
    assignment_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db)
):
    """Gradebook as a reviewer sees it, with signatures of the current cycle"""
    service = AssignmentLifecycleService(db)
    return await service.get_review_view(assignment_id, actor_id)


@router.post("/{assignment_id}/completion", response_model=AssignmentResponse)
async def set_teacher_completion(
    assignment_id: UUID,
    body: CompletionRequest,
    actor_id: UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db)
):
    """Teacher marks their part of a semester done or not done"""
    service = AssignmentLifecycleService(db)
    return await service.set_teacher_completion(assignment_id, actor_id, body.semester, body.done)


@router.post("/{assignment_id}/mark-done", response_model=AssignmentResponse)
async def mark_done(
    assignment_id: UUID,
    body: MarkDoneRequest,
    actor_id: UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db)
):
    service = AssignmentLifecycleService(db)
    return await service.mark_complete(assignment_id, actor_id, body.semester, body.done)


@router.patch("/{assignment_id}/data", response_model=AssignmentResponse)
async def update_assignment_data(
    assignment_id: UUID,
    body: DataPatchRequest,
    actor_id: UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db)
):
    service = AssignmentLifecycleService(db)
    return await service.update_assignment_data(assignment_id, actor_id, body.block_overrides)


@router.post("/{assignment_id}/sign", response_model=SignatureResponse, status_code=201)
async def sign_assignment(
    assignment_id: UUID,
    body: SignRequest,
    actor_id: UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db)
):
    service = AssignmentLifecycleService(db)
    return await service.sign(assignment_id, actor_id, body.type)


@router.delete("/{assignment_id}/sign", response_model=UnsignResponse)
async def unsign_assignment(
    assignment_id: UUID,
    type: SignatureType = Query(SignatureType.STANDARD),
    actor_id: UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db)
):
    service = AssignmentLifecycleService(db)
    return await service.unsign(assignment_id, actor_id, type)


@router.post("/{assignment_id}/promote", response_model=PromoteResponse)
async def promote_student(
    assignment_id: UUID,
    body: PromoteRequest,
    actor_id: UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db)
):
    """Promote the student once their end of year gradebook is signed"""
    service = AssignmentLifecycleService(db)
    return await service.promote(assignment_id, actor_id, body.next_level, body.idempotency_key)
