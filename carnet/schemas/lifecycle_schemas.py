# carnet/schemas/lifecycle_schemas.py
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.signature import SignatureType
from .template_schemas import OVERRIDE_PREFIX


# Requests

class CompletionRequest(BaseModel):
    semester: Literal[1, 2] = 1
    done: bool = True


class MarkDoneRequest(BaseModel):
    semester: Literal[1, 2] = 1
    done: bool = True


class DataPatchRequest(BaseModel):
    block_overrides: Dict[str, Any] = Field(..., min_length=1)

    @field_validator('block_overrides')
    @classmethod
    def validate_keys(cls, v):
        unknown = [key for key in v if not key.startswith(OVERRIDE_PREFIX)]
        if unknown:
            raise ValueError(f"Unsupported override keys: {', '.join(sorted(unknown))}")
        return v


class SignRequest(BaseModel):
    type: SignatureType = SignatureType.STANDARD


class PromoteRequest(BaseModel):
    next_level: Optional[str] = Field(default=None, min_length=1, max_length=20)
    idempotency_key: Optional[str] = Field(default=None, min_length=1, max_length=100)


# Responses

class CompletionRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    teacher_id: UUID
    completed_sem1: bool
    completed_sem2: bool
    completed_legacy: bool
    completed_at_sem1: Optional[datetime] = None
    completed_at_sem2: Optional[datetime] = None


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    template_id: UUID
    template_version: int
    student_id: UUID
    assigned_teacher_ids: List[str]
    status: str
    is_completed: bool
    is_completed_sem1: bool
    is_completed_sem2: bool
    data: Dict[str, Any]
    teacher_completions: List[CompletionRecordResponse] = []


class PromotionRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    school_year_id: UUID
    promoted_at: datetime
    from_level: Optional[str] = None
    to_level: str
    promoted_by: UUID


class StudentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    first_name: str
    last_name: str
    level: Optional[str] = None
    next_level: Optional[str] = None
    school_year_id: Optional[UUID] = None
    promotions: List[PromotionRecordResponse] = []


class SignatureResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    template_assignment_id: UUID
    signer_id: UUID
    type: SignatureType
    level: str
    signed_at: datetime
    signature_period_id: str
    school_year_id: Optional[UUID] = None
    school_year_name: Optional[str] = None


class TemplateView(BaseModel):
    id: UUID
    name: str
    version: int
    pages: List[Dict[str, Any]]


class TeacherCompletionStatus(BaseModel):
    teacher_id: str
    completed_sem1: bool
    completed_sem2: bool


class CategoryStatus(BaseModel):
    category: str
    teachers: List[TeacherCompletionStatus]
    complete_standard: bool
    complete_end_of_year: bool


class ReviewView(BaseModel):
    assignment: AssignmentResponse
    template: TemplateView
    student: StudentResponse
    signature: Optional[SignatureResponse] = None
    final_signature: Optional[SignatureResponse] = None
    is_signed_by_me: bool
    can_edit: bool
    is_promoted: bool
    active_semester: int
    eligible_for_standard_sign: bool
    eligible_for_final_sign: bool
    category_status: List[CategoryStatus]


class PromoteResponse(BaseModel):
    assignment: AssignmentResponse
    student: StudentResponse
    promotion: PromotionRecordResponse
    replayed: bool = False


class UnsignResponse(BaseModel):
    success: bool = True
    assignment_status: str
