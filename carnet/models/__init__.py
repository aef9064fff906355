# carnet/models/__init__.py
"""Import all models here, if needed for Alembic migration."""
from .base import Base

from .academic import SchoolYear, Level, ClassGroup, TeacherClassLink, Enrollment, EnrollmentStatus
from .student import Student, PromotionRecord
from .template import GradebookTemplate, TemplateAssignment, CompletionRecord, AssignmentStatus
from .signature import TemplateSignature, SignatureType
from .governance import SupervisionLink, RoleScope, BypassScope, BypassScopeType, Setting
from .archive import StudentCompetencyStatus, SavedGradebook

__all__ = [
    "Base",
    "SchoolYear",
    "Level",
    "ClassGroup",
    "TeacherClassLink",
    "Enrollment",
    "EnrollmentStatus",
    "Student",
    "PromotionRecord",
    "GradebookTemplate",
    "TemplateAssignment",
    "CompletionRecord",
    "AssignmentStatus",
    "TemplateSignature",
    "SignatureType",
    "SupervisionLink",
    "RoleScope",
    "BypassScope",
    "BypassScopeType",
    "Setting",
    "StudentCompetencyStatus",
    "SavedGradebook",
]
