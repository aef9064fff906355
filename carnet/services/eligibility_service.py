# carnet/services/eligibility_service.py
"""Which language categories an assignment requires, and whether teacher
completion covers a requested signature type.

Categories come from the template's language toggle items that apply to the
student's level. Each category is owned by the teachers linked to the
student's class for that language; with no class links the directly assigned
teachers own every category.
"""
import enum
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from ..models.academic import TeacherClassLink
from ..models.signature import SignatureType
from ..models.template import AssignmentStatus, CompletionRecord, TemplateAssignment
from ..schemas.template_schemas import ToggleItem, iter_language_toggles, parse_pages


class Category(str, enum.Enum):
    ARABIC = "arabic"
    ENGLISH = "english"
    POLYVALENT = "polyvalent"


ARABIC_KEYWORDS = ("arabe", "arabic")
ENGLISH_KEYWORDS = ("anglais", "english")


def classify_code(code: Optional[str], label: Optional[str] = None) -> Category:
    code = (code or "").strip().lower()
    label = (label or "").strip().lower()
    if code == "ar" or any(word in label for word in ARABIC_KEYWORDS):
        return Category.ARABIC
    if code == "en" or any(word in label for word in ENGLISH_KEYWORDS):
        return Category.ENGLISH
    return Category.POLYVALENT


def classify_item(item: ToggleItem) -> Category:
    return classify_code(item.code, item.label)


def required_categories(pages, level: Optional[str]) -> Set[Category]:
    required = set()
    for _, _, block in iter_language_toggles(parse_pages(pages)):
        for item in block.items:
            if item.applies_to(level):
                required.add(classify_item(item))
    return required


def link_covers(link: TeacherClassLink, category: Category) -> bool:
    if link.is_generalist:
        return category == Category.POLYVALENT
    languages = link.languages or []
    if not languages:
        return True
    return any(classify_code(code) == category for code in languages)


def _completed(record: Optional[CompletionRecord], signature_type: SignatureType) -> bool:
    if record is None:
        return False
    if signature_type == SignatureType.END_OF_YEAR:
        return bool(record.completed_sem2)
    # Legacy single-flag completion counts for the first semester
    return bool(record.completed_sem1 or record.completed_legacy)


@dataclass
class CategoryReport:
    category: Category
    teacher_ids: List[str]
    records: Dict[str, Optional[CompletionRecord]] = field(default_factory=dict)

    def is_complete(self, signature_type: SignatureType) -> bool:
        return any(_completed(self.records.get(t), signature_type) for t in self.teacher_ids)


@dataclass
class EligibilityReport:
    status: str
    categories: List[CategoryReport]

    @property
    def required(self) -> Set[Category]:
        return {c.category for c in self.categories}

    def is_eligible(self, signature_type: SignatureType) -> bool:
        if not self.categories:
            return True
        if self.status in (AssignmentStatus.COMPLETED.value, AssignmentStatus.SIGNED.value):
            return True
        return all(c.is_complete(signature_type) for c in self.categories)


class EligibilityEvaluator:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def class_links(self, class_id: Optional[UUID]) -> List[TeacherClassLink]:
        if class_id is None:
            return []
        stmt = select(TeacherClassLink).where(
            TeacherClassLink.class_id == class_id,
            TeacherClassLink.is_deleted == False,
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    def responsible_teachers(
        category: Category,
        links: List[TeacherClassLink],
        assigned_teacher_ids: Iterable[str],
    ) -> List[str]:
        if not links:
            return [str(t) for t in assigned_teacher_ids]
        return sorted({str(link.teacher_id) for link in links if link_covers(link, category)})

    async def evaluate(
        self,
        assignment: TemplateAssignment,
        pages,
        level: Optional[str],
        class_id: Optional[UUID],
    ) -> EligibilityReport:
        required = required_categories(pages, level)
        links = await self.class_links(class_id) if required else []
        records = {str(r.teacher_id): r for r in assignment.teacher_completions if not r.is_deleted}

        categories = []
        # Stable order for presentation
        for category in Category:
            if category not in required:
                continue
            teacher_ids = self.responsible_teachers(category, links, assignment.assigned_teacher_ids or [])
            categories.append(CategoryReport(
                category=category,
                teacher_ids=teacher_ids,
                records={t: records.get(t) for t in teacher_ids},
            ))
        return EligibilityReport(status=assignment.status, categories=categories)
