# carnet/schemas/assignment_data.py
"""Typed view over TemplateAssignment.data."""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class PromotionNote(BaseModel):
    from_level: Optional[str] = None
    to_level: str
    date: datetime
    promoted_by: str
    school_year_id: Optional[str] = None
    school_year_name: Optional[str] = None


class AssignmentData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    block_overrides: Dict[str, Any] = Field(default_factory=dict)
    promotion_history: List[PromotionNote] = Field(default_factory=list)

    @classmethod
    def from_raw(cls, raw: Optional[Dict[str, Any]]) -> "AssignmentData":
        return cls.model_validate(raw or {})

    def to_raw(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
