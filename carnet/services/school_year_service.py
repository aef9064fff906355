# carnet/services/school_year_service.py
"""School years, ordered and sequenced, with next-year resolution."""
import re
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import UUID
import logging

from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.cache import CacheManager, cache_manager
from ..core.config import settings
from ..models.base import as_utc
from ..models.academic import SchoolYear
from .base_service import BaseService

logger = logging.getLogger(__name__)

SCHOOL_YEARS_CACHE_KEY = "carnet:school_years"

YEAR_RANGE_RE = re.compile(r"(\d{4})([-/.])(\d{4})")


class SchoolYearInfo(BaseModel):
    """Detached copy of a SchoolYear row, safe to cache."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    start_date: datetime
    end_date: datetime
    sequence: Optional[int] = None
    active: bool = False
    active_semester: int = 1

    @field_validator('start_date', 'end_date')
    @classmethod
    def ensure_utc(cls, v):
        return as_utc(v)

    def contains(self, instant: datetime) -> bool:
        return self.start_date <= instant <= self.end_date


def compute_next_year_name(name: Optional[str]) -> Optional[str]:
    """'2024/2025' -> '2025/2026'; None when the name carries no year range."""
    match = YEAR_RANGE_RE.search(name or "")
    if not match:
        return None
    start, sep, end = match.groups()
    return name[:match.start()] + f"{int(start) + 1}{sep}{int(end) + 1}" + name[match.end():]


def _next_by_sequence(years: List[SchoolYearInfo], current: SchoolYearInfo) -> Optional[SchoolYearInfo]:
    if current.sequence is None:
        return None
    return next((y for y in years if y.sequence == current.sequence + 1), None)


def _next_by_start_date(years: List[SchoolYearInfo], current: SchoolYearInfo) -> Optional[SchoolYearInfo]:
    later = [y for y in years if y.start_date > current.start_date]
    return min(later, key=lambda y: y.start_date) if later else None


def _next_by_name(years: List[SchoolYearInfo], current: SchoolYearInfo) -> Optional[SchoolYearInfo]:
    name = compute_next_year_name(current.name)
    if not name:
        return None
    return next((y for y in years if y.name == name), None)


NEXT_YEAR_STRATEGIES: List[Callable[[List[SchoolYearInfo], SchoolYearInfo], Optional[SchoolYearInfo]]] = [
    _next_by_sequence,
    _next_by_start_date,
    _next_by_name,
]


def find_next_year(years: List[SchoolYearInfo], current: SchoolYearInfo) -> Optional[SchoolYearInfo]:
    for strategy in NEXT_YEAR_STRATEGIES:
        found = strategy(years, current)
        if found is not None and found.id != current.id:
            return found
    return None


def find_previous_year(years: List[SchoolYearInfo], current: SchoolYearInfo) -> Optional[SchoolYearInfo]:
    """Year with the latest end date before ``current`` starts."""
    earlier = [y for y in years if y.end_date < current.start_date]
    return max(earlier, key=lambda y: y.end_date) if earlier else None


def find_year_containing(years: List[SchoolYearInfo], instant: datetime) -> Optional[SchoolYearInfo]:
    return next((y for y in years if y.contains(instant)), None)


class SchoolYearLedger(BaseService[SchoolYear]):
    def __init__(self, db: AsyncSession, cache: CacheManager = cache_manager):
        super().__init__(SchoolYear, db)
        self.cache = cache

    async def list_years(self) -> List[SchoolYearInfo]:
        cached = await self.cache.get(SCHOOL_YEARS_CACHE_KEY)
        if cached is not None:
            return cached

        rows = await self.get_multi(order_by="start_date")
        years = [SchoolYearInfo.model_validate(row) for row in rows]
        await self.cache.set(
            SCHOOL_YEARS_CACHE_KEY,
            years,
            expire=timedelta(seconds=settings.cache_ttl_seconds),
        )
        return years

    async def get_active(self) -> Optional[SchoolYearInfo]:
        years = await self.list_years()
        return next((y for y in years if y.active), None)

    async def get_info(self, year_id: Optional[UUID]) -> Optional[SchoolYearInfo]:
        if year_id is None:
            return None
        years = await self.list_years()
        return next((y for y in years if y.id == year_id), None)

    async def previous_year(self, current: SchoolYearInfo) -> Optional[SchoolYearInfo]:
        return find_previous_year(await self.list_years(), current)

    async def next_year(self, current: SchoolYearInfo) -> Optional[SchoolYearInfo]:
        return find_next_year(await self.list_years(), current)
