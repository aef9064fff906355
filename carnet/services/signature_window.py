# carnet/services/signature_window.py
"""Which signatures belong to the student's current cycle.

Level names recur every school year, so a signature is only visible when it
was made after the previous school year closed, no later than the end of the
active one, for the student's current level, and after the student was
promoted into that level.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from ..models.base import as_utc
from ..models.signature import SignatureType, TemplateSignature
from ..models.student import PromotionRecord
from .school_year_service import (
    SchoolYearInfo,
    compute_next_year_name,
    find_next_year,
    find_previous_year,
    find_year_containing,
)

ONE_YEAR = timedelta(days=365)


@dataclass(frozen=True)
class SignatureWindow:
    threshold: datetime
    upper_bound: datetime
    level: Optional[str]
    promoted_into_level_at: Optional[datetime] = None

    def contains(self, signature: TemplateSignature) -> bool:
        signed_at = as_utc(signature.signed_at)
        if not (self.threshold < signed_at <= self.upper_bound):
            return False
        if signature.level and signature.level != self.level:
            return False
        if self.promoted_into_level_at is not None and signed_at < self.promoted_into_level_at:
            return False
        return True

    def period_id(self, school_year_id: Optional[UUID], signature_type: SignatureType) -> str:
        """Key of the cycle a new signature is recorded under."""
        period = f"{school_year_id or 'unscoped'}_{signature_type.value}"
        if self.promoted_into_level_at is not None:
            period = f"{period}_{int(self.promoted_into_level_at.timestamp())}"
        return period


def promotion_into_level(promotions: Iterable[PromotionRecord], level: Optional[str]) -> Optional[datetime]:
    dates = [as_utc(p.promoted_at) for p in promotions or [] if level and p.to_level == level]
    return max(dates) if dates else None


def resolve_window(
    years: Sequence[SchoolYearInfo],
    active: Optional[SchoolYearInfo],
    level: Optional[str],
    promotions: Iterable[PromotionRecord],
    now: datetime,
) -> SignatureWindow:
    if active is None:
        threshold, upper_bound = now - ONE_YEAR, now
    else:
        previous = find_previous_year(list(years), active)
        threshold = previous.end_date if previous is not None else active.start_date
        if threshold > now:
            threshold = now - ONE_YEAR
        upper_bound = max(active.end_date, now)

    return SignatureWindow(
        threshold=threshold,
        upper_bound=upper_bound,
        level=level,
        promoted_into_level_at=promotion_into_level(promotions, level),
    )


def visible_signatures(signatures: Iterable[TemplateSignature], window: SignatureWindow) -> List[TemplateSignature]:
    return [s for s in signatures if window.contains(s)]


def attribute_school_year(
    years: Sequence[SchoolYearInfo],
    signed_at: datetime,
    signature_type: SignatureType,
) -> Tuple[Optional[UUID], Optional[str]]:
    """School year a signature is labelled with.

    Year-end signatures belong to the following cycle.
    """
    years = list(years)
    containing = find_year_containing(years, as_utc(signed_at))
    if containing is None:
        return None, None
    if signature_type != SignatureType.END_OF_YEAR:
        return containing.id, containing.name

    following = find_next_year(years, containing)
    if following is not None:
        return following.id, following.name
    return None, compute_next_year_name(containing.name)
