# carnet/services/level_ladder.py
"""Ordered student levels and their successor relation."""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional
import logging

from ..models.academic import Level
from .base_service import BaseService

logger = logging.getLogger(__name__)

# Used when the levels table has no row for a level
FALLBACK_LADDER = {
    "TPS": "PS",
    "PS": "MS",
    "MS": "GS",
    "GS": "EB1",
    "KG1": "KG2",
    "KG2": "KG3",
    "KG3": "EB1",
}


class LevelLadder(BaseService[Level]):
    def __init__(self, db: AsyncSession):
        super().__init__(Level, db)

    async def get_by_name(self, name: str) -> Optional[Level]:
        stmt = self._active(select(Level).where(Level.name == name))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def next_level(self, name: Optional[str]) -> Optional[str]:
        """Successor of ``name``; None for exit levels and unknown names."""
        if not name:
            return None

        level = await self.get_by_name(name)
        if level is not None:
            if level.is_exit_level:
                return None
            stmt = self._active(select(Level).where(Level.order == level.order + 1))
            result = await self.db.execute(stmt)
            successor = result.scalar_one_or_none()
            if successor is not None:
                return successor.name

        fallback = FALLBACK_LADDER.get(name.strip().upper())
        if fallback:
            logger.debug(f"Level {name} resolved through built-in ladder to {fallback}")
        return fallback
