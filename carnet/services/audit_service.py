# carnet/services/audit_service.py
"""Audit trail for lifecycle actions; recording never fails the action itself."""
from typing import Any, Dict, Optional, Protocol
from uuid import UUID
import logging

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    async def record(self, actor_id: UUID, action: str, details: Dict[str, Any]) -> None:
        ...


class LoggingAuditSink:
    def __init__(self, name: str = "carnet.audit"):
        self.logger = logging.getLogger(name)

    async def record(self, actor_id: UUID, action: str, details: Dict[str, Any]) -> None:
        self.logger.info(f"{action} by {actor_id}: {details}")


async def safe_record(sink: Optional[AuditSink], actor_id: UUID, action: str, details: Dict[str, Any]):
    if sink is None:
        return
    try:
        await sink.record(actor_id, action, details)
    except Exception as e:
        logger.warning(f"Audit record {action} failed: {e}")
