# carnet/models/governance.py
"""Who may act on whose assignments."""
import enum

from sqlalchemy import Column, String, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from .base import Base


class SupervisionLink(Base):
    __tablename__ = "supervision_links"

    sub_admin_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    teacher_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("sub_admin_id", "teacher_id", name="uq_supervision_link"),
    )


class RoleScope(Base):
    __tablename__ = "role_scopes"

    user_id = Column(UUID(as_uuid=True), nullable=False, unique=True)
    levels = Column(JSON, default=list, nullable=False)


class BypassScopeType(str, enum.Enum):
    ALL = "ALL"
    LEVEL = "LEVEL"
    CLASS = "CLASS"
    STUDENT = "STUDENT"


class BypassScope(Base):
    __tablename__ = "bypass_scopes"

    subject_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    type = Column(String(10), nullable=False)
    # Level name, class id or student id; empty for ALL
    value = Column(String(100), default="", nullable=False)


class Setting(Base):
    __tablename__ = "settings"

    key = Column(String(100), nullable=False, unique=True)
    value = Column(JSON, nullable=True)
