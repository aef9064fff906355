# tests/conftest.py
import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["REDIS_URL"] = ""
os.environ.setdefault("LOG_LEVEL", "warning")

import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from carnet.core.cache import CacheManager
from carnet.core.database import get_db
from carnet.main import app
from carnet.models import (
    Base,
    ClassGroup,
    Enrollment,
    GradebookTemplate,
    Level,
    SchoolYear,
    Student,
    SupervisionLink,
    TeacherClassLink,
    TemplateAssignment,
)
from carnet.models.base import utcnow
from carnet.services.assignment_lifecycle_service import AssignmentLifecycleService
from carnet.services.notification_bus import NotificationBus

# Arabic for every level, English only in PS
TOGGLE_PAGES = [
    {
        "title": "Langues",
        "blocks": [
            {"type": "text", "props": {"text": "Compétences langagières"}},
            {
                "type": "language_toggle",
                "props": {
                    "items": [
                        {"code": "ar", "label": "Arabe", "active": False},
                        {"code": "en", "label": "Anglais", "active": False, "levels": ["PS"]},
                    ]
                },
            },
        ],
    }
]


class RecordingAudit:
    def __init__(self):
        self.entries: List[Dict[str, Any]] = []

    async def record(self, actor_id, action, details):
        self.entries.append({"actor_id": actor_id, "action": action, "details": details})


class FailingAudit:
    async def record(self, actor_id, action, details):
        raise RuntimeError("audit store unavailable")


@dataclass
class World:
    """Ids of a small school: one PS class in the active year, two language teachers."""
    now: Any
    previous_year_id: uuid.UUID
    active_year_id: uuid.UUID
    next_year_id: uuid.UUID
    class_id: uuid.UUID
    student_id: uuid.UUID
    template_id: uuid.UUID
    assignment_id: uuid.UUID
    arabic_teacher_id: uuid.UUID
    english_teacher_id: uuid.UUID
    sub_admin_id: uuid.UUID
    outsider_id: uuid.UUID
    extra: Dict[str, Any] = field(default_factory=dict)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def now():
    return utcnow()


async def seed_world(session_factory, now, pages=None) -> World:
    ids = {key: uuid.uuid4() for key in (
        "previous_year", "active_year", "next_year", "class", "student", "template",
        "assignment", "arabic_teacher", "english_teacher", "sub_admin", "outsider",
    )}
    start = now - timedelta(days=120)
    async with session_factory() as session:
        session.add_all([
            SchoolYear(
                id=ids["previous_year"], name=f"{start.year - 1}/{start.year}",
                start_date=start - timedelta(days=365), end_date=start - timedelta(days=60),
                sequence=1, active=False, active_semester=2,
            ),
            SchoolYear(
                id=ids["active_year"], name=f"{start.year}/{start.year + 1}",
                start_date=start, end_date=start + timedelta(days=300),
                sequence=2, active=True, active_semester=1,
            ),
            SchoolYear(
                id=ids["next_year"], name=f"{start.year + 1}/{start.year + 2}",
                start_date=start + timedelta(days=365), end_date=start + timedelta(days=665),
                sequence=3, active=False, active_semester=1,
            ),
            Level(name="TPS", order=1, is_exit_level=False),
            Level(name="PS", order=2, is_exit_level=False),
            Level(name="MS", order=3, is_exit_level=False),
            Level(name="GS", order=4, is_exit_level=True),
        ])
        await session.flush()
        session.add_all([
            ClassGroup(id=ids["class"], name="PS A", level="PS", school_year_id=ids["active_year"]),
            Student(
                id=ids["student"], first_name="Lina", last_name="Haddad",
                level="PS", school_year_id=ids["active_year"], status="active",
            ),
            GradebookTemplate(id=ids["template"], name="Carnet PS", current_version=1,
                              pages=TOGGLE_PAGES if pages is None else pages),
        ])
        await session.flush()
        session.add_all([
            TeacherClassLink(teacher_id=ids["arabic_teacher"], class_id=ids["class"],
                             school_year_id=ids["active_year"], languages=["ar"], is_generalist=False),
            TeacherClassLink(teacher_id=ids["english_teacher"], class_id=ids["class"],
                             school_year_id=ids["active_year"], languages=["en"], is_generalist=False),
            Enrollment(student_id=ids["student"], school_year_id=ids["active_year"],
                       class_id=ids["class"], status="active"),
            SupervisionLink(sub_admin_id=ids["sub_admin"], teacher_id=ids["arabic_teacher"]),
            TemplateAssignment(
                id=ids["assignment"], template_id=ids["template"], template_version=1,
                student_id=ids["student"],
                assigned_teacher_ids=[str(ids["arabic_teacher"]), str(ids["english_teacher"])],
                status="draft", is_completed=False, is_completed_sem1=False, is_completed_sem2=False,
                data={},
            ),
        ])
        await session.commit()

    return World(
        now=now,
        previous_year_id=ids["previous_year"],
        active_year_id=ids["active_year"],
        next_year_id=ids["next_year"],
        class_id=ids["class"],
        student_id=ids["student"],
        template_id=ids["template"],
        assignment_id=ids["assignment"],
        arabic_teacher_id=ids["arabic_teacher"],
        english_teacher_id=ids["english_teacher"],
        sub_admin_id=ids["sub_admin"],
        outsider_id=ids["outsider"],
    )


@pytest.fixture
async def world(session_factory, now):
    return await seed_world(session_factory, now)


@pytest.fixture
def audit():
    return RecordingAudit()


@pytest.fixture
def bus():
    return NotificationBus()


@pytest.fixture
async def make_service(session_factory, audit, bus, now):
    """Each call opens a fresh session, so state is always re-read from the database."""
    sessions = []

    def factory(clock=None, audit_sink=None):
        session = session_factory()
        sessions.append(session)
        return AssignmentLifecycleService(
            session,
            audit=audit_sink or audit,
            bus=bus,
            cache=CacheManager(None),
            clock=clock or (lambda: now),
        )

    yield factory
    for session in sessions:
        await session.close()


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def complete_all(make_service, world: World, semester: int):
    for teacher_id in (world.arabic_teacher_id, world.english_teacher_id):
        await make_service().set_teacher_completion(world.assignment_id, teacher_id, semester, True)


async def set_active_semester(session_factory, world: World, semester: int):
    from sqlalchemy import update

    async with session_factory() as session:
        await session.execute(
            update(SchoolYear).where(SchoolYear.id == world.active_year_id).values(active_semester=semester)
        )
        await session.commit()


async def reach_final_signature(make_service, session_factory, world: World, signer_id=None):
    """Both semesters completed, semester 2 open, end of year signature in place."""
    from carnet.models.signature import SignatureType

    await complete_all(make_service, world, 1)
    await complete_all(make_service, world, 2)
    await set_active_semester(session_factory, world, 2)
    return await make_service().sign(world.assignment_id, signer_id or world.sub_admin_id, SignatureType.END_OF_YEAR)
