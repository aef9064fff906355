import uuid
from datetime import timedelta

import pytest

from carnet.core.exceptions import NotAuthorized, NotFound
from carnet.models import BypassScope, PromotionRecord, RoleScope, Setting, SupervisionLink, TeacherClassLink
from carnet.models.signature import SignatureType
from carnet.services.authorization_service import AuthorizationScoper, GatingPolicy


async def _scoper_and_target(make_service, world):
    service = make_service()
    loaded = await service.load(world.assignment_id)
    return service.db, AuthorizationScoper(service.db), loaded


async def test_supervisor_of_assigned_teacher_is_authorized(make_service, world):
    _, scoper, loaded = await _scoper_and_target(make_service, world)
    assert await scoper.is_authorized(world.sub_admin_id, loaded.assignment, loaded.student, loaded.context)
    assert not await scoper.is_authorized(world.outsider_id, loaded.assignment, loaded.student, loaded.context)


async def test_supervisor_of_class_teacher_is_authorized(session_factory, make_service, world):
    homeroom_teacher, supervisor = uuid.uuid4(), uuid.uuid4()
    async with session_factory() as session:
        session.add(TeacherClassLink(
            teacher_id=homeroom_teacher, class_id=world.class_id, school_year_id=world.active_year_id,
            languages=[], is_generalist=True,
        ))
        session.add(SupervisionLink(sub_admin_id=supervisor, teacher_id=homeroom_teacher))
        await session.commit()

    _, scoper, loaded = await _scoper_and_target(make_service, world)
    assert await scoper.is_authorized(supervisor, loaded.assignment, loaded.student, loaded.context)


async def test_level_scope(session_factory, make_service, world):
    ps_admin, ms_admin = uuid.uuid4(), uuid.uuid4()
    async with session_factory() as session:
        session.add(RoleScope(user_id=ps_admin, levels=["PS", "GS"]))
        session.add(RoleScope(user_id=ms_admin, levels=["MS"]))
        await session.commit()

    _, scoper, loaded = await _scoper_and_target(make_service, world)
    assert await scoper.is_authorized(ps_admin, loaded.assignment, loaded.student, loaded.context)
    assert not await scoper.is_authorized(ms_admin, loaded.assignment, loaded.student, loaded.context)


async def test_author_of_latest_promotion(session_factory, make_service, world, now):
    earlier, latest = uuid.uuid4(), uuid.uuid4()
    async with session_factory() as session:
        session.add(PromotionRecord(
            student_id=world.student_id, school_year_id=world.previous_year_id,
            promoted_at=now - timedelta(days=300), from_level="TPS", to_level="PS", promoted_by=earlier,
        ))
        session.add(PromotionRecord(
            student_id=world.student_id, school_year_id=world.active_year_id,
            promoted_at=now - timedelta(days=5), from_level="PS", to_level="MS", promoted_by=latest,
        ))
        await session.commit()

    _, scoper, loaded = await _scoper_and_target(make_service, world)
    assert await scoper.is_authorized(latest, loaded.assignment, loaded.student, loaded.context)
    assert not await scoper.is_authorized(earlier, loaded.assignment, loaded.student, loaded.context)


async def test_review_view_rejects_outsider(make_service, world):
    with pytest.raises(NotAuthorized) as exc:
        await make_service().get_review_view(world.assignment_id, world.outsider_id)
    assert exc.value.status_code == 403


async def test_unknown_assignment_is_not_found(make_service, world):
    with pytest.raises(NotFound):
        await make_service().get_review_view(uuid.uuid4(), world.sub_admin_id)


@pytest.mark.parametrize("scope_type, value_key, expected", [
    ("ALL", None, True),
    ("LEVEL", "level", True),
    ("CLASS", "class", True),
    ("STUDENT", "student", True),
    ("LEVEL", "other", False),
])
async def test_bypass_scopes(session_factory, make_service, world, scope_type, value_key, expected):
    values = {
        None: "",
        "level": "PS",
        "class": str(world.class_id),
        "student": str(world.student_id),
        "other": "MS",
    }
    async with session_factory() as session:
        session.add(BypassScope(subject_id=world.sub_admin_id, type=scope_type, value=values[value_key]))
        await session.commit()

    db, scoper, loaded = await _scoper_and_target(make_service, world)
    policy = await GatingPolicy.load(db)
    bypassed = await scoper.bypass_applies(
        world.sub_admin_id, policy, SignatureType.STANDARD, loaded.student, loaded.context, loaded.level
    )
    assert bypassed is expected


async def test_gating_policy_defaults_and_stored_flags(session_factory, world):
    async with session_factory() as session:
        policy = await GatingPolicy.load(session)
        assert policy == GatingPolicy(restrictions_enabled=True, exempt_standard=False, exempt_end_of_year=False)

        session.add(Setting(key="signature_exempt_end_of_year", value=True))
        await session.commit()
        policy = await GatingPolicy.load(session)

    assert policy.is_exempt(SignatureType.END_OF_YEAR) is True
    assert policy.is_exempt(SignatureType.STANDARD) is False
