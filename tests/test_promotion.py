import pytest
from sqlalchemy import select, update

from carnet.core.exceptions import (
    AlreadyPromoted,
    CannotDetermineNextLevel,
    IdempotencyKeyConflict,
    NoNextSchoolYear,
    NotAuthorized,
    NotSignedByReviewer,
)
from carnet.models import (
    Enrollment,
    PromotionRecord,
    SavedGradebook,
    SchoolYear,
    Student,
    StudentCompetencyStatus,
    SupervisionLink,
)
from carnet.models.signature import SignatureType
from tests.conftest import reach_final_signature


async def _promotions(session_factory, student_id):
    async with session_factory() as session:
        stmt = select(PromotionRecord).where(PromotionRecord.student_id == student_id)
        return (await session.execute(stmt)).scalars().all()


async def test_promote_without_final_signature_changes_nothing(session_factory, make_service, world):
    with pytest.raises(NotSignedByReviewer) as exc:
        await make_service().promote(world.assignment_id, world.sub_admin_id)
    assert exc.value.code == "not_signed_by_you"

    assert await _promotions(session_factory, world.student_id) == []
    async with session_factory() as session:
        assert (await session.execute(select(SavedGradebook))).scalars().all() == []
        student = await session.get(Student, world.student_id)
    assert student.next_level is None


async def test_promote_requires_own_final_signature(session_factory, make_service, world):
    from carnet.models import RoleScope

    async with session_factory() as session:
        session.add(RoleScope(user_id=world.outsider_id, levels=["PS"]))
        await session.commit()
    await reach_final_signature(make_service, session_factory, world, signer_id=world.outsider_id)

    with pytest.raises(NotSignedByReviewer):
        await make_service().promote(world.assignment_id, world.sub_admin_id)


async def test_promote_moves_student_to_next_year(session_factory, make_service, world, audit):
    async with session_factory() as session:
        session.add(StudentCompetencyStatus(
            student_id=world.student_id, competency_id="lang-1", en=True, fr=False, ar=True,
        ))
        await session.commit()
    await reach_final_signature(make_service, session_factory, world)

    result = await make_service().promote(world.assignment_id, world.sub_admin_id)

    assert result.replayed is False
    assert result.promotion.from_level == "PS"
    assert result.promotion.to_level == "MS"
    assert result.promotion.school_year_id == world.active_year_id
    assert result.student.level == "PS"
    assert result.student.next_level == "MS"
    assert result.student.school_year_id == world.next_year_id
    history = result.assignment.data["promotion_history"]
    assert [(n["from_level"], n["to_level"]) for n in history] == [("PS", "MS")]

    async with session_factory() as session:
        enrollments = (await session.execute(
            select(Enrollment).where(Enrollment.student_id == world.student_id)
        )).scalars().all()
        snapshots = (await session.execute(select(SavedGradebook))).scalars().all()

    by_year = {e.school_year_id: e for e in enrollments}
    assert by_year[world.active_year_id].status == "promoted"
    assert by_year[world.next_year_id].status == "active"
    assert by_year[world.next_year_id].class_id is None

    assert len(snapshots) == 1
    snapshot = snapshots[0]
    assert snapshot.school_year_id == world.active_year_id
    assert snapshot.level == "PS"
    assert snapshot.class_id == world.class_id
    assert snapshot.meta["signature_period_id"] == f"{world.active_year_id}_end_of_year"
    assert snapshot.data["student"]["next_level"] is None
    assert snapshot.data["competencies"][0]["competency_id"] == "lang-1"
    assert snapshot.data["assignment"]["status"] == "signed"

    assert audit.entries[-1]["action"] == "promote_student"


async def test_promote_twice_is_rejected(session_factory, make_service, world):
    await reach_final_signature(make_service, session_factory, world)
    await make_service().promote(world.assignment_id, world.sub_admin_id)

    with pytest.raises(AlreadyPromoted):
        await make_service().promote(world.assignment_id, world.sub_admin_id)

    assert len(await _promotions(session_factory, world.student_id)) == 1


async def test_promote_replays_with_same_idempotency_key(session_factory, make_service, world):
    await reach_final_signature(make_service, session_factory, world)
    first = await make_service().promote(world.assignment_id, world.sub_admin_id, idempotency_key="promo-1")
    second = await make_service().promote(world.assignment_id, world.sub_admin_id, idempotency_key="promo-1")

    assert second.replayed is True
    assert second.promotion.id == first.promotion.id
    assert len(await _promotions(session_factory, world.student_id)) == 1


async def test_concurrent_promotion_hits_unique_guard(session_factory, make_service, world, now):
    await reach_final_signature(make_service, session_factory, world)

    # Loaded before the competing promotion commits, so the read-side check passes
    stale = make_service()
    loaded = await stale.load(world.assignment_id)
    await make_service().promote(world.assignment_id, world.sub_admin_id)

    with pytest.raises(AlreadyPromoted):
        await stale.promotions.promote(
            loaded.assignment,
            loaded.student,
            world.sub_admin_id,
            loaded.context,
            loaded.window,
            loaded.active_year,
            now,
        )

    assert len(await _promotions(session_factory, world.student_id)) == 1
    async with session_factory() as session:
        snapshots = (await session.execute(select(SavedGradebook))).scalars().all()
    assert len(snapshots) == 1


async def test_idempotency_key_of_another_student_is_rejected(session_factory, make_service, world, now):
    async with session_factory() as session:
        other = Student(first_name="Lina", last_name="Haddad", level="PS")
        session.add(other)
        await session.flush()
        session.add(PromotionRecord(
            student_id=other.id, school_year_id=world.active_year_id,
            promoted_at=now, from_level="PS", to_level="MS",
            promoted_by=world.sub_admin_id, idempotency_key="promo-shared",
        ))
        await session.commit()
    await reach_final_signature(make_service, session_factory, world)

    with pytest.raises(IdempotencyKeyConflict) as exc:
        await make_service().promote(world.assignment_id, world.sub_admin_id, idempotency_key="promo-shared")

    assert exc.value.status_code == 409
    assert exc.value.detail["error"] == "idempotency_key_conflict"
    assert await _promotions(session_factory, world.student_id) == []


async def test_completion_rejected_after_promotion(session_factory, make_service, world):
    await reach_final_signature(make_service, session_factory, world)
    await make_service().promote(world.assignment_id, world.sub_admin_id)

    with pytest.raises(NotAuthorized):
        await make_service().set_teacher_completion(world.assignment_id, world.arabic_teacher_id, 1, False)


async def test_review_after_promotion_is_read_only(session_factory, make_service, world):
    await reach_final_signature(make_service, session_factory, world)
    await make_service().promote(world.assignment_id, world.sub_admin_id)

    view = await make_service().get_review_view(world.assignment_id, world.sub_admin_id)
    assert view.is_promoted is True
    assert view.can_edit is False
    assert view.final_signature is not None


async def test_promoter_keeps_access_after_leaving_scope(session_factory, make_service, world):
    await reach_final_signature(make_service, session_factory, world)
    await make_service().promote(world.assignment_id, world.sub_admin_id)

    async with session_factory() as session:
        await session.execute(update(SupervisionLink).values(is_deleted=True))
        await session.commit()

    view = await make_service().get_review_view(world.assignment_id, world.sub_admin_id)
    assert view.student.next_level == "MS"


async def test_exit_level_uses_requested_level(session_factory, make_service, world):
    async with session_factory() as session:
        await session.execute(update(Student).where(Student.id == world.student_id).values(level="GS"))
        await session.commit()
    await reach_final_signature(make_service, session_factory, world)

    with pytest.raises(CannotDetermineNextLevel):
        await make_service().promote(world.assignment_id, world.sub_admin_id)

    result = await make_service().promote(world.assignment_id, world.sub_admin_id, requested_next_level="EB1")
    assert result.promotion.to_level == "EB1"


async def test_missing_next_year_blocks_promotion(session_factory, make_service, world):
    await reach_final_signature(make_service, session_factory, world)
    async with session_factory() as session:
        await session.execute(update(SchoolYear).where(SchoolYear.id == world.next_year_id).values(is_deleted=True))
        await session.commit()

    with pytest.raises(NoNextSchoolYear):
        await make_service().promote(world.assignment_id, world.sub_admin_id)

    assert await _promotions(session_factory, world.student_id) == []


async def test_final_signature_stays_visible_after_promotion(session_factory, make_service, world):
    signature = await reach_final_signature(make_service, session_factory, world)
    await make_service().promote(world.assignment_id, world.sub_admin_id)

    view = await make_service().get_review_view(world.assignment_id, world.sub_admin_id)
    assert view.final_signature.id == signature.id
    assert view.final_signature.type == SignatureType.END_OF_YEAR
