import uuid
from datetime import datetime, timedelta, timezone

from carnet.models import PromotionRecord, TemplateSignature
from carnet.models.signature import SignatureType
from carnet.services.school_year_service import SchoolYearInfo
from carnet.services.signature_window import attribute_school_year, resolve_window, visible_signatures
from tests.conftest import complete_all

NOW = datetime(2026, 1, 15, tzinfo=timezone.utc)


def _year(name, start, end, sequence, active=False):
    return SchoolYearInfo(
        id=uuid.uuid4(), name=name, start_date=start, end_date=end,
        sequence=sequence, active=active, active_semester=1,
    )


Y1 = _year("2024/2025", datetime(2024, 9, 1, tzinfo=timezone.utc), datetime(2025, 6, 30, tzinfo=timezone.utc), 1)
Y2 = _year("2025/2026", datetime(2025, 9, 1, tzinfo=timezone.utc), datetime(2026, 6, 30, tzinfo=timezone.utc), 2, True)
Y3 = _year("2026/2027", datetime(2026, 9, 1, tzinfo=timezone.utc), datetime(2027, 6, 30, tzinfo=timezone.utc), 3)


def _signature(signed_at, level="PS", type="standard"):
    return TemplateSignature(signed_at=signed_at, level=level, type=type)


def test_window_starts_when_previous_year_ends():
    window = resolve_window([Y1, Y2, Y3], Y2, "PS", [], NOW)
    assert window.threshold == Y1.end_date
    assert window.upper_bound == Y2.end_date


def test_window_without_previous_year_starts_with_active_year():
    window = resolve_window([Y2], Y2, "PS", [], NOW)
    assert window.threshold == Y2.start_date


def test_future_threshold_falls_back_to_one_year_ago():
    future = _year("2030/2031", datetime(2030, 9, 1, tzinfo=timezone.utc), datetime(2031, 6, 30, tzinfo=timezone.utc), 9, True)
    window = resolve_window([future], future, "PS", [], NOW)
    assert window.threshold == NOW - timedelta(days=365)


def test_upper_bound_stays_open_after_year_end():
    late = Y2.end_date + timedelta(days=20)
    window = resolve_window([Y1, Y2, Y3], Y2, "PS", [], late)
    assert window.upper_bound == late


def test_visibility_by_date_and_level():
    window = resolve_window([Y1, Y2, Y3], Y2, "PS", [], NOW)
    current = _signature(datetime(2025, 10, 1, tzinfo=timezone.utc))
    untagged = _signature(datetime(2025, 10, 2, tzinfo=timezone.utc), level="")
    other_level = _signature(datetime(2025, 10, 3, tzinfo=timezone.utc), level="MS")
    last_year = _signature(datetime(2025, 3, 1, tzinfo=timezone.utc))

    assert visible_signatures([current, untagged, other_level, last_year], window) == [current, untagged]


def test_signatures_before_promotion_into_level_are_hidden():
    promoted_at = datetime(2025, 11, 1, tzinfo=timezone.utc)
    promotions = [PromotionRecord(promoted_at=promoted_at, from_level="TPS", to_level="PS")]
    window = resolve_window([Y1, Y2, Y3], Y2, "PS", promotions, NOW)

    before = _signature(promoted_at - timedelta(days=1))
    after = _signature(promoted_at + timedelta(days=1))
    assert visible_signatures([before, after], window) == [after]
    assert window.period_id(Y2.id, SignatureType.STANDARD).startswith(f"{Y2.id}_standard_")


def test_promotion_out_of_level_does_not_hide():
    promotions = [PromotionRecord(promoted_at=NOW - timedelta(days=1), from_level="PS", to_level="MS")]
    window = resolve_window([Y1, Y2, Y3], Y2, "PS", promotions, NOW)
    assert window.contains(_signature(NOW - timedelta(days=30)))


def test_school_year_label():
    signed_at = datetime(2026, 6, 1, tzinfo=timezone.utc)
    assert attribute_school_year([Y1, Y2, Y3], signed_at, SignatureType.STANDARD) == (Y2.id, Y2.name)
    assert attribute_school_year([Y1, Y2, Y3], signed_at, SignatureType.END_OF_YEAR) == (Y3.id, Y3.name)
    # Without a configured following year the label is computed from the name
    assert attribute_school_year([Y1, Y2], signed_at, SignatureType.END_OF_YEAR) == (None, "2026/2027")
    assert attribute_school_year([Y2], datetime(2026, 8, 1, tzinfo=timezone.utc), SignatureType.STANDARD) == (None, None)


async def test_previous_cycle_signature_hidden_after_return_to_level(session_factory, make_service, world, now):
    async with session_factory() as session:
        # Signed in the previous year, at the same level name
        session.add(TemplateSignature(
            template_assignment_id=world.assignment_id,
            signer_id=world.sub_admin_id,
            type="standard",
            level="PS",
            signed_at=now - timedelta(days=200),
            signature_period_id=f"{world.previous_year_id}_standard",
            school_year_id=world.previous_year_id,
        ))
        # Promoted out of PS and later placed back into it
        session.add(PromotionRecord(
            student_id=world.student_id, school_year_id=world.previous_year_id,
            promoted_at=now - timedelta(days=190), from_level="PS", to_level="MS",
            promoted_by=world.sub_admin_id,
        ))
        await session.commit()

    view = await make_service().get_review_view(world.assignment_id, world.sub_admin_id)
    assert view.signature is None
    assert view.is_signed_by_me is False

    # The stale signature does not block signing in the current cycle
    await complete_all(make_service, world, 1)
    signature = await make_service().sign(world.assignment_id, world.sub_admin_id, SignatureType.STANDARD)
    assert signature.signature_period_id == f"{world.active_year_id}_standard"


async def test_signature_before_promotion_into_level_hidden_in_review(session_factory, make_service, world, now):
    async with session_factory() as session:
        session.add(TemplateSignature(
            template_assignment_id=world.assignment_id,
            signer_id=world.sub_admin_id,
            type="standard",
            level="PS",
            signed_at=now - timedelta(days=20),
            signature_period_id=f"{world.active_year_id}_standard",
        ))
        session.add(PromotionRecord(
            student_id=world.student_id, school_year_id=world.previous_year_id,
            promoted_at=now - timedelta(days=10), from_level="TPS", to_level="PS",
            promoted_by=world.outsider_id,
        ))
        await session.commit()

    view = await make_service().get_review_view(world.assignment_id, world.sub_admin_id)
    assert view.signature is None

    # A new signature lands in a period anchored on the promotion
    await complete_all(make_service, world, 1)
    signature = await make_service().sign(world.assignment_id, world.sub_admin_id, SignatureType.STANDARD)
    assert signature.signature_period_id.startswith(f"{world.active_year_id}_standard_")
