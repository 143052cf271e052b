from datetime import UTC, datetime

from booking_ledger.db.models import AvailabilityRule, AvailabilitySlot, ProviderProfile, UserRole
from booking_ledger.tasks.availability import apply_rules_for_all_providers
from booking_ledger.tasks.celery_app import celery_app


def test_scheduled_apply_covers_every_provider(db_session, provider, make_user):
    second_user = make_user("second-coach@example.com", UserRole.PROVIDER)
    second = ProviderProfile(user_id=second_user.id, display_name="Second", timezone="UTC")
    db_session.add(second)
    db_session.flush()
    # 2030-01-07 is a Monday.
    db_session.add_all(
        [
            AvailabilityRule(provider_id=provider.id, weekday=0, start_minutes=540, end_minutes=600),
            AvailabilityRule(provider_id=second.id, weekday=1, start_minutes=540, end_minutes=600),
        ]
    )
    db_session.commit()

    now = datetime(2030, 1, 6, 12, 0, tzinfo=UTC)
    created = apply_rules_for_all_providers(db=db_session, now=now, days_ahead=7)
    rerun = apply_rules_for_all_providers(db=db_session, now=now, days_ahead=7)

    assert created == 2
    assert rerun == 0
    assert db_session.query(AvailabilitySlot).filter(AvailabilitySlot.provider_id == second.id).count() == 1


def test_provider_with_unknown_timezone_does_not_stop_the_run(db_session, provider, make_user):
    broken_user = make_user("broken-coach@example.com", UserRole.PROVIDER)
    broken = ProviderProfile(user_id=broken_user.id, display_name="Broken", timezone="Mars/Olympus_Mons")
    db_session.add(broken)
    db_session.flush()
    db_session.add_all(
        [
            AvailabilityRule(provider_id=broken.id, weekday=0, start_minutes=540, end_minutes=600),
            AvailabilityRule(provider_id=provider.id, weekday=0, start_minutes=540, end_minutes=600),
        ]
    )
    db_session.commit()

    now = datetime(2030, 1, 6, 12, 0, tzinfo=UTC)
    created = apply_rules_for_all_providers(db=db_session, now=now, days_ahead=7)

    assert created == 1
    assert db_session.query(AvailabilitySlot).filter(AvailabilitySlot.provider_id == broken.id).count() == 0


def test_beat_schedule_registers_rule_application():
    schedule = celery_app.conf.beat_schedule

    assert schedule["apply-availability-rules"]["task"] == "availability.apply_rules"
