from datetime import datetime, timedelta

import pytest
from fastapi import BackgroundTasks

from backend.core.errors import (
    BlockedAccount,
    BookingWindowClosed,
    DayUnavailable,
    InvalidTimeSlot,
    SlotAlreadyBooked,
    SlotUnavailable,
    WeeklyLimitExceeded,
)
from backend.models.appointment import STATUS_CANCELLED, STATUS_CONFIRMED, Appointment
from backend.models.availability import AvailableSlot
from backend.services import booking, ledger, notifications
from backend.services.booking import BookingPolicy, book_appointment, validate_booking
from backend.services.configuration import BookingSettings

SETTINGS = BookingSettings()
POLICY = BookingPolicy()
# Sunday 2026-01-04, 08:30: inside the default booking window.
NOW = datetime(2026, 1, 4, 8, 30)
MONDAY_9AM = datetime(2026, 1, 5, 9, 0)
TUESDAY_9AM = datetime(2026, 1, 6, 9, 0)
WEDNESDAY_10AM = datetime(2026, 1, 7, 10, 0)


def test_monday_booking_is_confirmed_with_fifteen_minute_end(db, user, make_slot) -> None:
    make_slot(MONDAY_9AM)

    appointment = book_appointment(db, user, MONDAY_9AM, SETTINGS, POLICY, NOW)

    assert appointment.status == STATUS_CONFIRMED
    assert appointment.user_id == user.id
    assert appointment.date == MONDAY_9AM
    assert appointment.end_time == datetime(2026, 1, 5, 9, 15)


def test_client_end_time_is_ignored(db, user, make_slot) -> None:
    make_slot(MONDAY_9AM)

    appointment = book_appointment(
        db, user, MONDAY_9AM, SETTINGS, POLICY, NOW, requested_end=datetime(2026, 1, 5, 11, 0)
    )

    assert appointment.end_time == datetime(2026, 1, 5, 9, 15)


def test_second_booking_in_same_week_is_rejected(db, user, make_slot) -> None:
    make_slot(MONDAY_9AM)
    make_slot(WEDNESDAY_10AM)
    book_appointment(db, user, MONDAY_9AM, SETTINGS, POLICY, NOW)

    with pytest.raises(WeeklyLimitExceeded) as exception_info:
        book_appointment(db, user, WEDNESDAY_10AM, SETTINGS, POLICY, NOW)

    assert exception_info.value.message == 'You can only book one appointment per week.'
    assert len(ledger.by_user(db, user.id)) == 1


def test_weekly_limit_uses_sunday_anchored_weeks(db, user, make_slot) -> None:
    saturday_before = datetime(2026, 1, 3, 9, 0)
    db.add(Appointment(
        user_id=user.id,
        date=saturday_before,
        end_time=saturday_before + timedelta(minutes=15),
        week_start=datetime(2025, 12, 28).date(),
        status=STATUS_CONFIRMED,
    ))
    db.commit()
    make_slot(MONDAY_9AM)

    appointment = book_appointment(db, user, MONDAY_9AM, SETTINGS, POLICY, NOW)

    assert appointment.status == STATUS_CONFIRMED


def test_cancelled_appointment_does_not_count_towards_weekly_limit(db, user, make_slot) -> None:
    make_slot(MONDAY_9AM)
    make_slot(WEDNESDAY_10AM)
    first = book_appointment(db, user, MONDAY_9AM, SETTINGS, POLICY, NOW)
    ledger.update(db, first, {'status': STATUS_CANCELLED})

    second = book_appointment(db, user, WEDNESDAY_10AM, SETTINGS, POLICY, NOW)

    assert second.status == STATUS_CONFIRMED


def test_disabled_day_is_rejected_even_with_enabled_slot(db, user, make_slot) -> None:
    make_slot(TUESDAY_9AM)

    with pytest.raises(DayUnavailable) as exception_info:
        book_appointment(db, user, TUESDAY_9AM, SETTINGS, POLICY, NOW)

    assert exception_info.value.message == 'Appointments are not available on Tuesday and Saturday.'


def test_off_grid_minute_is_rejected(db, user, make_slot) -> None:
    make_slot(datetime(2026, 1, 5, 9, 5))

    with pytest.raises(InvalidTimeSlot) as exception_info:
        book_appointment(db, user, datetime(2026, 1, 5, 9, 5), SETTINGS, POLICY, NOW)

    assert exception_info.value.message == (
        'Appointments are only available from 9 AM - 1 PM and 3 PM - 5 PM in 15-minute intervals.'
    )


@pytest.mark.parametrize('hour', [8, 13, 14, 17])
def test_hours_outside_morning_and_afternoon_ranges_are_rejected(db, user, hour: int) -> None:
    with pytest.raises(InvalidTimeSlot):
        validate_booking(db, user, datetime(2026, 1, 5, hour, 0), SETTINGS, POLICY, NOW)


def test_blocked_user_is_rejected_with_unblock_date(db, make_user, make_slot) -> None:
    blocked = make_user('blocked', blocked_until=datetime(2026, 1, 31, 12, 0))
    make_slot(MONDAY_9AM)

    with pytest.raises(BlockedAccount) as exception_info:
        book_appointment(db, blocked, MONDAY_9AM, SETTINGS, POLICY, NOW)

    assert 'January 31, 2026' in exception_info.value.message
    assert exception_info.value.blocked_until == datetime(2026, 1, 31, 12, 0)


def test_expired_block_does_not_prevent_booking(db, make_user, make_slot) -> None:
    formerly_blocked = make_user('reformed', blocked_until=datetime(2026, 1, 1, 0, 0))
    make_slot(MONDAY_9AM)

    appointment = book_appointment(db, formerly_blocked, MONDAY_9AM, SETTINGS, POLICY, NOW)

    assert appointment.status == STATUS_CONFIRMED


def test_block_check_runs_before_weekly_limit(db, make_user, make_slot) -> None:
    blocked = make_user('blocked', blocked_until=datetime(2026, 2, 1))
    make_slot(MONDAY_9AM)
    db.add(Appointment(
        user_id=blocked.id,
        date=WEDNESDAY_10AM,
        end_time=WEDNESDAY_10AM + timedelta(minutes=15),
        week_start=datetime(2026, 1, 4).date(),
        status=STATUS_CONFIRMED,
    ))
    db.commit()

    with pytest.raises(BlockedAccount):
        validate_booking(db, blocked, MONDAY_9AM, SETTINGS, POLICY, NOW)


def test_missing_slot_is_unavailable(db, user) -> None:
    with pytest.raises(SlotUnavailable) as exception_info:
        book_appointment(db, user, MONDAY_9AM, SETTINGS, POLICY, NOW)

    assert exception_info.value.message == 'This slot is not available.'


def test_disabled_slot_is_unavailable(db, user, make_slot) -> None:
    make_slot(MONDAY_9AM, enabled=False)

    with pytest.raises(SlotUnavailable):
        book_appointment(db, user, MONDAY_9AM, SETTINGS, POLICY, NOW)


def test_slot_taken_by_another_user_is_already_booked(db, make_user, make_slot) -> None:
    first = make_user('first')
    second = make_user('second')
    make_slot(MONDAY_9AM)
    book_appointment(db, first, MONDAY_9AM, SETTINGS, POLICY, NOW)

    with pytest.raises(SlotAlreadyBooked) as exception_info:
        book_appointment(db, second, MONDAY_9AM, SETTINGS, POLICY, NOW)

    assert exception_info.value.status_code == 409


def test_unique_index_backstop_rejects_racing_insert(db, make_user, make_slot) -> None:
    first = make_user('first')
    second = make_user('second')
    make_slot(MONDAY_9AM)
    validate_booking(db, first, MONDAY_9AM, SETTINGS, POLICY, NOW)
    validate_booking(db, second, MONDAY_9AM, SETTINGS, POLICY, NOW)

    # Both requests passed validation; only the first insert may win.
    ledger.create(db, first.id, MONDAY_9AM)
    with pytest.raises(SlotAlreadyBooked):
        ledger.create(db, second.id, MONDAY_9AM)

    active = [a for a in ledger.by_exact_date(db, MONDAY_9AM) if a.status != STATUS_CANCELLED]
    assert [a.user_id for a in active] == [first.id]


def test_unique_index_backstop_rejects_second_week_insert(db, user) -> None:
    ledger.create(db, user.id, MONDAY_9AM)

    with pytest.raises(WeeklyLimitExceeded):
        ledger.create(db, user.id, WEDNESDAY_10AM)


def test_custom_settings_change_the_rules(db, user, make_slot) -> None:
    settings = BookingSettings(disabled_days=frozenset({1}), morning_slot_start=10, morning_slot_end=12)
    make_slot(TUESDAY_9AM)
    make_slot(datetime(2026, 1, 6, 10, 30))

    with pytest.raises(InvalidTimeSlot):
        validate_booking(db, user, TUESDAY_9AM, settings, POLICY, NOW)
    with pytest.raises(DayUnavailable):
        validate_booking(db, user, datetime(2026, 1, 5, 10, 30), settings, POLICY, NOW)

    appointment = book_appointment(db, user, datetime(2026, 1, 6, 10, 30), settings, POLICY, NOW)
    assert appointment.status == STATUS_CONFIRMED


def test_notification_failure_does_not_roll_back_booking(db, user, make_slot, monkeypatch) -> None:
    def broken_sender(*_args, **_kwargs):
        raise RuntimeError('mail server exploded')

    monkeypatch.setattr(notifications, 'send_confirmation', broken_sender)
    make_slot(MONDAY_9AM)

    appointment = book_appointment(db, user, MONDAY_9AM, SETTINGS, POLICY, NOW)

    assert ledger.get(db, appointment.id).status == STATUS_CONFIRMED


def test_confirmation_is_sent_inline_without_background_tasks(db, user, make_slot, monkeypatch) -> None:
    sent = []
    monkeypatch.setattr(notifications, 'send_confirmation', lambda u, a: sent.append((u.id, a.id)))
    make_slot(MONDAY_9AM)

    appointment = book_appointment(db, user, MONDAY_9AM, SETTINGS, POLICY, NOW)

    assert sent == [(user.id, appointment.id)]


def test_confirmation_is_queued_when_background_tasks_given(db, user, make_slot, monkeypatch) -> None:
    sent = []
    monkeypatch.setattr(notifications, 'send_confirmation', lambda u, a: sent.append((u.id, a.id)))
    make_slot(MONDAY_9AM)
    background_tasks = BackgroundTasks()

    appointment = book_appointment(db, user, MONDAY_9AM, SETTINGS, POLICY, NOW, background_tasks=background_tasks)

    assert sent == []
    assert ledger.get(db, appointment.id).status == STATUS_CONFIRMED
    [task] = background_tasks.tasks
    task.func(*task.args, **task.kwargs)
    assert sent == [(user.id, appointment.id)]


def test_queued_confirmation_failure_is_logged(db, user, make_slot, monkeypatch, caplog) -> None:
    def broken_sender(*_args, **_kwargs):
        raise RuntimeError('mail server exploded')

    monkeypatch.setattr(notifications, 'send_confirmation', broken_sender)
    make_slot(MONDAY_9AM)
    background_tasks = BackgroundTasks()
    book_appointment(db, user, MONDAY_9AM, SETTINGS, POLICY, NOW, background_tasks=background_tasks)

    [task] = background_tasks.tasks
    task.func(*task.args, **task.kwargs)

    assert 'Confirmation for appointment' in caplog.text


def test_rejected_booking_sends_no_confirmation(db, user, monkeypatch) -> None:
    sent = []
    monkeypatch.setattr(notifications, 'send_confirmation', lambda u, a: sent.append(a.id))

    with pytest.raises(SlotUnavailable):
        book_appointment(db, user, MONDAY_9AM, SETTINGS, POLICY, NOW)

    assert sent == []


# Admin handling is a policy switch: by default admins follow every rule.


def test_admin_follows_rules_without_bypass(db, admin) -> None:
    with pytest.raises(DayUnavailable):
        validate_booking(db, admin, TUESDAY_9AM, SETTINGS, BookingPolicy(admin_bypass_rules=False), NOW)


def test_admin_bypass_skips_day_grid_and_availability_rules(db, admin) -> None:
    policy = BookingPolicy(admin_bypass_rules=True)

    appointment = book_appointment(db, admin, datetime(2026, 1, 6, 18, 5), SETTINGS, policy, NOW)

    assert appointment.status == STATUS_CONFIRMED
    assert db.query(AvailableSlot).count() == 0


def test_admin_bypass_keeps_weekly_limit_and_conflict_checks(db, admin, make_user, make_slot) -> None:
    policy = BookingPolicy(admin_bypass_rules=True)
    other = make_user('other')
    make_slot(MONDAY_9AM)
    book_appointment(db, other, MONDAY_9AM, SETTINGS, POLICY, NOW)

    with pytest.raises(SlotAlreadyBooked):
        validate_booking(db, admin, MONDAY_9AM, SETTINGS, policy, NOW)

    book_appointment(db, admin, TUESDAY_9AM, SETTINGS, policy, NOW)
    with pytest.raises(WeeklyLimitExceeded):
        validate_booking(db, admin, WEDNESDAY_10AM, SETTINGS, policy, NOW)


def test_admin_bypass_does_not_apply_to_regular_users(db, user) -> None:
    with pytest.raises(DayUnavailable):
        validate_booking(db, user, TUESDAY_9AM, SETTINGS, BookingPolicy(admin_bypass_rules=True), NOW)


def test_booking_window_enforced_for_users_outside_window(db, user, make_slot) -> None:
    make_slot(MONDAY_9AM)
    policy = BookingPolicy(enforce_booking_window=True)

    with pytest.raises(BookingWindowClosed) as exception_info:
        book_appointment(db, user, MONDAY_9AM, SETTINGS, policy, datetime(2026, 1, 4, 10, 0))

    assert exception_info.value.message == 'Booking is only available on Sunday between 8 AM and 9 AM.'


def test_booking_window_allows_users_inside_window(db, user, make_slot) -> None:
    make_slot(MONDAY_9AM)
    policy = BookingPolicy(enforce_booking_window=True)

    appointment = book_appointment(db, user, MONDAY_9AM, SETTINGS, policy, NOW)

    assert appointment.status == STATUS_CONFIRMED


def test_booking_window_never_applies_to_admins(db, admin, make_slot) -> None:
    make_slot(MONDAY_9AM)
    policy = BookingPolicy(enforce_booking_window=True)

    appointment = book_appointment(db, admin, MONDAY_9AM, SETTINGS, policy, datetime(2026, 1, 5, 8, 0))

    assert appointment.status == STATUS_CONFIRMED


def test_policy_from_config_reads_environment_flags(monkeypatch) -> None:
    monkeypatch.setattr(booking.config, 'ADMIN_BYPASS_BOOKING_RULES', True)
    monkeypatch.setattr(booking.config, 'ENFORCE_BOOKING_WINDOW', False)

    assert BookingPolicy.from_config() == BookingPolicy(admin_bypass_rules=True, enforce_booking_window=False)


def test_acceptance_matches_configured_rules_for_every_quarter_hour(db, user) -> None:
    week_start = datetime(2026, 1, 4)
    instants = [week_start + timedelta(minutes=15 * step) for step in range(7 * 24 * 4)]
    db.add_all(AvailableSlot(date=instant, is_enabled=True) for instant in instants)
    db.commit()

    for instant in instants + [datetime(2026, 1, 5, 9, 7), datetime(2026, 1, 8, 16, 50)]:
        expected = SETTINGS.is_on_slot_grid(instant) and not SETTINGS.is_disabled_day(instant)
        try:
            validate_booking(db, user, instant, SETTINGS, POLICY, NOW)
            accepted = True
        except (DayUnavailable, InvalidTimeSlot, SlotUnavailable):
            accepted = False
        assert accepted == expected, instant
