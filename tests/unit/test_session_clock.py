from datetime import datetime, timedelta, timezone

from cafe_engine.domain.session_clock import as_utc, remaining, session_end_time

START = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


def test_fresh_session_is_full():
    clock = remaining(START, 2.0, START)

    assert not clock.expired
    assert clock.remaining_ms == 2 * 60 * 60 * 1000
    assert clock.percentage == 100.0
    assert clock.remaining_minutes == 120
    assert clock.end_time == START + timedelta(hours=2)


def test_halfway_through():
    clock = remaining(START, 2.0, START + timedelta(hours=1))

    assert clock.percentage == 50.0
    assert clock.remaining_minutes == 60


def test_remaining_minutes_round_up():
    clock = remaining(START, 1.0, START + timedelta(minutes=59, seconds=30))

    assert clock.remaining_ms == 30_000
    assert clock.remaining_minutes == 1


def test_expired_exactly_at_end():
    clock = remaining(START, 1.5, START + timedelta(hours=1, minutes=30))

    assert clock.expired
    assert clock.percentage == 0.0
    assert clock.remaining_minutes == 0


def test_expired_after_end_reports_zero():
    clock = remaining(START, 1.0, START + timedelta(hours=3))

    assert clock.expired
    assert clock.remaining_ms <= 0
    assert clock.percentage == 0.0


def test_expired_iff_now_reaches_end_time():
    total_hours = 2.5
    end = session_end_time(START, total_hours)
    for offset in (-1, 0, 1):
        now = end + timedelta(seconds=offset)
        assert remaining(START, total_hours, now).expired == (now >= end)


def test_extension_pushes_end_time():
    now = START + timedelta(minutes=50)
    before = remaining(START, 1.0, now)
    after = remaining(START, 1.5, now)

    assert after.end_time - before.end_time == timedelta(minutes=30)
    assert after.remaining_minutes == before.remaining_minutes + 30


def test_naive_datetimes_are_treated_as_utc():
    naive_start = START.replace(tzinfo=None)

    assert as_utc(naive_start) == START
    assert remaining(naive_start, 1.0, START) == remaining(START, 1.0, START)
