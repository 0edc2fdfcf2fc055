from datetime import datetime, timezone

import pytest

from app.modules.registrations.schedule import calculate_installment_schedule

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_remainder_goes_to_first_installment():
    schedule = calculate_installment_schedule(10000, 3, datetime(2026, 3, 11, tzinfo=timezone.utc), now=NOW)

    assert [item.amount_cents for item in schedule] == [3334, 3333, 3333]
    assert [item.installment_number for item in schedule] == [1, 2, 3]


def test_due_dates_are_reverse_indexed_toward_start():
    start = datetime(2026, 3, 11, tzinfo=timezone.utc)
    schedule = calculate_installment_schedule(10000, 3, start, now=NOW)

    # 10 days until start: installment 2 lands floor(1/2 * 10) = 5 days before, installment 3 on the start date
    assert schedule[0].due_date == NOW
    assert schedule[1].due_date == datetime(2026, 3, 6, tzinfo=timezone.utc)
    assert schedule[2].due_date == start


def test_spread_is_capped_at_thirty_days():
    start = datetime(2026, 6, 1, tzinfo=timezone.utc)
    schedule = calculate_installment_schedule(12000, 4, start, now=NOW)

    # 30-day window: 20, 10 and 0 days before start
    assert [item.due_date for item in schedule[1:]] == [
        datetime(2026, 5, 12, tzinfo=timezone.utc),
        datetime(2026, 5, 22, tzinfo=timezone.utc),
        start,
    ]
    assert [item.amount_cents for item in schedule] == [3000, 3000, 3000, 3000]


def test_single_installment_is_due_now_for_full_amount():
    schedule = calculate_installment_schedule(10000, 1, datetime(2026, 3, 11, tzinfo=timezone.utc), now=NOW)

    assert len(schedule) == 1
    assert schedule[0].amount_cents == 10000
    assert schedule[0].due_date == NOW


def test_accepts_plain_dates():
    from datetime import date

    schedule = calculate_installment_schedule(10000, 2, date(2026, 3, 11), now=NOW)

    assert schedule[1].due_date == datetime(2026, 3, 11, tzinfo=timezone.utc)


def test_program_already_started_uses_one_day_window():
    start = datetime(2026, 2, 20, tzinfo=timezone.utc)
    schedule = calculate_installment_schedule(10000, 3, start, now=NOW)

    assert schedule[1].due_date == start
    assert schedule[2].due_date == start


@pytest.mark.parametrize("total,count", [(10000, 3), (9999, 4), (1, 3), (0, 2), (123457, 7)])
def test_amounts_sum_to_total(total, count):
    schedule = calculate_installment_schedule(total, count, datetime(2026, 4, 1, tzinfo=timezone.utc), now=NOW)

    assert sum(item.amount_cents for item in schedule) == total
    assert len(schedule) == count
    assert schedule[0].amount_cents == max(item.amount_cents for item in schedule)


def test_due_dates_never_decrease():
    schedule = calculate_installment_schedule(50000, 6, datetime(2026, 3, 20, tzinfo=timezone.utc), now=NOW)

    due_dates = [item.due_date for item in schedule]
    assert due_dates == sorted(due_dates)


def test_rejects_zero_installments():
    with pytest.raises(ValueError):
        calculate_installment_schedule(10000, 0, datetime(2026, 3, 11, tzinfo=timezone.utc), now=NOW)
