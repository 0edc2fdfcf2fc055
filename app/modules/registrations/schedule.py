"""Installment schedule calculation.

Pure: no store access, so a schedule can be previewed before any payment rows
exist.
"""
from datetime import date, datetime, timedelta
from typing import List, Optional, Union

from app.core.timeutils import as_utc, days_until, utcnow
from app.modules.registrations.schemas import InstallmentScheduleItem

# Installments after the first are spread over at most this many days before start
MAX_SPREAD_DAYS = 30


def calculate_installment_schedule(
    total_amount_cents: int,
    installment_count: int,
    program_start_date: Union[date, datetime],
    now: Optional[datetime] = None,
) -> List[InstallmentScheduleItem]:
    """
    Split total_amount_cents into installment_count payments.

    The first installment absorbs the division remainder and is due now.
    Installment i (0-based, i > 0) is due
    floor((count - 1 - i) / (count - 1) * min(30, days_until_start)) days
    before the program start, so the last installment falls on the start date.
    """
    if installment_count < 1:
        raise ValueError("installment_count must be at least 1")

    now = as_utc(now or utcnow())
    start = as_utc(program_start_date)
    base_amount = total_amount_cents // installment_count
    remainder = total_amount_cents - base_amount * installment_count
    spread_days = min(MAX_SPREAD_DAYS, max(1, days_until(start, now)))

    schedule = []
    for i in range(installment_count):
        if i == 0:
            due_date = now
        else:
            # Integer form of floor(((count - 1 - i) / (count - 1)) * spread)
            days_before_start = (installment_count - 1 - i) * spread_days // (installment_count - 1)
            due_date = start - timedelta(days=days_before_start)
        schedule.append(InstallmentScheduleItem(
            installment_number=i + 1,
            amount_cents=base_amount + (remainder if i == 0 else 0),
            due_date=due_date,
        ))
    return schedule
