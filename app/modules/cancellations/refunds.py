"""Refund policy evaluation for registration cancellations.

``calculate_refund`` is a pure function of its inputs: it reads no store and
never raises for well-formed inputs, so the same code backs both refund
previews and real cancellations.
"""
from datetime import datetime
from typing import Optional

from app.core.timeutils import days_until
from app.modules.cancellations.schemas import RefundCalculation
from app.modules.programs.schemas import ProgramResponse
from app.modules.registrations.schemas import RegistrationResponse


def round_half_up(numerator: int, denominator: int) -> int:
    """Integer round-half-up of numerator / denominator (denominator > 0)."""
    return (2 * numerator + denominator) // (2 * denominator)


def calculate_refund(
    registration: RegistrationResponse,
    program: ProgramResponse,
    sessions_attended: int,
    total_sessions: int,
    now: Optional[datetime] = None,
) -> RefundCalculation:
    policy = program.policy
    paid = registration.paid_amount_cents
    sessions_remaining = max(total_sessions - sessions_attended, 0)
    days_until_start = days_until(program.start_date, now)

    def decision(eligible: bool, amount: int, percent: int, reason: str) -> RefundCalculation:
        return RefundCalculation(
            eligible_for_refund=eligible,
            refund_amount_cents=amount,
            refund_percent=percent,
            sessions_attended=sessions_attended,
            sessions_remaining=sessions_remaining,
            reason=reason,
        )

    if days_until_start > 0:
        if days_until_start >= policy.full_refund_days_before_start:
            return decision(True, paid, 100, f"Full refund: cancelled {days_until_start} days before start")
        if days_until_start >= policy.partial_refund_days_before_start:
            percent = policy.partial_refund_percent
            return decision(
                True,
                round_half_up(paid * percent, 100),
                percent,
                f"Partial refund ({percent}%): cancelled {days_until_start} days before start",
            )
        return decision(False, 0, 0, f"No refund: too close to start ({days_until_start} days)")

    if policy.no_refund_after_start and not policy.prorate_by_sessions_attended:
        return decision(False, 0, 0, "No refund after program start")

    if policy.prorate_by_sessions_attended and sessions_remaining > 0 and total_sessions > 0:
        # Per-session value is rounded before multiplying, not the final product
        per_session_value = round_half_up(paid, total_sessions)
        return decision(
            True,
            per_session_value * sessions_remaining,
            round_half_up(sessions_remaining * 100, total_sessions),
            f"Prorated refund for {sessions_remaining} of {total_sessions} sessions remaining",
        )

    if not policy.prorate_by_sessions_attended:
        return decision(False, 0, 0, "No refund after program start: refunds are not prorated")
    return decision(False, 0, 0, "No refund: all sessions completed")
