from pydantic import BaseModel
from typing import Optional, List


class RefundCalculation(BaseModel):
    eligible_for_refund: bool
    refund_amount_cents: int
    refund_percent: int
    sessions_attended: int
    sessions_remaining: int
    reason: str


class CancelRegistrationRequest(BaseModel):
    cancelled_by: str
    reason: Optional[str] = None
    force_refund: bool = False  # Admin override: refund everything paid


class CancelProgramRequest(BaseModel):
    full_refund: bool = True


class RefundOutcome(BaseModel):
    refunds_processed: int = 0
    total_refunded: int = 0
    refunds_failed: int = 0
    payments_cancelled: int = 0
    shortfall_cents: int = 0  # Decided refund that could not be returned


class CancelRegistrationResult(BaseModel):
    success: bool
    refund_amount_cents: int
    refunds_processed: int
    refunds_failed: int = 0
    partial_failure: bool = False  # Some of the decided refund was not returned; not retried
    refund_shortfall_cents: int = 0
    status: Optional[str] = None
    waitlist_promoted_player_id: Optional[str] = None
    message: str


class BulkCancellationResult(BaseModel):
    processed: int = 0
    refunded: int = 0
    errors: List[str] = []
