from app.config import settings
from app.core.exceptions import PersistenceError, PolicyViolation, ProgramsError
from app.core.timeutils import utcnow
from app.database.repository import Repository, eq, in_
from app.modules.cancellations.refunds import calculate_refund
from app.modules.cancellations.schemas import (
    BulkCancellationResult,
    CancelRegistrationRequest,
    CancelRegistrationResult,
    RefundCalculation,
    RefundOutcome,
)
from app.modules.notifications.service import NotificationService, notify_safely
from app.modules.payments.gateway import PaymentGateway
from app.modules.programs.schemas import ProgramStatus
from app.modules.programs.service import ProgramService
from app.modules.registrations.schemas import (
    ACTIVE_REGISTRATION_STATUSES, PaymentStatus, RegistrationResponse, RegistrationStatus
)
from app.modules.registrations.service import PAYMENT_TABLE, REGISTRATION_TABLE, RegistrationService
from app.modules.waitlist.schemas import WaitlistPromotionResult
from app.modules.waitlist.service import WaitlistService
from typing import List, Optional
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

REFUND_REASON = "requested_by_customer"


class CancellationService:
    """Cancellation orchestrator: refund decision, payment reversal, waitlist promotion, notification."""

    def __init__(
        self,
        repo: Repository,
        gateway: Optional[PaymentGateway],
        program_service: Optional[ProgramService] = None,
        registration_service: Optional[RegistrationService] = None,
        waitlist_service: Optional[WaitlistService] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.repo = repo
        self.gateway = gateway
        self.program_service = program_service or ProgramService(repo)
        self.registration_service = registration_service or RegistrationService(repo, self.program_service)
        self.waitlist_service = waitlist_service or WaitlistService(repo, self.program_service)
        self.notifier = notifier

    def _decide_refund(
        self,
        registration: RegistrationResponse,
        force_refund: bool,
        now: Optional[datetime],
    ) -> RefundCalculation:
        program = self.program_service.get_program(registration.program_id)
        sessions = self.registration_service.get_sessions_attended(registration.id)
        if force_refund:
            return RefundCalculation(
                eligible_for_refund=True,
                refund_amount_cents=registration.paid_amount_cents,
                refund_percent=100,
                sessions_attended=sessions.attended,
                sessions_remaining=max(sessions.total - sessions.attended, 0),
                reason="Admin forced full refund",
            )
        return calculate_refund(registration, program, sessions.attended, sessions.total, now=now)

    def preview_refund(self, registration_id: str, now: Optional[datetime] = None) -> RefundCalculation:
        """Refund the registration would get if cancelled now. No writes."""
        registration = self.registration_service.get_registration(registration_id)
        return self._decide_refund(registration, force_refund=False, now=now)

    @staticmethod
    def _needs_gateway(payments: List[dict], refund_amount_cents: int) -> bool:
        for payment in payments:
            if not payment.get("stripe_payment_intent_id"):
                continue
            if payment.get("status") == PaymentStatus.PENDING.value:
                return True
            if payment.get("status") == PaymentStatus.SUCCEEDED.value and refund_amount_cents > 0:
                return True
        return False

    def process_installment_refund(self, registration_id: str, refund_amount_cents: int) -> RefundOutcome:
        """
        Walk the installments in order: refund succeeded ones until refund_amount_cents is
        covered, and cancel every pending one. A failed refund is logged and counted, and
        processing moves on; earlier refunds are not reversed.
        """
        payments = self.repo.query(
            PAYMENT_TABLE, [eq("registration_id", registration_id)], order_by="installment_number"
        )
        if self.gateway is None and self._needs_gateway(payments, refund_amount_cents):
            raise ProgramsError("Payment processing is not configured", status_code=503)

        outcome = RefundOutcome()
        remaining = refund_amount_cents

        for payment in payments:
            status = payment.get("status")
            intent_id = payment.get("stripe_payment_intent_id")

            if status == PaymentStatus.SUCCEEDED.value and remaining > 0:
                refund_for_payment = min(remaining, payment["amount_cents"])
                if not intent_id:
                    outcome.refunds_failed += 1
                    logger.error(f"Payment {payment['id']} has no payment intent to refund")
                    continue
                try:
                    intent = self.gateway.get_payment_intent(intent_id)
                    if not intent.latest_charge:
                        outcome.refunds_failed += 1
                        logger.error(f"Payment {payment['id']} has no charge to refund")
                        continue
                    self.gateway.create_refund(
                        intent.latest_charge,
                        refund_for_payment,
                        REFUND_REASON,
                        {
                            "registration_id": registration_id,
                            "installment_number": str(payment.get("installment_number", 1)),
                        },
                    )
                except Exception as e:
                    outcome.refunds_failed += 1
                    logger.error(f"Failed to refund payment {payment['id']}: {str(e)}")
                    continue

                self.repo.update(PAYMENT_TABLE, payment["id"], {
                    "status": PaymentStatus.REFUNDED.value,
                    "refund_amount_cents": refund_for_payment,
                    "refunded_at": utcnow().isoformat(),
                })
                remaining -= refund_for_payment
                outcome.total_refunded += refund_for_payment
                outcome.refunds_processed += 1

            elif status == PaymentStatus.PENDING.value:
                if intent_id:
                    try:
                        self.gateway.cancel_payment_intent(intent_id)
                    except Exception as e:
                        logger.error(f"Failed to cancel payment intent {intent_id}: {str(e)}")
                self.repo.update(PAYMENT_TABLE, payment["id"], {"status": PaymentStatus.CANCELLED.value})
                outcome.payments_cancelled += 1

        outcome.shortfall_cents = max(refund_amount_cents - outcome.total_refunded, 0)
        return outcome

    def _promote_next(self, program_id: str) -> Optional[WaitlistPromotionResult]:
        program = self.program_service.get_program(program_id)
        if program.status != ProgramStatus.PUBLISHED:
            return None
        try:
            result = self.waitlist_service.process_waitlist_after_cancellation(program_id)
        except PersistenceError as e:
            # Cancellation is already committed; leave the spot open
            logger.error(f"Waitlist promotion failed for program {program_id}: {e.message}")
            return None
        if result.promoted and self.notifier:
            entry = self.waitlist_service.get_waitlist_entry(result.waitlist_id)
            notify_safely(self.notifier.notify_waitlist_promoted, entry, program, settings.waitlist_claim_hours)
        return result

    def cancel_registration(
        self,
        registration_id: str,
        request: CancelRegistrationRequest,
        now: Optional[datetime] = None,
    ) -> CancelRegistrationResult:
        registration = self.registration_service.get_registration(registration_id)
        if not registration.is_active:
            raise PolicyViolation("Registration is already cancelled", status_code=409)

        refund_calc = self._decide_refund(registration, request.force_refund, now)
        refund_amount = refund_calc.refund_amount_cents if refund_calc.eligible_for_refund else 0
        # Per-session rounding can land a few cents above what was paid
        refund_amount = min(refund_amount, registration.paid_amount_cents)
        outcome = self.process_installment_refund(registration_id, refund_amount)

        if outcome.refunds_failed or outcome.shortfall_cents:
            logger.warning(
                f"Registration {registration_id}: {outcome.refunds_failed} installment refund(s) failed, "
                f"{outcome.total_refunded} of {refund_amount} cents refunded"
            )

        note = f"Cancellation: {refund_calc.reason}"
        if request.reason:
            note = f"{note} ({request.reason})"
        cancelled_at = utcnow().isoformat()
        new_status = RegistrationStatus.REFUNDED if outcome.total_refunded > 0 else RegistrationStatus.CANCELLED
        updated = self.registration_service.update_registration_status(
            registration_id,
            new_status,
            extra_fields={
                "cancelled_at": cancelled_at,
                "refund_amount_cents": outcome.total_refunded,
                "notes": f"{registration.notes}\n\n{note}" if registration.notes else note,
            },
        )
        logger.info(
            f"Registration {registration_id} {new_status.value} by {request.cancelled_by}: "
            f"{outcome.total_refunded} cents refunded"
        )

        promotion = self._promote_next(registration.program_id)

        if self.notifier:
            program = self.program_service.get_program(registration.program_id)
            notify_safely(self.notifier.notify_registration_cancelled, updated, program, outcome.total_refunded)

        return CancelRegistrationResult(
            success=True,
            refund_amount_cents=outcome.total_refunded,
            refunds_processed=outcome.refunds_processed,
            refunds_failed=outcome.refunds_failed,
            partial_failure=outcome.refunds_failed > 0 or outcome.shortfall_cents > 0,
            refund_shortfall_cents=outcome.shortfall_cents,
            status=new_status.value,
            waitlist_promoted_player_id=promotion.player_id if promotion and promotion.promoted else None,
            message=refund_calc.reason,
        )

    def cancel_all_program_registrations(self, program_id: str, full_refund: bool = True) -> BulkCancellationResult:
        """Cancel every active registration of a program, collecting per-registration failures"""
        registrations = self.repo.query(REGISTRATION_TABLE, [
            eq("program_id", program_id),
            in_("status", ACTIVE_REGISTRATION_STATUSES),
        ])
        result = BulkCancellationResult()
        for registration in registrations:
            try:
                outcome = self.cancel_registration(
                    registration["id"],
                    CancelRegistrationRequest(cancelled_by="system", reason="Program cancelled", force_refund=full_refund),
                )
            except ProgramsError as e:
                result.errors.append(f"Registration {registration['id']}: {e.message}")
                continue
            result.processed += 1
            if outcome.refund_amount_cents > 0:
                result.refunded += 1
        return result

    def cancel_program(self, program_id: str, full_refund: bool = True) -> BulkCancellationResult:
        """Cancel the program, then unwind its registrations"""
        self.program_service.cancel_program(program_id)
        result = self.cancel_all_program_registrations(program_id, full_refund=full_refund)
        logger.info(f"Cancelled program {program_id}: {result.processed} registrations processed, {result.refunded} refunded")
        return result
