"""Daily run over due installment payments.

Charges every pending installment that is due, retrying failures on a fixed
back-off until ``settings.payment_max_retries`` is reached.
"""
from app.config import settings
from app.core.timeutils import as_utc, utcnow
from app.database.repository import Repository, eq, lt, lte
from app.modules.notifications.service import NotificationService, notify_safely
from app.modules.payments.gateway import PaymentGateway, PaymentIntentInfo
from app.modules.registrations.schemas import PaymentStatus, RegistrationPaymentResponse, RegistrationStatus
from app.modules.registrations.service import PAYMENT_TABLE, REGISTRATION_TABLE, RegistrationService
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime, timedelta
import logging

logger = logging.getLogger(__name__)

NEEDS_CUSTOMER_ACTION = ("requires_action", "requires_payment_method")


class PaymentRunResult(BaseModel):
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = []


class PaymentProcessor:
    def __init__(
        self,
        repo: Repository,
        gateway: PaymentGateway,
        registration_service: Optional[RegistrationService] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.repo = repo
        self.gateway = gateway
        self.registration_service = registration_service or RegistrationService(repo)
        self.notifier = notifier

    def get_due_payments(self, now: datetime) -> List[dict]:
        """Pending payments due today or overdue whose retry back-off has elapsed"""
        rows = self.repo.query(PAYMENT_TABLE, [
            eq("status", PaymentStatus.PENDING.value),
            lte("due_date", now.date().isoformat()),
            lt("retry_count", settings.payment_max_retries),
        ], order_by="due_date")
        due = []
        for row in rows:
            payment = RegistrationPaymentResponse(**row)
            if payment.next_retry_at is None or as_utc(payment.next_retry_at) <= now:
                due.append(row)
        return due

    def _schedule_retry(self, payment: dict, now: datetime, reason: str, failed: bool = False) -> None:
        update_data = {
            "retry_count": (payment.get("retry_count") or 0) + 1,
            "next_retry_at": (now + timedelta(hours=settings.payment_retry_hours)).isoformat(),
            "failure_reason": reason,
        }
        if failed:
            update_data["failed_at"] = now.isoformat()
        self.repo.update(PAYMENT_TABLE, payment["id"], update_data)

    def _mark_succeeded(self, payment: dict, registration: dict, intent: PaymentIntentInfo, now: datetime) -> None:
        self.repo.update(PAYMENT_TABLE, payment["id"], {
            "status": PaymentStatus.SUCCEEDED.value,
            "paid_at": now.isoformat(),
            "stripe_charge_id": intent.latest_charge,
        })
        self.registration_service.update_paid_amount(registration["id"])
        if self.notifier:
            program = self.registration_service.program_service.get_program(registration["program_id"])
            notify_safely(
                self.notifier.notify_payment_received,
                registration["player_id"],
                program,
                payment["amount_cents"],
                payment.get("currency") or registration.get("currency") or settings.default_currency,
                payment.get("installment_number"),
                payment.get("total_installments"),
            )

    def process_due_payments(self, now: Optional[datetime] = None) -> PaymentRunResult:
        now = as_utc(now or utcnow())
        due_payments = self.get_due_payments(now)
        logger.info(f"Found {len(due_payments)} payments to process")
        result = PaymentRunResult()

        for payment in due_payments:
            registration = self.repo.get(REGISTRATION_TABLE, payment["registration_id"])
            if not registration or registration.get("status") != RegistrationStatus.CONFIRMED.value:
                result.skipped += 1
                continue

            customer_id = payment.get("stripe_customer_id") or registration.get("stripe_customer_id")
            if not customer_id:
                logger.info(f"Skipping payment {payment['id']}: no payment customer")
                result.skipped += 1
                continue

            result.processed += 1
            try:
                intent_id = payment.get("stripe_payment_intent_id")
                if intent_id:
                    intent = self.gateway.get_payment_intent(intent_id)
                    if intent.status == "requires_confirmation":
                        intent = self.gateway.confirm_payment_intent(intent_id)
                else:
                    program = self.repo.get("program", registration["program_id"]) or {}
                    intent = self.gateway.create_payment_intent(
                        payment["amount_cents"],
                        payment.get("currency") or settings.default_currency,
                        customer_id,
                        {
                            "registration_id": registration["id"],
                            "payment_id": payment["id"],
                            "installment_number": str(payment.get("installment_number", 1)),
                            "program_name": program.get("name") or "",
                        },
                    )
                    self.repo.update(PAYMENT_TABLE, payment["id"], {"stripe_payment_intent_id": intent.id})

                if intent.status == "succeeded":
                    self._mark_succeeded(payment, registration, intent, now)
                    result.succeeded += 1
                    logger.info(f"Payment {payment['id']} succeeded")
                elif intent.status in NEEDS_CUSTOMER_ACTION:
                    self._schedule_retry(payment, now, "Requires customer action")
                    result.failed += 1
                    logger.info(f"Payment {payment['id']} requires action")
            except Exception as e:
                result.failed += 1
                result.errors.append(f"Payment {payment['id']}: {str(e)}")
                self._schedule_retry(payment, now, str(e), failed=True)
                logger.error(f"Payment {payment['id']} failed: {str(e)}")

        logger.info(f"Payment processing complete: {result.model_dump()}")
        return result
