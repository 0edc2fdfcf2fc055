from app.config import settings
from app.core.exceptions import DuplicateRegistration, NotFound, PolicyViolation, UniqueViolation
from app.core.timeutils import as_utc, utcnow
from app.database.repository import Repository, eq, in_
from app.modules.programs.schemas import ProgramStatus
from app.modules.programs.service import ProgramService
from app.modules.registrations.schedule import calculate_installment_schedule
from app.modules.registrations.schemas import (
    ACTIVE_REGISTRATION_STATUSES,
    InstallmentScheduleItem,
    PaymentPlan,
    PaymentStatus,
    RegistrationCreate,
    RegistrationPage,
    RegistrationPaymentResponse,
    RegistrationResponse,
    RegistrationStatus,
    SessionsAttended,
)
from typing import List, Optional
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

REGISTRATION_TABLE = "program_registration"
PAYMENT_TABLE = "registration_payment"

STATUS_TIMESTAMPS = {
    RegistrationStatus.CONFIRMED: "confirmed_at",
    RegistrationStatus.CANCELLED: "cancelled_at",
    RegistrationStatus.REFUNDED: "refunded_at",
}


class RegistrationService:
    def __init__(self, repo: Repository, program_service: Optional[ProgramService] = None):
        self.repo = repo
        self.program_service = program_service or ProgramService(repo)

    def create_registration(self, registration_data: RegistrationCreate, now: Optional[datetime] = None) -> RegistrationResponse:
        """Create a pending registration after checking status, deadline, capacity and duplicates"""
        now = as_utc(now or utcnow())
        program = self.program_service.get_program(registration_data.program_id)

        if program.status != ProgramStatus.PUBLISHED:
            raise PolicyViolation("Program is not open for registration")

        if program.registration_deadline and now > as_utc(program.registration_deadline):
            raise PolicyViolation("Registration deadline has passed")

        if program.is_full:
            raise PolicyViolation("Program is at full capacity", status_code=409)

        existing = self.repo.find_one(REGISTRATION_TABLE, [
            eq("program_id", registration_data.program_id),
            eq("player_id", registration_data.player_id),
            in_("status", ACTIVE_REGISTRATION_STATUSES),
        ])
        if existing:
            raise DuplicateRegistration()

        payment_plan = registration_data.payment_plan or (
            PaymentPlan.INSTALLMENT if program.allow_installments else PaymentPlan.FULL
        )

        try:
            row = self.repo.insert(REGISTRATION_TABLE, {
                "program_id": registration_data.program_id,
                "player_id": registration_data.player_id,
                "registered_by": registration_data.registered_by,
                "status": RegistrationStatus.PENDING.value,
                "payment_plan": payment_plan.value,
                "total_amount_cents": program.price_cents,
                "paid_amount_cents": 0,
                "refund_amount_cents": 0,
                "currency": program.currency,
                "stripe_customer_id": registration_data.stripe_customer_id,
                "notes": registration_data.notes,
                "emergency_contact_name": registration_data.emergency_contact_name,
                "emergency_contact_phone": registration_data.emergency_contact_phone,
                "registered_at": now.isoformat(),
            })
        except UniqueViolation:
            raise DuplicateRegistration()

        logger.info(f"Registered player {registration_data.player_id} for program {program.id} ({payment_plan.value})")
        return RegistrationResponse(**row)

    def get_registration(self, registration_id: str) -> RegistrationResponse:
        """Get registration by ID"""
        row = self.repo.get(REGISTRATION_TABLE, registration_id)
        if not row:
            raise NotFound("Registration not found")
        return RegistrationResponse(**row)

    def get_registration_by_player(self, program_id: str, player_id: str) -> Optional[RegistrationResponse]:
        """Most recent registration for the (program, player) pair, or None"""
        row = self.repo.find_one(
            REGISTRATION_TABLE,
            [eq("program_id", program_id), eq("player_id", player_id)],
            order_by="registered_at",
            desc=True,
        )
        return RegistrationResponse(**row) if row else None

    def list_registrations(
        self,
        program_id: str,
        status: Optional[RegistrationStatus] = None,
        limit: int = 50,
        offset: int = 0
    ) -> RegistrationPage:
        """List registrations for a program, newest first"""
        filters = [eq("program_id", program_id)]
        if status:
            filters.append(eq("status", status.value))
        rows = self.repo.query(REGISTRATION_TABLE, filters, order_by="registered_at", desc=True, limit=limit, offset=offset)
        return RegistrationPage(
            data=[RegistrationResponse(**row) for row in rows],
            total=self.repo.count(REGISTRATION_TABLE, filters),
            limit=limit,
            offset=offset,
        )

    def update_registration_status(
        self,
        registration_id: str,
        status: RegistrationStatus,
        extra_fields: Optional[dict] = None,
    ) -> RegistrationResponse:
        """Set status, stamp its timestamp and keep the program's participant count in step"""
        current = self.get_registration(registration_id)
        update_data = {"status": status.value}
        if status in STATUS_TIMESTAMPS:
            update_data[STATUS_TIMESTAMPS[status]] = utcnow().isoformat()
        if extra_fields:
            update_data.update(extra_fields)

        row = self.repo.update(REGISTRATION_TABLE, registration_id, update_data)
        if not row:
            raise NotFound("Registration not found")

        was_confirmed = current.status == RegistrationStatus.CONFIRMED
        is_confirmed = status == RegistrationStatus.CONFIRMED
        if was_confirmed != is_confirmed:
            self.program_service.adjust_participant_count(current.program_id, 1 if is_confirmed else -1)
        return RegistrationResponse(**row)

    def confirm_registration(self, registration_id: str, paid_amount_cents: int) -> RegistrationResponse:
        """Confirm a registration after payment"""
        return self.update_registration_status(
            registration_id,
            RegistrationStatus.CONFIRMED,
            extra_fields={"paid_amount_cents": paid_amount_cents},
        )

    def calculate_installment_schedule(
        self,
        total_amount_cents: int,
        installment_count: int,
        program_start_date,
        now: Optional[datetime] = None,
    ) -> List[InstallmentScheduleItem]:
        return calculate_installment_schedule(total_amount_cents, installment_count, program_start_date, now=now)

    def create_installment_payments(
        self,
        registration_id: str,
        schedule: List[InstallmentScheduleItem],
        stripe_customer_id: Optional[str] = None
    ) -> List[RegistrationPaymentResponse]:
        """Create one pending payment row per installment"""
        registration = self.repo.get(REGISTRATION_TABLE, registration_id)
        currency = (registration or {}).get("currency") or settings.default_currency
        payments = [
            {
                "registration_id": registration_id,
                "amount_cents": item.amount_cents,
                "currency": currency,
                "installment_number": item.installment_number,
                "total_installments": len(schedule),
                "due_date": as_utc(item.due_date).date().isoformat(),
                "stripe_customer_id": stripe_customer_id,
                "status": PaymentStatus.PENDING.value,
                "retry_count": 0,
                "refund_amount_cents": 0,
            }
            for item in schedule
        ]
        rows = self.repo.insert_many(PAYMENT_TABLE, payments)
        return [RegistrationPaymentResponse(**row) for row in rows]

    def create_payment_plan(
        self,
        registration_id: str,
        stripe_customer_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[RegistrationPaymentResponse]:
        """Schedule payment rows for a registration from its program's installment settings"""
        registration = self.get_registration(registration_id)
        if not registration.is_active:
            raise PolicyViolation("Registration is not active")
        if self.repo.count(PAYMENT_TABLE, [eq("registration_id", registration_id)]) > 0:
            raise PolicyViolation("Payments have already been scheduled for this registration", status_code=409)

        program = self.program_service.get_program(registration.program_id)
        installment_count = 1
        if registration.payment_plan == PaymentPlan.INSTALLMENT and program.allow_installments:
            installment_count = max(program.installment_count or 1, 1)

        schedule = calculate_installment_schedule(
            registration.total_amount_cents, installment_count, program.start_date, now=now
        )
        return self.create_installment_payments(
            registration_id, schedule, stripe_customer_id or registration.stripe_customer_id
        )

    def list_payments(self, registration_id: str) -> List[RegistrationPaymentResponse]:
        rows = self.repo.query(PAYMENT_TABLE, [eq("registration_id", registration_id)], order_by="installment_number")
        return [RegistrationPaymentResponse(**row) for row in rows]

    def update_paid_amount(self, registration_id: str) -> int:
        """Reconcile paid_amount_cents with the sum of succeeded payments. Idempotent."""
        payments = self.repo.query(PAYMENT_TABLE, [
            eq("registration_id", registration_id),
            eq("status", PaymentStatus.SUCCEEDED.value),
        ])
        total_paid = sum(p["amount_cents"] for p in payments)
        row = self.repo.update(REGISTRATION_TABLE, registration_id, {"paid_amount_cents": total_paid})
        if not row:
            raise NotFound("Registration not found")
        return total_paid

    def get_sessions_attended(self, registration_id: str) -> SessionsAttended:
        """Count attended vs. scheduled (non-cancelled) sessions. Recomputed on every call."""
        registration = self.repo.get(REGISTRATION_TABLE, registration_id)
        if not registration:
            return SessionsAttended(attended=0, total=0)

        total = self.repo.count("program_session", [
            eq("program_id", registration["program_id"]),
            eq("is_cancelled", False),
        ])
        attended = self.repo.count("session_attendance", [
            eq("registration_id", registration_id),
            eq("attended", True),
        ])
        return SessionsAttended(attended=attended, total=total)
