"""Shared fixtures: an in-memory store, a scripted payment gateway and seed helpers."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from app.database.repository import InMemoryRepository
from app.modules.cancellations.service import CancellationService
from app.modules.notifications.service import NotificationService
from app.modules.payments.gateway import PaymentIntentInfo, RefundReceipt
from app.modules.programs.service import ProgramService
from app.modules.registrations.service import PAYMENT_TABLE, REGISTRATION_TABLE, RegistrationService
from app.modules.waitlist.service import WAITLIST_TABLE, WaitlistService

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakePaymentGateway:
    """Records every call; charges listed in ``failing_charges`` raise on refund."""

    def __init__(self) -> None:
        self.intents: Dict[str, PaymentIntentInfo] = {}
        self.refunds: List[dict] = []
        self.cancelled_intents: List[str] = []
        self.created_intents: List[dict] = []
        self.failing_charges: set[str] = set()
        self.next_intent_status = "succeeded"
        self.fail_create = False

    def add_intent(self, intent_id: str, charge_id: Optional[str] = None, status: str = "succeeded") -> None:
        self.intents[intent_id] = PaymentIntentInfo(id=intent_id, status=status, latest_charge=charge_id)

    def create_refund(self, charge_id, amount_cents, reason, metadata):
        if charge_id in self.failing_charges:
            raise RuntimeError(f"card network rejected refund for {charge_id}")
        self.refunds.append({"charge_id": charge_id, "amount_cents": amount_cents, "reason": reason, "metadata": metadata})
        return RefundReceipt(id=f"re_{len(self.refunds)}", amount_cents=amount_cents, status="succeeded")

    def get_payment_intent(self, payment_intent_id):
        return self.intents[payment_intent_id]

    def cancel_payment_intent(self, payment_intent_id):
        self.cancelled_intents.append(payment_intent_id)

    def create_payment_intent(self, amount_cents, currency, customer_id, metadata):
        if self.fail_create:
            raise RuntimeError("card declined")
        intent_id = f"pi_new_{len(self.created_intents) + 1}"
        self.created_intents.append({
            "amount_cents": amount_cents, "currency": currency, "customer_id": customer_id, "metadata": metadata,
        })
        self.add_intent(intent_id, charge_id=f"ch_new_{len(self.created_intents)}", status=self.next_intent_status)
        return self.intents[intent_id]

    def confirm_payment_intent(self, payment_intent_id):
        intent = self.intents[payment_intent_id]
        confirmed = intent.model_copy(update={"status": "succeeded"})
        self.intents[payment_intent_id] = confirmed
        return confirmed


class ExplodingNotifier(NotificationService):
    """Notification sink whose every send fails."""

    def _send(self, *args, **kwargs):
        raise RuntimeError("push provider unavailable")


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def program_service(repo) -> ProgramService:
    return ProgramService(repo)


@pytest.fixture
def registration_service(repo, program_service) -> RegistrationService:
    return RegistrationService(repo, program_service)


@pytest.fixture
def waitlist_service(repo, program_service) -> WaitlistService:
    return WaitlistService(repo, program_service)


@pytest.fixture
def notifier(repo) -> NotificationService:
    return NotificationService(repo)


@pytest.fixture
def cancellation_service(repo, gateway, program_service, registration_service, waitlist_service, notifier):
    return CancellationService(
        repo,
        gateway,
        program_service=program_service,
        registration_service=registration_service,
        waitlist_service=waitlist_service,
        notifier=notifier,
    )


def seed_program(repo: InMemoryRepository, **overrides) -> dict:
    program = {
        "organization_id": "org-1",
        "name": "Spring U12 Skills",
        "status": "published",
        "start_date": "2026-03-11",
        "end_date": "2026-05-01",
        "registration_deadline": None,
        "max_participants": 10,
        "current_participants": 0,
        "price_cents": 10000,
        "currency": "CAD",
        "allow_installments": False,
        "installment_count": 1,
        "waitlist_enabled": True,
        "waitlist_limit": None,
        "cancellation_policy": None,
    }
    program.update(overrides)
    return repo.insert("program", program)


def seed_registration(repo: InMemoryRepository, program: dict, player_id: str = "player-1", **overrides) -> dict:
    registration = {
        "program_id": program["id"],
        "player_id": player_id,
        "registered_by": "parent-1",
        "status": "confirmed",
        "payment_plan": "full",
        "total_amount_cents": program["price_cents"],
        "paid_amount_cents": program["price_cents"],
        "refund_amount_cents": 0,
        "currency": "CAD",
        "notes": None,
        "registered_at": NOW.isoformat(),
    }
    registration.update(overrides)
    return repo.insert(REGISTRATION_TABLE, registration)


def seed_payment(repo: InMemoryRepository, registration: dict, installment_number: int = 1, **overrides) -> dict:
    payment = {
        "registration_id": registration["id"],
        "amount_cents": registration["total_amount_cents"],
        "currency": "CAD",
        "installment_number": installment_number,
        "total_installments": 1,
        "due_date": "2026-03-01",
        "status": "succeeded",
        "stripe_payment_intent_id": None,
        "stripe_customer_id": None,
        "retry_count": 0,
        "next_retry_at": None,
        "refund_amount_cents": 0,
    }
    payment.update(overrides)
    return repo.insert(PAYMENT_TABLE, payment)


def seed_waitlist_entry(repo: InMemoryRepository, program: dict, player_id: str, position: int, **overrides) -> dict:
    entry = {
        "program_id": program["id"],
        "player_id": player_id,
        "added_by": "parent-1",
        "position": position,
        "promoted_at": None,
        "promotion_expires_at": None,
        "notification_sent_at": None,
        "registration_id": None,
        "notes": None,
    }
    entry.update(overrides)
    return repo.insert(WAITLIST_TABLE, entry)


def seed_sessions(repo: InMemoryRepository, program: dict, total: int, attended_by: Optional[dict] = None, attended: int = 0) -> None:
    sessions = [
        repo.insert("program_session", {"program_id": program["id"], "session_number": n, "is_cancelled": False})
        for n in range(1, total + 1)
    ]
    if attended_by:
        for session in sessions[:attended]:
            repo.insert("session_attendance", {
                "session_id": session["id"], "registration_id": attended_by["id"], "attended": True,
            })
