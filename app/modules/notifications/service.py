from app.database.repository import Repository
from app.modules.programs.schemas import ProgramResponse
from app.modules.registrations.schemas import RegistrationResponse
from app.modules.waitlist.schemas import WaitlistEntryResponse
from typing import Any, Callable, Optional
import logging

logger = logging.getLogger(__name__)

NOTIFICATION_TABLE = "notification"

CURRENCY_SYMBOLS = {"CAD": "$", "USD": "$", "EUR": "€", "GBP": "£"}


def format_currency(amount_cents: int, currency: str = "CAD") -> str:
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), "")
    formatted = f"{symbol}{amount_cents / 100:,.2f}"
    return formatted if symbol else f"{formatted} {currency.upper()}"


def notify_safely(send: Callable[..., Any], *args, **kwargs) -> bool:
    """Run a notification send; failures are logged and never reach the caller."""
    try:
        send(*args, **kwargs)
        return True
    except Exception as e:
        logger.error(f"Notification {getattr(send, '__name__', send)} failed: {str(e)}")
        return False


class NotificationService:
    """Writes in-app notifications; delivery (push, email) happens downstream."""

    def __init__(self, repo: Repository):
        self.repo = repo

    def _send(self, notification_type: str, user_id: str, title: str, body: str, data: dict, priority: str = "normal"):
        self.repo.insert(NOTIFICATION_TABLE, {
            "type": notification_type,
            "user_id": user_id,
            "title": title,
            "body": body,
            "data": data,
            "priority": priority,
        })

    def notify_registration_cancelled(
        self,
        registration: RegistrationResponse,
        program: ProgramResponse,
        refund_amount_cents: Optional[int] = None,
    ) -> None:
        refund_message = ""
        if refund_amount_cents and refund_amount_cents > 0:
            refund_message = f" A refund of {format_currency(refund_amount_cents, registration.currency)} has been processed."
        self._send(
            "program_registration_cancelled",
            registration.player_id,
            f"Registration Cancelled: {program.name}",
            f"Your registration for {program.name} has been cancelled.{refund_message}",
            {
                "programId": program.id,
                "programName": program.name,
                "amountCents": refund_amount_cents,
                "currency": registration.currency,
            },
        )

    def notify_waitlist_promoted(self, entry: WaitlistEntryResponse, program: ProgramResponse, claim_hours: int) -> None:
        self._send(
            "program_waitlist_promoted",
            entry.player_id,
            f"Spot Available: {program.name}",
            f"A spot has opened up in {program.name}! Complete your registration within {claim_hours} hours to claim it.",
            {
                "programId": program.id,
                "programName": program.name,
                "expiresAt": entry.promotion_expires_at.isoformat() if entry.promotion_expires_at else None,
            },
            priority="high",
        )

    def notify_payment_received(
        self,
        player_id: str,
        program: ProgramResponse,
        amount_cents: int,
        currency: str,
        installment_number: Optional[int] = None,
        total_installments: Optional[int] = None,
    ) -> None:
        installment_text = ""
        if installment_number and total_installments and total_installments > 1:
            installment_text = f" (Payment {installment_number} of {total_installments})"
        self._send(
            "program_payment_received",
            player_id,
            f"Payment Received: {program.name}",
            f"We received your payment of {format_currency(amount_cents, currency)}{installment_text}. Thank you!",
            {
                "programId": program.id,
                "programName": program.name,
                "amountCents": amount_cents,
                "currency": currency,
            },
        )
