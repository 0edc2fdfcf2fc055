"""
Core dependencies wiring repositories and services into routes
"""

from fastapi import Depends, HTTPException
from app.config import settings
from app.database.repository import Repository
from app.database.supabase_client import get_service_repository
from app.modules.cancellations.service import CancellationService
from app.modules.notifications.service import NotificationService
from app.modules.payments.gateway import PaymentGateway, StripePaymentGateway
from app.modules.programs.service import ProgramService
from app.modules.registrations.service import RegistrationService
from app.modules.waitlist.service import WaitlistService
from typing import Optional
import logging

logger = logging.getLogger(__name__)


def get_repository() -> Repository:
    """Service-role repository. Tests override this dependency with an InMemoryRepository."""
    return get_service_repository()


def get_payment_gateway() -> PaymentGateway:
    try:
        return StripePaymentGateway(settings.stripe_secret_key)
    except ValueError as e:
        logger.error(f"Payment gateway unavailable: {str(e)}")
        raise HTTPException(status_code=503, detail="Payment processing is not configured")


def get_optional_payment_gateway() -> Optional[PaymentGateway]:
    """Gateway when Stripe is configured, else None. Flows that only need it for some records check lazily."""
    if not settings.stripe_secret_key:
        return None
    return StripePaymentGateway(settings.stripe_secret_key)


def get_program_service(repo: Repository = Depends(get_repository)) -> ProgramService:
    return ProgramService(repo)


def get_registration_service(
    repo: Repository = Depends(get_repository),
    program_service: ProgramService = Depends(get_program_service),
) -> RegistrationService:
    return RegistrationService(repo, program_service)


def get_waitlist_service(
    repo: Repository = Depends(get_repository),
    program_service: ProgramService = Depends(get_program_service),
) -> WaitlistService:
    return WaitlistService(repo, program_service)


def get_notification_service(repo: Repository = Depends(get_repository)) -> NotificationService:
    return NotificationService(repo)


def get_cancellation_service(
    repo: Repository = Depends(get_repository),
    gateway: Optional[PaymentGateway] = Depends(get_optional_payment_gateway),
    program_service: ProgramService = Depends(get_program_service),
    registration_service: RegistrationService = Depends(get_registration_service),
    waitlist_service: WaitlistService = Depends(get_waitlist_service),
    notifier: NotificationService = Depends(get_notification_service),
) -> CancellationService:
    return CancellationService(
        repo,
        gateway,
        program_service=program_service,
        registration_service=registration_service,
        waitlist_service=waitlist_service,
        notifier=notifier,
    )
