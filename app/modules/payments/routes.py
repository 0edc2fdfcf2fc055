from fastapi import APIRouter, Depends
from app.core.dependencies import (
    get_notification_service, get_payment_gateway, get_registration_service, get_repository
)
from app.database.repository import Repository
from app.modules.notifications.service import NotificationService
from app.modules.payments.gateway import PaymentGateway
from app.modules.payments.processor import PaymentProcessor, PaymentRunResult
from app.modules.registrations.service import RegistrationService

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/process-due", response_model=PaymentRunResult)
async def process_due_payments(
    repo: Repository = Depends(get_repository),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    registration_service: RegistrationService = Depends(get_registration_service),
    notifier: NotificationService = Depends(get_notification_service)
):
    """Charge installments that are due (scheduled daily)"""
    processor = PaymentProcessor(repo, gateway, registration_service=registration_service, notifier=notifier)
    return processor.process_due_payments()
