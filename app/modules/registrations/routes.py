from fastapi import APIRouter, Depends
from app.core.dependencies import get_registration_service
from app.modules.registrations.schemas import (
    PaidAmountResponse,
    PaymentPlanCreate,
    RegistrationConfirm,
    RegistrationCreate,
    RegistrationPage,
    RegistrationPaymentResponse,
    RegistrationResponse,
    RegistrationStatus,
    RegistrationStatusUpdate,
    SessionsAttended,
)
from app.modules.registrations.service import RegistrationService
from typing import List, Optional

router = APIRouter(prefix="/registrations", tags=["registrations"])


@router.post("", response_model=RegistrationResponse, status_code=201)
async def create_registration(
    registration_data: RegistrationCreate,
    service: RegistrationService = Depends(get_registration_service)
):
    """Register a player for a published program"""
    return service.create_registration(registration_data)


@router.get("/programs/{program_id}", response_model=RegistrationPage)
async def list_registrations(
    program_id: str,
    status: Optional[RegistrationStatus] = None,
    limit: int = 50,
    offset: int = 0,
    service: RegistrationService = Depends(get_registration_service)
):
    """List a program's registrations, newest first"""
    return service.list_registrations(program_id, status=status, limit=limit, offset=offset)


@router.get("/{registration_id}", response_model=RegistrationResponse)
async def get_registration(
    registration_id: str,
    service: RegistrationService = Depends(get_registration_service)
):
    """Get registration by ID"""
    return service.get_registration(registration_id)


@router.patch("/{registration_id}/status", response_model=RegistrationResponse)
async def update_registration_status(
    registration_id: str,
    status_data: RegistrationStatusUpdate,
    service: RegistrationService = Depends(get_registration_service)
):
    return service.update_registration_status(registration_id, status_data.status)


@router.post("/{registration_id}/confirm", response_model=RegistrationResponse)
async def confirm_registration(
    registration_id: str,
    confirm_data: RegistrationConfirm,
    service: RegistrationService = Depends(get_registration_service)
):
    """Confirm a registration once its first payment has cleared"""
    return service.confirm_registration(registration_id, confirm_data.paid_amount_cents)


@router.post("/{registration_id}/payments", response_model=List[RegistrationPaymentResponse], status_code=201)
async def create_payment_plan(
    registration_id: str,
    plan_data: Optional[PaymentPlanCreate] = None,
    service: RegistrationService = Depends(get_registration_service)
):
    """Create the registration's payment rows from its program's installment settings"""
    return service.create_payment_plan(
        registration_id,
        stripe_customer_id=plan_data.stripe_customer_id if plan_data else None,
    )


@router.get("/{registration_id}/payments", response_model=List[RegistrationPaymentResponse])
async def list_payments(
    registration_id: str,
    service: RegistrationService = Depends(get_registration_service)
):
    service.get_registration(registration_id)
    return service.list_payments(registration_id)


@router.post("/{registration_id}/paid-amount", response_model=PaidAmountResponse)
async def reconcile_paid_amount(
    registration_id: str,
    service: RegistrationService = Depends(get_registration_service)
):
    """Recompute paid_amount_cents from succeeded payments"""
    return PaidAmountResponse(
        registration_id=registration_id,
        paid_amount_cents=service.update_paid_amount(registration_id),
    )


@router.get("/{registration_id}/attendance", response_model=SessionsAttended)
async def get_sessions_attended(
    registration_id: str,
    service: RegistrationService = Depends(get_registration_service)
):
    return service.get_sessions_attended(registration_id)
