from fastapi import APIRouter, Depends
from app.core.dependencies import get_cancellation_service, get_program_service, get_registration_service
from app.modules.cancellations.refunds import calculate_refund
from app.modules.cancellations.schemas import (
    BulkCancellationResult,
    CancelProgramRequest,
    CancelRegistrationRequest,
    CancelRegistrationResult,
    RefundCalculation,
)
from app.modules.cancellations.service import CancellationService
from app.modules.programs.service import ProgramService
from app.modules.registrations.service import RegistrationService
from typing import Optional

router = APIRouter(tags=["cancellations"])


@router.get("/registrations/{registration_id}/refund-preview", response_model=RefundCalculation)
async def preview_refund(
    registration_id: str,
    registration_service: RegistrationService = Depends(get_registration_service),
    program_service: ProgramService = Depends(get_program_service)
):
    """Refund the player would receive if the registration were cancelled now"""
    registration = registration_service.get_registration(registration_id)
    program = program_service.get_program(registration.program_id)
    sessions = registration_service.get_sessions_attended(registration_id)
    return calculate_refund(registration, program, sessions.attended, sessions.total)


@router.post("/registrations/{registration_id}/cancel", response_model=CancelRegistrationResult)
async def cancel_registration(
    registration_id: str,
    cancel_data: CancelRegistrationRequest,
    service: CancellationService = Depends(get_cancellation_service)
):
    """Cancel a registration, refund per policy and offer the spot to the waitlist"""
    return service.cancel_registration(registration_id, cancel_data)


@router.post("/programs/{program_id}/cancel", response_model=BulkCancellationResult)
async def cancel_program(
    program_id: str,
    cancel_data: Optional[CancelProgramRequest] = None,
    service: CancellationService = Depends(get_cancellation_service)
):
    """Cancel a program and every active registration in it"""
    full_refund = cancel_data.full_refund if cancel_data else True
    return service.cancel_program(program_id, full_refund=full_refund)
