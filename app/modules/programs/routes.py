from fastapi import APIRouter, Depends
from app.core.dependencies import get_program_service
from app.modules.programs.schemas import ProgramCreate, ProgramPage, ProgramResponse, ProgramStatus, ProgramUpdate
from app.modules.programs.service import ProgramService
from app.modules.registrations.schedule import calculate_installment_schedule
from app.modules.registrations.schemas import InstallmentScheduleItem
from typing import List, Optional

router = APIRouter(prefix="/programs", tags=["programs"])


@router.post("", response_model=ProgramResponse, status_code=201)
async def create_program(
    program_data: ProgramCreate,
    service: ProgramService = Depends(get_program_service)
):
    """Create a program in draft status"""
    return service.create_program(program_data)


@router.get("", response_model=ProgramPage)
async def list_programs(
    organization_id: Optional[str] = None,
    status: Optional[ProgramStatus] = None,
    limit: int = 50,
    offset: int = 0,
    service: ProgramService = Depends(get_program_service)
):
    """List programs by start date"""
    return service.list_programs(organization_id=organization_id, status=status, limit=limit, offset=offset)


@router.get("/{program_id}", response_model=ProgramResponse)
async def get_program(
    program_id: str,
    service: ProgramService = Depends(get_program_service)
):
    """Get program by ID"""
    return service.get_program(program_id)


@router.patch("/{program_id}", response_model=ProgramResponse)
async def update_program(
    program_id: str,
    program_data: ProgramUpdate,
    service: ProgramService = Depends(get_program_service)
):
    """Update a program; price and capacity are locked once registrations settle"""
    return service.update_program(program_id, program_data)


@router.delete("/{program_id}", status_code=204)
async def delete_program(
    program_id: str,
    service: ProgramService = Depends(get_program_service)
):
    """Delete a draft program with no registrations"""
    service.delete_program(program_id)


@router.post("/{program_id}/publish", response_model=ProgramResponse)
async def publish_program(
    program_id: str,
    service: ProgramService = Depends(get_program_service)
):
    """Open a draft program for registration"""
    return service.publish_program(program_id)


@router.post("/{program_id}/complete", response_model=ProgramResponse)
async def complete_program(
    program_id: str,
    service: ProgramService = Depends(get_program_service)
):
    return service.complete_program(program_id)


@router.get("/{program_id}/installment-schedule", response_model=List[InstallmentScheduleItem])
async def preview_installment_schedule(
    program_id: str,
    service: ProgramService = Depends(get_program_service)
):
    """Installment schedule a registration made now would receive"""
    program = service.get_program(program_id)
    installment_count = program.installment_count if program.allow_installments else 1
    return calculate_installment_schedule(program.price_cents, max(installment_count or 1, 1), program.start_date)
