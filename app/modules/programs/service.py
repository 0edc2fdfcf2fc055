from app.config import settings
from app.core.exceptions import NotFound, PolicyViolation
from app.core.timeutils import utcnow
from app.database.repository import Repository, eq, in_
from app.modules.programs.schemas import (
    CancellationPolicy, ProgramCreate, ProgramPage, ProgramResponse, ProgramStatus, ProgramUpdate
)
from typing import Optional
import logging

logger = logging.getLogger(__name__)

PROGRAM_TABLE = "program"

# Registrations in these states pin the program's price and capacity
SETTLED_REGISTRATION_STATUSES = ["confirmed", "refunded"]

ALLOWED_TRANSITIONS = {
    ProgramStatus.DRAFT: {ProgramStatus.PUBLISHED, ProgramStatus.CANCELLED},
    ProgramStatus.PUBLISHED: {ProgramStatus.CANCELLED, ProgramStatus.COMPLETED},
    ProgramStatus.CANCELLED: set(),
    ProgramStatus.COMPLETED: set(),
}


class ProgramService:
    def __init__(self, repo: Repository):
        self.repo = repo

    def create_program(self, program_data: ProgramCreate) -> ProgramResponse:
        """Create a program in draft status with a fully merged cancellation policy"""
        if program_data.installment_count < 1:
            raise PolicyViolation("Installment count must be at least 1")
        insert_data = program_data.model_dump(mode="json")
        insert_data.update({
            "status": ProgramStatus.DRAFT.value,
            "currency": program_data.currency or settings.default_currency,
            "current_participants": 0,
            "cancellation_policy": CancellationPolicy.merged(program_data.cancellation_policy).model_dump(),
        })
        row = self.repo.insert(PROGRAM_TABLE, insert_data)
        logger.info(f"Created program {row['id']} ({program_data.name})")
        return ProgramResponse(**row)

    def get_program(self, program_id: str) -> ProgramResponse:
        """Get program by ID"""
        row = self.repo.get(PROGRAM_TABLE, program_id)
        if not row:
            raise NotFound("Program not found")
        return ProgramResponse(**row)

    def list_programs(
        self,
        organization_id: Optional[str] = None,
        status: Optional[ProgramStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> ProgramPage:
        """List programs by start date, optionally for one organization or status"""
        filters = []
        if organization_id:
            filters.append(eq("organization_id", organization_id))
        if status:
            filters.append(eq("status", ProgramStatus(status).value))
        rows = self.repo.query(PROGRAM_TABLE, filters, order_by="start_date", limit=limit, offset=offset)
        return ProgramPage(
            data=[ProgramResponse(**row) for row in rows],
            total=self.repo.count(PROGRAM_TABLE, filters),
            limit=limit,
            offset=offset,
        )

    def delete_program(self, program_id: str) -> None:
        """Delete a draft program that nobody has registered for"""
        program = self.get_program(program_id)
        if program.status != ProgramStatus.DRAFT:
            raise PolicyViolation("Only draft programs can be deleted", status_code=409)
        if self.repo.count("program_registration", [eq("program_id", program_id)]) > 0:
            raise PolicyViolation("Cannot delete a program that has registrations", status_code=409)
        if not self.repo.delete(PROGRAM_TABLE, program_id):
            raise NotFound("Program not found")
        logger.info(f"Deleted draft program {program_id}")

    def has_settled_registrations(self, program_id: str) -> bool:
        return self.repo.count("program_registration", [
            eq("program_id", program_id),
            in_("status", SETTLED_REGISTRATION_STATUSES),
        ]) > 0

    def update_program(self, program_id: str, program_data: ProgramUpdate) -> ProgramResponse:
        """Partial update. Price and capacity are frozen once a settled registration exists."""
        program = self.get_program(program_id)
        update_data = program_data.model_dump(mode="json", exclude_unset=True)

        frozen = [
            field for field in ("price_cents", "max_participants")
            if field in update_data and update_data[field] != getattr(program, field)
        ]
        if frozen and self.has_settled_registrations(program_id):
            raise PolicyViolation(
                f"Cannot change {', '.join(frozen)} after registrations have been settled",
                status_code=409,
            )
        if "cancellation_policy" in update_data:
            update_data["cancellation_policy"] = CancellationPolicy.merged(
                update_data["cancellation_policy"]
            ).model_dump()
        if not update_data:
            return program

        row = self.repo.update(PROGRAM_TABLE, program_id, update_data)
        if not row:
            raise NotFound("Program not found")
        return ProgramResponse(**row)

    def _transition(self, program_id: str, target: ProgramStatus, stamp_field: Optional[str] = None) -> ProgramResponse:
        program = self.get_program(program_id)
        if target not in ALLOWED_TRANSITIONS[program.status]:
            raise PolicyViolation(
                f"Cannot change program status from {program.status.value} to {target.value}",
                status_code=409,
            )
        update_data = {"status": target.value}
        if stamp_field:
            update_data[stamp_field] = utcnow().isoformat()
        row = self.repo.update(PROGRAM_TABLE, program_id, update_data)
        logger.info(f"Program {program_id}: {program.status.value} -> {target.value}")
        return ProgramResponse(**row)

    def publish_program(self, program_id: str) -> ProgramResponse:
        return self._transition(program_id, ProgramStatus.PUBLISHED, "published_at")

    def complete_program(self, program_id: str) -> ProgramResponse:
        return self._transition(program_id, ProgramStatus.COMPLETED)

    def cancel_program(self, program_id: str) -> ProgramResponse:
        """Mark the program cancelled. Registrations are unwound by CancellationService.cancel_program."""
        return self._transition(program_id, ProgramStatus.CANCELLED, "cancelled_at")

    def adjust_participant_count(self, program_id: str, delta: int) -> None:
        """Keep current_participants in step with confirmed registrations; never below zero."""
        row = self.repo.get(PROGRAM_TABLE, program_id)
        if not row:
            return
        current = row.get("current_participants") or 0
        self.repo.update(PROGRAM_TABLE, program_id, {"current_participants": max(current + delta, 0)})
