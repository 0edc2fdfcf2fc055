from app.config import settings
from app.core.exceptions import NotFound, PolicyViolation, UniqueViolation
from app.core.timeutils import as_utc, utcnow
from app.database.repository import Repository, eq, in_, is_null, lt, not_null
from app.modules.programs.schemas import ProgramStatus
from app.modules.programs.service import ProgramService
from app.modules.registrations.schemas import ACTIVE_REGISTRATION_STATUSES
from app.modules.waitlist import position_locks
from app.modules.waitlist.schemas import (
    WaitlistAdd, WaitlistEntryResponse, WaitlistPage, WaitlistPromotionResult
)
from typing import List, Optional
from datetime import datetime, timedelta
import logging

logger = logging.getLogger(__name__)

WAITLIST_TABLE = "program_waitlist"


class WaitlistService:
    def __init__(self, repo: Repository, program_service: Optional[ProgramService] = None):
        self.repo = repo
        self.program_service = program_service or ProgramService(repo)

    def _max_position(self, program_id: str) -> int:
        last = self.repo.find_one(WAITLIST_TABLE, [eq("program_id", program_id)], order_by="position", desc=True)
        return (last or {}).get("position") or 0

    def _compact_positions(self, program_id: str) -> int:
        """Renumber the program's entries 1..N in position order. Returns how many rows moved."""
        with position_locks.lock_for(program_id):
            rows = self.repo.query(WAITLIST_TABLE, [eq("program_id", program_id)], order_by="position")
            moved = 0
            for expected, row in enumerate(rows, start=1):
                if row["position"] != expected:
                    self.repo.update(WAITLIST_TABLE, row["id"], {"position": expected})
                    moved += 1
            return moved

    def add_to_waitlist(self, waitlist_data: WaitlistAdd) -> WaitlistEntryResponse:
        """Queue a player at the tail of a published program's waitlist"""
        program = self.program_service.get_program(waitlist_data.program_id)

        if program.status != ProgramStatus.PUBLISHED:
            raise PolicyViolation("Program is not open for registration")

        if not program.waitlist_enabled:
            raise PolicyViolation("Waitlist is not enabled for this program")

        if program.waitlist_limit:
            count = self.repo.count(WAITLIST_TABLE, [eq("program_id", program.id)])
            if count >= program.waitlist_limit:
                raise PolicyViolation("Waitlist is full", status_code=409)

        existing = self.repo.find_one(WAITLIST_TABLE, [
            eq("program_id", program.id),
            eq("player_id", waitlist_data.player_id),
        ])
        if existing:
            raise PolicyViolation("Player is already on the waitlist", status_code=409)

        registration = self.repo.find_one("program_registration", [
            eq("program_id", program.id),
            eq("player_id", waitlist_data.player_id),
            in_("status", ACTIVE_REGISTRATION_STATUSES),
        ])
        if registration:
            raise PolicyViolation("Player is already registered for this program", status_code=409)

        with position_locks.lock_for(program.id):
            position = self._max_position(program.id) + 1
            try:
                row = self.repo.insert(WAITLIST_TABLE, {
                    "program_id": program.id,
                    "player_id": waitlist_data.player_id,
                    "added_by": waitlist_data.added_by,
                    "position": position,
                    "promoted_at": None,
                    "promotion_expires_at": None,
                    "notification_sent_at": None,
                    "registration_id": None,
                    "notes": waitlist_data.notes,
                })
            except UniqueViolation:
                raise PolicyViolation("Player is already on the waitlist", status_code=409)

        logger.info(f"Player {waitlist_data.player_id} joined waitlist for program {program.id} at position {position}")
        return WaitlistEntryResponse(**row)

    def get_waitlist_entry(self, waitlist_id: str) -> WaitlistEntryResponse:
        """Get waitlist entry by ID"""
        row = self.repo.get(WAITLIST_TABLE, waitlist_id)
        if not row:
            raise NotFound("Waitlist entry not found")
        return WaitlistEntryResponse(**row)

    def list_waitlist(self, program_id: str, limit: int = 50, offset: int = 0) -> WaitlistPage:
        """List a program's waitlist in queue order"""
        filters = [eq("program_id", program_id)]
        rows = self.repo.query(WAITLIST_TABLE, filters, order_by="position", limit=limit, offset=offset)
        return WaitlistPage(
            data=[WaitlistEntryResponse(**row) for row in rows],
            total=self.repo.count(WAITLIST_TABLE, filters),
            limit=limit,
            offset=offset,
        )

    def remove_from_waitlist(self, waitlist_id: str) -> None:
        """Delete an entry and close the gap it leaves in the program's positions"""
        entry = self.get_waitlist_entry(waitlist_id)
        with position_locks.lock_for(entry.program_id):
            if not self.repo.delete(WAITLIST_TABLE, waitlist_id):
                raise NotFound("Waitlist entry not found")
            self._compact_positions(entry.program_id)
        logger.info(f"Removed waitlist entry {waitlist_id} (position {entry.position}) from program {entry.program_id}")

    def remove_player_from_waitlist(self, program_id: str, player_id: str) -> None:
        row = self.repo.find_one(WAITLIST_TABLE, [eq("program_id", program_id), eq("player_id", player_id)])
        if not row:
            raise NotFound("Player is not on the waitlist")
        self.remove_from_waitlist(row["id"])

    def get_next_in_waitlist(self, program_id: str) -> Optional[WaitlistEntryResponse]:
        """Lowest-positioned entry not already promoted"""
        row = self.repo.find_one(
            WAITLIST_TABLE,
            [eq("program_id", program_id), is_null("promoted_at")],
            order_by="position",
        )
        return WaitlistEntryResponse(**row) if row else None

    def promote_from_waitlist(
        self,
        waitlist_id: str,
        claim_hours: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> WaitlistEntryResponse:
        """Offer the entry a freed spot with a claim window. The entry stays queued until claimed."""
        now = as_utc(now or utcnow())
        expires_at = now + timedelta(hours=claim_hours or settings.waitlist_claim_hours)
        row = self.repo.update(WAITLIST_TABLE, waitlist_id, {
            "promoted_at": now.isoformat(),
            "promotion_expires_at": expires_at.isoformat(),
            "notification_sent_at": now.isoformat(),
        })
        if not row:
            raise NotFound("Waitlist entry not found")
        logger.info(f"Promoted waitlist entry {waitlist_id}; claim expires at {expires_at.isoformat()}")
        return WaitlistEntryResponse(**row)

    def claim_promoted_spot(
        self,
        waitlist_id: str,
        registration_id: str,
        now: Optional[datetime] = None,
    ) -> WaitlistEntryResponse:
        """Link the registration created from a promotion to its waitlist entry while the claim window is open"""
        now = as_utc(now or utcnow())
        entry = self.get_waitlist_entry(waitlist_id)
        if not entry.promoted_at:
            raise PolicyViolation("Waitlist entry has not been promoted")
        if entry.registration_id:
            raise PolicyViolation("Waitlist promotion has already been claimed", status_code=409)
        if entry.promotion_expires_at and as_utc(entry.promotion_expires_at) < now:
            raise PolicyViolation("Waitlist promotion has expired")
        row = self.repo.update(WAITLIST_TABLE, waitlist_id, {"registration_id": registration_id})
        if not row:
            raise NotFound("Waitlist entry not found")
        return WaitlistEntryResponse(**row)

    def get_expired_promotions(self, now: Optional[datetime] = None) -> List[WaitlistEntryResponse]:
        """Promotions whose claim window lapsed without a registration"""
        now = as_utc(now or utcnow())
        rows = self.repo.query(WAITLIST_TABLE, [
            not_null("promoted_at"),
            is_null("registration_id"),
            lt("promotion_expires_at", now.isoformat()),
        ])
        return [WaitlistEntryResponse(**row) for row in rows]

    def reset_expired_promotion(self, waitlist_id: str) -> WaitlistEntryResponse:
        """Clear promotion fields and recycle the entry to the back of the queue"""
        entry = self.get_waitlist_entry(waitlist_id)
        with position_locks.lock_for(entry.program_id):
            self.repo.update(WAITLIST_TABLE, waitlist_id, {
                "promoted_at": None,
                "promotion_expires_at": None,
                "notification_sent_at": None,
                "position": self._max_position(entry.program_id) + 1,
            })
            # Moving an entry off the head leaves a gap behind it
            self._compact_positions(entry.program_id)
        logger.info(f"Recycled expired promotion {waitlist_id} to the end of program {entry.program_id}'s waitlist")
        return self.get_waitlist_entry(waitlist_id)

    def process_waitlist_after_cancellation(
        self,
        program_id: str,
        claim_hours: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> WaitlistPromotionResult:
        """Promote whoever is next in line. Notifying them is the caller's job."""
        next_entry = self.get_next_in_waitlist(program_id)
        if not next_entry:
            return WaitlistPromotionResult(promoted=False)

        promoted = self.promote_from_waitlist(next_entry.id, claim_hours=claim_hours, now=now)
        return WaitlistPromotionResult(
            promoted=True,
            player_id=promoted.player_id,
            waitlist_id=promoted.id,
            promotion_expires_at=promoted.promotion_expires_at,
        )

    def get_player_waitlist_position(self, program_id: str, player_id: str) -> Optional[int]:
        row = self.repo.find_one(WAITLIST_TABLE, [eq("program_id", program_id), eq("player_id", player_id)])
        return row["position"] if row else None
