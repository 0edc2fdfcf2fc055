from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from enum import Enum


class WaitlistState(str, Enum):
    QUEUED = "queued"
    PROMOTED = "promoted"
    CLAIMED = "claimed"


class WaitlistAdd(BaseModel):
    program_id: str
    player_id: str
    added_by: str
    notes: Optional[str] = None


class WaitlistPromote(BaseModel):
    claim_hours: Optional[int] = None


class WaitlistClaim(BaseModel):
    registration_id: str


class WaitlistEntryResponse(BaseModel):
    id: str
    program_id: str
    player_id: str
    added_by: str
    position: int
    promoted_at: Optional[datetime] = None
    promotion_expires_at: Optional[datetime] = None
    notification_sent_at: Optional[datetime] = None
    registration_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def state(self) -> WaitlistState:
        if self.registration_id:
            return WaitlistState.CLAIMED
        if self.promoted_at:
            return WaitlistState.PROMOTED
        return WaitlistState.QUEUED


class WaitlistPage(BaseModel):
    data: List[WaitlistEntryResponse]
    total: int
    limit: int
    offset: int


class WaitlistPromotionResult(BaseModel):
    promoted: bool
    player_id: Optional[str] = None
    waitlist_id: Optional[str] = None
    promotion_expires_at: Optional[datetime] = None


class PromotionSweepResult(BaseModel):
    recycled: int = 0
    promoted: int = 0
    errors: List[str] = []
