from fastapi import APIRouter, Depends
from app.core.dependencies import get_notification_service, get_waitlist_service
from app.modules.notifications.service import NotificationService
from app.modules.waitlist.promotion_sweeper import recycle_expired_promotions
from app.modules.waitlist.schemas import (
    PromotionSweepResult,
    WaitlistAdd,
    WaitlistClaim,
    WaitlistEntryResponse,
    WaitlistPage,
    WaitlistPromote,
    WaitlistPromotionResult,
)
from app.modules.waitlist.service import WaitlistService
from typing import Dict, Optional

router = APIRouter(prefix="/waitlist", tags=["waitlist"])


@router.post("", response_model=WaitlistEntryResponse, status_code=201)
async def add_to_waitlist(
    waitlist_data: WaitlistAdd,
    service: WaitlistService = Depends(get_waitlist_service)
):
    """Join a full program's waitlist"""
    return service.add_to_waitlist(waitlist_data)


@router.get("/programs/{program_id}", response_model=WaitlistPage)
async def list_waitlist(
    program_id: str,
    limit: int = 50,
    offset: int = 0,
    service: WaitlistService = Depends(get_waitlist_service)
):
    """List a program's waitlist in queue order"""
    return service.list_waitlist(program_id, limit=limit, offset=offset)


@router.get("/programs/{program_id}/players/{player_id}/position")
async def get_player_position(
    program_id: str,
    player_id: str,
    service: WaitlistService = Depends(get_waitlist_service)
) -> Dict[str, Optional[int]]:
    return {"position": service.get_player_waitlist_position(program_id, player_id)}


@router.delete("/programs/{program_id}/players/{player_id}", status_code=204)
async def remove_player_from_waitlist(
    program_id: str,
    player_id: str,
    service: WaitlistService = Depends(get_waitlist_service)
):
    service.remove_player_from_waitlist(program_id, player_id)


@router.post("/programs/{program_id}/promote-next", response_model=WaitlistPromotionResult)
async def promote_next(
    program_id: str,
    service: WaitlistService = Depends(get_waitlist_service)
):
    """Offer the next queued player a spot"""
    return service.process_waitlist_after_cancellation(program_id)


@router.post("/expired/recycle", response_model=PromotionSweepResult)
async def recycle_expired(
    service: WaitlistService = Depends(get_waitlist_service),
    notifier: NotificationService = Depends(get_notification_service)
):
    """Recycle lapsed promotions and promote the next players (normally run by the sweeper)"""
    return recycle_expired_promotions(service, notifier)


@router.get("/{waitlist_id}", response_model=WaitlistEntryResponse)
async def get_waitlist_entry(
    waitlist_id: str,
    service: WaitlistService = Depends(get_waitlist_service)
):
    return service.get_waitlist_entry(waitlist_id)


@router.delete("/{waitlist_id}", status_code=204)
async def remove_from_waitlist(
    waitlist_id: str,
    service: WaitlistService = Depends(get_waitlist_service)
):
    """Remove an entry; later entries move up one place"""
    service.remove_from_waitlist(waitlist_id)


@router.post("/{waitlist_id}/promote", response_model=WaitlistEntryResponse)
async def promote_entry(
    waitlist_id: str,
    promote_data: Optional[WaitlistPromote] = None,
    service: WaitlistService = Depends(get_waitlist_service)
):
    return service.promote_from_waitlist(waitlist_id, claim_hours=promote_data.claim_hours if promote_data else None)


@router.post("/{waitlist_id}/claim", response_model=WaitlistEntryResponse)
async def claim_promoted_spot(
    waitlist_id: str,
    claim_data: WaitlistClaim,
    service: WaitlistService = Depends(get_waitlist_service)
):
    """Link the registration created from a promotion to the waitlist entry"""
    return service.claim_promoted_spot(waitlist_id, claim_data.registration_id)
