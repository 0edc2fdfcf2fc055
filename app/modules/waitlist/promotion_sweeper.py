import asyncio
import logging
from datetime import datetime
from typing import Dict, Optional

from app.config import settings
from app.database.supabase_client import get_service_repository
from app.modules.notifications.service import NotificationService, notify_safely
from app.modules.programs.schemas import ProgramStatus
from app.modules.waitlist.schemas import PromotionSweepResult
from app.modules.waitlist.service import WaitlistService

logger = logging.getLogger(__name__)


def recycle_expired_promotions(
    waitlist_service: WaitlistService,
    notifier: Optional[NotificationService] = None,
    now: Optional[datetime] = None,
) -> PromotionSweepResult:
    """Send lapsed promotions to the back of their queue and offer each freed spot to the next player."""
    result = PromotionSweepResult()
    expired = waitlist_service.get_expired_promotions(now=now)
    if not expired:
        logger.debug("No expired waitlist promotions found")
        return result

    logger.info(f"Found {len(expired)} expired waitlist promotion(s)")
    freed_spots: Dict[str, int] = {}
    for entry in expired:
        try:
            waitlist_service.reset_expired_promotion(entry.id)
            result.recycled += 1
            freed_spots[entry.program_id] = freed_spots.get(entry.program_id, 0) + 1
        except Exception as e:
            result.errors.append(f"Waitlist entry {entry.id}: {str(e)}")
            logger.error(f"Error recycling waitlist entry {entry.id}: {str(e)}")

    for program_id, spots in freed_spots.items():
        try:
            program = waitlist_service.program_service.get_program(program_id)
            if program.status != ProgramStatus.PUBLISHED:
                continue
            for _ in range(spots):
                promotion = waitlist_service.process_waitlist_after_cancellation(program_id, now=now)
                if not promotion.promoted:
                    break
                result.promoted += 1
                if notifier:
                    entry = waitlist_service.get_waitlist_entry(promotion.waitlist_id)
                    notify_safely(notifier.notify_waitlist_promoted, entry, program, settings.waitlist_claim_hours)
        except Exception as e:
            result.errors.append(f"Program {program_id}: {str(e)}")
            logger.error(f"Error promoting waitlist for program {program_id}: {str(e)}")
    return result


async def sweep_expired_promotions() -> PromotionSweepResult:
    repo = get_service_repository()
    return recycle_expired_promotions(WaitlistService(repo), NotificationService(repo))


async def promotion_sweeper_loop():
    """Background task that periodically recycles expired waitlist promotions"""
    while True:
        try:
            await sweep_expired_promotions()
        except Exception as e:
            logger.error(f"Error in promotion sweeper loop: {str(e)}")

        await asyncio.sleep(settings.promotion_sweep_interval_seconds)
