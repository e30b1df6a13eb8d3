import asyncio
import uuid

from bountycourt.common.logging import get_logger
from bountycourt.config import settings
from bountycourt.tasks.celery_app import app

logger = get_logger("tasks.dispute")


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@app.task(name="bountycourt.tasks.dispute_tasks.auto_close_stale_disputes")
def auto_close_stale_disputes():
    """Celery Beat task: close disputes past their inactivity deadline."""
    logger.info("Checking for stale disputes")

    async def _close():
        from bountycourt.core.disputes.automation import DisputeScheduler
        from bountycourt.db.session import async_session_factory

        async with async_session_factory() as db:
            try:
                closed = await DisputeScheduler().auto_close_stale(db)
                await db.commit()
                return closed
            except Exception as e:
                await db.rollback()
                logger.error("Auto-close run failed: %s", e)
                raise

    return _run_async(_close())


@app.task(name="bountycourt.tasks.dispute_tasks.escalate_stagnant_disputes")
def escalate_stagnant_disputes():
    """Celery Beat task: flag long-unresolved disputes for admin attention."""
    logger.info("Checking dispute escalations")

    async def _escalate():
        from bountycourt.core.disputes.automation import DisputeScheduler
        from bountycourt.db.session import async_session_factory

        async with async_session_factory() as db:
            try:
                escalated = await DisputeScheduler().escalate_stagnant(db)
                await db.commit()
                return escalated
            except Exception as e:
                await db.rollback()
                logger.error("Escalation run failed: %s", e)
                raise

    return _run_async(_escalate())


@app.task(
    name="bountycourt.tasks.dispute_tasks.settle_resolution",
    bind=True,
    max_retries=settings.SETTLEMENT_MAX_RETRIES,
)
def settle_resolution(self, resolution_id: str):
    logger.info("Settling resolution %s (attempt %d)", resolution_id, self.request.retries + 1)

    async def _settle():
        from bountycourt.core.disputes.resolution import ResolutionEngine
        from bountycourt.db.session import async_session_factory

        async with async_session_factory() as db:
            try:
                result = await ResolutionEngine().retry_settlement(
                    db, None, uuid.UUID(resolution_id)
                )
                # Attempt counter and last error are kept even when settlement failed
                await db.commit()
                return result.resolution.settlement_status, result.settlement_error
            except Exception as e:
                await db.rollback()
                logger.error("Settlement task failed for resolution %s: %s", resolution_id, e)
                raise

    status, error = _run_async(_settle())
    if error:
        countdown = settings.SETTLEMENT_RETRY_BASE_SECONDS * 2 ** self.request.retries
        raise self.retry(exc=RuntimeError(error), countdown=countdown)
    return status
