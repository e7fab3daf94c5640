import asyncio

from buildbid.common.logging import get_logger
from buildbid.tasks.celery_app import app

logger = get_logger("tasks.proposals")


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def sweep_expired_proposals(session_factory) -> list[str]:
    from buildbid.core.proposals.service import ProposalService

    async with session_factory() as db:
        try:
            expired = await ProposalService().expire_stale_proposals(db)
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.error("Proposal expiry sweep failed: %s", e)
            raise

    if expired:
        logger.info("Expired %d stale proposals", len(expired))
    return expired


@app.task(name="buildbid.tasks.proposal_tasks.expire_stale_proposals")
def expire_stale_proposals():
    """Celery Beat task: move proposals past their expiry date to expired."""
    logger.info("Checking for expired proposals")
    from buildbid.db.session import async_session_factory

    return _run_async(sweep_expired_proposals(async_session_factory))
