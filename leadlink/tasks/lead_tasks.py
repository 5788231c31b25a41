import asyncio

from leadlink.common.logging import get_logger
from leadlink.tasks.celery_app import app

logger = get_logger("tasks.leads")


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class _NullTransport:
    async def broadcast(self, channel, event, data) -> int:
        return 0


def _maintenance_service():
    # Maintenance transitions never notify anyone
    from leadlink.core.leads.service import LeadLifecycleService
    from leadlink.core.notifications.bus import NotificationBus

    return LeadLifecycleService(NotificationBus(_NullTransport()))


@app.task(name="leadlink.tasks.lead_tasks.purge_expired_enquiries")
def purge_expired_enquiries():
    """Celery Beat task: delete enquiries past their expiry."""
    logger.info("Purging expired enquiries")

    async def _purge():
        from leadlink.db.session import async_session_factory

        async with async_session_factory() as db:
            try:
                purged = await _maintenance_service().purge_expired_enquiries(db)
                await db.commit()
                return purged
            except Exception as e:
                await db.rollback()
                logger.error("Enquiry purge failed: %s", e)
                raise

    return _run_async(_purge())


@app.task(name="leadlink.tasks.lead_tasks.release_stale_payment_holds")
def release_stale_payment_holds():
    """Celery Beat task: return abandoned payment_pending leads to pending."""
    logger.info("Releasing stale payment holds")

    async def _release():
        from leadlink.db.session import async_session_factory

        async with async_session_factory() as db:
            try:
                released = await _maintenance_service().release_stale_payment_holds(db)
                await db.commit()
                return released
            except Exception as e:
                await db.rollback()
                logger.error("Payment hold release failed: %s", e)
                raise

    return _run_async(_release())
