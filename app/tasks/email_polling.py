"""Inbound email polling - turns unseen IMAP messages into conversations."""

import logging

from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="app.tasks.email_polling.poll_email_inbox")
def poll_email_inbox() -> dict:
    """
    Fetch unseen emails and ingest each one like an email webhook delivery.

    Does nothing when IMAP is not configured.

    Returns:
        Dict with counts of fetched, processed and failed emails
    """
    import asyncio

    async def _poll():
        from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

        from app.config import get_settings
        from app.services.platforms.email import EmailAdapter, fetch_unseen_messages
        from app.services.tracing import clear_trace_context, save_pending_traces, start_trace_context

        settings = get_settings()
        if not settings.imap_enabled:
            logger.debug("IMAP not configured, skipping email poll")
            return {"fetched": 0, "processed": 0, "failed": 0}

        payloads = await fetch_unseen_messages(settings)
        results = {"fetched": len(payloads), "processed": 0, "failed": 0}
        if not payloads:
            return results

        engine = create_async_engine(settings.async_database_url)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        adapter = EmailAdapter(settings, mock_mode=settings.messaging_mock_mode)

        try:
            async with session_factory() as db:
                # Fetched emails are already \Seen, so one failure must not skip the rest
                for index, payload in enumerate(payloads):
                    start_trace_context(platform="email")
                    try:
                        result = await adapter.process_webhook(db, payload)
                        await save_pending_traces(db)
                        await db.commit()
                    except Exception as e:
                        logger.error(
                            f"Failed to store polled email #{index} from {payload.get('from')}: {e}",
                            exc_info=True,
                        )
                        await db.rollback()
                        results["failed"] += 1
                        continue
                    finally:
                        clear_trace_context()
                    results["processed"] += result.processed
                    results["failed"] += result.failed
        finally:
            await adapter.close()
            await engine.dispose()

        logger.info(f"Email poll: {results}")
        return results

    return asyncio.run(_poll())
