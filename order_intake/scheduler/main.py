from __future__ import annotations

import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from order_intake.config import Settings, get_settings
from order_intake.pipeline.intake import IntakePipeline, IntakeResult, get_intake_pipeline

logger = logging.getLogger(__name__)

PRIMARY_JOB_ID = "intake_primary"
SECONDARY_JOB_ID = "intake_secondary"


async def run_scheduled_intake(
    pipeline: IntakePipeline | None = None,
    *,
    trigger: str = "schedule",
) -> IntakeResult:
    pipeline = pipeline or get_intake_pipeline()
    result = await pipeline.run()
    if result.skipped:
        logger.warning(
            "Scheduled intake (%s) skipped: previous run still in flight",
            trigger,
            extra={"event_type": "scheduler.intake.skipped"},
        )
    elif result.errors:
        logger.error(
            "Scheduled intake (%s) finished with errors: %s",
            trigger,
            result.errors,
            extra={"event_type": "scheduler.intake.error", "ops_payload": result.summary()},
        )
    return result


def build_scheduler(
    *,
    pipeline: IntakePipeline | None = None,
    settings: Settings | None = None,
) -> AsyncIOScheduler:
    settings = settings or get_settings()
    scheduler = AsyncIOScheduler(timezone=settings.timezone)
    cadences = (
        (PRIMARY_JOB_ID, "Primary intake run", settings.schedule_primary_hours, settings.schedule_primary_minute),
        (SECONDARY_JOB_ID, "Secondary intake run", settings.schedule_secondary_hours, settings.schedule_secondary_minute),
    )
    for job_id, name, hours, minute in cadences:
        scheduler.add_job(
            run_scheduled_intake,
            CronTrigger(hour=hours, minute=minute, timezone=settings.timezone),
            id=job_id,
            name=name,
            kwargs={"pipeline": pipeline, "trigger": job_id},
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
    return scheduler


async def scheduler_main(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    scheduler = build_scheduler(settings=settings)
    scheduler.start()
    logger.info(
        "Intake scheduler started (%s): hours %s at :%02d and hours %s at :%02d",
        settings.timezone,
        settings.schedule_primary_hours,
        settings.schedule_primary_minute,
        settings.schedule_secondary_hours,
        settings.schedule_secondary_minute,
    )
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
