from order_intake.scheduler.main import (
    PRIMARY_JOB_ID,
    SECONDARY_JOB_ID,
    build_scheduler,
    run_scheduled_intake,
    scheduler_main,
)

__all__ = [
    "PRIMARY_JOB_ID",
    "SECONDARY_JOB_ID",
    "build_scheduler",
    "run_scheduled_intake",
    "scheduler_main",
]
