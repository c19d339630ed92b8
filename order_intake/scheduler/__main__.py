from __future__ import annotations

import asyncio
import logging

from order_intake.config import get_settings
from order_intake.ops.events import LOG_FORMAT, configure_ops_event_logging
from order_intake.scheduler.main import scheduler_main

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()
    configure_ops_event_logging(max_size=settings.ops_event_buffer_size)
    logger.info("Starting headless intake scheduler (timezone=%s)", settings.timezone)
    asyncio.run(scheduler_main(settings=settings))


main()
