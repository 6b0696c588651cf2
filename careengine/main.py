"""Care monitor daemon entry point -- ``python -m careengine.main``."""

from __future__ import annotations

import logging
import signal
import threading

from careengine.config import load_care_config_from_yaml
from careengine.service import CareService
from careengine.settings import get_settings


def run() -> None:
    """Load seed config and run the periodic monitors until interrupted."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger = logging.getLogger(__name__)

    service = CareService(engine_settings=settings)
    if settings.config_path:
        service.load_people(load_care_config_from_yaml(settings.config_path))
    else:
        logger.warning("CARE_CONFIG_PATH not set; starting with no monitored people")

    stopped = threading.Event()

    def _shutdown(signum, frame) -> None:
        logger.info("Received signal %d, shutting down", signum)
        stopped.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    scheduler = service.build_scheduler()
    scheduler.start()
    try:
        stopped.wait()
    finally:
        scheduler.stop(timeout=30)
        service.close()


if __name__ == "__main__":
    run()
