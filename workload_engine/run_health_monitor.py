# workload_engine/run_health_monitor.py
"""Run the health monitor service."""

import logging
import sys

from workload_engine.container import build_components, build_health_monitor
from workload_engine.core.errors import EngineUnavailable

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main():
    """Main entry point."""
    logger.info("Starting Health Monitor")

    try:
        monitor = build_health_monitor(build_components())
    except EngineUnavailable as e:
        logger.error(f"Cannot start health monitor: {e}")
        sys.exit(1)

    try:
        monitor.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
