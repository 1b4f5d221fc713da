"""
Standalone periodic trigger.

Usage:
    python -m app.worker              # tick every SCHEDULER_INTERVAL_SECONDS until SIGINT/SIGTERM
    python -m app.worker --once       # single tick, exit code 1 when it failed
    python -m app.worker --interval 30
"""
import argparse
import logging
import signal
import sys

from dotenv import load_dotenv

from app.core.config import settings
from app.core.database import init_db
from app.logging import setup_logging
from app.services.scheduler import build_scheduler

logger = logging.getLogger("geosched.worker")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run due scheduled analyses")
    parser.add_argument("--once", action="store_true", help="Run a single tick and exit")
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between ticks (default: SCHEDULER_INTERVAL_SECONDS)",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    setup_logging(level=args.log_level.upper())
    init_db()
    scheduler = build_scheduler()
    if args.interval:
        scheduler.interval_seconds = max(1, args.interval)

    if args.once:
        try:
            result = scheduler.tick()
        except Exception:
            # already logged and notified by tick()
            return 1
        logger.info("Tick done: processed=%s errors=%s reaped=%s", result.processed, result.errors, result.reaped)
        return 0

    def _shutdown(signum, frame):
        logger.info("%s received, stopping after the current tick", signal.Signals(signum).name)
        scheduler.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    logger.info(
        "Worker starting: interval=%ss max_workers=%s stuck_run_timeout=%smin",
        scheduler.interval_seconds,
        settings.scheduler_max_workers,
        settings.stuck_run_timeout_minutes,
    )
    scheduler.start()
    scheduler.wait()
    return 0


if __name__ == "__main__":
    sys.exit(main())
