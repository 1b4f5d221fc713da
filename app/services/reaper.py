"""Stuck-run reaper: force-fails runs left in running state past the liveness timeout."""
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from app.core.database import utcnow
from app.services.errors import REAPER_TIMEOUT_MESSAGE

logger = logging.getLogger("geosched.reaper")

DEFAULT_STUCK_RUN_TIMEOUT = timedelta(minutes=10)


class StuckRunReaper:
    """
    Runs once per tick before selection. Idempotent: with nothing stale it is a
    no-op. Only runs whose started_at is older than the timeout are touched, so a
    slow but alive run inside the window keeps its row.
    """

    def __init__(
        self,
        store,
        timeout: timedelta = DEFAULT_STUCK_RUN_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.timeout = timeout
        self._clock = clock

    @property
    def message(self) -> str:
        return REAPER_TIMEOUT_MESSAGE.format(minutes=int(self.timeout.total_seconds() // 60))

    def reap(self) -> int:
        older_than = self._clock() - self.timeout
        count = self.store.reap_stale_running_runs(older_than, self.message)
        if count > 0:
            # A previous execution crashed or hung
            logger.warning("Reaped %s stuck run(s) started before %s", count, older_than.isoformat())
        return count
