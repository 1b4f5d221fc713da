"""Scheduler error taxonomy."""

# Fixed message written by the stuck-run reaper; the prefix keeps reaped runs distinguishable from engine failures.
REAPER_TIMEOUT_MESSAGE = (
    "ReaperTimeout: automatically marked as failed due to stuck running state (>{minutes} minutes)"
)


class SchedulerError(RuntimeError):
    pass


class RunConflict(SchedulerError):
    """Another execution of the same schedule is already running. Expected, not a failure."""

    def __init__(self, schedule_id: int):
        super().__init__(f"Schedule {schedule_id} already has a running instance, skipping")
        self.schedule_id = schedule_id


class EngineFailure(SchedulerError):
    """The analysis engine could not produce a result."""


class PersistenceFailure(SchedulerError):
    """The schedule store rejected or could not complete a read/write."""
