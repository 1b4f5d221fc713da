from .auth import Token, UserCreate, UserLogin, UserResponse
from .schedules import (
    ActiveToggle,
    ExecuteResponse,
    RunOut,
    ScheduleIn,
    ScheduleOut,
    ScheduleSnapshot,
    TickSummary,
)

__all__ = [
    "ActiveToggle",
    "ExecuteResponse",
    "RunOut",
    "ScheduleIn",
    "ScheduleOut",
    "ScheduleSnapshot",
    "TickSummary",
    "Token",
    "UserCreate",
    "UserLogin",
    "UserResponse",
]
