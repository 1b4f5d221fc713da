from .analysis_result import AnalysisResult
from .error_log import ErrorLog
from .scheduled_analysis import ScheduledAnalysis, ScheduledRun
from .user import User

__all__ = [
    "AnalysisResult",
    "ErrorLog",
    "ScheduledAnalysis",
    "ScheduledRun",
    "User",
]
