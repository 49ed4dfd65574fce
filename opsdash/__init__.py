"""opsdash: operations dashboard for outbound interactions, job queues and error logs."""

from .config import load_config
from .core import EntityCache, LogAnalyzer, LogCacheManager, ResearchStatsCache
from .types import (
    LogAnalysis,
    LogFilters,
    LogRecord,
    LogStats,
    OpsDashConfig,
    OpsDashError,
    ResearchStats,
)

__version__ = "0.1.0"

__all__ = [
    "EntityCache",
    "LogAnalyzer",
    "LogCacheManager",
    "ResearchStatsCache",
    "load_config",
    "LogAnalysis",
    "LogFilters",
    "LogRecord",
    "LogStats",
    "OpsDashConfig",
    "OpsDashError",
    "ResearchStats",
]
