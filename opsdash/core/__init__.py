from .auth import DashboardAuth
from .entity_cache import EntityCache
from .log_analyzer import LogAnalyzer
from .log_cache import LogCacheManager
from .log_source import HttpLogSource
from .research_stats import ResearchStatsCache

__all__ = [
    "DashboardAuth",
    "EntityCache",
    "HttpLogSource",
    "LogAnalyzer",
    "LogCacheManager",
    "ResearchStatsCache",
]
