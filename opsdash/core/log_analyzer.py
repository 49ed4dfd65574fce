"""Log Insight Generator: per-category error summaries from a text model."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Callable

from ..types import (
    AnalysisBusyError,
    CachedAnalysis,
    LLMProvider,
    LogAnalysis,
    LogAnalysisError,
    LogRecord,
    StateStore,
    _dt_to_str,
    _str_to_dt,
)

logger = logging.getLogger(__name__)

STORAGE_KEY = "logAnalysisCache"
DEFAULT_CACHE_DURATION = timedelta(hours=2)

# Greedy: from the first "{" to the last "}" in the response.
_JSON_SPAN = re.compile(r"\{[\s\S]*\}")

LOG_ANALYSIS_SYSTEM = "You are a log analysis expert."

LOG_ANALYSIS_PROMPT = """\
Analyze these Redis error logs and provide a concise JSON response with multiple \
error analyses. Each error should have up to 30 words per field:

<category_data>{log_text}</category_data>

{{
  "errors": [
    {{
      "summary": "<error description>",
      "rootCause": "<technical explanation>",
      "sourceLocation": "<file/function name>",
      "suggestedFix": "<solution>",
      "severity": "<critical|high|medium|low>"
    }}
  ],
  "severity": "<overall severity level: critical|high|medium|low>"
}}

Group similar errors together and identify unique error patterns. Focus on \
actionable insights and technical precision."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_logs_for_analysis(logs: list[LogRecord]) -> str:
    blocks = []
    for log in logs:
        lines = [
            "",
            f"Timestamp: {_dt_to_str(log.timestamp)}",
            f"Category: {log.category}",
            f"Message: {log.message}",
        ]
        if log.metadata:
            lines.append(f"Metadata: {json.dumps(log.metadata, indent=2, default=str)}")
        lines.append("-------------------")
        blocks.append("\n".join(lines))
    return "\n".join(blocks)


def extract_analysis(text: str) -> LogAnalysis:
    """Pull the first brace-delimited JSON object out of free text.

    Raises ValueError when there is no such span or it does not decode to
    an object.
    """
    match = _JSON_SPAN.search(text or "")
    if not match:
        raise ValueError("Invalid response format from model")
    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("Model response is not a JSON object")
    return LogAnalysis.from_dict(data)


class LogAnalyzer:
    """Single-flight, cached log analysis.

    Only one analysis runs at a time per analyzer; a second request while
    one is in flight gets AnalysisBusyError instead of queueing. The busy
    flag is only safe on a single event loop.
    """

    def __init__(
        self,
        provider: LLMProvider,
        store: StateStore,
        *,
        cache_duration: timedelta = DEFAULT_CACHE_DURATION,
        max_tokens: int = 2048,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._provider = provider
        self._store = store
        self.cache_duration = cache_duration
        self.max_tokens = max_tokens
        self._clock = clock
        self._analyzing = False
        self._cache: dict[str, CachedAnalysis] = {}
        self._load()

    def _load(self) -> None:
        raw = self._store.get(STORAGE_KEY)
        if not raw:
            return
        try:
            for category, entry in raw.items():
                self._cache[category] = CachedAnalysis(
                    analysis=LogAnalysis.from_dict(entry["analysis"]),
                    timestamp=_str_to_dt(entry["timestamp"]),
                )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error("Error loading analysis cache: %s", e)
            self._cache = {}

    def _save(self) -> None:
        self._store.set(STORAGE_KEY, {
            category: {
                "analysis": cached.analysis.to_dict(),
                "timestamp": _dt_to_str(cached.timestamp),
            }
            for category, cached in self._cache.items()
        })

    def is_analyzing(self) -> bool:
        return self._analyzing

    def _is_cache_valid(self, category: str) -> bool:
        cached = self._cache.get(category)
        if cached is None or cached.timestamp is None:
            return False
        return self._clock() - cached.timestamp < self.cache_duration

    def get_cached(self, category: str) -> LogAnalysis | None:
        if self._is_cache_valid(category):
            return self._cache[category].analysis
        return None

    async def analyze(self, logs: list[LogRecord]) -> LogAnalysis:
        if not logs:
            raise LogAnalysisError("No logs provided for analysis")

        category = logs[0].category or ""
        cached = self.get_cached(category)
        if cached is not None:
            logger.debug("Analysis cache hit for category %r", category)
            return cached

        if self._analyzing:
            raise AnalysisBusyError()

        self._analyzing = True
        try:
            prompt = LOG_ANALYSIS_PROMPT.format(log_text=format_logs_for_analysis(logs))
            text = await asyncio.to_thread(
                self._provider.complete,
                system=LOG_ANALYSIS_SYSTEM,
                user=prompt,
                max_tokens=self.max_tokens,
            )
            analysis = extract_analysis(text)
        except Exception as e:
            logger.error("Error analyzing %d logs for category %r: %s", len(logs), category, e)
            raise LogAnalysisError("Failed to analyze logs") from e
        finally:
            self._analyzing = False

        self._cache[category] = CachedAnalysis(analysis=analysis, timestamp=self._clock())
        self._save()
        return analysis

    async def analyze_by_category(
        self, logs: list[LogRecord], categories: list[str],
    ) -> dict[str, LogAnalysis]:
        """Analyze each category that has logs, one after another."""
        results: dict[str, LogAnalysis] = {}
        for category in categories:
            subset = [log for log in logs if log.category == category]
            if not subset:
                continue
            results[category] = await self.analyze(subset)
        return results

    def clear_cache(self) -> None:
        self._cache.clear()
        self._store.remove(STORAGE_KEY)
