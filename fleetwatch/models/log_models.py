"""
Pydantic models for parsed service logs and log-derived service status.

These models are used across:
  - LogLineParser (one raw line -> ParsedLogLine)
  - ServiceMetricsExtractor (log window -> ServiceMetrics)
  - LiveTailBuffer and the /v1/logs endpoint
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Log level
# ---------------------------------------------------------------------------

class LogLevel(str, Enum):
    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"
    DEBUG = "DEBUG"
    TRACE = "TRACE"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_keyword(cls, keyword: str) -> "LogLevel":
        """Exact level token as captured by a format matcher."""
        try:
            return cls(keyword.strip().upper())
        except ValueError:
            return cls.UNKNOWN

    @classmethod
    def from_text(cls, text: str) -> "LogLevel":
        """
        Substring search for a level keyword anywhere in `text`.

        Deliberately loose: "[ERROR]" or "error:" both count. Priority is
        ERROR > WARN > INFO > DEBUG > TRACE, first hit wins.
        """
        upper = text.upper()
        for level in (cls.ERROR, cls.WARN, cls.INFO, cls.DEBUG, cls.TRACE):
            if level.value in upper:
                return level
        return cls.UNKNOWN


# ---------------------------------------------------------------------------
# Parsed log line
# ---------------------------------------------------------------------------

class ParsedLogLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: str = ""
    service: str = Field("", description="Compose service prefix before the first '|'.")
    module_path: str = Field("", description="Source module, e.g. viaduct::uni_storage")
    module_short: str = Field("", description="Last '::' segment of module_path")
    level: LogLevel = LogLevel.UNKNOWN
    message: str = ""
    raw_line: str = Field(..., description="Unmodified input line.")


# ---------------------------------------------------------------------------
# Service status derived from a log window
# ---------------------------------------------------------------------------

class ServiceMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    status_text: Optional[str] = Field(
        default=None,
        description='Current status indicator, e.g. "Synced", "Syncing", "Building".',
    )
    primary_metric: Optional[str] = Field(
        default=None,
        description="Primary metric, e.g. block number, TPS, DAA score.",
    )
    secondary_metric: Optional[str] = Field(
        default=None,
        description="Secondary metric, e.g. latency, queue length, peers.",
    )
    is_healthy: bool = False
