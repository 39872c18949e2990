import re
from typing import List, Optional, Tuple

from ..models.log_models import LogLevel, ParsedLogLine

_LEVELS = r"(ERROR|WARN|INFO|DEBUG|TRACE)"
_ISO_TS = r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?Z?"


class LogLineParser:
    """
    Normalizes one raw container log line into a ParsedLogLine.

    Lines come from the compose log multiplexer ("service | payload") and
    the payload can be in any of the fleet's dialects: kaspad's
    "date time [LEVEL ] msg", env_logger's "[ts LEVEL module] msg",
    block-builder's "HH:MM:SS LEVEL module: src/file.rs:12: msg", or
    tracing's "ts  LEVEL target: msg". Matchers are tried in that order,
    first match wins. Anything else degrades to a message-only record.

    parse() never raises.
    """

    ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")

    # 1. kaspad: "2025-10-18 20:45:37.476+00:00 [INFO ] Accepted 7 blocks"
    BRACKETED_LEVEL = re.compile(
        r"^(\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:[+-]\d{2}:\d{2})?)"
        r"\s+\[" + _LEVELS + r"\s*\]\s+(.*)$"
    )

    # 2. env_logger: "[2025-10-21T08:48:40Z INFO viaduct::uni_storage] message"
    BRACKETED_PREFIX = re.compile(
        r"^\[(" + _ISO_TS + r")\s+" + _LEVELS + r"\s+([^\]]+)\]\s*(.*)$"
    )

    # 3. time only: "10:37:06.342 INFO block_builder::payload: src/job.rs:88: Built"
    TIME_ONLY = re.compile(
        r"^(\d{2}:\d{2}:\d{2}(?:\.\d+)?)\s+" + _LEVELS + r"\s+(.+)$"
    )

    # 4. tracing: "2025-10-21T10:37:06.342076Z  INFO reth_node_events::node: Canonical chain committed"
    ISO_LEVEL = re.compile(
        r"^(" + _ISO_TS + r")\s+" + _LEVELS + r"\s+(.+)$"
    )

    # 5. any timestamp somewhere in the line
    BARE_TIMESTAMP = re.compile(
        r"\d{4}-\d{2}-\d{2}[T\s]\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:\d{2})?"
    )

    def strip_ansi(self, text: str) -> str:
        return self.ANSI_ESCAPE.sub("", text)

    def parse(self, raw_line: str, service: Optional[str] = None) -> ParsedLogLine:
        """
        With `service` given the line is taken as a bare payload (Docker
        Engine logs of a single container) and any "|" belongs to the message.
        """
        line = self.strip_ansi(raw_line)

        rest = line
        if service is None:
            service = ""
            if "|" in line:
                prefix, _, rest = line.partition("|")
                service = prefix.strip()
        rest = rest.strip()

        for matcher in (
            self._match_bracketed_level,
            self._match_bracketed_prefix,
            self._match_time_only,
            self._match_iso_level,
            self._match_bare_timestamp,
        ):
            fields = matcher(rest)
            if fields is not None:
                return ParsedLogLine(service=service, raw_line=raw_line, **fields)

        return ParsedLogLine(
            service=service,
            level=LogLevel.UNKNOWN,
            message=rest,
            raw_line=raw_line,
        )

    # ------------------------------------------------------------------
    # Format matchers: return ParsedLogLine fields or None
    # ------------------------------------------------------------------

    def _match_bracketed_level(self, rest: str) -> Optional[dict]:
        m = self.BRACKETED_LEVEL.match(rest)
        if not m:
            return None
        timestamp, level, message = m.groups()
        return {
            "timestamp": timestamp,
            "level": LogLevel.from_keyword(level),
            "message": message,
        }

    def _match_bracketed_prefix(self, rest: str) -> Optional[dict]:
        m = self.BRACKETED_PREFIX.match(rest)
        if not m:
            return None
        timestamp, level, module_path, message = m.groups()
        module_path = module_path.strip()

        # block-builder puts its file locator inside the brackets:
        # "[ts INFO block_builder::job: src/job.rs:88] Built"
        head, sep, tail = module_path.partition(": ")
        if sep and _is_source_locator(tail):
            module_path = head.strip()

        return {
            "timestamp": timestamp,
            "level": LogLevel.from_keyword(level),
            "module_path": module_path,
            "module_short": _short_module(module_path),
            "message": message,
        }

    def _match_time_only(self, rest: str) -> Optional[dict]:
        m = self.TIME_ONLY.match(rest)
        if not m:
            return None
        timestamp, level, remainder = m.groups()
        module_path, message = _split_module(remainder.strip(), detect_locator=True)
        return {
            "timestamp": timestamp,
            "level": LogLevel.from_keyword(level),
            "module_path": module_path,
            "module_short": _short_module(module_path),
            "message": message,
        }

    def _match_iso_level(self, rest: str) -> Optional[dict]:
        m = self.ISO_LEVEL.match(rest)
        if not m:
            return None
        timestamp, level, remainder = m.groups()
        module_path, message = _split_module(remainder.strip(), detect_locator=False)
        return {
            "timestamp": timestamp,
            "level": LogLevel.from_keyword(level),
            "module_path": module_path,
            "module_short": _short_module(module_path),
            "message": message,
        }

    def _match_bare_timestamp(self, rest: str) -> Optional[dict]:
        m = self.BARE_TIMESTAMP.search(rest)
        if not m:
            return None
        after = rest[m.end():].strip()
        return {
            "timestamp": m.group(0),
            "level": LogLevel.from_text(after),
            "message": after,
        }


def _is_source_locator(text: str) -> bool:
    return text.startswith("src/") or text.startswith("/")


def _short_module(module_path: str) -> str:
    return module_path.split("::")[-1] if module_path else ""


def _split_module(remainder: str, detect_locator: bool) -> Tuple[str, str]:
    """
    "module::path: message"                     -> (module::path, message)
    "module::path: src/file.rs:12: message"     -> (module::path, message)  [detect_locator]
    "no colon here"                             -> ("", whole remainder)
    """
    head, sep, tail = remainder.partition(": ")
    if not sep:
        return "", remainder
    if detect_locator and _is_source_locator(tail):
        _locator, sep2, message = tail.partition(": ")
        return head, message if sep2 else ""
    return head, tail


_default_parser = LogLineParser()


def parse_log_line(raw_line: str) -> ParsedLogLine:
    return _default_parser.parse(raw_line)


def parse_lines(text: str, service: Optional[str] = None) -> List[ParsedLogLine]:
    """Parse multi-line runtime output, skipping blank lines."""
    return [
        _default_parser.parse(line, service=service)
        for line in text.splitlines()
        if line.strip()
    ]
