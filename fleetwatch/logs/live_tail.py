from collections import deque
from itertools import islice
from typing import Deque, Iterable, List, Optional

from ..models.log_models import LogLevel, ParsedLogLine

MAX_LOG_LINES = 10_000
DEDUP_WINDOW = 100


class LiveTailBuffer:
    """
    Bounded, deduplicating accumulator for polled log tails.

    The tail loop re-fetches the last N lines on every tick, so consecutive
    fetches overlap. A line is skipped when its raw text matches one of the
    last DEDUP_WINDOW entries already held (lines added earlier in the same
    batch count too). Oldest lines are evicted once the cap is exceeded.

    scroll_offset is the consumer's distance from the bottom, 0 meaning
    "follow". It is shifted down by the evicted count on every append so
    the visible window does not jump.
    """

    def __init__(self, max_lines: int = MAX_LOG_LINES, dedup_window: int = DEDUP_WINDOW):
        self.max_lines = max_lines
        self.dedup_window = dedup_window
        self.scroll_offset = 0
        self._lines: Deque[ParsedLogLine] = deque()

    def __len__(self) -> int:
        return len(self._lines)

    def _recent_raw(self) -> set:
        return {line.raw_line for line in islice(reversed(self._lines), self.dedup_window)}

    def append(self, new_lines: Iterable[ParsedLogLine]) -> int:
        """Append new lines, returns how many old lines were evicted."""
        for line in new_lines:
            if line.raw_line in self._recent_raw():
                continue
            self._lines.append(line)

        evicted = 0
        while len(self._lines) > self.max_lines:
            self._lines.popleft()
            evicted += 1

        if evicted:
            self.scroll_offset = max(0, self.scroll_offset - evicted)
        return evicted

    def lines(self) -> List[ParsedLogLine]:
        return list(self._lines)

    def tail(self, n: int) -> List[ParsedLogLine]:
        if n <= 0:
            return []
        start = max(0, len(self._lines) - n)
        return list(islice(self._lines, start, None))

    def filter(
        self,
        level: Optional[LogLevel] = None,
        module: Optional[str] = None,
    ) -> List[ParsedLogLine]:
        needle = module.lower() if module else None
        out = []
        for line in self._lines:
            if level is not None and line.level != level:
                continue
            if needle and needle not in line.module_path.lower():
                continue
            out.append(line)
        return out

    def clear(self) -> None:
        self._lines.clear()
        self.scroll_offset = 0
