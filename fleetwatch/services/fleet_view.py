import asyncio
import logging
from enum import Enum
from typing import Dict, List, Optional

from ..logs.live_tail import LiveTailBuffer
from ..models.container_models import ContainerRecord, ContainerStats, ImageVersion
from ..models.log_models import ParsedLogLine
from ..models.transaction_models import Statistics, TransactionInfo, TransactionType
from .refresh_scheduler import CHANNEL_DEPTH, Channels
from .tx_recorder import TransactionRecorder

logger = logging.getLogger("fleetwatch.fleet_view")

FEED_SIZE = 100


class TransactionFilter(str, Enum):
    ALL = "all"
    TRANSFER = "transfer"
    CONTRACT = "contract"
    ENTRY = "entry"

    def matches(self, tx_type: TransactionType) -> bool:
        if self is TransactionFilter.ALL:
            return True
        return tx_type.value == self.value.upper()


class FleetView:
    """
    The single consumer of the refresh channels.

    drain_all() is called once per frame. It empties every channel without
    blocking and applies each item to the view state. Channels are handled
    independently, nothing here assumes two channels are in sync.
    """

    def __init__(
        self,
        channels: Channels,
        recorder: Optional[TransactionRecorder] = None,
        feed_size: int = FEED_SIZE,
    ) -> None:
        self.channels = channels
        self.recorder = recorder
        self.feed_size = feed_size

        self.containers: List[ContainerRecord] = []
        self.stats: Dict[str, ContainerStats] = {}
        self.versions: Dict[str, ImageVersion] = {}
        self.statistics: Statistics = Statistics()
        self.transactions: List[TransactionInfo] = []  # newest first
        self.filter = TransactionFilter.ALL

        self.tail = LiveTailBuffer()
        self.tail_service: Optional[str] = None

    # ------------------------------------------------------------------
    # Draining
    # ------------------------------------------------------------------

    def drain_all(self) -> Dict[str, int]:
        """Apply everything currently queued. Returns items applied per channel."""
        applied = {}
        for name in Channels.names():
            queue: asyncio.Queue = getattr(self.channels, name)
            apply = getattr(self, f"_apply_{name}")
            count = 0
            while True:
                try:
                    item = queue.get_nowait()
                except asyncio.QueueEmpty:
                    break
                apply(item)
                count += 1
            CHANNEL_DEPTH.labels(channel=name).set(0)
            applied[name] = count
        return applied

    def _apply_containers(self, containers: List[ContainerRecord]) -> None:
        self.containers = containers

    def _apply_stats(self, stats: Dict[str, ContainerStats]) -> None:
        self.stats = stats

    def _apply_versions(self, versions: Dict[str, ImageVersion]) -> None:
        self.versions = versions

    def _apply_statistics(self, statistics: Statistics) -> None:
        self.statistics = statistics

    def _apply_transactions(self, transactions: List[TransactionInfo]) -> None:
        if self.recorder is not None:
            self.recorder.record(transactions)
        for tx in transactions:
            self.transactions.insert(0, tx)
        del self.transactions[self.feed_size:]

    def _apply_logs(self, lines: List[ParsedLogLine]) -> None:
        # late batch from a tail that was already switched away
        if self.tail_service is None:
            return
        lines = [line for line in lines if line.service in ("", self.tail_service)]
        self.tail.append(lines)

    # ------------------------------------------------------------------
    # Detail view
    # ------------------------------------------------------------------

    def open_tail(self, service: str) -> None:
        if service != self.tail_service:
            self.tail.clear()
        self.tail_service = service

    def close_tail(self) -> None:
        self.tail_service = None
        self.tail.clear()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def filtered_transactions(self, tx_filter: Optional[TransactionFilter] = None) -> List[TransactionInfo]:
        f = tx_filter or self.filter
        return [tx for tx in self.transactions if f.matches(tx.tx_type)]

    def container(self, name: str) -> Optional[ContainerRecord]:
        for c in self.containers:
            if c.name == name:
                return c
        return None
