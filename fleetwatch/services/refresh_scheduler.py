import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from opentelemetry import trace
from prometheus_client import Counter, Gauge, Histogram

from ..config import settings
from ..logs.log_parser import parse_lines
from ..models.container_models import ContainerRecord, ContainerStats, ImageVersion
from ..models.log_models import ParsedLogLine
from ..models.transaction_models import Statistics, TransactionInfo
from .docker_inventory import ContainerInventoryClient
from .transaction_monitor import TransactionMonitor
from .version_checker import check_versions, current_images

logger = logging.getLogger("fleetwatch.refresh_scheduler")
tracer = trace.get_tracer(__name__)

# --------------------------------------------------------------------------
# Prometheus metrics
# --------------------------------------------------------------------------

CHANNEL_PUBLISHED_TOTAL = Counter(
    "fleetwatch_channel_published_total",
    "Items published onto a refresh channel",
    ["channel"],
)

CHANNEL_DROPPED_TOTAL = Counter(
    "fleetwatch_channel_dropped_total",
    "Items dropped because a bounded refresh channel was full",
    ["channel"],
)

CHANNEL_DEPTH = Gauge(
    "fleetwatch_channel_depth",
    "Current number of unconsumed items per refresh channel",
    ["channel"],
)

POLL_ERRORS_TOTAL = Counter(
    "fleetwatch_poll_errors_total",
    "Refresh loop ticks skipped because of a transient failure",
    ["loop"],
)

TICK_DURATION_SECONDS = Histogram(
    "fleetwatch_tick_duration_seconds",
    "Duration of one refresh loop tick",
    ["loop"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
)


@dataclass
class Channels:
    """One queue per result type. Each has exactly one producing loop."""

    maxsize: int = 0
    containers: "asyncio.Queue[List[ContainerRecord]]" = field(init=False)
    stats: "asyncio.Queue[Dict[str, ContainerStats]]" = field(init=False)
    versions: "asyncio.Queue[Dict[str, ImageVersion]]" = field(init=False)
    transactions: "asyncio.Queue[List[TransactionInfo]]" = field(init=False)
    statistics: "asyncio.Queue[Statistics]" = field(init=False)
    logs: "asyncio.Queue[List[ParsedLogLine]]" = field(init=False)

    def __post_init__(self) -> None:
        for name in self.names():
            setattr(self, name, asyncio.Queue(maxsize=self.maxsize))

    @staticmethod
    def names() -> List[str]:
        return ["containers", "stats", "versions", "transactions", "statistics", "logs"]


class RefreshScheduler:
    """
    Runs the independent background refresh loops.

    Loops and cadences (seconds, see Settings):
      - inventory     every INVENTORY_INTERVAL
      - stats         after STATS_INITIAL_DELAY, then every STATS_INTERVAL
      - versions      immediately, then every VERSIONS_INTERVAL
      - transactions  every TX_POLL_INTERVAL, sharing one task with the
                      L1 refresh every L1_REFRESH_INTERVAL
      - tail          every TAIL_INTERVAL, only between start_tail/stop_tail

    No loop ever waits on the consumer: publishes use put_nowait and an item
    that does not fit a bounded channel is dropped and counted. A failing
    tick is logged, counted and skipped.
    """

    def __init__(
        self,
        inventory: ContainerInventoryClient,
        monitor: TransactionMonitor,
        channels: Optional[Channels] = None,
        version_checker: Callable[[Dict[str, str]], Awaitable[Dict[str, ImageVersion]]] = check_versions,
    ) -> None:
        self.inventory = inventory
        self.monitor = monitor
        self.channels = channels or Channels(maxsize=settings.CHANNEL_MAXSIZE)
        self.version_checker = version_checker

        self.inventory_interval = settings.INVENTORY_INTERVAL
        self.stats_interval = settings.STATS_INTERVAL
        self.stats_initial_delay = settings.STATS_INITIAL_DELAY
        self.versions_interval = settings.VERSIONS_INTERVAL
        self.tx_interval = settings.TX_POLL_INTERVAL
        self.l1_interval = settings.L1_REFRESH_INTERVAL
        self.tail_interval = settings.TAIL_INTERVAL
        self.tail_fetch_lines = settings.TAIL_FETCH_LINES

        self._tasks: List[asyncio.Task] = []
        self._tail_task: Optional[asyncio.Task] = None
        self.tail_service: Optional[str] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        """
        Start all process-lifetime loops.

        Raises InventoryUnavailableError if the container runtime cannot be
        reached. This is the only failure surfaced to the caller.
        """
        if self._tasks:
            return

        await self.inventory.ping()
        await self.monitor.start()

        logger.info("Starting refresh loops for project %s", self.inventory.project)
        self._tasks = [
            asyncio.create_task(self._inventory_loop(), name="fleetwatch.inventory"),
            asyncio.create_task(self._stats_loop(), name="fleetwatch.stats"),
            asyncio.create_task(self._versions_loop(), name="fleetwatch.versions"),
            asyncio.create_task(self._transactions_loop(), name="fleetwatch.transactions"),
        ]

    async def stop(self) -> None:
        await self.stop_tail()
        if not self._tasks:
            return
        logger.info("Stopping refresh loops")
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []

    async def start_tail(self, service: str) -> None:
        """Open the detail view on `service`, replacing any running tail."""
        await self.stop_tail()
        self.tail_service = service
        self._tail_task = asyncio.create_task(self._tail_loop(service), name="fleetwatch.tail")
        logger.info("Live tail started for %s", service)

    async def stop_tail(self) -> None:
        if self._tail_task is None:
            return
        self._tail_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._tail_task
        logger.info("Live tail stopped for %s", self.tail_service)
        self._tail_task = None
        self.tail_service = None

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def _publish(self, channel: str, item: Any) -> bool:
        queue: asyncio.Queue = getattr(self.channels, channel)
        try:
            queue.put_nowait(item)
        except asyncio.QueueFull:
            logger.warning("RefreshScheduler: channel %s full, dropping update", channel)
            CHANNEL_DROPPED_TOTAL.labels(channel=channel).inc()
            return False

        CHANNEL_PUBLISHED_TOTAL.labels(channel=channel).inc()
        CHANNEL_DEPTH.labels(channel=channel).set(queue.qsize())
        return True

    async def _tick(self, loop: str, fn: Callable[[], Awaitable[None]]) -> None:
        started = time.perf_counter()
        with tracer.start_as_current_span(f"fleetwatch.refresh.{loop}") as span:
            try:
                await fn()
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.warning("RefreshScheduler: %s tick failed: %s", loop, exc)
                POLL_ERRORS_TOTAL.labels(loop=loop).inc()
                span.set_attribute("fleetwatch.refresh.error", str(exc))
            finally:
                TICK_DURATION_SECONDS.labels(loop=loop).observe(time.perf_counter() - started)

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    async def refresh_inventory(self) -> None:
        containers = await self.inventory.list_containers()
        self._publish("containers", containers)

    async def refresh_stats(self) -> None:
        containers = await self.inventory.list_containers(with_metrics=False)
        running = [c for c in containers if c.state.is_running]

        results = await asyncio.gather(
            *(self.inventory.get_container_stats(c.id) for c in running),
            return_exceptions=True,
        )

        stats: Dict[str, ContainerStats] = {}
        for container, result in zip(running, results):
            if isinstance(result, BaseException):
                logger.debug("stats failed for %s: %s", container.name, result)
                continue
            stats[container.name] = result

        self._publish("stats", stats)

    async def refresh_versions(self) -> None:
        containers = await self.inventory.list_containers(with_metrics=False)
        images = current_images(c.image for c in containers)
        self._publish("versions", await self.version_checker(images))

    async def refresh_transactions(self) -> None:
        transactions = await self.monitor.poll_new_transactions()
        if transactions:
            self._publish("transactions", transactions)
        self._publish("statistics", await self.monitor.get_statistics())

    async def refresh_l1(self) -> None:
        await self.monitor.update_l1_data()

    async def refresh_tail(self, service: str) -> None:
        text = await self.inventory.fetch_logs(service, tail=self.tail_fetch_lines)
        # engine logs of one container carry no "service |" prefix
        lines = parse_lines(text, service=service)
        if lines:
            self._publish("logs", lines)

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------

    async def _inventory_loop(self) -> None:
        while True:
            await self._tick("inventory", self.refresh_inventory)
            await asyncio.sleep(self.inventory_interval)

    async def _stats_loop(self) -> None:
        # staggered so the first stats and inventory calls do not collide
        await asyncio.sleep(self.stats_initial_delay)
        while True:
            await self._tick("stats", self.refresh_stats)
            await asyncio.sleep(self.stats_interval)

    async def _versions_loop(self) -> None:
        while True:
            await self._tick("versions", self.refresh_versions)
            await asyncio.sleep(self.versions_interval)

    async def _transactions_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_tx = next_l1 = loop.time()

        while True:
            now = loop.time()
            if now >= next_l1:
                await self._tick("l1", self.refresh_l1)
                next_l1 = now + self.l1_interval
            if now >= next_tx:
                await self._tick("transactions", self.refresh_transactions)
                next_tx = now + self.tx_interval

            await asyncio.sleep(max(0.0, min(next_tx, next_l1) - loop.time()))

    async def _tail_loop(self, service: str) -> None:
        while True:
            await self._tick("tail", lambda: self.refresh_tail(service))
            await asyncio.sleep(self.tail_interval)
