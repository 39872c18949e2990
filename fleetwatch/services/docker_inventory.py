import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

import docker
import requests
from docker.errors import DockerException
from opentelemetry import trace
from prometheus_client import Counter, Histogram

from ..collector.reth_metrics import RethMetrics
from ..config import settings
from ..logs.service_metrics import ServiceMetricsExtractor, apply_reth_metrics
from ..models.container_models import ContainerRecord, ContainerStats, RunState

logger = logging.getLogger("fleetwatch.docker_inventory")
tracer = trace.get_tracer(__name__)

DOCKER_API_CALLS_TOTAL = Counter(
    "fleetwatch_docker_api_calls_total",
    "Docker Engine API calls made by the inventory client",
    ["op", "result"],  # op: ping|list|stats|logs, result: ok|error
)

DOCKER_API_LATENCY_SECONDS = Histogram(
    "fleetwatch_docker_api_latency_seconds",
    "Docker Engine API call latency",
    ["op"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)

EXECUTION_LAYER_SERVICE = "execution-layer"


class InventoryUnavailableError(RuntimeError):
    """The container runtime cannot be reached at all."""


def split_image_ref(image: str) -> Tuple[str, str]:
    """
    "registry.io/igranetwork/viaduct:v1.2" -> ("viaduct", "v1.2")
    "kaspanet/rusty-kaspad"                -> ("rusty-kaspad", "latest")
    "localhost:5000/reth"                  -> ("reth", "latest")
    """
    last = image.rsplit("/", 1)[-1]
    name, sep, tag = last.partition(":")
    return name, (tag if sep and tag else "latest")


def parse_health(status: str) -> Optional[str]:
    s = (status or "").lower()
    # "unhealthy" contains "healthy"
    if "unhealthy" in s:
        return "unhealthy"
    if "starting" in s:
        return "starting"
    if "healthy" in s:
        return "healthy"
    return None


def format_ports(ports: Optional[List[Dict[str, Any]]]) -> List[str]:
    out = []
    for p in ports or []:
        public = p.get("PublicPort")
        if public is None:
            continue
        out.append(f"{p.get('IP') or '0.0.0.0'}:{public}->{p.get('PrivatePort')}")
    return out


def compute_stats(raw: Dict[str, Any]) -> ContainerStats:
    """One-shot stats payload -> ContainerStats (CPU % across all online CPUs)."""
    cpu = raw.get("cpu_stats") or {}
    precpu = raw.get("precpu_stats") or {}

    cpu_delta = (cpu.get("cpu_usage") or {}).get("total_usage", 0) - (
        precpu.get("cpu_usage") or {}
    ).get("total_usage", 0)
    system_delta = (cpu.get("system_cpu_usage") or 0) - (precpu.get("system_cpu_usage") or 0)
    online_cpus = cpu.get("online_cpus") or 1

    cpu_percent = 0.0
    if system_delta > 0:
        cpu_percent = cpu_delta / system_delta * online_cpus * 100.0

    memory = raw.get("memory_stats") or {}
    eth0 = (raw.get("networks") or {}).get("eth0") or {}

    return ContainerStats(
        cpu_percent=cpu_percent,
        memory_usage=memory.get("usage") or 0,
        memory_limit=memory.get("limit") or 0,
        network_rx=eth0.get("rx_bytes") or 0,
        network_tx=eth0.get("tx_bytes") or 0,
    )


class ContainerInventoryClient:
    """
    Read-only view of the compose project's containers via the Docker
    Engine API.

    The docker SDK is blocking, every call goes through asyncio.to_thread.
    Only ping() is allowed to fail hard. Everything else raises ordinary
    DockerException that the refresh loops treat as a skipped tick.
    """

    def __init__(
        self,
        client: Optional[docker.DockerClient] = None,
        project: Optional[str] = None,
        extractor: Optional[ServiceMetricsExtractor] = None,
        metrics_log_lines: Optional[int] = None,
        reth_metrics_fetcher=None,
    ) -> None:
        self._client = client
        self.project = project or settings.PROJECT
        self.extractor = extractor or ServiceMetricsExtractor()
        self.metrics_log_lines = metrics_log_lines or settings.METRICS_LOG_LINES
        # async () -> RethMetrics, used to overlay execution-layer status
        self.reth_metrics_fetcher = reth_metrics_fetcher

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            self._client = docker.from_env(timeout=int(settings.DOCKER_TIMEOUT))
        return self._client

    async def _call(self, op: str, fn, *args, **kwargs):
        with DOCKER_API_LATENCY_SECONDS.labels(op=op).time():
            try:
                result = await asyncio.to_thread(fn, *args, **kwargs)
            except Exception:
                DOCKER_API_CALLS_TOTAL.labels(op=op, result="error").inc()
                raise
        DOCKER_API_CALLS_TOTAL.labels(op=op, result="ok").inc()
        return result

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def ping(self) -> None:
        try:
            await self._call("ping", lambda: self.client.ping())
        except (DockerException, requests.RequestException) as exc:
            raise InventoryUnavailableError(
                f"Cannot reach the Docker daemon. Is Docker running? ({exc})"
            ) from exc

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def _to_record(self, summary: Dict[str, Any]) -> ContainerRecord:
        names = summary.get("Names") or []
        name = names[0].lstrip("/") if names else "unknown"
        status = summary.get("Status") or "unknown"
        return ContainerRecord(
            id=summary.get("Id", ""),
            name=name,
            image=summary.get("Image", ""),
            status=status,
            state=RunState.from_status(summary.get("State") or status),
            health=parse_health(status),
            created=summary.get("Created") or 0,
            ports=format_ports(summary.get("Ports")),
        )

    async def _list_raw(self) -> List[Dict[str, Any]]:
        return await self._call(
            "list",
            lambda: self.client.api.containers(
                all=True,
                filters={"label": f"com.docker.compose.project={self.project}"},
            ),
        )

    async def list_containers(self, with_metrics: bool = True) -> List[ContainerRecord]:
        """
        All project containers, running ones annotated with ServiceMetrics
        extracted from their last few log lines (fetched in parallel).

        with_metrics=False skips the log fetch, for callers that only need
        ids, names and images.
        """
        with tracer.start_as_current_span("fleetwatch.inventory.list") as span:
            records = [self._to_record(s) for s in await self._list_raw()]
            span.set_attribute("fleetwatch.containers.count", len(records))
            if not with_metrics:
                return records

            running = [r for r in records if r.state.is_running]
            logs = await asyncio.gather(
                *(self.fetch_logs(r.name, tail=self.metrics_log_lines) for r in running),
                return_exceptions=True,
            )

            reth: Optional[RethMetrics] = None
            if self.reth_metrics_fetcher is not None and any(
                r.name == EXECUTION_LAYER_SERVICE for r in running
            ):
                try:
                    reth = await self.reth_metrics_fetcher()
                except Exception as exc:  # noqa: BLE001
                    logger.debug("execution-layer metrics unavailable: %s", exc)

            metrics_by_name = {}
            for record, text in zip(running, logs):
                if isinstance(text, BaseException):
                    logger.debug("log fetch failed for %s: %s", record.name, text)
                    continue
                metrics = self.extractor.extract(record.name, text)
                if record.name == EXECUTION_LAYER_SERVICE:
                    metrics = apply_reth_metrics(metrics, reth)
                metrics_by_name[record.name] = metrics

            return [
                r.model_copy(update={"metrics": metrics_by_name[r.name]})
                if r.name in metrics_by_name
                else r
                for r in records
            ]

    async def get_container(self, name: str) -> Optional[ContainerRecord]:
        for summary in await self._list_raw():
            record = self._to_record(summary)
            if record.name == name:
                return record
        return None

    # ------------------------------------------------------------------
    # Stats / logs
    # ------------------------------------------------------------------

    async def get_container_stats(self, container_id: str) -> ContainerStats:
        raw = await self._call(
            "stats",
            lambda: self.client.api.stats(container_id, stream=False),
        )
        return compute_stats(raw)

    async def fetch_logs(self, name: str, tail: Optional[int] = None) -> str:
        raw = await self._call(
            "logs",
            lambda: self.client.api.logs(
                name,
                stdout=True,
                stderr=True,
                tail=tail if tail is not None else "all",
            ),
        )
        if isinstance(raw, bytes):
            return raw.decode("utf-8", errors="replace")
        return raw or ""

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
