"""
Per-service status inference from a short window of raw log text.

Most fleet services have no status API, so "Synced" / "Behind" / TPS are
re-derived from the last ~20 log lines on every inventory poll. Each
service family applies its own regex set against the *whole* window and
takes the first match per pattern. Nothing is carried between calls.
"""

import re
from enum import Enum
from functools import lru_cache
from typing import Callable, Dict, List, Optional, Tuple

from ..models.log_models import ServiceMetrics
from ..utils.formatting import format_large_number, format_latency_us


class ServiceFamily(str, Enum):
    SETTLEMENT_NODE = "kaspad"
    EXECUTION_LAYER = "execution-layer"
    BRIDGE = "viaduct"
    BLOCK_BUILDER = "block-builder"
    RPC_PROVIDER = "rpc-provider"
    WALLET = "kaswallet"
    HEALTH_CHECK = "node-health-check"
    REVERSE_PROXY = "traefik"
    UNKNOWN = "unknown"


# Ordered: first substring contained in the service name wins.
FAMILY_REGISTRY: List[Tuple[str, ServiceFamily]] = [
    ("kaspad", ServiceFamily.SETTLEMENT_NODE),
    ("execution-layer", ServiceFamily.EXECUTION_LAYER),
    ("viaduct", ServiceFamily.BRIDGE),
    ("block-builder", ServiceFamily.BLOCK_BUILDER),
    ("rpc-provider", ServiceFamily.RPC_PROVIDER),
    ("kaswallet", ServiceFamily.WALLET),
    ("node-health-check", ServiceFamily.HEALTH_CHECK),
    ("traefik", ServiceFamily.REVERSE_PROXY),
]


@lru_cache(maxsize=256)
def resolve_family(service_name: str) -> ServiceFamily:
    for needle, family in FAMILY_REGISTRY:
        if needle in service_name:
            return family
    return ServiceFamily.UNKNOWN


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

KASPAD_ACCEPTED = re.compile(r"Accepted (\d+) blocks.*via relay")
KASPAD_TPS = re.compile(r"Tx throughput stats: ([\d.]+) u-tps")
KASPAD_PROCESSED = re.compile(r"Processed (\d+) blocks and (\d+) headers")

EL_BLOCK = re.compile(r"Block added to canonical chain.*number=(\d+)")
EL_TXS = re.compile(r"txs=(\d+)")
EL_PEERS = re.compile(r"peers=(\d+)")

VIADUCT_DAA = re.compile(r"with score (\d+) to the queue")
VIADUCT_LATENCY = re.compile(r"Sending took (\d+) ms")
VIADUCT_QUEUE = re.compile(r"len now (\d+)")
VIADUCT_LATENCY_LIMIT_MS = 100

BUILDER_BUILT = re.compile(r"Block built with (\d+) transactions")
BUILDER_BUILDING = re.compile(r"Building payload on parent")

RPC_REQUEST = re.compile(r"RPC REQUEST.*method=(\w+)")
RPC_TIME_US = re.compile(r"time=([\d.]+)µs")
RPC_TIME_MS = re.compile(r"time=([\d.]+)ms")
# request lines in the window are assumed to span ~10s
RPC_WINDOW_SECONDS = 10

HEALTH_CHECKPOINT = re.compile(r"checkpoint block (\d+).*latest: (\d+)")


# ---------------------------------------------------------------------------
# Family extractors
# ---------------------------------------------------------------------------

def _settlement_node(logs: str) -> ServiceMetrics:
    accepted = KASPAD_ACCEPTED.search(logs)
    if accepted:
        tps = KASPAD_TPS.search(logs)
        return ServiceMetrics(
            status_text="Synced",
            primary_metric=f"{tps.group(1)} TPS" if tps else None,
            is_healthy=True,
        )

    processed = KASPAD_PROCESSED.search(logs)
    if processed:
        blocks, headers = processed.groups()
        return ServiceMetrics(
            status_text="Syncing",
            primary_metric=f"{blocks} blk/10s",
            secondary_metric=f"{headers} hdr",
            is_healthy=True,
        )

    if "ERROR" in logs or "WARN" in logs:
        return ServiceMetrics(status_text="Warning", is_healthy=False)

    return ServiceMetrics(is_healthy=True)


def _execution_layer(logs: str) -> ServiceMetrics:
    block = EL_BLOCK.search(logs)
    if not block:
        return ServiceMetrics(is_healthy=True)

    secondary = None
    txs = EL_TXS.search(logs)
    if txs:
        secondary = f"{txs.group(1)} txs"
    else:
        peers = EL_PEERS.search(logs)
        if peers:
            secondary = f"{peers.group(1)} peers"

    return ServiceMetrics(
        status_text="Active",
        primary_metric=f"#{block.group(1)}",
        secondary_metric=secondary,
        is_healthy=True,
    )


def _bridge(logs: str) -> ServiceMetrics:
    healthy = True
    primary = None
    secondary = None

    daa = VIADUCT_DAA.search(logs)
    if daa:
        primary = f"DAA:{format_large_number(int(daa.group(1)))}"

    latency = VIADUCT_LATENCY.search(logs)
    if latency:
        latency_ms = int(latency.group(1))
        secondary = f"{latency_ms}ms"
        if latency_ms > VIADUCT_LATENCY_LIMIT_MS:
            healthy = False
    else:
        queue = VIADUCT_QUEUE.search(logs)
        if queue:
            secondary = f"Q:{queue.group(1)}"

    return ServiceMetrics(
        status_text="Active",
        primary_metric=primary,
        secondary_metric=secondary,
        is_healthy=healthy,
    )


def _block_builder(logs: str) -> ServiceMetrics:
    built = BUILDER_BUILT.search(logs)
    if built:
        return ServiceMetrics(
            status_text="Built",
            primary_metric=f"{built.group(1)} txs",
            is_healthy=True,
        )
    if BUILDER_BUILDING.search(logs):
        return ServiceMetrics(status_text="Building", primary_metric="...", is_healthy=True)
    return ServiceMetrics(is_healthy=True)


def _average_latency_us(logs: str) -> Optional[float]:
    samples = [float(m.group(1)) for m in RPC_TIME_US.finditer(logs) if _is_number(m.group(1))]
    samples += [float(m.group(1)) * 1000.0 for m in RPC_TIME_MS.finditer(logs) if _is_number(m.group(1))]
    if not samples:
        return None
    return sum(samples) / len(samples)


def _is_number(text: str) -> bool:
    # "1.2.3" matches [\d.]+ but is not a float
    try:
        float(text)
        return True
    except ValueError:
        return False


def _rpc_provider(logs: str) -> ServiceMetrics:
    primary = None
    request_count = sum(1 for _ in RPC_REQUEST.finditer(logs))
    if request_count > 0:
        primary = f"{request_count // RPC_WINDOW_SECONDS} req/s"

    avg_us = _average_latency_us(logs)
    return ServiceMetrics(
        status_text="Serving",
        primary_metric=primary,
        secondary_metric=format_latency_us(avg_us) if avg_us is not None else None,
        is_healthy=True,
    )


def _wallet(logs: str) -> ServiceMetrics:
    if "Finished initial sync" in logs:
        return ServiceMetrics(status_text="Synced", primary_metric="Ready", is_healthy=True)
    if "Connected to kaspa node successfully" in logs:
        return ServiceMetrics(status_text="Syncing", primary_metric="...", is_healthy=True)
    if "Starting wallet server" in logs:
        return ServiceMetrics(status_text="Starting", is_healthy=True)
    return ServiceMetrics(is_healthy=True)


def _health_check(logs: str) -> ServiceMetrics:
    m = HEALTH_CHECKPOINT.search(logs)
    if not m:
        return ServiceMetrics(is_healthy=True)

    checkpoint, latest = int(m.group(1)), int(m.group(2))
    lag = max(0, latest - checkpoint)
    if lag == 0:
        status, healthy = "Synced", True
    elif lag < 5:
        status, healthy = "OK", True
    elif lag < 10:
        status, healthy = "Lagging", True
    else:
        status, healthy = "Behind", False

    return ServiceMetrics(
        status_text=status,
        primary_metric=f"-{lag} blk",
        is_healthy=healthy,
    )


def _reverse_proxy(logs: str) -> ServiceMetrics:
    status = primary = secondary = None
    healthy = True

    if "No ACME certificate generation required" in logs:
        status, primary = "SSL OK", "Active"

    error_count = logs.count("ERR")
    if error_count > 0:
        healthy = False
        secondary = f"{error_count} err"

    return ServiceMetrics(
        status_text=status,
        primary_metric=primary,
        secondary_metric=secondary,
        is_healthy=healthy,
    )


EXTRACTORS: Dict[ServiceFamily, Callable[[str], ServiceMetrics]] = {
    ServiceFamily.SETTLEMENT_NODE: _settlement_node,
    ServiceFamily.EXECUTION_LAYER: _execution_layer,
    ServiceFamily.BRIDGE: _bridge,
    ServiceFamily.BLOCK_BUILDER: _block_builder,
    ServiceFamily.RPC_PROVIDER: _rpc_provider,
    ServiceFamily.WALLET: _wallet,
    ServiceFamily.HEALTH_CHECK: _health_check,
    ServiceFamily.REVERSE_PROXY: _reverse_proxy,
}


def extract(service_name: str, recent_log_text: str) -> ServiceMetrics:
    extractor = EXTRACTORS.get(resolve_family(service_name))
    if extractor is None:
        return ServiceMetrics()
    return extractor(recent_log_text or "")


def apply_reth_metrics(metrics: ServiceMetrics, reth) -> ServiceMetrics:
    """
    Overlay execution-layer Prometheus data on log-derived metrics.

    Prometheus counters are authoritative when present: "Block #N",
    "N peers", and Synced/healthy once blocks are being resolved.
    """
    if reth is None:
        return metrics

    update = {}
    if reth.blocks_processed is not None:
        update["primary_metric"] = f"Block #{reth.blocks_processed}"
        update["status_text"] = "Synced"
        update["is_healthy"] = True
    if reth.peers_connected is not None:
        update["secondary_metric"] = f"{reth.peers_connected} peers"

    return metrics.model_copy(update=update) if update else metrics


class ServiceMetricsExtractor:
    """Callable wrapper so the inventory client can take an injected extractor."""

    def extract(self, service_name: str, recent_log_text: str) -> ServiceMetrics:
        return extract(service_name, recent_log_text)

    def family(self, service_name: str) -> ServiceFamily:
        return resolve_family(service_name)
