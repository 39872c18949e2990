import logging
import math
from dataclasses import dataclass
from typing import Optional

import requests

from ..config import settings
from .metric_map import LABELLED_METRIC_MAP, METRIC_MAP
from .prom_parser import iter_samples

logger = logging.getLogger("fleetwatch.reth_metrics")


@dataclass
class RethMetrics:
    # chain
    blocks_processed: Optional[int] = None
    canonical_chain_height: Optional[int] = None
    headers_synced: Optional[int] = None
    sync_stage: Optional[str] = None
    sync_checkpoint: Optional[int] = None

    # network
    peers_connected: Optional[int] = None
    peers_tracked: Optional[int] = None

    # transactions
    transactions_total: Optional[int] = None
    transactions_pending: Optional[int] = None
    transactions_blob: Optional[int] = None
    transactions_inserted: Optional[int] = None
    tps: Optional[float] = None

    # performance
    memory_bytes: Optional[int] = None
    gas_processed: Optional[int] = None
    payloads_initiated: Optional[int] = None

    # blockchain tree
    in_mem_blocks: Optional[int] = None
    reorgs_total: Optional[int] = None
    reorg_depth: Optional[int] = None


def parse_reth_metrics(text: str) -> RethMetrics:
    metrics = RethMetrics()

    for name, labels, value in iter_samples(text):
        field_name = METRIC_MAP.get(name)
        if field_name is None:
            for label, label_value in labels.items():
                field_name = LABELLED_METRIC_MAP.get((name, label, label_value))
                if field_name:
                    break
        if field_name is None:
            continue
        if not math.isfinite(value):
            continue
        setattr(metrics, field_name, int(value))

    if metrics.sync_checkpoint is not None:
        metrics.sync_stage = "Synced"
    elif metrics.blocks_processed is not None:
        metrics.sync_stage = "Active"

    return metrics


def calculate_tps(
    current: RethMetrics,
    previous: RethMetrics,
    elapsed_secs: float,
) -> Optional[float]:
    """Transactions/s from two snapshots of the pool's inserted counter."""
    if elapsed_secs <= 0:
        return None
    if current.transactions_inserted is None or previous.transactions_inserted is None:
        return None
    delta = current.transactions_inserted - previous.transactions_inserted
    # counter reset (node restart)
    if delta < 0:
        return None
    return delta / elapsed_secs


def fetch_reth_metrics(url: Optional[str] = None) -> RethMetrics:
    """
    Blocking fetch of the execution layer's /metrics endpoint.

    Raises requests exceptions on transport/HTTP failure; callers run this in
    a worker thread and treat failures as a skipped tick.
    """
    resp = requests.get(url or settings.METRICS_URL, timeout=settings.HTTP_TIMEOUT)
    resp.raise_for_status()
    metrics = parse_reth_metrics(resp.text)
    logger.debug(
        "reth metrics: block=%s peers=%s stage=%s",
        metrics.blocks_processed,
        metrics.peers_connected,
        metrics.sync_stage,
    )
    return metrics
