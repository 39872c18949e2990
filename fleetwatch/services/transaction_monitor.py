import asyncio
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from opentelemetry import trace
from prometheus_client import Counter, Gauge

from ..collector.reth_metrics import RethMetrics, calculate_tps, fetch_reth_metrics
from ..config import settings
from ..models.transaction_models import Statistics, TransactionInfo, TransactionType
from ..utils.formatting import parse_hex_int
from .l1_fee_correlator import L1FeeCorrelator
from .rpc_client import ExecutionRpcClient
from .statistics import StatisticsAggregator

logger = logging.getLogger("fleetwatch.transaction_monitor")
tracer = trace.get_tracer(__name__)

BLOCKS_PROCESSED_TOTAL = Counter(
    "fleetwatch_blocks_processed_total",
    "L2 block heights visited by the transaction monitor",
    ["result"],  # result: ok | failed
)

LAST_SEEN_BLOCK = Gauge(
    "fleetwatch_last_seen_block",
    "Highest L2 block height the transaction monitor has processed",
)

# 4-byte function selector; anything longer is a call with arguments
SELECTOR_BYTES = 4


class MonitorState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    FETCHING = "fetching"
    CLASSIFYING = "classifying"
    AGGREGATING = "aggregating"


def _input_length(input_data: Union[str, bytes, None]) -> int:
    if not input_data:
        return 0
    if isinstance(input_data, (bytes, bytearray)):
        return len(input_data)
    text = input_data[2:] if input_data.lower().startswith("0x") else input_data
    return len(text) // 2


def classify_transaction(
    to: Optional[str],
    input_data: Union[str, bytes, None],
    value: int,
) -> TransactionType:
    """
    Classify an L2 transaction. Rules apply in order:

      no recipient              -> CONTRACT (deployment)
      input longer than 4 bytes -> CONTRACT
      zero value                -> CONTRACT
      otherwise                 -> TRANSFER

    Bridge entry transactions are not yet distinguishable from contract
    calls, so ENTRY is never returned here.
    """
    if not to:
        return TransactionType.CONTRACT
    if _input_length(input_data) > SELECTOR_BYTES:
        return TransactionType.CONTRACT
    if value == 0:
        return TransactionType.CONTRACT
    return TransactionType.TRANSFER


def _block_timestamp(block: Dict[str, Any]) -> datetime:
    raw = block.get("timestamp")
    if raw is None:
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(parse_hex_int(raw), tz=timezone.utc)


class TransactionMonitor:
    """
    Polls the execution layer for new blocks and turns them into
    TransactionInfo batches folded into running Statistics.

    Every height in (last_seen, current] is visited once, in ascending
    order. A block that fails to fetch is logged and skipped, its height
    still counts as processed and later heights in the same tick continue.
    """

    def __init__(
        self,
        rpc: Optional[ExecutionRpcClient] = None,
        correlator: Optional[L1FeeCorrelator] = None,
        aggregator: Optional[StatisticsAggregator] = None,
        start_block: Optional[int] = None,
        metrics_url: Optional[str] = None,
    ) -> None:
        self.rpc = rpc or ExecutionRpcClient()
        self.correlator = correlator or L1FeeCorrelator()
        self.aggregator = aggregator or StatisticsAggregator()
        self.metrics_url = metrics_url or settings.METRICS_URL

        self.state = MonitorState.IDLE
        # None until the first poll adopts a baseline
        self.last_block: Optional[int] = start_block if start_block is not None else settings.start_block

        self._poll_lock = asyncio.Lock()
        self._last_metrics: Optional[RethMetrics] = None
        self._last_metrics_at: Optional[float] = None

    async def start(self) -> None:
        await self.aggregator.start()

    # ------------------------------------------------------------------
    # RPC
    # ------------------------------------------------------------------

    async def get_block_number(self) -> int:
        return await self.rpc.block_number()

    async def fetch_block_transactions(self, block_number: int) -> List[TransactionInfo]:
        self.state = MonitorState.FETCHING
        block = await self.rpc.get_block_with_transactions(block_number)
        if block is None:
            raise LookupError(f"Block {block_number} not found")

        timestamp = _block_timestamp(block)
        transactions: List[TransactionInfo] = []

        for tx in block.get("transactions") or []:
            if not isinstance(tx, dict):
                # node returned hashes only
                continue

            self.state = MonitorState.FETCHING
            receipt = await self.rpc.get_transaction_receipt(tx["hash"])

            self.state = MonitorState.CLASSIFYING
            transactions.append(
                await self._build_transaction(tx, receipt, block_number, timestamp)
            )

        return transactions

    async def _build_transaction(
        self,
        tx: Dict[str, Any],
        receipt: Optional[Dict[str, Any]],
        block_number: int,
        timestamp: datetime,
    ) -> TransactionInfo:
        if receipt is not None:
            gas_used: Optional[int] = parse_hex_int(receipt.get("gasUsed"))
            status = parse_hex_int(receipt.get("status")) == 1
        else:
            gas_used, status = None, False

        value = parse_hex_int(tx.get("value"))
        to = tx.get("to") or None
        tx_type = classify_transaction(to, tx.get("input"), value)

        gas_price = parse_hex_int(tx.get("gasPrice"))
        if not gas_price and receipt is not None:
            gas_price = parse_hex_int(receipt.get("effectiveGasPrice"))

        draft = TransactionInfo(
            hash=tx["hash"],
            from_address=tx.get("from") or "",
            to=to,
            value=value,
            gas_used=gas_used,
            gas_price=gas_price,
            block_number=block_number,
            timestamp=timestamp,
            status=status,
            tx_type=tx_type,
        )

        if tx_type is TransactionType.ENTRY:
            l1_fee = await self.correlator.get_l1_fee(draft.hash, draft.value_ikas())
            if l1_fee is not None:
                draft = draft.model_copy(update={"l1_fee": l1_fee})

        return draft

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def poll_new_transactions(self) -> List[TransactionInfo]:
        """
        One monitor tick. Returns the transactions of all newly seen blocks,
        already folded into statistics.

        Raises on failure to read the chain height (transient, the caller
        skips the tick). Per-block failures never raise.
        """
        async with self._poll_lock:
            with tracer.start_as_current_span("fleetwatch.transactions.poll") as span:
                self.state = MonitorState.POLLING
                try:
                    current = await self.get_block_number()
                except Exception:
                    self.state = MonitorState.IDLE
                    raise

                span.set_attribute("fleetwatch.block.current", current)

                if self.last_block is None:
                    logger.info("Transaction monitor baseline adopted at block %d", current)
                    self.last_block = current
                    LAST_SEEN_BLOCK.set(current)
                    self.state = MonitorState.IDLE
                    return []

                if current <= self.last_block:
                    self.state = MonitorState.IDLE
                    return []

                first = self.last_block + 1
                span.set_attribute("fleetwatch.block.first", first)

                batch: List[TransactionInfo] = []
                for height in range(first, current + 1):
                    try:
                        batch.extend(await self.fetch_block_transactions(height))
                        BLOCKS_PROCESSED_TOTAL.labels(result="ok").inc()
                    except Exception as exc:  # noqa: BLE001
                        logger.warning("Error fetching block %d: %s", height, exc)
                        BLOCKS_PROCESSED_TOTAL.labels(result="failed").inc()

                self.last_block = current
                LAST_SEEN_BLOCK.set(current)

                self.state = MonitorState.AGGREGATING
                await self.aggregator.update(batch)

                span.set_attribute("fleetwatch.transactions.count", len(batch))
                self.state = MonitorState.IDLE
                return batch

    async def get_statistics(self) -> Statistics:
        return await self.aggregator.snapshot()

    # ------------------------------------------------------------------
    # Auxiliary data
    # ------------------------------------------------------------------

    async def fetch_metrics(self) -> RethMetrics:
        """Execution-layer Prometheus metrics with TPS from the previous snapshot."""
        metrics = await asyncio.to_thread(fetch_reth_metrics, self.metrics_url)
        now = time.monotonic()
        if self._last_metrics is not None and self._last_metrics_at is not None:
            metrics.tps = calculate_tps(metrics, self._last_metrics, now - self._last_metrics_at)
        self._last_metrics = metrics
        self._last_metrics_at = now
        return metrics

    async def update_l1_data(self) -> int:
        return await self.correlator.update_utxos()
