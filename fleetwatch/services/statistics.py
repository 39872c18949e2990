import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

from prometheus_client import Counter, Gauge

from ..models.transaction_models import Statistics, TransactionInfo
from ..utils.rwlock import ReadWriteLock

logger = logging.getLogger("fleetwatch.statistics")

TRANSACTIONS_TOTAL = Counter(
    "fleetwatch_transactions_total",
    "L2 transactions folded into statistics",
    ["type", "status"],  # status: success | failed
)

CURRENT_BLOCK = Gauge(
    "fleetwatch_current_block",
    "Highest L2 block number seen in a processed transaction batch",
)


class StatisticsAggregator:
    """
    Owns the running L2 Statistics behind its own reader-writer lock.

    update() is the only mutator. Counters only grow and current_block only
    moves forward, so successful + failed == total after every update.
    """

    def __init__(self, start_time: Optional[datetime] = None) -> None:
        self._stats = Statistics(start_time=start_time)
        self._lock = ReadWriteLock()

    async def start(self, now: Optional[datetime] = None) -> None:
        async with self._lock.write():
            if self._stats.start_time is None:
                self._stats.start_time = now or datetime.now(timezone.utc)

    async def update(self, transactions: Sequence[TransactionInfo]) -> None:
        async with self._lock.write():
            stats = self._stats
            if stats.start_time is None:
                stats.start_time = datetime.now(timezone.utc)

            for tx in transactions:
                stats.total_transactions += 1
                if tx.status:
                    stats.successful_transactions += 1
                else:
                    stats.failed_transactions += 1

                stats.total_gas_fees_ikas += tx.gas_fee_ikas()
                if tx.l1_fee is not None:
                    stats.total_l1_fees_kas += tx.l1_fee

                TRANSACTIONS_TOTAL.labels(
                    type=tx.tx_type.value,
                    status="success" if tx.status else "failed",
                ).inc()

            if transactions:
                last = transactions[-1]
                stats.current_block = max(stats.current_block, last.block_number)
                stats.last_block_time = last.timestamp
                CURRENT_BLOCK.set(stats.current_block)

        if transactions:
            logger.debug(
                "Statistics updated: +%d txs, block=%d",
                len(transactions),
                self._stats.current_block,
            )

    async def snapshot(self) -> Statistics:
        async with self._lock.read():
            return self._stats.model_copy()

    async def tps(self, now: Optional[datetime] = None) -> float:
        async with self._lock.read():
            return self._stats.tps(now)

    async def uptime(self, now: Optional[datetime] = None) -> str:
        async with self._lock.read():
            return self._stats.uptime(now)
