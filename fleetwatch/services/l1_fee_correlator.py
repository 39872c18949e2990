import asyncio
import inspect
import logging
from typing import Dict, List, Optional, Protocol

from ..config import settings
from ..models.transaction_models import UtxoInfo
from ..utils.rwlock import ReadWriteLock

logger = logging.getLogger("fleetwatch.l1_fee_correlator")


class UtxoSource(Protocol):
    """Wallet collaborator. Implementations may be sync or async."""

    def list_utxos(self, worker_id: int) -> List[UtxoInfo]:
        ...


class L1FeeCorrelator:
    """
    Tracks the monitoring wallet's L1 UTXOs and resolves L1 fees for L2
    entry transactions.

    Only the fee cache is consulted on lookup. Matching an L2 entry back to
    its L1 funding transaction (timestamp, amount, UTXO spend analysis) is
    left to whoever calls record_fee(). A cache miss is reported as None,
    never as an estimate.

    The UTXO cache and the fee cache each have their own lock and no method
    holds both.
    """

    def __init__(
        self,
        source: Optional[UtxoSource] = None,
        worker_id: Optional[int] = None,
    ) -> None:
        self.source = source
        self.worker_id = settings.L1_WALLET_WORKER_ID if worker_id is None else worker_id

        self._utxos: List[UtxoInfo] = []
        self._utxo_lock = ReadWriteLock()

        self._fee_cache: Dict[str, float] = {}
        self._fee_lock = ReadWriteLock()

    async def update_utxos(self) -> int:
        """Replace the UTXO cache wholesale. Returns the new UTXO count."""
        if self.source is None:
            return 0

        if inspect.iscoroutinefunction(self.source.list_utxos):
            result = await self.source.list_utxos(self.worker_id)
        else:
            result = await asyncio.to_thread(self.source.list_utxos, self.worker_id)
        utxos = list(result or [])

        async with self._utxo_lock.write():
            self._utxos = utxos

        logger.debug("L1 UTXO cache refreshed: worker=%d utxos=%d", self.worker_id, len(utxos))
        return len(utxos)

    async def utxos(self) -> List[UtxoInfo]:
        async with self._utxo_lock.read():
            return list(self._utxos)

    async def record_fee(self, tx_hash: str, fee_kas: float) -> None:
        async with self._fee_lock.write():
            self._fee_cache[tx_hash] = fee_kas

    async def get_l1_fee(self, tx_hash: str, l2_value: float) -> Optional[float]:
        async with self._fee_lock.read():
            return self._fee_cache.get(tx_hash)
