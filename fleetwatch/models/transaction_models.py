"""
Pydantic models for L2 transaction monitoring.

These models are used across:
  - TransactionMonitor (RPC block/receipt -> TransactionInfo)
  - StatisticsAggregator (running counters)
  - L1FeeCorrelator (wallet UTXO data)
  - TransactionRecorder and the /v1/transactions endpoint
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..utils.formatting import wei_to_ikas


# ---------------------------------------------------------------------------
# Transaction classification
# ---------------------------------------------------------------------------

class TransactionType(str, Enum):
    TRANSFER = "TRANSFER"
    CONTRACT = "CONTRACT"
    ENTRY = "ENTRY"
    UNKNOWN = "UNKNOWN"


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------

class TransactionInfo(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    hash: str
    from_address: str = Field(..., alias="from")
    to: Optional[str] = None
    value: int = Field(0, ge=0, description="Transferred value in wei.")
    gas_used: Optional[int] = Field(default=None, description="From the receipt, None if no receipt.")
    gas_price: int = 0
    block_number: int
    timestamp: datetime
    status: bool = False
    tx_type: TransactionType = TransactionType.UNKNOWN
    l1_fee: Optional[float] = Field(
        default=None,
        description="KAS fee paid on L1, only for entry transactions.",
    )

    def gas_fee_ikas(self) -> float:
        if self.gas_used is None:
            return 0.0
        return wei_to_ikas(self.gas_used * self.gas_price)

    def value_ikas(self) -> float:
        return wei_to_ikas(self.value)


# ---------------------------------------------------------------------------
# Running statistics
# ---------------------------------------------------------------------------

class Statistics(BaseModel):
    current_block: int = 0
    total_transactions: int = 0
    successful_transactions: int = 0
    failed_transactions: int = 0
    total_gas_fees_ikas: float = 0.0
    total_l1_fees_kas: float = 0.0
    start_time: Optional[datetime] = None
    last_block_time: Optional[datetime] = None

    def _elapsed_seconds(self, now: Optional[datetime]) -> Optional[float]:
        if self.start_time is None:
            return None
        now = now or datetime.now(timezone.utc)
        return (now - self.start_time).total_seconds()

    def tps(self, now: Optional[datetime] = None) -> float:
        elapsed = self._elapsed_seconds(now)
        if elapsed is None or elapsed <= 0:
            return 0.0
        return self.total_transactions / elapsed

    def uptime(self, now: Optional[datetime] = None) -> str:
        elapsed = self._elapsed_seconds(now)
        if elapsed is None or elapsed <= 0:
            return "0h 0m"
        minutes_total = int(elapsed // 60)
        return f"{minutes_total // 60}h {minutes_total % 60}m"


# ---------------------------------------------------------------------------
# L1 wallet data (collaborator type)
# ---------------------------------------------------------------------------

class UtxoInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    tx_id: str
    amount_kas: float
    block_daa_score: int = 0
    is_coinbase: bool = False
    timestamp_ms: int = Field(0, description="Estimated timestamp in milliseconds.")
    source_addresses: List[str] = Field(default_factory=list)
