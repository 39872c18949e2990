"""
Pytest configuration and fixtures
"""
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import pytest

from fleetwatch.models.transaction_models import TransactionInfo, TransactionType


# ============================================
# Transaction Fixtures
# ============================================

@pytest.fixture
def make_tx() -> Callable[..., TransactionInfo]:
    """Factory for TransactionInfo with sensible defaults."""
    counter = {"n": 0}

    def _make(
        block_number: int = 1,
        status: bool = True,
        tx_type: TransactionType = TransactionType.TRANSFER,
        value: int = 10**18,
        gas_used: Optional[int] = 21_000,
        gas_price: int = 10**9,
        to: Optional[str] = "0x00000000000000000000000000000000000000b0",
        l1_fee: Optional[float] = None,
        timestamp: Optional[datetime] = None,
    ) -> TransactionInfo:
        counter["n"] += 1
        return TransactionInfo(
            hash=f"0x{counter['n']:064x}",
            from_address="0x00000000000000000000000000000000000000a0",
            to=to,
            value=value,
            gas_used=gas_used,
            gas_price=gas_price,
            block_number=block_number,
            timestamp=timestamp or datetime(2025, 10, 21, 10, 37, 6, tzinfo=timezone.utc),
            status=status,
            tx_type=tx_type,
            l1_fee=l1_fee,
        )

    return _make


# ============================================
# RPC Fixtures
# ============================================

class FakeRpc:
    """In-memory execution layer: height, blocks and receipts."""

    def __init__(self, height: int = 0):
        self.height = height
        self.blocks: Dict[int, dict] = {}
        self.receipts: Dict[str, Optional[dict]] = {}
        self.failing_blocks: set = set()
        self.block_calls: List[int] = []
        self.height_error: Optional[Exception] = None

    def add_block(self, number: int, txs: List[dict], timestamp: int = 1_760_000_000) -> None:
        self.blocks[number] = {
            "number": hex(number),
            "timestamp": hex(timestamp),
            "transactions": txs,
        }

    async def block_number(self) -> int:
        if self.height_error is not None:
            raise self.height_error
        return self.height

    async def get_block_with_transactions(self, block_number: int):
        self.block_calls.append(block_number)
        if block_number in self.failing_blocks:
            raise ConnectionError(f"block {block_number} timed out")
        return self.blocks.get(block_number, {"timestamp": "0x0", "transactions": []})

    async def get_transaction_receipt(self, tx_hash: str):
        return self.receipts.get(tx_hash)


def rpc_tx(tx_hash: str, to: Optional[str] = "0xb0", value: int = 100, input_data: str = "0x") -> dict:
    return {
        "hash": tx_hash,
        "from": "0xa0",
        "to": to,
        "value": hex(value),
        "gasPrice": hex(10**9),
        "input": input_data,
    }


def ok_receipt(gas_used: int = 21_000, status: int = 1) -> dict:
    return {"gasUsed": hex(gas_used), "status": hex(status)}


@pytest.fixture
def fake_rpc() -> FakeRpc:
    return FakeRpc()


@pytest.fixture(name="rpc_tx")
def rpc_tx_fixture():
    return rpc_tx


@pytest.fixture(name="ok_receipt")
def ok_receipt_fixture():
    return ok_receipt
