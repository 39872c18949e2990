import asyncio
import itertools
import logging
import time
from typing import Any, Dict, List, Optional

import requests
from prometheus_client import Counter, Histogram

from ..config import settings
from ..utils.formatting import parse_hex_int

logger = logging.getLogger("fleetwatch.rpc_client")

RPC_CALLS_TOTAL = Counter(
    "fleetwatch_rpc_calls_total",
    "Execution-layer JSON-RPC calls",
    ["method", "result"],  # result: ok | rpc_error | transport_error
)

RPC_LATENCY_SECONDS = Histogram(
    "fleetwatch_rpc_latency_seconds",
    "Execution-layer JSON-RPC round-trip latency",
    ["method"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)


class RpcError(RuntimeError):
    """JSON-RPC error object, or a response that is not valid JSON-RPC."""

    def __init__(self, method: str, error: Any) -> None:
        self.method = method
        self.error = error
        super().__init__(f"{method}: {error}")


class ExecutionRpcClient:
    """
    Minimal Ethereum JSON-RPC client for the execution layer.

    Each call is a blocking requests.post with its own timeout. The async
    wrappers push the call to a worker thread so the event loop only ever
    suspends on I/O.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url or settings.RPC_URL
        self.timeout = timeout if timeout is not None else settings.RPC_TIMEOUT
        self.session = session or requests.Session()
        self._ids = itertools.count(1)

    def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }

        started = time.perf_counter()
        try:
            r = self.session.post(self.url, json=payload, timeout=self.timeout)
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError):
            RPC_CALLS_TOTAL.labels(method=method, result="transport_error").inc()
            raise
        finally:
            RPC_LATENCY_SECONDS.labels(method=method).observe(time.perf_counter() - started)

        if not isinstance(data, dict):
            RPC_CALLS_TOTAL.labels(method=method, result="rpc_error").inc()
            raise RpcError(method, f"malformed response: {data!r}")
        if data.get("error") is not None:
            RPC_CALLS_TOTAL.labels(method=method, result="rpc_error").inc()
            raise RpcError(method, data["error"])

        RPC_CALLS_TOTAL.labels(method=method, result="ok").inc()
        return data.get("result")

    # ------------------------------------------------------------------
    # Blocking API
    # ------------------------------------------------------------------

    def block_number_sync(self) -> int:
        result = self.call("eth_blockNumber")
        if result is None:
            raise RpcError("eth_blockNumber", "null result")
        return parse_hex_int(result)

    def get_block_with_transactions_sync(self, block_number: int) -> Optional[Dict[str, Any]]:
        return self.call("eth_getBlockByNumber", [hex(block_number), True])

    def get_transaction_receipt_sync(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return self.call("eth_getTransactionReceipt", [tx_hash])

    # ------------------------------------------------------------------
    # Async API
    # ------------------------------------------------------------------

    async def block_number(self) -> int:
        return await asyncio.to_thread(self.block_number_sync)

    async def get_block_with_transactions(self, block_number: int) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self.get_block_with_transactions_sync, block_number)

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self.get_transaction_receipt_sync, tx_hash)

    def close(self) -> None:
        self.session.close()
