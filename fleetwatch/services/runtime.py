"""
Process-wide fleetwatch singletons and the consumer frame loop.

Routers and app.py import this module and go through its attributes, so
tests can swap any of them out.
"""

import asyncio
import contextlib
import logging
from typing import Optional

from ..config import settings
from .docker_inventory import ContainerInventoryClient
from .fleet_view import FleetView
from .refresh_scheduler import RefreshScheduler
from .transaction_monitor import TransactionMonitor
from .tx_recorder import TransactionRecorder

logger = logging.getLogger("fleetwatch.runtime")

monitor = TransactionMonitor()
inventory = ContainerInventoryClient(reth_metrics_fetcher=monitor.fetch_metrics)
scheduler = RefreshScheduler(inventory, monitor)
view = FleetView(
    scheduler.channels,
    recorder=(
        TransactionRecorder(settings.RECORD_PATH, settings.RECORD_FORMAT)
        if settings.RECORD_PATH
        else None
    ),
)

_frame_task: Optional[asyncio.Task] = None


async def frame_loop(interval: float) -> None:
    while True:
        try:
            view.drain_all()
        except Exception:  # noqa: BLE001
            logger.exception("FleetView: unhandled error while draining channels")
        await asyncio.sleep(interval)


async def start() -> None:
    global _frame_task
    await scheduler.start()
    if _frame_task is None:
        _frame_task = asyncio.create_task(frame_loop(settings.FRAME_INTERVAL), name="fleetwatch.frame")


async def stop() -> None:
    global _frame_task
    await scheduler.stop()
    if _frame_task is not None:
        _frame_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await _frame_task
        _frame_task = None
    inventory.close()
    monitor.rpc.close()
