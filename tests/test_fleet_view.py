"""
FleetView (channel consumer) tests
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fleetwatch.models.container_models import ContainerRecord, ContainerStats
from fleetwatch.models.log_models import ParsedLogLine
from fleetwatch.models.transaction_models import Statistics, TransactionType
from fleetwatch.services import runtime
from fleetwatch.services.fleet_view import FEED_SIZE, FleetView, TransactionFilter
from fleetwatch.services.refresh_scheduler import Channels, RefreshScheduler


@pytest.fixture
def channels():
    return Channels()


@pytest.fixture
def view(channels):
    return FleetView(channels)


def log_line(raw, service=""):
    return ParsedLogLine(raw_line=raw, message=raw, service=service)


class TestDrain:

    def test_latest_snapshot_wins(self, view, channels):
        channels.containers.put_nowait([ContainerRecord(id="1", name="old", image="x")])
        channels.containers.put_nowait([ContainerRecord(id="2", name="kaspad", image="x")])
        channels.stats.put_nowait({"kaspad": ContainerStats(cpu_percent=3.0)})
        channels.statistics.put_nowait(Statistics(current_block=5))

        applied = view.drain_all()

        assert applied["containers"] == 2
        assert applied["stats"] == 1
        assert applied["versions"] == 0
        assert [c.name for c in view.containers] == ["kaspad"]
        assert view.container("kaspad").id == "2"
        assert view.container("old") is None
        assert view.stats["kaspad"].cpu_percent == 3.0
        assert view.statistics.current_block == 5
        assert all(getattr(channels, name).empty() for name in Channels.names())

    def test_empty_channels(self, view):
        assert set(view.drain_all().values()) == {0}


class TestTransactionFeed:

    def test_newest_first_and_capped(self, view, channels, make_tx):
        for start in range(0, 120, 40):
            channels.transactions.put_nowait([make_tx(block_number=n) for n in range(start, start + 40)])

        view.drain_all()

        assert len(view.transactions) == FEED_SIZE
        assert view.transactions[0].block_number == 119
        assert view.transactions[-1].block_number == 20

    def test_filter(self, view, channels, make_tx):
        channels.transactions.put_nowait([
            make_tx(tx_type=TransactionType.TRANSFER),
            make_tx(tx_type=TransactionType.CONTRACT),
            make_tx(tx_type=TransactionType.CONTRACT),
        ])
        view.drain_all()

        assert len(view.filtered_transactions()) == 3
        assert len(view.filtered_transactions(TransactionFilter.CONTRACT)) == 2
        assert len(view.filtered_transactions(TransactionFilter.ENTRY)) == 0

        view.filter = TransactionFilter.TRANSFER
        assert [tx.tx_type for tx in view.filtered_transactions()] == [TransactionType.TRANSFER]

    def test_batches_are_recorded(self, channels, make_tx):
        recorder = MagicMock()
        view = FleetView(channels, recorder=recorder)
        batch = [make_tx(), make_tx()]
        channels.transactions.put_nowait(batch)

        view.drain_all()

        recorder.record.assert_called_once_with(batch)


class TestLiveTail:

    def test_logs_ignored_without_open_tail(self, view, channels):
        channels.logs.put_nowait([log_line("a", "kaspad")])
        view.drain_all()
        assert len(view.tail) == 0

    def test_stale_service_lines_dropped(self, view, channels):
        view.open_tail("viaduct")
        channels.logs.put_nowait([log_line("a", "kaspad"), log_line("b", "viaduct"), log_line("c")])
        view.drain_all()
        assert [l.raw_line for l in view.tail.lines()] == ["b", "c"]

    def test_switching_service_clears_buffer(self, view, channels):
        view.open_tail("kaspad")
        channels.logs.put_nowait([log_line("a", "kaspad")])
        view.drain_all()

        view.open_tail("kaspad")
        assert len(view.tail) == 1
        view.open_tail("viaduct")
        assert len(view.tail) == 0

        view.close_tail()
        assert view.tail_service is None


class TestFrameLoop:

    @pytest.mark.asyncio
    async def test_frame_loop_survives_a_failing_frame(self, view):
        calls = []

        def drain():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("bad frame")
            return {}

        with patch.object(runtime, "view", view), patch.object(view, "drain_all", side_effect=drain):
            task = asyncio.create_task(runtime.frame_loop(0.01))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        assert len(calls) >= 2


class TestTailFromScheduler:

    @pytest.mark.asyncio
    async def test_piped_messages_reach_the_tail(self, view, channels):
        inventory = MagicMock()
        inventory.fetch_logs = AsyncMock(return_value=(
            "2025-10-18 20:45:37.476+00:00 [INFO ] Accepted 7 blocks via relay\n"
            "2025-10-18 20:45:37.500+00:00 [INFO ] peers: 8 | inbound: 3\n"
        ))
        scheduler = RefreshScheduler(inventory, MagicMock(), channels=channels)
        view.open_tail("kaspad")

        await scheduler.refresh_tail("kaspad")
        view.drain_all()
        await scheduler.refresh_tail("kaspad")
        view.drain_all()

        assert [l.message for l in view.tail.lines()] == [
            "Accepted 7 blocks via relay",
            "peers: 8 | inbound: 3",
        ]
