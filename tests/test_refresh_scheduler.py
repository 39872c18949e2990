"""
Refresh scheduler tests
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import REGISTRY

from fleetwatch.models.container_models import ContainerRecord, ContainerStats, ImageVersion, RunState
from fleetwatch.models.transaction_models import Statistics
from fleetwatch.services.docker_inventory import InventoryUnavailableError
from fleetwatch.services.refresh_scheduler import Channels, RefreshScheduler


def record(name, state=RunState.RUNNING, image="igranetwork/x:v1"):
    return ContainerRecord(id=f"id-{name}", name=name, image=image, state=state)


def sample(name, labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.fixture
def inventory():
    inv = MagicMock()
    inv.project = "igra-orchestra-testnet"
    inv.ping = AsyncMock()
    inv.list_containers = AsyncMock(return_value=[
        record("kaspad", image="kaspanet/kaspad:v1.0.0"),
        record("viaduct", state=RunState.STOPPED),
    ])
    inv.get_container_stats = AsyncMock(return_value=ContainerStats(cpu_percent=1.0))
    inv.fetch_logs = AsyncMock(return_value="2025-10-18 20:45:37 [INFO ] hello\n")
    return inv


@pytest.fixture
def monitor():
    mon = MagicMock()
    mon.start = AsyncMock()
    mon.poll_new_transactions = AsyncMock(return_value=[])
    mon.get_statistics = AsyncMock(return_value=Statistics(current_block=7))
    mon.update_l1_data = AsyncMock(return_value=0)
    return mon


@pytest.fixture
def version_checker():
    return AsyncMock(return_value={"kaspad": ImageVersion(current="v1.0.0", latest="v1.0.0")})


@pytest.fixture
def scheduler(inventory, monitor, version_checker):
    s = RefreshScheduler(inventory, monitor, channels=Channels(), version_checker=version_checker)
    s.inventory_interval = 0.01
    s.stats_interval = 0.01
    s.stats_initial_delay = 0.01
    s.versions_interval = 0.01
    s.tx_interval = 0.01
    s.l1_interval = 0.01
    s.tail_interval = 0.01
    return s


class TestPublishing:

    def test_unbounded_channel_accepts_everything(self, scheduler):
        for i in range(1_000):
            assert scheduler._publish("containers", [i]) is True
        assert scheduler.channels.containers.qsize() == 1_000

    def test_full_bounded_channel_drops(self, inventory, monitor):
        s = RefreshScheduler(inventory, monitor, channels=Channels(maxsize=1))
        before = sample("fleetwatch_channel_dropped_total", {"channel": "stats"})

        assert s._publish("stats", {}) is True
        assert s._publish("stats", {"late": ContainerStats()}) is False

        assert s.channels.stats.qsize() == 1
        assert s.channels.stats.get_nowait() == {}
        assert sample("fleetwatch_channel_dropped_total", {"channel": "stats"}) == before + 1


class TestTicks:

    @pytest.mark.asyncio
    async def test_failed_tick_is_counted_and_swallowed(self, scheduler, inventory):
        inventory.list_containers.side_effect = ConnectionError("daemon went away")
        before = sample("fleetwatch_poll_errors_total", {"loop": "inventory"})

        await scheduler._tick("inventory", scheduler.refresh_inventory)

        assert sample("fleetwatch_poll_errors_total", {"loop": "inventory"}) == before + 1
        assert scheduler.channels.containers.empty()

    @pytest.mark.asyncio
    async def test_stats_only_for_running_containers(self, scheduler, inventory):
        await scheduler.refresh_stats()

        inventory.list_containers.assert_awaited_with(with_metrics=False)
        inventory.get_container_stats.assert_awaited_once_with("id-kaspad")
        assert scheduler.channels.stats.get_nowait() == {"kaspad": ContainerStats(cpu_percent=1.0)}

    @pytest.mark.asyncio
    async def test_stats_failure_omits_container(self, scheduler, inventory):
        inventory.list_containers.return_value = [record("kaspad"), record("traefik")]

        async def stats(container_id):
            if container_id == "id-traefik":
                raise ConnectionError("timeout")
            return ContainerStats()

        inventory.get_container_stats.side_effect = stats
        await scheduler.refresh_stats()

        assert list(scheduler.channels.stats.get_nowait()) == ["kaspad"]

    @pytest.mark.asyncio
    async def test_versions_use_image_tags(self, scheduler, version_checker):
        await scheduler.refresh_versions()

        version_checker.assert_awaited_once_with({"kaspad": "v1.0.0", "x": "v1"})
        assert "kaspad" in scheduler.channels.versions.get_nowait()

    @pytest.mark.asyncio
    async def test_transactions_publish_statistics_every_tick(self, scheduler, monitor, make_tx):
        await scheduler.refresh_transactions()
        assert scheduler.channels.transactions.empty()
        assert scheduler.channels.statistics.get_nowait().current_block == 7

        monitor.poll_new_transactions.return_value = [make_tx()]
        await scheduler.refresh_transactions()
        assert len(scheduler.channels.transactions.get_nowait()) == 1
        assert scheduler.channels.statistics.qsize() == 1

    @pytest.mark.asyncio
    async def test_tail_lines_are_tagged_with_service(self, scheduler, inventory):
        await scheduler.refresh_tail("kaspad")

        inventory.fetch_logs.assert_awaited_once_with("kaspad", tail=scheduler.tail_fetch_lines)
        [line] = scheduler.channels.logs.get_nowait()
        assert line.service == "kaspad"
        assert line.message == "hello"

    @pytest.mark.asyncio
    async def test_tail_messages_with_pipes_stay_with_the_service(self, scheduler, inventory):
        inventory.fetch_logs.return_value = (
            "2025-10-18 20:45:37.476+00:00 [INFO ] Accepted 7 blocks via relay\n"
            "2025-10-18 20:45:37.500+00:00 [INFO ] peers: 8 | inbound: 3\n"
        )

        await scheduler.refresh_tail("kaspad")

        lines = scheduler.channels.logs.get_nowait()
        assert [l.service for l in lines] == ["kaspad", "kaspad"]
        assert lines[1].message == "peers: 8 | inbound: 3"
        assert lines[1].raw_line.startswith("2025-10-18 20:45:37.500")


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_fails_when_runtime_unreachable(self, scheduler, inventory, monitor):
        inventory.ping.side_effect = InventoryUnavailableError("no docker")

        with pytest.raises(InventoryUnavailableError):
            await scheduler.start()

        assert not scheduler.running
        monitor.start.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_loops_publish_until_stopped(self, scheduler, monitor):
        await scheduler.start()
        assert scheduler.running
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert not scheduler.running
        channels = scheduler.channels
        assert channels.containers.qsize() > 0
        assert channels.stats.qsize() > 0
        assert channels.versions.qsize() > 0
        assert channels.statistics.qsize() > 0
        assert channels.transactions.empty()
        monitor.update_l1_data.assert_awaited()

        # nothing is published once stopped
        depth = channels.containers.qsize()
        await asyncio.sleep(0.05)
        assert channels.containers.qsize() == depth

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, scheduler, inventory):
        await scheduler.start()
        await scheduler.start()
        try:
            inventory.ping.assert_awaited_once()
            assert len(scheduler._tasks) == 4
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_tail_runs_between_start_and_stop(self, scheduler):
        await scheduler.start_tail("kaspad")
        assert scheduler.tail_service == "kaspad"
        await asyncio.sleep(0.05)
        await scheduler.stop_tail()

        assert scheduler.tail_service is None
        published = scheduler.channels.logs.qsize()
        assert published > 0
        await asyncio.sleep(0.05)
        assert scheduler.channels.logs.qsize() == published

    @pytest.mark.asyncio
    async def test_switching_tail_replaces_task(self, scheduler, inventory):
        await scheduler.start_tail("kaspad")
        first = scheduler._tail_task
        await scheduler.start_tail("viaduct")
        try:
            assert first.cancelled() or first.done()
            assert scheduler.tail_service == "viaduct"
        finally:
            await scheduler.stop()
