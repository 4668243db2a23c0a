"""
Tests for the polling orchestrator and source selection.

Uses an in-memory fake TelemetrySource with scripted results. Verifies the
per-fetch failure isolation, the "leave the cache alone when plants fail"
rule, time series derivation, lifecycle states, static metadata seeding and
prompt shutdown.

CHANGELOG:
- 2026-10-12: Cover per-plant error isolation
- 2026-10-07: Cover PollStatus updates (STORY-012)
- 2026-10-06: Initial creation (STORY-010)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta

import pytest

from monitor.src.cache import MetricsCache
from monitor.src.config import MonitorSettings, SourceMode
from monitor.src.health import PollingState, PollStatus
from monitor.src.models import (
    Device,
    EnergySummary,
    MetricType,
    Plant,
    RealtimeMetrics,
)
from monitor.src.orchestrator import PollingOrchestrator, create_source
from monitor.src.result import ErrorKind, Result
from monitor.src.sources.base import TelemetrySource
from monitor.src.sources.fusionsolar import FusionSolarClient
from monitor.src.sources.modbus import ModbusSource

T0 = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)

# ---------------------------------------------------------------------------
# Helpers: scripted fake source
# ---------------------------------------------------------------------------


def _energy(today: float = 1.0) -> EnergySummary:
    return EnergySummary(
        timestamp_utc=T0,
        energy_today_kwh=today,
        energy_month_kwh=2.0,
        energy_year_kwh=3.0,
        energy_total_kwh=4.0,
    )


class FakeSource(TelemetrySource):
    """Telemetry source answering from dictionaries; missing keys fail."""

    def __init__(self) -> None:
        self.plants: Result[list[Plant]] = Result.ok(
            [Plant(id="P1", name="One"), Plant(id="P2", name="Two")]
        )
        self.devices: dict[str, Result[list[Device]]] = {}
        self.realtime: dict[str, Result[RealtimeMetrics]] = {}
        self.energy: dict[str, Result[EnergySummary]] = {}
        self.start_result: Result[None] = Result.ok()
        self.metadata: tuple[list[Plant], dict[str, list[Device]]] | None = None
        self.calls: list[str] = []
        self.closed = False

    async def start(self) -> Result[None]:
        self.calls.append("start")
        return self.start_result

    async def close(self) -> None:
        self.calls.append("close")
        self.closed = True

    def static_metadata(self) -> tuple[list[Plant], dict[str, list[Device]]] | None:
        return self.metadata

    async def fetch_plants(self) -> Result[list[Plant]]:
        self.calls.append("plants")
        return self.plants

    async def fetch_devices(self, plant_id: str) -> Result[list[Device]]:
        self.calls.append(f"devices:{plant_id}")
        return self.devices.get(plant_id, Result.fail("no devices"))

    async def fetch_realtime_metrics(self, plant_id: str) -> Result[RealtimeMetrics]:
        self.calls.append(f"realtime:{plant_id}")
        return self.realtime.get(plant_id, Result.fail("no realtime"))

    async def fetch_energy_summary(self, plant_id: str) -> Result[EnergySummary]:
        self.calls.append(f"energy:{plant_id}")
        return self.energy.get(plant_id, Result.fail("no energy"))


def _orchestrator(source: FakeSource, cache: MetricsCache, interval_s: float = 60.0) -> PollingOrchestrator:
    return PollingOrchestrator(source, cache, interval_s)


# ===========================================================================
# Single iteration
# ===========================================================================


class TestPollOnce:
    @pytest.mark.asyncio
    async def test_writes_every_successful_fetch(self, cache: MetricsCache) -> None:
        source = FakeSource()
        source.devices["P1"] = Result.ok([Device(id="D1", plant_id="P1", name="Inv")])
        source.realtime["P1"] = Result.ok(RealtimeMetrics(timestamp_utc=T0, pv_power_kw=4.5))
        source.energy["P1"] = Result.ok(_energy())

        await _orchestrator(source, cache).poll_once()

        assert [p.id for p in cache.get_plants() or ()] == ["P1", "P2"]
        assert [d.id for d in cache.get_devices("P1") or ()] == ["D1"]
        assert cache.get_realtime("P1") is not None
        assert cache.get_energy("P1") == _energy()

    @pytest.mark.asyncio
    async def test_fetches_are_isolated(self, cache: MetricsCache) -> None:
        """Devices failing does not stop realtime and energy for the same plant."""
        source = FakeSource()
        source.realtime["P1"] = Result.ok(RealtimeMetrics(timestamp_utc=T0))
        source.energy["P2"] = Result.ok(_energy())

        await _orchestrator(source, cache).poll_once()

        assert cache.get_devices("P1") is None
        assert cache.get_realtime("P1") is not None
        assert cache.get_energy("P1") is None
        assert cache.get_energy("P2") is not None
        assert source.calls[1:] == [
            "devices:P1", "realtime:P1", "energy:P1",
            "devices:P2", "realtime:P2", "energy:P2",
        ]

    @pytest.mark.asyncio
    async def test_plants_failure_leaves_cache_untouched(self, cache: MetricsCache) -> None:
        source = FakeSource()
        source.energy["P1"] = Result.ok(_energy(today=7.0))
        orchestrator = _orchestrator(source, cache)
        await orchestrator.poll_once()

        source.plants = Result.fail("rate limited", ErrorKind.TRANSPORT)
        source.energy["P1"] = Result.ok(_energy(today=99.0))
        source.calls.clear()
        await orchestrator.poll_once()

        assert source.calls == ["plants"]
        assert [p.id for p in cache.get_plants() or ()] == ["P1", "P2"]
        energy = cache.get_energy("P1")
        assert energy is not None and energy.energy_today_kwh == 7.0
        assert orchestrator.status.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_realtime_success_appends_power_point(self, cache: MetricsCache) -> None:
        source = FakeSource()
        source.realtime["P1"] = Result.ok(RealtimeMetrics(timestamp_utc=T0, pv_power_kw=4.5))
        source.realtime["P2"] = Result.ok(RealtimeMetrics(timestamp_utc=T0, pv_power_kw=None))

        await _orchestrator(source, cache).poll_once()

        window = (T0 - timedelta(minutes=1), T0)
        p1 = cache.query_points("P1", MetricType.POWER, *window)
        p2 = cache.query_points("P2", MetricType.POWER, *window)
        assert [(p.value, p.unit) for p in p1] == [(4.5, "kW")]
        assert [p.value for p in p2] == [0.0]

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_contained(self, cache: MetricsCache) -> None:
        source = FakeSource()

        async def _explode() -> Result[list[Plant]]:
            raise RuntimeError("boom")

        source.fetch_plants = _explode  # type: ignore[method-assign]
        orchestrator = _orchestrator(source, cache)

        await orchestrator.poll_once()

        assert cache.get_plants() is None
        assert orchestrator.status.snapshot()["last_error"] == "Unexpected error: boom"

    @pytest.mark.asyncio
    async def test_exception_in_one_plant_does_not_skip_the_next(
        self, cache: MetricsCache, caplog: pytest.LogCaptureFixture
    ) -> None:
        source = FakeSource()
        source.realtime["P2"] = Result.ok(RealtimeMetrics(timestamp_utc=T0, pv_power_kw=2.0))
        source.energy["P2"] = Result.ok(_energy())
        scripted_devices = source.fetch_devices

        async def _devices(plant_id: str) -> Result[list[Device]]:
            if plant_id == "P1":
                raise ValueError("bad device row")
            return await scripted_devices(plant_id)

        source.fetch_devices = _devices  # type: ignore[method-assign]
        orchestrator = _orchestrator(source, cache)

        with caplog.at_level(logging.ERROR, logger="monitor.src.orchestrator"):
            await orchestrator.poll_once()

        realtime = cache.get_realtime("P2")
        assert realtime is not None
        assert realtime.pv_power_kw == 2.0
        assert cache.get_energy("P2") == _energy()
        assert "Error polling plant P1" in caplog.text
        assert orchestrator.status.snapshot()["consecutive_failures"] == 0

    @pytest.mark.asyncio
    async def test_shutdown_checked_before_each_plant(self, cache: MetricsCache) -> None:
        source = FakeSource()
        shutdown = asyncio.Event()
        shutdown.set()

        await _orchestrator(source, cache).poll_once(shutdown)

        assert source.calls == ["plants"]
        assert cache.get_plants() is not None

    @pytest.mark.asyncio
    async def test_success_resets_failure_streak(self, cache: MetricsCache) -> None:
        source = FakeSource()
        orchestrator = _orchestrator(source, cache)
        source.plants = Result.fail("down")
        await orchestrator.poll_once()
        await orchestrator.poll_once()
        assert orchestrator.status.consecutive_failures == 2

        source.plants = Result.ok([Plant(id="P1", name="One")])
        await orchestrator.poll_once()

        snapshot = orchestrator.status.snapshot()
        assert snapshot["consecutive_failures"] == 0
        assert snapshot["plant_count"] == 1


# ===========================================================================
# Loop lifecycle
# ===========================================================================


class TestRun:
    @pytest.mark.asyncio
    async def test_run_stops_promptly_and_closes_source(self, cache: MetricsCache) -> None:
        source = FakeSource()
        orchestrator = _orchestrator(source, cache, interval_s=3600)
        shutdown = asyncio.Event()

        task = asyncio.create_task(orchestrator.run(shutdown))
        await asyncio.sleep(0.05)
        assert orchestrator.state is PollingState.SLEEPING

        shutdown.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert source.calls[0] == "start"
        assert source.calls[-1] == "close"
        assert orchestrator.state is PollingState.STOPPED

    @pytest.mark.asyncio
    async def test_start_failure_does_not_prevent_polling(self, cache: MetricsCache) -> None:
        source = FakeSource()
        source.start_result = Result.fail("login failed")
        orchestrator = _orchestrator(source, cache, interval_s=3600)
        shutdown = asyncio.Event()

        task = asyncio.create_task(orchestrator.run(shutdown))
        await asyncio.sleep(0.05)
        shutdown.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert "plants" in source.calls
        assert cache.get_plants() is not None

    @pytest.mark.asyncio
    async def test_static_metadata_seeded_before_first_poll(self, cache: MetricsCache) -> None:
        source = FakeSource()
        source.metadata = (
            [Plant(id="local", name="Local")],
            {"local": [Device(id="inv", plant_id="local", name="Inverter")]},
        )
        source.plants = Result.fail("unreachable")
        orchestrator = _orchestrator(source, cache, interval_s=3600)
        shutdown = asyncio.Event()

        task = asyncio.create_task(orchestrator.run(shutdown))
        await asyncio.sleep(0.05)
        shutdown.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert [p.id for p in cache.get_plants() or ()] == ["local"]
        assert [d.id for d in cache.get_devices("local") or ()] == ["inv"]

    @pytest.mark.asyncio
    async def test_polls_repeatedly_on_interval(self, cache: MetricsCache) -> None:
        source = FakeSource()
        orchestrator = _orchestrator(source, cache, interval_s=0.01)
        shutdown = asyncio.Event()

        task = asyncio.create_task(orchestrator.run(shutdown))
        await asyncio.sleep(0.1)
        shutdown.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert source.calls.count("plants") >= 2

    @pytest.mark.asyncio
    async def test_status_file_written(self, cache: MetricsCache, tmp_path) -> None:
        path = tmp_path / "health.json"
        source = FakeSource()
        orchestrator = PollingOrchestrator(source, cache, 3600, PollStatus(path))
        shutdown = asyncio.Event()

        task = asyncio.create_task(orchestrator.run(shutdown))
        await asyncio.sleep(0.05)
        shutdown.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert '"state": "stopped"' in path.read_text()
        assert '"plant_count": 2' in path.read_text()


# ===========================================================================
# Source selection
# ===========================================================================


class TestCreateSource:
    def test_cloud_mode_builds_fusionsolar_client(self) -> None:
        settings = MonitorSettings(
            source_mode=SourceMode.CLOUD,
            fusionsolar_username="u",
            fusionsolar_password="p",
        )
        assert isinstance(create_source(settings), FusionSolarClient)

    def test_local_mode_builds_modbus_source(self) -> None:
        settings = MonitorSettings(source_mode=SourceMode.LOCAL)
        source = create_source(settings)
        assert isinstance(source, ModbusSource)
        assert source.plant_id == settings.modbus_plant.plant_id
