"""
Tests for the FastAPI surface.

Uses FastAPI's TestClient against an app built around a pre-populated cache.
Most tests do not enter the client context, so the polling lifespan does not
run and the cache content is fully controlled by the test.

Verifies the response envelope, camelCase payloads, status code mapping per
error kind, query parameter parsing and the lifespan wiring.

CHANGELOG:
- 2026-10-10: Cover request validation envelope
- 2026-10-09: Initial creation (STORY-013)

TODO:
- None
"""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from monitor.src.api.main import create_app
from monitor.src.cache import MetricsCache
from monitor.src.config import MonitorSettings, SourceMode
from monitor.src.models import (
    Device,
    DeviceStatus,
    DeviceType,
    MetricType,
    Plant,
    PlantStatus,
    RealtimeMetrics,
    TimeseriesPoint,
)
from monitor.src.result import Result
from monitor.src.sources.base import TelemetrySource

T0 = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)


class _IdleSource(TelemetrySource):
    """Source that always reports one plant and nothing else."""

    def __init__(self) -> None:
        self.closed = False

    async def close(self) -> None:
        self.closed = True

    async def fetch_plants(self):
        return Result.ok([Plant(id="live", name="Live")])

    async def fetch_devices(self, plant_id: str):
        return Result.fail("unavailable")

    async def fetch_realtime_metrics(self, plant_id: str):
        return Result.fail("unavailable")

    async def fetch_energy_summary(self, plant_id: str):
        return Result.fail("unavailable")


@pytest.fixture()
def settings() -> MonitorSettings:
    return MonitorSettings(source_mode=SourceMode.LOCAL)


@pytest.fixture()
def populated_cache(cache: MetricsCache) -> MetricsCache:
    cache.set_plants(
        [Plant(id="P1", name="Home", status=PlantStatus.CONNECTED, installed_capacity_kw=9.6)]
    )
    cache.set_devices(
        "P1",
        [
            Device(
                id="D1",
                plant_id="P1",
                name="Inverter",
                type=DeviceType.RESIDENTIAL_INVERTER,
                status=DeviceStatus.NORMAL,
            )
        ],
    )
    cache.set_realtime("P1", RealtimeMetrics(timestamp_utc=T0, pv_power_kw=4.2))
    cache.append_points(
        "P1",
        [
            TimeseriesPoint(
                timestamp_utc=T0 - timedelta(hours=h),
                metric_type=MetricType.POWER,
                value=float(h),
                unit="kW",
            )
            for h in (3, 2, 1)
        ],
    )
    return cache


@pytest.fixture()
def client(settings: MonitorSettings, populated_cache: MetricsCache) -> TestClient:
    app = create_app(settings, source=_IdleSource(), cache=populated_cache)
    return TestClient(app)


@pytest.fixture()
def empty_client(settings: MonitorSettings, cache: MetricsCache) -> TestClient:
    return TestClient(create_app(settings, source=_IdleSource(), cache=cache))


# ===========================================================================
# Plants
# ===========================================================================


class TestPlantsEndpoints:
    def test_list_plants_envelope_and_camel_case(self, client: TestClient) -> None:
        response = client.get("/api/plants")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["error"] is None
        plant = body["data"][0]
        assert plant["id"] == "P1"
        assert plant["installedCapacityKw"] == 9.6
        assert plant["status"] == 1

    def test_list_plants_not_synced_is_400(self, empty_client: TestClient) -> None:
        response = empty_client.get("/api/plants")

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "data": None,
            "error": "No plants available. Data may not have been synced yet.",
        }

    def test_plant_summary(self, client: TestClient) -> None:
        response = client.get("/api/plants/P1")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["plant"]["name"] == "Home"
        assert data["currentMetrics"]["pvPowerKw"] == 4.2
        assert data["energySummary"] is None
        assert data["totalDevices"] == 1
        assert data["activeDevices"] == 1

    def test_plant_summary_unknown_is_404(self, client: TestClient) -> None:
        response = client.get("/api/plants/P9")
        assert response.status_code == 404
        assert response.json()["error"] == "Plant with ID 'P9' not found."

    def test_plant_devices(self, client: TestClient) -> None:
        response = client.get("/api/plants/P1/devices")

        assert response.status_code == 200
        device = response.json()["data"][0]
        assert device["plantId"] == "P1"
        assert device["type"] == int(DeviceType.RESIDENTIAL_INVERTER)

    def test_device_lookup(self, client: TestClient) -> None:
        assert client.get("/api/devices/D1").json()["data"]["name"] == "Inverter"
        assert client.get("/api/devices/D9").status_code == 404


# ===========================================================================
# Metrics
# ===========================================================================


class TestMetricsEndpoints:
    def test_plant_realtime(self, client: TestClient) -> None:
        response = client.get("/api/metrics/plants/P1/realtime")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["pvPowerKw"] == 4.2
        assert data["timestampUtc"].startswith("2026-10-01T12:00:00")

    def test_plant_realtime_missing_is_404(self, client: TestClient) -> None:
        assert client.get("/api/metrics/plants/P9/realtime").status_code == 404

    def test_timeseries_naive_timestamps_read_as_utc(self, client: TestClient) -> None:
        response = client.get(
            "/api/metrics/plants/P1/timeseries",
            params={
                "metricType": 1,
                "from": "2026-10-01T09:30:00",
                "to": "2026-10-01T12:00:00",
            },
        )

        assert response.status_code == 200
        points = response.json()["data"]
        assert [p["value"] for p in points] == [2.0, 1.0]
        assert points[0]["metricType"] == 1
        assert points[0]["unit"] == "kW"

    def test_timeseries_offset_timestamps_converted(self, client: TestClient) -> None:
        response = client.get(
            "/api/metrics/plants/P1/timeseries",
            params={"from": "2026-10-01T11:30:00+02:00", "to": "2026-10-01T14:00:00+02:00"},
        )

        assert [p["value"] for p in response.json()["data"]] == [2.0, 1.0]

    def test_timeseries_range_too_long_is_400(self, client: TestClient) -> None:
        response = client.get(
            "/api/metrics/plants/P1/timeseries",
            params={"from": "2026-01-01T00:00:00Z", "to": "2026-10-01T00:00:00Z"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Time range cannot exceed 90 days."

    def test_timeseries_missing_params_is_400_envelope(self, client: TestClient) -> None:
        response = client.get("/api/metrics/plants/P1/timeseries")

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert "from" in body["error"]

    def test_timeseries_invalid_metric_type_is_400(self, client: TestClient) -> None:
        response = client.get(
            "/api/metrics/plants/P1/timeseries",
            params={"metricType": 42, "from": "2026-10-01T00:00:00Z", "to": "2026-10-01T01:00:00Z"},
        )
        assert response.status_code == 400

    def test_device_realtime_unsupported_is_404(self, client: TestClient) -> None:
        response = client.get("/api/metrics/devices/D1/realtime")

        assert response.status_code == 404
        assert response.json()["error"] == "Device-level real-time metrics not yet implemented."


# ===========================================================================
# Health and lifespan
# ===========================================================================


class TestHealthAndLifespan:
    def test_root(self, client: TestClient) -> None:
        assert client.get("/").json() == {"status": "ok"}

    def test_health_reports_poll_status(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert "timestamp" in body
        assert body["polling"]["state"] == "stopped"

    def test_lifespan_runs_poller_and_closes_source(
        self, settings: MonitorSettings, cache: MetricsCache
    ) -> None:
        source = _IdleSource()
        app = create_app(settings, source=source, cache=cache)

        with TestClient(app) as client:
            for _ in range(50):
                if cache.get_plants():
                    break
                time.sleep(0.02)
            assert client.get("/api/plants").json()["data"][0]["id"] == "live"
            assert client.get("/health").json()["polling"]["plant_count"] == 1

        assert source.closed
