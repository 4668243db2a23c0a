"""
Pydantic models for the normalized plant telemetry domain.

Every source client (cloud or local) produces these models, the cache stores
them, and the API serialises them. Models are frozen: a changed plant,
device, or snapshot is always a new object that replaces the old one
wholesale, so concurrent readers can never observe a half-updated value.

JSON output uses camelCase field names and integer enum values, which is the
wire contract the dashboard consumes. Python code constructs models with the
snake_case field names.

CHANGELOG:
- 2026-10-03: Add PlantSummary read model (STORY-009)
- 2026-10-02: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations

from datetime import datetime
from enum import IntEnum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class PlantStatus(IntEnum):
    UNKNOWN = 0
    CONNECTED = 1
    DISCONNECTED = 2
    FAULT = 3
    OFFLINE = 4


class DeviceType(IntEnum):
    UNKNOWN = 0
    STRING_INVERTER = 1
    RESIDENTIAL_INVERTER = 2
    BATTERY = 3
    GRID_METER = 4
    POWER_SENSOR = 5
    EMI = 6
    ESS = 7


class DeviceStatus(IntEnum):
    UNKNOWN = 0
    NORMAL = 1
    FAULT = 2
    OFFLINE = 3
    STANDBY = 4
    SHUTDOWN = 5


class MetricType(IntEnum):
    POWER = 1
    ENERGY = 2
    VOLTAGE = 3
    CURRENT = 4
    TEMPERATURE = 5
    FREQUENCY = 6
    STATE_OF_CHARGE = 7
    EFFICIENCY = 8


class DomainModel(BaseModel):
    """Base for all domain models: immutable, camelCase on the wire."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Plant(DomainModel):
    """A solar installation (FusionSolar "station").

    Attributes:
        id: Stable vendor or locally configured plant key.
        name: Display name.
        address: Free-text site address, if known.
        installed_capacity_kw: Nameplate capacity in kW.
        latitude: Site latitude in degrees.
        longitude: Site longitude in degrees.
        installation_date: Commissioning date (UTC).
        status: Connectivity status reported by the source.
        last_update_time: When this record was produced by a poll (UTC).
    """

    id: str
    name: str
    address: str | None = None
    installed_capacity_kw: float | None = None
    latitude: float | None = None
    longitude: float | None = None
    installation_date: datetime | None = None
    status: PlantStatus = PlantStatus.UNKNOWN
    last_update_time: datetime | None = None


class Device(DomainModel):
    """A piece of hardware at a plant (inverter, battery, meter, sensor)."""

    id: str
    plant_id: str
    name: str
    type: DeviceType = DeviceType.UNKNOWN
    model: str | None = None
    serial_number: str | None = None
    firmware_version: str | None = None
    status: DeviceStatus = DeviceStatus.UNKNOWN
    last_communication_time: datetime | None = None


class RealtimeMetrics(DomainModel):
    """Point-in-time power and operating values for a plant.

    ``None`` means the source did not report the value; it is never a
    stand-in for zero.

    Attributes:
        timestamp_utc: When the snapshot was taken.
        pv_power_kw: PV generation power in kW.
        grid_power_kw: Grid power in kW. Positive = exporting, negative =
            importing.
        load_power_kw: Consumption power in kW.
        battery_power_kw: Battery power in kW. Positive = charging, negative =
            discharging.
        state_of_charge_percent: Battery state of charge (0-100 %).
        efficiency_percent: Inverter efficiency (0-100 %).
        day_energy_kwh: Energy generated so far today in kWh.
        grid_voltage_v: AC grid voltage in V.
        grid_frequency_hz: Grid frequency in Hz.
        pv_voltage_v: PV input voltage in V.
        temperature_c: Inverter temperature in degrees Celsius.
    """

    timestamp_utc: datetime
    pv_power_kw: float | None = None
    grid_power_kw: float | None = None
    load_power_kw: float | None = None
    battery_power_kw: float | None = None
    state_of_charge_percent: float | None = None
    efficiency_percent: float | None = None
    day_energy_kwh: float | None = None
    grid_voltage_v: float | None = None
    grid_frequency_hz: float | None = None
    pv_voltage_v: float | None = None
    temperature_c: float | None = None


class EnergySummary(DomainModel):
    """Cumulative energy production over calendar periods, all in kWh."""

    timestamp_utc: datetime
    energy_today_kwh: float
    energy_month_kwh: float
    energy_year_kwh: float
    energy_total_kwh: float
    grid_import_today_kwh: float | None = None
    grid_export_today_kwh: float | None = None
    battery_charge_today_kwh: float | None = None
    battery_discharge_today_kwh: float | None = None


class TimeseriesPoint(DomainModel):
    """One historical sample; never mutated after insertion."""

    timestamp_utc: datetime
    metric_type: MetricType
    value: float
    unit: str | None = None


class PlantSummary(DomainModel):
    """Dashboard read model composed at query time, never stored.

    The realtime and energy snapshots are read independently from the cache
    and may come from different poll cycles.
    """

    plant: Plant
    current_metrics: RealtimeMetrics | None = None
    energy_summary: EnergySummary | None = None
    total_devices: int = 0
    active_devices: int = 0
