"""
Local telemetry source reading a Huawei SUN2000 inverter over Modbus TCP.

Every fetch opens a fresh AsyncModbusTcpClient, reads the mapped holding
registers one specification at a time, decodes them with
:func:`~monitor.src.registers.decode_register` and closes the client in
``finally``. The TCP connect is bounded by its own timeout, separate from the
per-read response timeout.

A Modbus exception response on an optional register leaves the field at
``None`` and the read continues. The same on a required register (realtime
``active_power``, energy ``total_energy``) fails the whole call. Transport
and decode errors always fail the call.

The inverter does not describe itself, so the single plant and device this
source serves come from configuration and are available without any I/O.

CHANGELOG:
- 2026-10-05: Tolerate exception responses on optional registers
- 2026-10-04: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Collection, Sequence
from datetime import UTC, datetime

from pymodbus.client import AsyncModbusTcpClient
from pymodbus.exceptions import ModbusException

from monitor.src.config import LocalPlantSettings
from monitor.src.models import (
    Device,
    DeviceStatus,
    DeviceType,
    EnergySummary,
    Plant,
    PlantStatus,
    RealtimeMetrics,
)
from monitor.src.registers import DecodeError, RegisterMap, decode_register
from monitor.src.result import ErrorKind, Result
from monitor.src.sources.base import TelemetrySource

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Field tables (model attribute, RegisterMap entry)
# ---------------------------------------------------------------------------

REALTIME_REGISTERS: tuple[tuple[str, str], ...] = (
    ("pv_power_kw", "active_power"),
    ("grid_power_kw", "grid_power"),
    ("load_power_kw", "load_power"),
    ("battery_power_kw", "battery_power"),
    ("state_of_charge_percent", "state_of_charge"),
    ("efficiency_percent", "efficiency"),
    ("day_energy_kwh", "day_energy"),
    ("grid_voltage_v", "grid_voltage"),
    ("grid_frequency_hz", "grid_frequency"),
    ("pv_voltage_v", "pv_voltage"),
    ("temperature_c", "temperature"),
)

ENERGY_REGISTERS: tuple[tuple[str, str], ...] = (
    ("energy_today_kwh", "day_energy"),
    ("energy_month_kwh", "month_energy"),
    ("energy_year_kwh", "year_energy"),
    ("energy_total_kwh", "total_energy"),
    ("grid_import_today_kwh", "grid_import_today"),
    ("grid_export_today_kwh", "grid_export_today"),
    ("battery_charge_today_kwh", "battery_charge_today"),
    ("battery_discharge_today_kwh", "battery_discharge_today"),
)

REALTIME_REQUIRED = frozenset({"active_power"})
ENERGY_REQUIRED = frozenset({"total_energy"})


class RegisterReadError(Exception):
    """A required register answered with a Modbus exception response."""


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class ModbusSource(TelemetrySource):
    """Telemetry source for one inverter reachable over Modbus TCP.

    Args:
        host: Inverter or Smart Dongle IP address / hostname.
        port: Modbus TCP port.
        unit_id: Modbus unit ID, passed as ``device_id`` on every read.
        connect_timeout_s: Bound on establishing the TCP connection.
        request_timeout_s: Bound on each register read.
        registers: Register map; defaults to the SUN2000 map.
        plant: Static plant/device metadata.
        clock: Callable returning the current UTC time.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int = 502,
        unit_id: int = 1,
        connect_timeout_s: float = 3.0,
        request_timeout_s: float = 5.0,
        registers: RegisterMap | None = None,
        plant: LocalPlantSettings | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._host = host
        self._port = port
        self._unit_id = unit_id
        self._connect_timeout_s = connect_timeout_s
        self._request_timeout_s = request_timeout_s
        self._registers = registers or RegisterMap()
        self._clock = clock

        meta = plant or LocalPlantSettings()
        self._plant = Plant(
            id=meta.plant_id,
            name=meta.plant_name,
            installed_capacity_kw=meta.installed_capacity_kw,
            status=PlantStatus.CONNECTED,
        )
        self._device = Device(
            id=meta.device_id,
            plant_id=meta.plant_id,
            name=meta.device_name,
            type=DeviceType.RESIDENTIAL_INVERTER,
            model=meta.device_model,
            status=DeviceStatus.NORMAL,
        )

    @property
    def plant_id(self) -> str:
        return self._plant.id

    def static_metadata(self) -> tuple[list[Plant], dict[str, list[Device]]]:
        return [self._plant], {self._plant.id: [self._device]}

    # ------------------------------------------------------------------
    # Metadata (no I/O)
    # ------------------------------------------------------------------

    async def fetch_plants(self) -> Result[list[Plant]]:
        plant = self._plant.model_copy(update={"last_update_time": self._clock()})
        return Result.ok([plant])

    async def fetch_devices(self, plant_id: str) -> Result[list[Device]]:
        if plant_id != self._plant.id:
            return self._unknown_plant(plant_id)
        device = self._device.model_copy(
            update={"last_communication_time": self._clock()}
        )
        return Result.ok([device])

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    async def fetch_realtime_metrics(self, plant_id: str) -> Result[RealtimeMetrics]:
        if plant_id != self._plant.id:
            return self._unknown_plant(plant_id)

        try:
            values = await self._read(REALTIME_REGISTERS, REALTIME_REQUIRED)
        except DecodeError as exc:
            logger.warning("Realtime decode failed for plant %s: %s", plant_id, exc)
            return Result.fail(f"Error decoding metrics: {exc}", ErrorKind.DECODE)
        except (ModbusException, RegisterReadError, OSError, TimeoutError) as exc:
            logger.warning(
                "Realtime read failed for plant %s at %s:%d: %s",
                plant_id,
                self._host,
                self._port,
                exc,
            )
            return Result.fail(f"Error reading metrics: {exc}", ErrorKind.TRANSPORT)

        return Result.ok(RealtimeMetrics(timestamp_utc=self._clock(), **values))

    async def fetch_energy_summary(self, plant_id: str) -> Result[EnergySummary]:
        if plant_id != self._plant.id:
            return self._unknown_plant(plant_id)

        try:
            values = await self._read(ENERGY_REGISTERS, ENERGY_REQUIRED)
        except DecodeError as exc:
            logger.warning("Energy decode failed for plant %s: %s", plant_id, exc)
            return Result.fail(f"Error decoding energy summary: {exc}", ErrorKind.DECODE)
        except (ModbusException, RegisterReadError, OSError, TimeoutError) as exc:
            logger.warning(
                "Energy read failed for plant %s at %s:%d: %s",
                plant_id,
                self._host,
                self._port,
                exc,
            )
            return Result.fail(
                f"Error reading energy summary: {exc}", ErrorKind.TRANSPORT
            )

        # Day -> month -> year fallback when a period register is unavailable.
        if values["energy_today_kwh"] is None:
            values["energy_today_kwh"] = 0.0
        if values["energy_month_kwh"] is None:
            values["energy_month_kwh"] = values["energy_today_kwh"]
        if values["energy_year_kwh"] is None:
            values["energy_year_kwh"] = values["energy_month_kwh"]

        return Result.ok(EnergySummary(timestamp_utc=self._clock(), **values))

    # ------------------------------------------------------------------
    # Register I/O
    # ------------------------------------------------------------------

    async def _read(
        self,
        fields: Sequence[tuple[str, str]],
        required: Collection[str],
    ) -> dict[str, float | None]:
        """Open a connection, read every mapped register in *fields*, close.

        Returns:
            ``{model_attribute: value}``; unmapped or unavailable optional
            registers map to ``None``.

        Raises:
            ConnectionError: If the connection cannot be established.
            TimeoutError: If connecting exceeds the connect timeout.
            RegisterReadError: If a required register returns an exception
                response.
            DecodeError: If a response cannot be decoded.
            ModbusException: On protocol-level failures.
        """
        client = AsyncModbusTcpClient(
            self._host,
            port=self._port,
            timeout=self._request_timeout_s,
        )
        try:
            connected = await asyncio.wait_for(
                client.connect(), timeout=self._connect_timeout_s
            )
            if not connected:
                raise ConnectionError(
                    f"Unable to connect to Modbus device at {self._host}:{self._port}"
                )

            values: dict[str, float | None] = {}
            for attr, register_name in fields:
                spec = getattr(self._registers, register_name)
                if spec is None:
                    values[attr] = None
                    continue

                response = await client.read_holding_registers(
                    spec.address,
                    count=spec.word_count,
                    device_id=self._unit_id,
                )
                if response.isError():
                    if register_name in required:
                        raise RegisterReadError(
                            f"Modbus error reading required register "
                            f"'{register_name}' (address={spec.address})"
                        )
                    logger.debug(
                        "Modbus error reading optional register '%s' "
                        "(address=%d), leaving it unset",
                        register_name,
                        spec.address,
                    )
                    values[attr] = None
                    continue

                values[attr] = decode_register(spec, response.registers)
            return values
        finally:
            client.close()

    def _unknown_plant(self, plant_id: str) -> Result:
        return Result.fail(
            f"Plant with ID '{plant_id}' not found.", ErrorKind.NOT_FOUND
        )
