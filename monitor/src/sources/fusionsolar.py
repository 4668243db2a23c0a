"""
Session-based client for the Huawei FusionSolar northbound (thirdData) API.

Logs in with the northbound account, keeps the returned session token and
its expiry, and attaches the token as the ``XSRF-TOKEN`` header on every
authenticated POST. All responses share the envelope
``{"success", "failCode", "message", "data"}``.

The token and expiry live behind an ``asyncio.Lock``. Every authenticated
call passes through the lock before it is sent, and a missing or expired
token is refreshed while the lock is held, so concurrent callers trigger a
single login and no call goes out while a login is in flight.

The API enforces a strict rate limit (about one request per minute per
endpoint). Pacing is the poller's job; this client never retries.

Vendor field names in ``REALTIME_FIELD_MAP`` and ``ENERGY_FIELD_MAP`` have
not been verified against every FusionSolar deployment. Both tables can be
overridden through settings.

CHANGELOG:
- 2026-10-12: Treat non-finite values as unavailable, cap session TTL
- 2026-10-06: Clear session on failCode 305 so the next call logs in again
- 2026-10-04: Initial creation (STORY-007)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field

from monitor.src.models import (
    Device,
    DeviceStatus,
    DeviceType,
    EnergySummary,
    Plant,
    PlantStatus,
    RealtimeMetrics,
)
from monitor.src.result import ErrorKind, Result
from monitor.src.sources.base import TelemetrySource

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Endpoints and protocol constants
# ---------------------------------------------------------------------------

LOGIN_PATH = "/thirdData/login"
LOGOUT_PATH = "/thirdData/logout"
STATION_LIST_PATH = "/thirdData/getStationList"
DEVICE_LIST_PATH = "/thirdData/getDevList"
STATION_REALTIME_PATH = "/thirdData/getStationRealKpi"
STATION_DAY_KPI_PATH = "/thirdData/getKpiStationDay"

TOKEN_HEADER = "XSRF-TOKEN"
SESSION_EXPIRED_FAIL_CODE = 305

DEFAULT_TOKEN_TTL_S = 3600
"""Assumed session validity when the login response does not state one."""

MAX_TOKEN_TTL_S = 86400
"""Upper bound applied to a server-stated session validity."""

# ---------------------------------------------------------------------------
# Mapping tables (model attribute -> vendor dataItemMap key)
# ---------------------------------------------------------------------------

REALTIME_FIELD_MAP: dict[str, str] = {
    "pv_power_kw": "total_power",
    "grid_power_kw": "power_profit",
    "day_energy_kwh": "day_power",
}
"""Maps RealtimeMetrics field name -> getStationRealKpi dataItemMap key."""

ENERGY_FIELD_MAP: dict[str, str] = {
    "energy_today_kwh": "day_power",
    "energy_month_kwh": "month_power",
    "energy_year_kwh": "year_power",
    "energy_total_kwh": "total_power",
}
"""Maps EnergySummary field name -> getKpiStationDay dataItemMap key."""

_REQUIRED_ENERGY_FIELDS = (
    "energy_today_kwh",
    "energy_month_kwh",
    "energy_year_kwh",
    "energy_total_kwh",
)

_PLANT_STATUS: dict[int, PlantStatus] = {
    1: PlantStatus.CONNECTED,
    0: PlantStatus.DISCONNECTED,
}

_DEVICE_TYPES: dict[int, DeviceType] = {
    1: DeviceType.STRING_INVERTER,
    38: DeviceType.RESIDENTIAL_INVERTER,
    39: DeviceType.BATTERY,
    17: DeviceType.GRID_METER,
}


class FusionSolarError(Exception):
    """The API answered with ``success: false`` or an unusable body."""

    def __init__(self, message: str, fail_code: int | None = None) -> None:
        super().__init__(message)
        self.fail_code = fail_code


class _Envelope(BaseModel):
    """Common response wrapper of every thirdData endpoint."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    success: bool = False
    fail_code: int | None = Field(default=None, alias="failCode")
    message: str | None = None
    data: Any = None


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


# ---------------------------------------------------------------------------
# Parsing helpers (never raise)
# ---------------------------------------------------------------------------


def _parse_float(raw: object) -> float | None:
    """Parse a vendor value into a float, or ``None`` if unavailable.

    Accepts numbers, numeric strings, and ``{"value": ...}`` items. NaN and
    infinities count as unavailable.
    """
    if isinstance(raw, Mapping):
        raw = raw.get("value")
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return None
    try:
        value = float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def _parse_int(raw: object) -> int | None:
    value = _parse_float(raw)
    return int(value) if value is not None else None


def _parse_epoch_ms(raw: object) -> datetime | None:
    value = _parse_float(raw)
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def _optional_str(raw: object) -> str | None:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


def _rows(data: object) -> list[Mapping[str, Any]] | None:
    """Extract the record list from ``data`` (a list or ``{"list": [...]}``)."""
    if isinstance(data, Mapping):
        data = data.get("list")
    if not isinstance(data, list):
        return None
    return [row for row in data if isinstance(row, Mapping)]


def _data_item_map(data: object, plant_id: str) -> Mapping[str, Any] | None:
    """Find the ``dataItemMap`` for *plant_id* in a KPI response.

    KPI endpoints return either one object or a list of per-station
    (and, for day KPIs, per-day) entries. The latest entry for the station
    wins.
    """
    if isinstance(data, Mapping) and "dataItemMap" in data:
        candidates: list[Mapping[str, Any]] = [data]
    else:
        candidates = _rows(data) or []

    matching = [
        row
        for row in candidates
        if row.get("stationCode") in (None, plant_id)
        and isinstance(row.get("dataItemMap"), Mapping)
    ]
    if not matching:
        return None
    latest = max(matching, key=lambda row: _parse_float(row.get("collectTime")) or 0)
    return latest["dataItemMap"]


def _merge_field_map(
    defaults: dict[str, str],
    overrides: Mapping[str, str] | None,
    model: type[BaseModel],
) -> dict[str, str]:
    """Apply overrides to a mapping table.

    Only numeric measurement fields of *model* can be mapped; other keys,
    including ``timestamp_utc``, are logged and ignored.
    """
    mappable = {
        name
        for name, info in model.model_fields.items()
        if info.annotation in (float, float | None)
    }
    merged = dict(defaults)
    for attr, vendor_key in (overrides or {}).items():
        if attr not in mappable:
            logger.warning(
                "Ignoring field-map override for unmappable %s attribute '%s'",
                model.__name__,
                attr,
            )
            continue
        merged[attr] = vendor_key
    return merged


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class FusionSolarClient(TelemetrySource):
    """FusionSolar northbound API client with a lazily refreshed session.

    Args:
        base_url: API base URL, e.g. ``https://eu5.fusionsolar.huawei.com``.
        username: Northbound account name.
        password: Northbound system code.
        request_timeout_s: Per-request timeout in seconds.
        token_ttl_s: Assumed session validity when the server does not
            state one.
        realtime_fields: Overrides merged into :data:`REALTIME_FIELD_MAP`.
        energy_fields: Overrides merged into :data:`ENERGY_FIELD_MAP`.
        transport: Optional httpx transport (tests use ``MockTransport``).
        clock: Callable returning the current UTC time.

    Usage::

        client = FusionSolarClient(
            base_url="https://eu5.fusionsolar.huawei.com",
            username="api-user",
            password="system-code",
        )
        plants = await client.fetch_plants()
        await client.close()
    """

    def __init__(
        self,
        *,
        base_url: str,
        username: str,
        password: str,
        request_timeout_s: float = 30.0,
        token_ttl_s: int = DEFAULT_TOKEN_TTL_S,
        realtime_fields: Mapping[str, str] | None = None,
        energy_fields: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._base_url = base_url
        self._username = username
        self._password = password
        self._token_ttl_s = token_ttl_s
        self._clock = clock
        self._realtime_fields = _merge_field_map(
            REALTIME_FIELD_MAP, realtime_fields, RealtimeMetrics
        )
        self._energy_fields = _merge_field_map(
            ENERGY_FIELD_MAP, energy_fields, EnergySummary
        )
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=request_timeout_s,
            transport=transport,
        )
        self._auth_lock = asyncio.Lock()
        self._token: str | None = None
        self._token_expiry: datetime | None = None

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    @property
    def has_session(self) -> bool:
        """Whether a non-expired session token is currently held."""
        return self._token_valid()

    async def start(self) -> Result[None]:
        return await self.login()

    async def close(self) -> None:
        """Log out (best-effort) and release the HTTP connection pool."""
        await self.logout()
        await self._http.aclose()

    async def login(self) -> Result[None]:
        """Exchange credentials for a session token.

        Returns:
            A successful result, or a failed one carrying the reason. Never
            raises for HTTP or protocol errors.
        """
        async with self._auth_lock:
            return await self._login_locked()

    async def logout(self) -> None:
        """End the session. Best-effort: failures are logged and ignored.

        The local token is cleared regardless; without a token the next call
        simply logs in again.
        """
        async with self._auth_lock:
            token = self._token
            self._token = None
            self._token_expiry = None

        if not token:
            return

        logger.info("Logging out from FusionSolar API")
        try:
            response = await self._http.post(
                LOGOUT_PATH,
                json={"xsrfToken": token},
                headers={TOKEN_HEADER: token},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("FusionSolar logout failed, session cleared locally: %s", exc)

    def _token_valid(self) -> bool:
        return (
            self._token is not None
            and self._token_expiry is not None
            and self._clock() < self._token_expiry
        )

    async def _login_locked(self) -> Result[None]:
        """Perform the login exchange. Caller must hold ``_auth_lock``."""
        logger.info("Authenticating with FusionSolar API at %s", self._base_url)
        try:
            response = await self._http.post(
                LOGIN_PATH,
                json={"userName": self._username, "systemCode": self._password},
            )
            response.raise_for_status()
            body = response.json()
            envelope = _Envelope.model_validate(body)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("FusionSolar authentication failed: %s", exc)
            return Result.fail(f"Authentication failed: {exc}", ErrorKind.TRANSPORT)

        if not envelope.success:
            error = f"Authentication failed: {envelope.message or 'unknown error'}"
            logger.error(error)
            return Result.fail(error, ErrorKind.TRANSPORT)

        data = envelope.data if isinstance(envelope.data, Mapping) else {}
        token = (
            _optional_str(data.get("token"))
            or _optional_str(body.get("token"))
            or _optional_str(response.headers.get("xsrf-token"))
        )
        if not token:
            error = "Authentication failed: no session token in response"
            logger.error(error)
            return Result.fail(error, ErrorKind.TRANSPORT)

        ttl_s = _parse_int(data.get("expiresIn"))
        if ttl_s is None or ttl_s <= 0:
            ttl_s = self._token_ttl_s
        ttl_s = min(ttl_s, MAX_TOKEN_TTL_S)
        self._token = token
        self._token_expiry = self._clock() + timedelta(seconds=ttl_s)
        logger.info("FusionSolar authentication successful (session valid %ds)", ttl_s)
        return Result.ok()

    async def _ensure_session(self) -> str:
        """Return a valid token, logging in first if needed.

        Raises:
            FusionSolarError: If the login fails.
        """
        async with self._auth_lock:
            if not self._token_valid():
                result = await self._login_locked()
                if result.is_failure:
                    raise FusionSolarError(result.error or "Authentication failed")
            assert self._token is not None
            return self._token

    async def _post(self, endpoint: str, payload: dict[str, Any] | None = None) -> Any:
        """POST to an authenticated endpoint and return the envelope ``data``.

        Raises:
            httpx.HTTPError: On transport errors or non-2xx status.
            FusionSolarError: On login failure or ``success: false``.
            ValueError: If the body is not valid JSON.
        """
        token = await self._ensure_session()
        response = await self._http.post(
            endpoint,
            json=payload or {},
            headers={TOKEN_HEADER: token},
        )
        response.raise_for_status()
        envelope = _Envelope.model_validate(response.json())

        if not envelope.success:
            if envelope.fail_code == SESSION_EXPIRED_FAIL_CODE:
                async with self._auth_lock:
                    if self._token == token:
                        self._token = None
                        self._token_expiry = None
                logger.warning("FusionSolar session expired, will log in again")
            raise FusionSolarError(
                f"{endpoint} failed: {envelope.message or 'unknown error'}",
                envelope.fail_code,
            )
        return envelope.data

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    async def fetch_plants(self) -> Result[list[Plant]]:
        try:
            rows = _rows(await self._post(STATION_LIST_PATH))
            if rows is None:
                return Result.fail("No station data returned.")
            plants = [plant for plant in map(self._map_plant, rows) if plant is not None]
        except (httpx.HTTPError, FusionSolarError, ValueError) as exc:
            logger.warning("Failed to fetch plants (%s): %s", STATION_LIST_PATH, exc)
            return Result.fail(f"Error retrieving plants: {exc}")

        return Result.ok(plants)

    async def fetch_devices(self, plant_id: str) -> Result[list[Device]]:
        try:
            rows = _rows(await self._post(DEVICE_LIST_PATH, {"stationCodes": plant_id}))
            devices = [
                device
                for device in (self._map_device(row, plant_id) for row in rows or [])
                if device is not None
            ]
        except (httpx.HTTPError, FusionSolarError, ValueError) as exc:
            logger.warning(
                "Failed to fetch devices for plant %s (%s): %s",
                plant_id,
                DEVICE_LIST_PATH,
                exc,
            )
            return Result.fail(f"Error retrieving devices: {exc}")

        return Result.ok(devices)

    async def fetch_realtime_metrics(self, plant_id: str) -> Result[RealtimeMetrics]:
        try:
            data = await self._post(STATION_REALTIME_PATH, {"stationCodes": plant_id})
        except (httpx.HTTPError, FusionSolarError, ValueError) as exc:
            logger.warning(
                "Failed to fetch realtime metrics for plant %s (%s): %s",
                plant_id,
                STATION_REALTIME_PATH,
                exc,
            )
            return Result.fail(f"Error retrieving metrics: {exc}")

        items = _data_item_map(data, plant_id)
        if items is None:
            return Result.fail("No real-time data returned.")

        fields = {
            attr: _parse_float(items.get(vendor_key))
            for attr, vendor_key in self._realtime_fields.items()
        }
        return Result.ok(RealtimeMetrics(timestamp_utc=self._clock(), **fields))

    async def fetch_energy_summary(self, plant_id: str) -> Result[EnergySummary]:
        now = self._clock()
        payload = {
            "stationCodes": plant_id,
            "collectTime": int(now.timestamp() * 1000),
        }
        try:
            data = await self._post(STATION_DAY_KPI_PATH, payload)
        except (httpx.HTTPError, FusionSolarError, ValueError) as exc:
            logger.warning(
                "Failed to fetch energy summary for plant %s (%s): %s",
                plant_id,
                STATION_DAY_KPI_PATH,
                exc,
            )
            return Result.fail(f"Error retrieving energy summary: {exc}")

        items = _data_item_map(data, plant_id)
        if items is None:
            return Result.fail("No energy summary data returned.")

        fields: dict[str, float | None] = {
            attr: _parse_float(items.get(vendor_key))
            for attr, vendor_key in self._energy_fields.items()
        }
        for attr in _REQUIRED_ENERGY_FIELDS:
            if fields.get(attr) is None:
                fields[attr] = 0.0
        return Result.ok(EnergySummary(timestamp_utc=now, **fields))

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def _map_plant(self, row: Mapping[str, Any]) -> Plant | None:
        plant_id = _optional_str(row.get("stationCode"))
        if plant_id is None:
            logger.warning("Skipping station without stationCode: %s", row)
            return None

        return Plant(
            id=plant_id,
            name=_optional_str(row.get("stationName")) or "Unknown",
            address=_optional_str(row.get("stationAddr")),
            installed_capacity_kw=_parse_float(row.get("capacity")),
            latitude=_parse_float(row.get("latitude")),
            longitude=_parse_float(row.get("longitude")),
            installation_date=_parse_epoch_ms(row.get("buildTime")),
            status=_PLANT_STATUS.get(
                _parse_int(row.get("stationLinkStatus")), PlantStatus.UNKNOWN
            ),
            last_update_time=self._clock(),
        )

    def _map_device(self, row: Mapping[str, Any], plant_id: str) -> Device | None:
        device_id = _optional_str(row.get("id"))
        if device_id is None:
            logger.warning("Skipping device without id in plant %s", plant_id)
            return None

        return Device(
            id=device_id,
            plant_id=plant_id,
            name=_optional_str(row.get("devName")) or "Unknown",
            type=_DEVICE_TYPES.get(_parse_int(row.get("devTypeId")), DeviceType.UNKNOWN),
            model=_optional_str(row.get("invType")),
            serial_number=_optional_str(row.get("esnCode")),
            firmware_version=_optional_str(row.get("softwareVersion")),
            status=DeviceStatus.UNKNOWN,
            last_communication_time=self._clock(),
        )
