"""
Monitor configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
Nested values (static plant metadata, the register map) are set with the
``__`` delimiter, e.g. ``MODBUS_REGISTERS__BATTERY_POWER=null`` or
``MODBUS_PLANT__PLANT_ID=home``. Field-map overrides are JSON objects,
e.g. ``FUSIONSOLAR_REALTIME_FIELDS='{"pv_power_kw": "real_power"}'``.

CHANGELOG:
- 2026-10-05: Add field-map overrides for the cloud mapping tables
- 2026-10-02: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from monitor.src.registers import RegisterMap


class SourceMode(StrEnum):
    """Which telemetry source the poller talks to."""

    CLOUD = "cloud"
    LOCAL = "local"


class LocalPlantSettings(BaseModel):
    """Static metadata for the single plant/device reached over Modbus.

    A Modbus inverter does not describe itself the way the cloud API does,
    so the plant and device records come from configuration.
    """

    plant_id: str = "modbus-plant"
    plant_name: str = "Local Modbus Plant"
    installed_capacity_kw: float | None = None
    device_id: str = "inverter-1"
    device_name: str = "SUN2000 Inverter"
    device_model: str | None = "SUN2000"


class MonitorSettings(BaseSettings):
    """Solar monitor configuration.

    Attributes:
        source_mode: ``cloud`` (FusionSolar API) or ``local`` (Modbus TCP).
        polling_interval_s: Global poll interval override. Zero or negative
            means the mode-specific default is used.
        fusionsolar_base_url: FusionSolar northbound API base URL (HTTPS).
        fusionsolar_username: Northbound API account name.
        fusionsolar_password: Northbound API system code.
        fusionsolar_polling_interval_s: Default interval in cloud mode. The
            API allows roughly one request per minute per endpoint.
        fusionsolar_request_timeout_s: Per-request HTTP timeout.
        fusionsolar_token_ttl_s: Assumed session validity when the login
            response does not state one.
        fusionsolar_realtime_fields: Overrides for the realtime field map
            (model attribute -> vendor field).
        fusionsolar_energy_fields: Overrides for the energy field map.
        modbus_host: Inverter or Smart Dongle IP address / hostname.
        modbus_port: Modbus TCP port.
        modbus_unit_id: Modbus unit / slave ID.
        modbus_polling_interval_s: Default interval in local mode.
        modbus_connect_timeout_s: TCP connect timeout.
        modbus_request_timeout_s: Per-read response timeout.
        modbus_plant: Static plant/device metadata for local mode.
        modbus_registers: Register map for local mode.
        api_host: Bind address for the HTTP API.
        api_port: Bind port for the HTTP API.
        cors_origins: Dashboard origins allowed to call the API.
        health_path: Optional path of a JSON health file rewritten after
            every poll. ``None`` keeps poll status in memory only.
    """

    source_mode: SourceMode = SourceMode.CLOUD
    polling_interval_s: int = 0

    fusionsolar_base_url: str = "https://eu5.fusionsolar.huawei.com"
    fusionsolar_username: str = ""
    fusionsolar_password: str = ""
    fusionsolar_polling_interval_s: int = 30
    fusionsolar_request_timeout_s: float = 30.0
    fusionsolar_token_ttl_s: int = 3600
    fusionsolar_realtime_fields: dict[str, str] = {}
    fusionsolar_energy_fields: dict[str, str] = {}

    modbus_host: str = "192.168.200.1"
    modbus_port: int = 502
    modbus_unit_id: int = 1
    modbus_polling_interval_s: int = 1
    modbus_connect_timeout_s: float = 3.0
    modbus_request_timeout_s: float = 5.0
    modbus_plant: LocalPlantSettings = LocalPlantSettings()
    modbus_registers: RegisterMap = RegisterMap()

    api_host: str = "0.0.0.0"
    api_port: int = 5000
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://localhost:8080",
    ]
    health_path: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @field_validator("fusionsolar_base_url")
    @classmethod
    def fusionsolar_base_url_must_be_https(cls, v: str) -> str:
        """Reject plain-HTTP FusionSolar URLs; credentials travel in the body."""
        if not v.lower().startswith("https://"):
            raise ValueError(
                f"FUSIONSOLAR_BASE_URL must use HTTPS (got: '{v[:20]}...')"
            )
        return v.rstrip("/")

    @field_validator("modbus_port", "api_port")
    @classmethod
    def port_must_be_valid(cls, v: int) -> int:
        """Validate TCP port is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("modbus_unit_id")
    @classmethod
    def modbus_unit_id_must_be_valid(cls, v: int) -> int:
        """Validate Modbus unit ID is in valid range (1-247)."""
        if v < 1 or v > 247:
            raise ValueError("MODBUS_UNIT_ID must be between 1 and 247")
        return v

    @field_validator(
        "fusionsolar_request_timeout_s",
        "modbus_connect_timeout_s",
        "modbus_request_timeout_s",
    )
    @classmethod
    def timeout_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be > 0")
        return v

    @model_validator(mode="after")
    def _cloud_mode_requires_credentials(self) -> MonitorSettings:
        """Cloud mode cannot log in without an account."""
        if self.source_mode is SourceMode.CLOUD and not (
            self.fusionsolar_username and self.fusionsolar_password
        ):
            raise ValueError(
                "FUSIONSOLAR_USERNAME and FUSIONSOLAR_PASSWORD are required "
                "when SOURCE_MODE=cloud"
            )
        return self

    def effective_polling_interval_s(self) -> int:
        """Seconds between poll iterations for the active mode."""
        if self.polling_interval_s > 0:
            return self.polling_interval_s
        if self.source_mode is SourceMode.LOCAL:
            return self.modbus_polling_interval_s
        return self.fusionsolar_polling_interval_s
