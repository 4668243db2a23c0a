"""
Entrypoint for the solar monitor service.

Configures structured JSON logging, loads and logs the settings (secrets
masked), builds the FastAPI application and serves it with uvicorn. The
polling orchestrator runs inside the application lifespan, so uvicorn's
SIGTERM/SIGINT handling also stops the poller gracefully.

CHANGELOG:
- 2026-10-10: Initial creation (STORY-014)

TODO:
- None
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from datetime import UTC, datetime

import uvicorn

from monitor.src.api.main import create_app
from monitor.src.config import MonitorSettings, SourceMode

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structured JSON logging on the root logger (stderr)."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def _masked_token(value: str | None) -> str:
    """Return a short non-reversible token fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: MonitorSettings) -> None:
    """Log a config summary at startup, excluding secrets.

    Only the settings of the active source mode are logged. The FusionSolar
    system code is reduced to a fingerprint.

    Args:
        settings: Loaded monitor settings.
    """
    if settings.source_mode is SourceMode.LOCAL:
        logger.info(
            "Solar monitor starting with config: source_mode=%s, "
            "modbus_host=%s, modbus_port=%s, modbus_unit_id=%s, "
            "polling_interval_s=%s, plant_id=%s, api=%s:%s",
            settings.source_mode,
            settings.modbus_host,
            settings.modbus_port,
            settings.modbus_unit_id,
            settings.effective_polling_interval_s(),
            settings.modbus_plant.plant_id,
            settings.api_host,
            settings.api_port,
        )
        return

    logger.info(
        "Solar monitor starting with config: source_mode=%s, "
        "fusionsolar_base_url=%s, fusionsolar_username=%s, "
        "polling_interval_s=%s, api=%s:%s, fusionsolar_password_masked=%s",
        settings.source_mode,
        settings.fusionsolar_base_url,
        settings.fusionsolar_username,
        settings.effective_polling_interval_s(),
        settings.api_host,
        settings.api_port,
        _masked_token(settings.fusionsolar_password),
    )


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    """Synchronous entrypoint: load config, build the app, serve it."""
    configure_logging()

    settings = MonitorSettings()
    log_config_summary(settings)

    app = create_app(settings)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_config=None)


if __name__ == "__main__":
    main()
