"""
Telemetry source package.

Exports the TelemetrySource contract and its two implementations: the
FusionSolar cloud client and the local Modbus TCP source.

CHANGELOG:
- 2026-10-04: Export FusionSolarClient and ModbusSource (STORY-008)
- 2026-10-03: Initial creation (STORY-006)

TODO:
- None
"""

from monitor.src.sources.base import TelemetrySource
from monitor.src.sources.fusionsolar import FusionSolarClient, FusionSolarError
from monitor.src.sources.modbus import ModbusSource

__all__ = ["FusionSolarClient", "FusionSolarError", "ModbusSource", "TelemetrySource"]
