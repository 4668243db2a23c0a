"""
Solar plant monitor package.

Polls plant telemetry from the Huawei FusionSolar cloud API or a local Modbus
TCP inverter, keeps the latest values in an in-memory cache, and serves them
to the dashboard over a FastAPI REST surface.

CHANGELOG:
- 2026-10-02: Initial creation (STORY-001)

TODO:
- None
"""
