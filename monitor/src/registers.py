"""
Modbus register map and decoder for Huawei SUN2000 inverters.

Defines the register layouts, the per-measurement register specification
(address, layout, scale divisor), the default register map for a SUN2000
inverter behind a Smart Dongle, and the pure decoder that turns raw 16-bit
words into engineering values.

Multi-word values are big-endian-of-words: the first word holds the most
significant 16 bits and every following word is shifted into the lower bits.
The scale is a divisor, so a raw value in tenths of a volt with scale 10
yields volts.

References:
    - Huawei SUN2000 Modbus Interface Definitions
    - https://github.com/wlcrs/huawei-solar-lib

CHANGELOG:
- 2026-10-04: Add optional energy-breakdown registers, disabled by default
- 2026-10-02: Initial creation (STORY-003)

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Layouts
# ---------------------------------------------------------------------------


class RegisterLayout(StrEnum):
    """Integer layout of a register value."""

    INT16 = "int16"
    UINT16 = "uint16"
    INT32 = "int32"
    UINT32 = "uint32"
    UINT64 = "uint64"


WORD_COUNTS: dict[RegisterLayout, int] = {
    RegisterLayout.INT16: 1,
    RegisterLayout.UINT16: 1,
    RegisterLayout.INT32: 2,
    RegisterLayout.UINT32: 2,
    RegisterLayout.UINT64: 4,
}
"""Number of consecutive 16-bit words each layout occupies."""

_SIGNED_LAYOUTS = frozenset({RegisterLayout.INT16, RegisterLayout.INT32})


class DecodeError(Exception):
    """Raised when a register response cannot be decoded."""


def word_count(layout: RegisterLayout | str) -> int:
    """Return the number of 16-bit words for *layout*.

    Raises:
        DecodeError: If the layout is not supported.
    """
    try:
        return WORD_COUNTS[RegisterLayout(layout)]
    except (KeyError, ValueError):
        raise DecodeError(f"Unsupported register layout '{layout}'") from None


# ---------------------------------------------------------------------------
# Register specification
# ---------------------------------------------------------------------------


class RegisterSpec(BaseModel):
    """Where and how a single measurement is stored.

    Attributes:
        address: Holding register start address.
        layout: Integer layout; determines how many words are read.
        scale: Divisor applied to the raw integer. Values <= 0 are
            treated as 1.
    """

    model_config = ConfigDict(frozen=True)

    address: int = Field(ge=0, le=0xFFFF)
    layout: RegisterLayout = RegisterLayout.INT16
    scale: float = 1.0

    @property
    def word_count(self) -> int:
        return word_count(self.layout)


# ---------------------------------------------------------------------------
# Conversion helpers
# ---------------------------------------------------------------------------


def _assemble(words: Sequence[int]) -> int:
    """Combine words (most significant first) into one unsigned integer."""
    value = 0
    for word in words:
        value = (value << 16) | (word & 0xFFFF)
    return value


def _to_signed(value: int, bits: int) -> int:
    """Interpret an unsigned integer of *bits* width as two's complement."""
    if value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def decode_register(spec: RegisterSpec | None, words: Sequence[int]) -> float | None:
    """Decode raw register words into a scaled engineering value.

    This is a pure function: no I/O and no side effects.

    Args:
        spec: Register specification, or ``None`` when the measurement is
            not mapped on this installation.
        words: Raw 16-bit words as returned by the register read.

    Returns:
        The scaled value, or ``None`` when *spec* is ``None``. A ``None``
        result is a legitimate "value unavailable" outcome, not a fault.

    Raises:
        DecodeError: If the layout is unsupported or the number of words
            does not match the layout.
    """
    if spec is None:
        return None

    expected = word_count(spec.layout)
    if len(words) != expected:
        raise DecodeError(
            f"Register {spec.address}: expected {expected} words for "
            f"{spec.layout}, got {len(words)}"
        )

    raw_int = _assemble(words)
    if spec.layout in _SIGNED_LAYOUTS:
        raw_int = _to_signed(raw_int, 16 * expected)

    scale = spec.scale if spec.scale > 0 else 1.0
    return raw_int / scale


# ---------------------------------------------------------------------------
# Default register map
# ---------------------------------------------------------------------------


class RegisterMap(BaseModel):
    """Register locations of every measurement read from the inverter.

    ``active_power``, ``day_energy`` and ``total_energy`` must always be
    mapped. Every other entry may be set to ``None`` when the installation
    does not expose it (e.g. no battery or no power meter), in which case the
    corresponding model field stays ``None``.
    """

    model_config = ConfigDict(frozen=True)

    # Inverter active power (W -> kW).
    active_power: RegisterSpec = RegisterSpec(
        address=32064, layout=RegisterLayout.INT32, scale=1000
    )
    # Power meter active power (W -> kW). Positive = exporting.
    grid_power: RegisterSpec | None = RegisterSpec(
        address=37113, layout=RegisterLayout.INT32, scale=1000
    )
    load_power: RegisterSpec | None = None
    # Storage charge/discharge power (W -> kW).
    battery_power: RegisterSpec | None = RegisterSpec(
        address=37760, layout=RegisterLayout.INT32, scale=1000
    )
    state_of_charge: RegisterSpec | None = RegisterSpec(
        address=37765, layout=RegisterLayout.UINT16, scale=1
    )
    efficiency: RegisterSpec | None = None
    # Energy yields are stored in 0.01 kWh.
    day_energy: RegisterSpec = RegisterSpec(
        address=32080, layout=RegisterLayout.UINT32, scale=100
    )
    month_energy: RegisterSpec | None = RegisterSpec(
        address=32082, layout=RegisterLayout.UINT32, scale=100
    )
    year_energy: RegisterSpec | None = RegisterSpec(
        address=32084, layout=RegisterLayout.UINT32, scale=100
    )
    total_energy: RegisterSpec = RegisterSpec(
        address=32086, layout=RegisterLayout.UINT64, scale=100
    )
    grid_import_today: RegisterSpec | None = None
    grid_export_today: RegisterSpec | None = None
    battery_charge_today: RegisterSpec | None = None
    battery_discharge_today: RegisterSpec | None = None
    # 0.1 V
    grid_voltage: RegisterSpec | None = RegisterSpec(
        address=32016, layout=RegisterLayout.UINT16, scale=10
    )
    # 0.01 Hz
    grid_frequency: RegisterSpec | None = RegisterSpec(
        address=32020, layout=RegisterLayout.UINT16, scale=100
    )
    # 0.1 V
    pv_voltage: RegisterSpec | None = RegisterSpec(
        address=32014, layout=RegisterLayout.UINT16, scale=10
    )
    # 0.1 C
    temperature: RegisterSpec | None = RegisterSpec(
        address=32087, layout=RegisterLayout.INT16, scale=10
    )
