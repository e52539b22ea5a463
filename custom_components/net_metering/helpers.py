"""Helper functions for Net Metering."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from homeassistant.const import UnitOfEnergy, UnitOfPower
from homeassistant.util.unit_conversion import EnergyConverter, PowerConverter

_LOGGER = logging.getLogger(__name__)

# (kind, unit) pairs already reported as unsupported
_UNSUPPORTED_UNITS_LOGGED: set[tuple[str, str]] = set()


@dataclass(frozen=True)
class ReferenceReading:
    """One reading of the reference meter's cumulative counters (Wh)."""

    imported_wh: float
    exported_wh: float

    @classmethod
    def from_values(cls, imported_wh, exported_wh) -> ReferenceReading | None:
        """Build a reading, or None if either side is missing or not finite."""
        if not is_number(imported_wh) or not is_number(exported_wh):
            return None
        return cls(float(imported_wh), float(exported_wh))


def is_number(value) -> bool:
    """Return True for a finite int/float (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def clamp(value: float, min_value: float, max_value: float) -> float:
    """Clamp value into [min_value, max_value]."""
    if value < min_value:
        return min_value
    if value > max_value:
        return max_value
    return value


def sanitize_power(value) -> float | None:
    """Return the power as float, or None if it cannot be integrated."""
    if not is_number(value):
        return None
    return float(value)


def _warn_unsupported(kind: str, unit: str) -> None:
    if (kind, unit) not in _UNSUPPORTED_UNITS_LOGGED:
        _UNSUPPORTED_UNITS_LOGGED.add((kind, unit))
        _LOGGER.warning(f"Unsupported {kind} unit: {unit}, readings are skipped")


def convert_power_to_w(value: float, unit: str | None) -> float | None:
    """Convert power to W, None if the unit is not a power unit."""
    if not unit:
        return value

    if unit not in PowerConverter.VALID_UNITS:
        _warn_unsupported("power", unit)
        return None

    return PowerConverter.convert(value, unit, UnitOfPower.WATT)


def convert_energy_to_wh(value: float, unit: str | None) -> float | None:
    """Convert energy to Wh, None if the unit is not an energy unit.

    Reference counters without a unit are assumed to be in Wh, which is what
    most meters report natively.
    """
    if not unit:
        return value

    if unit not in EnergyConverter.VALID_UNITS:
        _warn_unsupported("energy", unit)
        return None

    return EnergyConverter.convert(value, unit, UnitOfEnergy.WATT_HOUR)
