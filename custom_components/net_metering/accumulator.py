"""Power integration for the current correction window."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from .const import MS_PER_HOUR
from .helpers import sanitize_power

_LOGGER = logging.getLogger(__name__)


@dataclass
class WindowTotals:
    """Energy integrated since the current correction window opened (Wh)."""

    imported_wh: float = 0.0
    exported_wh: float = 0.0

    @property
    def net_wh(self) -> float:
        """Signed net energy of the window (import positive)."""
        return self.imported_wh - self.exported_wh

    def reset(self) -> None:
        """Zero both directions."""
        self.imported_wh = 0.0
        self.exported_wh = 0.0


class EnergyAccumulator:
    """Integrates total active power into sign-separated window totals.

    Each sample is integrated exactly over the real time elapsed since the
    previous tick. Positive power is import, negative power is export.
    """

    def __init__(self) -> None:
        """Initialize."""
        self._window = WindowTotals()
        self._last_integration_ms: int | None = None

    @property
    def window(self) -> WindowTotals:
        """Return the live window totals (read-only by convention)."""
        return self._window

    @property
    def last_integration_ms(self) -> int | None:
        """Return the integration anchor, None before the first tick."""
        return self._last_integration_ms

    def integrate(self, now_ms: int, power_w: float | None) -> None:
        """Integrate one power sample over the time since the last tick."""
        if self._last_integration_ms is None:
            # First tick only anchors; there is no interval to charge yet
            self._last_integration_ms = now_ms
            return

        dt_ms = now_ms - self._last_integration_ms
        if dt_ms <= 0:
            # Duplicate or backwards tick: keep the anchor and wait for time to move forward
            _LOGGER.debug(f"Skipping integration, non-positive dt: {dt_ms} ms")
            return

        self._last_integration_ms = now_ms

        power = sanitize_power(power_w)
        if power is None:
            # Interval is dropped, not charged later
            _LOGGER.debug(f"Power unavailable, {dt_ms} ms not integrated")
            return

        energy_wh = power * dt_ms / MS_PER_HOUR

        if energy_wh >= 0:
            self._window.imported_wh += energy_wh
        else:
            self._window.exported_wh += -energy_wh

    def reset_window(self) -> None:
        """Start a new window with zero totals."""
        self._window.reset()

    def reanchor(self, now_ms: int) -> None:
        """Move the integration anchor without integrating."""
        self._last_integration_ms = now_ms
