"""Drift correction against the reference meter's energy counters."""
from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from enum import Enum

from .accumulator import EnergyAccumulator
from .helpers import ReferenceReading, clamp, is_number
from .const import (
    DEFAULT_STABILITY_MS,
    DEFAULT_FACTOR_MIN,
    DEFAULT_FACTOR_MAX,
    ENERGY_EPSILON_WH,
    MIN_PLAUSIBLE_FACTOR,
)

_LOGGER = logging.getLogger(__name__)


class CorrectorState(Enum):
    """Logical state of the drift corrector."""

    UNINITIALIZED = "uninitialized"
    WINDOW_OPEN = "window_open"
    AWAITING_STABILITY = "awaiting_stability"


@dataclass
class LifetimeTotals:
    """Persisted, non-decreasing net metered totals (Wh)."""

    imported_wh: float = 0.0
    exported_wh: float = 0.0

    @classmethod
    def from_dict(cls, data: dict | None) -> LifetimeTotals:
        """Restore from storage, dropping values that cannot be totals."""
        if not isinstance(data, dict):
            return cls()

        def _value(key: str) -> float:
            val = data.get(key)
            if not is_number(val) or val < 0:
                if val is not None:
                    _LOGGER.warning(f"Ignoring invalid stored {key}: {val!r}, using 0.0")
                return 0.0
            return float(val)

        return cls(_value("imported_wh"), _value("exported_wh"))

    def as_dict(self) -> dict:
        """Return the storage representation."""
        return {"imported_wh": self.imported_wh, "exported_wh": self.exported_wh}


@dataclass(frozen=True)
class CorrectionSettings:
    """Tunables of the correction policy."""

    stability_ms: int = DEFAULT_STABILITY_MS
    factor_min: float = DEFAULT_FACTOR_MIN
    factor_max: float = DEFAULT_FACTOR_MAX
    epsilon_wh: float = ENERGY_EPSILON_WH
    min_plausible_factor: float = MIN_PLAUSIBLE_FACTOR


@dataclass(frozen=True)
class CorrectionResult:
    """Everything that happened when one correction window closed."""

    time_ms: int
    ref_delta_imported_wh: float
    ref_delta_exported_wh: float
    ref_net_wh: float
    integrated_net_wh: float
    raw_ratio: float | None
    factor: float
    window_imported_wh: float
    window_exported_wh: float
    corrected_imported_wh: float
    corrected_exported_wh: float
    lifetime_imported_wh: float
    lifetime_exported_wh: float

    def as_dict(self) -> dict:
        """Return a plain dict (for entity attributes)."""
        return asdict(self)


def compute_correction_factor(
    ref_net_wh: float, integrated_net_wh: float, settings: CorrectionSettings
) -> float:
    """Return the factor that aligns a window's integrated net to the reference net.

    A window with (near) zero integrated signal, or a ratio that is not finite
    or not positive, passes through with factor 1.0. The result is always
    clamped to [factor_min, factor_max].
    """
    factor = 1.0
    if is_number(integrated_net_wh) and abs(integrated_net_wh) > settings.epsilon_wh:
        try:
            factor = ref_net_wh / integrated_net_wh
        except (TypeError, ZeroDivisionError):
            factor = 1.0

        if not is_number(factor) or factor <= settings.min_plausible_factor:
            factor = 1.0

    return clamp(factor, settings.factor_min, settings.factor_max)


class DriftCorrector:
    """Aligns integrated window energy to the coarse reference counters.

    The reference meter publishes its counters at its own cadence (about once
    per minute). A window closes once the counters changed and then stayed
    unchanged for the stability period; the integrated window totals are scaled
    by one common factor and added to the lifetime totals.
    """

    def __init__(
        self,
        accumulator: EnergyAccumulator,
        lifetime: LifetimeTotals | None = None,
        settings: CorrectionSettings | None = None,
    ) -> None:
        """Initialize."""
        self._accumulator = accumulator
        self._lifetime = lifetime if lifetime is not None else LifetimeTotals()
        self._settings = settings or CorrectionSettings()

        self._baseline: ReferenceReading | None = None
        self._last_seen: ReferenceReading | None = None
        self._changed = False
        self._last_change_ms = 0
        self._last_correction_ms = 0
        self._last_result: CorrectionResult | None = None

    @property
    def lifetime(self) -> LifetimeTotals:
        return self._lifetime

    @property
    def settings(self) -> CorrectionSettings:
        return self._settings

    @property
    def baseline(self) -> ReferenceReading | None:
        return self._baseline

    @property
    def last_result(self) -> CorrectionResult | None:
        return self._last_result

    @property
    def last_change_ms(self) -> int:
        return self._last_change_ms

    @property
    def last_correction_ms(self) -> int:
        return self._last_correction_ms

    @property
    def state(self) -> CorrectorState:
        """Return the logical state."""
        if self._baseline is None:
            return CorrectorState.UNINITIALIZED
        if self._changed:
            return CorrectorState.AWAITING_STABILITY
        return CorrectorState.WINDOW_OPEN

    def establish_baseline(self, now_ms: int, reading: ReferenceReading) -> None:
        """Open the first window at the given reading."""
        self._baseline = reading
        self._last_seen = reading
        self._changed = False
        self._last_change_ms = now_ms
        self._last_correction_ms = now_ms
        self._accumulator.reset_window()

        _LOGGER.info(
            f"Baseline initialized: import={reading.imported_wh} Wh, "
            f"export={reading.exported_wh} Wh"
        )

    def invalidate_baseline(self) -> None:
        """Forget the baseline; the next reading opens a fresh window."""
        self._baseline = None
        self._last_seen = None
        self._changed = False

    def observe(self, now_ms: int, reading: ReferenceReading | None) -> CorrectionResult | None:
        """Process one reference reading. Returns the result if a window closed."""
        if reading is None:
            return None
        if not is_number(reading.imported_wh) or not is_number(reading.exported_wh):
            return None

        if self._baseline is None:
            self.establish_baseline(now_ms, reading)
            return None

        self._track_change(now_ms, reading)

        if not self._changed:
            return None

        # Wait until the counters have been quiet for the stability period
        if now_ms - self._last_change_ms < self._settings.stability_ms:
            return None

        return self._close_window(now_ms, reading)

    def _track_change(self, now_ms: int, reading: ReferenceReading) -> None:
        """Flag the counters as changed when either side moved."""
        last = self._last_seen
        if last is not None and reading == last:
            return

        if last is not None and (
            reading.imported_wh < last.imported_wh or reading.exported_wh < last.exported_wh
        ):
            _LOGGER.warning(
                f"Reference counters went backwards ({last.imported_wh}/{last.exported_wh} Wh -> "
                f"{reading.imported_wh}/{reading.exported_wh} Wh). Meter reset? "
                "Correction will be bounded by the factor clamp."
            )

        self._changed = True
        self._last_change_ms = now_ms
        self._last_seen = reading

    def _close_window(self, now_ms: int, reading: ReferenceReading) -> CorrectionResult:
        """Apply the correction, fold the window into the lifetime totals and reopen."""
        baseline = self._baseline
        window = self._accumulator.window

        ref_delta_import = reading.imported_wh - baseline.imported_wh
        ref_delta_export = reading.exported_wh - baseline.exported_wh
        ref_net = ref_delta_import - ref_delta_export
        int_net = window.net_wh

        raw_ratio = None
        if is_number(int_net) and abs(int_net) > self._settings.epsilon_wh:
            raw_ratio = ref_net / int_net

        factor = compute_correction_factor(ref_net, int_net, self._settings)
        if raw_ratio is not None and factor != raw_ratio:
            _LOGGER.info(f"Correction ratio {raw_ratio:.4f} out of range, applying factor {factor}")

        window_import = window.imported_wh
        window_export = window.exported_wh
        corrected_import = window_import * factor
        corrected_export = window_export * factor

        self._lifetime.imported_wh += corrected_import
        self._lifetime.exported_wh += corrected_export

        result = CorrectionResult(
            time_ms=now_ms,
            ref_delta_imported_wh=ref_delta_import,
            ref_delta_exported_wh=ref_delta_export,
            ref_net_wh=ref_net,
            integrated_net_wh=int_net,
            raw_ratio=raw_ratio,
            factor=factor,
            window_imported_wh=window_import,
            window_exported_wh=window_export,
            corrected_imported_wh=corrected_import,
            corrected_exported_wh=corrected_export,
            lifetime_imported_wh=self._lifetime.imported_wh,
            lifetime_exported_wh=self._lifetime.exported_wh,
        )

        _LOGGER.debug(
            f"Correction applied: factor={factor}, ref_net={ref_net:.3f} Wh, "
            f"integrated_net={int_net:.3f} Wh, corrected import={corrected_import:.3f} Wh, "
            f"corrected export={corrected_export:.3f} Wh"
        )

        # Start next window
        self._baseline = reading
        self._accumulator.reset_window()
        self._changed = False
        self._last_change_ms = now_ms
        self._last_correction_ms = now_ms
        self._last_result = result

        # Window-close processing must not be charged as elapsed time on the next tick
        self._accumulator.reanchor(now_ms)

        return result
