"""Combined integration and correction step."""
from __future__ import annotations

import logging

from .accumulator import EnergyAccumulator, WindowTotals
from .corrector import (
    CorrectionResult,
    CorrectionSettings,
    CorrectorState,
    DriftCorrector,
    LifetimeTotals,
)
from .helpers import ReferenceReading

_LOGGER = logging.getLogger(__name__)


class NetMeter:
    """State object advanced by explicit calls from a periodic driver.

    Holds no reference to Home Assistant so it can run and be tested on its
    own. Callers must not invoke tick() concurrently.
    """

    def __init__(
        self,
        lifetime: LifetimeTotals | None = None,
        settings: CorrectionSettings | None = None,
    ) -> None:
        """Initialize from the persisted lifetime totals."""
        self._accumulator = EnergyAccumulator()
        self._corrector = DriftCorrector(self._accumulator, lifetime, settings)

    @property
    def lifetime(self) -> LifetimeTotals:
        return self._corrector.lifetime

    @property
    def window(self) -> WindowTotals:
        return self._accumulator.window

    @property
    def state(self) -> CorrectorState:
        return self._corrector.state

    @property
    def last_correction(self) -> CorrectionResult | None:
        return self._corrector.last_result

    @property
    def accumulator(self) -> EnergyAccumulator:
        return self._accumulator

    @property
    def corrector(self) -> DriftCorrector:
        return self._corrector

    def start(self, now_ms: int, reading: ReferenceReading | None) -> None:
        """Establish the first baseline before the periodic driver starts."""
        if reading is None:
            _LOGGER.debug("No reference reading at startup, baseline deferred to first tick")
            return
        if self._corrector.state == CorrectorState.UNINITIALIZED:
            self._corrector.establish_baseline(now_ms, reading)

    def tick(
        self, now_ms: int, power_w: float | None, reading: ReferenceReading | None
    ) -> CorrectionResult | None:
        """Run one step: integrate power, then observe the reference counters."""
        self._accumulator.integrate(now_ms, power_w)

        if reading is None:
            return None

        return self._corrector.observe(now_ms, reading)

    def reset_window(self, now_ms: int) -> None:
        """Discard the open window; the next reference reading opens a new one."""
        _LOGGER.info(
            f"Discarding open window (import={self.window.imported_wh:.3f} Wh, "
            f"export={self.window.exported_wh:.3f} Wh)"
        )
        self._corrector.invalidate_baseline()
        self._accumulator.reset_window()
        self._accumulator.reanchor(now_ms)
