"""End-to-end tests of the combined integration and correction step."""
import pytest

from custom_components.net_metering.corrector import CorrectorState, LifetimeTotals
from custom_components.net_metering.helpers import ReferenceReading
from custom_components.net_metering.meter import NetMeter


def test_startup_to_first_correction():
    """Persisted {1000, 500}; 0.5 Wh integrated; reference moves +1 Wh -> factor 2.0."""
    meter = NetMeter(LifetimeTotals(1000.0, 500.0))
    baseline = ReferenceReading(2000.0, 800.0)
    updated = ReferenceReading(2001.0, 800.0)

    meter.start(0, baseline)
    assert meter.state == CorrectorState.WINDOW_OPEN

    assert meter.tick(0, 1000.0, baseline) is None        # anchors only
    assert meter.tick(1800, 1000.0, baseline) is None     # +0.5 Wh
    assert meter.window.imported_wh == pytest.approx(0.5)

    for now_ms in range(2300, 4000, 500):
        assert meter.tick(now_ms, 0.0, baseline) is None

    # Reference publishes its update at 4000 ms, then stays stable
    for now_ms in range(4000, 9000, 500):
        assert meter.tick(now_ms, 0.0, updated) is None
    assert meter.state == CorrectorState.AWAITING_STABILITY

    result = meter.tick(9000, 0.0, updated)

    assert result is not None
    assert result.factor == pytest.approx(2.0)
    assert result.corrected_imported_wh == pytest.approx(1.0)
    assert result.corrected_exported_wh == 0.0
    assert meter.lifetime.imported_wh == pytest.approx(1001.0)
    assert meter.lifetime.exported_wh == pytest.approx(500.0)
    assert meter.last_correction is result
    assert meter.window.imported_wh == 0.0


def test_zero_power_window_adds_nothing():
    meter = NetMeter(LifetimeTotals(10.0, 20.0))
    meter.start(0, ReferenceReading(100.0, 100.0))

    for now_ms in range(0, 60_000, 500):
        meter.tick(now_ms, 0.0, ReferenceReading(100.0, 100.0))
    assert meter.window.imported_wh == 0.0
    assert meter.window.exported_wh == 0.0

    meter.tick(60_000, 0.0, ReferenceReading(101.0, 100.0))
    result = meter.tick(65_000, 0.0, ReferenceReading(101.0, 100.0))

    assert result.factor == 1.0
    assert meter.lifetime == LifetimeTotals(10.0, 20.0)


def test_correction_reanchors_integration_clock():
    """The gap between window close and the next tick is not re-charged."""
    meter = NetMeter()
    meter.start(0, ReferenceReading(0.0, 0.0))
    meter.tick(0, 1000.0, ReferenceReading(0.0, 0.0))
    meter.tick(3600, 1000.0, ReferenceReading(1.0, 0.0))
    result = meter.tick(8600, 1000.0, ReferenceReading(1.0, 0.0))

    assert result is not None
    assert meter.accumulator.last_integration_ms == 8600
    assert meter.window.imported_wh == 0.0

    meter.tick(9100, 1000.0, ReferenceReading(1.0, 0.0))
    assert meter.window.imported_wh == pytest.approx(1000.0 * 500 / 3_600_000)


def test_unavailable_reference_keeps_integrating():
    meter = NetMeter()
    meter.start(0, ReferenceReading(0.0, 0.0))
    meter.tick(0, 1000.0, None)
    meter.tick(3600, 1000.0, None)

    assert meter.window.imported_wh == pytest.approx(1.0)
    assert meter.state == CorrectorState.WINDOW_OPEN


def test_start_without_reading_defers_baseline():
    meter = NetMeter()
    meter.start(0, None)
    assert meter.state == CorrectorState.UNINITIALIZED

    meter.tick(0, 1000.0, None)
    meter.tick(3600, 1000.0, None)
    assert meter.window.imported_wh == pytest.approx(1.0)

    # First reading opens the window and drops pre-baseline energy
    meter.tick(4100, 1000.0, ReferenceReading(10.0, 0.0))
    assert meter.state == CorrectorState.WINDOW_OPEN
    assert meter.window.imported_wh == 0.0


def test_start_does_not_move_existing_baseline():
    meter = NetMeter()
    meter.start(0, ReferenceReading(10.0, 0.0))
    meter.start(100, ReferenceReading(20.0, 0.0))

    assert meter.corrector.baseline == ReferenceReading(10.0, 0.0)


def test_reset_window_discards_and_rebaselines():
    meter = NetMeter(LifetimeTotals(5.0, 5.0))
    meter.start(0, ReferenceReading(10.0, 0.0))
    meter.tick(0, 1000.0, ReferenceReading(10.0, 0.0))
    meter.tick(3600, 1000.0, ReferenceReading(10.0, 0.0))

    meter.reset_window(4000)

    assert meter.window.imported_wh == 0.0
    assert meter.state == CorrectorState.UNINITIALIZED
    assert meter.accumulator.last_integration_ms == 4000

    meter.tick(4500, 1000.0, ReferenceReading(0.5, 0.0))
    assert meter.corrector.baseline == ReferenceReading(0.5, 0.0)
    assert meter.lifetime == LifetimeTotals(5.0, 5.0)
