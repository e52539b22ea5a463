"""Coordinator for Net Metering."""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import timedelta

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.update_coordinator import (
    DataUpdateCoordinator,
)

from .helpers import (
    ReferenceReading,
    convert_energy_to_wh,
    convert_power_to_w,
    sanitize_power,
)
from .corrector import CorrectionSettings
from .meter import NetMeter
from .storage import StorageManager
from .const import (
    DOMAIN,
    ATTR_LIFETIME_IMPORTED,
    ATTR_LIFETIME_EXPORTED,
    ATTR_CORRECTION_FACTOR,
    ATTR_LAST_CORRECTION,
    ATTR_CORRECTOR_STATE,
    ATTR_SAVE_PENDING,
    CONF_POWER_SENSOR,
    CONF_REFERENCE_IMPORT_SENSOR,
    CONF_REFERENCE_EXPORT_SENSOR,
    CONF_TICK_INTERVAL_MS,
    CONF_STABILITY_MS,
    CONF_FACTOR_MIN,
    CONF_FACTOR_MAX,
    DEFAULT_TICK_INTERVAL_MS,
    DEFAULT_STABILITY_MS,
    DEFAULT_FACTOR_MIN,
    DEFAULT_FACTOR_MAX,
    SAVE_RETRY_SECONDS,
)

_LOGGER = logging.getLogger(__name__)


class NetMeteringCoordinator(DataUpdateCoordinator):
    """Drives the net meter on a fixed nominal interval.

    Each tick reads power and reference counters, advances the meter, and
    persists the lifetime totals when a correction window closed. The first
    refresh loads the stored totals; later ticks arrive from a time interval
    tracker set up with the config entry. Ticks, service calls and shutdown
    saves are serialized by one lock.
    """

    def __init__(self, hass: HomeAssistant, entry: ConfigEntry) -> None:
        """Initialize."""
        self.tick_interval = timedelta(
            milliseconds=int(entry.data.get(CONF_TICK_INTERVAL_MS, DEFAULT_TICK_INTERVAL_MS))
        )

        # No polling: ticks come from async_track_time_interval, see async_tick
        super().__init__(
            hass,
            _LOGGER,
            name=DOMAIN,
            update_interval=None,
            always_update=False,
        )
        self.entry = entry

        # Configuration parameters
        self.power_sensor = entry.data.get(CONF_POWER_SENSOR)
        self.reference_import_sensor = entry.data.get(CONF_REFERENCE_IMPORT_SENSOR)
        self.reference_export_sensor = entry.data.get(CONF_REFERENCE_EXPORT_SENSOR)

        self.settings = CorrectionSettings(
            stability_ms=int(entry.data.get(CONF_STABILITY_MS, DEFAULT_STABILITY_MS)),
            factor_min=float(entry.data.get(CONF_FACTOR_MIN, DEFAULT_FACTOR_MIN)),
            factor_max=float(entry.data.get(CONF_FACTOR_MAX, DEFAULT_FACTOR_MAX)),
        )

        # Replaced with the persisted totals on first refresh
        self.meter = NetMeter(settings=self.settings)
        self.storage = StorageManager(hass, entry.entry_id)

        self._step_lock = asyncio.Lock()
        self._is_loaded = False
        self._save_pending = False
        self._last_save_attempt_ms: int | None = None
        self._reference_available = True
        self._power_available = True

        self.data = self._build_data()

    @staticmethod
    def _now_ms() -> int:
        """Monotonic clock in milliseconds."""
        return int(time.monotonic() * 1000)

    async def _async_load_data(self) -> None:
        """Load persisted totals and establish the first baseline."""
        totals = await self.storage.async_load_totals()
        self.meter = NetMeter(totals, self.settings)
        self.meter.start(self._now_ms(), self._read_reference())
        self._is_loaded = True

    async def _async_update_data(self):
        """First refresh: load totals and run the first tick."""
        return await self._async_step()

    async def async_tick(self, now=None) -> None:
        """Timer callback, one tick per tick_interval."""
        if not self._is_loaded:
            _LOGGER.debug("Skipping tick, totals not loaded yet")
            return

        data = await self._async_step()
        # Entities only see a new snapshot when something they show changed
        if data != self.data:
            self.async_set_updated_data(data)

    async def _async_step(self) -> dict:
        """Run one tick."""
        async with self._step_lock:
            if not self._is_loaded:
                await self._async_load_data()

            now_ms = self._now_ms()
            power_w = self._read_power_w()
            reading = self._read_reference()

            result = self.meter.tick(now_ms, power_w, reading)

            if result is not None:
                _LOGGER.info(
                    f"Correction applied: factor={result.factor}, "
                    f"imported +{result.corrected_imported_wh:.3f} Wh -> {result.lifetime_imported_wh:.3f} Wh, "
                    f"exported +{result.corrected_exported_wh:.3f} Wh -> {result.lifetime_exported_wh:.3f} Wh"
                )
                await self._async_persist(now_ms)
            elif self._save_pending and self._retry_due(now_ms):
                _LOGGER.info("Retrying save of net metered totals")
                await self._async_persist(now_ms)

            return self._build_data()

    def _retry_due(self, now_ms: int) -> bool:
        if self._last_save_attempt_ms is None:
            return True
        return now_ms - self._last_save_attempt_ms >= SAVE_RETRY_SECONDS * 1000

    async def _async_persist(self, now_ms: int | None = None) -> bool:
        """Store the current lifetime totals. Caller holds the step lock."""
        self._last_save_attempt_ms = now_ms if now_ms is not None else self._now_ms()
        ok = await self.storage.async_save_totals(self.meter.lifetime)
        # Totals stay advanced in memory either way; the next save carries them
        self._save_pending = not ok
        return ok

    async def async_save_totals(self) -> bool:
        """Persist the lifetime totals now (service call / shutdown)."""
        async with self._step_lock:
            if not self._is_loaded:
                # Nothing loaded yet, writing would overwrite stored totals with zero
                _LOGGER.debug("Skipping save, totals not loaded yet")
                return False
            ok = await self._async_persist()
        self.async_set_updated_data(self._build_data())
        return ok

    async def async_reset_window(self) -> None:
        """Discard the open correction window and re-baseline."""
        async with self._step_lock:
            now_ms = self._now_ms()
            self.meter.reset_window(now_ms)
            self.meter.start(now_ms, self._read_reference())
        self.async_set_updated_data(self._build_data())

    def _build_data(self) -> dict:
        """Snapshot for entities. Window totals are left out so ticks don't churn state."""
        last = self.meter.last_correction
        return {
            ATTR_LIFETIME_IMPORTED: self.meter.lifetime.imported_wh,
            ATTR_LIFETIME_EXPORTED: self.meter.lifetime.exported_wh,
            ATTR_CORRECTION_FACTOR: last.factor if last else None,
            ATTR_LAST_CORRECTION: last.as_dict() if last else None,
            ATTR_CORRECTOR_STATE: self.meter.state.value,
            ATTR_SAVE_PENDING: self._save_pending,
        }

    def _get_float_state(self, entity_id: str) -> tuple[float | None, str | None]:
        """Helper to get float state and unit from an entity."""
        if not entity_id:
            return None, None
        state = self.hass.states.get(entity_id)
        if state and state.state not in ("unknown", "unavailable"):
            try:
                return float(state.state), state.attributes.get("unit_of_measurement")
            except (ValueError, TypeError):
                pass
        return None, None

    def _read_power_w(self) -> float | None:
        """Read total active power (sum of all phases) in W."""
        value, unit = self._get_float_state(self.power_sensor)
        power = sanitize_power(value)
        if power is not None:
            power = convert_power_to_w(power, unit)
        if power is None:
            if self._power_available:
                _LOGGER.debug(f"Power sensor '{self.power_sensor}' is unavailable.")
            self._power_available = False
            return None

        self._power_available = True
        return power

    def _read_reference(self) -> ReferenceReading | None:
        """Read the reference meter's cumulative counters in Wh."""
        imported, imported_unit = self._get_float_state(self.reference_import_sensor)
        exported, exported_unit = self._get_float_state(self.reference_export_sensor)

        if imported is not None:
            imported = convert_energy_to_wh(imported, imported_unit)
        if exported is not None:
            exported = convert_energy_to_wh(exported, exported_unit)

        reading = ReferenceReading.from_values(imported, exported)
        if reading is None:
            if self._reference_available and self.hass.is_running:
                _LOGGER.warning(
                    f"Reference counters '{self.reference_import_sensor}' / "
                    f"'{self.reference_export_sensor}' are unavailable. Correction paused."
                )
            self._reference_available = False
            return None

        if not self._reference_available:
            _LOGGER.info("Reference counters available again.")
        self._reference_available = True
        return reading
