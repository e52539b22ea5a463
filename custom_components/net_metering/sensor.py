"""Sensor platform for Net Metering."""
from __future__ import annotations

import logging

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorStateClass,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import UnitOfEnergy, EntityCategory
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import (
    DOMAIN,
    ATTR_LIFETIME_IMPORTED,
    ATTR_LIFETIME_EXPORTED,
    ATTR_CORRECTION_FACTOR,
    ATTR_LAST_CORRECTION,
    ATTR_CORRECTOR_STATE,
    ATTR_SAVE_PENDING,
    SENSOR_NET_ENERGY,
    SENSOR_NET_ENERGY_RETURN,
    SENSOR_CORRECTION_FACTOR,
)
from .coordinator import NetMeteringCoordinator
from .sensors.base import NetMeteringBaseSensor

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up Net Metering sensors based on a config entry."""
    coordinator: NetMeteringCoordinator = hass.data[DOMAIN][entry.entry_id]

    entities = [
        NetMeteredEnergySensor(coordinator, entry),
        NetMeteredEnergyReturnSensor(coordinator, entry),
        NetMeteringCorrectionFactorSensor(coordinator, entry),
    ]

    async_add_entities(entities)


class NetMeteredEnergySensor(NetMeteringBaseSensor):
    """Lifetime phase-netted import energy."""

    _attr_name = SENSOR_NET_ENERGY
    _attr_native_unit_of_measurement = UnitOfEnergy.WATT_HOUR
    _attr_state_class = SensorStateClass.TOTAL_INCREASING
    _attr_device_class = SensorDeviceClass.ENERGY
    _attr_icon = "mdi:transmission-tower-import"
    _attr_suggested_display_precision = 0

    @property
    def native_value(self) -> float:
        """Return the state of the sensor."""
        return round(self.coordinator.data.get(ATTR_LIFETIME_IMPORTED, 0.0), 3)

    @property
    def unique_id(self) -> str:
        """Return a unique ID."""
        return f"{self.entry.entry_id}_net_metered_energy"


class NetMeteredEnergyReturnSensor(NetMeteringBaseSensor):
    """Lifetime phase-netted export energy."""

    _attr_name = SENSOR_NET_ENERGY_RETURN
    _attr_native_unit_of_measurement = UnitOfEnergy.WATT_HOUR
    _attr_state_class = SensorStateClass.TOTAL_INCREASING
    _attr_device_class = SensorDeviceClass.ENERGY
    _attr_icon = "mdi:transmission-tower-export"
    _attr_suggested_display_precision = 0

    @property
    def native_value(self) -> float:
        """Return the state of the sensor."""
        return round(self.coordinator.data.get(ATTR_LIFETIME_EXPORTED, 0.0), 3)

    @property
    def unique_id(self) -> str:
        """Return a unique ID."""
        return f"{self.entry.entry_id}_net_metered_energy_return"


class NetMeteringCorrectionFactorSensor(NetMeteringBaseSensor):
    """Factor applied when the last correction window closed."""

    _attr_name = SENSOR_CORRECTION_FACTOR
    _attr_state_class = SensorStateClass.MEASUREMENT
    _attr_icon = "mdi:scale-balance"
    _attr_entity_category = EntityCategory.DIAGNOSTIC

    @property
    def native_value(self) -> float | None:
        """Return the last applied factor, None before the first correction."""
        factor = self.coordinator.data.get(ATTR_CORRECTION_FACTOR)
        if factor is None:
            return None
        return round(factor, 4)

    @property
    def extra_state_attributes(self):
        """Return details of the last closed window."""
        attrs = {
            "state": self.coordinator.data.get(ATTR_CORRECTOR_STATE),
            "save_pending": self.coordinator.data.get(ATTR_SAVE_PENDING, False),
            "factor_min": self.coordinator.settings.factor_min,
            "factor_max": self.coordinator.settings.factor_max,
            "stability_ms": self.coordinator.settings.stability_ms,
        }

        last = self.coordinator.data.get(ATTR_LAST_CORRECTION)
        if last:
            attrs.update({
                "reference_delta_imported_wh": round(last["ref_delta_imported_wh"], 3),
                "reference_delta_exported_wh": round(last["ref_delta_exported_wh"], 3),
                "reference_net_wh": round(last["ref_net_wh"], 3),
                "integrated_net_wh": round(last["integrated_net_wh"], 3),
                "raw_ratio": round(last["raw_ratio"], 4) if last["raw_ratio"] is not None else None,
                "window_imported_wh": round(last["window_imported_wh"], 3),
                "window_exported_wh": round(last["window_exported_wh"], 3),
                "corrected_imported_wh": round(last["corrected_imported_wh"], 3),
                "corrected_exported_wh": round(last["corrected_exported_wh"], 3),
            })

        return attrs

    @property
    def unique_id(self) -> str:
        """Return a unique ID."""
        return f"{self.entry.entry_id}_correction_factor"
