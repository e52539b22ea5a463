"""Base sensor for Net Metering."""
from __future__ import annotations

from homeassistant.components.sensor import SensorEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from ..const import DOMAIN, VERSION
from ..coordinator import NetMeteringCoordinator


class NetMeteringBaseSensor(CoordinatorEntity, SensorEntity):
    """Base class for Net Metering sensors."""

    def __init__(self, coordinator: NetMeteringCoordinator, entry: ConfigEntry) -> None:
        """Initialize the sensor."""
        super().__init__(coordinator)
        self.entry = entry
        self._attr_has_entity_name = True

    @property
    def device_info(self):
        """Return device information."""
        return {
            "identifiers": {(DOMAIN, self.entry.entry_id)},
            "name": self.entry.title,
            "manufacturer": "Net Metering",
            "model": "Power Integration",
            "sw_version": VERSION,
            "entry_type": "service",
        }
