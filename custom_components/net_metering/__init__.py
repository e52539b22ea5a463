"""The Net Metering integration."""
from __future__ import annotations

import logging
import voluptuous as vol

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import Platform, EVENT_HOMEASSISTANT_STOP
from homeassistant.core import HomeAssistant, ServiceCall, Event
from homeassistant.exceptions import ConfigEntryNotReady
from homeassistant.helpers.event import async_track_time_interval

from .const import DOMAIN, SERVICE_RESET_WINDOW, SERVICE_SAVE_TOTALS
from .coordinator import NetMeteringCoordinator

_LOGGER = logging.getLogger(__name__)

PLATFORMS: list[Platform] = [
    Platform.SENSOR,
]

SERVICE_SCHEMA_RESET_WINDOW = vol.Schema({})
SERVICE_SCHEMA_SAVE_TOTALS = vol.Schema({})


def _get_coordinators(hass: HomeAssistant) -> list[NetMeteringCoordinator]:
    """Helper to get all active NetMeteringCoordinators."""
    return [
        coord
        for coord in hass.data.get(DOMAIN, {}).values()
        if isinstance(coord, NetMeteringCoordinator)
    ]


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up Net Metering from a config entry."""

    hass.data.setdefault(DOMAIN, {})

    coordinator = NetMeteringCoordinator(hass, entry)
    try:
        await coordinator.async_config_entry_first_refresh()
    except Exception as ex:
        raise ConfigEntryNotReady(f"Unable to load net metered totals: {ex}") from ex

    hass.data[DOMAIN][entry.entry_id] = coordinator

    # Ticks run whether or not any entity is listening
    entry.async_on_unload(
        async_track_time_interval(hass, coordinator.async_tick, coordinator.tick_interval)
    )

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)

    # Register listener for Home Assistant Stop
    async def async_handle_stop(event: Event) -> None:
        """Handle Home Assistant stop event."""
        _LOGGER.info("Home Assistant stopping, saving net metered totals.")
        await coordinator.async_save_totals()

    entry.async_on_unload(
        hass.bus.async_listen_once(EVENT_HOMEASSISTANT_STOP, async_handle_stop)
    )

    # Register Reset Window Service
    async def handle_reset_window(call: ServiceCall):
        """Handle the reset window service call."""
        _LOGGER.info("Service called to discard the open correction window.")

        for coord in _get_coordinators(hass):
            await coord.async_reset_window()

    hass.services.async_register(
        DOMAIN,
        SERVICE_RESET_WINDOW,
        handle_reset_window,
        schema=SERVICE_SCHEMA_RESET_WINDOW
    )

    # Register Save Totals Service
    async def handle_save_totals(call: ServiceCall):
        """Handle the save totals service call."""
        _LOGGER.info("Service called to save net metered totals.")

        for coord in _get_coordinators(hass):
            await coord.async_save_totals()

    hass.services.async_register(
        DOMAIN,
        SERVICE_SAVE_TOTALS,
        handle_save_totals,
        schema=SERVICE_SCHEMA_SAVE_TOTALS
    )

    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    if unload_ok := await hass.config_entries.async_unload_platforms(entry, PLATFORMS):
        coordinator = hass.data[DOMAIN].pop(entry.entry_id)

        # Ensure final save before unload
        await coordinator.async_save_totals()

        # Unregister services if this is the last entry
        if not hass.data[DOMAIN]:
            hass.services.async_remove(DOMAIN, SERVICE_RESET_WINDOW)
            hass.services.async_remove(DOMAIN, SERVICE_SAVE_TOTALS)

    return unload_ok
