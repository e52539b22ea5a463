"""Config flow for Net Metering integration."""
from __future__ import annotations

import logging
from typing import Any

import voluptuous as vol

from homeassistant import config_entries
from homeassistant.const import CONF_NAME
from homeassistant.data_entry_flow import FlowResult
from homeassistant.helpers import selector

from .const import (
    DOMAIN,
    DEFAULT_NAME,
    DEFAULT_TICK_INTERVAL_MS,
    DEFAULT_STABILITY_MS,
    DEFAULT_FACTOR_MIN,
    DEFAULT_FACTOR_MAX,
    CONF_POWER_SENSOR,
    CONF_REFERENCE_IMPORT_SENSOR,
    CONF_REFERENCE_EXPORT_SENSOR,
    CONF_TICK_INTERVAL_MS,
    CONF_STABILITY_MS,
    CONF_FACTOR_MIN,
    CONF_FACTOR_MAX,
    TICK_INTERVAL_MIN_MS,
    TICK_INTERVAL_MAX_MS,
    STABILITY_MIN_MS,
    STABILITY_MAX_MS,
)

_LOGGER = logging.getLogger(__name__)


def validate_user_input(user_input: dict[str, Any], power_state_exists: bool = True) -> dict[str, str]:
    """Return form errors for the given input (empty if valid)."""
    errors: dict[str, str] = {}

    if not power_state_exists:
        errors[CONF_POWER_SENSOR] = "entity_not_found"

    if user_input.get(CONF_REFERENCE_IMPORT_SENSOR) == user_input.get(CONF_REFERENCE_EXPORT_SENSOR):
        errors["base"] = "same_reference_sensors"

    factor_min = float(user_input.get(CONF_FACTOR_MIN, DEFAULT_FACTOR_MIN))
    factor_max = float(user_input.get(CONF_FACTOR_MAX, DEFAULT_FACTOR_MAX))
    if factor_min <= 0 or factor_min >= factor_max:
        errors[CONF_FACTOR_MIN] = "invalid_factor_range"

    return errors


class NetMeteringConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle a config flow for Net Metering."""

    VERSION = 1

    def _get_schema(self, user_input: dict[str, Any] | None, default_data: dict[str, Any] | None) -> vol.Schema:
        """Generate the form schema."""

        # Helper to get current value (User Input > Default Data > Default Constant)
        def get_val(key, default=None):
            if user_input and key in user_input:
                return user_input[key]
            if default_data and key in default_data:
                return default_data[key]
            return default

        return vol.Schema({
            vol.Required(CONF_NAME, default=get_val(CONF_NAME, DEFAULT_NAME)): str,
            vol.Required(CONF_POWER_SENSOR, default=get_val(CONF_POWER_SENSOR)): selector.EntitySelector(
                selector.EntitySelectorConfig(domain="sensor", device_class="power")
            ),
            vol.Required(CONF_REFERENCE_IMPORT_SENSOR, default=get_val(CONF_REFERENCE_IMPORT_SENSOR)): selector.EntitySelector(
                selector.EntitySelectorConfig(domain="sensor", device_class="energy")
            ),
            vol.Required(CONF_REFERENCE_EXPORT_SENSOR, default=get_val(CONF_REFERENCE_EXPORT_SENSOR)): selector.EntitySelector(
                selector.EntitySelectorConfig(domain="sensor", device_class="energy")
            ),
            # Timing
            vol.Required(CONF_TICK_INTERVAL_MS, default=get_val(CONF_TICK_INTERVAL_MS, DEFAULT_TICK_INTERVAL_MS)): selector.NumberSelector(
                selector.NumberSelectorConfig(
                    min=TICK_INTERVAL_MIN_MS, max=TICK_INTERVAL_MAX_MS, step=100, unit_of_measurement="ms"
                )
            ),
            vol.Required(CONF_STABILITY_MS, default=get_val(CONF_STABILITY_MS, DEFAULT_STABILITY_MS)): selector.NumberSelector(
                selector.NumberSelectorConfig(
                    min=STABILITY_MIN_MS, max=STABILITY_MAX_MS, step=500, unit_of_measurement="ms"
                )
            ),
            # Correction factor bounds
            vol.Optional(CONF_FACTOR_MIN, default=get_val(CONF_FACTOR_MIN, DEFAULT_FACTOR_MIN)): selector.NumberSelector(
                selector.NumberSelectorConfig(min=0.01, max=1.0, step=0.01, mode="box")
            ),
            vol.Optional(CONF_FACTOR_MAX, default=get_val(CONF_FACTOR_MAX, DEFAULT_FACTOR_MAX)): selector.NumberSelector(
                selector.NumberSelectorConfig(min=1.0, max=100.0, step=0.5, mode="box")
            ),
        })

    def _normalize(self, user_input: dict[str, Any]) -> dict[str, Any]:
        """NumberSelector returns floats; intervals are stored as int ms."""
        data = {**user_input}
        data[CONF_TICK_INTERVAL_MS] = int(data.get(CONF_TICK_INTERVAL_MS, DEFAULT_TICK_INTERVAL_MS))
        data[CONF_STABILITY_MS] = int(data.get(CONF_STABILITY_MS, DEFAULT_STABILITY_MS))
        data[CONF_FACTOR_MIN] = float(data.get(CONF_FACTOR_MIN, DEFAULT_FACTOR_MIN))
        data[CONF_FACTOR_MAX] = float(data.get(CONF_FACTOR_MAX, DEFAULT_FACTOR_MAX))
        return data

    def _validate(self, user_input: dict[str, Any]) -> dict[str, str]:
        power_sensor = user_input.get(CONF_POWER_SENSOR)
        exists = bool(power_sensor) and self.hass.states.get(power_sensor) is not None
        return validate_user_input(user_input, power_state_exists=exists)

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Handle the initial step."""
        errors: dict[str, str] = {}

        if user_input is not None:
            errors = self._validate(user_input)
            if not errors:
                await self.async_set_unique_id(user_input[CONF_POWER_SENSOR])
                self._abort_if_unique_id_configured()
                return self.async_create_entry(title=user_input[CONF_NAME], data=self._normalize(user_input))

        return self.async_show_form(
            step_id="user",
            data_schema=self._get_schema(user_input, None),
            errors=errors,
        )

    async def async_step_reconfigure(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Handle reconfiguration. Lifetime totals are kept in storage across the reload."""
        errors: dict[str, str] = {}
        entry = self.hass.config_entries.async_get_entry(self.context["entry_id"])

        if user_input is not None:
            errors = self._validate(user_input)
            if not errors:
                return self.async_update_reload_and_abort(
                    entry, data={**entry.data, **self._normalize(user_input)}
                )

        return self.async_show_form(
            step_id="reconfigure",
            data_schema=self._get_schema(user_input, {**entry.data}),
            errors=errors,
        )
