import sys
from unittest.mock import MagicMock
import pytest
from datetime import timezone, datetime

# Mock Voluptuous
sys.modules["voluptuous"] = MagicMock()

# Mock Home Assistant modules
# We must mock these BEFORE any imports in tests
sys.modules["homeassistant"] = MagicMock()
sys.modules["homeassistant.core"] = MagicMock()
sys.modules["homeassistant.exceptions"] = MagicMock()
sys.modules["homeassistant.config_entries"] = MagicMock()
sys.modules["homeassistant.data_entry_flow"] = MagicMock()
sys.modules["homeassistant.components"] = MagicMock()
sys.modules["homeassistant.components.sensor"] = MagicMock()
sys.modules["homeassistant.helpers"] = MagicMock()
sys.modules["homeassistant.helpers.entity"] = MagicMock()
sys.modules["homeassistant.helpers.entity_platform"] = MagicMock()
sys.modules["homeassistant.helpers.storage"] = MagicMock()
sys.modules["homeassistant.helpers.selector"] = MagicMock()
sys.modules["homeassistant.helpers.event"] = MagicMock()
sys.modules["homeassistant.util"] = MagicMock()

# Mock specific submodules that might be imported directly
sys.modules["homeassistant.const"] = MagicMock()

# `from homeassistant import x` resolves through the parent module's attributes
sys.modules["homeassistant"].config_entries = sys.modules["homeassistant.config_entries"]
sys.modules["homeassistant.helpers"].selector = sys.modules["homeassistant.helpers.selector"]
sys.modules["homeassistant.helpers"].event = sys.modules["homeassistant.helpers.event"]


# Exceptions must be real classes so they can be raised and caught
class MockHomeAssistantError(Exception):
    pass

class MockConfigEntryNotReady(MockHomeAssistantError):
    pass

sys.modules["homeassistant.exceptions"].HomeAssistantError = MockHomeAssistantError
sys.modules["homeassistant.exceptions"].ConfigEntryNotReady = MockConfigEntryNotReady


# Mock constants used in code
class MockPlatform:
    SENSOR = "sensor"

class MockUnitOfPower:
    WATT = "W"
    KILO_WATT = "kW"

class MockUnitOfEnergy:
    WATT_HOUR = "Wh"
    KILO_WATT_HOUR = "kWh"

class MockEntityCategory:
    CONFIG = "config"
    DIAGNOSTIC = "diagnostic"

sys.modules["homeassistant.const"].Platform = MockPlatform
sys.modules["homeassistant.const"].UnitOfPower = MockUnitOfPower
sys.modules["homeassistant.const"].UnitOfEnergy = MockUnitOfEnergy
sys.modules["homeassistant.const"].EntityCategory = MockEntityCategory
sys.modules["homeassistant.const"].CONF_NAME = "name"
sys.modules["homeassistant.const"].EVENT_HOMEASSISTANT_STOP = "homeassistant_stop"

# Unit converters with the ratios Home Assistant uses
class MockUnitConverter:
    _UNIT_CONVERSION: dict = {}
    VALID_UNITS: set = set()

    @classmethod
    def convert(cls, value, from_unit, to_unit):
        return value * cls._UNIT_CONVERSION[to_unit] / cls._UNIT_CONVERSION[from_unit]

class MockPowerConverter(MockUnitConverter):
    _UNIT_CONVERSION = {"W": 1, "kW": 1 / 1e3, "MW": 1 / 1e6, "GW": 1 / 1e9, "TW": 1 / 1e12}
    VALID_UNITS = set(_UNIT_CONVERSION)

class MockEnergyConverter(MockUnitConverter):
    _UNIT_CONVERSION = {
        "J": 3600, "kJ": 3.6, "MJ": 3.6e-3, "GJ": 3.6e-6,
        "Wh": 1, "kWh": 1 / 1e3, "MWh": 1 / 1e6, "GWh": 1 / 1e9, "TWh": 1 / 1e12,
    }
    VALID_UNITS = set(_UNIT_CONVERSION)

sys.modules["homeassistant.util.unit_conversion"] = MagicMock()
sys.modules["homeassistant.util.unit_conversion"].PowerConverter = MockPowerConverter
sys.modules["homeassistant.util.unit_conversion"].EnergyConverter = MockEnergyConverter
sys.modules["homeassistant.util"].unit_conversion = sys.modules["homeassistant.util.unit_conversion"]

# Mock Sensor Device Class
class MockSensorDeviceClass:
    ENERGY = "energy"
    POWER = "power"

# Mock Sensor State Class
class MockSensorStateClass:
    MEASUREMENT = "measurement"
    TOTAL = "total"
    TOTAL_INCREASING = "total_increasing"

sys.modules["homeassistant.components.sensor"].SensorDeviceClass = MockSensorDeviceClass
sys.modules["homeassistant.components.sensor"].SensorStateClass = MockSensorStateClass

# Helper to simulate Entity properties
class MockEntityMixin:
    @property
    def name(self):
        return getattr(self, "_attr_name", None)

    @property
    def unique_id(self):
        return getattr(self, "_attr_unique_id", None)

    @property
    def native_value(self):
        return getattr(self, "_attr_native_value", None)

    @property
    def extra_state_attributes(self):
        return getattr(self, "_attr_extra_state_attributes", {})

    @property
    def device_info(self):
         return getattr(self, "_attr_device_info", None)


# We need to be careful with update_coordinator as it's a class
# Define a dummy class that accepts init args
class MockDataUpdateCoordinator:
    def __init__(self, hass, logger, name, update_interval, always_update=True):
        self.hass = hass
        self.logger = logger
        self.name = name
        self.update_interval = update_interval
        self.always_update = always_update
        self.data = {}
        self.pushed_updates = 0

    async def async_refresh(self):
        self.data = await self._async_update_data()

    async def async_config_entry_first_refresh(self):
        await self.async_refresh()

    def async_set_updated_data(self, data):
        self.data = data
        self.pushed_updates += 1

class MockCoordinatorEntity(MockEntityMixin):
    def __init__(self, coordinator):
        self.coordinator = coordinator

mock_coord_module = MagicMock()
mock_coord_module.DataUpdateCoordinator = MockDataUpdateCoordinator
mock_coord_module.CoordinatorEntity = MockCoordinatorEntity
sys.modules["homeassistant.helpers.update_coordinator"] = mock_coord_module

class MockEntity(MockEntityMixin):
    pass

sys.modules["homeassistant.components.sensor"].SensorEntity = MockEntity


# Config flow base: accepts the domain class kwarg and returns plain result dicts
class MockConfigFlow:
    def __init_subclass__(cls, domain=None, **kwargs):
        super().__init_subclass__(**kwargs)
        cls.handler_domain = domain

    def __init__(self):
        self.hass = None
        self.context = {}
        self.unique_id = None

    async def async_set_unique_id(self, unique_id):
        self.unique_id = unique_id

    def _abort_if_unique_id_configured(self):
        pass

    def async_show_form(self, step_id, data_schema=None, errors=None, **kwargs):
        return {"type": "form", "step_id": step_id, "data_schema": data_schema, "errors": errors}

    def async_create_entry(self, title, data, **kwargs):
        return {"type": "create_entry", "title": title, "data": data}

    def async_update_reload_and_abort(self, entry, data=None, **kwargs):
        return {"type": "abort", "reason": "reconfigure_successful", "data": data}

sys.modules["homeassistant.config_entries"].ConfigFlow = MockConfigFlow

# Mock util.dt with REAL timezone
mock_dt = MagicMock(name='mock_dt_real')
mock_dt.UTC = timezone.utc # Use real UTC object
mock_dt.now.return_value = datetime(2023, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

# CRITICAL: Ensure imports via parent module also get the specific mock
sys.modules["homeassistant.util"].dt = mock_dt
sys.modules["homeassistant.util.dt"] = mock_dt


def make_state(value, unit=None):
    """Build a fake entity state."""
    state = MagicMock()
    state.state = str(value)
    state.attributes = {"unit_of_measurement": unit} if unit else {}
    return state


@pytest.fixture
def hass():
    """Mock Home Assistant object."""
    h = MagicMock()
    h.is_running = True
    h.data = {}
    return h


@pytest.fixture
def states(hass):
    """Entity states served by hass.states.get."""
    table = {}
    hass.states.get.side_effect = table.get
    return table
