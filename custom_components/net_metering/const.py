"""Constants for the Net Metering integration."""

DOMAIN = "net_metering"
VERSION = "1.0.0"

# Storage
STORAGE_VERSION = 1
STORAGE_KEY = DOMAIN  # Suffixed with the config entry id

# Default Configuration Values
DEFAULT_NAME = "Net Metering"
DEFAULT_TICK_INTERVAL_MS = 500
DEFAULT_STABILITY_MS = 5000
DEFAULT_FACTOR_MIN = 0.1
DEFAULT_FACTOR_MAX = 10.0

# Correction policy
ENERGY_EPSILON_WH = 0.001       # Integrated window net at or below this is "no signal"
MIN_PLAUSIBLE_FACTOR = 0.001    # Ratios at or below this are sign flips / counter resets

# Unit conversion
MS_PER_HOUR = 3_600_000

# Persistence retry after a failed save (seconds)
SAVE_RETRY_SECONDS = 30

# Configuration keys
CONF_POWER_SENSOR = "power_sensor"
CONF_REFERENCE_IMPORT_SENSOR = "reference_import_sensor"
CONF_REFERENCE_EXPORT_SENSOR = "reference_export_sensor"
CONF_TICK_INTERVAL_MS = "tick_interval_ms"
CONF_STABILITY_MS = "stability_ms"
CONF_FACTOR_MIN = "factor_min"
CONF_FACTOR_MAX = "factor_max"

# Config flow limits
TICK_INTERVAL_MIN_MS = 100
TICK_INTERVAL_MAX_MS = 5000
STABILITY_MIN_MS = 1000
STABILITY_MAX_MS = 60000

# Coordinator data keys
ATTR_LIFETIME_IMPORTED = "lifetime_imported_wh"
ATTR_LIFETIME_EXPORTED = "lifetime_exported_wh"
ATTR_CORRECTION_FACTOR = "correction_factor"
ATTR_LAST_CORRECTION = "last_correction"
ATTR_CORRECTOR_STATE = "corrector_state"
ATTR_SAVE_PENDING = "save_pending"

# Sensor Names
SENSOR_NET_ENERGY = "Net Metered Energy"
SENSOR_NET_ENERGY_RETURN = "Net Metered Energy Return"
SENSOR_CORRECTION_FACTOR = "Correction Factor"

# Services
SERVICE_RESET_WINDOW = "reset_window"
SERVICE_SAVE_TOTALS = "save_totals"
