"""Storage Manager Service."""
from __future__ import annotations

import asyncio
import logging

from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.storage import Store
from homeassistant.util import dt as dt_util

from .const import STORAGE_VERSION, STORAGE_KEY
from .corrector import LifetimeTotals

_LOGGER = logging.getLogger(__name__)


class StorageManager:
    """Persists the lifetime net metered totals."""

    def __init__(self, hass, entry_id: str) -> None:
        """Initialize the store for one config entry."""
        self.hass = hass
        self._store = Store(hass, STORAGE_VERSION, f"{STORAGE_KEY}.{entry_id}")
        self._save_lock = asyncio.Lock()
        self._last_save_time = None

    @property
    def last_save_time(self):
        return self._last_save_time

    async def async_load_totals(self) -> LifetimeTotals:
        """Load the lifetime totals, {0, 0} if nothing was stored yet."""
        data = await self._store.async_load()
        if not data:
            _LOGGER.warning("No stored totals found. Starting from 0 Wh.")
            return LifetimeTotals()

        totals = LifetimeTotals.from_dict(data)
        _LOGGER.info(
            f"Startup values loaded: imported={totals.imported_wh} Wh, "
            f"exported={totals.exported_wh} Wh (saved {data.get('last_updated')})"
        )
        return totals

    async def async_save_totals(self, totals: LifetimeTotals) -> bool:
        """Write the totals. Returns False (and logs) if the write failed."""
        async with self._save_lock:
            now = dt_util.now()
            data = {
                **totals.as_dict(),
                "last_updated": now.isoformat(),
            }
            try:
                await self._store.async_save(data)
            except (HomeAssistantError, OSError) as err:
                _LOGGER.error(
                    f"Failed to save net metered totals "
                    f"(imported={totals.imported_wh} Wh, exported={totals.exported_wh} Wh): {err}"
                )
                return False

            self._last_save_time = now
            _LOGGER.debug(f"Saved totals: {data}")
            return True
