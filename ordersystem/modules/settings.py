"""Business settings: exchange rates, shipping and the origin/vendor lists."""

from typing import Any, Union

from ordersystem.core.state import SETTINGS
from ordersystem.models.events import Topics
from ordersystem.models.records import BusinessSettings
from ordersystem.modules.base import DomainModule, to_aliases


class SettingsModule(DomainModule):
    """Owns the `settings` key."""

    entity = "settings"

    async def get_settings(self) -> dict[str, Any]:
        return BusinessSettings.from_store(self.hub.get(SETTINGS) or {}).to_store()

    async def update_settings(self, patch: dict[str, Any]) -> dict[str, Any]:
        """
        Merge `patch` into the settings and persist.

        Origins and vendors are collapsed to ordered unique lists. Changing
        the legacy USD->BGN rate without an explicit EUR rate re-derives
        the EUR rate from it.
        """
        patch = to_aliases(BusinessSettings, patch)
        current = self.hub.get(SETTINGS) or {}
        merged = {**current, **patch}
        if "usdRate" in patch and "eurRate" not in patch:
            merged.pop("eurRate", None)

        stored = self._validate(BusinessSettings, merged).to_store()

        self._commit(
            "settings:update",
            "Промяна на настройките",
            {SETTINGS: stored},
            Topics.SETTINGS_UPDATED,
            {"settings": stored, "changed": sorted(patch)},
        )
        return stored

    async def update_usd_rate(self, rate: float) -> dict[str, Any]:
        return await self.update_settings({"usdRate": rate})

    async def update_eur_rate(self, rate: float) -> dict[str, Any]:
        return await self.update_settings({"eurRate": rate})

    async def update_shipping(self, amount: float) -> dict[str, Any]:
        return await self.update_settings({"factoryShipping": amount})

    async def update_origins(self, origins: Union[str, list[str]]) -> dict[str, Any]:
        """Accepts a list or newline-separated text."""
        return await self.update_settings({"origins": origins})

    async def update_vendors(self, vendors: Union[str, list[str]]) -> dict[str, Any]:
        """Accepts a list or newline-separated text."""
        return await self.update_settings({"vendors": vendors})
