"""
Plugin settings sources.

The CI host owns the plugin settings; the notifier asks for them on every
event and rebuilds itself when they change.
"""

from typing import Any, Optional, Protocol

import httpx
import structlog
from pydantic import ValidationError

from gong_notifier.core.errors import ConfigurationError
from gong_notifier.core.schemas import PluginSettings, SettingsValidationError

logger = structlog.get_logger()


class SettingsSource(Protocol):
    async def fetch(self) -> PluginSettings:
        ...

    async def aclose(self) -> None:
        ...


def parse_plugin_settings(payload: Any) -> PluginSettings:
    """
    Parse a host settings payload.

    Raises:
        ConfigurationError: Payload is not an object or holds invalid values
    """
    if not isinstance(payload, dict):
        raise ConfigurationError("Plugin settings must be a JSON object")
    try:
        return PluginSettings.model_validate(payload)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid plugin settings: {e.error_count()} error(s)") from e


def validate_plugin_settings(payload: Any) -> list[SettingsValidationError]:
    """
    Validate a settings payload for go.plugin-settings.validate-configuration.

    The host wraps each value as {"value": ...}; plain values are accepted too.
    """
    if not isinstance(payload, dict):
        return [SettingsValidationError(key="", message="Settings must be a JSON object")]

    values = payload.get("plugin-settings", payload)
    if not isinstance(values, dict):
        return [SettingsValidationError(key="plugin-settings", message="Settings must be a JSON object")]
    flat = {
        key: value.get("value") if isinstance(value, dict) else value
        for key, value in values.items()
    }
    try:
        PluginSettings.model_validate(flat)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            key = str(error["loc"][0]) if error["loc"] else ""
            field = PluginSettings.model_fields.get(key)
            if field is not None and field.alias:
                key = field.alias
            errors.append(SettingsValidationError(key=key, message=error["msg"]))
        return errors
    return []


class StaticSettingsSource:
    """Fixed settings, used when no host endpoint is configured."""

    def __init__(self, settings: Optional[PluginSettings] = None):
        self.settings = settings or PluginSettings()

    async def fetch(self) -> PluginSettings:
        return self.settings

    async def aclose(self) -> None:
        return None


class HostSettingsSource:
    """
    Reads plugin settings from the CI host's plugin-settings endpoint.

    An empty answer means the plugin was never configured and defaults apply.
    """

    def __init__(
        self,
        url: str,
        plugin_id: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.plugin_id = plugin_id
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def fetch(self) -> PluginSettings:
        """
        Raises:
            ConfigurationError: Host unreachable, error status or invalid settings
        """
        try:
            response = await self._client.post(self.url, json={"plugin-id": self.plugin_id})
        except httpx.HTTPError as e:
            raise ConfigurationError(f"Could not fetch plugin settings: {e}") from e

        if response.status_code >= 400:
            raise ConfigurationError(f"Host answered {response.status_code} for plugin settings")

        if not response.text.strip():
            logger.info("plugin_not_configured", plugin_id=self.plugin_id)
            return PluginSettings()

        try:
            payload = response.json()
        except ValueError as e:
            raise ConfigurationError("Plugin settings are not valid JSON") from e
        return parse_plugin_settings(payload)

    async def aclose(self) -> None:
        await self._client.aclose()
