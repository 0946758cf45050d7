"""
Gong Notifier - Plugin Settings Tests
=====================================
"""

import json

import httpx
import pytest

from gong_notifier.core.errors import ConfigurationError
from gong_notifier.core.schemas import PluginSettings
from gong_notifier.core.notifier.settings_source import (
    HostSettingsSource,
    StaticSettingsSource,
    parse_plugin_settings,
    validate_plugin_settings,
)


HOST_URL = "http://gocd.example.com/plugin-settings"


class TestPluginSettings:
    """Tests for the settings value type."""

    def test_dashed_keys(self):
        """Host payloads use dashed keys and string values."""
        settings = parse_plugin_settings({
            "server-url": "https://ci.example.com/go/",
            "rest-user": "admin",
            "rest-password": "s3cret",
            "smtp-host": "mail.example.com",
            "smtp-port": "2525",
            "sender-email": "ci@example.com",
            "fallback-recipients": "team@example.com, lead@example.com",
        })

        assert settings.server_url == "https://ci.example.com/go"
        assert settings.rest_user == "admin"
        assert settings.smtp_port == 2525
        assert settings.fallback_recipients == ("team@example.com", "lead@example.com")

    def test_blank_credentials_are_none(self):
        """Empty form fields mean no credentials."""
        settings = parse_plugin_settings({"rest-user": " ", "rest-password": ""})

        assert settings.rest_user is None
        assert settings.rest_password is None

    def test_equality(self):
        """Snapshots compare by value."""
        assert parse_plugin_settings({"smtp-port": "25"}) == PluginSettings()
        assert parse_plugin_settings({"smtp-port": "26"}) != PluginSettings()

    def test_password_not_in_repr(self):
        """The REST password stays out of logs."""
        assert "s3cret" not in repr(PluginSettings(rest_password="s3cret"))

    @pytest.mark.parametrize("payload", [[], "text", None])
    def test_non_object_rejected(self, payload):
        """Only JSON objects are settings."""
        with pytest.raises(ConfigurationError):
            parse_plugin_settings(payload)

    def test_invalid_values_rejected(self):
        """Invalid values raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            parse_plugin_settings({"smtp-port": "70000"})


class TestValidatePluginSettings:
    """Tests for validate-configuration answers."""

    def test_valid(self):
        """Valid wrapped settings produce no errors."""
        payload = {"plugin-settings": {
            "server-url": {"value": "http://localhost:8153/go"},
            "smtp-port": {"value": "25"},
        }}

        assert validate_plugin_settings(payload) == []

    def test_errors_are_keyed_by_setting(self):
        """Each error names the dashed key."""
        errors = validate_plugin_settings({
            "server-url": "ftp://nope",
            "smtp-port": "abc",
        })

        keys = {e.key for e in errors}
        assert keys == {"server-url", "smtp-port"}

    def test_not_an_object(self):
        assert validate_plugin_settings([1, 2])[0].message == "Settings must be a JSON object"


class TestStaticSettingsSource:
    async def test_defaults(self):
        assert await StaticSettingsSource().fetch() == PluginSettings()


class TestHostSettingsSource:
    """Tests for reading settings from the host."""

    def make_source(self, handler) -> HostSettingsSource:
        return HostSettingsSource(HOST_URL, "com.vary.gong", transport=httpx.MockTransport(handler))

    async def test_fetch(self):
        """The plugin id is posted and the answer parsed."""
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(request.content)
            return httpx.Response(200, json={"smtp-host": "mail.example.com"})

        source = self.make_source(handler)
        settings = await source.fetch()
        await source.aclose()

        assert settings.smtp_host == "mail.example.com"
        assert json.loads(bodies[0]) == {"plugin-id": "com.vary.gong"}

    async def test_empty_answer_means_defaults(self):
        """An unconfigured plugin gets default settings."""
        source = self.make_source(lambda request: httpx.Response(200, text="  "))

        assert await source.fetch() == PluginSettings()
        await source.aclose()

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500),
            httpx.Response(200, text="{not json"),
            httpx.Response(200, json={"smtp-port": "zero"}),
        ],
    )
    async def test_bad_answers(self, response):
        """Errors, junk and invalid values raise ConfigurationError."""
        source = self.make_source(lambda request: response)

        with pytest.raises(ConfigurationError):
            await source.fetch()
        await source.aclose()

    async def test_unreachable_host(self):
        """Transport failures raise ConfigurationError."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        source = self.make_source(handler)

        with pytest.raises(ConfigurationError, match="refused"):
            await source.fetch()
        await source.aclose()
