"""
Settings Gate
=============

Keeps the history cache and the listener registry in step with the plugin
settings held by the CI host.

- reconcile() fetches the settings, and when they differ from the current
  snapshot builds a fresh cache + registry and swaps them in one step.
- reading() gives dispatches a consistent view of the components. A rebuild
  waits for running dispatches to finish and holds new ones back until the
  swap is done.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

import structlog

from gong_notifier.core.config import Settings
from gong_notifier.core.errors import ConfigurationError
from gong_notifier.core.schemas import PluginSettings
from gong_notifier.core.notifier.email import EmailTemplates, SmtpEmailSender
from gong_notifier.core.notifier.go_client import GoServerClient
from gong_notifier.core.notifier.history_cache import PipelineHistoryCache
from gong_notifier.core.notifier.listeners import (
    DebugNotificationListener,
    EmailNotificationListener,
    ListenerRegistry,
)
from gong_notifier.core.notifier.settings_source import SettingsSource

logger = structlog.get_logger()


@dataclass(frozen=True)
class NotifierComponents:
    """Everything built from one settings snapshot."""
    settings: PluginSettings
    history: PipelineHistoryCache
    listeners: ListenerRegistry

    async def aclose(self) -> None:
        await self.history.aclose()


ComponentFactory = Callable[[PluginSettings], NotifierComponents]


def build_components(plugin_settings: PluginSettings, app_settings: Settings) -> NotifierComponents:
    """Build the history cache and the listener registry for a settings snapshot."""
    client = GoServerClient(
        plugin_settings.server_url,
        username=plugin_settings.rest_user,
        password=plugin_settings.rest_password,
        timeout=app_settings.HISTORY_TIMEOUT_SECONDS,
        page_size=app_settings.HISTORY_PAGE_SIZE,
        max_pages=app_settings.HISTORY_MAX_PAGES,
    )
    history = PipelineHistoryCache(client, fetch_timeout=app_settings.HISTORY_TIMEOUT_SECONDS)
    sender = SmtpEmailSender(
        plugin_settings.smtp_host,
        plugin_settings.smtp_port,
        plugin_settings.sender_email,
        timeout=app_settings.SMTP_TIMEOUT_SECONDS,
    )
    listeners = ListenerRegistry(
        [
            DebugNotificationListener(),
            EmailNotificationListener(
                history,
                sender,
                EmailTemplates(plugin_settings.server_url),
                fallback_recipients=plugin_settings.fallback_recipients,
            ),
        ],
        timeout=app_settings.LISTENER_TIMEOUT_SECONDS,
    )
    return NotifierComponents(settings=plugin_settings, history=history, listeners=listeners)


class ReadWriteLock:
    """
    asyncio read/write lock.

    Any number of readers, or one writer. A waiting writer blocks new readers.
    """

    def __init__(self):
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and not self._writers_waiting)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and not self._readers)
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass(frozen=True)
class ReconcileOutcome:
    """Result of one reconcile() call."""
    changed: bool
    warnings: tuple[str, ...] = ()


class SettingsGate:
    """Owns the current settings snapshot and the components built from it."""

    def __init__(self, source: SettingsSource, factory: ComponentFactory):
        self.source = source
        self.factory = factory
        self._lock = ReadWriteLock()
        self._components: Optional[NotifierComponents] = None
        self.rebuilds = 0

    @property
    def current_settings(self) -> Optional[PluginSettings]:
        return self._components.settings if self._components else None

    async def reconcile(self) -> ReconcileOutcome:
        """
        Bring the components in line with the host settings.

        A settings source failure keeps the current configuration, or falls
        back to default settings when nothing was configured yet.
        """
        warnings: list[str] = []
        try:
            fetched: Optional[PluginSettings] = await self.source.fetch()
        except ConfigurationError as e:
            logger.warning("plugin_settings_unavailable", error=str(e))
            warnings.append(str(e))
            fetched = None

        if fetched is None:
            if self._components is not None:
                return ReconcileOutcome(changed=False, warnings=tuple(warnings))
            warnings.append("Using default plugin settings")
            fetched = PluginSettings()

        if self._components is not None and self._components.settings == fetched:
            return ReconcileOutcome(changed=False, warnings=tuple(warnings))

        async with self._lock.write():
            # Another reconcile may have applied the same change while we waited
            if self._components is not None and self._components.settings == fetched:
                return ReconcileOutcome(changed=False, warnings=tuple(warnings))

            previous = self._components
            self._components = self.factory(fetched)
            self.rebuilds += 1
            logger.info("plugin_settings_changed", rebuilds=self.rebuilds, server_url=fetched.server_url)

            if previous is not None:
                await previous.aclose()

        return ReconcileOutcome(changed=True, warnings=tuple(warnings))

    @asynccontextmanager
    async def reading(self) -> AsyncIterator[NotifierComponents]:
        """Hold the read side of the lock and yield the current components."""
        async with self._lock.read():
            if self._components is None:
                raise ConfigurationError("Notifier used before its settings were reconciled")
            yield self._components

    async def aclose(self) -> None:
        async with self._lock.write():
            if self._components is not None:
                await self._components.aclose()
                self._components = None
        await self.source.aclose()
