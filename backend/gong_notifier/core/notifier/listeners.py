"""
Notification Listeners
======================

A listener reacts to classified stage transitions. Each transition has its
own handler method; NotificationListener.handle() picks it through an
explicit table.

Shipped listeners:
- DebugNotificationListener: logs every event
- EmailNotificationListener: mails committers on failures and fixes

New listeners only need to subclass NotificationListener.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Iterable, Sequence

import structlog

from gong_notifier.core.errors import HistoryUnavailable, ListenerError
from gong_notifier.core.schemas import StageStateChange
from gong_notifier.core.notifier.email import EmailSender, EmailTemplates
from gong_notifier.core.notifier.history_cache import PipelineHistoryCache
from gong_notifier.core.notifier.transitions import Transition

logger = structlog.get_logger()


class NotificationListener(ABC):
    """Receives one call per classified stage transition."""

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def handle_building(self, event: StageStateChange) -> None:
        ...

    @abstractmethod
    async def handle_passed(self, event: StageStateChange) -> None:
        ...

    @abstractmethod
    async def handle_failed(self, event: StageStateChange) -> None:
        ...

    @abstractmethod
    async def handle_cancelled(self, event: StageStateChange) -> None:
        ...

    @abstractmethod
    async def handle_fixed(self, event: StageStateChange) -> None:
        ...

    @abstractmethod
    async def handle_broken(self, event: StageStateChange) -> None:
        ...

    async def handle(self, transition: Transition, event: StageStateChange) -> None:
        """Route a transition to its handler."""
        handlers = {
            Transition.BUILDING: self.handle_building,
            Transition.PASSED: self.handle_passed,
            Transition.FAILED: self.handle_failed,
            Transition.CANCELLED: self.handle_cancelled,
            Transition.FIXED: self.handle_fixed,
            Transition.BROKEN: self.handle_broken,
        }
        handler = handlers.get(transition)
        if handler is None:
            raise ValueError(f"No handler for transition {transition.value}")
        await handler(event)


class DebugNotificationListener(NotificationListener):
    """Logs every event it receives."""

    async def _log(self, transition: Transition, event: StageStateChange) -> None:
        logger.info(
            "stage_transition",
            transition=transition.value,
            pipeline=event.pipeline_name,
            pipeline_counter=event.pipeline_counter,
            stage=event.stage_name,
            stage_counter=event.stage_counter,
            state=event.state,
        )

    async def handle_building(self, event: StageStateChange) -> None:
        await self._log(Transition.BUILDING, event)

    async def handle_passed(self, event: StageStateChange) -> None:
        await self._log(Transition.PASSED, event)

    async def handle_failed(self, event: StageStateChange) -> None:
        await self._log(Transition.FAILED, event)

    async def handle_cancelled(self, event: StageStateChange) -> None:
        await self._log(Transition.CANCELLED, event)

    async def handle_fixed(self, event: StageStateChange) -> None:
        await self._log(Transition.FIXED, event)

    async def handle_broken(self, event: StageStateChange) -> None:
        await self._log(Transition.BROKEN, event)


class EmailNotificationListener(NotificationListener):
    """
    Emails the people whose changes went into the run.

    Only Failed, Broken and Fixed produce mail. Recipients are the committers
    of the triggering run plus the configured fallback recipients.
    """

    def __init__(
        self,
        history: PipelineHistoryCache,
        sender: EmailSender,
        templates: EmailTemplates,
        fallback_recipients: Sequence[str] = (),
    ):
        self.history = history
        self.sender = sender
        self.templates = templates
        self.fallback_recipients = tuple(fallback_recipients)

    async def recipients_for(self, event: StageStateChange) -> list[str]:
        recipients: list[str] = []
        try:
            run = await self.history.run_for(event.pipeline_name, event.pipeline_counter)
        except HistoryUnavailable as e:
            logger.warning("email_committers_unavailable", pipeline=event.pipeline_name, error=str(e))
            run = None
        if run is not None:
            recipients.extend(run.committers)
        for address in self.fallback_recipients:
            if address not in recipients:
                recipients.append(address)
        return recipients

    async def _notify(self, transition: Transition, event: StageStateChange) -> None:
        content = self.templates.render(transition, event)
        if content is None:
            return

        recipients = await self.recipients_for(event)
        if not recipients:
            logger.info(
                "email_no_recipients",
                pipeline=event.pipeline_name,
                pipeline_counter=event.pipeline_counter,
                stage=event.stage_name,
            )
            return

        await self.sender.send(recipients, content.subject, content.body)

    async def handle_building(self, event: StageStateChange) -> None:
        pass

    async def handle_passed(self, event: StageStateChange) -> None:
        pass

    async def handle_failed(self, event: StageStateChange) -> None:
        await self._notify(Transition.FAILED, event)

    async def handle_cancelled(self, event: StageStateChange) -> None:
        pass

    async def handle_fixed(self, event: StageStateChange) -> None:
        await self._notify(Transition.FIXED, event)

    async def handle_broken(self, event: StageStateChange) -> None:
        await self._notify(Transition.BROKEN, event)


class ListenerRegistry:
    """
    Ordered, immutable set of listeners.

    Built once per configuration and replaced as a whole when it changes.
    """

    def __init__(self, listeners: Iterable[NotificationListener], timeout: float = 30.0):
        self._listeners = tuple(listeners)
        self.timeout = timeout

    @property
    def listeners(self) -> tuple[NotificationListener, ...]:
        return self._listeners

    def __len__(self) -> int:
        return len(self._listeners)

    async def notify_all(self, transition: Transition, event: StageStateChange) -> list[ListenerError]:
        """
        Call every listener in registration order.

        A failing or slow listener does not stop the others.

        Returns:
            One ListenerError per listener that failed
        """
        errors: list[ListenerError] = []
        for listener in self._listeners:
            try:
                await asyncio.wait_for(listener.handle(transition, event), timeout=self.timeout)
            except asyncio.TimeoutError as e:
                error = ListenerError(listener.name, transition.value, e)
                logger.error("listener_timeout", listener=listener.name, transition=transition.value, timeout=self.timeout)
                errors.append(error)
            except Exception as e:
                error = ListenerError(listener.name, transition.value, e)
                logger.error("listener_failed", listener=listener.name, transition=transition.value, error=str(e))
                errors.append(error)
        return errors
