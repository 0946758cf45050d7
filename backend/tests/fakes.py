"""
In-memory fakes and builders shared by the tests.
"""

import asyncio
from typing import Optional

from gong_notifier.core.schemas import PluginSettings, StageStateChange
from gong_notifier.core.notifier.history import PipelineHistory, PipelineRun
from gong_notifier.core.notifier.history_cache import PipelineHistoryCache
from gong_notifier.core.notifier.listeners import ListenerRegistry, NotificationListener
from gong_notifier.core.notifier.settings_gate import NotifierComponents
from gong_notifier.core.notifier.transitions import StageState, Transition

SERVER_A = "http://gocd-a.example.com/go"
SERVER_B = "http://gocd-b.example.com/go"


# ==========================================================================
# Builders
# ==========================================================================

def make_event(
    state: str = "Failed",
    pipeline: str = "P",
    counter: int = 5,
    stage: str = "build",
    stage_counter: int = 1,
) -> StageStateChange:
    return StageStateChange.model_validate({
        "pipeline-name": pipeline,
        "pipeline-counter": counter,
        "stage-name": stage,
        "stage-counter": stage_counter,
        "state": state,
    })


def make_history(
    pipeline: str,
    results: dict[int, dict[str, str]],
    committers: Optional[dict[int, tuple]] = None,
    complete: bool = True,
) -> PipelineHistory:
    """results: counter -> {stage name: result}. Complete unless told otherwise."""
    committers = committers or {}
    return PipelineHistory.from_runs(
        pipeline,
        [
            PipelineRun(
                counter=counter,
                stage_results={name: StageState(result) for name, result in stages.items()},
                committers=committers.get(counter, ()),
            )
            for counter, stages in results.items()
        ],
        complete=complete,
    )


def alternating_history(pipeline: str, latest: int, stage: str = "build") -> PipelineHistory:
    """Runs 1..latest, stage Failed on even counters and Passed on odd ones."""
    return make_history(pipeline, {
        counter: {stage: "Failed" if counter % 2 == 0 else "Passed"}
        for counter in range(1, latest + 1)
    })


# ==========================================================================
# Fakes
# ==========================================================================

class FakeHistorySource:
    """
    In-memory history source that records every fetch.

    With page_size set it answers like the GoCD client: pages of the newest
    runs, stopping at the first page holding a run below before_counter.
    """

    def __init__(self, histories: Optional[dict[str, PipelineHistory]] = None, page_size: Optional[int] = None):
        self.histories = dict(histories or {})
        self.page_size = page_size
        self.calls: list[tuple[str, Optional[int]]] = []
        self.error: Optional[Exception] = None
        self.delay = 0.0
        self.closed = False

    async def fetch_history(self, pipeline_name: str, before_counter: Optional[int] = None) -> PipelineHistory:
        self.calls.append((pipeline_name, before_counter))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        history = self.histories.get(pipeline_name, PipelineHistory(pipeline_name, complete=True))
        if self.page_size is None:
            return history
        return self._paged(history, before_counter)

    def _paged(self, history: PipelineHistory, before_counter: Optional[int]) -> PipelineHistory:
        taken: list[PipelineRun] = []
        for start in range(0, len(history.runs), self.page_size):
            page = history.runs[start:start + self.page_size]
            taken.extend(page)
            if before_counter is not None and any(r.counter < before_counter for r in page):
                break
        return PipelineHistory(
            history.pipeline_name,
            tuple(taken),
            complete=history.complete and len(taken) == len(history.runs),
        )

    async def aclose(self) -> None:
        self.closed = True


class RecordingListener(NotificationListener):
    """Records (transition, event) for every call."""

    def __init__(self, label: str = "recorder", journal: Optional[list] = None):
        self.label = label
        self.calls: list[tuple[Transition, StageStateChange]] = []
        self.journal = journal

    @property
    def name(self) -> str:
        return self.label

    async def _record(self, transition: Transition, event: StageStateChange) -> None:
        self.calls.append((transition, event))
        if self.journal is not None:
            self.journal.append(self.label)

    async def handle_building(self, event):
        await self._record(Transition.BUILDING, event)

    async def handle_passed(self, event):
        await self._record(Transition.PASSED, event)

    async def handle_failed(self, event):
        await self._record(Transition.FAILED, event)

    async def handle_cancelled(self, event):
        await self._record(Transition.CANCELLED, event)

    async def handle_fixed(self, event):
        await self._record(Transition.FIXED, event)

    async def handle_broken(self, event):
        await self._record(Transition.BROKEN, event)


class FailingListener(RecordingListener):
    """Raises from handle_failed and handle_broken."""

    async def handle_failed(self, event):
        raise RuntimeError("mail server on fire")

    async def handle_broken(self, event):
        raise RuntimeError("mail server on fire")


class FakeSender:
    """Email sender that keeps sent mail in memory."""

    def __init__(self):
        self.sent: list[tuple[tuple[str, ...], str, str]] = []

    async def send(self, recipients, subject, body) -> None:
        self.sent.append((tuple(recipients), subject, body))


class FakeSettingsSource:
    """Settings source whose answer the test can change."""

    def __init__(self, settings: Optional[PluginSettings] = None):
        self.settings = settings or PluginSettings()
        self.error: Optional[Exception] = None
        self.fetches = 0
        self.closed = False

    async def fetch(self) -> PluginSettings:
        self.fetches += 1
        if self.error:
            raise self.error
        return self.settings

    async def aclose(self) -> None:
        self.closed = True


class ComponentFactory:
    """
    Builds components from fakes.

    Each server URL gets its own FakeHistorySource so tests can tell which
    configuration a lookup went to.
    """

    def __init__(self, sources: Optional[dict[str, FakeHistorySource]] = None, listeners=None):
        self.sources = sources or {}
        self.listeners = listeners if listeners is not None else [RecordingListener()]
        self.built: list[NotifierComponents] = []

    def __call__(self, settings: PluginSettings) -> NotifierComponents:
        source = self.sources.setdefault(settings.server_url, FakeHistorySource())
        components = NotifierComponents(
            settings=settings,
            history=PipelineHistoryCache(source, fetch_timeout=1.0),
            listeners=ListenerRegistry(self.listeners, timeout=1.0),
        )
        self.built.append(components)
        return components
