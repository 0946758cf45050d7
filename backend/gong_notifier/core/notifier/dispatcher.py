"""
Stage Status Dispatcher
=======================

event -> reconcile settings -> previous result -> classify -> listeners

Failure policy per event:
- Unknown raw state: skipped, reported, not an error for the host
- History unavailable: aborted and reported, no guess about Fixed/Broken
- Listener failure: the other listeners still run, the dispatch succeeds
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from gong_notifier.core.errors import (
    ClassificationError,
    ConfigurationError,
    HistoryUnavailable,
    ListenerError,
    NotifierError,
)
from gong_notifier.core.schemas import PluginResponse, StageStateChange
from gong_notifier.core.notifier.settings_gate import SettingsGate
from gong_notifier.core.notifier.transitions import (
    HISTORY_DEPENDENT_STATES,
    StageState,
    Transition,
    classify,
)

logger = structlog.get_logger()


@dataclass
class DispatchResult:
    """Outcome of dispatching one event."""
    event: StageStateChange
    transition: Optional[Transition] = None
    error: Optional[NotifierError] = None
    listener_errors: list[ListenerError] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """False only when the event could not be processed at all."""
        return self.error is None or isinstance(self.error, ClassificationError)

    def to_response(self) -> PluginResponse:
        return PluginResponse(status="success" if self.ok else "failure", messages=list(self.messages))


class StageStatusDispatcher:
    """Classifies stage events and fans them out to the listeners."""

    def __init__(self, gate: SettingsGate):
        self.gate = gate

    async def dispatch(self, event: StageStateChange) -> DispatchResult:
        """
        Dispatch one stage-state-change event.

        Never raises for per-event failures; they are reported in the result.
        """
        log = logger.bind(
            pipeline=event.pipeline_name,
            pipeline_counter=event.pipeline_counter,
            stage=event.stage_name,
            state=event.state,
        )
        log.info("stage_status_received")
        result = DispatchResult(event=event)

        outcome = await self.gate.reconcile()
        result.messages.extend(outcome.warnings)

        try:
            state = StageState.parse(event.state)
        except ClassificationError as e:
            log.warning("stage_state_unknown")
            result.transition = Transition.UNKNOWN
            result.error = e
            result.messages.append(f"{e}. Ignoring it.")
            return result

        try:
            async with self.gate.reading() as components:
                previous = None
                if state in HISTORY_DEPENDENT_STATES:
                    previous = await components.history.previous_result_for(
                        event.pipeline_name, event.stage_name, event.pipeline_counter
                    )

                result.transition = classify(state, previous.result if previous else None)
                log.info(
                    "stage_transition_classified",
                    transition=result.transition.value,
                    previous=previous.result.value if previous else None,
                )

                result.listener_errors = await components.listeners.notify_all(result.transition, event)
        except HistoryUnavailable as e:
            log.error("stage_status_aborted", error=str(e))
            result.error = e
            result.messages.append(str(e))
            return result
        except ConfigurationError as e:
            log.error("stage_status_unconfigured", error=str(e))
            result.error = e
            result.messages.append(str(e))
            return result

        for error in result.listener_errors:
            result.messages.append(str(error))
        return result
