"""
Gong Notifier - Stage Notification Core
=======================================

Turns CI stage events into semantic transitions and hands them to listeners.

Components:
- classify: Transition classifier (Building/Passed/Failed/Cancelled/Fixed/Broken)
- PipelineHistoryCache: Previous-result lookups over cached pipeline history
- GoServerClient: GoCD history API client
- ListenerRegistry: Ordered listeners (debug log, email)
- SettingsGate: Rebuilds cache and listeners when plugin settings change
- StageStatusDispatcher: Orchestrates one event end to end
"""

from gong_notifier.core.notifier.dispatcher import DispatchResult, StageStatusDispatcher
from gong_notifier.core.notifier.go_client import GoServerClient
from gong_notifier.core.notifier.history import PipelineHistory, PipelineRun, StageResult
from gong_notifier.core.notifier.history_cache import PipelineHistoryCache
from gong_notifier.core.notifier.listeners import (
    DebugNotificationListener,
    EmailNotificationListener,
    ListenerRegistry,
    NotificationListener,
)
from gong_notifier.core.notifier.settings_gate import NotifierComponents, SettingsGate, build_components
from gong_notifier.core.notifier.transitions import StageState, Transition, classify

__all__ = [
    "DebugNotificationListener",
    "DispatchResult",
    "EmailNotificationListener",
    "GoServerClient",
    "ListenerRegistry",
    "NotificationListener",
    "NotifierComponents",
    "PipelineHistory",
    "PipelineHistoryCache",
    "PipelineRun",
    "SettingsGate",
    "StageResult",
    "StageState",
    "StageStatusDispatcher",
    "Transition",
    "build_components",
    "classify",
]
