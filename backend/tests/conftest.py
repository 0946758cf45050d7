"""
Gong Notifier - Test Fixtures
=============================

Shared pytest fixtures for all tests. Fakes live in fakes.py.
"""

import pytest

from gong_notifier.core.schemas import PluginSettings

from fakes import (
    SERVER_A,
    ComponentFactory,
    FakeHistorySource,
    FakeSettingsSource,
    RecordingListener,
    make_history,
)


@pytest.fixture
def history_source() -> FakeHistorySource:
    """History for SERVER_A: pipeline P, run 3 build Failed, run 4 build Passed."""
    return FakeHistorySource({"P": make_history("P", {3: {"build": "Failed"}, 4: {"build": "Passed"}})})


@pytest.fixture
def settings_source() -> FakeSettingsSource:
    return FakeSettingsSource(PluginSettings(server_url=SERVER_A))


@pytest.fixture
def recorder() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def factory(history_source: FakeHistorySource, recorder: RecordingListener) -> ComponentFactory:
    return ComponentFactory({SERVER_A: history_source}, [recorder])
