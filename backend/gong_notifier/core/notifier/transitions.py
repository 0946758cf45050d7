"""
Stage transitions - what a new stage state means given the previous result.
"""

from enum import Enum
from typing import Optional, Union

from gong_notifier.core.errors import ClassificationError


class StageState(str, Enum):
    """Raw stage states reported by the CI server."""
    BUILDING = "Building"
    PASSED = "Passed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"

    @classmethod
    def parse(cls, raw: Union[str, "StageState"]) -> "StageState":
        """Parse a raw state, raising ClassificationError outside the vocabulary."""
        if isinstance(raw, cls):
            return raw
        try:
            return cls(raw)
        except ValueError:
            raise ClassificationError(raw) from None


class Transition(str, Enum):
    """Semantic meaning of a stage state change."""
    BUILDING = "Building"
    PASSED = "Passed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"
    FIXED = "Fixed"
    BROKEN = "Broken"
    # Reporting only: the event was skipped, classify() never returns it
    UNKNOWN = "Unknown"


# States whose transition depends on the previous result of the stage
HISTORY_DEPENDENT_STATES = frozenset({StageState.PASSED, StageState.FAILED})


def classify(
    new_state: Union[StageState, str],
    previous_result: Optional[StageState] = None,
) -> Transition:
    """
    Classify a new stage state against the previous result of the same stage.

    Args:
        new_state: State carried by the event
        previous_result: Result of the stage in the preceding run, None if absent

    Returns:
        The transition

    Raises:
        ClassificationError: new_state is not a known stage state
    """
    state = StageState.parse(new_state)

    if state is StageState.BUILDING:
        return Transition.BUILDING
    if state is StageState.CANCELLED:
        return Transition.CANCELLED
    if state is StageState.PASSED:
        return Transition.FIXED if previous_result is StageState.FAILED else Transition.PASSED
    return Transition.BROKEN if previous_result is StageState.PASSED else Transition.FAILED
