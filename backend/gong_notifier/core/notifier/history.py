"""
Pipeline history model.

A history is the list of runs of one pipeline, most recent first. Each run
carries the result of every stage that finished in it.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from gong_notifier.core.notifier.transitions import StageState


@dataclass(frozen=True)
class StageResult:
    """Recorded outcome of one stage in one pipeline run."""
    pipeline_name: str
    stage_name: str
    pipeline_counter: int
    result: StageState


@dataclass(frozen=True)
class PipelineRun:
    """One execution of a pipeline."""
    counter: int
    stage_results: Mapping[str, StageState] = field(default_factory=dict)
    committers: tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "stage_results", MappingProxyType(dict(self.stage_results)))


@dataclass(frozen=True)
class PipelineHistory:
    """
    Runs of one pipeline ordered by descending counter.

    The runs are always the newest ones, without gaps. complete is True when
    they go back to the pipeline's first run; otherwise older runs exist on
    the server that are not held here.
    """
    pipeline_name: str
    runs: tuple[PipelineRun, ...] = ()
    complete: bool = False

    @classmethod
    def from_runs(
        cls, pipeline_name: str, runs: Iterable[PipelineRun], complete: bool = False
    ) -> "PipelineHistory":
        """Build a history from runs in any order. Later duplicates of a counter are dropped."""
        by_counter: dict[int, PipelineRun] = {}
        for run in runs:
            by_counter.setdefault(run.counter, run)
        ordered = sorted(by_counter.values(), key=lambda r: r.counter, reverse=True)
        return cls(pipeline_name=pipeline_name, runs=tuple(ordered), complete=complete)

    @property
    def latest_counter(self) -> Optional[int]:
        return self.runs[0].counter if self.runs else None

    @property
    def oldest_counter(self) -> Optional[int]:
        return self.runs[-1].counter if self.runs else None

    def covers_previous(self, before_counter: int) -> bool:
        """True when the run preceding before_counter, if any, is held here."""
        if self.complete or before_counter <= 1:
            return True
        oldest = self.oldest_counter
        return oldest is not None and oldest < before_counter

    def covers_run(self, counter: int) -> bool:
        """True when run counter, if it exists and is not newer than latest, is held here."""
        if self.complete:
            return True
        oldest = self.oldest_counter
        return oldest is not None and oldest <= counter

    def extended_with(self, older: "PipelineHistory") -> "PipelineHistory":
        """
        Append the runs of an earlier fetch that continue this one.

        Runs are only joined when the two overlap, so no gap can hide a run.
        Runs from this history win over older copies of the same counter.
        """
        oldest = self.oldest_counter
        older_latest = older.latest_counter
        if oldest is None or older_latest is None or oldest > older_latest:
            return self
        return PipelineHistory.from_runs(
            self.pipeline_name,
            self.runs + older.runs,
            complete=self.complete or older.complete,
        )

    def run(self, counter: int) -> Optional[PipelineRun]:
        for run in self.runs:
            if run.counter == counter:
                return run
        return None

    def previous_run(self, before_counter: int) -> Optional[PipelineRun]:
        """Most recent run with a counter strictly below before_counter."""
        for run in self.runs:
            if run.counter < before_counter:
                return run
        return None

    def previous_stage_result(self, stage_name: str, before_counter: int) -> Optional[StageResult]:
        """
        Result of a stage in the run immediately preceding before_counter.

        None when there is no earlier run or the stage has no result in it.
        """
        run = self.previous_run(before_counter)
        if run is None:
            return None
        result = run.stage_results.get(stage_name)
        if result is None:
            return None
        return StageResult(
            pipeline_name=self.pipeline_name,
            stage_name=stage_name,
            pipeline_counter=run.counter,
            result=result,
        )
