"""
Timeline planning.

A plan is the full ordered list of observations a poller can see for one
task, each tagged with its nominal offset (ms) from submission:

    pending@0 -> checkpoint 0 @INITIAL_DELAY -> checkpoint 1 @(+duration 0) -> ...

The walk stops early with a failed observation at the chosen failure
checkpoint; otherwise the last checkpoint is emitted as completed.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence, Tuple

from ..storage.schema import ResultRecord, TaskStatus
from .outcome import Outcome, error_code_for
from .stages import INITIAL_DELAY, PROCESSING_STAGES, SUBMITTED_MESSAGE, failure_message


@dataclass(frozen=True)
class Observation:
    status: TaskStatus
    progress: int
    message: str
    offset: int
    error_code: Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


def plan_timeline(will_fail: bool, failure_index: Optional[int] = None) -> Tuple[Observation, ...]:
    observations = [Observation(TaskStatus.PENDING, 0, SUBMITTED_MESSAGE, 0)]
    offset = INITIAL_DELAY
    last = len(PROCESSING_STAGES) - 1

    for index, checkpoint in enumerate(PROCESSING_STAGES):
        if will_fail and index == failure_index:
            observations.append(Observation(
                TaskStatus.FAILED,
                checkpoint.progress,
                failure_message(index),
                offset,
                error_code_for(index),
            ))
            break
        status = TaskStatus.COMPLETED if index == last else TaskStatus.PROCESSING
        observations.append(Observation(status, checkpoint.progress, checkpoint.message, offset))
        offset += checkpoint.duration

    return tuple(observations)


def total_duration(observations: Sequence[Observation]) -> int:
    return observations[-1].offset


def observation_at(observations: Sequence[Observation], elapsed: float) -> Observation:
    """Most recent observation reached after `elapsed` nominal ms."""
    current = observations[0]
    for obs in observations:
        if obs.offset > elapsed:
            break
        current = obs
    return current


@dataclass(frozen=True)
class TimelinePlan:
    task_id: str
    observations: Tuple[Observation, ...]
    outcome: Outcome
    result: ResultRecord
    created_at: datetime

    @property
    def total_duration(self) -> int:
        return total_duration(self.observations)
