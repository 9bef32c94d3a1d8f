import random
import uuid
from dataclasses import dataclass
from typing import Optional

from ..storage.schema import ResultRecord
from .stages import FAILURE_INJECTIONS, SUCCESS_MESSAGE, failure_message

FAILURE_RATE = 0.2
ERROR_CODE_BASE = 500

SUCCESS_PAYLOAD = {
    "watermarked_video": {
        "url": "http://example.com/videos/video_with_watermark.mp4",
        "cover": "http://example.com/covers/cover_with_watermark.jpg",
        "duration": 120,
        "format": "mp4",
    },
    "non_watermarked_video": {
        "url": "http://example.com/videos/video_without_watermark.mp4",
        "cover": "http://example.com/covers/cover_without_watermark.jpg",
        "duration": 120,
        "format": "mp4",
    },
}


@dataclass(frozen=True)
class Outcome:
    will_fail: bool
    failure_index: Optional[int] = None


def error_code_for(stage: int) -> int:
    return ERROR_CODE_BASE + stage


class OutcomeGenerator:
    """
    Decides whether a run fails and at which checkpoint, and builds the
    matching terminal result. The decision is the only random input of a task.
    """

    def __init__(self, failure_rate: float = FAILURE_RATE, rng: Optional[random.Random] = None):
        self.failure_rate = failure_rate
        self.rng = rng or random.Random()

    def decide_outcome(self) -> Outcome:
        if self.rng.random() < self.failure_rate:
            return Outcome(will_fail=True, failure_index=self.rng.choice(FAILURE_INJECTIONS).stage)
        return Outcome(will_fail=False)

    def build_success_result(self, task_id: str) -> ResultRecord:
        return ResultRecord(
            id=str(uuid.uuid4()),
            task_id=task_id,
            success=True,
            data={name: dict(video) for name, video in SUCCESS_PAYLOAD.items()},
            message=SUCCESS_MESSAGE,
        )

    def build_failure_result(self, task_id: str, failure_index: int) -> ResultRecord:
        return ResultRecord(
            id=str(uuid.uuid4()),
            task_id=task_id,
            success=False,
            data=None,
            message=failure_message(failure_index),
            error_code=error_code_for(failure_index),
        )

    def build_result(self, task_id: str, outcome: Outcome) -> ResultRecord:
        if outcome.will_fail:
            return self.build_failure_result(task_id, outcome.failure_index)
        return self.build_success_result(task_id)
