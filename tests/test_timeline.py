from pathlib import Path
import sys

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from app.services.stages import INITIAL_DELAY, PROCESSING_STAGES
from app.services.timeline import observation_at, plan_timeline, total_duration
from app.storage.schema import TaskStatus


def test_success_plan_walks_every_checkpoint():
    plan = plan_timeline(False)

    assert plan[0].status == TaskStatus.PENDING
    assert plan[0].offset == 0
    assert len(plan) == len(PROCESSING_STAGES) + 1
    assert [o.progress for o in plan[1:]] == [c.progress for c in PROCESSING_STAGES]
    assert all(o.status == TaskStatus.PROCESSING for o in plan[1:-1])
    assert plan[-1].status == TaskStatus.COMPLETED
    assert plan[-1].progress == 100


def test_offsets_accumulate_after_initial_delay():
    plan = plan_timeline(False)

    expected = INITIAL_DELAY
    for obs, checkpoint in zip(plan[1:], PROCESSING_STAGES):
        assert obs.offset == expected
        expected += checkpoint.duration
    assert total_duration(plan) == 8000


def test_failure_stops_early():
    plan = plan_timeline(True, 2)

    assert len(plan) == 4
    last = plan[-1]
    assert last.status == TaskStatus.FAILED
    assert last.progress == PROCESSING_STAGES[2].progress
    assert last.message == "视频水印去除失败，素材格式不受支持"
    assert last.error_code == 502
    assert last.offset == 3500


@pytest.mark.parametrize("will_fail,index", [(False, None), (True, 1), (True, 2), (True, 3)])
def test_plan_is_deterministic(will_fail, index):
    assert plan_timeline(will_fail, index) == plan_timeline(will_fail, index)


@pytest.mark.parametrize("will_fail,index", [(False, None), (True, 1), (True, 3)])
def test_plan_progress_is_monotonic(will_fail, index):
    plan = plan_timeline(will_fail, index)
    progresses = [o.progress for o in plan]
    offsets = [o.offset for o in plan]
    assert progresses == sorted(progresses)
    assert offsets == sorted(offsets)
    assert sum(o.is_terminal for o in plan) == 1


def test_observation_at_picks_last_reached():
    plan = plan_timeline(False)

    assert observation_at(plan, -5).status == TaskStatus.PENDING
    assert observation_at(plan, 999).status == TaskStatus.PENDING
    assert observation_at(plan, 1000).progress == 10
    assert observation_at(plan, 1999).progress == 10
    assert observation_at(plan, 2000).progress == 30
    assert observation_at(plan, 10**9) == plan[-1]
