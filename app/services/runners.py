"""
Task runners: two ways of turning a planned timeline into observable state.

DrivenRunner / CeleryRunner write each checkpoint to the store after a real
delay. ProjectedRunner writes nothing after submission and derives the
current state from elapsed wall-clock time against a frozen plan. A poller
cannot tell them apart.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from ..config import Settings
from ..errors import TaskNotFoundError
from ..storage.repo import TaskStore
from ..storage.schema import ResultRecord, TaskRecord, TaskStatus, to_iso, utc_now
from .outcome import Outcome, OutcomeGenerator
from .stages import STARTED_MESSAGE
from .timeline import Observation, TimelinePlan, observation_at, plan_timeline

logger = logging.getLogger(__name__)

TaskState = Tuple[TaskRecord, Optional[ResultRecord]]


def apply_observation(
    store: TaskStore,
    task_id: str,
    obs: Observation,
    result: Optional[ResultRecord] = None,
    now: Optional[datetime] = None,
) -> Optional[TaskRecord]:
    """Persist one observation; a terminal one also persists its result."""
    fields = {
        "status": obs.status,
        "progress": obs.progress,
        "message": obs.message,
        "updated_at": to_iso(now or utc_now()),
    }
    if obs.is_terminal and result is not None:
        store.insert_result(result)
        fields["result_id"] = result.id
    rec = store.update_task(task_id, **fields)
    if rec is None:
        logger.warning("task vanished during simulation", extra={"payload": {"task_id": task_id}})
    elif obs.is_terminal:
        logger.info("task finished", extra={"payload": {"task_id": task_id, "status": obs.status.value}})
    else:
        logger.debug("checkpoint reached", extra={"payload": {"task_id": task_id, "progress": obs.progress}})
    return rec


class TaskRunner:
    name = "base"

    def __init__(
        self,
        store: TaskStore,
        outcomes: Optional[OutcomeGenerator] = None,
        time_scale: float = 1.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.outcomes = outcomes or OutcomeGenerator()
        self.time_scale = time_scale
        self.clock = clock

    def start(self, task: TaskRecord) -> None:
        raise NotImplementedError

    def current_state(self, task_id: str) -> TaskState:
        task = self.store.find_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        result = None
        if task.status.is_terminal and task.result_id:
            result = self.store.find_result(task.result_id)
        return task, result

    def describe(self) -> dict:
        return {"runner": self.name}

    def _prepare(self, task_id: str) -> Tuple[Outcome, Tuple[Observation, ...], ResultRecord]:
        outcome = self.outcomes.decide_outcome()
        observations = plan_timeline(outcome.will_fail, outcome.failure_index)
        result = self.outcomes.build_result(task_id, outcome)
        logger.info("task planned", extra={"payload": {
            "task_id": task_id,
            "runner": self.name,
            "will_fail": outcome.will_fail,
            "failure_index": outcome.failure_index,
        }})
        return outcome, observations, result

    def _mark_started(self, task_id: str) -> None:
        self.store.update_task(
            task_id,
            status=TaskStatus.PROCESSING,
            progress=0,
            message=STARTED_MESSAGE,
            updated_at=to_iso(self.clock()),
        )

    def _seconds(self, nominal_ms: int) -> float:
        return max(nominal_ms, 0) * self.time_scale / 1000


class DrivenRunner(TaskRunner):
    """One asyncio task per job, sleeping between checkpoints."""

    name = "driven"

    def __init__(self, *args, sleep: Callable = asyncio.sleep, **kwargs):
        super().__init__(*args, **kwargs)
        self._sleep = sleep
        self._running: set[asyncio.Task] = set()

    def start(self, task: TaskRecord) -> None:
        _, observations, result = self._prepare(task.id)
        self._mark_started(task.id)
        job = asyncio.get_running_loop().create_task(self._drive(task.id, observations, result))
        self._running.add(job)
        job.add_done_callback(self._on_done)

    async def _drive(self, task_id: str, observations: Tuple[Observation, ...], result: ResultRecord) -> None:
        previous = 0
        # observations[0] is the pending state the task was created in
        for obs in observations[1:]:
            await self._sleep(self._seconds(obs.offset - previous))
            previous = obs.offset
            apply_observation(self.store, task_id, obs, result, now=self.clock())

    def _on_done(self, job: asyncio.Task) -> None:
        self._running.discard(job)
        if not job.cancelled() and job.exception() is not None:
            logger.error("simulation crashed", exc_info=job.exception())

    async def wait_idle(self) -> None:
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    def describe(self) -> dict:
        return {"runner": self.name, "running": len(self._running)}


class ProjectedRunner(TaskRunner):
    """
    Plans once at submission, then answers every query by projecting elapsed
    time onto the frozen plan. Plans are kept in memory only and are lost on
    restart; the stored snapshot is returned for tasks without a plan.
    """

    name = "projected"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._plans: dict[str, TimelinePlan] = {}

    def start(self, task: TaskRecord) -> None:
        outcome, observations, result = self._prepare(task.id)
        self._plans[task.id] = TimelinePlan(
            task_id=task.id,
            observations=observations,
            outcome=outcome,
            result=result,
            created_at=self.clock(),
        )

    def elapsed(self, plan: TimelinePlan) -> float:
        if self.time_scale <= 0:
            return float("inf")
        real_ms = (self.clock() - plan.created_at).total_seconds() * 1000
        return real_ms / self.time_scale

    def current_state(self, task_id: str) -> TaskState:
        task = self.store.find_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        plan = self._plans.get(task_id)
        if plan is None:
            logger.warning("no plan retained for task", extra={"payload": {"task_id": task_id}})
            return super().current_state(task_id)

        obs = observation_at(plan.observations, self.elapsed(plan))
        if obs.offset == 0:
            return task, None

        reached_at = plan.created_at + timedelta(milliseconds=obs.offset * self.time_scale)
        update = {
            "status": obs.status,
            "progress": obs.progress,
            "message": obs.message,
            "updated_at": to_iso(reached_at),
        }
        if obs.is_terminal:
            update["result_id"] = plan.result.id
            return task.model_copy(update=update), plan.result
        return task.model_copy(update=update), None

    def describe(self) -> dict:
        return {"runner": self.name, "plans": len(self._plans)}


class CeleryRunner(TaskRunner):
    """
    Driven playout on a Celery worker: every checkpoint is a task that
    schedules the next one with a countdown. The frozen plan and result travel
    in the message so the worker never redraws the outcome.
    """

    name = "celery"

    def start(self, task: TaskRecord) -> None:
        from worker.celery_app import advance_task, dump_observations

        _, observations, result = self._prepare(task.id)
        self._mark_started(task.id)
        advance_task.apply_async(
            args=[task.id, dump_observations(observations), 1, result.to_json(), self.time_scale],
            countdown=self._seconds(observations[1].offset),
        )


RUNNERS = {
    DrivenRunner.name: DrivenRunner,
    ProjectedRunner.name: ProjectedRunner,
    CeleryRunner.name: CeleryRunner,
}


def build_runner(cfg: Settings, store: TaskStore, outcomes: Optional[OutcomeGenerator] = None) -> TaskRunner:
    mode = (cfg.runner_mode or "").lower()
    if mode not in RUNNERS:
        raise ValueError(f"Unsupported runner mode: {cfg.runner_mode}")
    outcomes = outcomes or OutcomeGenerator(failure_rate=cfg.failure_rate)
    return RUNNERS[mode](store, outcomes, time_scale=cfg.time_scale)
