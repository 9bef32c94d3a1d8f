import logging
from typing import Sequence

from celery import Celery

from app.config import settings
from app.services.runners import apply_observation
from app.services.timeline import Observation
from app.storage.repo import TaskStore, build_store
from app.storage.schema import ResultRecord, TaskStatus

logger = logging.getLogger(__name__)

celery_app = Celery(
    "video_tasks",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

_store: TaskStore | None = None


def get_store() -> TaskStore:
    global _store
    if _store is None:
        if settings.store_backend == "memory":
            logger.warning("celery worker on a memory store: the API will not see its writes")
        _store = build_store(settings)
    return _store


def dump_observations(observations: Sequence[Observation]) -> list[dict]:
    return [
        {
            "status": obs.status.value,
            "progress": obs.progress,
            "message": obs.message,
            "offset": obs.offset,
            "error_code": obs.error_code,
        }
        for obs in observations
    ]


def load_observations(raw: Sequence[dict]) -> list[Observation]:
    return [Observation(**{**item, "status": TaskStatus(item["status"])}) for item in raw]


@celery_app.task(name="advance_task")
def advance_task(task_id: str, observations: list, index: int, result: dict, time_scale: float = 1.0) -> str:
    plan = load_observations(observations)
    obs = plan[index]
    apply_observation(get_store(), task_id, obs, ResultRecord.model_validate(result))
    if obs.is_terminal:
        return obs.status.value

    nxt = plan[index + 1]
    advance_task.apply_async(
        args=[task_id, observations, index + 1, result, time_scale],
        countdown=max(nxt.offset - obs.offset, 0) * time_scale / 1000,
    )
    return obs.status.value
