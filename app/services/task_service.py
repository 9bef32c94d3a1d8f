import logging
import uuid
from typing import Any, Union

from ..storage.repo import TaskStore
from ..storage.schema import ResultRecord, TaskRecord, TaskStatus, to_iso, utc_now
from .runners import TaskRunner
from .stages import SUBMITTED_MESSAGE

logger = logging.getLogger(__name__)


class TaskService:
    def __init__(self, store: TaskStore, runner: TaskRunner):
        self.store = store
        self.runner = runner

    def submit(self, request_data: Any) -> str:
        """Create a pending task and hand it to the runner; never waits for processing."""
        now = to_iso(utc_now())
        task = TaskRecord(
            id=str(uuid.uuid4()),
            status=TaskStatus.PENDING,
            progress=0,
            message=SUBMITTED_MESSAGE,
            request_data=request_data,
            created_at=now,
            updated_at=now,
        )
        self.store.insert_task(task)
        logger.info("task submitted", extra={"payload": {"task_id": task.id, "runner": self.runner.name}})
        self.runner.start(task)
        return task.id

    def get_status(self, task_id: str) -> Union[TaskRecord, ResultRecord]:
        task, result = self.runner.current_state(task_id)
        if task.status.is_terminal and result is not None:
            return result
        return task

    def debug_info(self) -> dict:
        return {
            **self.runner.describe(),
            "counts": self.store.counts(),
            "timestamp": to_iso(utc_now()),
        }
