"""
Application errors.

Simulated processing failures are not errors: they end as a normal Result
with success=False. Only lookups of unknown tasks surface as exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass


class ErrCode:
    NOT_FOUND = "not_found"


@dataclass
class AppError(Exception):
    code: str
    message: str
    details: dict | None = None

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}"


class TaskNotFoundError(AppError):
    def __init__(self, task_id: str, message: str = "任务不存在") -> None:
        super().__init__(ErrCode.NOT_FOUND, message, {"task_id": task_id})


HTTP_STATUS = {
    ErrCode.NOT_FOUND: 404,
}
