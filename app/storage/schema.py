from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class TaskStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """UTC timestamp as 2024-01-01T12:00:00.000Z."""
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def from_iso(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class TaskRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    status: TaskStatus
    progress: int = Field(default=0, ge=0, le=100)
    message: str = ""
    request_data: Any = Field(default=None, alias="requestData")
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")
    result_id: Optional[str] = Field(default=None, alias="resultId")

    def to_json(self) -> dict:
        body = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        # the submitted payload is echoed verbatim, JSON null included
        body["requestData"] = self.request_data
        return body


class ResultRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    task_id: str = Field(alias="taskId")
    success: bool
    data: Optional[dict] = None
    message: str
    error_code: Optional[int] = None

    def to_json(self) -> dict:
        body = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        # failed results carry an explicit null payload
        body.setdefault("data", None)
        return body
