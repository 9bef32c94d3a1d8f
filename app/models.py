from pydantic import BaseModel
from typing import Optional

class TaskResponse(BaseModel):
    task_id: str
    status: str  # always "pending" at submission
    message: str

class ErrorResponse(BaseModel):
    error: str

class DebugResponse(BaseModel):
    environment: str
    runner: str
    counts: dict
    timestamp: str
    running: Optional[int] = None
    plans: Optional[int] = None
