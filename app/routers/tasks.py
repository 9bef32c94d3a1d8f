from typing import Any

from fastapi import APIRouter, Body, Depends, Request

from ..errors import TaskNotFoundError
from ..models import DebugResponse, ErrorResponse, TaskResponse
from ..services.stages import SUBMITTED_MESSAGE
from ..services.task_service import TaskService
from ..storage.schema import TaskStatus

router = APIRouter(prefix="/api")


def get_service(request: Request) -> TaskService:
    return request.app.state.service


@router.post("/process-video", response_model=TaskResponse)
async def process_video(payload: Any = Body(default=None), service: TaskService = Depends(get_service)):
    task_id = service.submit(payload)
    return TaskResponse(task_id=task_id, status=TaskStatus.PENDING.value, message=SUBMITTED_MESSAGE)


@router.get("/task-status/{task_id}", responses={404: {"model": ErrorResponse}})
async def task_status(task_id: str, service: TaskService = Depends(get_service)):
    return service.get_status(task_id).to_json()


@router.get("/debug", response_model=DebugResponse)
async def debug(request: Request, service: TaskService = Depends(get_service)):
    return DebugResponse(environment=request.app.state.settings.environment, **service.debug_info())


# read-only views over the stored records

@router.get("/tasks")
async def list_tasks(service: TaskService = Depends(get_service)):
    return [rec.to_json() for rec in service.store.list_tasks()]


@router.get("/tasks/{task_id}", responses={404: {"model": ErrorResponse}})
async def get_task(task_id: str, service: TaskService = Depends(get_service)):
    rec = service.store.find_task(task_id)
    if rec is None:
        raise TaskNotFoundError(task_id)
    return rec.to_json()


@router.get("/video_results/{result_id}", responses={404: {"model": ErrorResponse}})
async def get_result(result_id: str, service: TaskService = Depends(get_service)):
    rec = service.store.find_result(result_id)
    if rec is None:
        raise TaskNotFoundError(result_id, message="结果不存在")
    return rec.to_json()
