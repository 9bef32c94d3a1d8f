import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol

import orjson
import redis

from .schema import ResultRecord, TaskRecord
from ..config import Settings

logger = logging.getLogger(__name__)


class TaskStore(Protocol):
    def insert_task(self, rec: TaskRecord) -> None: ...
    def find_task(self, task_id: str) -> TaskRecord | None: ...
    def list_tasks(self) -> list[TaskRecord]: ...
    def update_task(self, task_id: str, **fields) -> TaskRecord | None: ...
    def insert_result(self, rec: ResultRecord) -> None: ...
    def find_result(self, result_id: str) -> ResultRecord | None: ...
    def list_results(self) -> list[ResultRecord]: ...
    def counts(self) -> dict: ...


class MemoryTaskStore:
    """Records live as long as the instance; nothing survives a restart."""

    def __init__(self):
        self._tasks: dict[str, TaskRecord] = {}
        self._results: dict[str, ResultRecord] = {}

    def insert_task(self, rec: TaskRecord) -> None:
        self._tasks[rec.id] = rec

    def find_task(self, task_id: str) -> TaskRecord | None:
        return self._tasks.get(task_id)

    def list_tasks(self) -> list[TaskRecord]:
        return list(self._tasks.values())

    def update_task(self, task_id: str, **fields) -> TaskRecord | None:
        rec = self._tasks.get(task_id)
        if rec is None:
            return None
        rec = rec.model_copy(update=fields)
        self._tasks[task_id] = rec
        return rec

    def insert_result(self, rec: ResultRecord) -> None:
        self._results[rec.id] = rec

    def find_result(self, result_id: str) -> ResultRecord | None:
        return self._results.get(result_id)

    def list_results(self) -> list[ResultRecord]:
        return list(self._results.values())

    def counts(self) -> dict:
        return {"tasks": len(self._tasks), "video_results": len(self._results)}


class JsonFileTaskStore:
    """
    db.json layout: {"tasks": [...], "video_results": [...]}.

    Every operation re-reads the file. A file that cannot be read or parsed is
    logged and served as empty, and writes are refused until it reads again,
    so a transient fault never overwrites the stored records. Writes go to a
    temp file that replaces db.json in one step.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> tuple[dict, bool]:
        """Returns (data, ok); ok is False when the file exists but is unusable."""
        ok = True
        try:
            data = orjson.loads(self.path.read_bytes())
        except FileNotFoundError:
            data = {}
        except (OSError, orjson.JSONDecodeError):
            logger.exception("store read failed, using empty store", extra={"payload": {"path": str(self.path)}})
            data, ok = {}, False
        if not isinstance(data, dict):
            logger.error("store file is not an object, using empty store", extra={"payload": {"path": str(self.path)}})
            data, ok = {}, False
        data.setdefault("tasks", [])
        data.setdefault("video_results", [])
        return data, ok

    def _load(self) -> dict:
        return self._read()[0]

    def _load_for_write(self) -> dict | None:
        data, ok = self._read()
        if not ok:
            logger.warning("store unreadable, write skipped", extra={"payload": {"path": str(self.path)}})
            return None
        return data

    def _write(self, data: dict) -> None:
        tmp = None
        try:
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            with os.fdopen(fd, "wb") as fh:
                fh.write(orjson.dumps(data, option=orjson.OPT_INDENT_2))
            os.replace(tmp, self.path)
            tmp = None
        except OSError:
            logger.exception("store write failed", extra={"payload": {"path": str(self.path)}})
        finally:
            if tmp is not None and os.path.exists(tmp):
                os.unlink(tmp)

    def insert_task(self, rec: TaskRecord) -> None:
        with self._lock:
            data = self._load_for_write()
            if data is None:
                return
            data["tasks"].append(rec.to_json())
            self._write(data)

    def find_task(self, task_id: str) -> TaskRecord | None:
        for raw in self._load()["tasks"]:
            if raw.get("id") == task_id:
                return TaskRecord.model_validate(raw)
        return None

    def list_tasks(self) -> list[TaskRecord]:
        return [TaskRecord.model_validate(raw) for raw in self._load()["tasks"]]

    def update_task(self, task_id: str, **fields) -> TaskRecord | None:
        with self._lock:
            data = self._load_for_write()
            if data is None:
                return None
            for i, raw in enumerate(data["tasks"]):
                if raw.get("id") == task_id:
                    rec = TaskRecord.model_validate(raw).model_copy(update=fields)
                    data["tasks"][i] = rec.to_json()
                    self._write(data)
                    return rec
        return None

    def insert_result(self, rec: ResultRecord) -> None:
        with self._lock:
            data = self._load_for_write()
            if data is None:
                return
            data["video_results"].append(rec.to_json())
            self._write(data)

    def find_result(self, result_id: str) -> ResultRecord | None:
        for raw in self._load()["video_results"]:
            if raw.get("id") == result_id:
                return ResultRecord.model_validate(raw)
        return None

    def list_results(self) -> list[ResultRecord]:
        return [ResultRecord.model_validate(raw) for raw in self._load()["video_results"]]

    def counts(self) -> dict:
        data = self._load()
        return {"tasks": len(data["tasks"]), "video_results": len(data["video_results"])}


class RedisTaskStore:
    def __init__(self, url: str):
        self.r = redis.from_url(url, decode_responses=True)

    def _key(self, task_id: str) -> str:
        return f"task:{task_id}"

    def _result_key(self, result_id: str) -> str:
        return f"result:{result_id}"

    def _task_mapping(self, rec: TaskRecord) -> dict:
        return {
            "status": rec.status.value,
            "progress": rec.progress,
            "message": rec.message,
            "request_data": orjson.dumps(rec.request_data).decode(),
            "created_at": rec.created_at,
            "updated_at": rec.updated_at,
            "result_id": rec.result_id or "",
        }

    def _task_from_hash(self, task_id: str, data: dict) -> TaskRecord:
        return TaskRecord(
            id=task_id,
            status=data.get("status", "pending"),
            progress=int(data.get("progress", 0)),
            message=data.get("message", ""),
            request_data=orjson.loads(data.get("request_data") or "null"),
            created_at=data["created_at"],
            updated_at=data["updated_at"],
            result_id=data.get("result_id") or None,
        )

    def insert_task(self, rec: TaskRecord) -> None:
        try:
            self.r.hset(self._key(rec.id), mapping=self._task_mapping(rec))
            self.r.sadd("tasks", rec.id)
        except redis.RedisError:
            logger.exception("redis write failed", extra={"payload": {"task_id": rec.id}})

    def find_task(self, task_id: str) -> TaskRecord | None:
        try:
            data = self.r.hgetall(self._key(task_id))
        except redis.RedisError:
            logger.exception("redis read failed", extra={"payload": {"task_id": task_id}})
            return None
        if not data:
            return None
        return self._task_from_hash(task_id, data)

    def list_tasks(self) -> list[TaskRecord]:
        try:
            ids = sorted(self.r.smembers("tasks"))
        except redis.RedisError:
            logger.exception("redis read failed")
            return []
        return [rec for rec in (self.find_task(task_id) for task_id in ids) if rec is not None]

    def update_task(self, task_id: str, **fields) -> TaskRecord | None:
        rec = self.find_task(task_id)
        if rec is None:
            return None
        rec = rec.model_copy(update=fields)
        try:
            self.r.hset(self._key(task_id), mapping=self._task_mapping(rec))
        except redis.RedisError:
            logger.exception("redis write failed", extra={"payload": {"task_id": task_id}})
        return rec

    def insert_result(self, rec: ResultRecord) -> None:
        try:
            self.r.hset(self._result_key(rec.id), mapping={
                "task_id": rec.task_id,
                "success": int(rec.success),
                "data": orjson.dumps(rec.data).decode(),
                "message": rec.message,
                "error_code": "" if rec.error_code is None else rec.error_code,
            })
            self.r.sadd("results", rec.id)
        except redis.RedisError:
            logger.exception("redis write failed", extra={"payload": {"result_id": rec.id}})

    def find_result(self, result_id: str) -> ResultRecord | None:
        try:
            data = self.r.hgetall(self._result_key(result_id))
        except redis.RedisError:
            logger.exception("redis read failed", extra={"payload": {"result_id": result_id}})
            return None
        if not data:
            return None
        return ResultRecord(
            id=result_id,
            task_id=data["task_id"],
            success=data.get("success") == "1",
            data=orjson.loads(data.get("data") or "null"),
            message=data.get("message", ""),
            error_code=int(data["error_code"]) if data.get("error_code") else None,
        )

    def list_results(self) -> list[ResultRecord]:
        try:
            ids = sorted(self.r.smembers("results"))
        except redis.RedisError:
            logger.exception("redis read failed")
            return []
        return [rec for rec in (self.find_result(result_id) for result_id in ids) if rec is not None]

    def counts(self) -> dict:
        try:
            return {"tasks": self.r.scard("tasks"), "video_results": self.r.scard("results")}
        except redis.RedisError:
            logger.exception("redis read failed")
            return {"tasks": 0, "video_results": 0}


def build_store(cfg: Settings) -> TaskStore:
    backend = (cfg.store_backend or "memory").lower()
    if backend == "redis":
        return RedisTaskStore(cfg.redis_url)
    if backend == "file":
        return JsonFileTaskStore(cfg.db_path)
    if backend != "memory":
        raise ValueError(f"Unsupported store backend: {cfg.store_backend}")
    return MemoryTaskStore()
