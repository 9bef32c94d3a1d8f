from pathlib import Path
import sys

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from app.config import Settings
from app.storage.repo import JsonFileTaskStore, MemoryTaskStore, RedisTaskStore, build_store
from app.storage.schema import ResultRecord, TaskRecord, TaskStatus

from fakes import FakeRedis


def _task(task_id: str = "t-1") -> TaskRecord:
    return TaskRecord(
        id=task_id,
        status=TaskStatus.PENDING,
        progress=0,
        message="任务已提交，等待处理",
        request_data={"url": "https://example.com/v"},
        created_at="2024-01-01T12:00:00.000Z",
        updated_at="2024-01-01T12:00:00.000Z",
    )


def _result(task_id: str = "t-1") -> ResultRecord:
    return ResultRecord(id="r-1", task_id=task_id, success=False, data=None, message="boom", error_code=501)


@pytest.fixture(params=["memory", "file", "redis"])
def store(request, tmp_path):
    if request.param == "file":
        return JsonFileTaskStore(tmp_path / "db.json")
    if request.param == "redis":
        rs = RedisTaskStore("redis://localhost:6379/0")
        rs.r = FakeRedis()
        return rs
    return MemoryTaskStore()


def test_insert_find_update(store):
    store.insert_task(_task())

    rec = store.update_task("t-1", status=TaskStatus.PROCESSING, progress=30, message="正在下载视频资源")
    assert rec.progress == 30

    found = store.find_task("t-1")
    assert found.status == TaskStatus.PROCESSING
    assert found.request_data == {"url": "https://example.com/v"}
    assert store.find_task("missing") is None
    assert store.update_task("missing", progress=1) is None


def test_results_roundtrip(store):
    store.insert_task(_task())
    store.insert_result(_result())
    store.update_task("t-1", status=TaskStatus.FAILED, result_id="r-1")

    assert store.find_result("r-1") == _result()
    assert store.find_task("t-1").result_id == "r-1"
    assert store.counts() == {"tasks": 1, "video_results": 1}
    assert [r.id for r in store.list_results()] == ["r-1"]


def test_file_store_uses_db_json_layout(tmp_path):
    path = tmp_path / "db.json"
    JsonFileTaskStore(path).insert_task(_task())

    text = path.read_text(encoding="utf-8")
    assert '"tasks"' in text and '"video_results"' in text
    assert '"requestData"' in text
    assert JsonFileTaskStore(path).find_task("t-1") == _task()


def test_file_store_degrades_to_empty_on_corrupt_file(tmp_path):
    path = tmp_path / "db.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonFileTaskStore(path)

    assert store.find_task("t-1") is None
    assert store.list_tasks() == []
    assert store.counts() == {"tasks": 0, "video_results": 0}

    store.insert_task(_task())
    assert store.find_task("t-1") is None
    assert path.read_text(encoding="utf-8") == "{not json"


def test_file_store_keeps_records_through_read_fault(tmp_path, monkeypatch):
    path = tmp_path / "db.json"
    store = JsonFileTaskStore(path)
    store.insert_task(_task("old-1"))
    store.insert_task(_task("old-2"))

    real_read = Path.read_bytes
    calls = {"n": 0}

    def flaky_read(self):
        calls["n"] += 1
        if calls["n"] == 1:
            raise OSError("disk hiccup")
        return real_read(self)

    monkeypatch.setattr(Path, "read_bytes", flaky_read)
    store.insert_task(_task("new"))
    assert store.update_task("old-1", progress=10) is not None

    ids = [t.id for t in store.list_tasks()]
    assert "old-1" in ids and "old-2" in ids
    assert "new" not in ids
    assert store.find_task("old-1").progress == 10


def test_file_store_write_leaves_no_temp_files(tmp_path):
    store = JsonFileTaskStore(tmp_path / "db.json")
    store.insert_task(_task())
    store.update_task("t-1", progress=50)

    assert sorted(p.name for p in tmp_path.iterdir()) == ["db.json"]


def test_null_request_data_is_kept(store):
    rec = _task().model_copy(update={"request_data": None})
    store.insert_task(rec)

    body = store.find_task("t-1").to_json()
    assert "requestData" in body
    assert body["requestData"] is None


def test_redis_store_hash_encoding():
    store = RedisTaskStore("redis://localhost:6379/0")
    store.r = FakeRedis()
    store.insert_task(_task())
    store.insert_result(ResultRecord(id="r-ok", task_id="t-1", success=True, data={"a": 1}, message="ok"))

    raw_task = store.r.hgetall("task:t-1")
    assert raw_task["result_id"] == ""
    assert raw_task["request_data"] == '{"url":"https://example.com/v"}'
    assert store.find_task("t-1").result_id is None

    raw_result = store.r.hgetall("result:r-ok")
    assert raw_result["success"] == "1"
    assert raw_result["error_code"] == ""
    found = store.find_result("r-ok")
    assert found.success is True
    assert found.error_code is None
    assert found.data == {"a": 1}
    assert "error_code" not in found.to_json()


def test_build_store_backends(tmp_path):
    assert isinstance(build_store(Settings(store_backend="memory")), MemoryTaskStore)
    assert isinstance(build_store(Settings(store_backend="file", db_path=str(tmp_path / "db.json"))), JsonFileTaskStore)
    assert isinstance(build_store(Settings(store_backend="redis")), RedisTaskStore)
    with pytest.raises(ValueError):
        build_store(Settings(store_backend="postgres"))
