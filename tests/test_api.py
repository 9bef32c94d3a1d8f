from pathlib import Path
import sys
import time

sys.path.append(str(Path(__file__).resolve().parents[1]))

from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app
from app.services.outcome import Outcome
from app.services.runners import DrivenRunner, ProjectedRunner
from app.storage.repo import MemoryTaskStore

from fakes import FakeClock, FixedOutcomes


def _projected_client(outcome: Outcome):
    cfg = Settings(runner_mode="projected", store_backend="memory")
    store = MemoryTaskStore()
    clock = FakeClock()
    app = create_app(cfg, store=store, runner=ProjectedRunner(store, FixedOutcomes(outcome), clock=clock))
    return TestClient(app), clock


def test_process_video_returns_pending_task():
    client, _ = _projected_client(Outcome(False))

    resp = client.post("/api/process-video", json={"url": "https://example.com/v/1"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "pending"
    assert body["message"] == "任务已提交，等待处理"

    status = client.get(f"/api/task-status/{body['task_id']}").json()
    assert status["id"] == body["task_id"]
    assert status["status"] == "pending"
    assert status["progress"] == 0
    assert status["requestData"] == {"url": "https://example.com/v/1"}
    assert "createdAt" in status and "updatedAt" in status
    assert "resultId" not in status


def test_task_status_reaches_result():
    client, clock = _projected_client(Outcome(True, 3))
    task_id = client.post("/api/process-video", json={}).json()["task_id"]

    clock.advance(2500)
    mid = client.get(f"/api/task-status/{task_id}").json()
    assert mid["status"] == "processing"
    assert mid["progress"] == 30

    clock.advance(10_000)
    final = client.get(f"/api/task-status/{task_id}").json()
    assert final["success"] is False
    assert final["data"] is None
    assert final["error_code"] == 503
    assert final["taskId"] == task_id


def test_unknown_task_is_404():
    client, _ = _projected_client(Outcome(False))

    resp = client.get("/api/task-status/does-not-exist")
    assert resp.status_code == 404
    assert resp.json() == {"error": "任务不存在"}
    assert client.get("/api/tasks/does-not-exist").status_code == 404
    assert client.get("/api/video_results/does-not-exist").status_code == 404


def test_debug_and_listing():
    client, _ = _projected_client(Outcome(False))
    task_id = client.post("/api/process-video", json={"url": "x"}).json()["task_id"]

    debug = client.get("/api/debug").json()
    assert debug["runner"] == "projected"
    assert debug["counts"]["tasks"] == 1
    assert debug["environment"] in ("Local", "Vercel")

    tasks = client.get("/api/tasks").json()
    assert [t["id"] for t in tasks] == [task_id]
    assert client.get(f"/api/tasks/{task_id}").json()["status"] == "pending"
    assert client.get("/health").json() == {"ok": True}


def test_driven_end_to_end():
    cfg = Settings(runner_mode="driven", store_backend="memory", time_scale=0)
    store = MemoryTaskStore()
    app = create_app(cfg, store=store, runner=DrivenRunner(store, FixedOutcomes(Outcome(False)), time_scale=0))

    with TestClient(app) as client:
        task_id = client.post("/api/process-video", json={"url": "x"}).json()["task_id"]

        body = {}
        for _ in range(100):
            body = client.get(f"/api/task-status/{task_id}").json()
            if "success" in body:
                break
            time.sleep(0.01)

        assert body["success"] is True
        assert body["message"] == "视频处理成功"

        task = client.get(f"/api/tasks/{task_id}").json()
        assert task["status"] == "completed"
        assert task["progress"] == 100
        assert client.get(f"/api/video_results/{task['resultId']}").json() == body
