import threading
from dataclasses import replace
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from taskboard.gateways import InMemoryGateway
from taskboard.main import create_app
from taskboard.store import TodoStore

from .fakes import FlakyGateway, SlowInsertGateway


def create_category(client, name="Kerjaan", color=None):
    payload = {"name": name}
    if color is not None:
        payload["color"] = color
    res = client.post("/api/v1/categories/", json=payload)
    assert res.status_code == 201
    return res.json()


def create_task(client, category_id, title="Test Task", description=None):
    res = client.post(
        "/api/v1/tasks/",
        json={"title": title, "category_id": category_id, "description": description},
    )
    assert res.status_code == 201
    return res.json()


def assert_task_shape(task: dict):
    for key in ["id", "title", "category_id", "status", "subtasks", "created_at", "updated_at"]:
        assert key in task
    assert "description" in task
    assert task["status"] in ("todo", "in-progress", "done")
    assert isinstance(task["subtasks"], list)
    datetime.fromisoformat(task["created_at"])
    datetime.fromisoformat(task["updated_at"])


class TestHealth:
    def test_health_check(self, client):
        res = client.get("/")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert data["backend"] == "memory"


class TestCategoriesAPI:
    def test_create_with_color_in_one_request(self, client):
        category = create_category(client, "Masak Hari Ini", "#ef4444")
        assert category["color"] == "#EF4444"
        assert category["task_count"] == 0
        datetime.fromisoformat(category["last_used"])

    def test_create_validation_error_name_empty(self, client):
        res = client.post("/api/v1/categories/", json={"name": "   "})
        assert res.status_code == 422
        body = res.json()
        assert body.get("error") == "ValidationError"
        assert body.get("message") == "Request validation failed"
        assert isinstance(body.get("detail"), list)

    def test_get_patch_and_not_found(self, client):
        category = create_category(client)
        res = client.patch(f"/api/v1/categories/{category['id']}", json={"name": "Work"})
        assert res.status_code == 200
        assert res.json()["name"] == "Work"
        assert client.get(f"/api/v1/categories/{category['id']}").json()["name"] == "Work"

        res_404 = client.get("/api/v1/categories/nope")
        assert res_404.status_code == 404
        assert res_404.json()["detail"] == "Category not found"
        res_patch_nf = client.patch("/api/v1/categories/nope", json={"name": "x"})
        assert res_patch_nf.status_code == 404
        assert res_patch_nf.json()["detail"] == "Category not found"

    def test_delete_cascades(self, client):
        a = create_category(client, "A")
        b = create_category(client, "B")
        create_task(client, a["id"], "t1")
        t2 = create_task(client, b["id"], "t2")

        res_del = client.delete(f"/api/v1/categories/{a['id']}")
        assert res_del.status_code == 204
        assert res_del.text == ""
        tasks = client.get("/api/v1/tasks/").json()
        assert [t["id"] for t in tasks] == [t2["id"]]
        assert client.delete(f"/api/v1/categories/{a['id']}").status_code == 404

    def test_recent_and_task_counts(self, client):
        a = create_category(client, "A")
        b = create_category(client, "B")
        create_task(client, a["id"])
        recent = client.get("/api/v1/categories/recent?limit=5").json()
        assert [c["id"] for c in recent] == [a["id"], b["id"]]
        assert recent[0]["task_count"] == 1
        listed = client.get("/api/v1/categories/").json()
        assert [c["name"] for c in listed] == ["A", "B"]


class TestTasksAPI:
    def test_create_task(self, client):
        category = create_category(client)
        task = create_task(client, category["id"], "Buy milk", "  ")
        assert_task_shape(task)
        assert task["status"] == "todo"
        assert task["description"] is None
        assert task["total_subtasks"] == 0

    def test_create_task_unknown_category(self, client):
        res = client.post("/api/v1/tasks/", json={"title": "x", "category_id": "nope"})
        assert res.status_code == 404
        assert res.json()["detail"] == "Category not found"

    def test_create_task_empty_title(self, client):
        category = create_category(client)
        res = client.post("/api/v1/tasks/", json={"title": "", "category_id": category["id"]})
        assert res.status_code == 422
        assert res.json()["error"] == "ValidationError"
        assert client.get("/api/v1/tasks/").json() == []

    def test_patch_task(self, client):
        category = create_category(client)
        task = create_task(client, category["id"], "Partial", "X")
        res = client.patch(f"/api/v1/tasks/{task['id']}", json={"title": "Partial Updated", "status": "done"})
        assert res.status_code == 200
        patched = res.json()
        assert patched["title"] == "Partial Updated"
        assert patched["status"] == "done"
        assert patched["description"] == "X"

        res_bad = client.patch(f"/api/v1/tasks/{task['id']}", json={"status": "finished"})
        assert res_bad.status_code == 422
        res_extra = client.patch(f"/api/v1/tasks/{task['id']}", json={"subtasks": []})
        assert res_extra.status_code == 422
        res_nf = client.patch("/api/v1/tasks/nope", json={"title": "Nope"})
        assert res_nf.status_code == 404
        assert res_nf.json()["detail"] == "Task not found"

    def test_patch_task_to_unknown_category(self, client):
        category = create_category(client)
        task = create_task(client, category["id"])
        res = client.patch(f"/api/v1/tasks/{task['id']}", json={"category_id": "nope"})
        assert res.status_code == 404
        assert res.json()["detail"] == "Category not found"

    def test_delete_task(self, client):
        category = create_category(client)
        task = create_task(client, category["id"], "ToDelete")
        res_del = client.delete(f"/api/v1/tasks/{task['id']}")
        assert res_del.status_code == 204
        assert client.get(f"/api/v1/tasks/{task['id']}").status_code == 404
        res_again = client.delete(f"/api/v1/tasks/{task['id']}")
        assert res_again.status_code == 404
        assert res_again.json()["detail"] == "Task not found"

    def test_list_filters(self, client):
        a = create_category(client, "A")
        b = create_category(client, "B")
        t1 = create_task(client, a["id"], "Buy milk", "corner shop")
        t2 = create_task(client, b["id"], "Call mum")
        client.patch(f"/api/v1/tasks/{t2['id']}", json={"status": "in-progress"})

        by_status = client.get("/api/v1/tasks/?status=in-progress").json()
        assert [t["id"] for t in by_status] == [t2["id"]]
        by_category = client.get(f"/api/v1/tasks/?category_id={a['id']}").json()
        assert [t["id"] for t in by_category] == [t1["id"]]
        by_search = client.get("/api/v1/tasks/?q=SHOP").json()
        assert [t["id"] for t in by_search] == [t1["id"]]

    def test_list_sort_and_order(self, client):
        category = create_category(client)
        for i in range(4):
            create_task(client, category["id"], f"Task {i}")
        default_items = client.get("/api/v1/tasks/").json()
        created_ts = [datetime.fromisoformat(t["created_at"]) for t in default_items]
        assert created_ts == sorted(created_ts, reverse=True)

        items_asc = client.get("/api/v1/tasks/?sort=created_at").json()
        assert [t["title"] for t in items_asc] == ["Task 0", "Task 1", "Task 2", "Task 3"]

        items_desc = client.get("/api/v1/tasks/?sort=created_at&order=desc").json()
        assert [t["title"] for t in items_desc] == ["Task 3", "Task 2", "Task 1", "Task 0"]

    def test_list_invalid_order_param(self, client):
        res = client.get("/api/v1/tasks/?order=invalid")
        assert res.status_code == 400
        assert res.json()["detail"] == "order must be 'asc' or 'desc'"

    def test_recent_tasks(self, client):
        category = create_category(client)
        first = create_task(client, category["id"], "first")
        create_task(client, category["id"], "second")
        client.patch(f"/api/v1/tasks/{first['id']}", json={"description": "touched"})
        recent = client.get("/api/v1/tasks/recent?limit=1").json()
        assert [t["id"] for t in recent] == [first["id"]]


class TestSubtasksAPI:
    @pytest.fixture()
    def task(self, client):
        category = create_category(client)
        return create_task(client, category["id"], "Cook dinner")

    def test_toggle_flow_updates_status(self, client, task):
        tid = task["id"]
        s1 = client.post(f"/api/v1/tasks/{tid}/subtasks", json={"title": "Rice"}).json()
        s2 = client.post(f"/api/v1/tasks/{tid}/subtasks", json={"title": "Egg"}).json()
        assert s1["completed"] is False

        res = client.post(f"/api/v1/tasks/{tid}/subtasks/{s1['id']}/toggle")
        assert res.status_code == 200
        body = res.json()
        assert body["status"] == "in-progress"
        assert body["completed_subtasks"] == 1
        assert body["total_subtasks"] == 2

        body = client.post(f"/api/v1/tasks/{tid}/subtasks/{s2['id']}/toggle").json()
        assert body["status"] == "done"

        body = client.post(f"/api/v1/tasks/{tid}/subtasks/{s1['id']}/toggle").json()
        assert body["status"] == "in-progress"

    def test_patch_and_delete_subtask(self, client, task):
        tid = task["id"]
        sub = client.post(f"/api/v1/tasks/{tid}/subtasks", json={"title": "Rice"}).json()
        res = client.patch(f"/api/v1/tasks/{tid}/subtasks/{sub['id']}", json={"description": "basmati"})
        assert res.status_code == 200
        assert res.json()["description"] == "basmati"

        assert client.delete(f"/api/v1/tasks/{tid}/subtasks/{sub['id']}").status_code == 204
        assert client.get(f"/api/v1/tasks/{tid}").json()["subtasks"] == []
        res_nf = client.delete(f"/api/v1/tasks/{tid}/subtasks/{sub['id']}")
        assert res_nf.status_code == 404
        assert res_nf.json()["detail"] == "Subtask not found"

    def test_subtask_on_unknown_task(self, client):
        res = client.post("/api/v1/tasks/nope/subtasks", json={"title": "Rice"})
        assert res.status_code == 404
        assert res.json()["detail"] == "Task not found"

    def test_subtask_empty_title(self, client, task):
        res = client.post(f"/api/v1/tasks/{task['id']}/subtasks", json={"title": " "})
        assert res.status_code == 422


class TestStatsAPI:
    def test_stats(self, client):
        a = create_category(client, "A")
        create_category(client, "B")
        for status in ["done", "done", "in-progress", "todo"]:
            task = create_task(client, a["id"])
            client.patch(f"/api/v1/tasks/{task['id']}", json={"status": status})
        res = client.get("/api/v1/stats/")
        assert res.status_code == 200
        assert res.json() == {"total": 4, "completed": 2, "in_progress": 1, "total_categories": 2}


class TestAppLifecycle:
    def test_startup_loads_and_seeds(self, settings):
        seeded = replace(settings, seed_default_categories=True)
        store = TodoStore(InMemoryGateway())
        with TestClient(create_app(store=store, settings=seeded)) as client:
            names = [c["name"] for c in client.get("/api/v1/categories/").json()]
        assert names == ["Belajar Otodidak", "Masak Hari Ini", "Kerjaan"]
        assert store.loaded is True

    def test_gateway_failure_maps_to_502(self, settings):
        flaky = FlakyGateway()
        store = TodoStore(flaky)
        store.load()
        client = TestClient(create_app(store=store, settings=settings))
        flaky.failing.add(("insert", "categories"))
        res = client.post("/api/v1/categories/", json={"name": "A"})
        assert res.status_code == 502
        assert res.json()["error"] == "GatewayError"
        assert client.get("/api/v1/categories/").json() == []

    def test_slow_gateway_write_does_not_block_other_requests(self, settings):
        gateway = SlowInsertGateway()
        app = create_app(store=TodoStore(gateway), settings=settings)
        results = {}
        with TestClient(app) as client:
            writer = threading.Thread(
                target=lambda: results.update(post=client.post("/api/v1/categories/", json={"name": "A"}))
            )
            writer.start()
            assert gateway.entered.wait(timeout=5)
            health = client.get("/")
            # The write is still parked inside the gateway
            assert "post" not in results
            gateway.release.set()
            writer.join(timeout=5)
        assert health.status_code == 200
        assert results["post"].status_code == 201
