import os
from datetime import datetime, timedelta
from itertools import count

import pytest
from fastapi.testclient import TestClient

# Ensure we default to memory backend for tests to avoid filesystem dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from taskflow.errors import StoreError  # noqa: E402
from taskflow.main import app  # noqa: E402
from taskflow.repositories import InMemoryRepository, Repository, get_repository  # noqa: E402
from taskflow.routers.tasks import get_now  # noqa: E402

NOW = datetime(2024, 5, 15, 14, 30)
TODAY = datetime(2024, 5, 15)

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}

client = TestClient(app)


def ticking_clock(start=datetime(2024, 5, 1, 8, 0)):
    ticks = count()
    return lambda: start + timedelta(minutes=next(ticks))


@pytest.fixture(autouse=True)
def fresh_store(monkeypatch):
    monkeypatch.delenv("ENABLE_BASIC_AUTH", raising=False)
    repo = InMemoryRepository(clock=ticking_clock())
    app.dependency_overrides[get_repository] = lambda: repo
    app.dependency_overrides[get_now] = lambda: NOW
    yield repo
    app.dependency_overrides.clear()


def create_task_payload(
    title="Test Task",
    description="Do something",
    category="Work",
    priority="Medium",
    completed=False,
    due_date=None,
):
    payload = {
        "title": title,
        "description": description,
        "category": category,
        "priority": priority,
        "completed": completed,
    }
    if due_date is not None:
        payload["due_date"] = due_date
    return payload


def create(headers=ALICE, **kwargs):
    res = client.post("/api/v1/tasks/", json=create_task_payload(**kwargs), headers=headers)
    assert res.status_code == 201, res.text
    return res.json()


def assert_task_shape(task: dict):
    for key in ["id", "user_id", "title", "category", "priority", "completed", "created_at", "updated_at"]:
        assert key in task
    assert "description" in task
    assert "due_date" in task
    assert isinstance(task["id"], str) and task["id"]
    assert isinstance(task["title"], str)
    assert isinstance(task["completed"], bool)
    assert task["category"] in ("Work", "Personal", "Shopping", "Health")
    assert task["priority"] in ("Low", "Medium", "High")
    datetime.fromisoformat(task["created_at"])
    datetime.fromisoformat(task["updated_at"])
    if task["due_date"] is not None:
        datetime.fromisoformat(task["due_date"])


class TestHealth:
    def test_health_check(self):
        res = client.get("/")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert data["backend"] in ("memory", "sqlite")


class TestIdentity:
    def test_missing_user_header_is_rejected(self):
        res = client.get("/api/v1/tasks/")
        assert res.status_code == 401
        assert res.json()["detail"] == "Missing X-User-Id header"

    def test_tasks_are_private_to_their_owner(self):
        task = create(title="Alice only")
        assert client.get(f"/api/v1/tasks/{task['id']}", headers=BOB).status_code == 404
        assert client.patch(f"/api/v1/tasks/{task['id']}", json={"completed": True}, headers=BOB).status_code == 404
        assert client.delete(f"/api/v1/tasks/{task['id']}", headers=BOB).status_code == 404
        assert client.get("/api/v1/tasks/", headers=BOB).json()["total"] == 0
        # still intact for its owner
        fetched = client.get(f"/api/v1/tasks/{task['id']}", headers=ALICE).json()
        assert fetched["completed"] is False


class TestTasksCRUD:
    def test_create_task_minimal(self):
        res = client.post("/api/v1/tasks/", json={"title": "Buy milk", "category": "Shopping"}, headers=ALICE)
        assert res.status_code == 201
        task = res.json()
        assert_task_shape(task)
        assert task["title"] == "Buy milk"
        assert task["user_id"] == "alice"
        assert task["description"] is None
        assert task["priority"] == "Medium"
        assert task["completed"] is False
        assert task["created_at"] == task["updated_at"]

    def test_create_task_with_due_date_date_string(self):
        task = create(title="Pay bills", description="Electricity", due_date="2099-12-25")
        assert_task_shape(task)
        # Due date should be promoted to midnight
        assert task["due_date"].startswith("2099-12-25T00:00:00")

    def test_get_task_and_not_found(self):
        task = create(title="Read book")

        res_get = client.get(f"/api/v1/tasks/{task['id']}", headers=ALICE)
        assert res_get.status_code == 200
        assert res_get.json()["title"] == "Read book"

        res_404 = client.get("/api/v1/tasks/does-not-exist", headers=ALICE)
        assert res_404.status_code == 404
        assert res_404.json()["detail"] == "Task not found"

    def test_put_replace_task(self):
        task = create(title="Initial", description="A", completed=False)

        new_payload = create_task_payload(
            title="Replaced", description=None, category="Health", priority="High", completed=True,
            due_date="2100-01-01",
        )
        res_put = client.put(f"/api/v1/tasks/{task['id']}", json=new_payload, headers=ALICE)
        assert res_put.status_code == 200
        updated = res_put.json()
        assert updated["id"] == task["id"]
        assert updated["title"] == "Replaced"
        assert updated["description"] is None
        assert updated["category"] == "Health"
        assert updated["priority"] == "High"
        assert updated["completed"] is True
        assert updated["due_date"].startswith("2100-01-01")
        assert updated["created_at"] == task["created_at"]

        res_put_nf = client.put("/api/v1/tasks/424242", json=new_payload, headers=ALICE)
        assert res_put_nf.status_code == 404
        assert res_put_nf.json()["detail"] == "Task not found"

    def test_patch_partial_update(self):
        task = create(title="Partial", description="X", due_date="2030-01-01")

        res_patch = client.patch(
            f"/api/v1/tasks/{task['id']}", json={"title": "Partial Updated", "completed": True}, headers=ALICE
        )
        assert res_patch.status_code == 200
        patched = res_patch.json()
        assert patched["title"] == "Partial Updated"
        assert patched["completed"] is True
        # untouched fields remain
        assert patched["description"] == "X"
        assert patched["category"] == "Work"
        assert patched["due_date"].startswith("2030-01-01")
        # timestamps
        assert patched["created_at"] == task["created_at"]
        assert datetime.fromisoformat(patched["updated_at"]) > datetime.fromisoformat(task["updated_at"])

        res_patch_nf = client.patch("/api/v1/tasks/123456", json={"title": "Nope"}, headers=ALICE)
        assert res_patch_nf.status_code == 404

    def test_patch_explicit_null_clears_due_date(self):
        task = create(title="Dated", due_date="2030-01-01")
        res = client.patch(f"/api/v1/tasks/{task['id']}", json={"due_date": None}, headers=ALICE)
        assert res.status_code == 200
        assert res.json()["due_date"] is None

    def test_patch_null_title_is_ignored(self):
        task = create(title="Keep me")
        res = client.patch(f"/api/v1/tasks/{task['id']}", json={"title": None}, headers=ALICE)
        assert res.status_code == 200
        assert res.json()["title"] == "Keep me"

    def test_delete_task(self):
        task = create(title="ToDelete")

        res_del = client.delete(f"/api/v1/tasks/{task['id']}", headers=ALICE)
        assert res_del.status_code == 204
        assert res_del.text == ""

        assert client.get(f"/api/v1/tasks/{task['id']}", headers=ALICE).status_code == 404
        res_del_again = client.delete(f"/api/v1/tasks/{task['id']}", headers=ALICE)
        assert res_del_again.status_code == 404
        assert res_del_again.json()["detail"] == "Task not found"


class TestListFilteringAndStats:
    def seed(self):
        create(title="Buy milk", category="Shopping", priority="Low", due_date=TODAY.replace(hour=9).isoformat())
        create(title="Write report", description="Q2 numbers", category="Work", priority="High", completed=True,
               due_date=(TODAY - timedelta(days=1)).isoformat())
        create(title="Renew passport", category="Personal", priority="High",
               due_date=(TODAY - timedelta(days=2)).isoformat())
        create(title="Gym", category="Health", priority="Medium",
               due_date=(TODAY + timedelta(days=1, hours=7)).isoformat())
        create(title="Plan sprint", category="Work", priority="High")

    def titles(self, res):
        assert res.status_code == 200, res.text
        return [t["title"] for t in res.json()["items"]]

    def test_list_newest_first_with_stats(self):
        self.seed()
        res = client.get("/api/v1/tasks/", headers=ALICE)
        body = res.json()
        assert self.titles(res) == ["Plan sprint", "Gym", "Renew passport", "Write report", "Buy milk"]
        assert body["total"] == 5
        assert body["active_filters"] == 0
        assert body["stats"] == {"total": 5, "completed": 1, "pending": 4, "in_progress": 4}

    def test_filter_completed(self):
        self.seed()
        assert self.titles(client.get("/api/v1/tasks/?completed=true", headers=ALICE)) == ["Write report"]
        assert "Write report" not in self.titles(client.get("/api/v1/tasks/?completed=false", headers=ALICE))

    def test_stats_ignore_filters(self):
        self.seed()
        body = client.get("/api/v1/tasks/?category=Health", headers=ALICE).json()
        assert body["total"] == 1
        assert body["active_filters"] == 1
        assert body["stats"]["total"] == 5

    def test_category_and_priority(self):
        self.seed()
        res = client.get("/api/v1/tasks/?category=Work&priority=High", headers=ALICE)
        assert self.titles(res) == ["Plan sprint", "Write report"]

    def test_due_buckets(self):
        self.seed()
        assert self.titles(client.get("/api/v1/tasks/?due=today", headers=ALICE)) == ["Buy milk"]
        assert self.titles(client.get("/api/v1/tasks/?due=tomorrow", headers=ALICE)) == ["Gym"]
        # Write report is in the past but completed
        assert self.titles(client.get("/api/v1/tasks/?due=overdue", headers=ALICE)) == ["Renew passport"]
        assert self.titles(client.get("/api/v1/tasks/?due=thisWeek", headers=ALICE)) == [
            "Gym",
            "Renew passport",
            "Write report",
            "Buy milk",
        ]

    def test_search(self):
        self.seed()
        assert self.titles(client.get("/api/v1/tasks/?q=REPORT", headers=ALICE)) == ["Write report"]
        assert self.titles(client.get("/api/v1/tasks/?q=q2", headers=ALICE)) == ["Write report"]
        # whitespace-only search is ignored
        body = client.get("/api/v1/tasks/?q=%20%20", headers=ALICE).json()
        assert body["total"] == 5
        assert body["active_filters"] == 0

    def test_pagination_after_filtering(self):
        self.seed()
        res = client.get("/api/v1/tasks/?completed=false&limit=2&offset=1", headers=ALICE)
        body = res.json()
        assert body["total"] == 4
        assert body["limit"] == 2
        assert body["offset"] == 1
        assert self.titles(res) == ["Gym", "Renew passport"]

    def test_invalid_filter_values(self):
        for query in ("category=Errands", "priority=Urgent", "due=someday", "limit=5000"):
            res = client.get(f"/api/v1/tasks/?{query}", headers=ALICE)
            assert res.status_code == 422, query
            assert res.json()["error"] == "ValidationError"

    def test_stats_endpoint(self):
        self.seed()
        res = client.get("/api/v1/tasks/stats", headers=ALICE)
        assert res.status_code == 200
        assert res.json() == {"total": 5, "completed": 1, "pending": 4, "in_progress": 4}

    def test_stats_endpoint_empty(self):
        res = client.get("/api/v1/tasks/stats", headers=BOB)
        assert res.json() == {"total": 0, "completed": 0, "pending": 0, "in_progress": 0}

    def test_dashboard(self):
        self.seed()
        res = client.get("/api/v1/tasks/dashboard", headers=ALICE)
        assert res.status_code == 200
        body = res.json()
        assert body["stats"]["total"] == 5
        assert [t["title"] for t in body["today"]] == ["Buy milk"]
        assert [t["title"] for t in body["recent"]] == [
            "Plan sprint",
            "Gym",
            "Renew passport",
            "Write report",
            "Buy milk",
        ]
        assert body["categories"] == {"Work": 2, "Personal": 1, "Shopping": 1, "Health": 1}


class FailingRepository(Repository):
    def _fail(self, *args, **kwargs):
        raise StoreError("connection refused")

    create = get = update = delete = list_tasks = _fail


class TestStoreFailures:
    def test_list_failure_is_not_an_empty_list(self):
        app.dependency_overrides[get_repository] = FailingRepository
        res = client.get("/api/v1/tasks/", headers=ALICE)
        assert res.status_code == 503
        body = res.json()
        assert body["error"] == "StoreError"
        assert body["message"] == "Task store unavailable"
        assert "connection refused" in body["detail"]

    def test_stats_failure(self):
        app.dependency_overrides[get_repository] = FailingRepository
        assert client.get("/api/v1/tasks/stats", headers=ALICE).status_code == 503

    def test_malformed_document(self, fresh_store):
        task = create(title="odd")
        fresh_store._items[task["id"]]["category"] = "Errands"

        # the filter simply never matches it
        body = client.get("/api/v1/tasks/?category=Work", headers=ALICE).json()
        assert body["total"] == 0
        assert body["stats"]["total"] == 1

        # but it cannot be rendered
        res = client.get("/api/v1/tasks/", headers=ALICE)
        assert res.status_code == 503
        assert res.json()["error"] == "StoreError"


class TestValidationErrors:
    def test_create_validation_error_title_empty(self):
        res = client.post("/api/v1/tasks/", json={"title": "  ", "category": "Work"}, headers=ALICE)
        assert res.status_code == 422
        body = res.json()
        assert body.get("error") == "ValidationError"
        assert body.get("message") == "Request validation failed"
        assert isinstance(body.get("detail"), list)

    def test_create_requires_known_category(self):
        res = client.post("/api/v1/tasks/", json={"title": "x", "category": "Errands"}, headers=ALICE)
        assert res.status_code == 422

    def test_patch_validation_error_bad_due_date(self):
        task = create(title="Due date bad")
        res_patch = client.patch(f"/api/v1/tasks/{task['id']}", json={"due_date": "not-a-date"}, headers=ALICE)
        assert res_patch.status_code == 422
        body = res_patch.json()
        assert body.get("error") == "ValidationError"
        assert isinstance(body.get("detail"), list)
