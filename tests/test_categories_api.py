from __future__ import annotations

from tests.shared import ApiTestContext


def test_categories_include_callers_task_counts(api_context: ApiTestContext) -> None:
    client = api_context.client
    alice = api_context.register(email="alice@example.com")
    bob = api_context.register(email="bob@example.com")
    client.post("/tasks", json={"title": "A1", "category_id": 1}, headers=alice)
    client.post("/tasks", json={"title": "A2", "category_id": 1}, headers=alice)
    client.post("/tasks", json={"title": "B1", "category_id": 1}, headers=bob)

    response = client.get("/categories", headers=alice)

    assert response.status_code == 200
    payload = response.json()
    assert payload["message"] == "Categories retrieved successfully."
    counts = {item["id"]: item["tasks_count"] for item in payload["data"]}
    assert counts[1] == 2
    assert all(count == 0 for category_id, count in counts.items() if category_id != 1)

    detail = client.get("/categories/1", headers=bob).json()
    assert detail["data"]["tasks_count"] == 1


def test_category_writes_require_admin(api_context: ApiTestContext) -> None:
    client = api_context.client
    headers = api_context.register()

    created = client.post("/categories", json={"name": "Errands"}, headers=headers)
    updated = client.put("/categories/1", json={"name": "Job"}, headers=headers)
    deleted = client.delete("/categories/1", headers=headers)

    for response in (created, updated, deleted):
        assert response.status_code == 403
        assert response.json()["error"]["message"] == "User does not have the right roles."


def test_admin_manages_categories(api_context: ApiTestContext) -> None:
    client = api_context.client
    api_context.register(email="admin@example.com")
    api_context.make_admin("admin@example.com")
    headers = api_context.login("admin@example.com")

    created = client.post(
        "/categories",
        json={"name": "Errands", "color": "#000000"},
        headers=headers,
    )
    assert created.status_code == 201
    category_id = created.json()["data"]["id"]

    duplicate = client.post("/categories", json={"name": "Errands"}, headers=headers)
    assert duplicate.status_code == 409

    updated = client.put(
        f"/categories/{category_id}",
        json={"description": "Little jobs"},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["description"] == "Little jobs"
    assert updated.json()["data"]["name"] == "Errands"


def test_deleting_category_detaches_tasks(api_context: ApiTestContext) -> None:
    client = api_context.client
    headers = api_context.register(email="admin@example.com")
    api_context.make_admin("admin@example.com")
    task = client.post(
        "/tasks",
        json={"title": "Linked", "category_id": 2},
        headers=headers,
    ).json()["data"]

    response = client.delete("/categories/2", headers=headers)

    assert response.status_code == 200
    assert response.json() == {"message": "Category deleted successfully."}
    refreshed = client.get(f"/tasks/{task['id']}", headers=headers).json()["data"]
    assert refreshed["category_id"] is None
    assert refreshed["category"] is None
    assert client.get("/categories/2", headers=headers).status_code == 404


def test_category_routes_require_authentication(api_context: ApiTestContext) -> None:
    assert api_context.client.get("/categories").status_code == 401
    assert api_context.client.get("/categories/1").status_code == 401
