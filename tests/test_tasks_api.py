"""Tests for the task CRUD endpoints."""

from fastapi.testclient import TestClient


def create(client: TestClient, title: str = "Buy milk", files=None, **fields):
    return client.post("/api/tasks", data={"title": title, **fields}, files=files)


def test_requires_session(client: TestClient) -> None:
    assert client.get("/api/tasks").status_code == 401
    assert client.post("/api/tasks", data={"title": "x"}).status_code == 401


def test_scenario_create_and_filter(client: TestClient, login) -> None:
    """Alice creates one task; it is active, not completed."""
    alice = login("alice")

    response = create(client, "Buy milk")
    assert response.status_code == 201
    task = response.json()
    assert task["ownerId"] == alice["id"]
    assert task["completed"] is False
    assert task["attachments"] == []
    assert task["updatedAt"] is None

    assert client.get("/api/tasks", params={"filter": "completed"}).json() == []
    active = client.get("/api/tasks", params={"filter": "active"}).json()
    assert [t["id"] for t in active] == [task["id"]]
    assert len(client.get("/api/tasks").json()) == 1


def test_invalid_filter_rejected(client: TestClient, login) -> None:
    login()
    assert client.get("/api/tasks", params={"filter": "someday"}).status_code == 422


def test_create_requires_title(client: TestClient, login) -> None:
    login()
    blank = create(client, "   ")
    assert blank.status_code == 422
    assert blank.json()["detail"] == "Title is required"

    missing = client.post("/api/tasks", data={"description": "no title"})
    assert missing.status_code == 422
    assert client.get("/api/tasks").json() == []


def test_create_trims_fields(client: TestClient, login) -> None:
    login()
    task = create(client, "  Call mum  ", description="  sunday ", dueDate="2030-05-01").json()
    assert task["title"] == "Call mum"
    assert task["description"] == "sunday"
    assert task["dueDate"] == "2030-05-01"


def test_create_with_attachments_and_fetch_them(client: TestClient, login) -> None:
    alice = login()
    files = [
        ("attachments", ("list.txt", b"eggs, milk", "text/plain")),
        ("attachments", ("photo one.png", b"\x89PNG", "image/png")),
    ]
    task = create(client, "Shopping", files=files).json()

    assert [a["originalName"] for a in task["attachments"]] == ["list.txt", "photo one.png"]
    first = task["attachments"][0]
    assert first["path"] == f"/api/uploads/{alice['id']}/{first['filename']}"

    download = client.get(first["path"])
    assert download.status_code == 200
    assert download.content == b"eggs, milk"


def test_attachment_limits(client: TestClient, login) -> None:
    login()
    too_many = [("attachments", (f"{i}.txt", b"x", "text/plain")) for i in range(6)]
    assert create(client, "Many", files=too_many).status_code == 413

    too_big = [("attachments", ("big.bin", b"x" * 2048, "application/octet-stream"))]
    assert create(client, "Big", files=too_big).status_code == 413

    assert client.get("/api/tasks").json() == []


def test_get_task_not_found(client: TestClient, login) -> None:
    login()
    response = client.get("/api/tasks/does-not-exist")
    assert response.status_code == 404
    assert response.json()["detail"] == "Task not found"


def test_update_task(client: TestClient, login) -> None:
    login()
    task = create(client, "Original", description="keep me").json()

    response = client.put(f"/api/tasks/{task['id']}", json={"title": "Updated", "completed": True})
    assert response.status_code == 200
    updated = response.json()
    assert updated["title"] == "Updated"
    assert updated["completed"] is True
    assert updated["description"] == "keep me"
    assert updated["updatedAt"] is not None
    assert updated["createdAt"] == task["createdAt"]


def test_update_rejects_blank_title(client: TestClient, login) -> None:
    login()
    task = create(client).json()
    response = client.put(f"/api/tasks/{task['id']}", json={"title": " "})
    assert response.status_code == 422
    assert client.get(f"/api/tasks/{task['id']}").json()["title"] == "Buy milk"


def test_toggle_task(client: TestClient, login) -> None:
    login()
    task = create(client).json()

    first = client.patch(f"/api/tasks/{task['id']}/toggle").json()
    second = client.patch(f"/api/tasks/{task['id']}/toggle").json()
    assert first["completed"] is True
    assert second["completed"] is False
    assert second["updatedAt"] is not None


def test_delete_task_removes_files(client: TestClient, login, settings) -> None:
    alice = login()
    files = [
        ("attachments", ("a.txt", b"a", "text/plain")),
        ("attachments", ("b.txt", b"b", "text/plain")),
    ]
    task = create(client, "Doomed", files=files).json()
    owner_dir = settings.uploads_dir / alice["id"]
    assert len(list(owner_dir.iterdir())) == 2

    response = client.delete(f"/api/tasks/{task['id']}")
    assert response.status_code == 200
    assert list(owner_dir.iterdir()) == []
    assert client.get(f"/api/tasks/{task['id']}").status_code == 404
    assert client.delete(f"/api/tasks/{task['id']}").status_code == 404


def test_upload_to_existing_task_and_remove_attachment(client: TestClient, login) -> None:
    login()
    task = create(client, "Later files").json()

    response = client.post(
        f"/api/tasks/{task['id']}/upload",
        files=[("attachments", ("late.txt", b"late", "text/plain"))],
    )
    assert response.status_code == 200
    attachment = response.json()["attachments"][0]
    assert client.get(f"/api/tasks/{task['id']}").json()["attachments"] == [attachment]

    response = client.delete(f"/api/tasks/{task['id']}/attachments/{attachment['filename']}")
    assert response.status_code == 200
    assert response.json()["attachments"] == []
    assert client.get(attachment["path"]).status_code == 404


def test_other_user_cannot_see_or_touch_tasks(client: TestClient, login) -> None:
    alice = login("alice")
    files = [("attachments", ("secret.txt", b"top secret", "text/plain"))]
    task = create(client, "Alice only", files=files).json()
    attachment_path = task["attachments"][0]["path"]

    login("bob")
    assert client.get("/api/tasks").json() == []
    assert client.get(f"/api/tasks/{task['id']}").status_code == 404
    assert client.put(f"/api/tasks/{task['id']}", json={"title": "Bob's"}).status_code == 404
    assert client.patch(f"/api/tasks/{task['id']}/toggle").status_code == 404
    assert client.delete(f"/api/tasks/{task['id']}").status_code == 404
    assert client.get(attachment_path).status_code == 403

    login("alice")
    still_there = client.get(f"/api/tasks/{task['id']}").json()
    assert still_there["title"] == "Alice only"
    assert still_there["ownerId"] == alice["id"]
    assert client.get(attachment_path).status_code == 200


def test_standalone_upload(client: TestClient, login) -> None:
    alice = login()
    response = client.post("/api/upload", files=[("attachments", ("pre.txt", b"pre", "text/plain"))])
    assert response.status_code == 200
    attachment = response.json()["attachments"][0]
    assert attachment["path"].startswith(f"/api/uploads/{alice['id']}/")


def test_corrupt_tasks_document_gives_generic_500(client: TestClient, login, settings) -> None:
    login()
    (settings.data_dir / "tasks.json").write_text("{broken")

    response = client.get("/api/tasks")
    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}
    assert (settings.data_dir / "tasks.json").read_text() == "{broken"
