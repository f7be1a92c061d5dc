"""Tests for the GraphQL endpoint."""

from fastapi.testclient import TestClient

TASK_FIELDS = "id ownerId title description dueDate completed createdAt updatedAt attachments { filename originalName path }"


def gql(client: TestClient, query: str, **variables) -> dict:
    response = client.post("/graphql", json={"query": query, "variables": variables})
    assert response.status_code == 200
    return response.json()


def create_task(client: TestClient, title: str, **fields) -> dict:
    result = gql(
        client,
        f"mutation($input: TaskInput!) {{ createTask(input: $input) {{ {TASK_FIELDS} }} }}",
        input={"title": title, **fields},
    )
    assert "errors" not in result, result
    return result["data"]["createTask"]


def test_register_and_login_set_session_cookie(client: TestClient) -> None:
    result = gql(
        client,
        "mutation { register(username: \"carol\", password: \"pw\") { message } }",
    )
    assert result["data"]["register"]["message"] == "Registered successfully"

    duplicate = gql(client, "mutation { register(username: \"carol\", password: \"x\") { message } }")
    assert duplicate["errors"][0]["message"] == "User already exists"

    response = client.post(
        "/graphql",
        json={"query": "mutation { login(username: \"carol\", password: \"pw\") { message } }"},
    )
    assert response.json()["data"]["login"]["message"] == "Login successful"
    assert "token=" in response.headers["set-cookie"]
    assert "HttpOnly" in response.headers["set-cookie"]

    me = client.get("/api/auth/me")
    assert me.json()["username"] == "carol"


def test_bad_login_is_reported(client: TestClient, login) -> None:
    login("dave", "secret")
    client.cookies.clear()
    result = gql(client, "mutation { login(username: \"dave\", password: \"nope\") { message } }")
    assert result["errors"][0]["message"] == "Invalid credentials"


def test_operations_require_session(client: TestClient) -> None:
    result = gql(client, "{ tasks { id } }")
    assert result["errors"][0]["message"] == "Unauthorized"


def test_task_lifecycle(client: TestClient, login) -> None:
    alice = login()
    task = create_task(client, "  Buy milk ", dueDate="2030-01-01")
    assert task["title"] == "Buy milk"
    assert task["ownerId"] == alice["id"]
    assert task["dueDate"] == "2030-01-01"
    assert task["completed"] is False
    assert task["updatedAt"] is None

    assert gql(client, "{ tasks(filter: \"completed\") { id } }")["data"]["tasks"] == []
    active = gql(client, "{ tasks(filter: \"active\") { id } }")["data"]["tasks"]
    assert active == [{"id": task["id"]}]

    toggled = gql(client, "mutation($id: ID!) { toggleTask(id: $id) { completed updatedAt } }", id=task["id"])
    assert toggled["data"]["toggleTask"]["completed"] is True
    assert toggled["data"]["toggleTask"]["updatedAt"] is not None

    updated = gql(
        client,
        "mutation($id: ID!, $input: TaskUpdateInput!) { updateTask(id: $id, input: $input) { title dueDate completed } }",
        id=task["id"],
        input={"title": "Buy oat milk"},
    )
    assert updated["data"]["updateTask"] == {"title": "Buy oat milk", "dueDate": "2030-01-01", "completed": True}

    fetched = gql(client, "query($id: ID!) { task(id: $id) { title } }", id=task["id"])
    assert fetched["data"]["task"]["title"] == "Buy oat milk"

    deleted = gql(client, "mutation($id: ID!) { deleteTask(id: $id) }", id=task["id"])
    assert deleted["data"]["deleteTask"] is True

    missing = gql(client, "query($id: ID!) { task(id: $id) { title } }", id=task["id"])
    assert missing["errors"][0]["message"] == "Task not found"


def test_blank_title_rejected(client: TestClient, login) -> None:
    login()
    result = gql(
        client,
        "mutation { createTask(input: {title: \"   \"}) { id } }",
    )
    assert result["errors"][0]["message"] == "Title is required"
    assert client.get("/api/tasks").json() == []


def test_tasks_are_scoped_to_the_session_user(client: TestClient, login) -> None:
    login("alice")
    task = create_task(client, "Alice only")

    login("bob")
    assert gql(client, "{ tasks { id } }")["data"]["tasks"] == []
    result = gql(client, "mutation($id: ID!) { toggleTask(id: $id) { id } }", id=task["id"])
    assert result["errors"][0]["message"] == "Task not found"


def test_remove_attachment(client: TestClient, login) -> None:
    login()
    files = [("attachments", ("a.txt", b"a", "text/plain")), ("attachments", ("b.txt", b"b", "text/plain"))]
    task = client.post("/api/tasks", data={"title": "Files"}, files=files).json()
    first, second = task["attachments"]

    result = gql(
        client,
        "mutation($taskId: ID!, $filename: String!) { removeAttachment(taskId: $taskId, filename: $filename) { attachments { filename } } }",
        taskId=task["id"],
        filename=first["filename"],
    )
    assert result["data"]["removeAttachment"]["attachments"] == [{"filename": second["filename"]}]
    assert client.get(first["path"]).status_code == 404


def test_storage_failures_are_masked(client: TestClient, login, settings) -> None:
    login()
    (settings.data_dir / "tasks.json").write_text("[oops")

    result = gql(client, "{ tasks { id } }")
    assert result["errors"][0]["message"] == "Internal server error"
    assert (settings.data_dir / "tasks.json").read_text() == "[oops"


def test_logout_clears_cookie(client: TestClient, login) -> None:
    login()
    response = client.post("/graphql", json={"query": "mutation { logout { message } }"})
    assert response.json()["data"]["logout"]["message"] == "Logged out"
    assert "Max-Age=0" in response.headers["set-cookie"]


def test_unknown_filter_is_an_error(client: TestClient, login) -> None:
    login()
    result = gql(client, "{ tasks(filter: \"bogus\") { id } }")
    assert result["errors"][0]["message"] == "Invalid filter: bogus"
