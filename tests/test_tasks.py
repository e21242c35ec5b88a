from app.models import Task
from conftest import auth_header

DEADLINE = "2031-06-30T17:00:00Z"


def _create_task(client, admin, client_id, **extra):
    payload = {"title": "File tax return", "description": "Q2 filing", "clientId": client_id, "deadline": DEADLINE}
    payload.update(extra)
    return client.post("/api/tasks", json=payload, headers=auth_header(admin))


def _task_count(app) -> int:
    with app.state.database.session() as db:
        return db.query(Task).count()


def test_end_to_end_assignment_and_completion_notifies_client(client, admin, notifier) -> None:
    response = client.post(
        "/api/clients",
        json={"name": "A", "email": "a@x.com", "phone": "+15551234567"},
        headers=auth_header(admin),
    )
    assert response.status_code == 201
    assert "password" not in response.json()
    client_id = response.json()["id"]

    response = _create_task(client, admin, client_id)
    assert response.status_code == 201
    task = response.json()
    assert task["status"] == "pending"
    assert task["client"]["id"] == client_id
    assert task["createdBy"]["id"] == admin["id"]
    assert len(notifier.calls) == 1
    phone, message = notifier.calls[0]
    assert phone == "+15551234567"
    assert message.startswith("New task assigned: File tax return")
    assert "Deadline: 2031-06-30" in message

    login = client.put(
        f"/api/clients/{client_id}",
        json={"password": "clientpw"},
        headers=auth_header(admin),
    )
    assert login.status_code == 200
    token = client.post("/api/auth/login", json={"email": "a@x.com", "password": "clientpw"}).json()["token"]

    response = client.put(
        f"/api/tasks/{task['id']}",
        json={"status": "completed"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    assert len(notifier.calls) == 2
    assert notifier.calls[1] == ("+15551234567", "Task completed: File tax return")


def test_completed_task_does_not_notify_twice(client, admin, alice, notifier) -> None:
    task_id = _create_task(client, admin, alice["id"]).json()["id"]
    client.put(f"/api/tasks/{task_id}", json={"status": "completed"}, headers=auth_header(alice))
    client.put(f"/api/tasks/{task_id}", json={"status": "completed"}, headers=auth_header(alice))
    assert [m for _, m in notifier.calls if m.startswith("Task completed")] == ["Task completed: File tax return"]


def test_create_task_for_unknown_or_non_client_returns_404(client, app, admin) -> None:
    assert _create_task(client, admin, "does-not-exist").status_code == 404
    response = _create_task(client, admin, admin["id"])
    assert response.status_code == 404
    assert response.json()["message"] == "Client not found"
    assert _task_count(app) == 0


def test_create_task_is_admin_only(client, app, alice) -> None:
    response = _create_task(client, alice, alice["id"])
    assert response.status_code == 403
    assert _task_count(app) == 0


def test_create_task_requires_deadline(client, admin, alice) -> None:
    response = client.post(
        "/api/tasks",
        json={"title": "No deadline", "clientId": alice["id"]},
        headers=auth_header(admin),
    )
    assert response.status_code == 400
    assert "deadline" in response.json()["message"]


def test_clients_only_see_their_own_tasks(client, admin, alice, bob) -> None:
    alice_task = _create_task(client, admin, alice["id"]).json()
    bob_task = _create_task(client, admin, bob["id"], title="Bob's task").json()

    response = client.get("/api/tasks", headers=auth_header(alice))
    assert response.status_code == 200
    assert [t["id"] for t in response.json()] == [alice_task["id"]]

    response = client.get("/api/tasks", headers=auth_header(admin))
    assert {t["id"] for t in response.json()} == {alice_task["id"], bob_task["id"]}

    assert client.get(f"/api/tasks/{alice_task['id']}", headers=auth_header(alice)).status_code == 200
    response = client.get(f"/api/tasks/{bob_task['id']}", headers=auth_header(alice))
    assert response.status_code == 403
    assert client.get("/api/tasks/missing", headers=auth_header(alice)).status_code == 404


def test_client_update_only_changes_status(client, admin, alice, bob) -> None:
    task = _create_task(client, admin, alice["id"]).json()

    response = client.put(
        f"/api/tasks/{task['id']}",
        json={
            "status": "in-progress",
            "title": "Hacked",
            "description": "changed",
            "deadline": "2040-01-01T00:00:00Z",
            "clientId": bob["id"],
        },
        headers=auth_header(alice),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "in-progress"
    assert body["title"] == task["title"]
    assert body["description"] == task["description"]
    assert body["deadline"] == task["deadline"]
    assert body["client"]["id"] == alice["id"]


def test_client_cannot_update_someone_elses_task(client, admin, alice, bob) -> None:
    task = _create_task(client, admin, bob["id"]).json()
    response = client.put(f"/api/tasks/{task['id']}", json={"status": "completed"}, headers=auth_header(alice))
    assert response.status_code == 403


def test_admin_update_all_fields_and_reassign(client, admin, alice, bob) -> None:
    task = _create_task(client, admin, alice["id"]).json()

    response = client.put(
        f"/api/tasks/{task['id']}",
        json={"title": "Renamed", "clientId": bob["id"], "status": "in-progress"},
        headers=auth_header(admin),
    )
    assert response.status_code == 200
    assert response.json()["title"] == "Renamed"
    assert response.json()["client"]["id"] == bob["id"]

    response = client.put(
        f"/api/tasks/{task['id']}",
        json={"clientId": admin["id"]},
        headers=auth_header(admin),
    )
    assert response.status_code == 404


def test_invalid_status_returns_400(client, admin, alice) -> None:
    task = _create_task(client, admin, alice["id"]).json()
    response = client.put(f"/api/tasks/{task['id']}", json={"status": "done"}, headers=auth_header(alice))
    assert response.status_code == 400


def test_delete_task_is_admin_only(client, app, admin, alice) -> None:
    task = _create_task(client, admin, alice["id"]).json()
    assert client.delete(f"/api/tasks/{task['id']}", headers=auth_header(alice)).status_code == 403

    response = client.delete(f"/api/tasks/{task['id']}", headers=auth_header(admin))
    assert response.status_code == 200
    assert response.json()["message"] == "Task removed"
    assert _task_count(app) == 0
    assert client.delete(f"/api/tasks/{task['id']}", headers=auth_header(admin)).status_code == 404
