"""
Description API and WebSocket tests
"""

import time

from fastapi.testclient import TestClient

from app.services.session_store import session_store


def _upload(client, paths, session_id):
    files = [
        ("scormPackages", (path.name, path.read_bytes(), "application/zip"))
        for path in paths
    ]
    response = client.post("/api/v1/upload", files=files, data={"sessionId": session_id})
    assert response.status_code == 200, response.text
    return response.json()["packages"]


def _wait_for_status(client, session_id, expected, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        status = client.get(f"/api/v1/descriptions/status/{session_id}").json()
        if status["status"] == expected:
            return status
        time.sleep(0.02)
    raise AssertionError(f"Task for {session_id} never reached {expected}: {status}")


class TestDescriptionEndpoints:

    def test_generate_requires_known_session(self, test_client: TestClient):
        response = test_client.post(
            "/api/v1/descriptions/generate", json={"sessionId": "unknown"}
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Session not found"

    def test_generate_and_collect_results(self, test_client: TestClient, make_package):
        authored = make_package(
            name="authored.zip",
            title="Fire Safety",
            description="Evacuation drills for every floor of the building.",
        )
        blank = make_package(name="team-management.zip", title="Team Management")
        packages = _upload(test_client, [authored, blank], "desc-session")

        response = test_client.post(
            "/api/v1/descriptions/generate", json={"sessionId": "desc-session"}
        )
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["success"] is True
        assert data["total"] == 2
        assert data["taskId"]

        status = _wait_for_status(test_client, "desc-session", "completed")
        assert status["progress"] == 100
        assert status["completed"] == 2

        results = test_client.get("/api/v1/descriptions/results/desc-session").json()
        assert results["sessionId"] == "desc-session"
        by_id = results["results"]
        assert by_id[packages[0]["id"]] == "Evacuation drills for every floor of the building."
        assert by_id[packages[1]["id"]].startswith("Develop essential leadership skills")

        # Generated descriptions are written back onto the session records
        session = session_store.get("desc-session")
        assert session.find_package(packages[1]["id"]).description == by_id[packages[1]["id"]]

    def test_cancel_without_task(self, test_client: TestClient):
        response = test_client.post(
            "/api/v1/descriptions/cancel", json={"sessionId": "idle"}
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "cancelled": False}

    def test_cancel_requires_session_id(self, test_client: TestClient):
        response = test_client.post("/api/v1/descriptions/cancel", json={})

        assert response.status_code == 400

    def test_status_and_results_for_unknown_session(self, test_client: TestClient):
        status = test_client.get("/api/v1/descriptions/status/nobody").json()
        results = test_client.get("/api/v1/descriptions/results/nobody").json()

        assert status["status"] == "not_found"
        assert results == {"sessionId": "nobody", "results": {}}


class TestSessionSocket:

    def test_socket_announces_session(self, test_client: TestClient):
        with test_client.websocket_connect("/ws") as websocket:
            message = websocket.receive_json()

            assert message["type"] == "session"
            assert session_store.get(message["sessionId"]) is not None

    def test_merge_progress_is_pushed(self, test_client: TestClient, make_package):
        with test_client.websocket_connect("/ws") as websocket:
            session_id = websocket.receive_json()["sessionId"]
            _upload(test_client, [make_package(title="Pushed Course")], session_id)

            response = test_client.post("/api/v1/merge", json={"sessionId": session_id})
            assert response.status_code == 200

            milestones = []
            while not milestones or milestones[-1] < 100:
                message = websocket.receive_json()
                assert message["type"] == "progress"
                milestones.append(message["progress"]["progress"])

            assert milestones == [5, 10, 15, 90, 100]

    def test_description_events_are_pushed(self, test_client: TestClient, make_package):
        with test_client.websocket_connect("/ws") as websocket:
            session_id = websocket.receive_json()["sessionId"]
            packages = _upload(test_client, [make_package(title="Team Management")], session_id)

            response = test_client.post(
                "/api/v1/descriptions/generate", json={"sessionId": session_id}
            )
            assert response.status_code == 200

            types = []
            update = None
            while "description_completed" not in types:
                message = websocket.receive_json()
                types.append(message["type"])
                if message["type"] == "description_updated":
                    update = message

            assert types[0] == "description_started"
            assert update["packageId"] == packages[0]["id"]
            assert update["fallback"] is True

    def test_session_removed_on_disconnect(self, test_client: TestClient):
        with test_client.websocket_connect("/ws") as websocket:
            session_id = websocket.receive_json()["sessionId"]

        deadline = time.monotonic() + 2.0
        while session_store.get(session_id) is not None and time.monotonic() < deadline:
            time.sleep(0.02)
        assert session_store.get(session_id) is None
