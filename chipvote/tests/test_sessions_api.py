from fastapi.testclient import TestClient


def _create_session(client: TestClient, **settings) -> dict:
    payload = {"facilitator_id": "facilitator-api"}
    if settings:
        payload["settings"] = settings
    res = client.post("/api/sessions", json=payload)
    assert res.status_code == 201, res.json()
    return res.json()


def _move(client: TestClient, session_id: str, phase: str):
    return client.put(f"/api/sessions/{session_id}/phase", json={"phase": phase})


def test_create_and_fetch_session(client: TestClient):
    created = _create_session(client, chipsPerType=5, requireDepartment=False)

    assert created["phase"] == "waiting"
    assert created["settings"]["chipsPerType"] == 5
    assert created["settings"]["requireDepartment"] is False
    assert len(created["option_order"]) == 4
    assert created["metadata"]["participantCount"] == 0

    fetched = client.get(f"/api/sessions/{created['session_id']}")
    assert fetched.status_code == 200, fetched.json()
    assert fetched.json()["option_order"] == created["option_order"]


def test_unknown_session_returns_tagged_404(client: TestClient):
    res = client.get("/api/sessions/does-not-exist")

    assert res.status_code == 404
    assert res.json()["code"] == "not_found"


def test_invalid_settings_rejected(client: TestClient):
    res = client.post(
        "/api/sessions",
        json={"facilitator_id": "facilitator-api", "settings": {"chipsPerType": 0}},
    )
    assert res.status_code == 422


def test_phase_walk_through_both_rounds(client: TestClient):
    session_id = _create_session(client)["session_id"]

    for phase in (
        "betting_layer1",
        "results_layer1",
        "routing",
        "betting_layer2",
        "results_layer2",
        "insights",
        "closed",
    ):
        res = _move(client, session_id, phase)
        assert res.status_code == 200, res.json()
        assert res.json()["phase"] == phase


def test_illegal_phase_jump_is_rejected(client: TestClient):
    session_id = _create_session(client)["session_id"]

    res = _move(client, session_id, "betting_layer2")

    assert res.status_code == 409
    assert res.json()["code"] == "illegal_transition"
    assert client.get(f"/api/sessions/{session_id}").json()["phase"] == "waiting"


def test_unknown_phase_is_rejected(client: TestClient):
    session_id = _create_session(client)["session_id"]

    res = _move(client, session_id, "halftime")

    assert res.status_code == 409
    assert res.json()["code"] == "illegal_transition"


def test_edit_option_title(client: TestClient):
    created = _create_session(client)
    focus_id = created["option_order"][2]

    res = client.patch(
        f"/api/sessions/{created['session_id']}/options/{focus_id}",
        json={"title": "Talking Across Teams"},
    )

    assert res.status_code == 200, res.json()
    assert res.json()["options"][focus_id]["title"] == "Talking Across Teams"


def test_edit_unknown_option(client: TestClient):
    session_id = _create_session(client)["session_id"]

    res = client.patch(
        f"/api/sessions/{session_id}/options/solution-missing",
        json={"title": "Nope"},
    )

    assert res.status_code == 400
    assert res.json()["code"] == "invalid_option"


def test_participant_registration_flow(client: TestClient):
    session_id = _create_session(client)["session_id"]
    base = f"/api/sessions/{session_id}/participants"

    res = client.post(
        base, json={"name": "Ada", "department": "Operations", "device_id": "dev-1"}
    )
    assert res.status_code == 201, res.json()
    ada = res.json()
    assert ada["department"] == "Operations"
    assert ada["layer1_completed"] is False

    again = client.post(
        base, json={"name": "Ada", "department": "Operations", "device_id": "dev-1"}
    )
    assert again.status_code == 201, again.json()
    assert again.json()["participant_id"] == ada["participant_id"]

    listed = client.get(base)
    assert [p["participant_id"] for p in listed.json()] == [ada["participant_id"]]
    assert client.get(f"{base}/{ada['participant_id']}").status_code == 200
    session = client.get(f"/api/sessions/{session_id}").json()
    assert session["metadata"]["participantCount"] == 1


def test_participant_without_department_rejected(client: TestClient):
    session_id = _create_session(client)["session_id"]

    res = client.post(
        f"/api/sessions/{session_id}/participants",
        json={"name": "Ada", "device_id": "dev-1"},
    )

    assert res.status_code == 400
    assert res.json()["code"] == "profile_required"


def test_unknown_participant(client: TestClient):
    session_id = _create_session(client)["session_id"]

    res = client.get(f"/api/sessions/{session_id}/participants/nobody")

    assert res.status_code == 404
    assert res.json()["code"] == "not_found"


def test_health(client: TestClient):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "healthy"
