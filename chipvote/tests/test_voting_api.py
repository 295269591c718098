import asyncio

import pytest
from fastapi.testclient import TestClient

from chipvote.models.session import SessionPhase
from chipvote.services.results_manager import ResultsManager
from chipvote.tests.helpers import all_on, even_split, set_phase


@pytest.fixture
def open_round(db_session, voting_session):
    set_phase(db_session, voting_session, SessionPhase.BETTING_LAYER1)
    return voting_session


def _join(client: TestClient, session_id: str, name: str, department: str = "Ops"):
    res = client.post(
        f"/api/sessions/{session_id}/participants",
        json={"name": name, "department": department, "device_id": f"dev-{name}"},
    )
    assert res.status_code == 201, res.json()
    return res.json()["participant_id"]


def _vote(client, session_id, participant_id, layer, allocations, group_id=None):
    payload = {
        "participant_id": participant_id,
        "layer": layer,
        "allocations": allocations,
    }
    if group_id is not None:
        payload["group_id"] = group_id
    return client.post(f"/api/sessions/{session_id}/votes", json=payload)


def test_submit_round_one_vote(client: TestClient, open_round):
    session_id = open_round.session_id
    focus = open_round.option_order[3]
    ada = _join(client, session_id, "Ada")

    res = _vote(client, session_id, ada, "layer1", all_on(focus))

    assert res.status_code == 201, res.json()
    body = res.json()
    assert body["layer"] == "layer1"
    assert body["total_chips"] == 12
    assert body["routing_winner"] == focus
    participant = client.get(f"/api/sessions/{session_id}/participants/{ada}").json()
    assert participant["layer1_completed"] is True
    assert participant["layer1_selection"] == focus


def test_second_submission_conflicts(client: TestClient, open_round):
    session_id = open_round.session_id
    focus = open_round.option_order[0]
    ada = _join(client, session_id, "Ada")
    assert _vote(client, session_id, ada, "layer1", all_on(focus)).status_code == 201

    res = _vote(client, session_id, ada, "layer1", all_on(focus))

    assert res.status_code == 409
    assert res.json()["code"] == "already_submitted"


def test_budget_mismatch(client: TestClient, open_round):
    session_id = open_round.session_id
    focus = open_round.option_order[0]
    ada = _join(client, session_id, "Ada")

    res = _vote(
        client,
        session_id,
        ada,
        "layer1",
        {focus: {"time": 4, "talent": 4, "trust": 3}},
    )

    assert res.status_code == 400
    assert res.json()["code"] == "budget_mismatch"
    participant = client.get(f"/api/sessions/{session_id}/participants/{ada}").json()
    assert participant["layer1_completed"] is False


def test_unknown_option_rejected(client: TestClient, open_round):
    session_id = open_round.session_id
    ada = _join(client, session_id, "Ada")

    res = _vote(client, session_id, ada, "layer1", all_on("pain-point-coffee"))

    assert res.status_code == 400
    assert res.json()["code"] == "invalid_option"


def test_vote_outside_open_round(client: TestClient, voting_session):
    session_id = voting_session.session_id
    ada = _join(client, session_id, "Ada")

    res = _vote(client, session_id, ada, "layer1", all_on(voting_session.option_order[0]))

    assert res.status_code == 409
    assert res.json()["code"] == "phase_closed"


def test_round_two_requires_routed_group(client: TestClient, db_session, open_round):
    session_id = open_round.session_id
    routed, other = open_round.option_order[0], open_round.option_order[1]
    ada = _join(client, session_id, "Ada")
    assert _vote(client, session_id, ada, "layer1", all_on(routed)).status_code == 201
    set_phase(db_session, open_round, SessionPhase.BETTING_LAYER2)

    other_solution = open_round.solutions[other][0]["id"]
    denied = _vote(client, session_id, ada, "layer2", all_on(other_solution), other)
    assert denied.status_code == 403
    assert denied.json()["code"] == "not_routed"

    routed_ids = [entry["id"] for entry in open_round.solutions[routed]]
    accepted = _vote(client, session_id, ada, "layer2", even_split(routed_ids), routed)
    assert accepted.status_code == 201, accepted.json()
    assert accepted.json()["group_id"] == routed
    assert accepted.json()["routing_winner"] is None


def test_unknown_layer_fails_validation(client: TestClient, open_round):
    session_id = open_round.session_id
    ada = _join(client, session_id, "Ada")

    res = _vote(client, session_id, ada, "layer3", {})

    assert res.status_code == 422


def test_results_after_round_one(client: TestClient, open_round):
    session_id = open_round.session_id
    x, y = open_round.option_order[0], open_round.option_order[1]
    ada = _join(client, session_id, "Ada", "Operations")
    bo = _join(client, session_id, "Bo", "Finance")
    assert _vote(client, session_id, ada, "layer1", all_on(x)).status_code == 201
    assert _vote(client, session_id, bo, "layer1", even_split([x, y])).status_code == 201

    move = client.put(
        f"/api/sessions/{session_id}/phase", json={"phase": "results_layer1"}
    )
    assert move.status_code == 200, move.json()

    res = client.get(f"/api/sessions/{session_id}/results")
    assert res.status_code == 200, res.json()
    results = res.json()
    assert results["summary"]["layer1Allocations"] == 2
    assert results["summary"]["totalLayer1Chips"] == 24
    options = {entry["optionId"]: entry for entry in results["layer1"]["options"]}
    assert options[x]["totals"]["totalChips"] == 18
    assert options[y]["totals"]["totalChips"] == 6
    assert options[x]["percentages"] == {"time": 33.3, "talent": 33.3, "trust": 33.3}

    layer_only = client.get(
        f"/api/sessions/{session_id}/results", params={"layer": "layer1"}
    ).json()
    assert layer_only == results["layer1"]


def test_results_group_and_errors(client: TestClient, voting_session):
    session_id = voting_session.session_id
    group_id = voting_session.option_order[2]

    group = client.get(
        f"/api/sessions/{session_id}/results", params={"group_id": group_id}
    )
    assert group.status_code == 200, group.json()
    assert group.json()["totalAllocations"] == 0
    assert len(group.json()["options"]) == 4

    unknown_group = client.get(
        f"/api/sessions/{session_id}/results", params={"group_id": "nowhere"}
    )
    assert unknown_group.status_code == 404

    unknown_layer = client.get(
        f"/api/sessions/{session_id}/results", params={"layer": "layer9"}
    )
    assert unknown_layer.status_code == 400
    assert unknown_layer.json()["code"] == "invalid_option"

    missing = client.get("/api/sessions/missing/results", params={"refresh": True})
    assert missing.status_code == 404


def test_refresh_recomputes_once_per_window(
    client: TestClient, open_round, scheduler, monkeypatch
):
    session_id = open_round.session_id
    assert client.get(f"/api/sessions/{session_id}/results").status_code == 200
    calls = []
    original = ResultsManager.recompute

    def counting(self, target):
        calls.append(target)
        return original(self, target)

    monkeypatch.setattr(ResultsManager, "recompute", counting)

    for _ in range(3):
        res = client.get(
            f"/api/sessions/{session_id}/results", params={"refresh": True}
        )
        assert res.status_code == 200, res.json()

    assert len(calls) == 1
    scheduler.advance(2.0)
    assert len(calls) == 2


def test_vote_submission_schedules_debounced_refresh(
    client: TestClient, open_round, scheduler
):
    from chipvote.services.results_cache import results_cache

    session_id = open_round.session_id
    ada = _join(client, session_id, "Ada")
    assert (
        _vote(client, session_id, ada, "layer1", all_on(open_round.option_order[0]))
        .status_code
        == 201
    )
    assert results_cache.get(session_id) is None

    scheduler.advance(0.75)

    cached = results_cache.get(session_id)
    assert cached is not None
    assert cached["summary"]["layer1Allocations"] == 1


def test_results_recompute_runs_off_the_event_loop(
    client: TestClient, open_round, monkeypatch
):
    session_id = open_round.session_id
    ada = _join(client, session_id, "Ada")
    assert (
        _vote(client, session_id, ada, "layer1", all_on(open_round.option_order[0]))
        .status_code
        == 201
    )
    on_loop = []
    original = ResultsManager.recompute

    def recording(self, target):
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            on_loop.append(False)
        else:
            on_loop.append(True)
        return original(self, target)

    monkeypatch.setattr(ResultsManager, "recompute", recording)

    cold = client.get(f"/api/sessions/{session_id}/results")
    assert cold.status_code == 200, cold.json()
    refreshed = client.get(
        f"/api/sessions/{session_id}/results", params={"refresh": True}
    )
    assert refreshed.status_code == 200, refreshed.json()

    assert on_loop == [False, False]
    assert refreshed.json()["summary"]["layer1Allocations"] == 1
