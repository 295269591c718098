import contextlib
import logging

from chipvote.models.results import SessionResults
from chipvote.models.session import SessionPhase
from chipvote.services.results_cache import ResultsCache, ResultsRefreshCoordinator
from chipvote.services.results_manager import ResultsManager
from chipvote.services.voting_manager import VotingManager
from chipvote.tests.helpers import ManualScheduler, all_on, set_phase


def test_cache_entries_expire_after_ttl():
    clock = ManualScheduler()
    cache = ResultsCache(ttl_seconds=3, clock=lambda: clock.now)

    cache.set("s1", {"summary": 1})
    clock.advance(2.5)
    assert cache.get("s1") == {"summary": 1}
    clock.advance(0.5)
    assert cache.get("s1") is None


def test_cache_keys_by_layer_and_group():
    cache = ResultsCache(ttl_seconds=3, clock=lambda: 0.0)

    cache.set("s1", "all")
    cache.set("s1", "layer1", layer="layer1")
    cache.set("s1", "group", layer="layer2", group_id="g1")

    assert cache.get("s1") == "all"
    assert cache.get("s1", "layer1") == "layer1"
    assert cache.get("s1", "layer2", "g1") == "group"
    assert cache.get("s1", "layer2", "g2") is None
    assert ResultsCache.key("s1", "layer2", "g1") == "s1:layer2:g1"


def test_invalidate_session_leaves_other_sessions():
    cache = ResultsCache(ttl_seconds=3, clock=lambda: 0.0)
    cache.set("s1", "a")
    cache.set("s1", "b", layer="layer1")
    cache.set("s10", "c")

    cache.invalidate_session("s1")

    assert cache.get("s1") is None
    assert cache.get("s1", "layer1") is None
    assert cache.get("s10") == "c"


def test_disabled_cache_never_returns_values():
    cache = ResultsCache(ttl_seconds=3, clock=lambda: 0.0, enabled=False)
    cache.set("s1", "a")
    assert cache.get("s1") is None


def _coordinator(db_session, cache, scheduler):
    return ResultsRefreshCoordinator(
        cache,
        session_factory=lambda: contextlib.nullcontext(db_session),
        settings={"debounce_ms": 750, "throttle_ms": 2000},
        scheduler=scheduler,
    )


def test_vote_burst_triggers_one_debounced_recompute(
    db_session, voting_session, participant_manager, monkeypatch
):
    scheduler = ManualScheduler()
    cache = ResultsCache(ttl_seconds=3, clock=lambda: scheduler.now)
    coordinator = _coordinator(db_session, cache, scheduler)
    set_phase(db_session, voting_session, SessionPhase.BETTING_LAYER1)
    calls = []
    original = ResultsManager.recompute

    def counting(self, session_id):
        calls.append(session_id)
        return original(self, session_id)

    monkeypatch.setattr(ResultsManager, "recompute", counting)

    for index in range(3):
        person = participant_manager.register_participant(
            voting_session.session_id, f"p{index}", "Ops", f"device-{index}"
        )
        VotingManager(db_session).submit_vote(
            voting_session.session_id,
            person.participant_id,
            "layer1",
            all_on(voting_session.option_order[0]),
        )
        coordinator.notify_vote(voting_session.session_id)
        scheduler.advance(0.25)

    assert calls == []
    scheduler.advance(0.75)
    assert calls == [voting_session.session_id]
    cached = cache.get(voting_session.session_id)
    assert cached["summary"]["layer1Allocations"] == 3
    stored = db_session.get(SessionResults, voting_session.session_id)
    assert stored.payload["summary"]["layer1Allocations"] == 3


def test_refresh_requests_are_throttled(db_session, voting_session, monkeypatch):
    scheduler = ManualScheduler()
    cache = ResultsCache(ttl_seconds=3, clock=lambda: scheduler.now)
    coordinator = _coordinator(db_session, cache, scheduler)
    calls = []
    monkeypatch.setattr(
        ResultsManager, "recompute", lambda self, session_id: calls.append(session_id)
    )

    assert coordinator.request_refresh(voting_session.session_id) is True
    assert coordinator.request_refresh(voting_session.session_id) is False
    assert coordinator.request_refresh(voting_session.session_id) is False
    assert len(calls) == 1

    scheduler.advance(2.0)
    assert len(calls) == 2
    scheduler.advance(2.0)
    assert len(calls) == 2


def test_background_failure_is_logged_not_raised(db_session, caplog):
    scheduler = ManualScheduler()
    cache = ResultsCache(ttl_seconds=3, clock=lambda: scheduler.now)
    coordinator = _coordinator(db_session, cache, scheduler)

    with caplog.at_level(logging.ERROR):
        coordinator.notify_vote("missing-session")
        scheduler.advance(1.0)

    assert "Background results refresh failed" in caplog.text


def test_flush_runs_pending_recompute(db_session, voting_session):
    scheduler = ManualScheduler()
    cache = ResultsCache(ttl_seconds=3, clock=lambda: scheduler.now)
    coordinator = _coordinator(db_session, cache, scheduler)

    coordinator.notify_vote(voting_session.session_id)
    coordinator.flush(voting_session.session_id)

    assert cache.get(voting_session.session_id) is not None
    assert scheduler.pending == []


def test_shutdown_cancels_pending_timers(db_session, voting_session):
    scheduler = ManualScheduler()
    cache = ResultsCache(ttl_seconds=3, clock=lambda: scheduler.now)
    coordinator = _coordinator(db_session, cache, scheduler)

    coordinator.notify_vote(voting_session.session_id)
    coordinator.shutdown()
    scheduler.advance(5)

    assert cache.get(voting_session.session_id) is None
