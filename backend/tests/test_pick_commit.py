"""Tests for the pick commit pipeline, guards and race safety."""

import threading
from datetime import timedelta

import pytest

from conftest import COMMISSIONER, OWNERS, SESSION_ID, TEAM_IDS, current_pick, pick_current
from ladderdraft.exceptions import (
    DependencyUnavailable, InvalidIdentifier, InvalidPick, InvalidStateTransition, NotCurrentPick, PickAlreadyMade,
    PlayerUnavailable, RateLimited, SessionNotLive, Unauthorized
)
from ladderdraft.models.audit_model import AuditAction
from ladderdraft.models.draft_store import InMemoryDraftStore
from ladderdraft.services.auth_service import StaticIdentityProvider
from ladderdraft.services.draft_service import DraftService


def actions(audit_log):
    return [e.action_type for e in audit_log.entries(SESSION_ID)]


class TestCommitSuccess:
    def test_commit_advances_current_pick(self, service, store, live, clock):
        first = current_pick(store)
        result = pick_current(service, store, clock, "p1")

        assert result.pick.player_id == "p1"
        assert result.pick.picked_at == clock.now
        assert result.pick.picked_by == OWNERS["team_a"]
        assert result.pick.is_auto_pick is False
        assert result.pick.deadline_at is None

        nxt = current_pick(store)
        assert nxt.overall_pick == first.overall_pick + 1
        assert nxt.deadline_at == clock.now + timedelta(seconds=90)

    def test_commit_is_audited_and_published(self, service, store, audit_log, feed, live, clock):
        pick_current(service, store, clock, "p1")
        assert AuditAction.PICK_ATTEMPTED in actions(audit_log)
        assert AuditAction.PICK_MADE in actions(audit_log)

        event = feed.of("pick_made")[0]
        assert event["team"] == {"id": "team_a", "name": "Team A"}
        assert event["player"]["name"] == "Player 1"
        assert event["round"] == 1
        assert event["overall_pick"] == 1
        assert event["current_pick"]["team_name"] == "Team B"

    def test_roster_updated(self, service, store, roster, live, clock):
        pick_current(service, store, clock, "p3")
        assert roster.get_roster(SESSION_ID, "team_a") == ["p3"]

    def test_commissioner_may_pick_for_any_team(self, service, store, live, clock):
        result = pick_current(service, store, clock, "p1", actor_id=COMMISSIONER)
        assert result.pick.team_id == "team_a"

    def test_roster_write_failure_keeps_commit(self, service, store, roster, live, clock, monkeypatch):
        def broken(session_id, pick):
            raise DependencyUnavailable("roster_store")
        monkeypatch.setattr(roster, "assign_player", broken)

        result = pick_current(service, store, clock, "p1")
        assert store.get_pick(SESSION_ID, result.pick.id).player_id == "p1"


class TestCommitGuards:
    def test_not_live(self, service, store, scheduled):
        pick = store.get_picks(SESSION_ID)[0]
        with pytest.raises(SessionNotLive):
            service.commit_pick(SESSION_ID, pick.id, "p1", OWNERS["team_a"])

    def test_unknown_pick(self, service, live):
        with pytest.raises(InvalidPick):
            service.commit_pick(SESSION_ID, "missing-pick", "p1", OWNERS["team_a"])

    def test_unknown_player(self, service, store, live):
        with pytest.raises(InvalidPick):
            service.commit_pick(SESSION_ID, current_pick(store).id, "nobody", OWNERS["team_a"])

    def test_not_current_pick(self, service, store, live):
        later = store.get_picks(SESSION_ID)[3]
        with pytest.raises(NotCurrentPick):
            service.commit_pick(SESSION_ID, later.id, "p1", OWNERS["team_d"])

    def test_already_made(self, service, store, live, clock):
        first = current_pick(store)
        pick_current(service, store, clock, "p1")
        clock.advance(3)
        with pytest.raises(PickAlreadyMade):
            service.commit_pick(SESSION_ID, first.id, "p2", OWNERS["team_a"])

    def test_wrong_owner(self, service, store, live):
        with pytest.raises(Unauthorized):
            service.commit_pick(SESSION_ID, current_pick(store).id, "p1", OWNERS["team_b"])

    def test_player_taken(self, service, store, live, clock):
        pick_current(service, store, clock, "p1")
        clock.advance(3)
        with pytest.raises(PlayerUnavailable):
            service.commit_pick(SESSION_ID, current_pick(store).id, "p1", OWNERS["team_b"])

    def test_malformed_ids(self, service, live):
        with pytest.raises(InvalidIdentifier):
            service.commit_pick(SESSION_ID, "bad id!", "p1", OWNERS["team_a"])

    def test_failures_are_audited(self, service, store, audit_log, live):
        with pytest.raises(Unauthorized):
            service.commit_pick(SESSION_ID, current_pick(store).id, "p1", OWNERS["team_b"])
        failed = [e for e in audit_log.entries(SESSION_ID) if e.action_type == AuditAction.PICK_FAILED]
        assert failed[0].metadata["error"] == "unauthorized"

    def test_identity_outage_is_dependency_error(self, service, store, identity, live, monkeypatch):
        def broken(actor_id, session_id):
            raise ConnectionError("identity down")
        monkeypatch.setattr(identity, "resolve", broken)
        with pytest.raises(DependencyUnavailable):
            service.commit_pick(SESSION_ID, current_pick(store).id, "p1", OWNERS["team_a"])


class TestPickRateLimit:
    def test_three_quick_picks_limited(self, service, store, live):
        pick = current_pick(store)
        outcomes = []
        for player_id in ("p1", "p2", "p3"):
            try:
                service.commit_pick(SESSION_ID, pick.id, player_id, OWNERS["team_a"])
                outcomes.append("ok")
            except RateLimited:
                outcomes.append("limited")
            except PickAlreadyMade:
                outcomes.append("taken")
        assert outcomes.count("limited") >= 2

    def test_rate_limit_is_audited_as_failure(self, service, store, audit_log, live):
        pick = current_pick(store)
        service.commit_pick(SESSION_ID, pick.id, "p1", OWNERS["team_a"])
        with pytest.raises(RateLimited):
            service.commit_pick(SESSION_ID, pick.id, "p2", OWNERS["team_a"])
        failed = [e for e in audit_log.entries(SESSION_ID) if e.action_type == AuditAction.PICK_FAILED]
        assert failed[-1].metadata["error"] == "rate_limited"


class TestScenario:
    def test_four_team_snake(self, service, store, live, clock):
        for i in range(1, 5):
            pick_current(service, store, clock, f"p{i}")

        round_two = [current_pick(store).team_id]
        clock.advance(10)
        with pytest.raises(InvalidStateTransition):
            service.complete_draft(SESSION_ID, COMMISSIONER)

        for i in range(5, 9):
            if i > 5:
                round_two.append(current_pick(store).team_id)
            pick_current(service, store, clock, f"p{i}")

        assert round_two == ["team_d", "team_c", "team_b", "team_a"]
        committed = {p.team_id + ":" + p.player_id for p in store.get_picks(SESSION_ID)}
        assert {"team_d:p5", "team_c:p6", "team_b:p7", "team_a:p8"} <= committed


class TestCommitRace:
    def test_exactly_one_concurrent_commit_wins(self, roster, audit_log, feed, clock):
        admins = [f"admin{i}" for i in range(8)]
        store = InMemoryDraftStore()
        identity = StaticIdentityProvider(commissioners={SESSION_ID: [COMMISSIONER] + admins})
        service = DraftService(store, roster, identity, audit_log, feed, clock=clock)
        service.schedule_draft(SESSION_ID, TEAM_IDS, rounds=1, actor_id=COMMISSIONER)
        service.start_draft(SESSION_ID, COMMISSIONER)
        pick = current_pick(store)

        barrier = threading.Barrier(len(admins))
        results = []

        def attempt(index, actor_id):
            barrier.wait()
            try:
                service.commit_pick(SESSION_ID, pick.id, f"p{index + 1}", actor_id)
                results.append("ok")
            except PickAlreadyMade:
                results.append("lost")

        threads = [threading.Thread(target=attempt, args=(i, a)) for i, a in enumerate(admins)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("ok") == 1
        assert results.count("lost") == len(admins) - 1
        assert current_pick(store).overall_pick == 2
        players = [p.player_id for p in store.get_picks(SESSION_ID) if p.player_id]
        assert len(players) == len(set(players)) == 1
