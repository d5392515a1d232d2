"""Tests for the draft service: queues, read views, rejected-action audit and concurrent limits."""

import threading
from datetime import timedelta

import pytest

from conftest import COMMISSIONER, OWNERS, SESSION_ID, TEAM_IDS, SlowAuditLog, current_pick, pick_current
from ladderdraft.exceptions import (
    InvalidArgument, InvalidStateTransition, PlayerUnavailable, RateLimited, SessionNotFound, Unauthorized
)
from ladderdraft.models.audit_model import AuditAction
from ladderdraft.models.draft_store import InMemoryDraftStore
from ladderdraft.services.auth_service import ActorRole, StaticIdentityProvider
from ladderdraft.services.draft_service import DraftService

OWNER_A = OWNERS["team_a"]


class TestDraftQueue:
    def test_add_remove_reorder(self, service, scheduled, clock):
        service.add_to_queue(SESSION_ID, "team_a", "p5", OWNER_A)
        service.add_to_queue(SESSION_ID, "team_a", "p6", OWNER_A)
        assert service.add_to_queue(SESSION_ID, "team_a", "p7", OWNER_A, position=0) == ["p7", "p5", "p6"]

        assert service.reorder_queue(SESSION_ID, "team_a", ["p6", "p5", "p7"], OWNER_A) == ["p6", "p5", "p7"]
        assert service.remove_from_queue(SESSION_ID, "team_a", "p5", OWNER_A) == ["p6", "p7"]

    def test_queue_updates_go_to_team_room(self, service, feed, scheduled):
        service.add_to_queue(SESSION_ID, "team_a", "p5", OWNER_A)
        _, name, data, team_id = feed.events[-1]
        assert name == "queue_updated"
        assert team_id == "team_a"
        assert data["queue"] == ["p5"]

    def test_queue_changes_are_audited(self, service, audit_log, scheduled):
        service.add_to_queue(SESSION_ID, "team_a", "p5", OWNER_A)
        entry = audit_log.entries(SESSION_ID)[-1]
        assert entry.action_type == AuditAction.QUEUE_ADDED
        assert entry.team_id == "team_a"

    def test_duplicate_rejected(self, service, scheduled):
        service.add_to_queue(SESSION_ID, "team_a", "p5", OWNER_A)
        with pytest.raises(InvalidArgument):
            service.add_to_queue(SESSION_ID, "team_a", "p5", OWNER_A)

    def test_drafted_player_rejected(self, service, store, live, clock):
        pick_current(service, store, clock, "p1")
        with pytest.raises(PlayerUnavailable):
            service.add_to_queue(SESSION_ID, "team_b", "p1", OWNERS["team_b"])

    def test_reorder_must_keep_players(self, service, scheduled):
        service.add_to_queue(SESSION_ID, "team_a", "p5", OWNER_A)
        with pytest.raises(InvalidArgument):
            service.reorder_queue(SESSION_ID, "team_a", ["p5", "p6"], OWNER_A)
        assert [e["id"] for e in service.get_queue(SESSION_ID, "team_a", OWNER_A)] == ["p5"]

    def test_other_owner_cannot_edit(self, service, scheduled):
        with pytest.raises(Unauthorized):
            service.add_to_queue(SESSION_ID, "team_a", "p5", OWNERS["team_b"])

    def test_commissioner_can_edit_any_queue(self, service, scheduled):
        assert service.add_to_queue(SESSION_ID, "team_c", "p5", COMMISSIONER) == ["p5"]

    def test_unknown_team(self, service, scheduled):
        with pytest.raises(InvalidArgument):
            service.add_to_queue(SESSION_ID, "team_z", "p5", COMMISSIONER)

    def test_unknown_session(self, service):
        with pytest.raises(SessionNotFound):
            service.add_to_queue("nope", "team_a", "p5", OWNER_A)

    def test_rate_limited_after_ten_changes(self, service, scheduled):
        for i in range(1, 11):
            service.add_to_queue(SESSION_ID, "team_a", f"p{i}", OWNER_A)
        with pytest.raises(RateLimited):
            service.add_to_queue(SESSION_ID, "team_a", "p11", OWNER_A)

    def test_get_queue_flags_drafted_players(self, service, store, live, clock):
        service.add_to_queue(SESSION_ID, "team_b", "p1", OWNERS["team_b"])
        service.add_to_queue(SESSION_ID, "team_b", "p2", OWNERS["team_b"])
        pick_current(service, store, clock, "p1")

        queue = service.get_queue(SESSION_ID, "team_b", OWNERS["team_b"])
        assert [(e["id"], e["available"]) for e in queue] == [("p1", False), ("p2", True)]

    def test_no_changes_after_completion(self, service, store, live, clock):
        for i in range(1, 9):
            pick_current(service, store, clock, f"p{i}")
        clock.advance(10)
        service.complete_draft(SESSION_ID, COMMISSIONER)
        with pytest.raises(InvalidStateTransition):
            service.add_to_queue(SESSION_ID, "team_a", "p12", OWNER_A)


class TestDraftBoard:
    def test_board_contents(self, service, store, live, clock):
        pick_current(service, store, clock, "p1")
        clock.advance(10)

        board = service.get_draft_board(SESSION_ID)
        assert board["session"]["status"] == "live"
        assert board["progress"] == {"made": 1, "total": 8}
        assert board["picks"][0]["team_name"] == "Team A"
        assert board["picks"][0]["player_id"] == "p1"
        assert board["current_pick"]["overall_pick"] == 2
        assert board["seconds_remaining"] == 80
        assert isinstance(board["session"]["started_at"], str)

    def test_board_unknown_session(self, service):
        with pytest.raises(SessionNotFound):
            service.get_draft_board("nope")


class TestAvailablePlayers:
    def test_excludes_drafted_and_sorts_by_rank(self, service, store, live, clock):
        pick_current(service, store, clock, "p1")
        players = service.get_available_players(SESSION_ID, limit=3)
        assert [p["id"] for p in players] == ["p2", "p3", "p4"]

    def test_position_filter(self, service, live):
        players = service.get_available_players(SESSION_ID, position="wr")
        assert {p["position"] for p in players} == {"WR"}
        assert players[0]["id"] == "p3"

    def test_bad_limit(self, service, live):
        with pytest.raises(InvalidArgument):
            service.get_available_players(SESSION_ID, limit=0)


def test_current_pick_only_moves_forward(service, store, live, clock):
    seen = []
    for i in range(1, 9):
        seen.append(current_pick(store).overall_pick)
        pick_current(service, store, clock, f"p{i}")
    assert seen == sorted(seen) == list(range(1, 9))


def rejections(audit_log):
    return [e for e in audit_log.entries(SESSION_ID) if e.action_type == AuditAction.ACTION_REJECTED]


class TestRejectedActionsAudited:
    def test_invalid_transition_and_unauthorized(self, service, audit_log, live, clock):
        clock.advance(10)
        with pytest.raises(InvalidStateTransition):
            service.complete_draft(SESSION_ID, COMMISSIONER)
        with pytest.raises(Unauthorized):
            service.pause_draft(SESSION_ID, OWNER_A)

        entries = rejections(audit_log)
        assert [(e.actor_id, e.metadata["action"], e.metadata["error"]) for e in entries] == [
            (COMMISSIONER, "draft_completed", "invalid_state_transition"),
            (OWNER_A, "draft_paused", "unauthorized"),
        ]

    def test_rate_limited_control_keeps_retry_after(self, service, audit_log, live):
        with pytest.raises(RateLimited):
            service.pause_draft(SESSION_ID, COMMISSIONER)
        entry = rejections(audit_log)[-1]
        assert entry.metadata["error"] == "rate_limited"
        assert entry.metadata["retry_after_seconds"] >= 1

    def test_out_of_range_extension(self, service, audit_log, live):
        with pytest.raises(InvalidArgument):
            service.extend_timer(SESSION_ID, COMMISSIONER, 400)
        assert rejections(audit_log)[-1].metadata["action"] == "timer_extended"

    def test_schedule_by_owner(self, service, audit_log):
        with pytest.raises(Unauthorized):
            service.schedule_draft(SESSION_ID, TEAM_IDS, rounds=2, actor_id=OWNER_A)
        entry = rejections(audit_log)[-1]
        assert (entry.actor_id, entry.metadata["action"]) == (OWNER_A, "draft_scheduled")

    def test_settings_rejection(self, service, audit_log, live):
        with pytest.raises(InvalidArgument):
            service.update_settings(SESSION_ID, COMMISSIONER, timer_seconds=10)
        assert rejections(audit_log)[-1].metadata["action"] == "settings_updated"

    def test_queue_rejection_names_team_and_player(self, service, audit_log, scheduled):
        with pytest.raises(Unauthorized):
            service.add_to_queue(SESSION_ID, "team_a", "p5", OWNERS["team_b"])
        entry = rejections(audit_log)[-1]
        assert entry.metadata["action"] == "queue_added"
        assert (entry.team_id, entry.player_id) == ("team_a", "p5")

    def test_rejections_do_not_count_against_control_limit(self, service, audit_log, live, clock):
        clock.advance(6)
        with pytest.raises(InvalidStateTransition):
            service.complete_draft(SESSION_ID, COMMISSIONER)
        service.pause_draft(SESSION_ID, COMMISSIONER)


class TestSettingsChanges:
    def test_audited_and_published(self, service, audit_log, feed, live):
        service.update_settings(SESSION_ID, COMMISSIONER, auto_pick_enabled=False)

        entry = [e for e in audit_log.entries(SESSION_ID) if e.action_type == AuditAction.SETTINGS_UPDATED][0]
        assert entry.metadata == {"changes": {"auto_pick_enabled": False}}

        event = feed.of("settings_updated")[-1]
        assert event["session"]["settings"]["auto_pick_enabled"] is False
        assert event["current_pick"]["overall_pick"] == 1

    def test_timer_change_publishes_new_deadline(self, service, store, feed, live, clock):
        service.update_settings(SESSION_ID, COMMISSIONER, timer_seconds=0)
        service.update_settings(SESSION_ID, COMMISSIONER, timer_seconds=60)
        event = feed.of("settings_updated")[-1]
        assert event["current_pick"]["deadline_at"] == (clock.now + timedelta(seconds=60)).isoformat()


class TestConcurrentRateLimits:
    @pytest.fixture
    def slow_service(self, roster, identity, feed, clock):
        store = InMemoryDraftStore()
        service = DraftService(store, roster, identity, SlowAuditLog(), feed, clock=clock)
        service.schedule_draft(SESSION_ID, TEAM_IDS, rounds=2, actor_id=COMMISSIONER)
        service.start_draft(SESSION_ID, COMMISSIONER)
        clock.advance(6)
        return service, store

    @staticmethod
    def run_concurrently(count, action):
        barrier = threading.Barrier(count)
        outcomes = []

        def worker():
            barrier.wait()
            try:
                action()
                outcomes.append("ok")
            except RateLimited:
                outcomes.append("limited")
            except Exception as e:
                outcomes.append(type(e).__name__)

        threads = [threading.Thread(target=worker) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return sorted(outcomes)

    def test_three_simultaneous_picks_from_one_owner(self, slow_service):
        service, store = slow_service
        pick = current_pick(store)
        outcomes = self.run_concurrently(
            3, lambda: service.commit_pick(SESSION_ID, pick.id, "p1", OWNER_A)
        )
        assert outcomes == ["limited", "limited", "ok"]

    def test_simultaneous_control_actions(self, slow_service):
        service, _ = slow_service
        outcomes = self.run_concurrently(2, lambda: service.pause_draft(SESSION_ID, COMMISSIONER))
        assert outcomes == ["limited", "ok"]


class TestViewers:
    def test_owner_and_commissioner_may_watch(self, service, scheduled):
        assert service.resolve_viewer(SESSION_ID, OWNER_A).role == ActorRole.OWNER
        assert service.resolve_viewer(SESSION_ID, COMMISSIONER).is_commissioner

    def test_guest_refused(self, service, scheduled):
        with pytest.raises(Unauthorized):
            service.resolve_viewer(SESSION_ID, "stranger")

    def test_listed_member_may_watch(self, store, roster, audit_log, feed, clock, scheduled):
        identity = StaticIdentityProvider(commissioners={SESSION_ID: [COMMISSIONER]},
                                          members={SESSION_ID: ["fan"]})
        viewer_service = DraftService(store, roster, identity, audit_log, feed, clock=clock)
        assert viewer_service.resolve_viewer(SESSION_ID, "fan").role == ActorRole.MEMBER

    def test_unknown_session(self, service):
        with pytest.raises(SessionNotFound):
            service.resolve_viewer("nope", OWNER_A)
