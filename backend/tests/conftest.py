"""Shared fixtures: a controllable clock, in-memory backends and a seeded league."""

import time
from datetime import datetime, timedelta, timezone

import pytest

from ladderdraft.models.audit_model import InMemoryAuditLog
from ladderdraft.models.draft_model import Player, Team
from ladderdraft.models.draft_store import InMemoryDraftStore
from ladderdraft.services.auth_service import StaticIdentityProvider
from ladderdraft.services.draft_service import DraftService
from ladderdraft.services.notification_service import NotificationFeed
from ladderdraft.services.roster_service import InMemoryRosterStore

SESSION_ID = "draft1"
COMMISSIONER = "comm"
TEAM_IDS = ["team_a", "team_b", "team_c", "team_d"]
OWNERS = {team_id: f"owner_{team_id[-1]}" for team_id in TEAM_IDS}
POSITIONS = ["QB", "RB", "WR", "TE"]


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2025, 9, 1, 18, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class SlowAuditLog(InMemoryAuditLog):
    """Widens the gap between reading a rate-limit window and writing the entry."""

    def _scan(self, *args, **kwargs):
        time.sleep(0.05)
        return super()._scan(*args, **kwargs)


class RecordingFeed(NotificationFeed):
    def __init__(self):
        self.events = []

    def _deliver(self, session_id, event, data, team_id):
        self.events.append((session_id, event.value, data, team_id))

    def of(self, event_name):
        return [data for _, name, data, _ in self.events if name == event_name]


def make_players(count=20):
    return [
        Player(id=f"p{i}", name=f"Player {i}", position=POSITIONS[(i - 1) % 4], rank=i, nfl_team="KC")
        for i in range(1, count + 1)
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryDraftStore()


@pytest.fixture
def audit_log():
    return InMemoryAuditLog()


@pytest.fixture
def feed():
    return RecordingFeed()


@pytest.fixture
def roster():
    teams = [Team(id=team_id, name=f"Team {team_id[-1].upper()}", owner_id=OWNERS[team_id])
             for team_id in TEAM_IDS]
    return InMemoryRosterStore(teams=teams, players=make_players())


@pytest.fixture
def identity():
    return StaticIdentityProvider(
        commissioners={SESSION_ID: [COMMISSIONER]},
        team_owners=OWNERS,
    )


@pytest.fixture
def service(store, roster, identity, audit_log, feed, clock):
    return DraftService(store, roster, identity, audit_log, feed, clock=clock)


@pytest.fixture
def scheduled(service):
    return service.schedule_draft(
        SESSION_ID, TEAM_IDS, rounds=2,
        settings={"timer_seconds": 90, "auto_pick_enabled": True},
        actor_id=COMMISSIONER,
    )


@pytest.fixture
def live(service, scheduled, clock):
    clock.advance(1)
    return service.start_draft(SESSION_ID, COMMISSIONER)


def current_pick(store, session_id=SESSION_ID):
    session = store.get_session(session_id)
    return store.get_pick(session_id, session.current_pick_id) if session.current_pick_id else None


def pick_current(service, store, clock, player_id, actor_id=None):
    """Commit ``player_id`` for whichever team is on the clock, as its owner."""
    pick = current_pick(store)
    clock.advance(3)
    return service.commit_pick(SESSION_ID, pick.id, player_id, actor_id or OWNERS[pick.team_id])


@pytest.fixture
def fake_tokens(monkeypatch):
    """Treat every bearer token as the uid it names."""
    from ladderdraft.services.auth_service import auth_service
    monkeypatch.setattr(auth_service, "verify_token", lambda token: {"uid": token})


@pytest.fixture
def app(store, roster, identity, audit_log, feed, clock, fake_tokens):
    from ladderdraft import create_app
    return create_app(
        "testing", store=store, roster=roster, identity=identity,
        audit_log=audit_log, feed=feed, clock=clock,
    )


@pytest.fixture
def client(app):
    return app.test_client()


def auth_headers(user_id):
    return {"Authorization": f"Bearer {user_id}"}
