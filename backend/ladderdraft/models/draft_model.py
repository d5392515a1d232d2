"""
Draft entities: sessions, picks, settings and queues.

Entities are plain dataclasses that serialize to Firestore-friendly dicts.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utc_now() -> datetime:
    """Timezone-aware current time; Firestore returns aware datetimes."""
    return datetime.now(timezone.utc)


class DraftStatus(Enum):
    NOT_STARTED = 'not_started'
    SCHEDULED = 'scheduled'
    LIVE = 'live'
    PAUSED = 'paused'
    COMPLETED = 'completed'


@dataclass
class DraftSettings:
    """Per-session draft configuration."""
    timer_seconds: int = 90
    auto_pick_enabled: bool = True
    rounds: int = 14
    include_test_teams: bool = False

    @property
    def has_timer(self) -> bool:
        return bool(self.timer_seconds)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timer_seconds': self.timer_seconds,
            'auto_pick_enabled': self.auto_pick_enabled,
            'rounds': self.rounds,
            'include_test_teams': self.include_test_teams
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'DraftSettings':
        data = data or {}
        defaults = cls()
        return cls(
            timer_seconds=data.get('timer_seconds', defaults.timer_seconds),
            auto_pick_enabled=data.get('auto_pick_enabled', defaults.auto_pick_enabled),
            rounds=data.get('rounds', defaults.rounds),
            include_test_teams=data.get('include_test_teams', defaults.include_test_teams)
        )


@dataclass
class DraftSession:
    """One draft per league-season."""
    id: str
    status: DraftStatus = DraftStatus.NOT_STARTED
    settings: DraftSettings = field(default_factory=DraftSettings)
    commissioner_id: Optional[str] = None
    team_ids: List[str] = field(default_factory=list)
    current_pick_id: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    paused_remaining_seconds: Optional[float] = None
    completed_at: Optional[datetime] = None
    version: int = 0

    @property
    def is_active(self) -> bool:
        return self.status in (DraftStatus.LIVE, DraftStatus.PAUSED)

    def copy(self, **changes) -> 'DraftSession':
        changes.setdefault('team_ids', list(self.team_ids))
        changes.setdefault('settings', replace(self.settings))
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'status': self.status.value,
            'settings': self.settings.to_dict(),
            'commissioner_id': self.commissioner_id,
            'team_ids': list(self.team_ids),
            'current_pick_id': self.current_pick_id,
            'scheduled_at': self.scheduled_at,
            'started_at': self.started_at,
            'paused_at': self.paused_at,
            'paused_remaining_seconds': self.paused_remaining_seconds,
            'completed_at': self.completed_at,
            'version': self.version
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DraftSession':
        # validators imports this module
        from ..utils.validators import validate_draft_status

        return cls(
            id=data['id'],
            status=validate_draft_status(data.get('status', DraftStatus.NOT_STARTED.value)),
            settings=DraftSettings.from_dict(data.get('settings')),
            commissioner_id=data.get('commissioner_id'),
            team_ids=list(data.get('team_ids') or []),
            current_pick_id=data.get('current_pick_id'),
            scheduled_at=data.get('scheduled_at'),
            started_at=data.get('started_at'),
            paused_at=data.get('paused_at'),
            paused_remaining_seconds=data.get('paused_remaining_seconds'),
            completed_at=data.get('completed_at'),
            version=data.get('version', 0)
        )


@dataclass
class DraftPick:
    """One (team, round) slot, pre-generated at scheduling time."""
    id: str
    session_id: str
    round: int
    overall_pick: int
    team_id: str
    player_id: Optional[str] = None
    picked_at: Optional[datetime] = None
    picked_by: Optional[str] = None
    is_auto_pick: bool = False
    deadline_at: Optional[datetime] = None

    @property
    def is_committed(self) -> bool:
        return self.player_id is not None

    def copy(self, **changes) -> 'DraftPick':
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'session_id': self.session_id,
            'round': self.round,
            'overall_pick': self.overall_pick,
            'team_id': self.team_id,
            'player_id': self.player_id,
            'picked_at': self.picked_at,
            'picked_by': self.picked_by,
            'is_auto_pick': self.is_auto_pick,
            'deadline_at': self.deadline_at
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DraftPick':
        return cls(
            id=data['id'],
            session_id=data['session_id'],
            round=data['round'],
            overall_pick=data['overall_pick'],
            team_id=data['team_id'],
            player_id=data.get('player_id'),
            picked_at=data.get('picked_at'),
            picked_by=data.get('picked_by'),
            is_auto_pick=data.get('is_auto_pick', False),
            deadline_at=data.get('deadline_at')
        )


@dataclass
class Team:
    """Read-only view of a Roster Store team."""
    id: str
    name: str
    draft_position: Optional[int] = None
    owner_id: Optional[str] = None
    is_test: bool = False


@dataclass
class Player:
    """Read-only view of a Roster Store player. Lower rank is better."""
    id: str
    name: str
    position: str
    rank: Optional[int] = None
    nfl_team: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'position': self.position,
            'rank': self.rank,
            'nfl_team': self.nfl_team
        }


def sort_picks(picks: List[DraftPick]) -> List[DraftPick]:
    return sorted(picks, key=lambda p: p.overall_pick)


def committed_player_ids(picks: List[DraftPick]) -> set:
    return {p.player_id for p in picks if p.player_id is not None}


def next_open_pick(picks: List[DraftPick], after: int = 0) -> Optional[DraftPick]:
    """Lowest uncommitted pick with overall_pick greater than ``after``."""
    for pick in sort_picks(picks):
        if pick.overall_pick > after and not pick.is_committed:
            return pick
    return None


def serialize(value: Any) -> Any:
    """Convert entity dicts to JSON-safe values (datetimes become ISO-8601 strings)."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize(item) for item in value]
    return value
