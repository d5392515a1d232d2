"""
Roster Store collaborator.

The draft engine reads teams and players from the Roster Store and writes the
final roster assignment back after a pick commits. League, roster and player
management live elsewhere; this module only defines what the engine needs.
"""
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence

from firebase_admin import firestore

from ..exceptions import DependencyUnavailable
from ..models.draft_model import DraftPick, Player, Team
from ..utils.logger import get_logger

logger = get_logger('roster_service')

# Target roster composition used to derive positional needs
ROSTER_TARGETS = {'QB': 2, 'RB': 4, 'WR': 4, 'TE': 2, 'K': 1, 'DEF': 1}


def compute_roster_needs(roster_positions: Iterable[str],
                         targets: Dict[str, int] = None) -> List[str]:
    """
    Positions still below target, most under-filled first.

    Args:
        roster_positions: Positions of players already on the roster
        targets: Position -> desired count

    Returns:
        Positions in need order; empty when every target is met
    """
    targets = targets or ROSTER_TARGETS
    counts = defaultdict(int)
    for position in roster_positions:
        counts[position] += 1

    order = list(targets.keys())
    missing = [(targets[pos] - counts[pos], pos) for pos in order if counts[pos] < targets[pos]]
    missing.sort(key=lambda item: (-item[0], order.index(item[1])))
    return [pos for _, pos in missing]


class RosterStore(ABC):
    """Interface the draft engine consumes from the roster system."""

    @abstractmethod
    def get_teams(self, session_id: str, team_ids: Sequence[str]) -> List[Team]:
        """Teams for ``team_ids`` in the given order. Unknown ids are omitted."""

    @abstractmethod
    def get_players(self, session_id: str) -> List[Player]:
        """Every draftable player."""

    @abstractmethod
    def get_player(self, session_id: str, player_id: str) -> Optional[Player]:
        ...

    @abstractmethod
    def get_roster_needs(self, session_id: str, team_id: str) -> List[str]:
        """Positions the team still needs, most urgent first."""

    @abstractmethod
    def assign_player(self, session_id: str, pick: DraftPick) -> None:
        """Persist a committed pick onto the team's roster."""

    @abstractmethod
    def release_players(self, session_id: str) -> None:
        """Remove every drafted player from rosters (draft reset)."""


class InMemoryRosterStore(RosterStore):
    """Roster store held in memory, used for development and tests."""

    def __init__(self, teams: Iterable[Team] = (), players: Iterable[Player] = ()):
        self._teams: Dict[str, Team] = {}
        self._players: Dict[str, Player] = {}
        self._needs: Dict[str, List[str]] = {}
        self._rosters: Dict[tuple, List[str]] = defaultdict(list)
        self._lock = threading.Lock()
        for team in teams:
            self.add_team(team)
        for player in players:
            self.add_player(player)

    def add_team(self, team: Team) -> None:
        self._teams[team.id] = team

    def add_player(self, player: Player) -> None:
        self._players[player.id] = player

    def set_needs(self, team_id: str, positions: List[str]) -> None:
        """Override derived needs for a team."""
        self._needs[team_id] = list(positions)

    def get_roster(self, session_id: str, team_id: str) -> List[str]:
        with self._lock:
            return list(self._rosters[(session_id, team_id)])

    def get_teams(self, session_id: str, team_ids: Sequence[str]) -> List[Team]:
        return [self._teams[team_id] for team_id in team_ids if team_id in self._teams]

    def get_players(self, session_id: str) -> List[Player]:
        return list(self._players.values())

    def get_player(self, session_id: str, player_id: str) -> Optional[Player]:
        return self._players.get(player_id)

    def get_roster_needs(self, session_id: str, team_id: str) -> List[str]:
        if team_id in self._needs:
            return list(self._needs[team_id])
        positions = [self._players[pid].position for pid in self.get_roster(session_id, team_id)
                     if pid in self._players]
        return compute_roster_needs(positions)

    def assign_player(self, session_id: str, pick: DraftPick) -> None:
        with self._lock:
            roster = self._rosters[(session_id, pick.team_id)]
            if pick.player_id not in roster:
                roster.append(pick.player_id)

    def release_players(self, session_id: str) -> None:
        with self._lock:
            for key in [k for k in self._rosters if k[0] == session_id]:
                del self._rosters[key]


class FirestoreRosterStore(RosterStore):
    """
    Roster store reading the league documents in Firestore.

    Teams live at leagues/{session_id}/teams/{team_id} with a ``roster``
    array; players live in the top-level ``players`` collection.
    """

    def __init__(self, db):
        self.db = db

    def _teams_ref(self, session_id: str):
        return self.db.collection('leagues').document(session_id).collection('teams')

    def _wrap(self, action: str, error: Exception) -> DependencyUnavailable:
        logger.error(f"Roster store failed to {action}: {error}")
        return DependencyUnavailable('roster_store')

    @staticmethod
    def _to_player(doc_id: str, data: Dict) -> Player:
        return Player(
            id=doc_id,
            name=data.get('full_name') or data.get('name', 'Unknown Player'),
            position=data.get('position', 'UNK'),
            rank=data.get('rank'),
            nfl_team=data.get('nfl_team')
        )

    def get_teams(self, session_id: str, team_ids: Sequence[str]) -> List[Team]:
        try:
            teams = []
            for team_id in team_ids:
                doc = self._teams_ref(session_id).document(team_id).get()
                if not doc.exists:
                    continue
                data = doc.to_dict()
                teams.append(Team(
                    id=doc.id,
                    name=data.get('name', f'Team {doc.id}'),
                    draft_position=data.get('draft_position'),
                    owner_id=data.get('owner_id'),
                    is_test=data.get('is_test', False)
                ))
            return teams
        except Exception as e:
            raise self._wrap('load teams', e) from e

    def get_players(self, session_id: str) -> List[Player]:
        try:
            return [self._to_player(doc.id, doc.to_dict())
                    for doc in self.db.collection('players').stream()]
        except Exception as e:
            raise self._wrap('load players', e) from e

    def get_player(self, session_id: str, player_id: str) -> Optional[Player]:
        try:
            doc = self.db.collection('players').document(player_id).get()
            if doc.exists:
                return self._to_player(doc.id, doc.to_dict())
            return None
        except Exception as e:
            raise self._wrap(f'load player {player_id}', e) from e

    def get_roster_needs(self, session_id: str, team_id: str) -> List[str]:
        try:
            doc = self._teams_ref(session_id).document(team_id).get()
            if not doc.exists:
                return []
            data = doc.to_dict()
            if data.get('roster_needs'):
                return list(data['roster_needs'])
            positions = []
            for player_id in data.get('roster', []):
                player = self.get_player(session_id, player_id)
                if player:
                    positions.append(player.position)
            return compute_roster_needs(positions)
        except DependencyUnavailable:
            raise
        except Exception as e:
            raise self._wrap(f'load needs for team {team_id}', e) from e

    def assign_player(self, session_id: str, pick: DraftPick) -> None:
        try:
            self._teams_ref(session_id).document(pick.team_id).update({
                'roster': firestore.ArrayUnion([pick.player_id]),
                'updated_at': firestore.SERVER_TIMESTAMP
            })
        except Exception as e:
            raise self._wrap(f'assign player {pick.player_id}', e) from e

    def release_players(self, session_id: str) -> None:
        try:
            for doc in self._teams_ref(session_id).stream():
                doc.reference.update({'roster': [], 'updated_at': firestore.SERVER_TIMESTAMP})
        except Exception as e:
            raise self._wrap('release players', e) from e
