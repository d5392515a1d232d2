"""
Expiration Sweeper.

Invoked by an external periodic trigger. For a Live session whose current
pick is past its deadline, it chooses a player and commits it as the system
actor through the normal commit pipeline. Running it twice, or concurrently
with a human pick, never commits a pick twice.
"""
from datetime import datetime
from typing import Callable, Dict, Optional

from ..exceptions import DependencyUnavailable, NotCurrentPick, PickAlreadyMade, SessionNotLive
from ..models.draft_model import DraftStatus, Player, committed_player_ids, utc_now
from ..models.draft_store import DraftStore
from ..utils.logger import get_logger
from ..utils.validators import validate_identifier
from .auth_service import SYSTEM_ACTOR
from .auto_pick import BestAvailableStrategy, RankingStrategy, available_players
from .pick_commit import PickCommitEngine
from .roster_service import RosterStore
from .state_machine import find_current_pick

logger = get_logger('expiration_sweeper')

# Outcomes of a race with a human pick or a commissioner action
RACE_ERRORS = (PickAlreadyMade, NotCurrentPick, SessionNotLive)


class ExpirationSweeper:

    def __init__(self, store: DraftStore, roster: RosterStore, engine: PickCommitEngine,
                 strategy: Optional[RankingStrategy] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.roster = roster
        self.engine = engine
        self.strategy = strategy or BestAvailableStrategy()
        self.clock = clock

    def _choose_player(self, session_id: str, team_id: str, picks) -> Optional[Player]:
        drafted = committed_player_ids(picks)
        candidates = available_players(self.roster.get_players(session_id), drafted)
        queue = self.store.get_queue(session_id, team_id)
        try:
            needs = self.roster.get_roster_needs(session_id, team_id)
        except DependencyUnavailable:
            logger.warning(f"No roster needs for team {team_id}; using best available overall")
            needs = []
        return self.strategy.choose(team_id, candidates, queue, needs)

    def sweep_expired_pick(self, session_id: str) -> Dict[str, bool]:
        """
        Auto-pick the current pick of ``session_id`` if its deadline passed.

        Returns:
            {'processed': True} when a pick was committed
        """
        validate_identifier(session_id, 'session_id')

        session = self.store.get_session(session_id)
        if session is None or session.status != DraftStatus.LIVE:
            return {'processed': False}

        picks = self.store.get_picks(session_id)
        current = find_current_pick(session, picks)
        now = self.clock()
        if current is None or current.deadline_at is None or current.deadline_at > now:
            return {'processed': False}

        if not session.settings.auto_pick_enabled:
            logger.debug(f"Pick {current.overall_pick} in draft {session_id} is overdue; auto-pick disabled")
            return {'processed': False}

        player = self._choose_player(session_id, current.team_id, picks)
        if player is None:
            logger.warning(f"No player available to auto-pick for draft {session_id}")
            return {'processed': False}

        try:
            self.engine.commit(
                session_id, current.id, player.id,
                actor=SYSTEM_ACTOR, is_auto_pick=True, overdue_at=now
            )
        except RACE_ERRORS as e:
            logger.debug(f"Sweep of draft {session_id} skipped: {e.message}")
            return {'processed': False}

        return {'processed': True}

    def sweep_all(self) -> Dict[str, int]:
        """Sweep every live session. One failing session does not stop the others."""
        checked = processed = 0
        for session in self.store.list_sessions(DraftStatus.LIVE):
            checked += 1
            try:
                if self.sweep_expired_pick(session.id)['processed']:
                    processed += 1
            except Exception as e:
                logger.error(f"Sweep failed for draft {session.id}: {e}")
        if processed:
            logger.info(f"Sweep processed {processed} of {checked} live drafts")
        return {'checked': checked, 'processed': processed}
