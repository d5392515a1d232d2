"""
Draft service: the public surface of the live draft engine.

Wires the state machine, commit engine, sweeper, rate limiter and audit log
to the collaborators (roster store, identity provider, notification feed).
Routes and socket handlers call only this class.
"""
from contextlib import contextmanager, nullcontext
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..exceptions import (
    DraftError, InvalidArgument, InvalidStateTransition, PlayerUnavailable, SessionNotFound, Unauthorized
)
from ..models.audit_model import AuditAction, AuditLog
from ..models.draft_model import DraftSession, DraftSettings, DraftStatus, committed_player_ids, serialize, utc_now
from ..models.draft_store import DraftStore
from ..utils.logger import get_logger
from ..utils.validators import (
    MAX_QUEUE_LENGTH, validate_identifier, validate_player_ids, validate_rounds,
    validate_team_ids, validate_timer_extension, validate_timer_seconds
)
from . import state_machine
from .auth_service import Actor, IdentityProvider
from .auto_pick import RankingStrategy, available_players, rank_key
from .expiration_sweeper import ExpirationSweeper
from .notification_service import DraftEvent, NotificationFeed
from .pick_commit import CommitResult, PickCommitEngine
from .pick_sequencer import order_teams
from .rate_limiter import RateLimiter
from .roster_service import RosterStore

logger = get_logger('draft_service')


class DraftService:
    """Service for managing draft operations and flow."""

    def __init__(self, store: DraftStore, roster: RosterStore, identity: IdentityProvider,
                 audit_log: AuditLog, feed: NotificationFeed,
                 rate_limiter: Optional[RateLimiter] = None,
                 strategy: Optional[RankingStrategy] = None,
                 clock: Callable[[], datetime] = utc_now,
                 default_settings: Optional[DraftSettings] = None):
        self.store = store
        self.roster = roster
        self.identity = identity
        self.audit_log = audit_log
        self.feed = feed
        self.clock = clock
        self.rate_limiter = rate_limiter or RateLimiter(audit_log, clock=clock)
        self.default_settings = default_settings or DraftSettings()
        self.engine = PickCommitEngine(store, roster, identity, audit_log, self.rate_limiter, feed, clock)
        self.sweeper = ExpirationSweeper(store, roster, self.engine, strategy, clock)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_caller(session_id: str, actor_id: str) -> None:
        validate_identifier(session_id, 'session_id')
        validate_identifier(actor_id, 'actor_id')

    @contextmanager
    def _recording_rejections(self, action: AuditAction, session_id: str, actor_id: str, **fields):
        """Write an ``action_rejected`` audit entry for any DraftError raised inside, then re-raise."""
        try:
            yield
        except DraftError as e:
            metadata = {'action': action.value, 'error': e.code, 'message': e.message}
            if hasattr(e, 'retry_after_seconds'):
                metadata['retry_after_seconds'] = e.retry_after_seconds
            self.audit_log.record(AuditAction.ACTION_REJECTED, actor_id, session_id, now=self.clock(),
                                  metadata=metadata, **fields)
            logger.warning(f"Draft {session_id}: {action.value} by {actor_id} rejected ({e.code}): {e.message}")
            raise

    def _require_commissioner(self, session_id: str, actor_id: str) -> Actor:
        actor = self.engine.resolve_actor(actor_id, session_id)
        if not actor.is_commissioner:
            logger.warning(f"User {actor_id} attempted a commissioner action on draft {session_id}")
            raise Unauthorized('Only the commissioner can manage the draft')
        return actor

    def _require_session(self, session_id: str) -> DraftSession:
        session = self.store.get_session(session_id)
        if session is None:
            raise SessionNotFound()
        return session

    def _current_pick_payload(self, session: DraftSession) -> Optional[Dict[str, Any]]:
        if not session.current_pick_id:
            return None
        pick = self.store.get_pick(session.id, session.current_pick_id)
        if pick is None:
            return None
        data = pick.to_dict()
        try:
            teams = self.roster.get_teams(session.id, [pick.team_id])
            data['team_name'] = teams[0].name if teams else pick.team_id
        except Exception as e:
            logger.warning(f"Could not load team {pick.team_id} for draft {session.id}: {e}")
            data['team_name'] = pick.team_id
        return data

    def _run_transition(self, session_id: str, actor_id: str, action: AuditAction,
                        event: DraftEvent, transition: Callable, rate_limited: bool = False,
                        metadata: Optional[Dict[str, Any]] = None) -> DraftSession:
        actor = self._require_commissioner(session_id, actor_id)

        guard = self.rate_limiter.serialized(actor.actor_id, session_id) if rate_limited else nullcontext()
        with guard:
            if rate_limited:
                self.rate_limiter.check_control(actor.actor_id, session_id)

            now = self.clock()
            session = self.store.atomic_update(session_id, lambda s, picks: transition(s, picks, now))
            self.audit_log.record(action, actor.actor_id, session_id, now=now, metadata=metadata)

        self.feed.publish(session_id, event, serialize({
            'session': session.to_dict(),
            'current_pick': self._current_pick_payload(session),
            **(metadata or {})
        }))
        logger.info(f"Draft {session_id}: {action.value} by {actor.actor_id}")
        return session

    def _transition(self, session_id: str, actor_id: str, action: AuditAction, event: DraftEvent,
                    transition: Callable, rate_limited: bool = False) -> DraftSession:
        self._validate_caller(session_id, actor_id)
        with self._recording_rejections(action, session_id, actor_id):
            return self._run_transition(session_id, actor_id, action, event, transition, rate_limited)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def schedule_draft(self, session_id: str, team_ids: List[str], rounds: Optional[int] = None,
                       settings: Optional[Dict[str, Any]] = None, actor_id: str = None) -> DraftSession:
        """
        Create the draft and pre-generate every pick in snake order.

        Args:
            session_id: Draft (league-season) identifier
            team_ids: Teams taking part; draft_position on the team overrides list order
            rounds: Number of rounds (1..20)
            settings: timer_seconds, auto_pick_enabled, include_test_teams
            actor_id: Commissioner scheduling the draft
        """
        self._validate_caller(session_id, actor_id)
        with self._recording_rejections(AuditAction.DRAFT_SCHEDULED, session_id, actor_id):
            actor = self._require_commissioner(session_id, actor_id)
            team_ids = validate_team_ids(team_ids)
            draft_settings = self._build_settings(settings or {}, rounds)

            teams = self.roster.get_teams(session_id, team_ids)
            missing = set(team_ids) - {team.id for team in teams}
            if missing:
                raise InvalidArgument(f'Unknown teams: {", ".join(sorted(missing))}')
            if not draft_settings.include_test_teams:
                teams = [team for team in teams if not team.is_test]
            ordered_ids = [team.id for team in order_teams(teams)]

            now = self.clock()
            session = self.store.atomic_update(
                session_id,
                lambda s, picks: state_machine.schedule(session_id, s, ordered_ids, draft_settings,
                                                        actor.actor_id, now)
            )

        self.audit_log.record(AuditAction.DRAFT_SCHEDULED, actor.actor_id, session_id, now=now,
                              metadata={'teams': len(ordered_ids), 'rounds': draft_settings.rounds})
        self.feed.publish(session_id, DraftEvent.DRAFT_SCHEDULED, serialize({'session': session.to_dict()}))
        logger.info(f"Draft {session_id} scheduled: {len(ordered_ids)} teams, {draft_settings.rounds} rounds")
        return session

    def _build_settings(self, settings: Dict[str, Any], rounds: Optional[int]) -> DraftSettings:
        defaults = self.default_settings
        auto_pick = settings.get('auto_pick_enabled', defaults.auto_pick_enabled)
        include_test = settings.get('include_test_teams', defaults.include_test_teams)
        if not isinstance(auto_pick, bool) or not isinstance(include_test, bool):
            raise InvalidArgument('auto_pick_enabled and include_test_teams must be true or false')
        return DraftSettings(
            timer_seconds=validate_timer_seconds(settings.get('timer_seconds', defaults.timer_seconds)),
            auto_pick_enabled=auto_pick,
            rounds=validate_rounds(rounds if rounds is not None else settings.get('rounds', defaults.rounds)),
            include_test_teams=include_test
        )

    def start_draft(self, session_id: str, actor_id: str) -> DraftSession:
        return self._transition(session_id, actor_id, AuditAction.DRAFT_STARTED,
                                DraftEvent.DRAFT_STARTED, state_machine.start, rate_limited=True)

    def pause_draft(self, session_id: str, actor_id: str) -> DraftSession:
        return self._transition(session_id, actor_id, AuditAction.DRAFT_PAUSED,
                                DraftEvent.DRAFT_PAUSED, state_machine.pause, rate_limited=True)

    def resume_draft(self, session_id: str, actor_id: str) -> DraftSession:
        return self._transition(session_id, actor_id, AuditAction.DRAFT_RESUMED,
                                DraftEvent.DRAFT_RESUMED, state_machine.resume, rate_limited=True)

    def complete_draft(self, session_id: str, actor_id: str) -> DraftSession:
        return self._transition(session_id, actor_id, AuditAction.DRAFT_COMPLETED,
                                DraftEvent.DRAFT_COMPLETED, state_machine.complete, rate_limited=True)

    def reset_draft(self, session_id: str, actor_id: str) -> DraftSession:
        """Clear every pick and return the draft to NotStarted."""
        session = self._transition(session_id, actor_id, AuditAction.DRAFT_RESET,
                                   DraftEvent.DRAFT_RESET, state_machine.reset)
        try:
            self.roster.release_players(session_id)
        except Exception as e:
            logger.error(f"Failed to release drafted players for draft {session_id}: {e}")
        return session

    def extend_timer(self, session_id: str, actor_id: str, additional_seconds: int) -> DraftSession:
        self._validate_caller(session_id, actor_id)
        with self._recording_rejections(AuditAction.TIMER_EXTENDED, session_id, actor_id):
            seconds = validate_timer_extension(additional_seconds)
            return self._run_transition(
                session_id, actor_id, AuditAction.TIMER_EXTENDED, DraftEvent.TIMER_EXTENDED,
                lambda s, picks, now: state_machine.extend_timer(s, picks, seconds, now),
                metadata={'additional_seconds': seconds}
            )

    def update_settings(self, session_id: str, actor_id: str, timer_seconds: Optional[int] = None,
                        auto_pick_enabled: Optional[bool] = None) -> DraftSession:
        """Change the pick timer or the auto-pick flag; a running clock is restarted or cleared."""
        self._validate_caller(session_id, actor_id)
        with self._recording_rejections(AuditAction.SETTINGS_UPDATED, session_id, actor_id):
            changes = {}
            if timer_seconds is not None:
                timer_seconds = changes['timer_seconds'] = validate_timer_seconds(timer_seconds)
            if auto_pick_enabled is not None:
                if not isinstance(auto_pick_enabled, bool):
                    raise InvalidArgument('auto_pick_enabled must be true or false')
                changes['auto_pick_enabled'] = auto_pick_enabled

            return self._run_transition(
                session_id, actor_id, AuditAction.SETTINGS_UPDATED, DraftEvent.SETTINGS_UPDATED,
                lambda s, picks, now: state_machine.update_settings(s, picks, now, timer_seconds,
                                                                    auto_pick_enabled),
                metadata={'changes': changes}
            )

    # ------------------------------------------------------------------
    # Picks
    # ------------------------------------------------------------------

    def commit_pick(self, session_id: str, pick_id: str, player_id: str, actor_id: str) -> CommitResult:
        """Commit a human pick. Auto-picks only come from the sweeper."""
        return self.engine.commit(session_id, pick_id, player_id, actor_id=actor_id, is_auto_pick=False)

    def sweep_expired_pick(self, session_id: str) -> Dict[str, bool]:
        return self.sweeper.sweep_expired_pick(session_id)

    def sweep_all(self) -> Dict[str, int]:
        return self.sweeper.sweep_all()

    # ------------------------------------------------------------------
    # Draft queue
    # ------------------------------------------------------------------

    def _queue_context(self, session_id: str, team_id: str, actor_id: str) -> tuple:
        validate_identifier(team_id, 'team_id')
        validate_identifier(actor_id, 'actor_id')
        validate_identifier(session_id, 'session_id')
        session = self._require_session(session_id)
        if team_id not in session.team_ids:
            raise InvalidArgument('Team is not part of this draft')
        actor = self.engine.resolve_actor(actor_id, session_id)
        if not actor.controls_team(team_id):
            raise Unauthorized("You can only manage your own team's queue")
        return session, actor

    def _change_queue(self, session_id: str, team_id: str, actor_id: str, action: AuditAction,
                      updater: Callable[[List[str]], List[str]], player_id: Optional[str] = None) -> List[str]:
        session, actor = self._queue_context(session_id, team_id, actor_id)
        if session.status == DraftStatus.COMPLETED:
            raise InvalidStateTransition('Draft is already completed')

        with self.rate_limiter.serialized(actor.actor_id, session_id):
            self.rate_limiter.check_queue(actor.actor_id, session_id)
            queue = self.store.update_queue(session_id, team_id, updater)
            self.audit_log.record(action, actor.actor_id, session_id, now=self.clock(),
                                  team_id=team_id, player_id=player_id, metadata={'queue_length': len(queue)})

        self.feed.publish(session_id, DraftEvent.QUEUE_UPDATED,
                          {'team_id': team_id, 'queue': queue}, team_id=team_id)
        return queue

    def add_to_queue(self, session_id: str, team_id: str, player_id: str, actor_id: str,
                     position: Optional[int] = None) -> List[str]:
        """Add a player to a team's queue, at the end or at ``position``."""
        self._validate_caller(session_id, actor_id)
        validate_identifier(team_id, 'team_id')
        validate_identifier(player_id, 'player_id')

        with self._recording_rejections(AuditAction.QUEUE_ADDED, session_id, actor_id,
                                        team_id=team_id, player_id=player_id):
            if position is not None and (isinstance(position, bool) or not isinstance(position, int)
                                         or position < 0):
                raise InvalidArgument('position must be a non-negative whole number')
            if self.roster.get_player(session_id, player_id) is None:
                raise InvalidArgument('Player not found')
            if player_id in committed_player_ids(self.store.get_picks(session_id)):
                raise PlayerUnavailable()

            def updater(queue):
                if player_id in queue:
                    raise InvalidArgument('Player is already in the queue')
                if len(queue) >= MAX_QUEUE_LENGTH:
                    raise InvalidArgument(f'Queue cannot hold more than {MAX_QUEUE_LENGTH} players')
                index = len(queue) if position is None else min(position, len(queue))
                return queue[:index] + [player_id] + queue[index:]

            return self._change_queue(session_id, team_id, actor_id, AuditAction.QUEUE_ADDED, updater, player_id)

    def remove_from_queue(self, session_id: str, team_id: str, player_id: str, actor_id: str) -> List[str]:
        self._validate_caller(session_id, actor_id)
        validate_identifier(team_id, 'team_id')
        validate_identifier(player_id, 'player_id')

        def updater(queue):
            if player_id not in queue:
                raise InvalidArgument('Player is not in the queue')
            return [pid for pid in queue if pid != player_id]

        with self._recording_rejections(AuditAction.QUEUE_REMOVED, session_id, actor_id,
                                        team_id=team_id, player_id=player_id):
            return self._change_queue(session_id, team_id, actor_id, AuditAction.QUEUE_REMOVED, updater, player_id)

    def reorder_queue(self, session_id: str, team_id: str, player_ids: List[str], actor_id: str) -> List[str]:
        """Replace the queue order. ``player_ids`` must hold exactly the queued players."""
        self._validate_caller(session_id, actor_id)
        validate_identifier(team_id, 'team_id')

        with self._recording_rejections(AuditAction.QUEUE_REORDERED, session_id, actor_id, team_id=team_id):
            player_ids = validate_player_ids(player_ids)

            def updater(queue):
                if set(queue) != set(player_ids):
                    raise InvalidArgument('Reordered queue must contain exactly the queued players')
                return player_ids

            return self._change_queue(session_id, team_id, actor_id, AuditAction.QUEUE_REORDERED, updater)

    def get_queue(self, session_id: str, team_id: str, actor_id: str) -> List[Dict[str, Any]]:
        """The team's queue with player details; drafted players are flagged unavailable."""
        self._queue_context(session_id, team_id, actor_id)
        drafted = committed_player_ids(self.store.get_picks(session_id))
        entries = []
        for player_id in self.store.get_queue(session_id, team_id):
            player = self.roster.get_player(session_id, player_id)
            entry = player.to_dict() if player else {'id': player_id}
            entry['available'] = player_id not in drafted
            entries.append(entry)
        return entries

    # ------------------------------------------------------------------
    # Read views
    # ------------------------------------------------------------------

    def resolve_viewer(self, session_id: str, actor_id: str) -> Actor:
        """Resolve a caller who wants to watch the draft; guests are refused."""
        self._validate_caller(session_id, actor_id)
        session = self._require_session(session_id)
        actor = self.engine.resolve_actor(actor_id, session_id)
        if not actor.participates_in(session.team_ids):
            logger.warning(f"User {actor_id} has no role in draft {session_id}")
            raise Unauthorized('You are not part of this draft')
        return actor

    def get_draft_board(self, session_id: str) -> Dict[str, Any]:
        """Session, every pick with team names, the clock and progress."""
        validate_identifier(session_id, 'session_id')
        session = self._require_session(session_id)
        picks = self.store.get_picks(session_id)

        try:
            team_names = {t.id: t.name for t in self.roster.get_teams(session_id, session.team_ids)}
        except DraftError as e:
            logger.warning(f"Draft board for {session_id} rendered without team names: {e}")
            team_names = {}

        board = []
        for pick in picks:
            entry = pick.to_dict()
            entry['team_name'] = team_names.get(pick.team_id, pick.team_id)
            board.append(entry)

        current = state_machine.find_current_pick(session, picks)
        made = sum(1 for pick in picks if pick.is_committed)
        return serialize({
            'session': session.to_dict(),
            'picks': board,
            'current_pick': current.to_dict() if current else None,
            'seconds_remaining': state_machine.seconds_remaining(session, picks, self.clock()),
            'progress': {'made': made, 'total': len(picks)}
        })

    def get_available_players(self, session_id: str, position: Optional[str] = None,
                              limit: int = 100) -> List[Dict[str, Any]]:
        """Undrafted players, best rank first."""
        validate_identifier(session_id, 'session_id')
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidArgument('limit must be a positive whole number')

        drafted = committed_player_ids(self.store.get_picks(session_id))
        players = available_players(self.roster.get_players(session_id), drafted)
        if position:
            players = [p for p in players if p.position == position.upper()]
        players.sort(key=rank_key)
        return [player.to_dict() for player in players[:limit]]
