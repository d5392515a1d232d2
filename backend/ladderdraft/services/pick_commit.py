"""
Pick Commit Engine.

Commits one player to one pick. The guard checks and the write happen in a
single DraftStore.atomic_update, so when several requests race for the same
pick exactly one of them wins and the others see PickAlreadyMade.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from ..exceptions import (
    DependencyUnavailable, DraftError, InvalidPick, NotCurrentPick, PickAlreadyMade,
    PlayerUnavailable, SessionNotFound, SessionNotLive, Unauthorized
)
from ..models.audit_model import AuditAction, AuditLog
from ..models.draft_model import (
    DraftPick, DraftSession, DraftStatus, Player, committed_player_ids, next_open_pick, serialize, utc_now
)
from ..models.draft_store import DraftStore, Mutation
from ..utils.logger import get_logger
from ..utils.validators import validate_identifier
from .auth_service import Actor, IdentityProvider
from .notification_service import DraftEvent, NotificationFeed
from .rate_limiter import RateLimiter
from .roster_service import RosterStore

logger = get_logger('pick_commit')


@dataclass
class CommitResult:
    session: DraftSession
    pick: DraftPick
    next_pick: Optional[DraftPick]
    player: Optional[Player] = None

    def to_dict(self) -> Dict[str, Any]:
        return serialize({
            'pick': self.pick.to_dict(),
            'player': self.player.to_dict() if self.player else None,
            'current_pick': self.next_pick.to_dict() if self.next_pick else None,
            'session': self.session.to_dict()
        })


def apply_commit(session: Optional[DraftSession], picks: List[DraftPick], pick_id: str,
                 player_id: str, actor: Actor, is_auto_pick: bool, now: datetime,
                 overdue_at: Optional[datetime] = None) -> Mutation:
    """
    Guard and apply a commit against one consistent snapshot.

    ``overdue_at`` is set by the expiration sweeper: the pick must still be
    past its deadline at that instant, so a concurrent timer extension wins
    over the auto-pick.
    """
    if session is None:
        raise SessionNotFound()
    if session.status != DraftStatus.LIVE:
        raise SessionNotLive()

    pick = next((p for p in picks if p.id == pick_id), None)
    if pick is None:
        raise InvalidPick('Pick does not belong to this draft')
    if pick.is_committed:
        raise PickAlreadyMade()
    if pick.id != session.current_pick_id:
        raise NotCurrentPick()
    if not actor.controls_team(pick.team_id):
        raise Unauthorized('You can only pick for your own team')
    if player_id in committed_player_ids(picks):
        raise PlayerUnavailable()
    if overdue_at is not None and (pick.deadline_at is None or pick.deadline_at > overdue_at):
        raise NotCurrentPick('Pick is no longer overdue')

    committed = pick.copy(
        player_id=player_id,
        picked_at=now,
        picked_by=actor.actor_id,
        is_auto_pick=is_auto_pick,
        deadline_at=None
    )
    changed = [committed]

    following = next_open_pick([p for p in picks if p.id != pick.id], after=pick.overall_pick)
    if following is not None and session.settings.has_timer:
        following = following.copy(deadline_at=now + timedelta(seconds=session.settings.timer_seconds))
        changed.append(following)

    new_session = session.copy(current_pick_id=following.id if following else None)
    result = CommitResult(session=new_session, pick=committed, next_pick=following)
    return Mutation(session=new_session, picks=changed, result=result)


class PickCommitEngine:
    """Runs the full commit pipeline around ``apply_commit``."""

    def __init__(self, store: DraftStore, roster: RosterStore, identity: IdentityProvider,
                 audit_log: AuditLog, rate_limiter: RateLimiter, feed: NotificationFeed,
                 clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.roster = roster
        self.identity = identity
        self.audit_log = audit_log
        self.rate_limiter = rate_limiter
        self.feed = feed
        self.clock = clock

    def resolve_actor(self, actor_id: str, session_id: str) -> Actor:
        try:
            return self.identity.resolve(actor_id, session_id)
        except DraftError:
            raise
        except Exception as e:
            logger.error(f"Identity provider failed for user {actor_id}: {e}")
            raise DependencyUnavailable('identity_provider') from e

    def commit(self, session_id: str, pick_id: str, player_id: str, actor_id: Optional[str] = None,
               actor: Optional[Actor] = None, is_auto_pick: bool = False,
               overdue_at: Optional[datetime] = None) -> CommitResult:
        """
        Commit ``player_id`` to ``pick_id``.

        Either ``actor_id`` (resolved through the identity provider) or an
        already resolved ``actor`` must be given.

        Raises:
            DraftError: any guard failure; a ``pick_failed`` audit entry is
                written first
        """
        validate_identifier(session_id, 'session_id')
        validate_identifier(pick_id, 'pick_id')
        validate_identifier(player_id, 'player_id')
        if actor is None:
            validate_identifier(actor_id, 'actor_id')

        audit_actor_id = actor.actor_id if actor else actor_id
        try:
            if actor is None:
                actor = self.resolve_actor(actor_id, session_id)
            attempt = {'is_auto_pick': is_auto_pick}
            if actor.is_system:
                self.audit_log.record(
                    AuditAction.PICK_ATTEMPTED, actor.actor_id, session_id, now=self.clock(),
                    pick_id=pick_id, player_id=player_id, metadata=attempt
                )
            else:
                self.rate_limiter.reserve_pick(
                    actor.actor_id, session_id, pick_id=pick_id, player_id=player_id, metadata=attempt
                )

            player = self.roster.get_player(session_id, player_id)
            if player is None:
                raise InvalidPick('Player not found')

            now = self.clock()
            result = self.store.atomic_update(
                session_id,
                lambda session, picks: apply_commit(
                    session, picks, pick_id, player_id, actor, is_auto_pick, now, overdue_at
                )
            )
        except DraftError as e:
            self._record_failure(audit_actor_id, session_id, pick_id, player_id, e)
            raise

        result.player = player
        self._after_commit(session_id, actor, result)
        return result

    def _record_failure(self, actor_id: str, session_id: str, pick_id: str, player_id: str,
                        error: DraftError) -> None:
        metadata = {'error': error.code, 'message': error.message}
        if hasattr(error, 'retry_after_seconds'):
            metadata['retry_after_seconds'] = error.retry_after_seconds
        self.audit_log.record(
            AuditAction.PICK_FAILED, actor_id, session_id, now=self.clock(),
            pick_id=pick_id, player_id=player_id, metadata=metadata
        )
        if error.benign:
            logger.info(f"Pick {pick_id} in draft {session_id} lost a race: {error.message}")
        else:
            logger.warning(f"Pick {pick_id} in draft {session_id} rejected ({error.code}): {error.message}")

    def _after_commit(self, session_id: str, actor: Actor, result: CommitResult) -> None:
        pick = result.pick
        action = AuditAction.AUTO_PICK_TRIGGERED if pick.is_auto_pick else AuditAction.PICK_MADE
        self.audit_log.record(
            action, actor.actor_id, session_id, now=self.clock(),
            pick_id=pick.id, player_id=pick.player_id, team_id=pick.team_id,
            metadata={'round': pick.round, 'overall_pick': pick.overall_pick}
        )

        # The commit is authoritative; a failed roster write is repaired out of band
        try:
            self.roster.assign_player(session_id, pick)
        except Exception as e:
            logger.error(f"Roster write failed for pick {pick.id} in draft {session_id}: {e}")

        self.feed.publish(session_id, DraftEvent.PICK_MADE, self._pick_made_payload(session_id, result))
        logger.info(
            f"Draft {session_id}: pick {pick.overall_pick} (round {pick.round}) "
            f"{pick.team_id} -> {pick.player_id}{' [auto]' if pick.is_auto_pick else ''}"
        )

    def _team_names(self, session_id: str, team_ids: List[str]) -> Dict[str, str]:
        try:
            return {team.id: team.name for team in self.roster.get_teams(session_id, team_ids)}
        except Exception as e:
            logger.warning(f"Could not load team names for draft {session_id}: {e}")
            return {}

    def _pick_made_payload(self, session_id: str, result: CommitResult) -> Dict[str, Any]:
        pick, next_pick, player = result.pick, result.next_pick, result.player
        team_ids = [pick.team_id] + ([next_pick.team_id] if next_pick else [])
        names = self._team_names(session_id, team_ids)

        current = None
        if next_pick is not None:
            current = {
                **next_pick.to_dict(),
                'team_name': names.get(next_pick.team_id, next_pick.team_id)
            }

        return serialize({
            'pick': pick.to_dict(),
            'team': {'id': pick.team_id, 'name': names.get(pick.team_id, pick.team_id)},
            'player': player.to_dict() if player else {'id': pick.player_id},
            'round': pick.round,
            'overall_pick': pick.overall_pick,
            'is_auto_pick': pick.is_auto_pick,
            'current_pick': current,
            'draft_complete': next_pick is None
        })
