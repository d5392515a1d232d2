"""
Draft session lifecycle.

    NotStarted -> Scheduled -> Live <-> Paused -> Completed
    any state except NotStarted -> NotStarted (reset)

Each transition is a pure function of the current session, its picks and the
current time. It returns a Mutation for DraftStore.atomic_update or raises
InvalidStateTransition without touching anything.
"""
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from ..exceptions import InvalidStateTransition, SessionNotFound
from ..models.draft_model import DraftPick, DraftSession, DraftSettings, DraftStatus, next_open_pick
from ..models.draft_store import Mutation
from .pick_sequencer import build_draft_picks

MIN_DRAFT_TEAMS = 2


def _require(session: Optional[DraftSession]) -> DraftSession:
    if session is None:
        raise SessionNotFound()
    return session


def _require_status(session: DraftSession, action: str, *allowed: DraftStatus) -> None:
    if session.status not in allowed:
        raise InvalidStateTransition(
            f'Cannot {action} a draft that is {session.status.value.replace("_", " ")}'
        )


def find_current_pick(session: DraftSession, picks: List[DraftPick]) -> Optional[DraftPick]:
    if not session.current_pick_id:
        return None
    for pick in picks:
        if pick.id == session.current_pick_id:
            return pick
    return None


def seconds_remaining(session: DraftSession, picks: List[DraftPick], now: datetime) -> Optional[float]:
    """Time left on the clock; None when no timed pick is current."""
    if session.status == DraftStatus.PAUSED:
        return session.paused_remaining_seconds
    current = find_current_pick(session, picks)
    if session.status != DraftStatus.LIVE or current is None or current.deadline_at is None:
        return None
    return max(0.0, (current.deadline_at - now).total_seconds())


def schedule(session_id: str, session: Optional[DraftSession], team_ids: Sequence[str],
             settings: DraftSettings, commissioner_id: str, now: datetime) -> Mutation:
    """Create (or re-create after a reset) the session and pre-generate every pick."""
    if session is not None:
        _require_status(session, 'schedule', DraftStatus.NOT_STARTED)
    if len(team_ids) < MIN_DRAFT_TEAMS:
        raise InvalidStateTransition(f'A draft needs at least {MIN_DRAFT_TEAMS} teams')

    picks = build_draft_picks(session_id, list(team_ids), settings.rounds)
    new_session = DraftSession(
        id=session_id,
        status=DraftStatus.SCHEDULED,
        settings=settings,
        commissioner_id=commissioner_id,
        team_ids=list(team_ids),
        scheduled_at=now,
        version=session.version if session else 0
    )
    return Mutation(session=new_session, picks=picks, replace_picks=True, result=new_session)


def start(session: Optional[DraftSession], picks: List[DraftPick], now: datetime) -> Mutation:
    session = _require(session)
    _require_status(session, 'start', DraftStatus.SCHEDULED)

    first = next_open_pick(picks)
    if first is None:
        raise InvalidStateTransition('Draft has no picks to make')

    changed = []
    if session.settings.has_timer:
        first = first.copy(deadline_at=now + timedelta(seconds=session.settings.timer_seconds))
        changed.append(first)

    new_session = session.copy(status=DraftStatus.LIVE, current_pick_id=first.id, started_at=now)
    return Mutation(session=new_session, picks=changed, result=new_session)


def pause(session: Optional[DraftSession], picks: List[DraftPick], now: datetime) -> Mutation:
    session = _require(session)
    _require_status(session, 'pause', DraftStatus.LIVE)

    remaining = seconds_remaining(session, picks, now)
    new_session = session.copy(
        status=DraftStatus.PAUSED,
        paused_at=now,
        paused_remaining_seconds=remaining
    )
    return Mutation(session=new_session, result=new_session)


def resume(session: Optional[DraftSession], picks: List[DraftPick], now: datetime) -> Mutation:
    session = _require(session)
    _require_status(session, 'resume', DraftStatus.PAUSED)

    changed = []
    current = find_current_pick(session, picks)
    if current is not None and session.paused_remaining_seconds is not None:
        current = current.copy(deadline_at=now + timedelta(seconds=session.paused_remaining_seconds))
        changed.append(current)

    new_session = session.copy(status=DraftStatus.LIVE, paused_at=None, paused_remaining_seconds=None)
    return Mutation(session=new_session, picks=changed, result=new_session)


def complete(session: Optional[DraftSession], picks: List[DraftPick], now: datetime) -> Mutation:
    session = _require(session)
    _require_status(session, 'complete', DraftStatus.LIVE)

    remaining = sum(1 for pick in picks if not pick.is_committed)
    if not picks or remaining:
        raise InvalidStateTransition(f'Draft still has {remaining} picks to make')

    new_session = session.copy(status=DraftStatus.COMPLETED, current_pick_id=None, completed_at=now)
    return Mutation(session=new_session, result=new_session)


def reset(session: Optional[DraftSession], picks: List[DraftPick], now: datetime) -> Mutation:
    """Clear every commitment and return to NotStarted. Destructive."""
    session = _require(session)
    _require_status(session, 'reset', DraftStatus.SCHEDULED, DraftStatus.LIVE,
                    DraftStatus.PAUSED, DraftStatus.COMPLETED)

    cleared = [
        pick.copy(player_id=None, picked_at=None, picked_by=None, is_auto_pick=False, deadline_at=None)
        for pick in picks
    ]
    new_session = session.copy(
        status=DraftStatus.NOT_STARTED,
        current_pick_id=None,
        started_at=None,
        paused_at=None,
        paused_remaining_seconds=None,
        completed_at=None
    )
    return Mutation(session=new_session, picks=cleared, result=new_session)


def extend_timer(session: Optional[DraftSession], picks: List[DraftPick], seconds: int,
                 now: datetime) -> Mutation:
    """
    Push the current pick's deadline back by ``seconds``.

    While paused the frozen remaining time grows by the same amount, so the
    extension survives the resume.
    """
    session = _require(session)
    _require_status(session, 'extend the timer of', DraftStatus.LIVE, DraftStatus.PAUSED)

    current = find_current_pick(session, picks)
    if current is None or current.deadline_at is None:
        raise InvalidStateTransition('There is no timed pick on the clock')

    current = current.copy(deadline_at=current.deadline_at + timedelta(seconds=seconds))
    changes = {}
    if session.status == DraftStatus.PAUSED and session.paused_remaining_seconds is not None:
        changes['paused_remaining_seconds'] = session.paused_remaining_seconds + seconds

    new_session = session.copy(**changes)
    return Mutation(session=new_session, picks=[current], result=new_session)


def update_settings(session: Optional[DraftSession], picks: List[DraftPick], now: datetime,
                    timer_seconds: Optional[int] = None,
                    auto_pick_enabled: Optional[bool] = None) -> Mutation:
    """
    Change the timer or auto-pick flag of a draft that has not completed.

    A live pick picks up the new timer immediately: disabling the timer
    clears its deadline, enabling it starts a fresh countdown.
    """
    session = _require(session)
    if session.status == DraftStatus.COMPLETED:
        raise InvalidStateTransition('Cannot change settings of a completed draft')

    settings = DraftSettings.from_dict(session.settings.to_dict())
    if timer_seconds is not None:
        settings.timer_seconds = timer_seconds
    if auto_pick_enabled is not None:
        settings.auto_pick_enabled = auto_pick_enabled

    changed = []
    changes = {'settings': settings}
    current = find_current_pick(session, picks)
    if current is not None and timer_seconds is not None:
        if not settings.has_timer:
            changed.append(current.copy(deadline_at=None))
            if session.status == DraftStatus.PAUSED:
                changes['paused_remaining_seconds'] = None
        elif current.deadline_at is None:
            changed.append(current.copy(deadline_at=now + timedelta(seconds=timer_seconds)))
            if session.status == DraftStatus.PAUSED:
                changes['paused_remaining_seconds'] = float(timer_seconds)

    new_session = session.copy(**changes)
    return Mutation(session=new_session, picks=changed, result=new_session)
