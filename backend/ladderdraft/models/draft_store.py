"""
Draft storage abstraction.

Every state change goes through ``atomic_update``: the store loads the session
and its picks, hands them to a pure mutator, and writes the mutator's output
in the same atomic step. A mutator that raises leaves the store untouched.
Firestore may retry a transaction, so mutators must not have side effects.
"""
import copy
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .draft_model import DraftPick, DraftSession, DraftStatus, sort_picks
from ..utils.logger import get_logger

logger = get_logger('draft_store')


@dataclass
class Mutation:
    """Output of a mutator: the new session, the picks it changed, and a return value."""
    session: DraftSession
    picks: List[DraftPick] = field(default_factory=list)
    replace_picks: bool = False
    result: Any = None


Mutator = Callable[[Optional[DraftSession], List[DraftPick]], Mutation]


class DraftStore(ABC):
    """Persistence for draft sessions, picks and per-team queues."""

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[DraftSession]:
        ...

    @abstractmethod
    def list_sessions(self, status: Optional[DraftStatus] = None) -> List[DraftSession]:
        ...

    @abstractmethod
    def get_picks(self, session_id: str) -> List[DraftPick]:
        """All picks of a session ordered by overall_pick."""

    def get_pick(self, session_id: str, pick_id: str) -> Optional[DraftPick]:
        for pick in self.get_picks(session_id):
            if pick.id == pick_id:
                return pick
        return None

    @abstractmethod
    def atomic_update(self, session_id: str, mutator: Mutator) -> Any:
        """Run ``mutator`` against a consistent snapshot and persist its output atomically."""

    @abstractmethod
    def get_queue(self, session_id: str, team_id: str) -> List[str]:
        ...

    @abstractmethod
    def update_queue(self, session_id: str, team_id: str,
                     updater: Callable[[List[str]], List[str]]) -> List[str]:
        """Atomically replace a team's queue with ``updater(current_queue)``."""


class InMemoryDraftStore(DraftStore):
    """
    Process-local store.

    Each session has its own lock held across the whole read-check-write of
    ``atomic_update``, which makes concurrent commits for one session strictly
    serial while different sessions proceed in parallel.
    """

    def __init__(self):
        self._sessions: Dict[str, DraftSession] = {}
        self._picks: Dict[str, Dict[str, DraftPick]] = {}
        self._queues: Dict[str, Dict[str, List[str]]] = defaultdict(dict)
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, session_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[session_id] = lock
            return lock

    def get_session(self, session_id: str) -> Optional[DraftSession]:
        with self._lock_for(session_id):
            session = self._sessions.get(session_id)
            return copy.deepcopy(session)

    def list_sessions(self, status: Optional[DraftStatus] = None) -> List[DraftSession]:
        from ..utils.validators import validate_draft_status

        if status is not None:
            status = validate_draft_status(status)
        with self._registry_lock:
            session_ids = list(self._sessions.keys())
        sessions = [self.get_session(session_id) for session_id in session_ids]
        return [s for s in sessions if s is not None and (status is None or s.status == status)]

    def get_picks(self, session_id: str) -> List[DraftPick]:
        with self._lock_for(session_id):
            picks = self._picks.get(session_id, {})
            return sort_picks([copy.deepcopy(p) for p in picks.values()])

    def atomic_update(self, session_id: str, mutator: Mutator) -> Any:
        with self._lock_for(session_id):
            current = copy.deepcopy(self._sessions.get(session_id))
            picks = sort_picks([copy.deepcopy(p) for p in self._picks.get(session_id, {}).values()])

            mutation = mutator(current, picks)

            mutation.session.version = (current.version if current else 0) + 1
            new_session = copy.deepcopy(mutation.session)

            if mutation.replace_picks:
                self._picks[session_id] = {p.id: copy.deepcopy(p) for p in mutation.picks}
            else:
                stored = self._picks.setdefault(session_id, {})
                for pick in mutation.picks:
                    stored[pick.id] = copy.deepcopy(pick)

            self._sessions[session_id] = new_session
            logger.debug(f"Session {session_id} written at version {new_session.version}")
            return mutation.result

    def get_queue(self, session_id: str, team_id: str) -> List[str]:
        with self._lock_for(session_id):
            return list(self._queues[session_id].get(team_id, []))

    def update_queue(self, session_id: str, team_id: str,
                     updater: Callable[[List[str]], List[str]]) -> List[str]:
        with self._lock_for(session_id):
            current = list(self._queues[session_id].get(team_id, []))
            updated = list(updater(current))
            self._queues[session_id][team_id] = updated
            return list(updated)
