"""
Per-actor, per-session rate limiting over the audit log.

Windows are rolling and measured against audit entries, so the limits hold
across processes that share one audit log.
"""
import math
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from ..exceptions import RateLimited
from ..models.audit_model import AuditAction, AuditLog, AuditLogEntry, CONTROL_ACTIONS, QUEUE_ACTIONS
from ..models.draft_model import utc_now
from ..utils.logger import get_logger

logger = get_logger('rate_limiter')


class RateLimiter:
    """
    Checks pick, queue and control actions against recent audit entries.

    A failed audit query fails open: the action is allowed and a warning is
    logged.
    """

    def __init__(self, audit_log: AuditLog, clock: Callable[[], datetime] = utc_now,
                 pick_seconds: int = 2, queue_window_seconds: int = 60, queue_max: int = 10,
                 control_seconds: int = 5):
        self.audit_log = audit_log
        self.clock = clock
        self.pick_seconds = pick_seconds
        self.queue_window_seconds = queue_window_seconds
        self.queue_max = queue_max
        self.control_seconds = control_seconds
        self._locks: Dict[tuple, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    @classmethod
    def from_config(cls, audit_log: AuditLog, config, clock: Callable[[], datetime] = utc_now):
        return cls(
            audit_log,
            clock=clock,
            pick_seconds=config.get('PICK_RATE_LIMIT_SECONDS', 2),
            queue_window_seconds=config.get('QUEUE_RATE_LIMIT_WINDOW_SECONDS', 60),
            queue_max=config.get('QUEUE_RATE_LIMIT_MAX', 10),
            control_seconds=config.get('CONTROL_RATE_LIMIT_SECONDS', 5)
        )

    def serialized(self, actor_id: str, session_id: str) -> threading.RLock:
        """
        Lock for one actor in one session.

        Hold it from the window check until the action's audit entry is
        written, so concurrent requests from the same actor cannot all pass
        the check before any of them is recorded.
        """
        key = (actor_id, session_id)
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    def _recent(self, actor_id: str, session_id: str, actions, window_seconds: int,
                limit: Optional[int] = None) -> Optional[List[AuditLogEntry]]:
        since = self.clock() - timedelta(seconds=window_seconds)
        try:
            return self.audit_log.query(actor_id, session_id, actions, since, limit=limit)
        except Exception as e:
            logger.warning(f"Rate limit check skipped for actor {actor_id} in draft {session_id}: {e}")
            return None

    def _retry_after(self, oldest: datetime, window_seconds: int) -> int:
        elapsed = (self.clock() - oldest).total_seconds()
        return max(1, math.ceil(window_seconds - elapsed))

    def reserve_pick(self, actor_id: str, session_id: str, pick_id: Optional[str] = None,
                     player_id: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> None:
        """
        Record a pick attempt, or raise RateLimited when the actor already has
        one inside the pick window.

        The audit backend counts and writes in one atomic step, which holds
        across processes sharing the log.
        """
        now = self.clock()
        entry = AuditLogEntry(
            action_type=AuditAction.PICK_ATTEMPTED,
            actor_id=actor_id,
            session_id=session_id,
            created_at=now,
            pick_id=pick_id,
            player_id=player_id,
            metadata=metadata or {}
        )
        since = now - timedelta(seconds=self.pick_seconds)
        try:
            blocking = self.audit_log.record_unless_recent(entry, (AuditAction.PICK_ATTEMPTED,), since, 1)
        except Exception as e:
            logger.warning(f"Rate limit check skipped for actor {actor_id} in draft {session_id}: {e}")
            self.audit_log.append(entry)
            return
        if blocking:
            newest = max(e.created_at for e in blocking)
            raise RateLimited(self._retry_after(newest, self.pick_seconds))

    def check_queue(self, actor_id: str, session_id: str) -> None:
        """At most ``queue_max`` queue changes per actor per session in the queue window."""
        entries = self._recent(actor_id, session_id, QUEUE_ACTIONS, self.queue_window_seconds)
        if entries and len(entries) >= self.queue_max:
            oldest = min(entry.created_at for entry in entries)
            raise RateLimited(self._retry_after(oldest, self.queue_window_seconds))

    def check_control(self, actor_id: str, session_id: str) -> None:
        """At most one start/pause/resume/complete per actor per session in the control window."""
        entries = self._recent(actor_id, session_id, CONTROL_ACTIONS, self.control_seconds, limit=1)
        if entries:
            raise RateLimited(self._retry_after(entries[0].created_at, self.control_seconds))
