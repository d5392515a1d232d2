"""
Append-only audit log of draft actions.

The log backs the rate limiter and lets operators reconstruct who tried what
and why it failed. Writing to it never fails the action being recorded.
"""
import threading
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from .draft_model import utc_now
from ..utils.logger import get_logger

logger = get_logger('audit_log')


class AuditAction(Enum):
    PICK_ATTEMPTED = 'pick_attempted'
    PICK_MADE = 'pick_made'
    PICK_FAILED = 'pick_failed'
    DRAFT_SCHEDULED = 'draft_scheduled'
    DRAFT_STARTED = 'draft_started'
    DRAFT_PAUSED = 'draft_paused'
    DRAFT_RESUMED = 'draft_resumed'
    DRAFT_COMPLETED = 'draft_completed'
    DRAFT_RESET = 'draft_reset'
    TIMER_EXTENDED = 'timer_extended'
    SETTINGS_UPDATED = 'settings_updated'
    ACTION_REJECTED = 'action_rejected'
    QUEUE_ADDED = 'queue_added'
    QUEUE_REMOVED = 'queue_removed'
    QUEUE_REORDERED = 'queue_reordered'
    AUTO_PICK_TRIGGERED = 'auto_pick_triggered'


QUEUE_ACTIONS = (AuditAction.QUEUE_ADDED, AuditAction.QUEUE_REMOVED, AuditAction.QUEUE_REORDERED)
CONTROL_ACTIONS = (
    AuditAction.DRAFT_STARTED,
    AuditAction.DRAFT_PAUSED,
    AuditAction.DRAFT_RESUMED,
    AuditAction.DRAFT_COMPLETED
)


@dataclass(frozen=True)
class AuditLogEntry:
    action_type: AuditAction
    actor_id: str
    session_id: str
    created_at: datetime = field(default_factory=utc_now)
    pick_id: Optional[str] = None
    player_id: Optional[str] = None
    team_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'action_type': self.action_type.value,
            'actor_id': self.actor_id,
            'session_id': self.session_id,
            'created_at': self.created_at,
            'pick_id': self.pick_id,
            'player_id': self.player_id,
            'team_id': self.team_id,
            'metadata': dict(self.metadata)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditLogEntry':
        return cls(
            id=data['id'],
            action_type=AuditAction(data['action_type']),
            actor_id=data['actor_id'],
            session_id=data['session_id'],
            created_at=data['created_at'],
            pick_id=data.get('pick_id'),
            player_id=data.get('player_id'),
            team_id=data.get('team_id'),
            metadata=data.get('metadata') or {}
        )


class AuditLog(ABC):
    """Audit sink. Subclasses implement ``_write`` and ``query``."""

    def append(self, entry: AuditLogEntry) -> bool:
        """
        Record an entry. Never raises.

        Returns:
            True when the entry was stored
        """
        try:
            self._write(entry)
            return True
        except Exception as e:
            logger.error(
                f"Failed to write audit entry {entry.action_type.value} "
                f"for session {entry.session_id}: {e}"
            )
            return False

    def record(self, action_type: AuditAction, actor_id: str, session_id: str,
               now: Optional[datetime] = None, **fields) -> bool:
        """Build and append an entry in one call."""
        entry = AuditLogEntry(
            action_type=action_type,
            actor_id=actor_id,
            session_id=session_id,
            created_at=now or utc_now(),
            pick_id=fields.get('pick_id'),
            player_id=fields.get('player_id'),
            team_id=fields.get('team_id'),
            metadata=fields.get('metadata') or {}
        )
        return self.append(entry)

    @abstractmethod
    def _write(self, entry: AuditLogEntry) -> None:
        ...

    @abstractmethod
    def query(self, actor_id: str, session_id: str, action_types: Iterable[AuditAction],
              since: datetime, limit: Optional[int] = None) -> List[AuditLogEntry]:
        """
        Entries for one actor in one session, newest first.

        Raises:
            DependencyUnavailable: when the backing store cannot be read
        """

    @abstractmethod
    def record_unless_recent(self, entry: AuditLogEntry, action_types: Iterable[AuditAction],
                             since: datetime, max_count: int) -> List[AuditLogEntry]:
        """
        Write ``entry`` only if the entry's actor has fewer than ``max_count``
        matching entries in the session since ``since``. The count and the
        write are one atomic step.

        Returns:
            The matching entries that blocked the write, newest first; empty
            when the entry was written

        Raises:
            DependencyUnavailable: when the backing store cannot be used
        """


class InMemoryAuditLog(AuditLog):
    """Audit log kept in process memory, indexed by (actor, session)."""

    def __init__(self):
        self._entries: Dict[tuple, List[AuditLogEntry]] = defaultdict(list)
        self._lock = threading.Lock()

    def _insert(self, entry: AuditLogEntry) -> None:
        bucket = self._entries[(entry.actor_id, entry.session_id)]
        bucket.append(entry)
        # Keep each bucket ordered by created_at for the newest-first scan
        if len(bucket) > 1 and bucket[-2].created_at > entry.created_at:
            bucket.sort(key=lambda e: e.created_at)

    def _scan(self, bucket: List[AuditLogEntry], wanted: set, since: datetime,
              limit: Optional[int] = None) -> List[AuditLogEntry]:
        results = []
        for entry in reversed(bucket):
            if entry.created_at < since:
                break
            if entry.action_type in wanted:
                results.append(entry)
                if limit is not None and len(results) >= limit:
                    break
        return results

    def _write(self, entry: AuditLogEntry) -> None:
        with self._lock:
            self._insert(entry)

    def query(self, actor_id: str, session_id: str, action_types: Iterable[AuditAction],
              since: datetime, limit: Optional[int] = None) -> List[AuditLogEntry]:
        with self._lock:
            bucket = list(self._entries.get((actor_id, session_id), []))
        return self._scan(bucket, set(action_types), since, limit)

    def record_unless_recent(self, entry: AuditLogEntry, action_types: Iterable[AuditAction],
                             since: datetime, max_count: int) -> List[AuditLogEntry]:
        with self._lock:
            bucket = self._entries.get((entry.actor_id, entry.session_id), [])
            recent = self._scan(bucket, set(action_types), since)
            if len(recent) >= max_count:
                return recent
            self._insert(entry)
            return []

    def entries(self, session_id: Optional[str] = None) -> List[AuditLogEntry]:
        """All entries, oldest first, optionally for one session."""
        with self._lock:
            all_entries = [e for bucket in self._entries.values() for e in bucket]
        if session_id is not None:
            all_entries = [e for e in all_entries if e.session_id == session_id]
        return sorted(all_entries, key=lambda e: e.created_at)
