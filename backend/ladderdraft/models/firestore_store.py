"""
Cloud Firestore backends for draft state and the audit log.

Layout:
    draft_sessions/{session_id}                  session document
    draft_sessions/{session_id}/picks/{pick_id}  one document per pick
    draft_sessions/{session_id}/queues/{team_id} {'player_ids': [...]}
    draft_audit_log/{entry_id}                   audit entries

All session mutations run inside a Firestore transaction: the session and its
picks are read with the transaction, so a concurrent write to any of them
aborts and retries the whole read-check-write.
"""
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional

from google.cloud import firestore

from .audit_model import AuditAction, AuditLog, AuditLogEntry
from .draft_model import DraftPick, DraftSession, DraftStatus, sort_picks
from .draft_store import DraftStore, Mutator
from ..exceptions import DependencyUnavailable
from ..utils.logger import get_logger

logger = get_logger('firestore_store')


class FirestoreDraftStore(DraftStore):
    """Draft store backed by Cloud Firestore transactions."""

    SESSIONS = 'draft_sessions'

    def __init__(self, db: firestore.Client):
        self.db = db

    def _session_ref(self, session_id: str):
        return self.db.collection(self.SESSIONS).document(session_id)

    def _picks_ref(self, session_id: str):
        return self._session_ref(session_id).collection('picks')

    def _queue_ref(self, session_id: str, team_id: str):
        return self._session_ref(session_id).collection('queues').document(team_id)

    def get_session(self, session_id: str) -> Optional[DraftSession]:
        doc = self._session_ref(session_id).get()
        if doc.exists:
            return DraftSession.from_dict(doc.to_dict())
        return None

    def list_sessions(self, status: Optional[DraftStatus] = None) -> List[DraftSession]:
        from ..utils.validators import validate_draft_status

        query = self.db.collection(self.SESSIONS)
        if status is not None:
            query = query.where('status', '==', validate_draft_status(status).value)
        return [DraftSession.from_dict(doc.to_dict()) for doc in query.stream()]

    def get_picks(self, session_id: str) -> List[DraftPick]:
        docs = self._picks_ref(session_id).order_by('overall_pick').stream()
        return [DraftPick.from_dict(doc.to_dict()) for doc in docs]

    def get_pick(self, session_id: str, pick_id: str) -> Optional[DraftPick]:
        doc = self._picks_ref(session_id).document(pick_id).get()
        if doc.exists:
            return DraftPick.from_dict(doc.to_dict())
        return None

    def atomic_update(self, session_id: str, mutator: Mutator) -> Any:
        session_ref = self._session_ref(session_id)
        picks_ref = self._picks_ref(session_id)

        @firestore.transactional
        def apply(transaction):
            snapshot = session_ref.get(transaction=transaction)
            current = DraftSession.from_dict(snapshot.to_dict()) if snapshot.exists else None
            pick_docs = list(picks_ref.stream(transaction=transaction))
            picks = sort_picks([DraftPick.from_dict(doc.to_dict()) for doc in pick_docs])

            mutation = mutator(current, picks)

            mutation.session.version = (current.version if current else 0) + 1
            new_session = mutation.session

            if mutation.replace_picks:
                keep = {pick.id for pick in mutation.picks}
                for doc in pick_docs:
                    if doc.id not in keep:
                        transaction.delete(doc.reference)

            for pick in mutation.picks:
                transaction.set(picks_ref.document(pick.id), pick.to_dict())

            transaction.set(session_ref, new_session.to_dict())
            return mutation.result

        return apply(self.db.transaction())

    def get_queue(self, session_id: str, team_id: str) -> List[str]:
        doc = self._queue_ref(session_id, team_id).get()
        if doc.exists:
            return list(doc.to_dict().get('player_ids', []))
        return []

    def update_queue(self, session_id: str, team_id: str,
                     updater: Callable[[List[str]], List[str]]) -> List[str]:
        queue_ref = self._queue_ref(session_id, team_id)

        @firestore.transactional
        def apply(transaction):
            snapshot = queue_ref.get(transaction=transaction)
            current = list(snapshot.to_dict().get('player_ids', [])) if snapshot.exists else []
            updated = list(updater(current))
            transaction.set(queue_ref, {
                'team_id': team_id,
                'player_ids': updated,
                'updated_at': firestore.SERVER_TIMESTAMP
            })
            return updated

        return apply(self.db.transaction())


class FirestoreAuditLog(AuditLog):
    """
    Audit log stored in the ``draft_audit_log`` collection.

    The rate-limit query needs a composite index on
    (actor_id, session_id, action_type, created_at desc).
    """

    COLLECTION = 'draft_audit_log'

    def __init__(self, db: firestore.Client):
        self.db = db

    def _write(self, entry: AuditLogEntry) -> None:
        self.db.collection(self.COLLECTION).document(entry.id).set(entry.to_dict())

    def _recent_query(self, actor_id: str, session_id: str, action_types: Iterable[AuditAction],
                      since: datetime):
        return (self.db.collection(self.COLLECTION)
                .where('actor_id', '==', actor_id)
                .where('session_id', '==', session_id)
                .where('action_type', 'in', [a.value for a in action_types])
                .where('created_at', '>=', since)
                .order_by('created_at', direction=firestore.Query.DESCENDING))

    def query(self, actor_id: str, session_id: str, action_types: Iterable[AuditAction],
              since: datetime, limit: Optional[int] = None) -> List[AuditLogEntry]:
        try:
            query = self._recent_query(actor_id, session_id, action_types, since)
            if limit:
                query = query.limit(limit)
            return [AuditLogEntry.from_dict(doc.to_dict()) for doc in query.stream()]
        except Exception as e:
            logger.error(f"Audit log query failed for actor {actor_id}: {e}")
            raise DependencyUnavailable('audit_log') from e

    def record_unless_recent(self, entry: AuditLogEntry, action_types: Iterable[AuditAction],
                             since: datetime, max_count: int) -> List[AuditLogEntry]:
        query = self._recent_query(entry.actor_id, entry.session_id, action_types, since).limit(max_count)
        entry_ref = self.db.collection(self.COLLECTION).document(entry.id)

        # The window query is read inside the transaction, so a concurrent
        # write of a matching entry aborts and retries this one
        @firestore.transactional
        def apply(transaction):
            recent = [AuditLogEntry.from_dict(doc.to_dict()) for doc in query.stream(transaction=transaction)]
            if len(recent) >= max_count:
                return recent
            transaction.set(entry_ref, entry.to_dict())
            return []

        try:
            return apply(self.db.transaction())
        except Exception as e:
            logger.error(f"Audit log reservation failed for actor {entry.actor_id}: {e}")
            raise DependencyUnavailable('audit_log') from e
