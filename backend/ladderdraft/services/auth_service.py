"""
Authentication and identity for the draft engine.

Firebase Auth verifies bearer tokens at the HTTP and socket edges. The
Identity Provider then tells the engine what role the caller holds in a
draft session: commissioner, owner of one or more teams, or plain member.
Callers with none of these are guests and may not watch the draft.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from functools import wraps
from typing import Any, Dict, FrozenSet, Iterable, Optional

from flask import request, jsonify, g
from firebase_admin import auth

from ..exceptions import DependencyUnavailable
from ..utils.logger import get_logger

logger = get_logger('auth_service')


class ActorRole(Enum):
    COMMISSIONER = 'commissioner'
    OWNER = 'owner'
    MEMBER = 'member'
    GUEST = 'guest'
    SYSTEM = 'system'


@dataclass(frozen=True)
class Actor:
    """The caller of a draft operation, as resolved by the Identity Provider."""
    actor_id: str
    role: ActorRole
    team_ids: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_commissioner(self) -> bool:
        return self.role == ActorRole.COMMISSIONER

    @property
    def is_system(self) -> bool:
        return self.role == ActorRole.SYSTEM

    def controls_team(self, team_id: str) -> bool:
        return self.is_system or self.is_commissioner or team_id in self.team_ids

    def participates_in(self, session_team_ids: Iterable[str]) -> bool:
        """Whether the actor has any role in a draft between ``session_team_ids``."""
        if self.is_system or self.is_commissioner or self.role == ActorRole.MEMBER:
            return True
        return bool(self.team_ids & set(session_team_ids))


# Internal actor used by the expiration sweeper. Providers never return it.
SYSTEM_ACTOR = Actor(actor_id='system', role=ActorRole.SYSTEM)


class IdentityProvider(ABC):
    """Resolves a caller id to an Actor for one draft session."""

    @abstractmethod
    def resolve(self, actor_id: str, session_id: str) -> Actor:
        """
        Raises:
            DependencyUnavailable: when identity data cannot be loaded
        """


class StaticIdentityProvider(IdentityProvider):
    """
    Identity provider over fixed role tables.

    Args:
        commissioners: session_id -> commissioner user ids
        team_owners: team_id -> owner user id
        admins: user ids treated as commissioner of every session
        members: session_id -> user ids that watch without owning a team
    """

    def __init__(self, commissioners: Dict[str, Iterable[str]] = None,
                 team_owners: Dict[str, str] = None, admins: Iterable[str] = (),
                 members: Dict[str, Iterable[str]] = None):
        self.commissioners = {sid: set(uids) for sid, uids in (commissioners or {}).items()}
        self.team_owners = dict(team_owners or {})
        self.admins = set(admins)
        self.members = {sid: set(uids) for sid, uids in (members or {}).items()}

    def resolve(self, actor_id: str, session_id: str) -> Actor:
        team_ids = frozenset(t for t, owner in self.team_owners.items() if owner == actor_id)
        if actor_id in self.admins or actor_id in self.commissioners.get(session_id, set()):
            role = ActorRole.COMMISSIONER
        elif team_ids:
            role = ActorRole.OWNER
        elif actor_id in self.members.get(session_id, set()):
            role = ActorRole.MEMBER
        else:
            role = ActorRole.GUEST
        return Actor(actor_id=actor_id, role=role, team_ids=team_ids)


class FirestoreIdentityProvider(IdentityProvider):
    """
    Resolve roles from league documents.

    The commissioner is leagues/{session_id}.commissioner_id, global admins
    have users/{uid}.is_admin, and owned teams are matched on owner_id.
    Members without a team are listed in leagues/{session_id}.member_ids.
    """

    def __init__(self, db):
        self.db = db

    def resolve(self, actor_id: str, session_id: str) -> Actor:
        try:
            league_ref = self.db.collection('leagues').document(session_id)
            league = league_ref.get()
            league_data = league.to_dict() if league.exists else {}

            user = self.db.collection('users').document(actor_id).get()
            is_admin = bool(user.exists and user.to_dict().get('is_admin'))

            team_docs = league_ref.collection('teams').where('owner_id', '==', actor_id).stream()
            team_ids = frozenset(doc.id for doc in team_docs)
        except Exception as e:
            logger.error(f"Failed to resolve identity for user {actor_id}: {e}")
            raise DependencyUnavailable('identity_provider') from e

        if is_admin or league_data.get('commissioner_id') == actor_id:
            role = ActorRole.COMMISSIONER
        elif team_ids:
            role = ActorRole.OWNER
        elif actor_id in league_data.get('member_ids', []):
            role = ActorRole.MEMBER
        else:
            role = ActorRole.GUEST
        return Actor(actor_id=actor_id, role=role, team_ids=team_ids)


class AuthService:
    """Service for handling Firebase Authentication."""

    def __init__(self):
        self.auth = auth

    def verify_token(self, id_token: str) -> Optional[Dict[str, Any]]:
        """
        Verify Firebase ID token and return user claims.

        Args:
            id_token: Firebase ID token

        Returns:
            User claims dict or None if invalid
        """
        try:
            return self.auth.verify_id_token(id_token)
        except Exception as e:
            logger.warning(f"Token verification failed: {e}")
            return None


# Global instance
auth_service = AuthService()


def require_auth(f):
    """
    Decorator to require authentication for route.
    Extracts user info from Authorization header and adds to Flask g object.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get('Authorization')
        if not auth_header or not auth_header.startswith('Bearer '):
            return jsonify({'success': False, 'error': 'Authorization header required'}), 401

        token = auth_header.split('Bearer ', 1)[1]

        user_claims = auth_service.verify_token(token)
        if not user_claims or not user_claims.get('uid'):
            return jsonify({'success': False, 'error': 'Invalid token'}), 401

        g.user = user_claims
        g.user_id = user_claims.get('uid')

        return f(*args, **kwargs)

    return decorated_function


def get_auth_service() -> AuthService:
    """Get the auth service instance."""
    return auth_service
