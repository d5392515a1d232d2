"""
Typed errors raised by the draft engine.

Every error carries a stable ``code`` for API clients and the HTTP status
the routes answer with.
"""
from typing import Optional


class DraftError(Exception):
    """Base class for all draft engine errors."""
    code = 'draft_error'
    http_status = 400
    benign = False

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message())
        self.message = message or self.default_message()

    def default_message(self) -> str:
        return 'Draft operation failed'

    def to_dict(self):
        return {'success': False, 'error': self.message, 'code': self.code}


class InvalidIdentifier(DraftError):
    code = 'invalid_identifier'

    def default_message(self):
        return 'Identifier is malformed'


class InvalidDraftStatus(DraftError):
    code = 'invalid_draft_status'


class InvalidArgument(DraftError):
    """Numeric range and request-shape errors."""
    code = 'invalid_argument'


class InvalidStateTransition(DraftError):
    code = 'invalid_state_transition'
    http_status = 409


class Unauthorized(DraftError):
    code = 'unauthorized'
    http_status = 403

    def default_message(self):
        return 'You are not allowed to perform this action'


class SessionNotFound(DraftError):
    code = 'session_not_found'
    http_status = 404

    def default_message(self):
        return 'Draft not found'


class SessionNotLive(DraftError):
    code = 'session_not_live'
    http_status = 409

    def default_message(self):
        return 'Draft is not live'


class InvalidPick(DraftError):
    code = 'invalid_pick'
    http_status = 404


class NotCurrentPick(DraftError):
    code = 'not_current_pick'
    http_status = 409

    def default_message(self):
        return 'That pick is not on the clock'


class PlayerUnavailable(DraftError):
    code = 'player_unavailable'
    http_status = 409

    def default_message(self):
        return 'Player has already been drafted'


class PickAlreadyMade(DraftError):
    """Raised to the loser of a commit race. Callers treat it as a no-op."""
    code = 'pick_already_made'
    http_status = 409
    benign = True

    def default_message(self):
        return 'That pick was just made'


class RateLimited(DraftError):
    code = 'rate_limited'
    http_status = 429

    def __init__(self, retry_after_seconds: int, message: Optional[str] = None):
        self.retry_after_seconds = retry_after_seconds
        plural = 's' if retry_after_seconds != 1 else ''
        super().__init__(message or f'Please wait {retry_after_seconds} second{plural} before trying again.')

    def to_dict(self):
        data = super().to_dict()
        data['retry_after_seconds'] = self.retry_after_seconds
        return data


class DependencyUnavailable(DraftError):
    """A collaborator (roster store, identity provider, audit log) failed."""
    code = 'dependency_unavailable'
    http_status = 503

    def __init__(self, dependency: str, message: Optional[str] = None):
        self.dependency = dependency
        super().__init__(message or f'{dependency} is unavailable')
