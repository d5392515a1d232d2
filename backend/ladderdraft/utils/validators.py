"""
Input validation utilities for the draft engine.

These checks are pure and run before rate limiting so a malformed request
never consumes a rate-limit slot.
"""
import re
from functools import wraps
from typing import Any, List

from flask import request, jsonify

from ..exceptions import InvalidArgument, InvalidDraftStatus, InvalidIdentifier
from ..models.draft_model import DraftStatus

IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z0-9_\-]{1,128}$')

MAX_TIMER_EXTENSION_SECONDS = 300
MIN_ROUNDS = 1
MAX_ROUNDS = 20
MIN_TIMER_SECONDS = 30
MAX_TIMER_SECONDS = 600
MAX_QUEUE_LENGTH = 100


def validate_identifier(value: Any, field_name: str = 'id') -> str:
    """Validate an opaque identifier (UUIDs, Firestore ids, Firebase uids)."""
    if not isinstance(value, str) or not value:
        raise InvalidIdentifier(f'{field_name} is required')
    if not IDENTIFIER_PATTERN.match(value):
        raise InvalidIdentifier(f'{field_name} is not a valid identifier')
    return value


def validate_draft_status(status: Any) -> DraftStatus:
    """Validate and convert a draft status value."""
    if isinstance(status, DraftStatus):
        return status
    if not status:
        raise InvalidDraftStatus('Draft status is required')
    try:
        return DraftStatus(status)
    except ValueError:
        valid = ', '.join(s.value for s in DraftStatus)
        raise InvalidDraftStatus(f'Invalid draft status: {status}. Must be one of: {valid}')


def _require_int(value: Any, field_name: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f'{field_name} must be a whole number')
    return value


def validate_timer_extension(seconds: Any) -> int:
    """Validate timer extension amount (1..300 seconds)."""
    seconds = _require_int(seconds, 'Timer extension')
    if seconds <= 0:
        raise InvalidArgument('Timer extension must be greater than 0')
    if seconds > MAX_TIMER_EXTENSION_SECONDS:
        raise InvalidArgument(
            f'Timer extension cannot exceed {MAX_TIMER_EXTENSION_SECONDS} seconds'
        )
    return seconds


def validate_rounds(rounds: Any) -> int:
    """Validate draft round count (1..20)."""
    rounds = _require_int(rounds, 'Rounds')
    if rounds < MIN_ROUNDS:
        raise InvalidArgument('Rounds must be at least 1')
    if rounds > MAX_ROUNDS:
        raise InvalidArgument(f'Rounds cannot exceed {MAX_ROUNDS}')
    return rounds


def validate_timer_seconds(seconds: Any) -> int:
    """Validate pick timer length. 0 disables the timer."""
    seconds = _require_int(seconds, 'Timer')
    if seconds == 0:
        return seconds
    if not MIN_TIMER_SECONDS <= seconds <= MAX_TIMER_SECONDS:
        raise InvalidArgument(
            f'Timer must be 0 or between {MIN_TIMER_SECONDS} and {MAX_TIMER_SECONDS} seconds'
        )
    return seconds


def validate_player_ids(player_ids: Any) -> List[str]:
    """Validate an ordered list of player ids (queue reorder)."""
    if not isinstance(player_ids, list):
        raise InvalidArgument('player_ids must be a list')
    if len(player_ids) > MAX_QUEUE_LENGTH:
        raise InvalidArgument(f'Queue cannot hold more than {MAX_QUEUE_LENGTH} players')
    for player_id in player_ids:
        validate_identifier(player_id, 'player_id')
    if len(set(player_ids)) != len(player_ids):
        raise InvalidArgument('Duplicate players found in queue')
    return list(player_ids)


def validate_team_ids(team_ids: Any) -> List[str]:
    """Validate the team list passed to scheduling."""
    if not isinstance(team_ids, list):
        raise InvalidArgument('team_ids must be a list')
    for team_id in team_ids:
        validate_identifier(team_id, 'team_id')
    if len(set(team_ids)) != len(team_ids):
        raise InvalidArgument('Duplicate teams in draft order')
    return list(team_ids)


def validate_json_request(required_fields: List[str] = None, optional_fields: List[str] = None):
    """
    Decorator to validate JSON request data.

    Args:
        required_fields: List of required field names
        optional_fields: List of optional field names
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not request.is_json:
                return jsonify({'success': False, 'error': 'Content-Type must be application/json'}), 400

            data = request.get_json(silent=True)
            if data is None or not isinstance(data, dict):
                return jsonify({'success': False, 'error': 'Invalid JSON data'}), 400

            errors = []

            if required_fields:
                for field in required_fields:
                    if field not in data:
                        errors.append(f'{field} is required')

            allowed_fields = set((required_fields or []) + (optional_fields or []))
            if allowed_fields:
                unexpected = set(data.keys()) - allowed_fields
                if unexpected:
                    errors.append(f'Unexpected fields: {", ".join(sorted(unexpected))}')

            if errors:
                return jsonify({'success': False, 'error': 'Validation failed', 'details': errors}), 400

            return f(*args, **kwargs)
        return decorated_function
    return decorator
