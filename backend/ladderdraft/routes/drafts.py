"""
Draft routes for handling draft operations.
"""
import hmac

from flask import Blueprint, current_app, request, jsonify, g

from ..exceptions import DraftError, InvalidArgument
from ..models.draft_model import serialize
from ..services.auth_service import require_auth
from ..utils.validators import validate_json_request
from ..utils.logger import get_logger

logger = get_logger('drafts_routes')
drafts_bp = Blueprint('drafts', __name__)


def get_draft_service():
    return current_app.extensions['draft_service']


def error_response(error: DraftError):
    """Render a DraftError with its status code."""
    response = jsonify(error.to_dict())
    response.status_code = error.http_status
    if hasattr(error, 'retry_after_seconds'):
        response.headers['Retry-After'] = str(error.retry_after_seconds)
    return response


def session_response(session, status=200):
    return jsonify({'success': True, 'session': serialize(session.to_dict())}), status


def _sweep_authorized() -> bool:
    secret = current_app.config.get('SWEEP_SECRET')
    if not secret:
        return True
    auth_header = request.headers.get('Authorization', '')
    token = auth_header.split('Bearer ', 1)[1] if auth_header.startswith('Bearer ') else ''
    return hmac.compare_digest(token.encode(), secret.encode())


@drafts_bp.route('/<session_id>', methods=['GET'])
@require_auth
def get_draft_board(session_id):
    """Get the current draft board state."""
    try:
        service = get_draft_service()
        service.resolve_viewer(session_id, g.user_id)
        board = service.get_draft_board(session_id)
        return jsonify({'success': True, 'draft_board': board}), 200

    except DraftError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to get draft board: {e}")
        return jsonify({'success': False, 'error': 'Failed to get draft board'}), 500


@drafts_bp.route('/<session_id>/schedule', methods=['POST'])
@require_auth
@validate_json_request(required_fields=['team_ids'], optional_fields=['rounds', 'settings'])
def schedule_draft(session_id):
    """Schedule a draft and generate the pick order."""
    try:
        data = request.get_json()
        settings = data.get('settings') or {}
        if not isinstance(settings, dict):
            raise InvalidArgument('settings must be an object')

        session = get_draft_service().schedule_draft(
            session_id,
            team_ids=data['team_ids'],
            rounds=data.get('rounds'),
            settings=settings,
            actor_id=g.user_id
        )
        return session_response(session, 201)

    except DraftError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to schedule draft: {e}")
        return jsonify({'success': False, 'error': 'Failed to schedule draft'}), 500


def _control_route(action_name, operation):
    def view(session_id):
        try:
            session = operation(get_draft_service())(session_id, g.user_id)
            return session_response(session)

        except DraftError as e:
            return error_response(e)
        except Exception as e:
            logger.error(f"Failed to {action_name} draft: {e}")
            return jsonify({'success': False, 'error': f'Failed to {action_name} draft'}), 500

    view.__name__ = f'{action_name}_draft'
    view.__doc__ = f'{action_name.capitalize()} the draft (commissioner only).'
    return require_auth(view)


drafts_bp.add_url_rule('/<session_id>/start', view_func=_control_route('start', lambda s: s.start_draft),
                       methods=['POST'])
drafts_bp.add_url_rule('/<session_id>/pause', view_func=_control_route('pause', lambda s: s.pause_draft),
                       methods=['POST'])
drafts_bp.add_url_rule('/<session_id>/resume', view_func=_control_route('resume', lambda s: s.resume_draft),
                       methods=['POST'])
drafts_bp.add_url_rule('/<session_id>/complete', view_func=_control_route('complete', lambda s: s.complete_draft),
                       methods=['POST'])
drafts_bp.add_url_rule('/<session_id>/reset', view_func=_control_route('reset', lambda s: s.reset_draft),
                       methods=['POST'])


@drafts_bp.route('/<session_id>/extend-timer', methods=['POST'])
@require_auth
@validate_json_request(required_fields=['seconds'])
def extend_timer(session_id):
    """Give the team on the clock more time."""
    try:
        data = request.get_json()
        session = get_draft_service().extend_timer(session_id, g.user_id, data['seconds'])
        return session_response(session)

    except DraftError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to extend timer: {e}")
        return jsonify({'success': False, 'error': 'Failed to extend timer'}), 500


@drafts_bp.route('/<session_id>/settings', methods=['POST'])
@require_auth
@validate_json_request(optional_fields=['timer_seconds', 'auto_pick_enabled'])
def update_settings(session_id):
    """Update timer and auto-pick settings."""
    try:
        data = request.get_json()
        session = get_draft_service().update_settings(
            session_id,
            g.user_id,
            timer_seconds=data.get('timer_seconds'),
            auto_pick_enabled=data.get('auto_pick_enabled')
        )
        return session_response(session)

    except DraftError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to update draft settings: {e}")
        return jsonify({'success': False, 'error': 'Failed to update draft settings'}), 500


@drafts_bp.route('/<session_id>/picks/<pick_id>', methods=['POST'])
@require_auth
@validate_json_request(required_fields=['player_id'])
def make_draft_pick(session_id, pick_id):
    """Make a draft pick."""
    try:
        data = request.get_json()
        result = get_draft_service().commit_pick(session_id, pick_id, data['player_id'], g.user_id)
        return jsonify({'success': True, **result.to_dict()}), 200

    except DraftError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to make draft pick: {e}")
        return jsonify({'success': False, 'error': 'Failed to make draft pick'}), 500


@drafts_bp.route('/<session_id>/queue/<team_id>', methods=['GET'])
@require_auth
def get_draft_queue(session_id, team_id):
    """Get a team's draft queue."""
    try:
        queue = get_draft_service().get_queue(session_id, team_id, g.user_id)
        return jsonify({'success': True, 'queue': queue}), 200

    except DraftError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to get draft queue: {e}")
        return jsonify({'success': False, 'error': 'Failed to get draft queue'}), 500


@drafts_bp.route('/<session_id>/queue/<team_id>', methods=['POST'])
@require_auth
@validate_json_request(required_fields=['player_id'], optional_fields=['position'])
def add_to_queue(session_id, team_id):
    """Add a player to a team's draft queue."""
    try:
        data = request.get_json()
        queue = get_draft_service().add_to_queue(
            session_id, team_id, data['player_id'], g.user_id, position=data.get('position')
        )
        return jsonify({'success': True, 'queue': queue}), 200

    except DraftError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to add player to queue: {e}")
        return jsonify({'success': False, 'error': 'Failed to add player to queue'}), 500


@drafts_bp.route('/<session_id>/queue/<team_id>', methods=['DELETE'])
@require_auth
@validate_json_request(required_fields=['player_id'])
def remove_from_queue(session_id, team_id):
    """Remove a player from a team's draft queue."""
    try:
        data = request.get_json()
        queue = get_draft_service().remove_from_queue(session_id, team_id, data['player_id'], g.user_id)
        return jsonify({'success': True, 'queue': queue}), 200

    except DraftError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to remove player from queue: {e}")
        return jsonify({'success': False, 'error': 'Failed to remove player from queue'}), 500


@drafts_bp.route('/<session_id>/queue/<team_id>', methods=['PUT'])
@require_auth
@validate_json_request(required_fields=['player_ids'])
def reorder_queue(session_id, team_id):
    """Reorder a team's draft queue."""
    try:
        data = request.get_json()
        queue = get_draft_service().reorder_queue(session_id, team_id, data['player_ids'], g.user_id)
        return jsonify({'success': True, 'queue': queue}), 200

    except DraftError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to reorder queue: {e}")
        return jsonify({'success': False, 'error': 'Failed to reorder queue'}), 500


@drafts_bp.route('/<session_id>/available-players', methods=['GET'])
@require_auth
def get_available_players(session_id):
    """Get players available for drafting."""
    try:
        service = get_draft_service()
        service.resolve_viewer(session_id, g.user_id)
        position = request.args.get('position') or None
        try:
            limit = int(request.args.get('limit', 100))
        except ValueError:
            raise InvalidArgument('limit must be a whole number')

        players = service.get_available_players(session_id, position=position, limit=limit)
        return jsonify({'success': True, 'available_players': players, 'total': len(players)}), 200

    except DraftError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to get available players: {e}")
        return jsonify({'success': False, 'error': 'Failed to get available players'}), 500


@drafts_bp.route('/<session_id>/sweep', methods=['POST'])
def sweep_draft(session_id):
    """Auto-pick the current pick of one draft if its timer expired."""
    if not _sweep_authorized():
        return jsonify({'success': False, 'error': 'Unauthorized'}), 401
    try:
        result = get_draft_service().sweep_expired_pick(session_id)
        return jsonify({'success': True, **result}), 200

    except DraftError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to sweep draft {session_id}: {e}")
        return jsonify({'success': False, 'error': 'Failed to sweep draft'}), 500


@drafts_bp.route('/sweep', methods=['GET', 'POST'])
def sweep_all_drafts():
    """Process expired picks across every live draft. Called by the scheduler."""
    if not _sweep_authorized():
        return jsonify({'success': False, 'error': 'Unauthorized'}), 401
    try:
        result = get_draft_service().sweep_all()
        return jsonify({'success': True, **result}), 200

    except Exception as e:
        logger.error(f"Failed to sweep drafts: {e}")
        return jsonify({'success': False, 'error': 'Failed to sweep drafts'}), 500
