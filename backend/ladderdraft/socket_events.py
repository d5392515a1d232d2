"""
SocketIO event handlers for the live draft room.
"""
from flask import current_app, request
from flask_socketio import emit, join_room, leave_room, disconnect

from .exceptions import DraftError
from .models.draft_model import utc_now
from .services.auth_service import get_auth_service
from .services.notification_service import draft_room, team_room
from .utils.logger import get_logger

logger = get_logger('socket_events')

# Store connected users
connected_users = {}


def _draft_error(error: DraftError, **extra):
    payload = {**error.to_dict(), **extra}
    emit('draft_error', payload)


def init_socket_events(socketio):
    """Register draft room handlers on ``socketio``."""

    @socketio.on('connect')
    def handle_connect(auth=None):
        """Handle client connection."""
        if not auth or 'token' not in auth:
            logger.warning("Connection attempt without token")
            return False

        user_claims = get_auth_service().verify_token(auth['token'])
        if not user_claims or not user_claims.get('uid'):
            logger.warning("Connection attempt with invalid token")
            return False

        user_id = user_claims['uid']
        connected_users[request.sid] = {
            'user_id': user_id,
            'connected_at': utc_now(),
            'drafts': []
        }

        logger.info(f"User {user_id} connected with session {request.sid}")
        emit('connected', {'status': 'success', 'user_id': user_id})

    @socketio.on('disconnect')
    def handle_disconnect(*args):
        """Handle client disconnection."""
        user = connected_users.pop(request.sid, None)
        if user:
            logger.info(f"User {user['user_id']} disconnected")

    @socketio.on('join_draft')
    def handle_join_draft(data):
        """Join a draft room, and the team room when the user manages that team.

        Users with no role in the draft get a draft_error and join nothing.
        """
        user = connected_users.get(request.sid)
        if not user:
            emit('error', {'message': 'Not authenticated'})
            disconnect()
            return

        session_id = (data or {}).get('session_id')
        team_id = (data or {}).get('team_id')
        if not session_id:
            emit('error', {'message': 'session_id required'})
            return

        try:
            service = current_app.extensions['draft_service']
            actor = service.resolve_viewer(session_id, user['user_id'])
            board = service.get_draft_board(session_id)
            rooms = [draft_room(session_id)]
            if team_id and actor.controls_team(team_id):
                rooms.append(team_room(session_id, team_id))
        except DraftError as e:
            _draft_error(e, session_id=session_id)
            return

        for room in rooms:
            join_room(room)
        if session_id not in user['drafts']:
            user['drafts'].append(session_id)

        emit('joined_draft', {'session_id': session_id, 'rooms': rooms, 'draft_board': board})
        logger.info(f"User {user['user_id']} joined draft room {session_id}")

    @socketio.on('leave_draft')
    def handle_leave_draft(data):
        """Leave a draft room."""
        user = connected_users.get(request.sid)
        session_id = (data or {}).get('session_id')
        if not user or not session_id:
            return

        leave_room(draft_room(session_id))
        team_id = (data or {}).get('team_id')
        if team_id:
            leave_room(team_room(session_id, team_id))
        if session_id in user['drafts']:
            user['drafts'].remove(session_id)

        emit('left_draft', {'session_id': session_id})
        logger.info(f"User {user['user_id']} left draft room {session_id}")

    @socketio.on('draft_pick')
    def handle_draft_pick(data):
        """Submit a pick over the socket. The pick_made broadcast confirms it."""
        user = connected_users.get(request.sid)
        if not user:
            emit('error', {'message': 'Not authenticated'})
            return

        data = data or {}
        session_id = data.get('session_id')
        try:
            service = current_app.extensions['draft_service']
            result = service.commit_pick(session_id, data.get('pick_id'), data.get('player_id'), user['user_id'])
        except DraftError as e:
            _draft_error(e, session_id=session_id, pick_id=data.get('pick_id'))
            return
        except Exception as e:
            logger.error(f"Draft pick error: {e}")
            emit('error', {'message': 'Failed to make draft pick'})
            return

        emit('pick_accepted', result.to_dict())
