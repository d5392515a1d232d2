"""
Notification Feed: live draft updates pushed to connected clients.

Events go to the SocketIO room of the draft session; queue updates go only to
the owning team's room. Publishing never fails the draft action it reports.
"""
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional

from ..utils.logger import get_logger

logger = get_logger('notification_service')


class DraftEvent(Enum):
    DRAFT_SCHEDULED = 'draft_scheduled'
    DRAFT_STARTED = 'draft_started'
    DRAFT_PAUSED = 'draft_paused'
    DRAFT_RESUMED = 'draft_resumed'
    DRAFT_COMPLETED = 'draft_completed'
    DRAFT_RESET = 'draft_reset'
    TIMER_EXTENDED = 'timer_extended'
    SETTINGS_UPDATED = 'settings_updated'
    PICK_MADE = 'pick_made'
    QUEUE_UPDATED = 'queue_updated'


def draft_room(session_id: str) -> str:
    return f'draft_{session_id}'


def team_room(session_id: str, team_id: str) -> str:
    return f'draft_{session_id}_team_{team_id}'


class NotificationFeed(ABC):
    """Publish/subscribe channel the engine emits draft events to."""

    def publish(self, session_id: str, event: DraftEvent, payload: Dict[str, Any],
                team_id: Optional[str] = None) -> bool:
        """
        Publish an event. Never raises.

        Args:
            session_id: Draft session the event belongs to
            event: Event type
            payload: Denormalized event data
            team_id: Restrict delivery to one team's room

        Returns:
            True when the event was handed to the transport
        """
        data = {'session_id': session_id, 'event': event.value, **payload}
        try:
            self._deliver(session_id, event, data, team_id)
            return True
        except Exception as e:
            logger.error(f"Failed to publish {event.value} for draft {session_id}: {e}")
            return False

    @abstractmethod
    def _deliver(self, session_id: str, event: DraftEvent, data: Dict[str, Any],
                 team_id: Optional[str]) -> None:
        ...


class SocketIONotificationFeed(NotificationFeed):
    """Feed that emits over Flask-SocketIO rooms."""

    def __init__(self, socketio):
        self.socketio = socketio

    def _deliver(self, session_id: str, event: DraftEvent, data: Dict[str, Any],
                 team_id: Optional[str]) -> None:
        room = team_room(session_id, team_id) if team_id else draft_room(session_id)
        self.socketio.emit(event.value, data, room=room)
        logger.debug(f"Broadcasted {event.value} to {room}")
