from flask import current_app
from flask_socketio import join_room, leave_room, emit

from quizduel import socketio

NAMESPACE = '/ws'


def match_room(match_id) -> str:
    return f"match:{match_id}"


def notify_match_update(match_id, status, current_question_index=None) -> None:
    """Tell observers of a match that its persisted state changed.

    Called only after a write has been committed. Observers re-read the
    match; the payload is a hint, not the source of truth.
    """
    if not current_app.config.get('NOTIFY_MATCH_UPDATES', True):
        return
    socketio.emit(
        'match_update',
        {'match_id': match_id, 'status': status, 'current_question_index': current_question_index},
        to=match_room(match_id),
        namespace=NAMESPACE,
    )


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_join_match(data):
    match_id = (data or {}).get('match_id')
    if match_id is None:
        emit('error', {'message': 'match_id is required'})
        return
    room = match_room(match_id)
    join_room(room)
    emit('joined', {'room': room})


def handle_leave_match(data):
    match_id = (data or {}).get('match_id')
    if match_id is None:
        emit('error', {'message': 'match_id is required'})
        return
    room = match_room(match_id)
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('join_match', handle_join_match, namespace=NAMESPACE)
    socketio.on_event('leave_match', handle_leave_match, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)

    if testing:
        socketio.on_event('connect', handle_connect, namespace='/')
        socketio.on_event('join_match', handle_join_match, namespace='/')
        socketio.on_event('leave_match', handle_leave_match, namespace='/')
        socketio.on_event('ping', handle_ping, namespace='/')
