from typing import Dict, FrozenSet, Tuple

from sqlalchemy.exc import SQLAlchemyError

from quizduel import db
from quizduel.errors import DependencyFailure, RaceLoss, StateConflictError
from quizduel.models import (
    Match,
    WAITING,
    READY,
    STARTING,
    ACTIVE,
    FINISHED,
    CANCELLED,
)

TERMINAL_STATUSES: FrozenSet[str] = frozenset({FINISHED, CANCELLED})
NON_TERMINAL_STATUSES: FrozenSet[str] = frozenset({WAITING, READY, STARTING, ACTIVE})

# action -> (allowed source statuses, target status)
TRANSITIONS: Dict[str, Tuple[FrozenSet[str], str]] = {
    'join': (frozenset({WAITING}), READY),
    'start': (frozenset({READY}), STARTING),
    'activate': (frozenset({STARTING}), ACTIVE),
    'advance': (frozenset({ACTIVE}), ACTIVE),
    'finish': (frozenset({ACTIVE}), FINISHED),
    'cancel': (NON_TERMINAL_STATUSES, CANCELLED),
}

# Only the tick scheduler may fire these
ENGINE_ACTIONS: FrozenSet[str] = frozenset({'activate', 'advance', 'finish'})


def can_transition(status: str, action: str) -> bool:
    sources, _ = TRANSITIONS[action]
    return status in sources


def require_transition(match: Match, action: str, message: str = None) -> None:
    """Raise StateConflictError unless `action` is legal from the match's status."""
    if not can_transition(match.status, action):
        raise StateConflictError(
            message or f"Cannot {action} a match that is {match.status}",
            code=f'cannot_{action}',
        )


def apply_transition(match_id: int, action: str, values: dict = None, **expected) -> None:
    """Conditionally write a transition.

    The UPDATE only matches the row while its status is one of the
    action's source statuses and every `expected` column still holds the
    given value. Zero affected rows raise RaceLoss.
    """
    sources, target = TRANSITIONS[action]
    changes = dict(values or {})
    changes['status'] = target

    query = Match.query.filter(Match.id == match_id, Match.status.in_(sorted(sources)))
    for column, value in expected.items():
        query = query.filter(getattr(Match, column) == value)

    try:
        rows = query.update(changes, synchronize_session=False)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise DependencyFailure(f"Failed to {action} match", code='storage_unavailable') from exc

    if rows == 0:
        raise RaceLoss(f"Match {match_id} changed before {action} could be applied")
