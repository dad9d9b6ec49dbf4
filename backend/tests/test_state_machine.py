import pytest

from quizduel import db
from quizduel.errors import RaceLoss, StateConflictError
from quizduel.models import Match
from quizduel.services.matches.state_machine import (
    TRANSITIONS,
    apply_transition,
    can_transition,
    require_transition,
)


@pytest.mark.parametrize('status,action,allowed', [
    ('waiting', 'join', True),
    ('ready', 'join', False),
    ('ready', 'start', True),
    ('waiting', 'start', False),
    ('starting', 'activate', True),
    ('active', 'advance', True),
    ('active', 'finish', True),
    ('finished', 'finish', False),
    ('active', 'cancel', True),
    ('finished', 'cancel', False),
    ('cancelled', 'cancel', False),
])
def test_transition_table(status, action, allowed):
    assert can_transition(status, action) is allowed


def test_terminal_states_have_no_way_out():
    for sources, _ in TRANSITIONS.values():
        assert 'finished' not in sources
        assert 'cancelled' not in sources


def _waiting_match():
    match = Match(player1_id='p1', category='Science', question_duration_seconds=5, total_questions=2)
    db.session.add(match)
    db.session.commit()
    return match.id


def test_require_transition_raises_state_conflict(flask_app):
    match = db.session.get(Match, _waiting_match())
    with pytest.raises(StateConflictError) as exc:
        require_transition(match, 'start')
    assert exc.value.code == 'cannot_start'


def test_apply_transition_is_conditional(flask_app):
    match_id = _waiting_match()
    apply_transition(match_id, 'join', {'player2_id': 'p2'}, player2_id=None)
    with pytest.raises(RaceLoss):
        apply_transition(match_id, 'join', {'player2_id': 'p3'}, player2_id=None)

    db.session.expire_all()
    match = db.session.get(Match, match_id)
    assert match.status == 'ready'
    assert match.player2_id == 'p2'
