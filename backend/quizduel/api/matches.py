from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user

from quizduel.errors import StateConflictError
from quizduel.models import ACTIVE, FINISHED, MatchAnswer, MatchQuestion, utcnow
from quizduel.services.matches.answers import submit_answer
from quizduel.services.matches.lifecycle import (
    cancel_match,
    create_match,
    get_match,
    join_match,
    list_open_matches,
    start_match,
)
from quizduel.services.matches.scoring import match_scores

matches = Blueprint('matches', __name__)


def _success(data, status_code=200):
    return jsonify({'status': 'SUCCESS', 'data': data}), status_code


@matches.route('/create', methods=['POST'])
@login_required
def create():
    data = request.get_json(silent=True) or {}
    match = create_match(current_user.id, data)
    return _success({'match': match.to_dict()}, 201)


@matches.route('/open', methods=['GET'])
@login_required
def open_matches():
    return _success({'matches': [m.to_dict() for m in list_open_matches(current_user.id)]})


@matches.route('/<int:match_id>/join', methods=['POST'])
@login_required
def join(match_id):
    match = join_match(match_id, current_user.id)
    return _success({'message': 'JOINED ROOM', 'match': match.to_dict()})


@matches.route('/<int:match_id>/start', methods=['POST'])
@login_required
def start(match_id):
    questions = start_match(match_id, current_user.id)
    return _success({
        'message': 'Match started',
        'questions': [q.to_dict() for q in questions],
    })


@matches.route('/<int:match_id>/submit', methods=['POST'])
@login_required
def submit(match_id):
    data = request.get_json(silent=True) or {}
    option_index = data.get('answer', data.get('option_index'))
    answer = submit_answer(match_id, current_user.id, option_index, data.get('question_id'))
    return _success({'message': 'Answer recorded', 'answer_id': answer.id}, 201)


@matches.route('/<int:match_id>/cancel', methods=['POST'])
@login_required
def cancel(match_id):
    match = cancel_match(match_id, current_user.id)
    return _success({'message': 'Match cancelled', 'match': match.to_dict()})


@matches.route('/<int:match_id>', methods=['GET'])
@login_required
def state(match_id):
    match = get_match(match_id)
    payload = {'match': match.to_dict(), 'current_question': None}
    if match.status == ACTIVE:
        question = MatchQuestion.query.filter_by(
            match_id=match.id, question_index=match.current_question_index
        ).first()
        if question is not None:
            answered_by = [
                a.player_id for a in MatchAnswer.query.filter_by(match_id=match.id, question_id=question.id).all()
            ]
            deadline = match.question_deadline
            payload['current_question'] = question.to_dict()
            payload['question_deadline'] = deadline.isoformat() + 'Z' if deadline else None
            payload['seconds_remaining'] = (
                max(0.0, (deadline - utcnow()).total_seconds()) if deadline else None
            )
            payload['answered_by'] = answered_by
    return _success(payload)


@matches.route('/<int:match_id>/result', methods=['GET'])
@login_required
def result(match_id):
    match = get_match(match_id)
    if match.status != FINISHED:
        raise StateConflictError('Match has not finished yet', code='match_not_finished')
    scores = match_scores(match)
    return _success({
        'match': match.to_dict(),
        'scores': scores,
        'winner_id': match.winner_id,
        'is_draw': match.winner_id is None,
        'questions': [q.to_dict(include_answer=True) for q in match.questions.all()],
        'answers': [a.to_dict() for a in match.answers.order_by(MatchAnswer.id).all()],
    })
