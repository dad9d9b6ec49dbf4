from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from quizduel import db
from quizduel.errors import (
    AuthorizationError,
    DependencyFailure,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from quizduel.models import ACTIVE, MatchAnswer, MatchQuestion, utcnow
from quizduel.socketio_events import notify_match_update
from .lifecycle import get_match


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def submit_answer(match_id: int, user_id: str, option_index, question_id, now=None) -> MatchAnswer:
    """Record one answer for the live question.

    Nothing is scored here; settlement scores the full answer set once
    the match ends. Answers for any question other than the live one, or
    arriving after its deadline, are rejected.
    """
    now = now or utcnow()
    option_count = int(current_app.config.get('OPTION_COUNT', 4))
    if not _is_int(option_index) or not 0 <= option_index < option_count:
        raise ValidationError(f'answer must be an option index between 0 and {option_count - 1}',
                              code='invalid_option')
    if not _is_int(question_id):
        raise ValidationError('question_id is required', code='invalid_question')

    match = get_match(match_id)
    if match.status != ACTIVE:
        raise StateConflictError('Match is not accepting answers', code='match_not_active')
    if not match.is_participant(user_id):
        raise AuthorizationError('User is not a player in this match', code='not_a_participant')

    question = MatchQuestion.query.filter_by(id=question_id, match_id=match.id).first()
    if question is None:
        raise NotFoundError('Question not found in this match', code='question_not_found')
    if question.question_index != match.current_question_index:
        raise StateConflictError('Question is no longer live', code='question_not_current')
    deadline = match.question_deadline
    if deadline is not None and now >= deadline:
        raise StateConflictError('Time is up for this question', code='question_expired')

    answer = MatchAnswer(
        match_id=match.id,
        player_id=user_id,
        question_id=question.id,
        submitted_option=option_index,
        created_at=now,
    )
    try:
        db.session.add(answer)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise StateConflictError('Answer already submitted for this question',
                                 code='duplicate_answer') from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise DependencyFailure('Failed to record answer', code='storage_unavailable') from exc

    current_app.logger.info(
        f"[answer] match={match_id} player={user_id} question={question.question_index} option={option_index}"
    )
    notify_match_update(match_id, ACTIVE, question.question_index)
    return answer
