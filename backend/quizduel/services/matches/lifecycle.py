import math
from decimal import Decimal
from typing import List

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from quizduel import db
from quizduel.errors import (
    AuthorizationError,
    DependencyFailure,
    NotFoundError,
    RaceLoss,
    StateConflictError,
    ValidationError,
)
from quizduel.models import (
    Match,
    MatchQuestion,
    QuestionOption,
    WAITING,
    READY,
    STARTING,
    ACTIVE,
    CANCELLED,
    utcnow,
)
from quizduel.services.questions.generator import get_question_generator
from quizduel.socketio_events import notify_match_update
from .state_machine import apply_transition, require_transition


def get_match(match_id: int) -> Match:
    match = db.session.get(Match, match_id)
    if match is None:
        raise NotFoundError('Match not found', code='match_not_found')
    return match


def _positive_int(data: dict, field: str, maximum: int, *aliases) -> int:
    value = data.get(field)
    for alias in aliases:
        if value is None:
            value = data.get(alias)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f'{field} must be a positive integer', code=f'invalid_{field}')
    if value > maximum:
        raise ValidationError(f'{field} must be at most {maximum}', code=f'invalid_{field}')
    return value


def validate_create_request(data: dict) -> dict:
    """Check a create-match payload and return the normalized fields."""
    cfg = current_app.config
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')

    duration = _positive_int(data, 'time_per_question', int(cfg.get('MAX_QUESTION_DURATION_SEC', 120)),
                             'time_per_que')
    total = _positive_int(data, 'total_questions', int(cfg.get('MAX_TOTAL_QUESTIONS', 20)))

    category = data.get('category')
    if not isinstance(category, str) or not category.strip():
        raise ValidationError('category is required', code='invalid_category')
    category = category.strip()
    if len(category) > 128:
        raise ValidationError('category is too long', code='invalid_category')

    stake = data.get('stake_amount', 0)
    if isinstance(stake, bool) or not isinstance(stake, (int, float)) or not math.isfinite(stake) or stake < 0:
        raise ValidationError('stake_amount must be a non-negative number', code='invalid_stake_amount')

    difficulty = data.get('difficulty')
    allowed = tuple(cfg.get('DIFFICULTIES', ('easy', 'medium', 'hard')))
    if not isinstance(difficulty, str) or difficulty.strip().lower() not in allowed:
        raise ValidationError(f"difficulty must be one of: {', '.join(allowed)}", code='invalid_difficulty')

    return {
        'question_duration_seconds': duration,
        'total_questions': total,
        'category': category,
        'stake_amount': Decimal(str(stake)),
        'difficulty': difficulty.strip().lower(),
    }


def create_match(user_id: str, data: dict) -> Match:
    """Create a waiting match together with its full question set.

    Questions are generated before anything is written, and the match
    row and its questions are committed in one transaction, so a failed
    creation leaves nothing behind.
    """
    params = validate_create_request(data)
    generated = get_question_generator().generate(
        params['category'], params['total_questions'], params['difficulty']
    )

    match = Match(player1_id=user_id, status=WAITING, **params)
    try:
        db.session.add(match)
        db.session.flush()
        for idx, q in enumerate(generated):
            db.session.add(MatchQuestion(
                match_id=match.id,
                question_index=idx,
                question_text=q.question,
                options=[QuestionOption(o.index, o.label) for o in q.options],
                correct_option=q.answer,
            ))
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[create-fail] player={user_id} error={exc}")
        raise DependencyFailure('Failed to create match', code='storage_unavailable') from exc

    current_app.logger.info(
        f"[create] match={match.id} player1={user_id} category={match.category!r} "
        f"questions={match.total_questions} duration={match.question_duration_seconds}s"
    )
    return match


def join_match(match_id: int, user_id: str) -> Match:
    match = get_match(match_id)
    if match.player1_id == user_id:
        raise ValidationError('User already in match', code='already_in_match')
    require_transition(match, 'join', 'Match is not waiting for an opponent')

    try:
        apply_transition(match_id, 'join', {'player2_id': user_id}, player2_id=None)
    except RaceLoss as exc:
        raise StateConflictError('Match is not waiting for an opponent', code='cannot_join') from exc

    current_app.logger.info(f"[join] match={match_id} player2={user_id}")
    notify_match_update(match_id, READY)
    return get_match(match_id)


def start_match(match_id: int, user_id: str, now=None) -> List[MatchQuestion]:
    """Move a ready match into its pre-game countdown and return its questions."""
    now = now or utcnow()
    match = get_match(match_id)
    if match.player1_id != user_id:
        raise AuthorizationError('User not authorized to start match', code='not_match_owner')
    require_transition(match, 'start', 'Match not ready to start or already in progress')

    questions = match.questions.all()
    if len(questions) != match.total_questions:
        current_app.logger.error(
            f"[start-fail] match={match_id} questions={len(questions)} expected={match.total_questions}"
        )
        raise StateConflictError('Match questions are incomplete', code='question_count_mismatch')

    try:
        apply_transition(match_id, 'start', {'started_at': now})
    except RaceLoss as exc:
        raise StateConflictError('Match not ready to start or already in progress', code='cannot_start') from exc

    current_app.logger.info(f"[start] match={match_id} countdown={current_app.config.get('START_COUNTDOWN_SEC', 3)}s")
    notify_match_update(match_id, STARTING)
    return questions


def cancel_match(match_id: int, user_id: str) -> Match:
    match = get_match(match_id)
    if match.player1_id != user_id:
        raise AuthorizationError('User not authorized to cancel match', code='not_match_owner')
    if match.status not in (WAITING, READY):
        raise StateConflictError(f'Cannot cancel a match that is {match.status}', code='cannot_cancel')

    try:
        apply_transition(match_id, 'cancel', status=match.status)
    except RaceLoss as exc:
        raise StateConflictError('Match changed while cancelling, try again', code='cannot_cancel') from exc

    current_app.logger.info(f"[cancel] match={match_id} by={user_id}")
    notify_match_update(match_id, CANCELLED)
    return get_match(match_id)


def list_open_matches(user_id: str) -> List[Match]:
    return (
        Match.query.filter(Match.status == WAITING, Match.player1_id != user_id)
        .order_by(Match.created_at.desc(), Match.id.desc())
        .all()
    )


def activate_match(match_id: int, now) -> None:
    """End of countdown: the first question goes live. Raises RaceLoss."""
    apply_transition(match_id, 'activate', {'current_question_index': 0, 'question_start_time': now})
    current_app.logger.info(f"[activate] match={match_id}")
    notify_match_update(match_id, ACTIVE, 0)


def advance_question(match_id: int, expected_index: int, now) -> None:
    """Move from question `expected_index` to the next one. Raises RaceLoss."""
    next_index = expected_index + 1
    apply_transition(
        match_id,
        'advance',
        {'current_question_index': next_index, 'question_start_time': now},
        current_question_index=expected_index,
    )
    current_app.logger.info(f"[advance] match={match_id} question {expected_index} -> {next_index}")
    notify_match_update(match_id, ACTIVE, next_index)
