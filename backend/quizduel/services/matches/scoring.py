from collections import namedtuple
from typing import Dict, Iterable, Optional

from flask import current_app

from quizduel.errors import RaceLoss
from quizduel.models import ACTIVE, FINISHED, Match, MatchAnswer, MatchQuestion, utcnow
from quizduel.socketio_events import notify_match_update
from .lifecycle import get_match
from .state_machine import apply_transition
from .stats import record_match_outcome

SettlementResult = namedtuple('SettlementResult', ['match_id', 'scores', 'winner_id', 'stats_failures'])


def compute_scores(player_ids: Iterable[str], correct_options: Dict[int, int], answers) -> Dict[str, int]:
    """+1 per correct answer for each participant.

    Answers from non-participants or for unknown questions earn nothing,
    and only the first answer per (player, question) is considered.
    """
    scores = {pid: 0 for pid in player_ids}
    seen = set()
    for a in answers:
        if a.player_id not in scores:
            continue
        key = (a.player_id, a.question_id)
        if key in seen:
            continue
        seen.add(key)
        correct = correct_options.get(a.question_id)
        if correct is not None and a.submitted_option == correct:
            scores[a.player_id] += 1
    return scores


def decide_winner(player1_id: str, player2_id: str, scores: Dict[str, int]) -> Optional[str]:
    """Higher score wins; a tie (including 0-0) is a draw, returned as None."""
    p1 = scores.get(player1_id, 0)
    p2 = scores.get(player2_id, 0)
    if p1 > p2:
        return player1_id
    if p2 > p1:
        return player2_id
    return None


def match_scores(match: Match) -> Dict[str, int]:
    correct_options = {
        q.id: q.correct_option
        for q in MatchQuestion.query.filter_by(match_id=match.id).all()
    }
    answers = MatchAnswer.query.filter_by(match_id=match.id).order_by(MatchAnswer.id).all()
    return compute_scores([match.player1_id, match.player2_id], correct_options, answers)


def settle_match(match_id: int, now=None) -> Optional[SettlementResult]:
    """Score a match and perform its one terminal transition.

    Returns None when there is nothing to do: the match is no longer
    active, or another actor settled it first. Stats are only touched
    by the actor whose conditional finish write succeeded.
    """
    now = now or utcnow()
    match = get_match(match_id)
    if match.status != ACTIVE:
        current_app.logger.info(f"[settle-skip] match={match_id} status={match.status}")
        return None
    if not match.player1_id or not match.player2_id:
        current_app.logger.error(f"[settle-skip] match={match_id} missing player ids")
        return None

    player1_id, player2_id = match.player1_id, match.player2_id
    scores = match_scores(match)
    winner_id = decide_winner(player1_id, player2_id, scores)

    try:
        apply_transition(
            match_id,
            'finish',
            {'winner_id': winner_id, 'finished_at': now, 'question_start_time': None},
        )
    except RaceLoss:
        current_app.logger.info(f"[settle-race] match={match_id} already settled by another actor")
        return None

    current_app.logger.info(
        f"[settle] match={match_id} winner={winner_id or 'draw'} "
        f"score={scores[player1_id]}-{scores[player2_id]}"
    )
    notify_match_update(match_id, FINISHED, None)

    failures = record_match_outcome(match_id, player1_id, player2_id, winner_id)
    return SettlementResult(match_id, scores, winner_id, failures)
