from collections import namedtuple
from datetime import timedelta

from sqlalchemy.exc import OperationalError

from quizduel import db
from quizduel.models import Match, MatchQuestion, PlayerStats, utcnow
from quizduel.services.matches import stats as stats_module
from quizduel.services.matches.answers import submit_answer
from quizduel.services.matches.scheduler import engine
from quizduel.services.matches.scoring import compute_scores, decide_winner, settle_match
from quizduel.services.matches.stats import get_player_stats, increment_player_stats

Answer = namedtuple('Answer', ['player_id', 'question_id', 'submitted_option'])


def test_compute_scores_counts_only_correct_answers():
    correct = {10: 0, 11: 1, 12: 2}
    answers = [
        Answer('p1', 10, 0),
        Answer('p1', 11, 3),
        Answer('p2', 10, 0),
        Answer('p2', 11, 1),
        Answer('p2', 12, 2),
    ]
    assert compute_scores(['p1', 'p2'], correct, answers) == {'p1': 1, 'p2': 3}


def test_compute_scores_ignores_outsiders_unknown_questions_and_repeats():
    correct = {10: 0}
    answers = [
        Answer('intruder', 10, 0),
        Answer('p1', 99, 0),
        Answer('p1', 10, 0),
        Answer('p1', 10, 0),
    ]
    assert compute_scores(['p1', 'p2'], correct, answers) == {'p1': 1, 'p2': 0}


def test_decide_winner():
    assert decide_winner('p1', 'p2', {'p1': 2, 'p2': 1}) == 'p1'
    assert decide_winner('p1', 'p2', {'p1': 0, 'p2': 1}) == 'p2'
    assert decide_winner('p1', 'p2', {'p1': 2, 'p2': 2}) is None
    assert decide_winner('p1', 'p2', {'p1': 0, 'p2': 0}) is None


def _answer_everything_correctly(match_id, t0, total):
    for index in range(total):
        now = t0 + timedelta(seconds=5 * index)
        question = MatchQuestion.query.filter_by(match_id=match_id, question_index=index).first()
        submit_answer(match_id, 'p1', question.correct_option, question.id, now=now + timedelta(seconds=1))
        submit_answer(match_id, 'p2', question.correct_option, question.id, now=now + timedelta(seconds=2))
        engine.tick(now=now + timedelta(seconds=5))


def test_identical_correct_answers_end_in_draw(live_match):
    t0 = utcnow()
    match_id = live_match(t0, total_questions=3)
    _answer_everything_correctly(match_id, t0, 3)

    db.session.expire_all()
    match = db.session.get(Match, match_id)
    assert match.status == 'finished'
    assert match.winner_id is None
    for player in ('p1', 'p2'):
        assert get_player_stats(player) == {'user_id': player, 'matches_played': 1, 'wins': 0, 'losses': 0}


def test_settle_twice_only_counts_once(live_match):
    t0 = utcnow()
    match_id = live_match(t0, total_questions=1)
    first = settle_match(match_id, now=t0 + timedelta(seconds=5))
    assert first is not None
    assert first.scores == {'p1': 0, 'p2': 0}
    assert settle_match(match_id, now=t0 + timedelta(seconds=6)) is None
    assert get_player_stats('p1')['matches_played'] == 1


def test_stats_failure_does_not_undo_settlement(live_match, monkeypatch):
    t0 = utcnow()
    match_id = live_match(t0, total_questions=1)
    question = MatchQuestion.query.filter_by(match_id=match_id).first()
    submit_answer(match_id, 'p2', question.correct_option, question.id, now=t0)

    real_increment = stats_module.increment_player_stats

    def failing_increment(user_id, **counts):
        if user_id == 'p2':
            raise OperationalError('UPDATE player_stats', {}, Exception('deadlock'))
        return real_increment(user_id, **counts)

    monkeypatch.setattr(stats_module, 'increment_player_stats', failing_increment)
    result = settle_match(match_id, now=t0 + timedelta(seconds=5))

    assert result.winner_id == 'p2'
    assert result.stats_failures == 1
    db.session.expire_all()
    assert db.session.get(Match, match_id).status == 'finished'
    assert get_player_stats('p1') == {'user_id': 'p1', 'matches_played': 1, 'wins': 0, 'losses': 1}
    assert get_player_stats('p2')['matches_played'] == 0


def test_increment_player_stats_accumulates(flask_app):
    increment_player_stats('p1', played=1, wins=1)
    increment_player_stats('p1', played=1, losses=1)
    increment_player_stats('p1', played=1)
    db.session.expire_all()
    stats = db.session.get(PlayerStats, 'p1')
    assert (stats.matches_played, stats.wins, stats.losses) == (3, 1, 1)
