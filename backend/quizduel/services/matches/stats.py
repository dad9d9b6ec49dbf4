from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from quizduel import db
from quizduel.models import PlayerStats


def increment_player_stats(user_id: str, played: int = 0, wins: int = 0, losses: int = 0) -> None:
    """Atomically add to a player's counters.

    The increment is computed by the database (`col = col + n`), never
    read into this process first, so concurrent settlements of different
    matches cannot lose updates.
    """
    changes = {
        'matches_played': PlayerStats.matches_played + played,
        'wins': PlayerStats.wins + wins,
        'losses': PlayerStats.losses + losses,
    }
    rows = PlayerStats.query.filter_by(user_id=user_id).update(changes, synchronize_session=False)
    if rows == 0:
        db.session.add(PlayerStats(user_id=user_id, matches_played=played, wins=wins, losses=losses))
        try:
            db.session.commit()
            return
        except IntegrityError:
            # Row created concurrently by another settlement
            db.session.rollback()
            PlayerStats.query.filter_by(user_id=user_id).update(changes, synchronize_session=False)
    db.session.commit()


def record_match_outcome(match_id: int, player1_id: str, player2_id: str, winner_id) -> int:
    """Apply the stats increments for a settled match; returns the number that failed.

    A failed increment is logged and does not undo the settlement.
    """
    if winner_id:
        loser_id = player2_id if winner_id == player1_id else player1_id
        increments = [(winner_id, 1, 1, 0), (loser_id, 1, 0, 1)]
    else:
        increments = [(player1_id, 1, 0, 0), (player2_id, 1, 0, 0)]

    failures = 0
    for user_id, played, wins, losses in increments:
        try:
            increment_player_stats(user_id, played=played, wins=wins, losses=losses)
        except SQLAlchemyError:
            db.session.rollback()
            failures += 1
            current_app.logger.exception(f"[stats-fail] match={match_id} player={user_id}")
    return failures


def get_player_stats(user_id: str) -> dict:
    stats = db.session.get(PlayerStats, user_id)
    if stats is None:
        return PlayerStats(user_id=user_id, matches_played=0, wins=0, losses=0).to_dict()
    return stats.to_dict()
