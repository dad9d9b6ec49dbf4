from collections import namedtuple
from datetime import datetime, timedelta, timezone
import json

from quizduel import db

# Match.status values
WAITING = 'waiting'
READY = 'ready'
STARTING = 'starting'
ACTIVE = 'active'
FINISHED = 'finished'
CANCELLED = 'cancelled'

QuestionOption = namedtuple('QuestionOption', ['index', 'label'])


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() + 'Z' if value else None


class Match(db.Model):
    __tablename__ = 'matches'
    id = db.Column(db.Integer, primary_key=True)
    player1_id = db.Column(db.String(64), nullable=False, index=True)
    player2_id = db.Column(db.String(64), nullable=True, index=True)
    status = db.Column(db.String(16), nullable=False, default=WAITING, index=True)
    category = db.Column(db.String(128), nullable=False)
    difficulty = db.Column(db.String(32), nullable=True)
    stake_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    winner_id = db.Column(db.String(64), nullable=True)
    current_question_index = db.Column(db.Integer, nullable=False, default=0)
    question_start_time = db.Column(db.DateTime, nullable=True)
    question_duration_seconds = db.Column(db.Integer, nullable=False)
    total_questions = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    started_at = db.Column(db.DateTime, nullable=True)
    finished_at = db.Column(db.DateTime, nullable=True)

    questions = db.relationship(
        'MatchQuestion', backref='match', lazy='dynamic', order_by='MatchQuestion.question_index'
    )
    answers = db.relationship('MatchAnswer', backref='match', lazy='dynamic')

    def is_participant(self, user_id) -> bool:
        return user_id is not None and user_id in (self.player1_id, self.player2_id)

    @property
    def question_deadline(self):
        """When the live question expires, or None if no question is live."""
        if self.status != ACTIVE or not self.question_start_time:
            return None
        return self.question_start_time + timedelta(seconds=self.question_duration_seconds)

    def to_dict(self):
        return {
            'id': self.id,
            'player1_id': self.player1_id,
            'player2_id': self.player2_id,
            'status': self.status,
            'category': self.category,
            'difficulty': self.difficulty,
            'stake_amount': float(self.stake_amount) if self.stake_amount is not None else 0.0,
            'winner_id': self.winner_id,
            'current_question_index': self.current_question_index,
            'question_start_time': _iso(self.question_start_time),
            'question_duration_seconds': self.question_duration_seconds,
            'total_questions': self.total_questions,
            'created_at': _iso(self.created_at),
            'started_at': _iso(self.started_at),
            'finished_at': _iso(self.finished_at),
        }


class MatchQuestion(db.Model):
    __tablename__ = 'match_questions'
    __table_args__ = (db.UniqueConstraint('match_id', 'question_index', name='uq_match_question_index'),)
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('matches.id'), nullable=False, index=True)
    question_index = db.Column(db.Integer, nullable=False)
    question_text = db.Column(db.Text, nullable=False)
    options_json = db.Column('options', db.Text, nullable=False)  # JSON list of {index, label}
    correct_option = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @property
    def options(self):
        return [QuestionOption(o['index'], o['label']) for o in json.loads(self.options_json or '[]')]

    @options.setter
    def options(self, value):
        self.options_json = json.dumps([{'index': int(o.index), 'label': str(o.label)} for o in value])

    def to_dict(self, include_answer=False):
        data = {
            'id': self.id,
            'match_id': self.match_id,
            'question_index': self.question_index,
            'question_text': self.question_text,
            'options': [o._asdict() for o in self.options],
        }
        if include_answer:
            data['correct_option'] = self.correct_option
        return data


class MatchAnswer(db.Model):
    __tablename__ = 'match_answers'
    # One answer per player per question
    __table_args__ = (
        db.UniqueConstraint('match_id', 'player_id', 'question_id', name='uq_match_answer_player_question'),
    )
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('matches.id'), nullable=False, index=True)
    player_id = db.Column(db.String(64), nullable=False)
    question_id = db.Column(db.Integer, db.ForeignKey('match_questions.id'), nullable=False)
    submitted_option = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'match_id': self.match_id,
            'player_id': self.player_id,
            'question_id': self.question_id,
            'submitted_option': self.submitted_option,
            'created_at': _iso(self.created_at),
        }


class PlayerStats(db.Model):
    __tablename__ = 'player_stats'
    user_id = db.Column(db.String(64), primary_key=True)
    matches_played = db.Column(db.Integer, nullable=False, default=0)
    wins = db.Column(db.Integer, nullable=False, default=0)
    losses = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'matches_played': self.matches_played or 0,
            'wins': self.wins or 0,
            'losses': self.losses or 0,
        }
