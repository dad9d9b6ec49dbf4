import threading
from collections import Counter, namedtuple
from typing import Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from quizduel import db, socketio
from quizduel.errors import DependencyFailure, RaceLoss
from quizduel.models import ACTIVE, STARTING, Match, utcnow
from .lifecycle import activate_match, advance_question
from .scoring import settle_match

# What one scan observed about a match. Decisions are made from this
# snapshot and every write re-checks it in its WHERE clause.
MatchSnapshot = namedtuple('MatchSnapshot', [
    'id',
    'status',
    'current_question_index',
    'total_questions',
    'question_start_time',
    'question_duration_seconds',
    'started_at',
])


def snapshot(match: Match) -> MatchSnapshot:
    return MatchSnapshot(
        match.id,
        match.status,
        match.current_question_index,
        match.total_questions,
        match.question_start_time,
        match.question_duration_seconds,
        match.started_at,
    )


def activate_if_due(snap: MatchSnapshot, now, countdown: int) -> str:
    if snap.status != STARTING:
        return 'skipped'
    if snap.started_at is not None and (now - snap.started_at).total_seconds() < countdown:
        return 'pending'
    try:
        activate_match(snap.id, now)
    except RaceLoss:
        current_app.logger.info(f"[tick-race] match={snap.id} already activated")
        return 'race_lost'
    return 'activated'


def process_match(snap: MatchSnapshot, now) -> str:
    """Advance or finish one active match whose question deadline has passed."""
    if snap.status != ACTIVE:
        return 'skipped'
    if snap.question_start_time is None:
        return 'idle'
    elapsed = (now - snap.question_start_time).total_seconds()
    if elapsed < snap.question_duration_seconds:
        return 'pending'

    if snap.current_question_index + 1 < snap.total_questions:
        try:
            advance_question(snap.id, snap.current_question_index, now)
        except RaceLoss:
            current_app.logger.info(
                f"[tick-race] match={snap.id} question={snap.current_question_index} already advanced"
            )
            return 'race_lost'
        return 'advanced'

    result = settle_match(snap.id, now)
    return 'finished' if result is not None else 'race_lost'


def _guarded(fn, snap: MatchSnapshot, *args) -> str:
    # One broken match must not stall the others
    try:
        return fn(snap, *args)
    except (DependencyFailure, SQLAlchemyError):
        db.session.rollback()
        current_app.logger.exception(f"[tick-error] match={snap.id}")
        return 'failed'


def run_tick(now=None) -> Counter:
    """One scan-and-advance pass over starting and active matches."""
    now = now or utcnow()
    countdown = int(current_app.config.get('START_COUNTDOWN_SEC', 3))
    outcomes = Counter()

    starting = [snapshot(m) for m in Match.query.filter_by(status=STARTING).order_by(Match.id).all()]
    active = [snapshot(m) for m in Match.query.filter_by(status=ACTIVE).order_by(Match.id).all()]
    # End the read transaction before the per-match writes
    db.session.commit()

    for snap in starting:
        outcomes[_guarded(activate_if_due, snap, now, countdown)] += 1
    for snap in active:
        outcomes[_guarded(process_match, snap, now)] += 1

    if outcomes['activated'] or outcomes['advanced'] or outcomes['finished'] or outcomes['failed']:
        current_app.logger.info(
            f"[tick] starting={len(starting)} active={len(active)} pending={outcomes['pending']} "
            f"activated={outcomes['activated']} advanced={outcomes['advanced']} "
            f"finished={outcomes['finished']} race_lost={outcomes['race_lost']} failed={outcomes['failed']}"
        )
    return outcomes


class TickScheduler:
    """Process-wide owner of the fixed-interval tick loop.

    start() is idempotent, at most one loop runs at a time, and ticks never
    overlap: a tick that finds the previous one still running is skipped.
    """

    def __init__(self, app=None):
        self.app = None
        self._state_lock = threading.Lock()
        self._tick_lock = threading.Lock()
        self._running = False
        self._generation = 0
        self._task = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.app = app
        app.extensions['tick_scheduler'] = self

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> bool:
        app = self.app
        if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
            return False
        with self._state_lock:
            if self._running:
                app.logger.info("[engine-skip] tick loop already running")
                return False
            self._running = True
            self._generation += 1
            generation = self._generation
        interval = float(app.config.get('TICK_INTERVAL_SEC', 1.0))
        app.logger.info(f"[engine-start] interval={interval}s")
        self._task = socketio.start_background_task(self._loop, interval, generation)
        return True

    def stop(self) -> bool:
        with self._state_lock:
            was_running = self._running
            self._running = False
        if was_running:
            self.app.logger.info("[engine-stop]")
        return was_running

    def _active(self, generation: int) -> bool:
        return self._running and self._generation == generation

    def _loop(self, interval: float, generation: int) -> None:
        # A loop left over from before a stop() exits once a newer start() has run
        while self._active(generation):
            try:
                self.tick()
            except Exception:
                # keep the loop alive; the next tick retries from persisted state
                self.app.logger.exception("[engine-error] tick failed")
            socketio.sleep(interval)
        self.app.logger.info(f"[engine-exit] generation={generation}")

    def tick(self, now=None) -> Optional[Counter]:
        """Run one tick unless another is in progress (then return None)."""
        if not self._tick_lock.acquire(blocking=False):
            self.app.logger.info("[tick-skip] previous tick still running")
            return None
        try:
            if has_app_context():
                return run_tick(now)
            with self.app.app_context():
                return run_tick(now)
        finally:
            self._tick_lock.release()


engine = TickScheduler()
