from flask import current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError


class MatchError(Exception):
    """Base class for errors surfaced to API callers with a stable code."""

    code = 'match_error'
    http_status = 400

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self):
        return {'status': 'FAILED', 'code': self.code, 'error': self.message}


class ValidationError(MatchError):
    code = 'invalid_request'
    http_status = 400


class AuthorizationError(MatchError):
    code = 'forbidden'
    http_status = 403


class NotFoundError(MatchError):
    code = 'not_found'
    http_status = 404


class StateConflictError(MatchError):
    code = 'state_conflict'
    http_status = 409


class DependencyFailure(MatchError):
    code = 'dependency_failure'
    http_status = 502


class RaceLoss(MatchError):
    """A conditional write matched zero rows: another actor got there first."""

    code = 'race_lost'
    http_status = 409


def handle_match_error(exc: MatchError):
    return jsonify(exc.to_dict()), exc.http_status


def handle_storage_error(exc: SQLAlchemyError):
    from quizduel import db
    db.session.rollback()
    current_app.logger.error(f"[storage-fail] {exc}")
    failure = DependencyFailure('Storage is unavailable', code='storage_unavailable')
    return jsonify(failure.to_dict()), failure.http_status


def register_error_handlers(app) -> None:
    app.register_error_handler(MatchError, handle_match_error)
    app.register_error_handler(SQLAlchemyError, handle_storage_error)
