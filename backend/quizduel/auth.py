"""Bearer token identity.

Tokens are issued by an external identity provider; the engine only
verifies them and maps them to an opaque user id.
"""
from typing import Optional

from flask import current_app, jsonify
from flask_login import UserMixin
from jose import jwt, JWTError

from quizduel import login_manager


class AuthenticatedUser(UserMixin):
    def __init__(self, user_id: str):
        self.id = user_id

    def __repr__(self):
        return f'<AuthenticatedUser {self.id}>'


def _extract_token(header_value: Optional[str]) -> Optional[str]:
    if not header_value:
        return None
    parts = header_value.split(None, 1)
    if len(parts) == 2 and parts[0].lower() == 'bearer':
        return parts[1].strip() or None
    return header_value.strip() or None


def resolve_user_id(token: str) -> Optional[str]:
    """Return the user id carried by a valid token, or None."""
    try:
        payload = jwt.decode(
            token,
            current_app.config['JWT_SECRET'],
            algorithms=[current_app.config.get('JWT_ALGORITHM', 'HS256')],
        )
    except JWTError as exc:
        current_app.logger.info(f"[auth-reject] invalid token: {exc}")
        return None
    user_id = payload.get('id') or payload.get('sub')
    return str(user_id) if user_id else None


@login_manager.request_loader
def load_user_from_request(request):
    token = _extract_token(request.headers.get('Authorization'))
    if not token:
        return None
    user_id = resolve_user_id(token)
    if not user_id:
        return None
    return AuthenticatedUser(user_id)


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'status': 'FAILED', 'code': 'unauthorized', 'error': 'Unauthorized'}), 401
