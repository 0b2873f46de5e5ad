# Overview: Service-layer operations for session; bearer tokens for the identity collaborator.

"""
Session Token Management Service

Tokens are cryptographically secure, hashed in database, and time-limited.
The plaintext token is only ever returned to the client at login.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, User
from stockroom.time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)


@dataclass
class SessionContext:
    """Identity attached to an authenticated request."""
    user: User
    session: SessionToken

    @property
    def username(self) -> str:
        return self.user.username

    @property
    def role(self) -> str:
        return self.user.role


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy)."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 is sufficient for high-entropy tokens."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(user_id: int) -> tuple[SessionToken, str]:
    """
    Create new session token for user.

    Returns (session_record, plaintext_token).
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise ValueError("User not found")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Returns None if the token is unknown, expired, or revoked.

    A valid session has its last_used_at refreshed.
    """
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if session is None or session.is_revoked:
        return None
    if session.expires_at <= utcnow():
        return None

    user = db.session.query(User).filter_by(id=session.user_id).first()
    if user is None:
        return None

    session.last_used_at = utcnow()
    db.session.commit()

    return SessionContext(user=user, session=session)


def revoke_session(token: str) -> bool:
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if session is None or session.is_revoked:
        return False
    session.is_revoked = True
    db.session.commit()
    return True
