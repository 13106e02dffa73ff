# Overview: Bearer sessions for the tracker API: issue, check, revoke and purge tokens.

"""
Bearer sessions.

A login hands the client a random hex token once; only its SHA-256 digest
is kept in `session_tokens`. A session ends when it is 24 hours old, after
2 hours without a request, on logout, on a password change or reset, or
when its owner is deactivated. Ended rows stay for auditing until
`cleanup_expired_sessions` purges them.
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta
from ..extensions import db
from ..models import SessionToken, User
from itemtracker.time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)
# Ended sessions younger than this are kept
SESSION_RETENTION = timedelta(days=30)


@dataclass
class SessionContext:
    """What `require_auth` exposes on `g` for the current request."""
    user: User
    session: SessionToken


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    # Tokens carry 256 random bits, so a plain digest is enough
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _revoke(session: SessionToken, reason: str, now: datetime) -> None:
    session.is_revoked = True
    session.revoked_at = now
    session.revoked_reason = reason


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Open a session for `user_id`.

    Returns the stored row and the plaintext token; the token is not
    recoverable afterwards.
    """
    if db.session.get(User, user_id) is None:
        raise ValueError("User not found")

    token = generate_token()
    now = utcnow()
    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a presented token to its live session, or None.

    A session found idle too long, or owned by a deactivated user, is
    revoked on the spot. A live one has its last_used_at bumped.
    """
    now = utcnow()
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if session is None or session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout", now)
        db.session.commit()
        return None

    user = session.user
    if user is None or not user.is_active:
        _revoke(session, "User account deactivated", now)
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()
    return SessionContext(user=user, session=session)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """End the session behind `token`. False when it was not live."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if session is None:
        return False

    _revoke(session, reason, utcnow())
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions") -> int:
    """End every live session of a user; returns how many were ended."""
    now = utcnow()
    sessions = db.session.query(SessionToken).filter_by(
        user_id=user_id,
        is_revoked=False,
    ).all()
    for session in sessions:
        _revoke(session, reason, now)
    db.session.commit()
    return len(sessions)


def cleanup_expired_sessions() -> int:
    """Delete ended sessions past the retention window; returns the count."""
    now = utcnow()
    deleted = db.session.query(SessionToken).filter(
        db.or_(
            SessionToken.expires_at < now,
            SessionToken.is_revoked.is_(True),
        ),
        SessionToken.created_at < now - SESSION_RETENTION,
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
