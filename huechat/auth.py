import logging
import re
import secrets
from datetime import datetime, timedelta
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from huechat.config import get_settings
from huechat.errors import AlreadyExists, InvalidCredentials, InvalidIdentity, ValidationError
from huechat.models import Friend, FriendRequest, Message, Reaction, Session as SessionModel, User

logger = logging.getLogger(__name__)
settings = get_settings()

# Argon2id with library defaults; the salt is embedded in the hash string
ph = PasswordHasher()

IDENTITY_PATTERN = re.compile(r"^#[0-9a-f]{6}$")


def normalize_identity(raw: str) -> str:
    """
    Canonical form of a colour identity: trimmed, lowercase "#rrggbb".
    """
    identity = (raw or "").strip().lower()
    if not IDENTITY_PATTERN.match(identity):
        raise InvalidIdentity()
    return identity


def hash_password(password: str) -> str:
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against stored hash.

    Returns False for any error to avoid information leakage.
    """
    try:
        return ph.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def generate_session_token() -> str:
    """
    Cryptographically secure session token, 64 hex characters.
    """
    return secrets.token_hex(32)


def session_ttl() -> timedelta:
    return timedelta(days=settings.session_expire_days)


def create_session(db: Session, identity: str, now: datetime) -> SessionModel:
    """
    Mint a new session for the identity with a full TTL.
    """
    session = SessionModel(
        token=generate_session_token(),
        user_identity=identity,
        created_at=now,
        expires_at=now + session_ttl(),
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def _check_password(password: str) -> str:
    if not password or not password.strip():
        raise ValidationError("Password is required")
    return password.strip()


def register(db: Session, identity: str, password: str, now: datetime) -> SessionModel:
    """
    Create a user and sign them in.

    Duplicate identities are rejected outright: a colour belongs to the
    first person who claimed it.
    """
    identity = normalize_identity(identity)
    password = _check_password(password)

    if db.query(User.id).filter(User.identity == identity).first():
        raise AlreadyExists()

    user = User(identity=identity, password_hash=hash_password(password), created_at=now)
    try:
        db.add(user)
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent sign-up for the same colour
        db.rollback()
        raise AlreadyExists()

    logger.info("Registered %s", identity)
    return create_session(db, identity, now)


def authenticate(db: Session, identity: str, password: str, now: datetime) -> SessionModel:
    """
    Verify credentials and open a new session.

    Unknown identity and wrong password produce the same error.
    """
    try:
        identity = normalize_identity(identity)
    except InvalidIdentity:
        raise InvalidCredentials()
    password = _check_password(password)

    user = db.query(User).filter(User.identity == identity).first()
    if not user or not verify_password(password, user.password_hash):
        logger.info("Failed sign-in for %s", identity)
        raise InvalidCredentials()

    return create_session(db, identity, now)


def resolve_session(db: Session, token: Optional[str], now: datetime) -> Optional[str]:
    """
    Validate a session token and return its identity.

    A live session is slid forward to a full TTL, which makes every
    authorised call a presence heartbeat. Returns None when the token is
    missing, unknown or expired.
    """
    if not token:
        return None

    session = db.query(SessionModel).filter(
        SessionModel.token == token,
        SessionModel.expires_at > now
    ).first()

    if not session:
        return None

    session.expires_at = now + session_ttl()
    db.commit()
    return session.user_identity


def invalidate(db: Session, token: Optional[str], now: datetime) -> bool:
    """
    Sign out: push the session's expiry into the past.

    The row stays until cleanup_expired_sessions removes it, but the user
    stops counting as online immediately. Returns False if the token is unknown.
    """
    if not token:
        return False
    result = db.query(SessionModel).filter(
        SessionModel.token == token
    ).update({SessionModel.expires_at: now - timedelta(seconds=1)})

    db.commit()
    return result > 0


def delete_identity(db: Session, identity: str) -> None:
    """
    Remove a user and everything that hangs off them.

    Friend requests, friendships, sessions and reactions are deleted; the
    user's messages are only soft-deleted so they vanish from every feed
    until the retention sweep purges them.
    """
    db.query(FriendRequest).filter(
        (FriendRequest.from_identity == identity) | (FriendRequest.to_identity == identity)
    ).delete(synchronize_session=False)
    db.query(Friend).filter(
        (Friend.owner_identity == identity) | (Friend.friend_identity == identity)
    ).delete(synchronize_session=False)
    db.query(SessionModel).filter(SessionModel.user_identity == identity).delete(synchronize_session=False)
    db.query(Reaction).filter(Reaction.user_identity == identity).delete(synchronize_session=False)
    db.query(Message).filter(Message.author_identity == identity).update(
        {Message.is_deleted: True}, synchronize_session=False
    )
    db.query(User).filter(User.identity == identity).delete(synchronize_session=False)
    db.commit()
    logger.info("Deleted account %s", identity)


def list_users(db: Session) -> list[str]:
    rows = db.query(User.identity).order_by(User.created_at.asc(), User.id.asc()).all()
    return [identity for (identity,) in rows]


def cleanup_expired_sessions(db: Session, before: datetime) -> int:
    """
    Remove sessions that expired before the cutoff.

    Returns number of sessions cleaned up.
    """
    result = db.query(SessionModel).filter(
        SessionModel.expires_at <= before
    ).delete(synchronize_session=False)

    db.commit()
    return result
