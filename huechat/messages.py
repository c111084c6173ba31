"""
Message store and reaction aggregator.

Messages are append-only apart from the author's edit/delete inside a short
window after creation. Deletion is soft; rows and their reactions disappear
for good only when the retention sweep purges them.
"""

import logging
import threading
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from huechat.auth import cleanup_expired_sessions
from huechat.config import get_settings
from huechat.errors import AlreadyDeleted, EmptyBody, Forbidden, NotFound, ValidationError, WindowExpired
from huechat.friends import nicknames_for
from huechat.models import Friend, Message, Reaction
from huechat.schemas import MessageView, ReactionSummary

logger = logging.getLogger(__name__)
settings = get_settings()


def edit_window() -> timedelta:
    return timedelta(seconds=settings.edit_window_seconds)


def _clean_body(body: Optional[str]) -> str:
    body = (body or "").strip()
    if not body:
        raise EmptyBody()
    if len(body) > settings.max_message_length:
        raise ValidationError(f"Message must be at most {settings.max_message_length} characters")
    return body


def post(db: Session, author: str, body: str, now: datetime) -> int:
    message = Message(author_identity=author, body=_clean_body(body), created_at=now, is_deleted=False)
    db.add(message)
    db.commit()
    db.refresh(message)
    logger.debug("Message %s posted by %s", message.id, author)
    return message.id


def _owned_live_message(db: Session, message_id: int, author: str, now: datetime) -> Message:
    """
    Load a message the author may still change. The window is always measured
    from created_at, so an edit does not buy a fresh minute.
    """
    message = db.get(Message, message_id)
    if message is None:
        raise NotFound("Message not found")
    if message.author_identity != author:
        raise Forbidden()
    if message.is_deleted:
        raise AlreadyDeleted()
    if now - message.created_at > edit_window():
        raise WindowExpired()
    return message


def edit(db: Session, message_id: int, author: str, body: str, now: datetime) -> None:
    body = _clean_body(body)
    message = _owned_live_message(db, message_id, author, now)
    message.body = body
    message.edited_at = now
    db.commit()


def delete(db: Session, message_id: int, author: str, now: datetime) -> None:
    message = _owned_live_message(db, message_id, author, now)
    message.is_deleted = True
    db.commit()
    logger.debug("Message %s soft-deleted", message_id)


def _clean_emoji(emoji: Optional[str]) -> str:
    emoji = (emoji or "").strip()
    if not emoji or len(emoji) > settings.max_emoji_length:
        raise ValidationError("Invalid reaction")
    return emoji


def _has_reaction(db: Session, message_id: int, user: str, emoji: str) -> bool:
    return db.query(Reaction.id).filter(
        Reaction.message_id == message_id,
        Reaction.user_identity == user,
        Reaction.emoji == emoji
    ).first() is not None


def react(db: Session, message_id: int, user: str, emoji: str, now: datetime) -> None:
    """
    Attach emoji to a message. Reacting twice with the same emoji changes
    nothing.
    """
    emoji = _clean_emoji(emoji)
    message = db.get(Message, message_id)
    if message is None or message.is_deleted:
        raise NotFound("Message not found")

    if _has_reaction(db, message_id, user, emoji):
        return

    db.add(Reaction(message_id=message_id, user_identity=user, emoji=emoji, created_at=now))
    try:
        db.commit()
    except IntegrityError:
        # A concurrent request stored the same reaction first
        db.rollback()
        logger.debug("Reaction %s on message %s by %s already stored", emoji, message_id, user)


def unreact(db: Session, message_id: int, user: str, emoji: str) -> None:
    db.query(Reaction).filter(
        Reaction.message_id == message_id,
        Reaction.user_identity == user,
        Reaction.emoji == (emoji or "").strip()
    ).delete(synchronize_session=False)
    db.commit()


def aggregate_reactions(db: Session, message_ids: Iterable[int]) -> dict[int, list[ReactionSummary]]:
    """
    Group reactions per (message, emoji). Emojis keep the order they were
    first used in; users are listed in the order they reacted.
    """
    message_ids = list(message_ids)
    if not message_ids:
        return {}

    rows = db.query(Reaction.message_id, Reaction.emoji, Reaction.user_identity).filter(
        Reaction.message_id.in_(message_ids)
    ).order_by(Reaction.message_id, Reaction.id).all()

    grouped: dict[int, OrderedDict[str, list[str]]] = {}
    for message_id, emoji, user in rows:
        grouped.setdefault(message_id, OrderedDict()).setdefault(emoji, []).append(user)

    return {
        message_id: [ReactionSummary(emoji=emoji, count=len(users), users=users)
                     for emoji, users in per_emoji.items()]
        for message_id, per_emoji in grouped.items()
    }


def _views(db: Session, messages: list[Message], viewer: Optional[str], now: datetime) -> list[MessageView]:
    nicknames = nicknames_for(db, viewer)
    reactions = aggregate_reactions(db, (m.id for m in messages))
    window = edit_window()
    return [
        MessageView(
            id=m.id,
            author=m.author_identity,
            display_name=nicknames.get(m.author_identity, m.author_identity),
            body=m.body,
            created_at=m.created_at,
            edited_at=m.edited_at,
            editable=(m.author_identity == viewer and now - m.created_at <= window),
            reactions=reactions.get(m.id, []),
        )
        for m in messages
    ]


def feed(db: Session, viewer: Optional[str], now: datetime, limit: Optional[int] = None) -> list[MessageView]:
    """
    The latest non-deleted messages, oldest first.
    """
    limit = limit or settings.feed_limit
    latest = db.query(Message).filter(
        Message.is_deleted.is_(False)
    ).order_by(Message.created_at.desc(), Message.id.desc()).limit(limit).all()
    latest.reverse()
    return _views(db, latest, viewer, now)


def search(db: Session, query: str, viewer: Optional[str], now: datetime,
           limit: Optional[int] = None) -> list[MessageView]:
    """
    Case-insensitive substring search over body, author identity and the
    viewer's nickname for the author. Most recent first.
    """
    needle = (query or "").strip().lower()
    if not needle:
        return []
    limit = limit or settings.search_limit

    results = db.query(Message).outerjoin(
        Friend,
        (Friend.friend_identity == Message.author_identity) & (Friend.owner_identity == (viewer or ""))
    ).filter(
        Message.is_deleted.is_(False),
        func.lower(Message.body).contains(needle, autoescape=True)
        | func.lower(Message.author_identity).contains(needle, autoescape=True)
        | func.lower(func.coalesce(Friend.nickname, "")).contains(needle, autoescape=True)
    ).order_by(Message.created_at.desc(), Message.id.desc()).limit(limit).all()
    return _views(db, results, viewer, now)


def sweep_expired(db: Session, before: datetime) -> int:
    """
    Hard-delete messages created before the cutoff, their reactions, and any
    reactions whose message no longer exists. Safe to run repeatedly.
    """
    expired_ids = db.query(Message.id).filter(Message.created_at < before).scalar_subquery()
    db.query(Reaction).filter(Reaction.message_id.in_(expired_ids)).delete(synchronize_session=False)
    purged = db.query(Message).filter(Message.created_at < before).delete(synchronize_session=False)
    db.query(Reaction).filter(
        ~Reaction.message_id.in_(db.query(Message.id).scalar_subquery())
    ).delete(synchronize_session=False)
    db.commit()
    return purged


class RetentionSweeper:
    """
    Runs the retention sweep opportunistically from feed reads, at most once
    per interval. Concurrent callers skip instead of waiting.
    """

    def __init__(self, retention: timedelta, interval: timedelta) -> None:
        self.retention = retention
        self.interval = interval
        self._last_run: Optional[datetime] = None
        self._lock = threading.Lock()

    def due(self, now: datetime) -> bool:
        return self._last_run is None or now - self._last_run >= self.interval

    def run(self, db: Session, now: datetime) -> int:
        cutoff = now - self.retention
        purged = sweep_expired(db, cutoff)
        sessions = cleanup_expired_sessions(db, cutoff)
        self._last_run = now
        if purged or sessions:
            logger.info("Retention sweep removed %d messages and %d stale sessions", purged, sessions)
        return purged

    def maybe_run(self, db: Session, now: datetime) -> Optional[int]:
        if not self.due(now):
            return None
        if not self._lock.acquire(blocking=False):
            return None
        try:
            if not self.due(now):
                return None
            return self.run(db, now)
        finally:
            self._lock.release()
