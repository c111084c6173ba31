"""
Sync façade: the one entry point the HTTP layer talks to.

Every authorised operation resolves the session first, which doubles as the
presence heartbeat, then delegates to the stores. Store failures are
converted here so no SQLAlchemy exception escapes to callers.
"""

import functools
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from huechat import auth, friends, messages, presence
from huechat.database import utcnow
from huechat.errors import SessionExpired, StoreUnavailable
from huechat.messages import RetentionSweeper
from huechat.models import Friend, FriendRequest, Session as SessionModel
from huechat.schemas import MessageView, PollResponse
from huechat.typing_registry import TypingRegistry

logger = logging.getLogger(__name__)


def store_call(method):
    """
    Roll back and report StoreUnavailable when the database fails.
    """
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Store failure in %s: %s", method.__name__, exc)
            raise StoreUnavailable() from exc
    return wrapper


class ChatService:
    def __init__(
        self,
        db: Session,
        typing: TypingRegistry,
        sweeper: RetentionSweeper,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.typing = typing
        self.sweeper = sweeper
        self.clock = clock

    # --- auth ---

    @store_call
    def register(self, identity: str, password: str) -> SessionModel:
        return auth.register(self.db, identity, password, self.clock())

    @store_call
    def authenticate(self, identity: str, password: str) -> SessionModel:
        return auth.authenticate(self.db, identity, password, self.clock())

    @store_call
    def current_identity(self, token: Optional[str]) -> Optional[str]:
        return auth.resolve_session(self.db, token, self.clock())

    def require_identity(self, token: Optional[str]) -> str:
        identity = self.current_identity(token)
        if identity is None:
            raise SessionExpired()
        return identity

    @store_call
    def sign_out(self, token: Optional[str]) -> None:
        identity = auth.resolve_session(self.db, token, self.clock())
        if identity is not None:
            self.typing.clear(identity)
        auth.invalidate(self.db, token, self.clock())

    @store_call
    def delete_account(self, token: Optional[str]) -> str:
        identity = self.require_identity(token)
        self.typing.clear(identity)
        auth.delete_identity(self.db, identity)
        return identity

    @store_call
    def list_users(self, token: Optional[str]) -> list[str]:
        self.require_identity(token)
        return auth.list_users(self.db)

    # --- presence and typing ---

    @store_call
    def online_users(self, token: Optional[str]) -> list[str]:
        self.require_identity(token)
        return presence.online_users(self.db, self.clock())

    @store_call
    def active_users(self, token: Optional[str]) -> list[str]:
        self.require_identity(token)
        return presence.active_users(self.db, self.clock())

    def mark_typing(self, token: Optional[str]) -> None:
        self.typing.mark(self.require_identity(token))

    def clear_typing(self, token: Optional[str]) -> None:
        self.typing.clear(self.require_identity(token))

    def typing_users(self, token: Optional[str]) -> list[str]:
        self.require_identity(token)
        return self.typing.active()

    def _sweep(self, now: datetime) -> None:
        self.typing.sweep()
        # a failed sweep leaves the read intact
        try:
            self.sweeper.maybe_run(self.db, now)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Retention sweep failed: %s", exc)

    # --- messages ---

    @store_call
    def post(self, token: Optional[str], body: str) -> int:
        identity = self.require_identity(token)
        message_id = messages.post(self.db, identity, body, self.clock())
        self.typing.clear(identity)
        return message_id

    @store_call
    def edit(self, token: Optional[str], message_id: int, body: str) -> None:
        identity = self.require_identity(token)
        messages.edit(self.db, message_id, identity, body, self.clock())

    @store_call
    def delete(self, token: Optional[str], message_id: int) -> None:
        identity = self.require_identity(token)
        messages.delete(self.db, message_id, identity, self.clock())

    @store_call
    def react(self, token: Optional[str], message_id: int, emoji: str) -> None:
        identity = self.require_identity(token)
        messages.react(self.db, message_id, identity, emoji, self.clock())

    @store_call
    def unreact(self, token: Optional[str], message_id: int, emoji: str) -> None:
        identity = self.require_identity(token)
        messages.unreact(self.db, message_id, identity, emoji)

    @store_call
    def feed(self, token: Optional[str], limit: Optional[int] = None) -> list[MessageView]:
        identity = self.require_identity(token)
        now = self.clock()
        self._sweep(now)
        return messages.feed(self.db, identity, now, limit)

    @store_call
    def search(self, token: Optional[str], query: str, limit: Optional[int] = None) -> list[MessageView]:
        identity = self.require_identity(token)
        return messages.search(self.db, query, identity, self.clock(), limit)

    @store_call
    def poll(self, token: Optional[str]) -> PollResponse:
        """
        One refresh cycle. Every sub-read uses the same instant so the
        client never sees, say, a typing mark that outlived the message it
        turned into.
        """
        identity = self.require_identity(token)
        now = self.clock()
        self._sweep(now)
        return PollResponse(
            identity=identity,
            messages=messages.feed(self.db, identity, now),
            online=presence.online_users(self.db, now),
            active=presence.active_users(self.db, now),
            typing=self.typing.active(),
            pending_requests=len(friends.list_pending_requests(self.db, identity)),
        )

    # --- friends ---

    @store_call
    def send_friend_request(self, token: Optional[str], to_identity: str) -> FriendRequest:
        identity = self.require_identity(token)
        return friends.send_request(self.db, identity, auth.normalize_identity(to_identity), self.clock())

    @store_call
    def accept_friend_request(self, token: Optional[str], request_id: int) -> None:
        identity = self.require_identity(token)
        friends.accept(self.db, request_id, identity, self.clock())

    @store_call
    def reject_friend_request(self, token: Optional[str], request_id: int) -> None:
        identity = self.require_identity(token)
        friends.reject(self.db, request_id, identity)

    @store_call
    def remove_friend(self, token: Optional[str], friend: str) -> None:
        identity = self.require_identity(token)
        friends.remove(self.db, identity, auth.normalize_identity(friend))

    @store_call
    def set_nickname(self, token: Optional[str], friend: str, nickname: Optional[str]) -> None:
        identity = self.require_identity(token)
        friends.set_nickname(self.db, identity, auth.normalize_identity(friend), nickname)

    @store_call
    def list_friends(self, token: Optional[str]) -> list[Friend]:
        identity = self.require_identity(token)
        return friends.list_friends(self.db, identity)

    @store_call
    def list_pending_requests(self, token: Optional[str]) -> list[FriendRequest]:
        identity = self.require_identity(token)
        return friends.list_pending_requests(self.db, identity)
