from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from huechat.database import Base


class User(Base):
    """
    A chat participant.

    Design notes:
    - identity is the canonical lowercase "#rrggbb" colour code; it doubles
      as username and display colour
    - password_hash never leaves the database layer
    - rows are never mutated after sign-up, only deleted
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    identity = Column(String(7), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, identity={self.identity})>"


class Session(Base):
    """
    Server-side session storage.

    Design notes:
    - token is the value stored in the cookie (32 random bytes, hex encoded)
    - expires_at doubles as the presence signal: it slides forward on every
      authorised call and is pushed into the past on sign-out
    - a user may hold several sessions (one per device)
    """
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(64), unique=True, nullable=False, index=True)
    user_identity = Column(String(7), ForeignKey("users.identity", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)

    __table_args__ = (
        Index('ix_session_lookup', 'token', 'expires_at'),
    )

    def __repr__(self):
        return f"<Session(id={self.id}, user={self.user_identity})>"


class FriendRequest(Base):
    """
    Directional friend request. One row per ordered (from, to) pair; accepted
    and rejected rows are kept as history.
    """
    __tablename__ = "friend_requests"

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    id = Column(Integer, primary_key=True, index=True)
    from_identity = Column(String(7), ForeignKey("users.identity", ondelete="CASCADE"), nullable=False)
    to_identity = Column(String(7), ForeignKey("users.identity", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(16), nullable=False, default=PENDING)
    created_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint('from_identity', 'to_identity', name='uq_friend_request_pair'),
    )

    def __repr__(self):
        return f"<FriendRequest(id={self.id}, {self.from_identity}->{self.to_identity}, {self.status})>"


class Friend(Base):
    """
    One direction of a friendship. Every edge exists as owner->friend and
    friend->owner with the same created_at; nickname is what the owner calls
    the friend.
    """
    __tablename__ = "friends"

    id = Column(Integer, primary_key=True, index=True)
    owner_identity = Column(String(7), ForeignKey("users.identity", ondelete="CASCADE"), nullable=False)
    friend_identity = Column(String(7), ForeignKey("users.identity", ondelete="CASCADE"), nullable=False)
    nickname = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint('owner_identity', 'friend_identity', name='uq_friend_edge'),
    )

    def __repr__(self):
        return f"<Friend({self.owner_identity}->{self.friend_identity})>"


class Message(Base):
    """
    Group chat message.

    Lifecycle: created -> optionally edited -> optionally soft-deleted ->
    hard-purged by the retention sweep. author_identity is deliberately not a
    foreign key: soft-deleted rows outlive their author until the sweep.
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    author_identity = Column(String(7), nullable=False, index=True)
    body = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, index=True)
    edited_at = Column(DateTime, nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)

    def __repr__(self):
        return f"<Message(id={self.id}, author={self.author_identity})>"


class Reaction(Base):
    """
    One user's emoji on one message. Unique per (message, user, emoji).
    """
    __tablename__ = "reactions"

    id = Column(Integer, primary_key=True, index=True)
    message_id = Column(Integer, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False, index=True)
    user_identity = Column(String(7), nullable=False, index=True)
    emoji = Column(String(32), nullable=False)
    created_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint('message_id', 'user_identity', 'emoji', name='uq_reaction_triple'),
    )

    def __repr__(self):
        return f"<Reaction(message={self.message_id}, user={self.user_identity}, emoji={self.emoji})>"
