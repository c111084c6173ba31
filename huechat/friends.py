"""
Friend graph: directional requests plus symmetric friendship edges.

A friendship is stored as two rows (A->B and B->A) so each side can keep its
own nickname for the other. Both rows are always written and deleted in the
same transaction.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from huechat.config import get_settings
from huechat.errors import AlreadyFriends, NotFound, SelfRequest, UnknownUser, ValidationError
from huechat.models import Friend, FriendRequest, User

logger = logging.getLogger(__name__)
settings = get_settings()


def are_friends(db: Session, a: str, b: str) -> bool:
    return db.query(Friend.id).filter(
        Friend.owner_identity == a,
        Friend.friend_identity == b
    ).first() is not None


def send_request(db: Session, from_identity: str, to_identity: str, now: datetime) -> FriendRequest:
    """
    Ask to_identity for friendship.

    Re-sending a pending request is a no-op. A rejected request, or an
    accepted one whose friendship was later removed, is reopened as pending.
    """
    if from_identity == to_identity:
        raise SelfRequest()

    if not db.query(User.id).filter(User.identity == to_identity).first():
        raise UnknownUser()

    if are_friends(db, from_identity, to_identity):
        raise AlreadyFriends()

    request = db.query(FriendRequest).filter(
        FriendRequest.from_identity == from_identity,
        FriendRequest.to_identity == to_identity
    ).first()

    if request is None:
        request = FriendRequest(
            from_identity=from_identity,
            to_identity=to_identity,
            status=FriendRequest.PENDING,
            created_at=now,
        )
        db.add(request)
    elif request.status != FriendRequest.PENDING:
        request.status = FriendRequest.PENDING
        request.created_at = now
    else:
        return request

    try:
        db.commit()
    except IntegrityError:
        # A concurrent duplicate already inserted the pending row
        db.rollback()
        return db.query(FriendRequest).filter(
            FriendRequest.from_identity == from_identity,
            FriendRequest.to_identity == to_identity
        ).one()

    db.refresh(request)
    logger.info("Friend request %s -> %s", from_identity, to_identity)
    return request


def _pending_for(db: Session, request_id: int, by_identity: str) -> FriendRequest:
    request = db.query(FriendRequest).filter(
        FriendRequest.id == request_id,
        FriendRequest.to_identity == by_identity,
        FriendRequest.status == FriendRequest.PENDING
    ).first()
    if request is None:
        raise NotFound("Friend request not found")
    return request


def accept(db: Session, request_id: int, by_identity: str, now: datetime) -> None:
    """
    Accept a pending request addressed to by_identity.

    Both friendship rows and the status flip are committed together. Rows
    that already exist are left alone, so retrying after a failure cannot
    produce duplicate edges.
    """
    request = _pending_for(db, request_id, by_identity)

    for owner, friend in ((request.from_identity, request.to_identity),
                          (request.to_identity, request.from_identity)):
        if not are_friends(db, owner, friend):
            db.add(Friend(owner_identity=owner, friend_identity=friend, created_at=now))

    request.status = FriendRequest.ACCEPTED
    try:
        db.commit()
    except IntegrityError:
        # A concurrent accept of the same request committed the edges first
        db.rollback()
        logger.info("Friend request %s already accepted concurrently", request_id)
        return

    logger.info("Friendship %s <-> %s", request.from_identity, request.to_identity)


def reject(db: Session, request_id: int, by_identity: str) -> None:
    request = _pending_for(db, request_id, by_identity)
    request.status = FriendRequest.REJECTED
    db.commit()


def remove(db: Session, a: str, b: str) -> None:
    """
    Delete both directions of a friendship. Removing a friendship that does
    not exist succeeds.
    """
    db.query(Friend).filter(
        ((Friend.owner_identity == a) & (Friend.friend_identity == b))
        | ((Friend.owner_identity == b) & (Friend.friend_identity == a))
    ).delete(synchronize_session=False)
    db.commit()


def set_nickname(db: Session, owner: str, friend: str, nickname: Optional[str]) -> None:
    """
    Name a friend from the owner's side only; blank clears the nickname.
    """
    nickname = (nickname or "").strip() or None
    if nickname is not None and len(nickname) > settings.max_nickname_length:
        raise ValidationError(f"Nickname must be at most {settings.max_nickname_length} characters")

    edge = db.query(Friend).filter(
        Friend.owner_identity == owner,
        Friend.friend_identity == friend
    ).first()
    if edge is None:
        raise NotFound("Friend not found")

    edge.nickname = nickname
    db.commit()


def list_friends(db: Session, owner: str) -> list[Friend]:
    # Nicknamed friends first regardless of how the backend sorts NULLs
    return db.query(Friend).filter(
        Friend.owner_identity == owner
    ).order_by(
        Friend.nickname.is_(None),
        Friend.nickname.asc(),
        Friend.friend_identity.asc()
    ).all()


def list_pending_requests(db: Session, identity: str) -> list[FriendRequest]:
    return db.query(FriendRequest).filter(
        FriendRequest.to_identity == identity,
        FriendRequest.status == FriendRequest.PENDING
    ).order_by(FriendRequest.created_at.desc(), FriendRequest.id.desc()).all()


def nicknames_for(db: Session, viewer: Optional[str]) -> dict[str, str]:
    """
    Map friend identity -> nickname as seen by viewer.
    """
    if not viewer:
        return {}
    rows = db.query(Friend.friend_identity, Friend.nickname).filter(
        Friend.owner_identity == viewer,
        Friend.nickname.isnot(None)
    ).all()
    return {identity: nickname for identity, nickname in rows}
