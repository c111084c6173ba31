"""
Presence derived from session expiry.

There is no heartbeat table: resolve_session slides a session's expiry to
now + TTL on every authorised call, so the expiry alone tells us whether a
client is logged in and when it was last heard from.
"""

from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from huechat.auth import session_ttl
from huechat.config import get_settings
from huechat.models import Session as SessionModel

settings = get_settings()


def online_users(db: Session, now: datetime) -> list[str]:
    rows = db.query(SessionModel.user_identity).filter(
        SessionModel.expires_at > now
    ).distinct().order_by(SessionModel.user_identity).all()
    return [identity for (identity,) in rows]


def active_users(db: Session, now: datetime) -> list[str]:
    # refreshed_at == expires_at - ttl, so "refreshed within the window"
    # becomes a plain comparison on expires_at
    cutoff = now + session_ttl() - timedelta(seconds=settings.active_window_seconds)
    rows = db.query(SessionModel.user_identity).filter(
        SessionModel.expires_at > cutoff,
        SessionModel.expires_at > now
    ).distinct().order_by(SessionModel.user_identity).all()
    return [identity for (identity,) in rows]
