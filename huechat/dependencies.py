from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from huechat.chat import ChatService
from huechat.config import get_settings
from huechat.database import get_db

settings = get_settings()


def get_chat_service(request: Request, db: Session = Depends(get_db)) -> ChatService:
    """
    Build the façade for one request around the process-wide typing
    registry, retention sweeper and clock held on app.state.
    """
    state = request.app.state
    return ChatService(db, state.typing, state.sweeper, state.clock)


def get_session_token(request: Request) -> Optional[str]:
    return request.cookies.get(settings.session_cookie_name)


def get_current_identity(
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service),
) -> str:
    """
    Resolve the caller's identity, renewing their session.

    Raises SessionExpired (401) when the cookie is missing or stale.
    """
    return chat.require_identity(token)
