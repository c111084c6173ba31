from typing import Optional

from fastapi import APIRouter, Depends, Response, status

from huechat.chat import ChatService
from huechat.config import get_settings
from huechat.dependencies import get_chat_service, get_session_token
from huechat.models import Session as SessionModel
from huechat.schemas import ActionResponse, CredentialsRequest, UserResponse

router = APIRouter(prefix="/auth", tags=["auth"])
settings = get_settings()


@router.post("/signup", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def signup(
    request: CredentialsRequest,
    response: Response,
    chat: ChatService = Depends(get_chat_service)
):
    """
    Claim a colour and sign in.

    Error cases:
    - 422: Malformed hex code or blank password
    - 409: Colour already taken
    """
    session = chat.register(request.identity, request.password)
    _set_session_cookie(response, session)
    return UserResponse(identity=session.user_identity)


@router.post("/login", response_model=UserResponse)
def login(
    request: CredentialsRequest,
    response: Response,
    chat: ChatService = Depends(get_chat_service)
):
    """
    Authenticate and open a new session.

    Unknown colour and wrong password both answer 401 with the same message.
    """
    session = chat.authenticate(request.identity, request.password)
    _set_session_cookie(response, session)
    return UserResponse(identity=session.user_identity)


@router.post("/logout", response_model=ActionResponse)
def logout(
    response: Response,
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    """
    Mark the session expired and clear the cookie.

    Returns success even if the session doesn't exist (idempotent).
    """
    chat.sign_out(token)
    _clear_session_cookie(response)
    return ActionResponse()


@router.get("/me", response_model=UserResponse)
def me(
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    return UserResponse(identity=chat.require_identity(token))


@router.delete("/me", response_model=ActionResponse)
def delete_me(
    response: Response,
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    """
    Delete the caller's account. Messages are hidden immediately and purged
    by the retention sweep.
    """
    chat.delete_account(token)
    _clear_session_cookie(response)
    return ActionResponse()


@router.get("/users", response_model=list[str])
def users(
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    return chat.list_users(token)


def _cookie_domain() -> Optional[str]:
    return settings.cookie_domain if settings.cookie_domain != "localhost" else None


def _set_session_cookie(response: Response, session: SessionModel):
    """
    Set session cookie with security flags.

    The cookie only carries the opaque token; its lifetime matches the
    session TTL, which slides forward server-side on every call.
    """
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session.token,
        httponly=settings.cookie_httponly,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        max_age=settings.session_expire_days * 24 * 3600,
        path="/",
        domain=_cookie_domain()
    )


def _clear_session_cookie(response: Response):
    response.set_cookie(
        key=settings.session_cookie_name,
        value="",
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        max_age=0,
        path="/",
        domain=_cookie_domain()
    )
