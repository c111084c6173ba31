from typing import Optional

from fastapi import APIRouter, Depends

from huechat.chat import ChatService
from huechat.dependencies import get_chat_service, get_session_token
from huechat.schemas import (
    ActionResponse,
    FriendRequestCreate,
    FriendRequestResponse,
    FriendResponse,
    NicknameRequest,
)

router = APIRouter(prefix="/friends", tags=["friends"])


@router.get("", response_model=list[FriendResponse])
def list_friends(
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    return [FriendResponse.model_validate(edge) for edge in chat.list_friends(token)]


@router.get("/requests", response_model=list[FriendRequestResponse])
def pending_requests(
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    return [FriendRequestResponse.model_validate(r) for r in chat.list_pending_requests(token)]


@router.post("/requests", response_model=ActionResponse)
def send_request(
    request: FriendRequestCreate,
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    chat.send_friend_request(token, request.to)
    return ActionResponse()


@router.post("/requests/{request_id}/accept", response_model=ActionResponse)
def accept_request(
    request_id: int,
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    chat.accept_friend_request(token, request_id)
    return ActionResponse()


@router.post("/requests/{request_id}/reject", response_model=ActionResponse)
def reject_request(
    request_id: int,
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    chat.reject_friend_request(token, request_id)
    return ActionResponse()


@router.delete("/{friend}", response_model=ActionResponse)
def remove_friend(
    friend: str,
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    """
    Unfriend. The colour goes in the path URL-encoded, e.g. /friends/%2300ff00.
    """
    chat.remove_friend(token, friend)
    return ActionResponse()


@router.put("/{friend}/nickname", response_model=ActionResponse)
def set_nickname(
    friend: str,
    request: NicknameRequest,
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    chat.set_nickname(token, friend, request.nickname)
    return ActionResponse()
