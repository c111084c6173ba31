from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from huechat.chat import ChatService
from huechat.dependencies import get_chat_service, get_current_identity, get_session_token
from huechat.link_preview import fetch_title
from huechat.schemas import (
    ActionResponse,
    LinkPreviewResponse,
    MessageRequest,
    MessageView,
    PollResponse,
    PostResponse,
    ReactionRequest,
)

router = APIRouter(prefix="/chat", tags=["chat"])


@router.get("/poll", response_model=PollResponse)
def poll(
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    """
    Single read a client repeats every couple of seconds: feed, presence,
    typing and the pending friend request count.
    """
    return chat.poll(token)


@router.get("/messages", response_model=list[MessageView])
def list_messages(
    limit: Optional[int] = Query(None, ge=1, le=500),
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    return chat.feed(token, limit)


@router.get("/search", response_model=list[MessageView])
def search_messages(
    q: str = "",
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    return chat.search(token, q)


@router.post("/messages", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
def post_message(
    request: MessageRequest,
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    return PostResponse(message_id=chat.post(token, request.body))


@router.patch("/messages/{message_id}", response_model=ActionResponse)
def edit_message(
    message_id: int,
    request: MessageRequest,
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    chat.edit(token, message_id, request.body)
    return ActionResponse()


@router.delete("/messages/{message_id}", response_model=ActionResponse)
def delete_message(
    message_id: int,
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    chat.delete(token, message_id)
    return ActionResponse()


@router.post("/messages/{message_id}/reactions", response_model=ActionResponse)
def add_reaction(
    message_id: int,
    request: ReactionRequest,
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    chat.react(token, message_id, request.emoji)
    return ActionResponse()


@router.delete("/messages/{message_id}/reactions", response_model=ActionResponse)
def remove_reaction(
    message_id: int,
    emoji: str,
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    chat.unreact(token, message_id, emoji)
    return ActionResponse()


@router.post("/typing", response_model=ActionResponse)
def start_typing(
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    chat.mark_typing(token)
    return ActionResponse()


@router.delete("/typing", response_model=ActionResponse)
def stop_typing(
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    chat.clear_typing(token)
    return ActionResponse()


@router.get("/typing", response_model=list[str])
def typing_users(
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    return chat.typing_users(token)


@router.get("/online", response_model=list[str])
def online_users(
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    return chat.online_users(token)


@router.get("/active", response_model=list[str])
def active_users(
    token: Optional[str] = Depends(get_session_token),
    chat: ChatService = Depends(get_chat_service)
):
    return chat.active_users(token)


@router.get("/preview", response_model=LinkPreviewResponse)
def link_preview(url: str, identity: str = Depends(get_current_identity)):
    """
    Title for a link in the composer. Falls back to the URL on any failure.
    """
    return LinkPreviewResponse(url=url, title=fetch_title(url))
