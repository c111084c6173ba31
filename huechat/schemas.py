from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from huechat.auth import normalize_identity
from huechat.errors import InvalidIdentity


def _identity(v: str) -> str:
    try:
        return normalize_identity(v)
    except InvalidIdentity as exc:
        raise ValueError(exc.message)


class CredentialsRequest(BaseModel):
    """
    Sign-up and sign-in payload.

    The identity is normalised to lowercase "#rrggbb" before it reaches the
    core. Passwords are trimmed the same way the sign-in form trims them.
    """
    identity: str
    password: str = Field(max_length=128)

    @field_validator('identity')
    @classmethod
    def validate_identity(cls, v: str) -> str:
        return _identity(v)

    @field_validator('password')
    @classmethod
    def validate_password(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Password is required')
        return v.strip()


class MessageRequest(BaseModel):
    body: str


class ReactionRequest(BaseModel):
    emoji: str


class FriendRequestCreate(BaseModel):
    to: str

    @field_validator('to')
    @classmethod
    def validate_to(cls, v: str) -> str:
        return _identity(v)


class NicknameRequest(BaseModel):
    nickname: Optional[str] = None


class ActionResponse(BaseModel):
    """
    Result envelope for every write. Failures use the same shape with
    success=False and a human readable error.
    """
    success: bool = True
    error: Optional[str] = None


class PostResponse(ActionResponse):
    message_id: int


class UserResponse(BaseModel):
    identity: str


class ReactionSummary(BaseModel):
    emoji: str
    count: int
    users: list[str]


class MessageView(BaseModel):
    """
    A message as one particular viewer sees it.
    """
    id: int
    author: str
    display_name: str
    body: str
    created_at: datetime
    edited_at: Optional[datetime] = None
    editable: bool = False
    reactions: list[ReactionSummary] = []


class FriendResponse(BaseModel):
    friend: str = Field(validation_alias=AliasChoices("friend", "friend_identity"))
    nickname: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FriendRequestResponse(BaseModel):
    id: int
    from_identity: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PollResponse(BaseModel):
    """
    Everything a client needs for one refresh, read at a single instant.
    """
    identity: str
    messages: list[MessageView]
    online: list[str]
    active: list[str]
    typing: list[str]
    pending_requests: int


class LinkPreviewResponse(BaseModel):
    url: str
    title: str
