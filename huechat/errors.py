"""
Error taxonomy shared by the chat core and the HTTP layer.

Every failure the core reports is a ChatError subclass. The five kinds map to
HTTP statuses; the concrete subclasses carry a stable code the front-end can
switch on.
"""

import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ChatError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"
    message = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.message
        super().__init__(self.message)


# --- kinds ---

class ValidationError(ChatError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"
    message = "Invalid input"


class AuthorizationError(ChatError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "authorization_error"
    message = "Not allowed"


class NotFoundError(ChatError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    message = "Not found"


class ConflictError(ChatError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"
    message = "Conflicting state"


class TransientError(ChatError):
    """The only kind a caller may retry."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "transient_error"
    message = "Temporarily unavailable, try again"


# --- validation ---

class InvalidIdentity(ValidationError):
    code = "invalid_identity"
    message = "Please enter a valid hex code (e.g., #ff0000)"


class EmptyBody(ValidationError):
    code = "empty_body"
    message = "Message cannot be empty"


class SelfRequest(ValidationError):
    code = "self_request"
    message = "Cannot send friend request to yourself"


# --- authorization ---

class InvalidCredentials(AuthorizationError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "invalid_credentials"
    message = "Invalid credentials"


class SessionExpired(AuthorizationError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "session_expired"
    message = "Not authenticated"


class Forbidden(AuthorizationError):
    code = "forbidden"
    message = "You can only change your own messages"


class WindowExpired(AuthorizationError):
    code = "window_expired"
    message = "Messages can only be changed within a minute of sending"


# --- not found ---

class UnknownUser(NotFoundError):
    code = "unknown_user"
    message = "User not found"


class NotFound(NotFoundError):
    pass


# --- conflict ---

class AlreadyExists(ConflictError):
    code = "already_exists"
    message = "That colour is already taken"


class AlreadyFriends(ConflictError):
    code = "already_friends"
    message = "Already friends"


class AlreadyDeleted(ConflictError):
    code = "already_deleted"
    message = "Message was already deleted"


# --- transient ---

class StoreUnavailable(TransientError):
    code = "store_unavailable"


def error_body(code: str, message: str) -> dict:
    return {"success": False, "error": message, "code": code}


async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    if isinstance(exc, TransientError):
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.code, exc.message))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Pydantic rejections use the same envelope as core failures.
    """
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid input") if errors else "Invalid input"
    # pydantic prefixes custom ValueError messages
    message = message.removeprefix("Value error, ")
    return JSONResponse(
        status_code=422,
        content=error_body(ValidationError.code, message),
    )
