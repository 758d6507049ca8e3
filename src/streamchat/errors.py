from __future__ import annotations


class StreamChatError(Exception):
    """Base class for every error raised by streamchat."""


class PreconditionError(StreamChatError):
    """A send was rejected before anything was written to the session store."""


class NoUserSelectedError(PreconditionError):
    def __init__(self) -> None:
        super().__init__("No user selected")


class NoActiveConversationError(PreconditionError):
    def __init__(self) -> None:
        super().__init__("No conversation selected and no new conversation being composed")


class SendInProgressError(PreconditionError):
    def __init__(self, key: object) -> None:
        super().__init__(f"A message is already being sent for {key}")
        self.key = key


class TransportFailure(StreamChatError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StreamIdleTimeout(TransportFailure):
    def __init__(self, seconds: float) -> None:
        super().__init__(f"No data received from the assistant for {seconds:g}s")
        self.seconds = seconds


class StreamProtocolError(StreamChatError):
    pass


class UpstreamError(StreamChatError):
    pass


class TitleDerivationFailure(StreamChatError):
    pass


class PlaceholderConflictError(StreamChatError):
    pass


class StatusRegressionError(StreamChatError):
    pass


class UserNotFoundError(StreamChatError):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class ChatNotFoundError(StreamChatError):
    def __init__(self, chat_id: str) -> None:
        super().__init__(f"Chat {chat_id} not found")
        self.chat_id = chat_id


class BlankQuestionError(StreamChatError, ValueError):
    def __init__(self) -> None:
        super().__init__("Question must not be blank")
