from streamchat.client.chat_service import ChatService
from streamchat.client.decoder import decode_stream
from streamchat.client.engine import AnswerSink, NullSink, SendResult, SessionEngine
from streamchat.client.models import DRAFT, ChatKey, ConversationKey, Message, MessageRole, MessageStatus, StreamEvent
from streamchat.client.session_store import SessionStore
from streamchat.client.transport import HttpAnswerTransport, with_idle_timeout

__all__ = [
    "DRAFT",
    "AnswerSink",
    "ChatKey",
    "ChatService",
    "ConversationKey",
    "HttpAnswerTransport",
    "Message",
    "MessageRole",
    "MessageStatus",
    "NullSink",
    "SendResult",
    "SessionEngine",
    "SessionStore",
    "StreamEvent",
    "decode_stream",
    "with_idle_timeout",
]
