from streamchat.server.answer_service import AnswerService, AnswerSettings
from streamchat.server.api import create_app
from streamchat.server.repository import ChatRepository
from streamchat.server.title import TitleDeriver

__all__ = [
    "AnswerService",
    "AnswerSettings",
    "ChatRepository",
    "TitleDeriver",
    "create_app",
]
