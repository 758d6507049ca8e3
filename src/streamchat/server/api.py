"""HTTP surface of the answer server."""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from loguru import logger

from streamchat.errors import BlankQuestionError, ChatNotFoundError, UpstreamError, UserNotFoundError
from streamchat.server.answer_service import AnswerService
from streamchat.server.repository import ChatRepository
from streamchat.server.schemas import AnswerResponse, AnswerStreamEvent, ChatMessageResponse, ChatSummary, User

USER_HEADER = "X-User-Id"
NDJSON_MEDIA_TYPE = "application/x-ndjson"

router = APIRouter()


def get_repository(request: Request) -> ChatRepository:
    return request.app.state.repository


def get_answer_service(request: Request) -> AnswerService:
    return request.app.state.answer_service


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/users", response_model=list[User], response_model_by_alias=True)
def list_users(repository: ChatRepository = Depends(get_repository)) -> list[User]:
    return [User.from_record(u) for u in repository.list_users()]


@router.get("/chats", response_model=list[ChatSummary], response_model_by_alias=True)
def list_chats(
    user_id: str = Header(alias=USER_HEADER),
    repository: ChatRepository = Depends(get_repository),
) -> list[ChatSummary]:
    if not repository.user_exists(user_id):
        raise UserNotFoundError(user_id)
    logger.debug(f"Fetching chats for user={user_id}")
    return [ChatSummary.from_record(c) for c in repository.list_by_user(user_id)]


@router.get("/chats/{chat_id}", response_model=list[ChatMessageResponse])
def chat_history(
    chat_id: str,
    user_id: str = Header(alias=USER_HEADER),
    repository: ChatRepository = Depends(get_repository),
) -> list[ChatMessageResponse]:
    chat = repository.find_chat(chat_id, user_id)
    if chat is None:
        raise ChatNotFoundError(chat_id)
    logger.debug(f"Fetching chat history for chat={chat_id} (user={user_id})")
    return [ChatMessageResponse.from_record(m) for m in repository.list_messages(chat.id)]


@router.get("/ask", response_model=AnswerResponse, response_model_by_alias=True)
async def ask(
    question: str = Query(min_length=1),
    chat_id: str | None = Query(default=None, alias="chatId"),
    user_id: str = Header(alias=USER_HEADER),
    service: AnswerService = Depends(get_answer_service),
) -> AnswerResponse:
    return await service.ask(user_id, question, chat_id)


@router.get("/ask/stream")
async def ask_stream(
    question: str = Query(min_length=1),
    chat_id: str | None = Query(default=None, alias="chatId"),
    user_id: str = Header(alias=USER_HEADER),
    service: AnswerService = Depends(get_answer_service),
) -> StreamingResponse:
    events = service.open_stream(user_id, question, chat_id)
    return StreamingResponse(
        _ndjson(events),
        media_type=NDJSON_MEDIA_TYPE,
        headers={"Cache-Control": "no-cache"},
    )


async def _ndjson(events: AsyncIterator[AnswerStreamEvent]) -> AsyncIterator[str]:
    async for event in events:
        yield event.to_ndjson()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": message, "message": message})


def create_app(repository: ChatRepository, answer_service: AnswerService) -> FastAPI:
    app = FastAPI(title="streamchat", version="0.1.0")
    app.state.repository = repository
    app.state.answer_service = answer_service
    app.include_router(router)

    @app.exception_handler(UserNotFoundError)
    async def _user_not_found(_: Request, exc: UserNotFoundError) -> JSONResponse:
        return _error(404, str(exc))

    @app.exception_handler(ChatNotFoundError)
    async def _chat_not_found(_: Request, exc: ChatNotFoundError) -> JSONResponse:
        return _error(404, str(exc))

    @app.exception_handler(BlankQuestionError)
    async def _blank_question(_: Request, exc: BlankQuestionError) -> JSONResponse:
        return _error(422, str(exc))

    @app.exception_handler(UpstreamError)
    async def _upstream(_: Request, exc: UpstreamError) -> JSONResponse:
        return _error(502, str(exc))

    return app
