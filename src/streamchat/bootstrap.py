from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from fastapi import FastAPI
from loguru import logger

from streamchat.app_config import AppConfig, RuntimeEnv
from streamchat.client import ChatService, HttpAnswerTransport, SessionEngine, SessionStore
from streamchat.logging_config import setup_logging
from streamchat.provider import LLMProvider, create_provider
from streamchat.server import AnswerService, AnswerSettings, ChatRepository, TitleDeriver, create_app


@dataclass
class ServerRuntime:
    app: FastAPI
    repository: ChatRepository
    log_descriptions: list[str]


@dataclass
class ClientRuntime:
    chat_service: ChatService
    store: SessionStore
    engine: SessionEngine
    transport: HttpAnswerTransport
    log_descriptions: list[str]

    async def aclose(self) -> None:
        await self.transport.aclose()


def _database_path(app: AppConfig) -> str:
    if app.database_path == ":memory:":
        return app.database_path
    db_path = Path(app.database_path)
    if not db_path.is_absolute():
        db_path = Path.cwd() / db_path
    return str(db_path)


def build_server(app: AppConfig, provider: LLMProvider, repository: ChatRepository) -> FastAPI:
    title_deriver = TitleDeriver(provider, app.title_model, max_tokens=app.title_max_tokens)
    answer_service = AnswerService(
        repository,
        provider,
        title_deriver,
        AnswerSettings(
            model=app.model,
            max_tokens=app.max_tokens,
            temperature=app.temperature,
            system_prompt=app.system_prompt,
            max_history_messages=app.max_history_messages,
        ),
    )
    return create_app(repository, answer_service)


def bootstrap_server(app: AppConfig, env: RuntimeEnv) -> ServerRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers, intercept_stdlib=True)

    repository = ChatRepository(_database_path(app))
    for user in app.users:
        seeded = repository.add_user(user.name, user.user_id)
        logger.info(f"Seeded user {seeded.name} ({seeded.id})")

    provider = create_provider(app.provider_name, env.provider_api_key)
    return ServerRuntime(
        app=build_server(app, provider, repository),
        repository=repository,
        log_descriptions=log_descriptions,
    )


def bootstrap_client(app: AppConfig) -> ClientRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    store = SessionStore()
    transport = HttpAnswerTransport(app.server_base_url, timeout_seconds=app.request_timeout_seconds)
    engine = SessionEngine(store, transport, idle_timeout_seconds=app.stream_idle_timeout_seconds)
    return ClientRuntime(
        chat_service=ChatService(store, transport, engine),
        store=store,
        engine=engine,
        transport=transport,
        log_descriptions=log_descriptions,
    )
