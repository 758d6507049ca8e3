from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from streamchat.server.answer_service import DEFAULT_SYSTEM_PROMPT


@dataclass
class RuntimeEnv:
    provider_api_key: str
    provider_env_var: str


@dataclass
class SeedUser:
    name: str
    user_id: str | None = None


@dataclass
class AppConfig:
    provider_name: str
    model: str
    max_tokens: int
    temperature: float
    system_prompt: str
    title_model: str
    title_max_tokens: int
    max_history_messages: int
    database_path: str
    host: str
    port: int
    server_base_url: str
    request_timeout_seconds: float
    stream_idle_timeout_seconds: float
    log_level: str
    log_consumers: list | None
    users: list[SeedUser] = field(default_factory=list)


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _parse_users(raw: object) -> list[SeedUser]:
    users: list[SeedUser] = []
    if not isinstance(raw, list):
        return users
    for entry in raw:
        if isinstance(entry, str) and entry.strip():
            users.append(SeedUser(name=entry.strip()))
        elif isinstance(entry, dict) and str(entry.get("Name", "")).strip():
            user_id = str(entry.get("UserId", "")).strip() or None
            users.append(SeedUser(name=str(entry["Name"]).strip(), user_id=user_id))
    return users


def parse_app_config(config: dict) -> AppConfig:
    model = config.get("Model", "claude-sonnet-4-5-20250929")
    port = int(config.get("Port", 8083))
    return AppConfig(
        provider_name=config.get("Provider", "anthropic").strip().lower(),
        model=model,
        max_tokens=int(config.get("MaxTokens", 4096)),
        temperature=float(config.get("Temperature", 1.0)),
        system_prompt=config.get("SystemPrompt") or DEFAULT_SYSTEM_PROMPT,
        title_model=config.get("TitleModel") or model,
        title_max_tokens=int(config.get("TitleMaxTokens", 32)),
        max_history_messages=int(config.get("MaxHistoryMessages", 40)),
        database_path=str(config.get("DatabasePath", ".streamchat/chats.db")),
        host=str(config.get("Host", "127.0.0.1")),
        port=port,
        server_base_url=str(config.get("ServerBaseUrl", f"http://127.0.0.1:{port}")),
        request_timeout_seconds=float(config.get("RequestTimeoutSeconds", 30)),
        stream_idle_timeout_seconds=float(config.get("StreamIdleTimeoutSeconds", 60)),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
        users=_parse_users(config.get("Users")),
    )


def resolve_runtime_env(provider_name: str) -> RuntimeEnv:
    if provider_name == "openai":
        provider_api_key = os.environ.get("OPENAI_API_KEY", "")
        provider_env_var = "OPENAI_API_KEY"
    else:
        provider_api_key = os.environ.get("ANTHROPIC_API_KEY", "")
        provider_env_var = "ANTHROPIC_API_KEY"

    return RuntimeEnv(
        provider_api_key=provider_api_key,
        provider_env_var=provider_env_var,
    )
