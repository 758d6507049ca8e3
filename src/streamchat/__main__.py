import asyncio
import sys

import click
import uvicorn
from dotenv import load_dotenv
from loguru import logger

from streamchat.app_config import AppConfig, load_json_config, parse_app_config, resolve_runtime_env
from streamchat.bootstrap import ClientRuntime, bootstrap_client, bootstrap_server
from streamchat.client.models import DRAFT
from streamchat.console import ConsoleSink
from streamchat.errors import PreconditionError, StreamChatError
from streamchat.logging_config import setup_logging

_CHAT_HELP = "Commands: /new, /chats, /open <chat id or number>, /history, /help, exit"


def _load_app_config() -> AppConfig:
    load_dotenv()
    return parse_app_config(load_json_config())


@click.group()
def cli() -> None:
    """Streaming chat server and terminal client."""


@cli.command()
@click.option("--host", default=None, help="Bind address (defaults to Host in config.json).")
@click.option("--port", default=None, type=int, help="Bind port (defaults to Port in config.json).")
def serve(host: str | None, port: int | None) -> None:
    """Run the answer server."""
    app_config = _load_app_config()
    env = resolve_runtime_env(app_config.provider_name)
    if not env.provider_api_key:
        setup_logging(level=app_config.log_level, consumers=app_config.log_consumers)
        logger.error(f"{env.provider_env_var} environment variable is required.")
        sys.exit(1)

    runtime = bootstrap_server(app_config, env)
    if runtime.log_descriptions:
        logger.info(f"Logging: {', '.join(runtime.log_descriptions)}")
    logger.info(f"Provider: {app_config.provider_name} (model: {app_config.model})")

    try:
        uvicorn.run(
            runtime.app,
            host=host or app_config.host,
            port=port or app_config.port,
            log_config=None,
        )
    finally:
        runtime.repository.close()


@cli.command()
def users() -> None:
    """List the users known to the server."""
    app_config = _load_app_config()
    runtime = bootstrap_client(app_config)

    async def _run() -> None:
        try:
            for user in await runtime.chat_service.load_users():
                click.echo(f"{user.user_id}\t{user.name}")
        finally:
            await runtime.aclose()

    try:
        asyncio.run(_run())
    except StreamChatError as ex:
        logger.error(f"Failed to load users: {ex}")
        sys.exit(1)


@cli.command()
@click.option("--user", "user_id", required=True, help="Id of the user to chat as.")
@click.option("--chat", "chat_id", default=None, help="Resume an existing chat instead of starting a new one.")
def chat(user_id: str, chat_id: str | None) -> None:
    """Interactive chat session against the answer server."""
    app_config = _load_app_config()
    runtime = bootstrap_client(app_config)
    asyncio.run(_chat_loop(runtime, user_id, chat_id))


async def _chat_loop(runtime: ClientRuntime, user_id: str, chat_id: str | None) -> None:
    service = runtime.chat_service
    store = runtime.store
    try:
        try:
            await service.select_user(user_id)
            if chat_id:
                await service.select_existing_chat(chat_id)
        except StreamChatError as ex:
            logger.error(f"Failed to open session: {ex}")
            return

        print(f"streamchat (user: {user_id}, type 'exit' to quit, '/help' for commands)")
        if runtime.log_descriptions:
            print(f"Logging: {', '.join(runtime.log_descriptions)}")
        if store.selected_key is not None:
            _print_history(runtime)
        print()

        while True:
            try:
                user_input = input("you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()
            if trimmed in ("exit", "quit"):
                break
            if not trimmed:
                continue

            if trimmed.startswith("/"):
                await _handle_command(runtime, trimmed)
                continue

            sink = ConsoleSink()
            try:
                print()
                sink.start()
                result = await service.send_message(trimmed, sink)
                print("\n")
                if result.key != DRAFT:
                    logger.debug(f"Active chat: {result.key}")
            except PreconditionError as ex:
                sink.stop()
                print(f"Cannot send: {ex}\n")
            except StreamChatError as ex:
                sink.stop()
                print()
                logger.error(f"Send failed: {ex}")
            finally:
                sink.stop()
    finally:
        await runtime.aclose()


async def _handle_command(runtime: ClientRuntime, command: str) -> None:
    service = runtime.chat_service
    store = runtime.store
    name, _, argument = command.partition(" ")
    argument = argument.strip()

    try:
        if name == "/help":
            print(_CHAT_HELP)
        elif name == "/new":
            service.begin_new_chat()
            print("Started a new conversation.")
        elif name == "/chats":
            chats = await service.load_chats(store.selected_user_id or "")
            if not chats:
                print("No chats yet.")
            for index, record in enumerate(chats, start=1):
                marker = "*" if store.selected_key is not None and store.selected_key.chat_id == record.chat_id else " "
                print(f"{marker} {index:>2}. {record.title or '(untitled)'}  [{record.chat_id}]")
        elif name == "/open":
            if not argument:
                print("Usage: /open <chat id or number>")
                return
            await service.select_existing_chat(_resolve_chat_id(runtime, argument))
            _print_history(runtime)
        elif name == "/history":
            _print_history(runtime)
        else:
            print(f"Unknown command: {name}. {_CHAT_HELP}")
    except StreamChatError as ex:
        logger.error(f"Command {name} failed: {ex}")
    print()


def _resolve_chat_id(runtime: ClientRuntime, argument: str) -> str:
    if argument.isdigit():
        index = int(argument) - 1
        chats = runtime.store.chats
        if 0 <= index < len(chats):
            return chats[index].chat_id
    return argument


def _print_history(runtime: ClientRuntime) -> None:
    key = runtime.store.active_key()
    if key is None:
        return
    for message in runtime.store.get_history(key):
        print(f"{message.role}> {message.content}")


if __name__ == "__main__":
    cli()
