"""CLI entry point for admissions-agent."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from admissions_agent.ai.agents import build_agent_configs
from admissions_agent.app import AdmissionsAgentApp
from admissions_agent.config import AppConfig, load_config
from admissions_agent.core.types import StreamEventType
from admissions_agent.log import setup_logging


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    parser.add_argument("-e", "--env", default=".env", help="Path to .env file")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="admissions-agent",
        description="Multi-agent study-abroad admissions assistant",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # chat command
    chat_parser = subparsers.add_parser("chat", help="Interactive streaming chat session")
    _add_config_args(chat_parser)
    chat_parser.add_argument("-u", "--user", default="cli-user", help="User id")
    chat_parser.add_argument("-l", "--locale", default=None, help="Reply language (zh or en)")

    # ask command
    ask_parser = subparsers.add_parser("ask", help="Send one message and print the response JSON")
    _add_config_args(ask_parser)
    ask_parser.add_argument("message", help="Message to send")
    ask_parser.add_argument("-u", "--user", default="cli-user", help="User id")
    ask_parser.add_argument("--conversation", default=None, help="Conversation id to continue")
    ask_parser.add_argument("-l", "--locale", default=None, help="Reply language (zh or en)")

    # config-check command
    check_parser = subparsers.add_parser("config-check", help="Validate configuration and agent wiring")
    _add_config_args(check_parser)

    # agents command
    agents_parser = subparsers.add_parser("agents", help="Show agent configuration")
    _add_config_args(agents_parser)

    args = parser.parse_args()

    if args.command is None:
        # Default to chat
        args.command = "chat"
        args.config = "config.yaml"
        args.env = ".env"
        args.user = "cli-user"
        args.locale = None

    if args.command == "config-check":
        _check_config(args.config, args.env)
    elif args.command == "agents":
        _agents_info(args.config, args.env)
    elif args.command == "ask":
        config = _load(args.config, args.env)
        asyncio.run(_ask(config, args.user, args.message, args.conversation, args.locale))
    elif args.command == "chat":
        config = _load(args.config, args.env)
        asyncio.run(_chat(config, args.user, args.locale))


def _load(config_path: str, env_path: str) -> AppConfig:
    try:
        config = load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Copy config.example.yaml to config.yaml and fill in your API key")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.log_level, json_output=config.is_production)
    return config


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    try:
        config = load_config(config_path, env_path)
        app = AdmissionsAgentApp(config)
        report = app.validate()
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Configuration valid: {config_path}")
    print(f"  Environment: {config.environment}")
    print(f"  Default model: {config.agent.default_model}")
    print(f"  Locale: {config.agent.default_locale}")
    print(f"  Workflow streaming: {config.agent.use_workflow}")
    print(f"  Max delegation depth: {config.agent.max_delegation_depth}")
    print(f"  Fast router: {config.fast_router.enabled} (threshold={config.fast_router.confidence_threshold})")
    print(f"  Storage: {config.storage.backend} ({config.storage.db_path})")
    print(f"  Agents configured: {len(app.agent_configs)}")
    print(f"  Tools registered: {len(app.tool_registry.all_tools())}")
    for warning in report.warnings:
        print(f"  Warning: {warning}")
    if not report.valid:
        for error in report.errors:
            print(f"  Error: {error}", file=sys.stderr)
        sys.exit(1)


def _agents_info(config_path: str, env_path: str) -> None:
    """Show model, tools and delegation targets for each agent."""
    try:
        config = load_config(config_path, env_path)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    print("Agent Configuration")
    print("=" * 50)
    for agent_type, cfg in build_agent_configs(config.agent.default_model, config.agents).items():
        print(f"\n  Agent: {agent_type.value} ({cfg.name})")
        print(f"    Model    : {cfg.model}")
        print(f"    Temp     : {cfg.temperature}")
        print(f"    Tokens   : {cfg.max_tokens}")
        print(f"    Tools    : {', '.join(cfg.tools) if cfg.tools else '(none)'}")
        delegates = ", ".join(a.value for a in cfg.can_delegate)
        print(f"    Delegates: {delegates or '(none)'}")
    print()


async def _ask(
    config: AppConfig,
    user_id: str,
    message: str,
    conversation_id: str | None,
    locale: str | None,
) -> None:
    app = AdmissionsAgentApp(config)
    await app.start()
    try:
        response = await app.orchestrator.handle_message(user_id, message, conversation_id, locale)
    finally:
        await app.stop()
    print(json.dumps(response.to_dict(), ensure_ascii=False, indent=2))


async def _chat(config: AppConfig, user_id: str, locale: str | None) -> None:
    app = AdmissionsAgentApp(config)
    await app.start()
    conversation_id: str | None = None
    print("Type /quit to exit, /clear to start a new conversation.")

    try:
        while True:
            try:
                line = (await asyncio.to_thread(input, "> ")).strip()
            except EOFError:
                break
            if not line:
                continue
            if line in ("/quit", "/exit"):
                break
            if line == "/clear":
                if conversation_id:
                    await app.orchestrator.clear_conversation(user_id, conversation_id)
                conversation_id = None
                continue

            async for event in app.orchestrator.handle_message_stream(user_id, line, conversation_id, locale):
                match event.type:
                    case StreamEventType.START:
                        conversation_id = event.conversation_id or conversation_id
                    case StreamEventType.CONTENT:
                        print(event.content, end="", flush=True)
                    case StreamEventType.TOOL_START:
                        print(f"\n[{event.agent}] {event.tool} ...", file=sys.stderr)
                    case StreamEventType.AGENT_SWITCH:
                        print(f"\n[-> {event.agent}]", file=sys.stderr)
                    case StreamEventType.ERROR:
                        print(f"\n[error] {event.error}", file=sys.stderr)
                    case StreamEventType.DONE:
                        print()
    finally:
        await app.stop()


if __name__ == "__main__":
    main()
