"""Command-line entry point for the office agent."""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from office_agent.bootstrap import build_container
from office_agent.core import AppSettings, configure_logging, load_app_settings
from office_agent.core.crypto import CredentialError
from office_agent.core.interfaces import StoreError
from office_agent.inbox import InboxError
from office_agent.transport import ImapError

SCAN_ERRORS = (InboxError, ImapError, CredentialError, StoreError)


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Office automation agent")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=["info", "scan", "chat", "serve"],
        help="Operation to execute.",
    )
    parser.add_argument(
        "message",
        nargs="?",
        default=None,
        help="Message sent to the agent by the chat command.",
    )
    parser.add_argument(
        "--user",
        dest="user_id",
        default=None,
        help="User identity for scan and chat.",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Bind address for serve.")
    parser.add_argument("--port", type=int, default=8000, help="Port for serve.")
    return parser


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return an exit code."""
    command = args.command
    if command == "info":
        print("Office agent is ready.")
        print(f"LLM provider: {settings.llm.provider} ({settings.llm.model})")
        print(f"Storage backend: {settings.storage.backend}")
        if settings.storage.backend == "sqlite":
            print(f"Database path: {settings.storage.db_path}")
        print(f"PDF output: {settings.documents.output_dir}")
        configured = "yes" if settings.security.encryption_key else "no"
        print(f"Credential key configured: {configured}")
        return 0
    if command == "serve":
        _serve(settings, host=args.host, port=args.port)
        return 0
    if not args.user_id:
        print(f"The {command} command requires --user.")
        return 2
    if command == "scan":
        return asyncio.run(_run_scan(settings, args.user_id))
    if not args.message:
        print("The chat command requires a MESSAGE.")
        return 2
    return asyncio.run(_run_chat(settings, args.user_id, args.message))


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    raise SystemExit(execute(args, settings))


async def _run_scan(settings: AppSettings, user_id: str) -> int:
    """Scan the user's mailbox once and report the outcome."""
    container = build_container(settings)
    try:
        result = await container.resolve("triage").scan_inbox(user_id)
    except SCAN_ERRORS as exc:
        print(f"Scan failed: {exc}")
        return 1
    finally:
        await container.aclose()
    print(
        f"Found {result.emails_found} message(s), stored {result.emails_new} new, "
        f"drafted {result.drafts_created} repl(y/ies)."
    )
    return 0


async def _run_chat(settings: AppSettings, user_id: str, message: str) -> int:
    """Run one agent turn and print the reply."""
    container = build_container(settings)
    try:
        reply = await container.resolve("orchestrator").process_message(
            message, user_id=user_id
        )
    finally:
        await container.resolve("scheduler").stop_all_jobs()
        await container.aclose()
    print(reply)
    return 0


def _serve(settings: AppSettings, *, host: str, port: int) -> None:
    import uvicorn

    from office_agent.web import create_app

    uvicorn.run(create_app(settings), host=host, port=port)


if __name__ == "__main__":
    main()
