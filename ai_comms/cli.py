"""CLI entry point for ai-comms.

Talks to an agent defined in a records file (YAML or JSON with providers,
models and agents lists) from the terminal.

Entry point:
    ai-comms [--records FILE] context <agent-id>
    ai-comms [--records FILE] send <agent-id> <text> [--stream]
    ai-comms [--records FILE] validate <agent-id>
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from ai_comms.errors import AICommunicationError

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────
# ARGUMENT PARSING
# ─────────────────────────────────────────────────────────────────────


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ai-comms",
        description="Send messages to configured AI agents.",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--records", default=None,
        help="Records file (YAML/JSON). Default: $AI_COMMS_RECORDS or records.yaml",
    )
    sub = parser.add_subparsers(dest="command")

    # context
    context_p = sub.add_parser("context", help="Show the resolved agent/model/provider")
    context_p.add_argument("agent_id", type=int)

    # send
    send_p = sub.add_parser("send", help="Send a message to an agent")
    send_p.add_argument("agent_id", type=int)
    send_p.add_argument("text", help="Message text")
    send_p.add_argument("--stream", action="store_true", help="Print tokens as they arrive")
    send_p.add_argument("--temperature", type=float, default=None, help="Sampling temperature")
    send_p.add_argument("--max-tokens", type=int, default=None, help="Max tokens in the reply")

    # validate
    validate_p = sub.add_parser("validate", help="Check an agent's provider credentials")
    validate_p.add_argument("agent_id", type=int)

    return parser


# ─────────────────────────────────────────────────────────────────────
# COMMANDS
# ─────────────────────────────────────────────────────────────────────


def _build_service(records_path: Optional[str]):
    from ai_comms.config import get_records_path
    from ai_comms.manager import AICommunicationManager
    from ai_comms.records import FileRecordSource
    from ai_comms.service import AICommunicationService

    return AICommunicationService(
        FileRecordSource(records_path or get_records_path()),
        AICommunicationManager(),
    )


async def _cmd_context(service, agent_id: int) -> int:
    """Print the resolved context with secrets redacted. Returns exit code."""
    context = await service.get_agent_context(agent_id)
    data = context.model_dump(mode="json")
    if data["provider"].get("secret_key"):
        data["provider"]["secret_key"] = "***"
    json.dump(data, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


async def _cmd_send(
    service,
    agent_id: int,
    text: str,
    stream: bool,
    temperature: Optional[float],
    max_tokens: Optional[int],
) -> int:
    from ai_comms.schema import CommunicationOptions

    options = CommunicationOptions(temperature=temperature, max_tokens=max_tokens)

    if not stream:
        response = await service.send_message_to_agent(agent_id, text, options)
        print(response.content)
        if response.usage:
            print(
                f"[tokens: {response.usage.input_tokens} in / "
                f"{response.usage.output_tokens} out]",
                file=sys.stderr,
            )
        return 0

    async for event in service.stream_message_to_agent(agent_id, text, options):
        if event.type == "chunk":
            sys.stdout.write(event.data or "")
            sys.stdout.flush()
        elif event.type == "complete":
            sys.stdout.write("\n")
            return 0
        else:
            sys.stdout.write("\n")
            print(f"Error: {event.error}", file=sys.stderr)
            return 1
    return 1


async def _cmd_validate(service, agent_id: int) -> int:
    ok = await service.validate_agent(agent_id)
    print("valid" if ok else "invalid")
    return 0 if ok else 1


async def _run(args) -> int:
    service = _build_service(args.records)
    try:
        if args.command == "context":
            return await _cmd_context(service, args.agent_id)
        elif args.command == "send":
            return await _cmd_send(
                service,
                agent_id=args.agent_id,
                text=args.text,
                stream=args.stream,
                temperature=args.temperature,
                max_tokens=args.max_tokens,
            )
        elif args.command == "validate":
            return await _cmd_validate(service, args.agent_id)
    except AICommunicationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    return 1


# ─────────────────────────────────────────────────────────────────────
# ENTRY POINT
# ─────────────────────────────────────────────────────────────────────


def main():
    parser = _build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Logging
    level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(name)s %(message)s", stream=sys.stderr)

    # Load env (provider keys, AI_COMMS_* settings)
    from dotenv import load_dotenv
    load_dotenv()

    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
