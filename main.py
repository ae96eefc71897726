"""
LM Studio Message Node — command-line runner

Creates the shared infrastructure (EventBus, Config, NodeManager),
discovers nodes, and runs the LM Studio message node once, printing
the output items as JSON.

    python main.py models
    python main.py chat --model qwen3-4b --message "Say hi in one word."
    python main.py chat --model qwen3-4b --message "Greet me" \\
        --schema '{"type": "object", "properties": {"greeting": {"type": "string"}}}'
"""

from __future__ import annotations

import argparse
import json
import locale
import logging
import signal
import sys
from pathlib import Path

from PyQt6.QtCore import QCoreApplication

from core import Config, EventBus, ExecutionContext, NodeError, NodeItem, NodeManager

NODE = "lmstudio_message"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Talk to a local LM Studio server")
    parser.add_argument("--config", default="config.json",
                        help="Config file (default: config.json)")
    parser.add_argument("--host", help="Override the LM Studio host URL")
    parser.add_argument("--api-key", help="Override the LM Studio API key")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log debug output to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("models", help="List the chat models the server offers")

    chat = sub.add_parser("chat", help="Send one message per --message")
    chat.add_argument("--model", required=True, help="Model identifier")
    chat.add_argument("--message", action="append", required=True,
                      help="Message to send; repeat for several items")
    chat.add_argument("--schema",
                      help="JSON Schema text, or @path to a file holding it")
    chat.add_argument("--temperature", type=float)
    chat.add_argument("--max-tokens", type=int)
    chat.add_argument("--timeout", type=float,
                      help="Seconds to wait for each reply (0 = no limit)")
    chat.add_argument("--continue-on-fail", action="store_true",
                      help="Emit failed items as {\"error\": ...} rows")
    return parser


def _read_schema(value: str | None) -> str:
    if not value:
        return ""
    if value.startswith("@"):
        return Path(value[1:]).read_text(encoding="utf-8")
    return value


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # Model dropdown sorting collates by the user's locale
    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as e:
        logging.getLogger(__name__).warning("Keeping C collation: %s", e)

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    app.setApplicationName("lmstudio-node")

    # Shared infrastructure
    bus = EventBus()
    config = Config(bus, path=args.config)
    nm = NodeManager(bus, node_package="nodes")
    nm.discover()
    bus.subscribe("activity_log", lambda d: logging.getLogger("activity").info(d["text"]))

    credentials = config.credentials("lmstudio")
    if args.host:
        credentials["host_url"] = args.host
    if args.api_key:
        credentials["api_key"] = args.api_key

    if args.command == "models":
        context = ExecutionContext(credentials=credentials, event_bus=bus)
        options = nm.load_options(NODE, "get_models", context)
        print(json.dumps([o.to_dict() for o in options], indent=2))
        return 0

    defaults = config.node_defaults(NODE)
    parameters = {
        "model_name": args.model,
        "message": lambda item: item.json["message"],
        "json_schema": _read_schema(args.schema) or defaults.get("json_schema", ""),
        "temperature": args.temperature if args.temperature is not None
        else defaults.get("temperature", 1.0),
        "max_tokens": args.max_tokens if args.max_tokens is not None
        else defaults.get("max_tokens"),
        "timeout": args.timeout if args.timeout is not None
        else defaults.get("timeout", 0),
    }
    context = ExecutionContext(
        items=[NodeItem(json={"message": m}) for m in args.message],
        parameters=parameters,
        credentials=credentials,
        continue_on_fail=args.continue_on_fail,
        event_bus=bus,
    )
    # Ctrl+C aborts the in-flight request instead of killing the process
    previous_handler = signal.signal(signal.SIGINT, lambda *_: context.cancel())

    try:
        outputs = nm.run(NODE, context)
    except NodeError as e:
        print(f"Error: {e}", file=sys.stderr)
        if e.description:
            print(e.description, file=sys.stderr)
        return 1
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    print(json.dumps([o.to_dict() for o in outputs], indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
