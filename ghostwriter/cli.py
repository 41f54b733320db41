from __future__ import annotations

import argparse
import logging
import sys

from ghostwriter.config import settings
from ghostwriter.orchestrator import _configure_logging, build_chain
from ghostwriter.utils.message_store import MessageStore

logger = logging.getLogger(__name__)


def cmd_reply(args: argparse.Namespace) -> int:
    """Dry run: one chain invocation, print the outcome, send nothing."""
    chain = build_chain()
    try:
        result = chain.run(args.counterpart_id, args.name, args.text, args.image_desc or ())
    except Exception as exc:
        logger.error(f"Reply chain failed: {exc}")
        return 1
    print(f"{result.outcome.value}: {result.reply if result.reply is not None else '(none)'}")
    return 0


def cmd_record(args: argparse.Namespace) -> int:
    store = MessageStore(settings.HISTORY_DIR)
    if not store.store_message(counterpart_id=args.counterpart_id, text=args.text, is_from_me=args.from_me):
        print("Not stored (blank or duplicate).")
        return 1
    print("Stored.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ghostwriter", description="Ghostwritten chat replies")
    sub = parser.add_subparsers(dest="command", required=True)

    reply = sub.add_parser("reply", help="Generate a reply without sending it")
    reply.add_argument("counterpart_id")
    reply.add_argument("name", help="Counterpart display name")
    reply.add_argument("text", help="Incoming message text")
    reply.add_argument(
        "--image-desc",
        action="append",
        metavar="TEXT",
        help="Description of an attached image (repeatable)",
    )
    reply.set_defaults(func=cmd_reply)

    record = sub.add_parser("record", help="Append a message to the history store")
    record.add_argument("counterpart_id")
    record.add_argument("text")
    record.add_argument("--from-me", action="store_true", help="Message was sent by the user")
    record.set_defaults(func=cmd_record)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
