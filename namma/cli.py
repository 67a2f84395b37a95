"""Command line entry point for inspecting and editing a Namma store.

Usage:
  namma [--data-dir DIR] collections
  namma [--data-dir DIR] dump
  namma [--data-dir DIR] query tasks --where workspaceId=w1 --order-by order
  namma [--data-dir DIR] add tasks title="Buy milk" workspaceId=w1
  namma [--data-dir DIR] update tasks doc_123 completed=true
  namma [--data-dir DIR] rm tasks doc_123
  namma [--data-dir DIR] login asha@example.com
  namma [--data-dir DIR] logout
  namma [--data-dir DIR] whoami

Values are parsed as JSON when they parse (true, 3, "x", [1,2]) and taken
as plain strings otherwise. {"seconds": s, "nanoseconds": n} becomes a
Timestamp.
"""

from __future__ import annotations

import argparse
import asyncio
import copy
import json
import logging
import sys
from typing import Any

from namma import __version__
from namma.config import Settings, settings
from namma.kernel.assembly import Kernel
from namma.kernel.codec import decode_value, encode_value
from namma.kernel.query import order_by, query, where
from namma.kernel.types import DocumentRef, QuerySnapshot


def parse_value(raw: str) -> Any:
    try:
        return decode_value(json.loads(raw))
    except json.JSONDecodeError:
        return raw


def parse_assignments(pairs: list[str]) -> dict[str, Any]:
    """["a=1", "b=x"] -> {"a": 1, "b": "x"}"""
    fields: dict[str, Any] = {}
    for pair in pairs:
        name, sep, raw = pair.partition("=")
        if not sep or not name:
            raise ValueError(f"Expected field=value, got {pair!r}")
        fields[name] = parse_value(raw)
    return fields


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="namma", description="Namma document store")
    p.add_argument("--data-dir", help=f"Data directory (default: {settings.DATA_DIR})")
    p.add_argument("-v", "--version", action="version", version=f"namma {__version__}")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("collections", help="List collections and document counts")
    sub.add_parser("dump", help="Print the whole store as JSON")

    q = sub.add_parser("query", help="Run a query and print matching documents")
    q.add_argument("collection")
    q.add_argument("--where", action="append", default=[], metavar="FIELD=VALUE")
    q.add_argument("--order-by", metavar="FIELD[:desc]")

    a = sub.add_parser("add", help="Create a document")
    a.add_argument("collection")
    a.add_argument("fields", nargs="*", metavar="FIELD=VALUE")

    u = sub.add_parser("update", help="Merge fields into a document")
    u.add_argument("collection")
    u.add_argument("id")
    u.add_argument("fields", nargs="+", metavar="FIELD=VALUE")

    r = sub.add_parser("rm", help="Delete a document")
    r.add_argument("collection")
    r.add_argument("id")

    li = sub.add_parser("login", help="Sign in as an email address")
    li.add_argument("email")

    sub.add_parser("logout", help="Sign out")
    sub.add_parser("whoami", help="Show the signed-in user")
    return p


def _print_json(value: Any) -> None:
    print(json.dumps(encode_value(value), indent=2, ensure_ascii=False))


def _snapshot_docs(snapshot: QuerySnapshot) -> list[dict[str, Any]]:
    return [d.data() for d in snapshot]


async def run(args: argparse.Namespace, config: Settings) -> int:
    async with await Kernel.open(config=config) as kernel:
        if args.command == "collections":
            for name in kernel.store.collections():
                print(f"{name}\t{kernel.store.count(name)}")
            return 0

        if args.command == "dump":
            _print_json({name: kernel.store.read(name) for name in kernel.store.collections()})
            return 0

        if args.command == "query":
            constraints = [where(k, "==", v) for k, v in parse_assignments(args.where).items()]
            if args.order_by:
                field, _, direction = args.order_by.partition(":")
                constraints.append(order_by(field, direction or "asc"))
            snapshot = kernel.subscriptions.get_snapshot(query(args.collection, *constraints))
            _print_json(_snapshot_docs(snapshot))
            return 0

        if args.command == "add":
            result = await kernel.mutations.create_document(args.collection, parse_assignments(args.fields))
        elif args.command == "update":
            ref = DocumentRef(args.collection, args.id)
            result = await kernel.mutations.update_document(ref, parse_assignments(args.fields))
        elif args.command == "rm":
            result = await kernel.mutations.delete_document(DocumentRef(args.collection, args.id))
        elif args.command == "login":
            user = await kernel.session.sign_in(args.email, "")
            print(user.uid)
            return 0
        elif args.command == "logout":
            await kernel.session.sign_out()
            return 0
        elif args.command == "whoami":
            user = kernel.session.current_user
            print(user.email if user else "Not signed in")
            return 0 if user else 1
        else:  # pragma: no cover
            raise ValueError(f"Unknown command: {args.command}")

        if result.ok:
            print(result.id)
            return 0
        print(f"Error: {result.error}: {result.message}", file=sys.stderr)
        return 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = settings
    if args.data_dir:
        config = copy.copy(settings)
        config.DATA_DIR = args.data_dir
        config.STORAGE_BACKEND = "file"

    try:
        return asyncio.run(run(args, config))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
