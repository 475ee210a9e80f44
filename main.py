#!/usr/bin/env python3
"""
CoilLedger -- Permissioned lifecycle ledger for steel coils.

Runs ledger operations directly against the configured store (LEDGER_URL, or
the SQLite file next to the ledger/ package), acting as the identity and role
given on the command line.

Usage:
  python main.py init --participant regulator:Authority --participant mill:Manufacturer
  python main.py --identity regulator --role Authority invoke create_coil AB1234567
  python main.py --identity regulator --role Authority invoke authority_to_manufacturer mill AB1234567
  python main.py --identity mill --role Manufacturer query get_coil_details AB1234567
  python main.py --identity regulator --role Authority query get_coils
  python main.py token --identity mill --role Manufacturer

Environment variables:
  LEDGER_URL   SQLAlchemy URL of the ledger store.
  SECRET_KEY   Signing key for caller tokens (or DEBUG=true to auto-generate).
  LOG_LEVEL    Logging level (default INFO).
"""

import argparse
import json
import logging
import sys
from typing import Optional

from auth.tokens import create_access_token
from core.config import get_settings
from core.errors import LedgerError
from core.models import CallerContext, Role
from core.operations import Dispatcher, ReadOperation, WriteOperation
from ledger.participants import Participant
from ledger.records import initialize
from ledger.store import SQLKeyValueStore

_ROLE_CHOICES = [r.value for r in Role]


def _parse_participant(value: str) -> Participant:
    """Parse IDENTITY:ROLE[:ECERT] into a Participant."""
    parts = value.split(":", 2)
    if len(parts) < 2 or not parts[0]:
        raise argparse.ArgumentTypeError(f"expected IDENTITY:ROLE[:ECERT], got {value!r}")
    try:
        role = Role(parts[1])
    except ValueError:
        raise argparse.ArgumentTypeError(f"unknown role {parts[1]!r}; choose from {', '.join(_ROLE_CHOICES)}") from None
    return Participant(identity=parts[0], role=role, ecert=parts[2] if len(parts) == 3 else "")


def _open_store() -> SQLKeyValueStore:
    url = get_settings().ledger_url
    return SQLKeyValueStore(url) if url else SQLKeyValueStore()


def _print_payload(payload: bytes) -> None:
    if not payload:
        print("ok")
        return
    text = payload.decode("utf-8", errors="replace")
    try:
        print(json.dumps(json.loads(text), indent=2))
    except ValueError:
        print(text)


def _require_caller(parser: argparse.ArgumentParser, args: argparse.Namespace) -> CallerContext:
    if not args.identity or not args.role:
        parser.error(f"{args.command} requires --identity and --role")
    return CallerContext(identity=args.identity, role=Role(args.role))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="coilledger",
        description="Run lifecycle operations against the coil ledger.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Write operations: {", ".join(op.value for op in WriteOperation)}
Read operations:  {", ".join(op.value for op in ReadOperation)}
        """,
    )
    parser.add_argument("--identity", metavar="NAME", help="Caller identity")
    parser.add_argument("--role", choices=_ROLE_CHOICES, metavar="ROLE", help="Caller role")
    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="Create the asset index and register participants")
    init.add_argument(
        "--participant",
        action="append",
        default=[],
        type=_parse_participant,
        metavar="IDENTITY:ROLE[:ECERT]",
        help="Register a participant (repeatable)",
    )

    for name, help_text in (("invoke", "Run a write operation"), ("query", "Run a read-only operation")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("function", help="Operation name")
        cmd.add_argument("args", nargs="*", help="Operation arguments")

    token = sub.add_parser("token", help="Mint a caller token for the HTTP API")
    token.add_argument("--expire", type=int, default=0, metavar="SECONDS", help="Token lifetime")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    if args.command == "token":
        caller = _require_caller(parser, args)
        print(create_access_token(caller.identity, caller.role, expire_seconds=args.expire))
        return 0

    caller = None if args.command == "init" else _require_caller(parser, args)
    store = _open_store()
    try:
        if args.command == "init":
            initialize(store, args.participant)
            print(f"Ledger initialized ({len(args.participant)} participant(s) registered).")
            return 0

        dispatcher = Dispatcher(store)
        run = dispatcher.invoke if args.command == "invoke" else dispatcher.query
        _print_payload(run(args.function, args.args, caller))
        return 0
    except LedgerError as exc:
        print(f"  [!] {exc.code}: {exc.message}", file=sys.stderr)
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
