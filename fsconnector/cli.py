"""Command-line front door for fsconnector.

Mounts the configured projections (or one ad-hoc ``--root``/``--mount``
projection) into a federation and runs one inspection command against it.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from collections.abc import Sequence
from pathlib import Path

from . import config
from .binaries import iter_file_blocks
from .errors import ConnectorError
from .federation import Federation
from .model.types import ChangeEvent, Projection


def _positive_float(value: str) -> float:
    """argparse type for positive float values."""
    try:
        parsed = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid number: {value!r}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError("value must be > 0")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fsconnector",
        description="Inspect native directories projected into a logical node tree.",
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to a projections config file.")
    parser.add_argument("--debug", action="store_true", help="Log at DEBUG level.")
    parser.add_argument("--root", type=Path, default=None, help="Project this directory instead of the config.")
    parser.add_argument("--mount", default="/", help="Mount address for --root (default: /).")
    parser.add_argument("--read-only", action="store_true", help="Mount --root read-only.")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("mounts", help="List mounted projections.")
    ls = commands.add_parser("ls", help="List children of a node.")
    ls.add_argument("address")
    ls.add_argument("--page-token", default=None)
    cat = commands.add_parser("cat", help="Write a file node's bytes to stdout.")
    cat.add_argument("address")
    checksum = commands.add_parser("checksum", help="Print the SHA-1 of a file node's content.")
    checksum.add_argument("address")
    props = commands.add_parser("props", help="Print a node's properties as JSON.")
    props.add_argument("address")
    watch = commands.add_parser("watch", help="Print change events of monitored projections.")
    watch.add_argument("--seconds", type=_positive_float, default=None, help="Stop after this many seconds.")
    return parser


def build_federation(args: argparse.Namespace) -> Federation:
    federation = Federation()
    if args.root is not None:
        root = args.root.resolve()
        federation.mount(
            Projection(
                name=root.name or "root",
                mount_address=args.mount,
                native_root=root,
                read_only=args.read_only,
            ),
        )
        return federation
    for entry in config.load_projection_configs(args.config):
        federation.mount(entry.to_projection())
    return federation


def _format_event(event: ChangeEvent) -> str:
    return f"{event.kind.value}\t{event.logical_address}\t{event.native_path}"


def run_command(args: argparse.Namespace, federation: Federation) -> int:
    if args.command == "mounts":
        for connector in federation.connectors():
            mode = "ro" if connector.read_only else "rw"
            print(f"{connector.mount_address}\t{connector.name}\t{mode}\t{connector.native_root}")
        return 0
    if args.command == "ls":
        try:
            page = federation.children(args.address, args.page_token)
        except ValueError as exc:
            raise SystemExit(f"error: {exc}") from exc
        for name in page.names:
            print(name)
        if page.next_token:
            print(f"next page: {page.next_token}", file=sys.stderr)
        return 0
    if args.command == "cat":
        content = federation.read(args.address)
        if content.binary is None:
            raise SystemExit(f"Not a file: {args.address}")
        with content.binary.open() as stream:
            for block in iter_file_blocks(stream):
                sys.stdout.buffer.write(block)
        return 0
    if args.command == "checksum":
        content = federation.read(args.address)
        if content.binary is None:
            raise SystemExit(f"Not a file: {args.address}")
        print(content.binary.checksum())
        return 0
    if args.command == "props":
        content = federation.read(args.address)
        print(json.dumps(content.properties, indent=2, sort_keys=True))
        return 0
    if args.command == "watch":
        return _watch(federation, args.seconds)
    raise SystemExit(f"Unknown command: {args.command}")


def _watch(federation: Federation, seconds: float | None) -> int:
    federation.subscribe(lambda event: print(_format_event(event), flush=True))
    for connector in federation.connectors():
        connector.start_monitoring()
    deadline = None if seconds is None else time.monotonic() + seconds
    try:
        while deadline is None or time.monotonic() < deadline:
            time.sleep(0.1)
    except KeyboardInterrupt:
        pass
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Parse CLI arguments, mount projections and run one command."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        with build_federation(args) as federation:
            return run_command(args, federation)
    except ConnectorError as exc:
        raise SystemExit(f"error: {exc}") from exc


if __name__ == "__main__":
    sys.exit(main())
