#!/usr/bin/env python3
"""CLI for building and verifying handoff packs."""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path

from handoffpack.core import (
    ArchiveVerifier,
    HandoffAssembler,
    HandoffError,
    load_config,
)
from handoffpack.core.config import configure_logging


def _parse_created_at(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as exc:
        raise SystemExit(f"--created-at must be ISO-8601, got {raw!r}") from exc


def build_pack(args: argparse.Namespace) -> int:
    """Run the assembler with CLI parameters and report the archive path."""

    chat_path = Path(args.chat)
    if not chat_path.is_file():
        raise SystemExit(f"[handoff-pack] Chat transcript not found: {chat_path}")
    platform_export = Path(args.platform_export) if args.platform_export else None
    if platform_export is not None and not platform_export.is_file():
        raise SystemExit(f"[handoff-pack] Platform export not found: {platform_export}")

    try:
        config = load_config(Path(args.config) if args.config else None)
        assembler = HandoffAssembler(config=config)
        output = Path(args.out) if args.out else Path.cwd() / config.archive_name
        result = assembler.build(
            chat_path.read_bytes(),
            output,
            repo_root=Path(args.repo).resolve(),
            created_at=_parse_created_at(args.created_at),
            platform_export=platform_export,
        )
    except HandoffError as exc:  # pragma: no cover - CLI formatting
        raise SystemExit(f"[handoff-pack] Build failed:\n{exc}") from exc

    print(f"[handoff-pack] Wrote {result.archive_path}")
    print(f"  messages: {result.index.message_count}")
    for name in result.capture_errors:
        print(f"  capture failed: {name} (diagnostics embedded in archive)")
    return 0


def verify_pack(args: argparse.Namespace) -> int:
    """Verify an archive; exit status 0 means every hash matched."""

    report = ArchiveVerifier().verify(Path(args.archive))
    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    elif report.ok:
        print(f"PASS {report.archive}: {report.checked_messages} messages verified")
    else:
        for failure in report.failures:
            print(f"FAIL {failure.to_summary()}")
    return 0 if report.ok else 1


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    parser = argparse.ArgumentParser(description=__doc__)
    subparsers = parser.add_subparsers(dest="command", required=True)

    build = subparsers.add_parser("build", help="Build a handoff pack archive")
    build.add_argument("--chat", required=True, help="Path to the chat transcript")
    build.add_argument("--out", help="Archive path (default: ./<archive_name>)")
    build.add_argument(
        "--repo", default=".", help="Repository to capture git state from"
    )
    build.add_argument(
        "--platform-export", help="Platform export file copied verbatim into the pack"
    )
    build.add_argument("--config", help="YAML configuration file")
    build.add_argument(
        "--created-at",
        help="ISO-8601 creation timestamp (fixes output for reproducible builds)",
    )

    verify = subparsers.add_parser("verify", help="Verify a handoff pack archive")
    verify.add_argument("archive", help="Path to the archive zip")
    verify.add_argument(
        "--json", action="store_true", help="Print the report as JSON"
    )

    args = parser.parse_args(argv)

    if args.command == "build":
        return build_pack(args)
    if args.command == "verify":
        return verify_pack(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
