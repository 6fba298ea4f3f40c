#!/usr/bin/env python3
"""Dump what pygbfs ingests from a live GBFS system.

This script resolves auto-discovery, lets the client run for a while and
then prints every snapshot (with its soft warnings and dangling
references) and the health of every feed, so you can see how a publisher's
feeds fare against validation.

Usage
-----
Set environment variables and run::

    export GBFS_DISCOVERY_URL="https://example.org/gbfs/gbfs.json"
    python scripts/dump_feeds.py

Options::

    --seconds N          Keep ingesting for N seconds (default: 15)
    --feed NAME          Only ingest this feed (repeatable)
    --language TAG       Preferred auto-discovery language
    --json               Output as machine-readable JSON
    --output FILE        Write output to FILE instead of stdout
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pygbfs import FeedHealth, FeedType, GbfsClient, GbfsConfig, GbfsError, Snapshot  # noqa: E402
from pygbfs.models import SystemAlertsData  # noqa: E402

# ── helpers ──────────────────────────────────────────────────


def _section(title: str) -> str:
    line = "=" * 60
    return f"\n{line}\n  {title}\n{line}"


def _summarize_data(snapshot: Snapshot) -> str:
    """One line per array in the data block, e.g. ``stations: 412``."""
    data = snapshot.envelope.data.model_dump()
    parts = [f"{key}: {len(value)}" for key, value in data.items() if isinstance(value, list)]
    if isinstance(snapshot.envelope.data, SystemAlertsData):
        parts.append(f"active now: {len(snapshot.envelope.data.active(datetime.now(UTC)))}")
    return ", ".join(parts) if parts else "<object>"


def _print_snapshot(snapshot: Snapshot, out: list[str]) -> dict[str, Any]:
    envelope = snapshot.envelope
    out.append(_section(f"SNAPSHOT  {snapshot.feed_type}"))
    out.append(f"  last_updated : {envelope.last_updated_at.isoformat()} ({envelope.last_updated})")
    out.append(f"  ttl          : {envelope.ttl}s (expires {envelope.expires_at.isoformat()})")
    out.append(f"  data         : {_summarize_data(snapshot)}")
    out.append(f"  warnings     : {len(snapshot.violations)}")
    for violation in snapshot.violations:
        out.append(f"    - [{violation.code}] {violation.message}")
    out.append(f"  dangling     : {snapshot.dangling_reference_count}")
    for ref in snapshot.dangling_references:
        out.append(f"    - {ref.field}={ref.ref_id!r} missing from {ref.target_feed}")
    return snapshot.model_dump(mode="json")


def _print_health(health: FeedHealth, out: list[str]) -> dict[str, Any]:
    flag = " DEGRADED" if health.degraded else ""
    out.append(f"  {health.feed_type:<22} {health.state:<10}{flag}")
    out.append(f"      failures={health.consecutive_failures} anomalies={health.anomalies}")
    if health.last_error:
        out.append(f"      last_error: {health.last_error}")
    return health.model_dump(mode="json")


# ── main ─────────────────────────────────────────────────────


async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Dump what pygbfs ingests from a GBFS system for debugging / development.",
    )
    parser.add_argument("--seconds", type=float, default=15.0, help="Keep ingesting for N seconds")
    parser.add_argument(
        "--feed",
        action="append",
        choices=[feed_type.value for feed_type in FeedType],
        help="Only ingest this feed (repeatable)",
    )
    parser.add_argument("--language", help="Preferred auto-discovery language")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--output", "-o", help="Write output to FILE instead of stdout")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    overrides: dict[str, Any] = {}
    if args.feed:
        overrides["feeds"] = frozenset(FeedType(name) for name in args.feed)
    if args.language:
        overrides["preferred_language"] = args.language

    try:
        config = GbfsConfig.from_env(**overrides)
    except GbfsError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)

    result: dict[str, Any] = {
        "timestamp": datetime.now(UTC).isoformat(),
        "discovery_url": config.discovery_url,
        "snapshots": {},
        "health": {},
    }

    out: list[str] = []
    out.append(_section("pygbfs dump_feeds"))
    out.append(f"  time      : {result['timestamp']}")
    out.append(f"  discovery : {config.discovery_url}")

    async with GbfsClient(config) as client:
        result["language"] = client.language
        out.append(f"  language  : {client.language}")
        out.append(f"  feeds     : {', '.join(d.name for d in client.feeds)}")
        await asyncio.sleep(args.seconds)

        snapshots = client.store.snapshots()
        for descriptor in client.feeds:
            snapshot = snapshots.get(descriptor.name)
            if snapshot is None:
                out.append(_section(f"SNAPSHOT  {descriptor.name}"))
                out.append("  !! nothing accepted yet")
                continue
            result["snapshots"][descriptor.name] = _print_snapshot(snapshot, out)

        out.append(_section("HEALTH"))
        for feed_type, health in client.get_health().items():
            result["health"][feed_type] = _print_health(health, out)

    # ── Output ──
    if args.json_mode:
        payload = json.dumps(result, indent=2, default=str, ensure_ascii=False)
        if args.output:
            Path(args.output).write_text(payload, encoding="utf-8")
            print(f"JSON written to {args.output}", file=sys.stderr)
        else:
            print(payload)
    elif args.output:
        Path(args.output).write_text("\n".join(out) + "\n", encoding="utf-8")
        print(f"Output written to {args.output}")
    else:
        print("\n".join(out))


if __name__ == "__main__":
    asyncio.run(main())
