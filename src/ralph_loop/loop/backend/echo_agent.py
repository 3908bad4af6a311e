"""Local demo agent for CLI backend integration tests.

Marks the next pending ledger item(s) as passing, appends a line to the
progress log and prints the completion sentinel once nothing is left.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from ralph_loop.config import DEFAULT_LEDGER_GROUPS, DEFAULT_SENTINEL


def main(argv: list[str] | None = None) -> int:
    """Run one deterministic agent iteration."""

    parser = argparse.ArgumentParser()
    parser.add_argument("ledger")
    parser.add_argument("progress")
    parser.add_argument("--per-run", type=int, default=1)
    parser.add_argument("--exit-code", type=int, default=0)
    parser.add_argument("--stderr", default=None)
    parser.add_argument("--no-sentinel", action="store_true")
    args = parser.parse_args(argv)

    ledger_path = Path(args.ledger)
    payload = json.loads(ledger_path.read_text("utf-8"))

    marked = 0
    for group in DEFAULT_LEDGER_GROUPS:
        for item in payload.get(group) or []:
            if marked >= args.per_run:
                break
            if item.get("passes") is True:
                continue
            item["passes"] = True
            marked += 1
            print(f"implemented {item.get('id')}: {item.get('title', '')}", flush=True)
            with Path(args.progress).open("a", encoding="utf-8") as progress:
                progress.write(f"## {item.get('id')}: {item.get('title', '')}\n")

    ledger_path.write_text(json.dumps(payload, indent=2), "utf-8")

    if args.stderr:
        print(args.stderr, file=sys.stderr, flush=True)

    remaining = sum(
        1
        for group in DEFAULT_LEDGER_GROUPS
        for item in payload.get(group) or []
        if item.get("passes") is not True
    )
    if remaining == 0 and not args.no_sentinel:
        print(DEFAULT_SENTINEL, flush=True)
    return args.exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
