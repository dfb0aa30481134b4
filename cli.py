from __future__ import annotations

import argparse
import json
import sys

import requests

from dcm.db import format_event


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Declarative Container Manager CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("containers", help="List supervised containers")

    s_st = sub.add_parser("status", help="Show one container's supervisor status")
    s_st.add_argument("name")

    s_rel = sub.add_parser("reload", help="Re-read definitions (or re-check one container)")
    s_rel.add_argument("name", nargs="?")

    s_fg = sub.add_parser("forget", help="Stop supervising a container (the container is left as is)")
    s_fg.add_argument("name")

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--limit", type=int, default=20)
    s_ev.add_argument("--container")
    s_ev.add_argument("--json", action="store_true", help="Print raw JSON rows")

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    if args.cmd == "containers":
        _print(requests.get(f"{base}/containers", timeout=10).json())
        return 0

    if args.cmd == "status":
        r = requests.get(f"{base}/containers/{args.name}", timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "reload":
        if args.name:
            r = requests.post(f"{base}/containers/{args.name}/reload", timeout=30)
        else:
            r = requests.post(f"{base}/reload", timeout=30)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "forget":
        r = requests.delete(f"{base}/containers/{args.name}", timeout=60)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "events":
        params = {"limit": args.limit}
        if args.container:
            params["container"] = args.container
        r = requests.get(f"{base}/events", params=params, timeout=10)
        if not r.ok:
            _print(r.json())
            return 1
        rows = r.json()
        if args.json:
            _print(rows)
        else:
            # Oldest first, like a log file.
            for ev in reversed(rows):
                print(format_event(ev))
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
