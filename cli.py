from __future__ import annotations

import argparse
import json
import sys

import requests

from winjet.settings import data_local_dir, settings
from winjet.state import ServiceStateStore


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _events(data_dir: str | None, limit: int) -> int:
    # Reads the store directly; works whether or not winjet is running.
    store = ServiceStateStore.open(data_dir or data_local_dir())
    try:
        _print(store.recent_events(limit))
    finally:
        store.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="winjet CLI")
    p.add_argument("--api", default=f"http://{settings.api_host}:{settings.api_port}", help="Control surface base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("screen", help="Show the current screen state")
    sub.add_parser("retry", help="Retry loading failed modules")
    sub.add_parser("continue", help="Leave the setup screen")
    sub.add_parser("containers", help="List discovered containers")
    sub.add_parser("refresh", help="Re-enumerate containers")
    sub.add_parser("service", help="Show the service record")
    sub.add_parser("create", help="Create a service record from defaults")

    s_adopt = sub.add_parser("adopt", help="Create the service record from an existing container")
    s_adopt.add_argument("--container", required=True, help="Container id")

    s_ev = sub.add_parser("events", help="Show store events (reads the local database)")
    s_ev.add_argument("--limit", type=int, default=20)
    s_ev.add_argument("--data-dir", default=None)

    args = p.parse_args(argv)

    if args.cmd == "events":
        return _events(args.data_dir, args.limit)

    base = args.api.rstrip("/")

    if args.cmd in {"screen", "containers", "service"}:
        r = requests.get(f"{base}/{args.cmd}", timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "adopt":
        r = requests.post(f"{base}/service/adopt", json={"container_id": args.container}, timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    paths = {
        "retry": "/setup/retry",
        "continue": "/setup/done",
        "refresh": "/containers/refresh",
        "create": "/service",
    }
    if args.cmd in paths:
        r = requests.post(f"{base}{paths[args.cmd]}", timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
