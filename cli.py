from __future__ import annotations

import argparse
import json
import logging
import sys

import requests

from npr.api_models import PortOut
from npr.browser import DiscoveryError
from npr.reconciler import PortReconciler
from npr.settings import settings


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _scan(service_type: str, timeout_s: float) -> int:
    rec = PortReconciler(service_type=service_type, discovery_timeout_s=timeout_s)
    try:
        ports = rec.run_discovery_cycle()
    except DiscoveryError as e:
        _print({"error": str(e)})
        return 1
    _print([PortOut.from_port(p).model_dump() for p in ports])
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Network Port Reconciler CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("ports", help="List known network ports")
    sub.add_parser("discover", help="Run a discovery cycle on the server")
    sub.add_parser("status", help="Show the last discovery cycle")

    s_scan = sub.add_parser("scan", help="Run one discovery cycle locally, without a server")
    s_scan.add_argument("--service-type", default=settings.service_type)
    s_scan.add_argument("--timeout", type=float, default=settings.discovery_timeout_s, help="Browse window in seconds")

    args = p.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.cmd == "scan":
        return _scan(args.service_type, args.timeout)

    base = args.api.rstrip("/")

    try:
        if args.cmd == "ports":
            r = requests.get(f"{base}/ports", timeout=10)
        elif args.cmd == "discover":
            r = requests.post(f"{base}/discover", timeout=60)
        elif args.cmd == "status":
            r = requests.get(f"{base}/status", timeout=10)
        else:
            return 2
    except requests.RequestException as e:
        _print({"error": f"{type(e).__name__}: {e}"})
        return 1

    _print(r.json())
    return 0 if r.ok else 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
