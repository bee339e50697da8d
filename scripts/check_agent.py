#!/usr/bin/env python3
"""
Check that an agent is running and print its manifest.

Run:
  API_BASE_URL=http://localhost:8787 python3 scripts/check_agent.py
"""

from __future__ import annotations

import argparse
import os
import sys
import time

import httpx


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Fetch /.well-known/agent.json from a running agent.")
    ap.add_argument("--base-url", default=os.getenv("API_BASE_URL") or "http://localhost:8787")
    ap.add_argument("--timeout", type=float, default=5.0)
    args = ap.parse_args(argv)

    url = f"{args.base_url.rstrip('/')}/.well-known/agent.json"
    started = time.perf_counter()
    try:
        resp = httpx.get(url, timeout=args.timeout)
    except httpx.HTTPError as e:
        print(f"[check] failed to connect to {url}: {type(e).__name__}: {e}", file=sys.stderr)
        print(f"[check] try: curl {url}", file=sys.stderr)
        return 1
    dur_ms = int((time.perf_counter() - started) * 1000)

    if resp.status_code != 200:
        print(f"[check] agent returned {resp.status_code}", file=sys.stderr)
        return 1

    data = resp.json()
    print(f"[check] agent is running ({dur_ms}ms)")
    print(f"  name:        {data.get('name')}")
    print(f"  version:     {data.get('version')}")
    print(f"  description: {data.get('description') or 'N/A'}")
    for key, ep in (data.get("entrypoints") or {}).items():
        print(f"  entrypoint:  {key} {ep.get('path')} price={(ep.get('pricing') or {}).get('invoke')}")
    payments = data.get("payments") or {}
    print(f"  payments:    {payments.get('method')} network={payments.get('network')} payee={payments.get('payee')}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
