#!/usr/bin/env python3
"""
Run N paid invocations back to back and report success/validation rates.

Exit code is 0 only when every trial succeeds.

Run:
  PRIVATE_KEY=0x... python3 scripts/run_consistency.py --trials 5 --delay 1
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


def _ensure_import_paths() -> None:
    src = str(_repo_root() / "src")
    if src not in sys.path:
        sys.path.insert(0, src)


def main(argv: list[str] | None = None) -> int:
    _ensure_import_paths()
    import httpx

    from market_moodboard.config import load_client_config
    from market_moodboard.errors import ConfigError, SigningError
    from market_moodboard.harness.consistency import ConsistencyHarness, format_report
    from market_moodboard.payments.signing import EthAccountSigner
    from market_moodboard.telemetry import LoggingObserver

    ap = argparse.ArgumentParser(description="Consistency check for the analyzeMoodboard entrypoint.")
    ap.add_argument("--trials", type=int, default=5)
    ap.add_argument("--delay", type=float, default=1.0, help="Seconds between trials.")
    ap.add_argument("--json", action="store_true", help="Print the report as JSON.")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s %(message)s")

    try:
        cfg = load_client_config()
        signer = EthAccountSigner(cfg.private_key)
    except (ConfigError, SigningError) as e:
        print(f"[consistency] {e}", file=sys.stderr)
        return 2

    request = {"limit": cfg.limit, "vs_currency": cfg.vs_currency}
    print(f"[consistency] endpoint={cfg.entrypoint_url} trials={args.trials} network={cfg.network}")

    with httpx.Client(timeout=cfg.request_timeout_sec) as client:
        harness = ConsistencyHarness(client, cfg.entrypoint_url, signer, cfg.network, observer=LoggingObserver())
        report = harness.run(args.trials, request, inter_trial_delay=args.delay)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(format_report(report))
    return 0 if report.passed else 1


if __name__ == "__main__":
    raise SystemExit(main())
