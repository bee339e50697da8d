#!/usr/bin/env python3
"""
Pay for one `analyzeMoodboard` invocation and print the result.

Run:
  PRIVATE_KEY=0x... API_BASE_URL=http://localhost:8787 python3 scripts/pay_and_call.py
"""

from __future__ import annotations

import argparse
import base64
import json
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
    from market_moodboard.payments.binding import request_fingerprint
    from market_moodboard.payments.models import PAYMENT_HEADER, PAYMENT_RESPONSE_HEADER, PaymentRequirement
    from market_moodboard.payments.selection import select_requirement
    from market_moodboard.payments.signing import EthAccountSigner, WalletContext

    ap = argparse.ArgumentParser(description="Pay for and call the analyzeMoodboard entrypoint.")
    ap.add_argument("--limit", type=int, default=None)
    ap.add_argument("--vs-currency", default=None)
    args = ap.parse_args(argv)

    try:
        cfg = load_client_config()
        signer = EthAccountSigner(cfg.private_key)
    except (ConfigError, SigningError) as e:
        print(f"[pay] {e}", file=sys.stderr)
        return 2

    payload = {"limit": args.limit or cfg.limit, "vs_currency": args.vs_currency or cfg.vs_currency}
    body = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    headers = {"content-type": "application/json"}
    print(f"[pay] endpoint={cfg.entrypoint_url} payer={signer.address} network={cfg.network}")

    with httpx.Client(timeout=cfg.request_timeout_sec) as client:
        first = client.post(cfg.entrypoint_url, content=body, headers=headers)
        if first.status_code != 402:
            print(f"[pay] expected 402, got {first.status_code}: {first.text[:500]}", file=sys.stderr)
            return 1

        accepts = [PaymentRequirement.model_validate(a) for a in (first.json().get("accepts") or [])]
        requirement = select_requirement(accepts, cfg.network)
        if requirement is None:
            print(f"[pay] no payment requirement for network {cfg.network}", file=sys.stderr)
            return 1
        print(f"[pay] amount={requirement.max_amount_required} asset={requirement.asset} payTo={requirement.pay_to}")

        proof = signer.sign(requirement, WalletContext(request_fingerprint=request_fingerprint(body)))
        paid = client.post(cfg.entrypoint_url, content=body, headers={**headers, PAYMENT_HEADER: proof})

    print(f"[pay] status={paid.status_code}")
    receipt = paid.headers.get(PAYMENT_RESPONSE_HEADER)
    if receipt:
        print(f"[pay] receipt={base64.b64decode(receipt).decode('utf-8')}")
    try:
        print(json.dumps(paid.json(), indent=2, ensure_ascii=False))
    except ValueError:
        print(paid.text)
    return 0 if 200 <= paid.status_code < 300 else 1


if __name__ == "__main__":
    raise SystemExit(main())
