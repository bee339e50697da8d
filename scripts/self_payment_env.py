#!/usr/bin/env python3
"""
Print `.env` settings for a self-payment run (the payer's wallet is also the payee).

Run:
  PRIVATE_KEY=0x... python3 scripts/self_payment_env.py [--local]
"""

from __future__ import annotations

import argparse
import os
import sys

from eth_account import Account


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Suggest .env settings for paying yourself.")
    ap.add_argument("--network", default=os.getenv("NETWORK") or "base")
    ap.add_argument("--price-usdc", default=os.getenv("DEFAULT_PRICE_USDC") or "0.01")
    ap.add_argument("--local", action="store_true", help="Verify proofs in-process instead of via the facilitator.")
    args = ap.parse_args(argv)

    key = (os.getenv("PRIVATE_KEY") or "").strip()
    if not key:
        print("PRIVATE_KEY environment variable is required", file=sys.stderr)
        return 2
    try:
        address = Account.from_key(key if key.startswith("0x") else "0x" + key).address
    except ValueError as e:
        print(f"invalid PRIVATE_KEY: {e}", file=sys.stderr)
        return 2

    print("# Self-payment settings: payer and payee are the same wallet.")
    print(f"PAY_TO={address}")
    print(f"NETWORK={args.network}")
    print(f"DEFAULT_PRICE_USDC={args.price_usdc}")
    if args.local:
        print("SETTLEMENT_MODE=local")
    print()
    print(f"# Payer: {address}  Payee: {address}")
    print("# Only network fees are spent when settling through the facilitator.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
