"""
Market Moodboard Agent.

A payment-gated (x402) entrypoint that analyzes the top coins by market cap with an LLM
and returns a schema-validated moodboard.

- Runtime package: `src/market_moodboard/`
- ASGI factory: `market_moodboard.api.main:create_app` (`uvicorn --factory ...`)
"""

__version__ = "0.1.0"
