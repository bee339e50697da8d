from __future__ import annotations

import json
from typing import Any, Dict, List, Sequence

from market_moodboard.normalization.schemas import ContextTimestamps

MOODS = {
    "🚀": "very bullish",
    "📈": "bullish",
    "😐": "neutral",
    "📉": "bearish",
    "🔴": "very bearish",
}


def _fmt_num(value: Any, digits: int = 2) -> str:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return "n/a"
    return f"{value:.{digits}f}"


def summarize_coins(coins: Sequence[Dict[str, Any]]) -> str:
    """One line per coin: `BTC: $64000.00, 24h change: -2.09%, Market Cap Rank: #1`."""
    lines: List[str] = []
    for coin in coins:
        symbol = str(coin.get("symbol") or "?").upper()
        price = _fmt_num(coin.get("current_price"))
        change = _fmt_num(coin.get("price_change_percentage_24h"))
        rank = coin.get("market_cap_rank")
        lines.append(f"{symbol}: ${price}, 24h change: {change}%, Market Cap Rank: #{rank if rank is not None else 'n/a'}")
    return "\n".join(lines)


def _example_response(ts: ContextTimestamps) -> str:
    example = {
        "date": ts.date,
        "coins": [
            {"symbol": "BTC", "mood": "📉", "narrative": "bearish decline", "score": 0.65, "price_change_24h": -2.09, "market_cap_rank": 1},
            {"symbol": "ETH", "mood": "📉", "narrative": "following BTC", "score": 0.70, "price_change_24h": -3.19, "market_cap_rank": 2},
            {"symbol": "USDT", "mood": "😐", "narrative": "stable peg", "score": 0.95, "price_change_24h": 0.0, "market_cap_rank": 3},
        ],
        "market_sentiment": "Market showing broad correction with major coins declining",
        "analyzed_at": ts.analyzed_at,
    }
    return json.dumps(example, ensure_ascii=False, separators=(",", ":"))


def build_moodboard_prompt(coins: Sequence[Dict[str, Any]], timestamps: ContextTimestamps) -> str:
    n = len(coins)
    moods = ", ".join(f"{emoji} ({label})" for emoji, label in MOODS.items())
    return (
        "Analyze the cryptocurrency market data below. You MUST return valid JSON ONLY.\n\n"
        f"Market Data ({n} coins):\n"
        f"{summarize_coins(coins)}\n\n"
        "EXAMPLE CORRECT RESPONSE (single line, no pretty print):\n"
        f"{_example_response(timestamps)}\n\n"
        "YOUR TASK:\n"
        f"1. Analyze ALL {n} coins from the data above\n"
        f"2. Use moods: {moods}\n"
        "3. Narrative: 2-3 words maximum\n"
        "4. Score: number 0.0 to 1.0\n"
        "5. Use actual price_change_24h and market_cap_rank from the data\n"
        "6. Return JSON in SINGLE LINE format like the example\n"
        "7. NO markdown, NO explanation, ONLY the JSON object"
    )


__all__ = ["MOODS", "build_moodboard_prompt", "summarize_coins"]
