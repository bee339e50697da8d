"""External collaborators: market data and LLM inference."""
