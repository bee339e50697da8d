from __future__ import annotations

from typing import Optional, Sequence

from market_moodboard.payments.models import PaymentRequirement


def select_requirement(
    requirements: Sequence[PaymentRequirement],
    network: str,
    scheme: str = "exact",
) -> Optional[PaymentRequirement]:
    """First requirement matching the caller's network and scheme, or None."""
    want_network = str(network or "").strip().lower()
    want_scheme = str(scheme or "").strip().lower()
    for req in requirements:
        if req.network.lower() == want_network and req.scheme.lower() == want_scheme:
            return req
    return None


__all__ = ["select_requirement"]
