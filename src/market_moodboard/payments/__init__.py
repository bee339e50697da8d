"""x402 payment gating: requirements, proofs, signing and settlement."""
