from market_moodboard.normalization.normalizer import ResponseNormalizer, normalize
from market_moodboard.normalization.schemas import (
    SCHEMA_VERSION,
    ContextTimestamps,
    MoodboardOutput,
    NormalizedOutput,
    moodboard_json_schema,
)

__all__ = [
    "SCHEMA_VERSION",
    "ContextTimestamps",
    "MoodboardOutput",
    "NormalizedOutput",
    "ResponseNormalizer",
    "moodboard_json_schema",
    "normalize",
]
