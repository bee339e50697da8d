from __future__ import annotations


class MoodboardError(Exception):
    """Base class for errors raised by this service."""


class ConfigError(MoodboardError):
    """Raised when required configuration is missing or malformed."""


class UpstreamError(MoodboardError):
    """
    A collaborator (market data, inference) failed.

    The invocation is aborted and never settled; no partial result is returned.
    """

    def __init__(self, collaborator: str, message: str) -> None:
        super().__init__(f"{collaborator} failed: {message}")
        self.collaborator = collaborator
        self.message = message


class SettlementUnavailable(MoodboardError):
    """The settlement collaborator could not be reached or returned garbage."""


class SigningError(MoodboardError):
    """The signing client could not produce a payment proof."""


__all__ = [
    "ConfigError",
    "MoodboardError",
    "SettlementUnavailable",
    "SigningError",
    "UpstreamError",
]
