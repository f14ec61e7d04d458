"""
Error taxonomy
==============
Only TransportError reaches the tracker loop (to drive backoff/resume).
Everything else is isolated per transaction, per token or per write.
"""


class SwapTrackError(Exception):
    """Base class for all service errors."""


class ConfigError(SwapTrackError):
    """Required startup configuration is missing. Fatal."""


class TransportError(SwapTrackError):
    """Subscription failed or broke mid-stream."""


class DecodeError(SwapTrackError):
    """A protocol's instructions/events could not be decoded or normalized."""


class ClassificationMiss(SwapTrackError):
    """No registered protocol matched the transaction."""


class EnrichmentFetchFailure(SwapTrackError):
    """A single enrichment source failed for a mint."""

    def __init__(self, source: str, mint: str, reason: str = ""):
        self.source = source
        self.mint = mint
        super().__init__(f"{source} failed for {mint}: {reason}" if reason else f"{source} failed for {mint}")


class PersistenceConflict(SwapTrackError):
    """Duplicate key on insert. Expected under at-least-once delivery."""


class PersistenceError(SwapTrackError):
    """Any other storage failure."""
