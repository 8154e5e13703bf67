"""Exceptions raised by the topic clustering engine."""


class ClusteringError(Exception):
    """Base class for clustering failures that abort a whole batch."""


class ConfigurationError(ClusteringError, ValueError):
    """Invalid clustering configuration; raised before any item is processed."""


class CapabilityUnavailable(ClusteringError):
    """The similarity index cannot serve the query (unsupported feature or timeout).

    Recovered locally by falling back to brute-force similarity.
    """


class TransientIOFailure(ClusteringError):
    """Network or connection failure talking to the similarity index.

    Not retried inside the oracle; the caller decides whether to retry the batch.
    """


class ClusteringCancelled(ClusteringError):
    """The run was cancelled between items; partial progress is discarded."""
