"""Cluster a batch of embedded items into topics."""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import Counter
from collections.abc import Sequence

from cluster_topics.config import ClusteringConfig
from cluster_topics.models import Cluster, ClusteringRun, Item
from cluster_topics.post_process import post_process
from cluster_topics.similarity import OracleFactory, brute_force_factory
from cluster_topics.strategies import checkpoint, get_strategy

logger = logging.getLogger(__name__)


def _expected_dimensions(items: Sequence[Item], configured: int | None) -> int | None:
    if configured is not None:
        return configured
    lengths = Counter(item.dimensions for item in items if item.dimensions)
    if not lengths:
        return None
    # most_common is stable, so ties go to the first length seen
    return lengths.most_common(1)[0][0]


def is_usable(item: Item, dimensions: int | None) -> bool:
    """True if the item's embedding can take part in clustering."""
    if not item.embedding or dimensions is None or item.dimensions != dimensions:
        return False
    return all(math.isfinite(value) for value in item.embedding)


def split_usable(
    items: Sequence[Item], dimensions: int | None
) -> tuple[list[Item], list[Item]]:
    """Partition items into (usable, excluded), dropping repeated ids after the first."""
    expected = _expected_dimensions(items, dimensions)
    usable: list[Item] = []
    excluded: list[Item] = []
    seen: set[str] = set()
    for item in items:
        if item.id in seen or not is_usable(item, expected):
            excluded.append(item)
            continue
        seen.add(item.id)
        usable.append(item)
    return usable, excluded


class ClusterEngine:
    """Selects a strategy by configuration and drives items -> raw groups -> clusters.

    The engine holds no per-run state: each call builds its own oracle and
    union-find, so independent calls never influence each other.
    """

    def __init__(self, oracle_factory: OracleFactory = brute_force_factory) -> None:
        self.oracle_factory = oracle_factory

    def run(
        self,
        items: Sequence[Item],
        config: ClusteringConfig,
        cancel_event: threading.Event | None = None,
    ) -> ClusteringRun:
        """Cluster ``items`` and return the clusters with run counts.

        Raises:
            ConfigurationError: Invalid config or unknown strategy (before any item is read)
            TransientIOFailure: The similarity index failed for a non-capability reason
            ClusteringCancelled: ``cancel_event`` was set during the run
        """
        effective = config.for_strategy()
        strategy_name = effective.strategy_name
        strategy = get_strategy(strategy_name)
        started = time.monotonic()

        usable, excluded = split_usable(items, effective.embedding_dimensions)
        if excluded:
            logger.info(
                "Excluded %d/%d items without a usable embedding", len(excluded), len(items)
            )

        if not usable:
            logger.warning("No items with usable embeddings to cluster")
            return ClusteringRun(
                strategy=strategy_name,
                clusters=[],
                total_items=len(items),
                usable_items=0,
                excluded_items=len(excluded),
            )

        logger.info(
            "Clustering %d items with %s (threshold=%.2f, min_cluster_size=%d, "
            "max_cluster_size=%d, candidate_limit=%d)",
            len(usable),
            strategy_name,
            effective.similarity_threshold,
            effective.min_cluster_size,
            effective.max_cluster_size,
            effective.candidate_limit,
        )

        oracle = self.oracle_factory(usable, effective)
        raw_groups = strategy(usable, effective, oracle, cancel_event)
        checkpoint(cancel_event)
        clusters = post_process(raw_groups, usable, effective)

        result = ClusteringRun(
            strategy=strategy_name,
            clusters=clusters,
            total_items=len(items),
            usable_items=len(usable),
            excluded_items=len(excluded),
            elapsed_seconds=time.monotonic() - started,
        )
        logger.info(
            "Built %d clusters from %d items (%d singletons, max size %d) in %.2fs",
            len(clusters),
            len(usable),
            result.singletons,
            result.max_cluster_size,
            result.elapsed_seconds,
        )
        return result

    def cluster(
        self,
        items: Sequence[Item],
        config: ClusteringConfig,
        cancel_event: threading.Event | None = None,
    ) -> list[Cluster]:
        """Cluster ``items``; see ``run`` for errors."""
        return self.run(items, config, cancel_event).clusters


def cluster_items(
    items: Sequence[Item],
    config: ClusteringConfig | None = None,
    oracle_factory: OracleFactory = brute_force_factory,
    cancel_event: threading.Event | None = None,
) -> list[Cluster]:
    """Cluster a batch with a one-off engine."""
    return ClusterEngine(oracle_factory).cluster(items, config or ClusteringConfig(), cancel_event)
