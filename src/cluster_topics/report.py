"""Summaries for comparing clustering strategies on the same batch."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from cluster_topics.config import STRATEGY_NAMES, ClusteringConfig
from cluster_topics.engine import ClusterEngine
from cluster_topics.models import Cluster, ClusteringRun, Item

logger = logging.getLogger(__name__)

SIZE_BUCKETS = ("1", "2-5", "6-10", "11+")
TITLE_WIDTH = 60


def _bucket(size: int) -> str:
    if size == 1:
        return "1"
    if size <= 5:
        return "2-5"
    if size <= 10:
        return "6-10"
    return "11+"


def size_distribution(clusters: Sequence[Cluster]) -> dict[str, int]:
    """Count clusters per size bucket, buckets in ascending order, empty ones omitted."""
    counts = {bucket: 0 for bucket in SIZE_BUCKETS}
    for cluster in clusters:
        counts[_bucket(len(cluster))] += 1
    return {bucket: count for bucket, count in counts.items() if count}


def format_run(run: ClusteringRun, samples: int = 3) -> list[str]:
    """Render a run summary as report lines."""
    distribution = ", ".join(f"{k}: {v}" for k, v in size_distribution(run.clusters).items())
    lines = [
        f"--- {run.strategy} ---",
        f"  Clusters: {len(run.clusters)}",
        f"  Singletons: {run.singletons}",
        f"  Max cluster size: {run.max_cluster_size}",
        f"  Size distribution: {distribution or '(none)'}",
    ]
    if run.clusters[:samples]:
        lines.append("  Sample (first item title per cluster):")
        for position, cluster in enumerate(run.clusters[:samples], start=1):
            title = cluster.items[0].title or "(untitled)"
            if len(title) > TITLE_WIDTH:
                title = title[:TITLE_WIDTH] + "..."
            lines.append(f"    {position}. [{len(cluster)} items] {title}")
    return lines


def compare_strategies(
    items: Sequence[Item],
    config: ClusteringConfig,
    engine: ClusterEngine | None = None,
    strategies: Sequence[str] = STRATEGY_NAMES,
) -> dict[str, ClusteringRun]:
    """Run every strategy on the same batch, each with its own overrides applied."""
    engine = engine or ClusterEngine()
    runs = {}
    for name in strategies:
        logger.info("Running %s", name)
        runs[name] = engine.run(items, config.for_strategy(name))
    return runs


def print_report(runs: dict[str, ClusteringRun]) -> None:
    for run in runs.values():
        print("\n".join(format_run(run)))
        print()
