"""Cluster size policy and orphan handling for raw strategy output."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from cluster_topics.config import ClusteringConfig
from cluster_topics.models import Cluster, Item, RawGroup, newest_first, recency_key

logger = logging.getLogger(__name__)


def _cluster_order(cluster: Cluster) -> tuple:
    newest = max(recency_key(item) for item in cluster.items)
    return (-len(cluster), -newest.timestamp(), cluster.items[0].id)


def post_process(
    raw_groups: Sequence[RawGroup],
    all_items: Sequence[Item],
    config: ClusteringConfig,
) -> list[Cluster]:
    """Turn raw groups into final, disjoint clusters covering every usable item.

    Steps:
    1. Order each group newest-first and keep at most ``max_cluster_size``
       members; the oldest excess members leave the group.
    2. Groups below ``min_cluster_size`` become singletons when the minimum is
       1, otherwise they are dropped at this stage.
    3. Every item not placed yet becomes a singleton, so nothing is lost.

    Clusters are returned largest first, then by newest member, then by the id
    of their newest member.
    """
    clusters: list[Cluster] = []
    placed: set[str] = set()
    truncated = 0
    discarded = 0

    for group in raw_groups:
        members = [item for item in newest_first(group.items) if item.id not in placed]
        if len(members) > config.max_cluster_size:
            truncated += len(members) - config.max_cluster_size
            members = members[: config.max_cluster_size]
        if not members:
            continue

        if len(members) < config.min_cluster_size:
            if config.min_cluster_size == 1:
                singles = [Cluster(items=[item]) for item in members]
                clusters.extend(singles)
                placed.update(item.id for item in members)
            else:
                discarded += len(members)
            continue

        clusters.append(Cluster(items=members))
        placed.update(item.id for item in members)

    orphans = [item for item in all_items if item.id not in placed]
    for item in orphans:
        clusters.append(Cluster(items=[item]))
        placed.add(item.id)

    if truncated or discarded:
        logger.info(
            "Post-processing: %d members over max_cluster_size=%d, %d members in groups "
            "under min_cluster_size=%d, %d orphans emitted as singletons",
            truncated,
            config.max_cluster_size,
            discarded,
            config.min_cluster_size,
            len(orphans),
        )

    clusters.sort(key=_cluster_order)
    return clusters
