"""Graph-construction strategies turning a batch of items into raw groups."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor

from cluster_topics.config import (
    CONNECTED_COMPONENTS,
    GREEDY_AVERAGE,
    GREEDY_MIN,
    MUTUAL_K,
    ClusteringConfig,
    resolve_strategy_name,
)
from cluster_topics.exceptions import ClusteringCancelled
from cluster_topics.models import Item, RawGroup, SimilarityEdge, newest_first
from cluster_topics.similarity import SimilarityOracle
from cluster_topics.union_find import UnionFind

logger = logging.getLogger(__name__)

Strategy = Callable[
    [Sequence[Item], ClusteringConfig, SimilarityOracle, threading.Event | None],
    list[RawGroup],
]


def checkpoint(cancel_event: threading.Event | None) -> None:
    """Abort the run if it was cancelled."""
    if cancel_event is not None and cancel_event.is_set():
        raise ClusteringCancelled("Clustering run cancelled")


def fetch_edges(
    items: Sequence[Item],
    oracle: SimilarityOracle,
    limit: int,
    max_workers: int = 1,
    cancel_event: threading.Event | None = None,
) -> list[list[SimilarityEdge]]:
    """Fetch every item's neighbor edges, in item order.

    Only safe for strategies with no ordering dependency between queries.
    """

    def fetch(item: Item) -> list[SimilarityEdge]:
        checkpoint(cancel_event)
        return oracle.edges(item, limit)

    if max_workers <= 1 or len(items) <= 1:
        return [fetch(item) for item in items]

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        # map preserves input order, so graph building below stays deterministic
        return list(executor.map(fetch, items))


def _groups_from_union_find(items: Sequence[Item], uf: UnionFind) -> list[RawGroup]:
    by_id = {item.id: item for item in items}
    return [RawGroup(items=[by_id[item_id] for item_id in members]) for members in uf.groups()]


def connected_components(
    items: Sequence[Item],
    config: ClusteringConfig,
    oracle: SimilarityOracle,
    cancel_event: threading.Event | None = None,
) -> list[RawGroup]:
    """Union every pair scoring >= threshold; clusters are the connected components.

    Prone to chaining: one bridging pair merges two otherwise distinct stories.
    """
    uf = UnionFind(item.id for item in items)
    edge_lists = fetch_edges(
        items, oracle, config.candidate_limit, config.max_workers, cancel_event
    )

    merges = 0
    for edges in edge_lists:
        for edge in edges:
            if edge.score >= config.similarity_threshold and uf.union(edge.from_id, edge.to_id):
                merges += 1

    logger.debug("connected_components: %d merges over %d items", merges, len(items))
    return _groups_from_union_find(items, uf)


def mutual_k(
    items: Sequence[Item],
    config: ClusteringConfig,
    oracle: SimilarityOracle,
    cancel_event: threading.Event | None = None,
) -> list[RawGroup]:
    """Connect two items only if each is in the other's top-k neighbor set."""
    edge_lists = fetch_edges(
        items, oracle, config.candidate_limit, config.max_workers, cancel_event
    )
    neighbor_sets = {
        item.id: {edge.to_id for edge in edges} for item, edges in zip(items, edge_lists)
    }

    uf = UnionFind(item.id for item in items)
    mutual_pairs = 0
    for item in items:
        for other_id in neighbor_sets[item.id]:
            if item.id in neighbor_sets.get(other_id, ()):
                if uf.union(item.id, other_id):
                    mutual_pairs += 1

    logger.debug("mutual_k: %d mutual merges over %d items", mutual_pairs, len(items))
    return _groups_from_union_find(items, uf)


def _greedy(
    items: Sequence[Item],
    config: ClusteringConfig,
    oracle: SimilarityOracle,
    admit: Callable[[list[float], float], bool],
    cancel_event: threading.Event | None,
) -> list[RawGroup]:
    """Seed clusters newest-first and grow each from its seed's neighbors.

    Sequential by construction: every seed only sees items no earlier seed claimed.
    """
    claimed: set[str] = set()
    groups: list[RawGroup] = []

    for seed in newest_first(items):
        checkpoint(cancel_event)
        if seed.id in claimed:
            continue

        members = [seed]
        claimed.add(seed.id)

        if config.max_cluster_size > 1:
            candidates = oracle.top_similar(seed, config.candidate_limit, exclude=claimed)
            for candidate, _ in candidates:
                if len(members) >= config.max_cluster_size:
                    break
                if candidate.id in claimed:
                    continue
                scores = [oracle.similarity(candidate, member) for member in members]
                if admit(scores, config.similarity_threshold):
                    members.append(candidate)
                    claimed.add(candidate.id)

        groups.append(RawGroup(items=members))

    return groups


def _average_at_least(scores: list[float], threshold: float) -> bool:
    return sum(scores) / len(scores) >= threshold


def _minimum_at_least(scores: list[float], threshold: float) -> bool:
    return min(scores) >= threshold


def greedy_average(
    items: Sequence[Item],
    config: ClusteringConfig,
    oracle: SimilarityOracle,
    cancel_event: threading.Event | None = None,
) -> list[RawGroup]:
    """Admit a candidate if its average similarity to the current members clears threshold."""
    return _greedy(items, config, oracle, _average_at_least, cancel_event)


def greedy_min(
    items: Sequence[Item],
    config: ClusteringConfig,
    oracle: SimilarityOracle,
    cancel_event: threading.Event | None = None,
) -> list[RawGroup]:
    """Admit a candidate only if it clears threshold against every current member."""
    return _greedy(items, config, oracle, _minimum_at_least, cancel_event)


STRATEGIES: dict[str, Strategy] = {
    CONNECTED_COMPONENTS: connected_components,
    GREEDY_AVERAGE: greedy_average,
    GREEDY_MIN: greedy_min,
    MUTUAL_K: mutual_k,
}


def get_strategy(name: str | None) -> Strategy:
    """Look up a strategy by name; unset means connected_components."""
    return STRATEGIES[resolve_strategy_name(name)]
