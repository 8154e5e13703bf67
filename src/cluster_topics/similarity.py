"""Similarity oracles: who are an item's most similar neighbors in the batch."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Collection, Mapping, Sequence

import numpy as np

from cluster_topics.config import ClusteringConfig
from cluster_topics.exceptions import CapabilityUnavailable
from cluster_topics.models import Item, SimilarityEdge
from cluster_topics.vector_index import NeighborIndex

logger = logging.getLogger(__name__)

MAX_NUM_CANDIDATES = 200
CANDIDATE_MULTIPLIER = 20

Neighbor = tuple[Item, float]
OracleFactory = Callable[[Sequence[Item], ClusteringConfig], "SimilarityOracle"]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1]; 0.0 when either vector has zero norm."""
    if len(a) != len(b):
        raise ValueError(f"Embeddings must have the same dimension ({len(a)} != {len(b)})")
    a_arr = np.asarray(a, dtype=np.float64)
    b_arr = np.asarray(b, dtype=np.float64)
    magnitude = np.linalg.norm(a_arr) * np.linalg.norm(b_arr)
    if magnitude == 0:
        return 0.0
    return float(np.dot(a_arr, b_arr) / magnitude)


def num_candidates_for(limit: int) -> int:
    """Candidates requested from the index for recall before threshold filtering."""
    return min(MAX_NUM_CANDIDATES, limit * CANDIDATE_MULTIPLIER)


class SimilarityOracle(ABC):
    """Answers neighbor queries for one batch of items.

    Results are ordered by descending score (ties by batch position), only
    include scores >= threshold, and never include the query item itself.
    """

    def __init__(self, items: Sequence[Item], threshold: float) -> None:
        self.items = list(items)
        self.threshold = threshold
        self._position = {item.id: position for position, item in enumerate(self.items)}

    @abstractmethod
    def top_similar(
        self, item: Item, limit: int, exclude: Collection[str] = ()
    ) -> list[Neighbor]:
        """Return up to ``limit`` most similar items with their scores."""

    @abstractmethod
    def similarity(self, a: Item, b: Item) -> float:
        """Pairwise score between two batch items."""

    def edges(self, item: Item, limit: int) -> list[SimilarityEdge]:
        return [
            SimilarityEdge(from_id=item.id, to_id=other.id, score=score)
            for other, score in self.top_similar(item, limit)
        ]

    def _rank(
        self, item: Item, scores: Mapping[str, float], limit: int, exclude: Collection[str]
    ) -> list[Neighbor]:
        ranked = [
            (self.items[self._position[other_id]], score)
            for other_id, score in scores.items()
            if other_id != item.id
            and other_id in self._position
            and other_id not in exclude
            and score >= self.threshold
        ]
        ranked.sort(key=lambda pair: (-pair[1], self._position[pair[0].id]))
        return ranked[:limit]


class BruteForceOracle(SimilarityOracle):
    """Exact cosine similarity against every other item of the batch.

    The full similarity matrix is computed once up front, so concurrent reads
    from worker threads are safe.
    """

    def __init__(self, items: Sequence[Item], threshold: float) -> None:
        super().__init__(items, threshold)
        self._matrix = self._similarity_matrix()

    def _similarity_matrix(self) -> np.ndarray:
        if not self.items:
            return np.empty((0, 0), dtype=np.float64)
        dims = {item.dimensions for item in self.items}
        if len(dims) != 1:
            raise ValueError(f"Batch mixes embedding dimensions: {sorted(dims)}")

        vectors = np.asarray([item.embedding for item in self.items], dtype=np.float64)
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        # zero-norm rows stay zero, which yields similarity 0 against everything
        safe_norms = np.where(norms == 0, 1.0, norms)
        normalized = vectors / safe_norms
        return normalized @ normalized.T

    def top_similar(
        self, item: Item, limit: int, exclude: Collection[str] = ()
    ) -> list[Neighbor]:
        row = self._matrix[self._position[item.id]]
        # stable sort keeps batch order among equal scores
        order = np.argsort(-row, kind="stable")
        results: list[Neighbor] = []
        for index in order:
            score = float(row[index])
            if score < self.threshold or len(results) >= limit:
                break
            other = self.items[index]
            if other.id == item.id or other.id in exclude:
                continue
            results.append((other, score))
        return results

    def similarity(self, a: Item, b: Item) -> float:
        return float(self._matrix[self._position[a.id], self._position[b.id]])


class SimilarityTableOracle(SimilarityOracle):
    """Fixed in-memory similarity table; pairs missing from the table score 0.0.

    Used to evaluate strategies deterministically without touching a network.
    """

    def __init__(
        self,
        items: Sequence[Item],
        threshold: float,
        table: Mapping[tuple[str, str], float],
    ) -> None:
        super().__init__(items, threshold)
        self._scores: dict[str, dict[str, float]] = {item.id: {} for item in self.items}
        for (a, b), score in table.items():
            self._scores.setdefault(a, {})[b] = float(score)
            self._scores.setdefault(b, {})[a] = float(score)

    def top_similar(
        self, item: Item, limit: int, exclude: Collection[str] = ()
    ) -> list[Neighbor]:
        return self._rank(item, self._scores.get(item.id, {}), limit, exclude)

    def similarity(self, a: Item, b: Item) -> float:
        if a.id == b.id:
            return 1.0
        return self._scores.get(a.id, {}).get(b.id, 0.0)


class IndexBackedOracle(SimilarityOracle):
    """Delegates neighbor queries to an external nearest-neighbor index.

    Queries are restricted to the ids of this batch, so unclustered rows
    outside the batch never take the slots of in-batch neighbors.

    On the first CapabilityUnavailable the oracle logs once and answers every
    remaining query of the run from the brute-force fallback. Any other error
    propagates to the caller.
    """

    def __init__(
        self,
        items: Sequence[Item],
        threshold: float,
        index: NeighborIndex,
        timeout_seconds: float = 5.0,
    ) -> None:
        super().__init__(items, threshold)
        self._index = index
        self._batch_ids = frozenset(self._position)
        self._timeout_seconds = timeout_seconds
        self._fallback: BruteForceOracle | None = None
        self._lock = threading.Lock()

    @property
    def using_fallback(self) -> bool:
        return self._fallback is not None

    def _get_fallback(self, error: CapabilityUnavailable) -> BruteForceOracle:
        with self._lock:
            if self._fallback is None:
                logger.warning(
                    "Vector index unavailable, falling back to brute-force similarity for "
                    "%d items: %s",
                    len(self.items),
                    error,
                )
                self._fallback = BruteForceOracle(self.items, self.threshold)
            return self._fallback

    def top_similar(
        self, item: Item, limit: int, exclude: Collection[str] = ()
    ) -> list[Neighbor]:
        if self._fallback is not None:
            return self._fallback.top_similar(item, limit, exclude)

        try:
            hits = self._index.search(
                item.embedding,
                num_candidates=num_candidates_for(limit),
                limit=limit,
                exclude_ids={item.id, *exclude},
                timeout_seconds=self._timeout_seconds,
                include_ids=self._batch_ids,
            )
        except CapabilityUnavailable as error:
            return self._get_fallback(error).top_similar(item, limit, exclude)

        scores = {hit.id: hit.score for hit in hits}
        return self._rank(item, scores, limit, exclude)

    def similarity(self, a: Item, b: Item) -> float:
        if self._fallback is not None:
            return self._fallback.similarity(a, b)
        return cosine_similarity(a.embedding, b.embedding)


def brute_force_factory(items: Sequence[Item], config: ClusteringConfig) -> SimilarityOracle:
    return BruteForceOracle(items, config.similarity_threshold)


def index_backed_factory(index: NeighborIndex) -> OracleFactory:
    """Build an oracle factory that queries ``index`` and falls back to brute force."""

    def factory(items: Sequence[Item], config: ClusteringConfig) -> SimilarityOracle:
        return IndexBackedOracle(
            items,
            config.similarity_threshold,
            index,
            timeout_seconds=config.index_timeout_seconds,
        )

    return factory


def similarity_table_factory(table: Mapping[tuple[str, str], float]) -> OracleFactory:
    """Build an oracle factory over a fixed similarity table."""

    def factory(items: Sequence[Item], config: ClusteringConfig) -> SimilarityOracle:
        return SimilarityTableOracle(items, config.similarity_threshold, table)

    return factory
