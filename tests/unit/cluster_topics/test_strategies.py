"""Tests for cluster_topics.strategies module."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from itertools import combinations

import numpy as np
import pytest

from cluster_topics.config import ClusteringConfig
from cluster_topics.exceptions import ClusteringCancelled, ConfigurationError
from cluster_topics.models import Item
from cluster_topics.similarity import BruteForceOracle, SimilarityTableOracle
from cluster_topics.strategies import (
    STRATEGIES,
    connected_components,
    get_strategy,
    greedy_average,
    greedy_min,
    mutual_k,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _items(*ids: str) -> list[Item]:
    """Items with one-dimensional placeholder embeddings, newest first in argument order."""
    return [
        Item(id=item_id, embedding=(1.0,), published_at=NOW - timedelta(minutes=i))
        for i, item_id in enumerate(ids)
    ]


def _membership(groups) -> set[frozenset[str]]:
    return {frozenset(group.item_ids) for group in groups}


SCENARIO_A = {
    ("d1", "d2"): 0.9,
    ("d1", "d3"): 0.9,
    ("d2", "d3"): 0.9,
    ("d1", "u1"): 0.1,
    ("d2", "u1"): 0.1,
    ("d3", "u1"): 0.1,
    ("d1", "u2"): 0.1,
    ("d2", "u2"): 0.1,
    ("d3", "u2"): 0.1,
    ("u1", "u2"): 0.1,
}

SCENARIO_B = {("A", "B"): 0.7, ("B", "C"): 0.7, ("A", "C"): 0.3}

CONFIG = ClusteringConfig(similarity_threshold=0.68, min_cluster_size=1, max_cluster_size=20)


def _clustered_vectors(seed: int = 7) -> list[Item]:
    """Five noisy clusters of eight 16-dimensional vectors each."""
    rng = np.random.default_rng(seed)
    centers = rng.normal(size=(5, 16))
    items = []
    for c, center in enumerate(centers):
        for j in range(8):
            vector = center + rng.normal(scale=0.35, size=16)
            items.append(
                Item(
                    id=f"c{c}-{j}",
                    embedding=tuple(float(v) for v in vector),
                    published_at=NOW - timedelta(minutes=c * 8 + j),
                )
            )
    return items


class TestScenarioA:
    @pytest.mark.parametrize("name", sorted(STRATEGIES))
    def test_near_duplicates_form_one_cluster(self, name) -> None:
        items = _items("d1", "u1", "d2", "u2", "d3")
        oracle = SimilarityTableOracle(items, CONFIG.similarity_threshold, SCENARIO_A)

        groups = STRATEGIES[name](items, CONFIG, oracle)

        assert _membership(groups) == {
            frozenset({"d1", "d2", "d3"}),
            frozenset({"u1"}),
            frozenset({"u2"}),
        }


class TestScenarioBChaining:
    def test_connected_components_chains_through_bridge(self) -> None:
        items = _items("A", "B", "C")
        oracle = SimilarityTableOracle(items, 0.68, SCENARIO_B)
        groups = connected_components(items, CONFIG, oracle)
        assert _membership(groups) == {frozenset({"A", "B", "C"})}

    def test_greedy_min_seeded_at_a_rejects_c(self) -> None:
        items = _items("A", "B", "C")
        oracle = SimilarityTableOracle(items, 0.68, SCENARIO_B)
        groups = greedy_min(items, CONFIG, oracle)
        assert _membership(groups) == {frozenset({"A", "B"}), frozenset({"C"})}

    def test_greedy_min_seeded_at_c_rejects_a(self) -> None:
        items = _items("C", "B", "A")
        oracle = SimilarityTableOracle(items, 0.68, SCENARIO_B)
        groups = greedy_min(items, CONFIG, oracle)
        assert _membership(groups) == {frozenset({"C", "B"}), frozenset({"A"})}

    def test_mutual_k_top1_keeps_one_pair(self) -> None:
        items = _items("A", "B", "C")
        oracle = SimilarityTableOracle(items, 0.68, SCENARIO_B)
        config = ClusteringConfig(similarity_threshold=0.68, candidate_limit=1)
        # B's single neighbor is A (tie broken by batch position), so only A-B is mutual
        groups = mutual_k(items, config, oracle)
        assert _membership(groups) == {frozenset({"A", "B"}), frozenset({"C"})}

    def test_mutual_k_top2_connects_through_b(self) -> None:
        items = _items("A", "B", "C")
        oracle = SimilarityTableOracle(items, 0.68, SCENARIO_B)
        config = ClusteringConfig(similarity_threshold=0.68, candidate_limit=2)
        groups = mutual_k(items, config, oracle)
        assert _membership(groups) == {frozenset({"A", "B", "C"})}


class TestGreedy:
    def test_seeds_newest_first(self) -> None:
        items = [
            Item(id="old", embedding=(1.0,), published_at=NOW - timedelta(hours=2)),
            Item(id="new", embedding=(1.0,), published_at=NOW),
            Item(id="mid", embedding=(1.0,), published_at=NOW - timedelta(hours=1)),
        ]
        oracle = SimilarityTableOracle(items, 0.68, {})
        groups = greedy_average(items, CONFIG, oracle)
        assert [group.items[0].id for group in groups] == ["new", "mid", "old"]

    def test_stops_at_max_cluster_size(self) -> None:
        items = _items("d1", "d2", "d3")
        oracle = SimilarityTableOracle(items, 0.68, SCENARIO_A)
        config = ClusteringConfig(similarity_threshold=0.68, max_cluster_size=2)
        groups = greedy_min(items, config, oracle)
        assert _membership(groups) == {frozenset({"d1", "d2"}), frozenset({"d3"})}

    def test_average_admits_what_min_rejects(self) -> None:
        # x joins {s, a} on average (0.9 + 0.5) / 2 = 0.7, but its minimum is 0.5
        table = {("s", "a"): 0.95, ("s", "x"): 0.9, ("a", "x"): 0.5}
        items = _items("s", "a", "x")
        oracle = SimilarityTableOracle(items, 0.68, table)

        assert _membership(greedy_average(items, CONFIG, oracle)) == {frozenset({"s", "a", "x"})}
        assert _membership(greedy_min(items, CONFIG, oracle)) == {
            frozenset({"s", "a"}),
            frozenset({"x"}),
        }

    def test_claimed_items_are_not_reused(self) -> None:
        items = _items("A", "B", "C")
        oracle = SimilarityTableOracle(items, 0.68, SCENARIO_B)
        groups = greedy_average(items, CONFIG, oracle)
        ids = [item.id for group in groups for item in group.items]
        assert sorted(ids) == ["A", "B", "C"]

    def test_min_strictness_on_vectors(self) -> None:
        items = _clustered_vectors()
        config = ClusteringConfig(similarity_threshold=0.8, candidate_limit=20)
        oracle = BruteForceOracle(items, config.similarity_threshold)

        for group in greedy_min(items, config, oracle):
            for a, b in combinations(group.items, 2):
                assert oracle.similarity(a, b) >= config.similarity_threshold


class TestMutualK:
    def test_members_have_a_mutual_neighbor_in_cluster(self) -> None:
        items = _clustered_vectors()
        config = ClusteringConfig(similarity_threshold=0.6, candidate_limit=3)
        oracle = BruteForceOracle(items, config.similarity_threshold)
        neighbor_ids = {
            item.id: {o.id for o, _ in oracle.top_similar(item, config.candidate_limit)}
            for item in items
        }

        for group in mutual_k(items, config, oracle):
            if len(group) == 1:
                continue
            for item in group.items:
                assert any(
                    other.id in neighbor_ids[item.id] and item.id in neighbor_ids[other.id]
                    for other in group.items
                    if other.id != item.id
                )

    def test_one_sided_neighbor_is_not_linked(self) -> None:
        # b is a's best match, but b prefers c
        table = {("a", "b"): 0.8, ("b", "c"): 0.95, ("a", "c"): 0.1}
        items = _items("a", "b", "c")
        oracle = SimilarityTableOracle(items, 0.68, table)
        config = ClusteringConfig(similarity_threshold=0.68, candidate_limit=1)
        assert _membership(mutual_k(items, config, oracle)) == {
            frozenset({"a"}),
            frozenset({"b", "c"}),
        }


class TestDeterminismAndConcurrency:
    @pytest.mark.parametrize("name", sorted(STRATEGIES))
    def test_repeated_runs_match(self, name) -> None:
        items = _clustered_vectors()
        config = ClusteringConfig(similarity_threshold=0.7, candidate_limit=10)
        first = STRATEGIES[name](items, config, BruteForceOracle(items, 0.7))
        second = STRATEGIES[name](items, config, BruteForceOracle(items, 0.7))
        assert [g.item_ids for g in first] == [g.item_ids for g in second]

    @pytest.mark.parametrize("strategy", [connected_components, mutual_k])
    def test_parallel_fetch_matches_sequential(self, strategy) -> None:
        items = _clustered_vectors()
        sequential = ClusteringConfig(similarity_threshold=0.7, candidate_limit=10)
        parallel = ClusteringConfig(similarity_threshold=0.7, candidate_limit=10, max_workers=4)
        oracle = BruteForceOracle(items, 0.7)
        expected = strategy(items, sequential, oracle)
        actual = strategy(items, parallel, oracle)
        assert [g.item_ids for g in actual] == [g.item_ids for g in expected]

    @pytest.mark.parametrize("name", sorted(STRATEGIES))
    def test_cancelled_run_raises(self, name) -> None:
        items = _items("d1", "d2", "d3")
        oracle = SimilarityTableOracle(items, 0.68, SCENARIO_A)
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(ClusteringCancelled):
            STRATEGIES[name](items, CONFIG, oracle, cancel)


class TestGetStrategy:
    def test_unset_defaults_to_connected_components(self) -> None:
        assert get_strategy(None) is connected_components
        assert get_strategy("") is connected_components

    def test_accepts_dashed_names(self) -> None:
        assert get_strategy("greedy-min") is greedy_min

    def test_unknown_name_raises(self) -> None:
        with pytest.raises(ConfigurationError):
            get_strategy("kmeans")
