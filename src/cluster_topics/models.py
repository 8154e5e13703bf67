"""Data models for topic clustering."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from common.datetime import parse_datetime
from common.hashing import generate_cluster_id

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class Item:
    """News item with a pre-computed embedding. Read-only during a pass."""

    id: str
    embedding: tuple[float, ...]
    published_at: datetime | None = None
    title: str | None = None
    source: str | None = None

    def __post_init__(self) -> None:
        # naive timestamps are taken as UTC so mixed batches stay comparable
        object.__setattr__(self, "published_at", parse_datetime(self.published_at))

    @property
    def dimensions(self) -> int:
        return len(self.embedding)


def recency_key(item: Item) -> datetime:
    """Sort key placing items without a timestamp last when sorting newest-first."""
    return item.published_at or _OLDEST


def newest_first(items) -> list[Item]:
    """Return items ordered by published_at descending, stable on input order."""
    return sorted(items, key=recency_key, reverse=True)


@dataclass(frozen=True)
class SimilarityEdge:
    """Scored link between two items, alive only while a strategy evaluates it."""

    from_id: str
    to_id: str
    score: float


@dataclass
class RawGroup:
    """Grouping produced by a strategy, before size policy is applied."""

    items: list[Item]

    @property
    def item_ids(self) -> set[str]:
        return {item.id for item in self.items}

    def __len__(self) -> int:
        return len(self.items)


@dataclass
class Cluster:
    """Final cluster handed to topic materialization."""

    items: list[Item]
    item_ids: frozenset[str] = field(init=False)

    def __post_init__(self) -> None:
        self.item_ids = frozenset(item.id for item in self.items)

    def __len__(self) -> int:
        return len(self.items)

    @property
    def cluster_id(self) -> str:
        return generate_cluster_id(self.item_ids)

    @property
    def newest_published_at(self) -> datetime | None:
        timestamps = [item.published_at for item in self.items if item.published_at]
        return max(timestamps) if timestamps else None

    @property
    def oldest_published_at(self) -> datetime | None:
        timestamps = [item.published_at for item in self.items if item.published_at]
        return min(timestamps) if timestamps else None


@dataclass
class ClusterRecord:
    """Serializable summary of a cluster for the output boundary."""

    cluster_id: str
    strategy: str
    size: int
    item_ids: list[str]
    titles: list[str]
    newest_published_at: datetime | None
    oldest_published_at: datetime | None

    @classmethod
    def from_cluster(cls, cluster: Cluster, strategy: str) -> ClusterRecord:
        return cls(
            cluster_id=cluster.cluster_id,
            strategy=strategy,
            size=len(cluster),
            item_ids=[item.id for item in cluster.items],
            titles=[item.title or "" for item in cluster.items],
            newest_published_at=cluster.newest_published_at,
            oldest_published_at=cluster.oldest_published_at,
        )


@dataclass
class ClusteringRun:
    """Result of one engine call, with the counts the pipeline logs."""

    strategy: str
    clusters: list[Cluster]
    total_items: int
    usable_items: int
    excluded_items: int
    elapsed_seconds: float = 0.0

    @property
    def singletons(self) -> int:
        return sum(1 for cluster in self.clusters if len(cluster) == 1)

    @property
    def max_cluster_size(self) -> int:
        return max((len(cluster) for cluster in self.clusters), default=0)
