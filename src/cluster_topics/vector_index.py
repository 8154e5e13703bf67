"""Approximate nearest-neighbor search backed by Postgres + pgvector."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Collection, Sequence
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import exc as sa_exc
from sqlalchemy import text
from sqlalchemy.orm import Session

from cluster_topics.exceptions import CapabilityUnavailable, TransientIOFailure
from common.db import get_session

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "news_items"

# Postgres error codes meaning the store cannot serve vector search at all:
# undefined_function / undefined_object (no pgvector), undefined_table,
# undefined_column, feature_not_supported, query_canceled (statement timeout).
CAPABILITY_PGCODES = frozenset({"42883", "42704", "42P01", "42703", "0A000", "57014"})

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class IndexHit:
    """Item id returned by the index with its cosine similarity to the query."""

    id: str
    score: float


class NeighborIndex(Protocol):
    def search(
        self,
        query: Sequence[float],
        *,
        num_candidates: int,
        limit: int,
        exclude_ids: Collection[str],
        timeout_seconds: float,
        include_ids: Collection[str] | None = None,
    ) -> list[IndexHit]:
        """Return up to ``limit`` hits by descending score; ``[]`` for an empty index.

        When ``include_ids`` is given, only those ids are candidates.
        """
        ...


def _vector_literal(values: Sequence[float]) -> str:
    return "[" + ",".join(repr(float(v)) for v in values) + "]"


def _classify_error(error: sa_exc.DBAPIError) -> Exception:
    pgcode = getattr(error.orig, "pgcode", None)
    if pgcode in CAPABILITY_PGCODES:
        return CapabilityUnavailable(f"Vector search unavailable (pgcode={pgcode}): {error.orig}")
    return TransientIOFailure(f"Vector search failed: {error.orig}")


class PgVectorIndex:
    """Nearest-neighbor search over unclustered items using the pgvector ``<=>`` operator.

    ``num_candidates`` maps onto the HNSW ``ef_search`` setting so recall can be
    raised independently of the number of rows returned. Scores are cosine
    similarities (``1 - cosine distance``), directly comparable with the
    brute-force oracle.
    """

    def __init__(
        self,
        session_factory: Callable[[], AbstractContextManager[Session]] = get_session,
        table: str = DEFAULT_TABLE,
        id_column: str = "id",
        embedding_column: str = "embedding",
        clustered_column: str | None = "topic_id",
    ) -> None:
        for identifier in (table, id_column, embedding_column, clustered_column):
            if identifier is not None and not _IDENTIFIER.match(identifier):
                raise ValueError(f"Invalid SQL identifier: {identifier!r}")
        self._session_factory = session_factory
        self._table = table
        self._id_column = id_column
        self._embedding_column = embedding_column
        self._clustered_column = clustered_column

    def _build_query(self, restrict_to_batch: bool = False):
        clustered_filter = (
            f"AND {self._clustered_column} IS NULL" if self._clustered_column else ""
        )
        batch_filter = (
            f"AND {self._id_column}::text = ANY(:include_ids)" if restrict_to_batch else ""
        )
        return text(
            f"""
            SELECT
                {self._id_column} AS id,
                1 - ({self._embedding_column} <=> CAST(:query AS vector)) AS score
            FROM {self._table}
            WHERE {self._embedding_column} IS NOT NULL
              {clustered_filter}
              {batch_filter}
              AND NOT ({self._id_column}::text = ANY(:exclude_ids))
            ORDER BY {self._embedding_column} <=> CAST(:query AS vector)
            LIMIT :limit
            """
        )

    def search(
        self,
        query: Sequence[float],
        *,
        num_candidates: int,
        limit: int,
        exclude_ids: Collection[str],
        timeout_seconds: float,
        include_ids: Collection[str] | None = None,
    ) -> list[IndexHit]:
        """Run one nearest-neighbor query, optionally restricted to ``include_ids``.

        Raises:
            CapabilityUnavailable: pgvector missing, schema mismatch, or the
                statement timeout elapsed
            TransientIOFailure: connection or other database failure
        """
        timeout_ms = max(1, int(timeout_seconds * 1000))
        params = {
            "query": _vector_literal(query),
            "exclude_ids": [str(item_id) for item_id in exclude_ids],
            "limit": int(limit),
        }
        if include_ids is not None:
            params["include_ids"] = [str(item_id) for item_id in include_ids]
        try:
            with self._session_factory() as session:
                # SET LOCAL scopes both settings to this read-only transaction
                session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
                session.execute(text(f"SET LOCAL hnsw.ef_search = {int(num_candidates)}"))
                query = self._build_query(restrict_to_batch=include_ids is not None)
                rows = session.execute(query, params).mappings().all()
                session.rollback()
        except sa_exc.DBAPIError as error:
            raise _classify_error(error) from error
        except sa_exc.TimeoutError as error:
            raise CapabilityUnavailable(f"Timed out waiting for a connection: {error}") from error

        hits = [IndexHit(id=str(row["id"]), score=float(row["score"])) for row in rows]
        logger.debug("Vector search returned %d hits (limit=%d)", len(hits), limit)
        return hits
