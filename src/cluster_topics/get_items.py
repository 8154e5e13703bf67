"""Fetch news items with embeddings for topic clustering."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy import text

from cluster_topics.models import Item
from common.datetime import parse_datetime

logger = logging.getLogger(__name__)


def _field(record: Any, *names: str) -> Any:
    """First non-None value among ``names`` from a dict, ORM row or mapping-like record."""
    for name in names:
        value = record.get(name) if isinstance(record, dict) else getattr(record, name, None)
        if value is not None:
            return value
    return None


def _coerce_embedding(value: Any) -> tuple[float, ...]:
    """Best-effort conversion of stored embeddings; unusable values become ()."""
    if value is None:
        return ()
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return ()
    if hasattr(value, "tolist"):
        value = value.tolist()
    if not isinstance(value, (list, tuple)):
        return ()
    try:
        return tuple(float(v) for v in value)
    except (TypeError, ValueError):
        return ()


def _coerce_published_at(value: Any) -> datetime | None:
    try:
        return parse_datetime(value)
    except (TypeError, ValueError):
        logger.debug("Unparseable published_at %r", value)
        return None


def to_item(record: Any) -> Item:
    """Build an Item from a dict, ORM row, or mapping-like record."""
    item_id = _field(record, "id", "article_id")
    source = _field(record, "source")
    if isinstance(source, dict):
        source = source.get("name")
    return Item(
        id=str(item_id),
        embedding=_coerce_embedding(_field(record, "embedding")),
        published_at=_coerce_published_at(_field(record, "published_at")),
        title=_field(record, "title"),
        source=source,
    )


def _get_items_from_rds(
    limit: int | None = None,
    since: datetime | None = None,
    table: str = "news_items",
) -> list[Item]:
    """Return unclustered items from Postgres, newest first."""
    from common.db import get_session

    logger.info("Loading unclustered items from %s (limit=%s, since=%s)", table, limit, since)
    stmt = text(
        f"""
        SELECT id, title, source, published_at, embedding::text AS embedding
        FROM {table}
        WHERE topic_id IS NULL
          AND (CAST(:since AS timestamptz) IS NULL OR published_at >= :since)
        ORDER BY published_at DESC
        LIMIT :limit
        """
    )
    with get_session() as session:
        rows = session.execute(stmt, {"since": since, "limit": limit}).mappings().all()
        items = [to_item(dict(row)) for row in rows]

    logger.info("Loaded %d items", len(items))
    return items


def _get_items_from_local(path: str | Path) -> list[Item]:
    """Return items from a local parquet or JSONL file."""
    path = Path(path)
    logger.info("Loading items from %s", path)
    if path.suffix == ".parquet":
        import pyarrow.parquet as pq

        records = pq.read_table(path).to_pylist()
    else:
        with path.open() as f:
            records = [json.loads(line) for line in f if line.strip()]

    items = [to_item(record) for record in records]
    logger.info("Loaded %d items", len(items))
    return items


def get_items(
    limit: int | None = None,
    since: datetime | None = None,
    path: str | Path | None = None,
) -> list[Item]:
    """Return items from a local file (parquet or JSONL) or from Postgres."""
    if path:
        items = _get_items_from_local(path)
        if since:
            items = [item for item in items if item.published_at and item.published_at >= since]
        return items[:limit] if limit else items
    return _get_items_from_rds(limit=limit, since=since)
