"""Helper functions for the cluster_topics CLI."""

from __future__ import annotations

import argparse

from cluster_topics.config import STRATEGY_NAMES
from common.cli_helpers import positive_int, unit_float
from common.datetime import parse_datetime

COMPARE = "compare"


def _parse_since(value: str):
    try:
        return parse_datetime(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("since must be an ISO 8601 date or datetime") from exc


def parse_cluster_topics_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for cluster_topics."""

    parser = argparse.ArgumentParser(description="Cluster embedded news items into topics.")

    # Input options
    parser.add_argument(
        "--path",
        type=str,
        default=None,
        help="Local parquet or JSONL file with items (default: load from Postgres)",
    )
    parser.add_argument("--limit", type=positive_int, default=None, help="Maximum items to load")
    parser.add_argument(
        "--since",
        type=_parse_since,
        default=None,
        help="Only cluster items published at or after this time (ISO 8601)",
    )

    # Clustering options
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Config name under configs/ or path to a YAML file (default: default)",
    )
    parser.add_argument(
        "--strategy",
        choices=[*STRATEGY_NAMES, COMPARE],
        default=None,
        help="Clustering strategy, or 'compare' to report on all of them",
    )
    parser.add_argument("--threshold", type=unit_float, default=None, help="Similarity threshold")
    parser.add_argument("--min-cluster-size", type=positive_int, default=None)
    parser.add_argument("--max-cluster-size", type=positive_int, default=None)
    parser.add_argument("--candidate-limit", type=positive_int, default=None)
    parser.add_argument(
        "--max-workers",
        type=positive_int,
        default=None,
        help="Parallel neighbor queries for connected_components and mutual_k",
    )
    parser.add_argument(
        "--use-index",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Query the pgvector index (falls back to brute force if unavailable)",
    )

    # Output options
    parser.add_argument("--load-local", action="store_true", help="Save clusters to local JSONL")
    parser.add_argument("--output-dir", default="output", help="Directory for --load-local")

    return parser.parse_args(argv)
