"""CLI for clustering news items into topics."""

from __future__ import annotations

import logging
import sys

from dotenv import load_dotenv

from cluster_topics.config import load_config
from cluster_topics.engine import ClusterEngine
from cluster_topics.exceptions import ClusteringError
from cluster_topics.get_items import get_items
from cluster_topics.helpers import COMPARE, parse_cluster_topics_args
from cluster_topics.models import ClusterRecord
from cluster_topics.report import compare_strategies, format_run, print_report
from cluster_topics.similarity import brute_force_factory, index_backed_factory
from cluster_topics.vector_index import PgVectorIndex
from common.cli_helpers import setup_logging
from common.local_io import save_jsonl_records_local

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    setup_logging()
    args = parse_cluster_topics_args(argv)
    load_dotenv()

    try:
        config = load_config(
            args.config,
            strategy=None if args.strategy == COMPARE else args.strategy,
            similarity_threshold=args.threshold,
            min_cluster_size=args.min_cluster_size,
            max_cluster_size=args.max_cluster_size,
            candidate_limit=args.candidate_limit,
            max_workers=args.max_workers,
        )
        engine = ClusterEngine(
            index_backed_factory(PgVectorIndex()) if args.use_index else brute_force_factory
        )

        items = get_items(limit=args.limit, since=args.since, path=args.path)
        if not items:
            logger.warning("No items to cluster")
            return 0

        if args.strategy == COMPARE:
            print_report(compare_strategies(items, config, engine))
            return 0

        run = engine.run(items, config)
        for line in format_run(run):
            logger.info(line)

        if args.load_local:
            records = [ClusterRecord.from_cluster(c, run.strategy) for c in run.clusters]
            save_jsonl_records_local(records, "topic_clusters", output_dir=args.output_dir)

        return 0

    except FileNotFoundError as e:
        logger.error("Input not found: %s", e)
        return 1
    except ClusteringError as e:
        logger.error("Clustering failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
