"""Tests for cluster_topics.cli module."""

from __future__ import annotations

import json
from unittest.mock import patch

from cluster_topics.cli import main
from cluster_topics.models import Item

ITEMS = [
    Item(id="a", embedding=(1.0, 0.0), title="Rates cut"),
    Item(id="b", embedding=(0.99, 0.05), title="Central bank cuts rates"),
    Item(id="c", embedding=(0.0, 1.0), title="Cup final"),
]


class TestMain:
    @patch("cluster_topics.cli.get_items", return_value=ITEMS)
    def test_saves_clusters_locally(self, mock_get_items, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv("EMBEDDING_DIMENSIONS", "2")

        code = main(["--path", "items.jsonl", "--load-local", "--output-dir", str(tmp_path)])

        assert code == 0
        mock_get_items.assert_called_once_with(limit=None, since=None, path="items.jsonl")
        (output,) = tmp_path.glob("topic_clusters_*.jsonl")
        records = [json.loads(line) for line in output.read_text().splitlines()]
        assert [r["item_ids"] for r in records] == [["a", "b"], ["c"]]
        assert records[0]["strategy"] == "connected_components"
        assert records[0]["cluster_id"].startswith("cluster_")

    @patch("cluster_topics.cli.print_report")
    @patch("cluster_topics.cli.get_items", return_value=ITEMS)
    def test_compare_prints_report(self, mock_get_items, mock_print_report, monkeypatch) -> None:
        monkeypatch.setenv("EMBEDDING_DIMENSIONS", "2")

        assert main(["--strategy", "compare"]) == 0

        runs = mock_print_report.call_args.args[0]
        assert set(runs) == {"connected_components", "greedy_average", "greedy_min", "mutual_k"}

    @patch("cluster_topics.cli.get_items", return_value=[])
    def test_no_items(self, mock_get_items) -> None:
        assert main([]) == 0

    @patch("cluster_topics.cli.get_items", side_effect=FileNotFoundError("items.jsonl"))
    def test_missing_input_returns_error(self, mock_get_items) -> None:
        assert main(["--path", "items.jsonl"]) == 1

    @patch("cluster_topics.cli.get_items", return_value=ITEMS)
    def test_invalid_env_config_returns_error(self, mock_get_items, monkeypatch) -> None:
        monkeypatch.setenv("MIN_CLUSTER_SIZE", "5")
        monkeypatch.setenv("MAX_CLUSTER_SIZE", "2")

        assert main([]) == 1
        mock_get_items.assert_not_called()
