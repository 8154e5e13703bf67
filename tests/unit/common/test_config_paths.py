"""Tests for common.config module."""

import pytest

from common.config import find_config_path, load_yaml


class TestFindConfigPath:
    def test_default_name(self, tmp_path) -> None:
        (tmp_path / "default.yaml").write_text("a: 1\n")
        assert find_config_path(None, tmp_path) == tmp_path / "default.yaml"

    def test_env_var_selects_config(self, tmp_path, monkeypatch) -> None:
        (tmp_path / "prod.yaml").write_text("a: 1\n")
        monkeypatch.setenv("MY_CONFIG", "prod")
        assert find_config_path(None, tmp_path, env_var="MY_CONFIG") == tmp_path / "prod.yaml"

    def test_explicit_path(self, tmp_path) -> None:
        path = tmp_path / "elsewhere.yaml"
        path.write_text("a: 1\n")
        assert find_config_path(str(path), tmp_path / "configs") == path

    def test_missing_raises(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            find_config_path("missing", tmp_path)


class TestLoadYaml:
    def test_mapping(self, tmp_path) -> None:
        path = tmp_path / "c.yaml"
        path.write_text("threshold: 0.7\nnested:\n  k: 3\n")
        assert load_yaml(path) == {"threshold": 0.7, "nested": {"k": 3}}

    def test_empty_file(self, tmp_path) -> None:
        path = tmp_path / "c.yaml"
        path.write_text("")
        assert load_yaml(path) == {}
