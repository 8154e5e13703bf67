"""Clustering configuration: dataclass, validation and YAML/env loading."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from cluster_topics.exceptions import ConfigurationError
from common.config import find_config_path, load_yaml

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).parent / "configs"

CONNECTED_COMPONENTS = "connected_components"
GREEDY_AVERAGE = "greedy_average"
GREEDY_MIN = "greedy_min"
MUTUAL_K = "mutual_k"

STRATEGY_NAMES = (CONNECTED_COMPONENTS, GREEDY_AVERAGE, GREEDY_MIN, MUTUAL_K)
DEFAULT_STRATEGY = CONNECTED_COMPONENTS

DEFAULT_EMBEDDING_DIMENSIONS = 384

# Settings a strategy may override; everything else is run-wide.
OVERRIDABLE = ("similarity_threshold", "min_cluster_size", "max_cluster_size", "candidate_limit")

# env var -> (field, parser)
ENV_VARS = {
    "CLUSTERING_THRESHOLD": ("similarity_threshold", float),
    "MIN_CLUSTER_SIZE": ("min_cluster_size", int),
    "MAX_CLUSTER_SIZE": ("max_cluster_size", int),
    "CLUSTERING_CANDIDATE_LIMIT": ("candidate_limit", int),
}


@dataclass(frozen=True)
class ClusteringConfig:
    similarity_threshold: float = 0.68
    min_cluster_size: int = 1
    max_cluster_size: int = 20
    candidate_limit: int = 50
    strategy: str | None = DEFAULT_STRATEGY

    # None infers the most common dimension in each batch
    embedding_dimensions: int | None = DEFAULT_EMBEDDING_DIMENSIONS

    # Thread pool size for neighbor fetching (connected_components, mutual_k)
    max_workers: int = 1
    index_timeout_seconds: float = 5.0

    # strategy name -> {setting: value}
    overrides: dict[str, dict[str, Any]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not 0 < self.similarity_threshold <= 1:
            raise ConfigurationError(
                f"similarity_threshold must be in (0, 1], got {self.similarity_threshold}"
            )
        if self.min_cluster_size < 1:
            raise ConfigurationError(f"min_cluster_size must be >= 1, got {self.min_cluster_size}")
        if self.max_cluster_size < self.min_cluster_size:
            raise ConfigurationError(
                f"max_cluster_size ({self.max_cluster_size}) must be >= "
                f"min_cluster_size ({self.min_cluster_size})"
            )
        if self.candidate_limit < 1:
            raise ConfigurationError(f"candidate_limit must be >= 1, got {self.candidate_limit}")
        if self.embedding_dimensions is not None and self.embedding_dimensions < 1:
            raise ConfigurationError(
                f"embedding_dimensions must be >= 1, got {self.embedding_dimensions}"
            )
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.index_timeout_seconds <= 0:
            raise ConfigurationError(
                f"index_timeout_seconds must be > 0, got {self.index_timeout_seconds}"
            )
        if self.strategy:
            resolve_strategy_name(self.strategy)
        for name, settings in self.overrides.items():
            resolve_strategy_name(name)
            unknown = set(settings) - set(OVERRIDABLE)
            if unknown:
                raise ConfigurationError(
                    f"Unsupported override(s) for {name}: {', '.join(sorted(unknown))}"
                )

    @property
    def strategy_name(self) -> str:
        """Configured strategy, defaulting to connected_components when unset."""
        return resolve_strategy_name(self.strategy)

    def for_strategy(self, name: str | None = None) -> ClusteringConfig:
        """Return the effective config for a strategy, generic values as fallback.

        Raises:
            ConfigurationError: If the overrides produce invalid bounds.
        """
        name = resolve_strategy_name(name if name is not None else self.strategy)
        settings = self.overrides.get(name, {})
        return replace(self, strategy=name, overrides={}, **settings)


def resolve_strategy_name(name: str | None) -> str:
    """Normalize a strategy name; unset means the default strategy.

    Raises:
        ConfigurationError: If the name is not a known strategy.
    """
    if not name:
        return DEFAULT_STRATEGY
    normalized = name.strip().lower().replace("-", "_")
    if normalized not in STRATEGY_NAMES:
        raise ConfigurationError(
            f"Unknown clustering strategy: {name!r}. Must be one of {', '.join(STRATEGY_NAMES)}"
        )
    return normalized


def _parse_env(environ: dict[str, str]) -> tuple[dict[str, Any], dict[str, dict[str, Any]]]:
    """Read generic and per-strategy settings from environment variables."""
    generic: dict[str, Any] = {}
    overrides: dict[str, dict[str, Any]] = {}

    for var, (setting, parser) in ENV_VARS.items():
        raw = environ.get(var)
        if raw:
            generic[setting] = _parse_value(var, raw, parser)
        for strategy in STRATEGY_NAMES:
            scoped_var = f"{var}_{strategy.upper()}"
            raw = environ.get(scoped_var)
            if raw:
                overrides.setdefault(strategy, {})[setting] = _parse_value(scoped_var, raw, parser)

    if environ.get("CLUSTERING_METHOD"):
        generic["strategy"] = environ["CLUSTERING_METHOD"]
    if environ.get("EMBEDDING_DIMENSIONS"):
        generic["embedding_dimensions"] = _parse_value(
            "EMBEDDING_DIMENSIONS", environ["EMBEDDING_DIMENSIONS"], int
        )

    return generic, overrides


def _parse_value(name: str, raw: str, parser):
    try:
        return parser(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}") from exc


def _from_mapping(data: dict[str, Any]) -> tuple[dict[str, Any], dict[str, dict[str, Any]]]:
    """Split a YAML mapping into generic settings and per-strategy overrides."""
    known = {f.name for f in fields(ClusteringConfig)} - {"overrides"}
    generic = {key: value for key, value in data.items() if key in known}
    unknown = set(data) - known - {"overrides"}
    if unknown:
        logger.warning("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))

    overrides: dict[str, dict[str, Any]] = {}
    for name, settings in (data.get("overrides") or {}).items():
        overrides[resolve_strategy_name(name)] = dict(settings or {})
    return generic, overrides


def load_config(
    name: str | None = None,
    environ: dict[str, str] | None = None,
    **cli_overrides: Any,
) -> ClusteringConfig:
    """Load clustering config once per run.

    Precedence, lowest to highest: dataclass defaults, YAML file, environment
    variables (including ``<VAR>_<STRATEGY>`` per-strategy overrides), then
    keyword overrides (typically CLI flags; ``None`` values are ignored).

    Args:
        name: Config name under ``configs/`` or a path to a YAML file
        environ: Environment mapping (defaults to ``os.environ`` after load_dotenv)
        **cli_overrides: Generic settings taking precedence over everything else

    Returns:
        Validated ClusteringConfig

    Raises:
        FileNotFoundError: If the config file does not exist
        ConfigurationError: If any value is invalid
    """
    if environ is None:
        load_dotenv()
        environ = dict(os.environ)

    config_path = find_config_path(name, CONFIG_DIR, env_var="CLUSTERING_CONFIG")
    logger.info("Loading clustering config from %s", config_path)
    generic, overrides = _from_mapping(load_yaml(config_path))

    env_generic, env_overrides = _parse_env(environ)
    generic.update(env_generic)
    for strategy, settings in env_overrides.items():
        overrides.setdefault(strategy, {}).update(settings)

    generic.update({key: value for key, value in cli_overrides.items() if value is not None})

    return ClusteringConfig(**generic, overrides=overrides)
