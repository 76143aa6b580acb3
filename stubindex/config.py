"""Configuration for stubindex.

Settings are loaded from three sources in order of priority:
1. Environment variables (highest priority)
2. Project-level config: .stubindex/config.toml
3. Global config: ~/.config/stubindex/config.toml (lowest priority)
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from stubindex.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

_GLOBAL_CONFIG_PATH = Path.home() / ".config" / "stubindex" / "config.toml"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_TRUE_VALUES = ("true", "1", "yes")


@dataclass
class StubIndexConfig:
    """Stubindex configuration.

    Attributes:
        project_dir: Root directory of the project.
        source_dir: Directory holding the stub files (default: project_dir).
        source_pattern: Glob selecting stub files under source_dir.
        exclude_patterns: Extra path components to skip when loading.
        max_alias_hops: Longest alias chain followed before it counts as a cycle.
        max_workers: Parser threads. 0 = one per CPU.
        strict_aliases: Fail a unit whose alias names a method not declared
            earlier in that unit.
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR).
    """

    project_dir: Path = field(default_factory=Path.cwd)
    source_dir: Path | None = None
    source_pattern: str = "**/*.rb"
    exclude_patterns: list[str] = field(default_factory=list)
    max_alias_hops: int = 64
    max_workers: int = 0
    strict_aliases: bool = False
    log_level: str = "WARNING"

    @property
    def source_root(self) -> Path:
        if self.source_dir is None:
            return self.project_dir
        return self.source_dir if self.source_dir.is_absolute() else self.project_dir / self.source_dir

    @property
    def workers(self) -> int:
        return self.max_workers or os.cpu_count() or 1


def load_config(project_dir: Path) -> StubIndexConfig:
    """Load configuration from env vars, project config, and global config.

    Priority: env vars > .stubindex/config.toml > ~/.config/stubindex/config.toml

    Raises:
        ConfigError: If a setting has an invalid value.
    """
    config = StubIndexConfig(project_dir=project_dir)

    # Layer 1: Global config (lowest priority)
    _apply_toml(config, _load_toml(_GLOBAL_CONFIG_PATH))

    # Layer 2: Project config
    _apply_toml(config, _load_toml(project_dir / ".stubindex" / "config.toml"))

    # Layer 3: Environment variables (highest priority)
    _apply_env(config)

    _validate(config)
    return config


def _load_toml(path: Path) -> dict[str, Any]:
    """Load a TOML file, returning an empty dict if missing or invalid."""
    if not path.is_file():
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Could not parse %s: %s", path, exc)
        return {}


def _int(key: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from e


def _apply_toml(config: StubIndexConfig, settings: dict[str, Any]) -> None:
    """Merge TOML settings into a StubIndexConfig."""
    if "source_dir" in settings:
        config.source_dir = Path(str(settings["source_dir"]))
    if "source_pattern" in settings:
        config.source_pattern = str(settings["source_pattern"])
    if "exclude_patterns" in settings:
        config.exclude_patterns = [str(p) for p in settings["exclude_patterns"]]
    if "max_alias_hops" in settings:
        config.max_alias_hops = _int("max_alias_hops", settings["max_alias_hops"])
    if "max_workers" in settings:
        config.max_workers = _int("max_workers", settings["max_workers"])
    if "strict_aliases" in settings:
        config.strict_aliases = bool(settings["strict_aliases"])
    if "log_level" in settings:
        config.log_level = str(settings["log_level"]).upper()


def _apply_env(config: StubIndexConfig) -> None:
    """Override config with environment variables where set."""
    if source_dir := os.environ.get("STUBINDEX_SOURCE_DIR"):
        config.source_dir = Path(source_dir)
    if pattern := os.environ.get("STUBINDEX_SOURCE_PATTERN"):
        config.source_pattern = pattern
    if hops := os.environ.get("STUBINDEX_MAX_ALIAS_HOPS"):
        config.max_alias_hops = _int("STUBINDEX_MAX_ALIAS_HOPS", hops)
    if workers := os.environ.get("STUBINDEX_MAX_WORKERS"):
        config.max_workers = _int("STUBINDEX_MAX_WORKERS", workers)
    if strict := os.environ.get("STUBINDEX_STRICT_ALIASES"):
        config.strict_aliases = strict.lower() in _TRUE_VALUES
    if log_level := os.environ.get("STUBINDEX_LOG_LEVEL"):
        config.log_level = log_level.upper()


def _validate(config: StubIndexConfig) -> None:
    if config.max_alias_hops < 1:
        raise ConfigError(f"max_alias_hops must be at least 1, got {config.max_alias_hops}")
    if config.max_workers < 0:
        raise ConfigError(f"max_workers cannot be negative, got {config.max_workers}")
    if config.log_level not in _LOG_LEVELS:
        raise ConfigError(
            f"Unknown log level {config.log_level!r}; expected one of {', '.join(_LOG_LEVELS)}"
        )
