"""
Configuration for data generation and benchmark runs.

A YAML file may hold a ``generate:`` and a ``bench:`` section; any key
left out keeps its default, and command-line flags override both.

Example config.yaml:

  generate:
    data_dir: ./data
    sessions: 100000
    seed: 42
    start: 2023-04-16T00:00:00
    batch_size: 10000
    targets: [sqlite, parquet]

  bench:
    data_dir: ./data
    engines: [sqlite, duckdb, duckdb_typed, polars, datafusion]
    queries: [Q1, Q2, Q7]
    runs: 5
    warmup: 1
    output: ./results
"""

from dataclasses import dataclass, field, fields
from datetime import date, datetime

import yaml


class ConfigError(ValueError):
    """Invalid configuration value, name or file shape."""


DEFAULT_ENGINES = ["sqlite", "duckdb", "duckdb_typed", "polars", "datafusion"]


@dataclass
class GenConfig:
    """Knobs for ``compare-olap-gen`` / ``compare-olap-gen-normalized``."""
    data_dir: str = "./data"
    sessions: int = 100_000
    seed: int | None = 42
    start: str | date | None = None   # ISO-8601; default is "now" in UTC
    batch_size: int = 10_000
    targets: list[str] | None = None
    overwrite: bool = True

    def validate(self):
        _require_positive("sessions", self.sessions)
        _require_positive("batch_size", self.batch_size)
        if self.start is not None and not isinstance(self.start, (str, date)):
            raise ConfigError(f"start must be an ISO-8601 timestamp, got {self.start!r}")
        if self.targets is not None and (
            not self.targets
            or not isinstance(self.targets, list)
            or not all(isinstance(t, str) for t in self.targets)
        ):
            raise ConfigError(f"targets must be a list of store names, got {self.targets!r}")


@dataclass
class BenchConfig:
    """Knobs for ``compare-olap-bench``."""
    data_dir: str = "./data"
    engines: list[str] = field(default_factory=lambda: list(DEFAULT_ENGINES))
    queries: list[str] | None = None
    runs: int = 3
    warmup: int = 1
    output: str = "./results"
    show_results: bool = True

    def validate(self):
        _require_positive("runs", self.runs)
        if self.warmup < 0:
            raise ConfigError(f"warmup must be >= 0, got {self.warmup}")
        if not self.engines:
            raise ConfigError("At least one engine is required")


def _require_positive(name: str, value):
    if not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{name} must be a positive integer, got {value!r}")


def _build(cls, section, section_name: str, defaults: dict | None = None):
    if section is None:
        section = {}
    if not isinstance(section, dict):
        raise ConfigError(f"Section '{section_name}' must be a mapping")

    known = {f.name for f in fields(cls)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise ConfigError(
            f"Unknown keys in '{section_name}' section: {', '.join(unknown)}"
        )

    config = cls(**{**(defaults or {}), **section})
    config.validate()
    return config


def load_config(path: str | None,
                generate_defaults: dict | None = None) -> tuple[GenConfig, BenchConfig]:
    """Read *path* (YAML) into (GenConfig, BenchConfig). None → defaults.

    *generate_defaults* replaces GenConfig defaults for keys the
    ``generate:`` section leaves out.
    """
    if path is None:
        return _build(GenConfig, None, "generate", generate_defaults), BenchConfig()

    with open(path) as f:
        data = yaml.safe_load(f)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")

    unknown = sorted(set(data) - {"generate", "bench"})
    if unknown:
        raise ConfigError(f"{path}: unknown sections: {', '.join(unknown)}")

    return (
        _build(GenConfig, data.get("generate"), "generate", generate_defaults),
        _build(BenchConfig, data.get("bench"), "bench"),
    )


def apply_overrides(config, **overrides):
    """Set every override that is not None, then re-validate."""
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)
    config.validate()
    return config
