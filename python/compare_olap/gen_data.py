#!/usr/bin/env python3
"""
Event Dataset Generator

Generates synthetic web-analytics sessions and writes the same event stream
into every dataset the benchmark reads.

Usage:
  # SQLite, DuckDB (JSON + typed) and Parquet, 100k sessions
  compare-olap-gen --data-dir ./data

  # Reproducible small dataset with a fixed clock
  compare-olap-gen --sessions 1000 --seed 7 --start 2023-04-16T00:00:00

  # Normalised SQLite layout (1M sessions by default)
  compare-olap-gen-normalized --data-dir ./data
"""

import argparse
import json
import os
import sys
import time
from contextlib import ExitStack
from datetime import date, datetime

from compare_olap.config import ConfigError, GenConfig, apply_overrides, load_config
from compare_olap.display import format_table, section_banner
from compare_olap.events import EventGenerator
from compare_olap.stores import (
    DEFAULT_TARGETS, STORES, LoadManifest, create_store, load_events,
)

NORMALIZED_TARGETS = ["sqlite_normalized"]
NORMALIZED_SESSIONS = 1_000_000


def parse_start(value: str | date | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        raise ConfigError(f"start must be an ISO-8601 timestamp, got {value!r}")
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ConfigError(f"start must be an ISO-8601 timestamp, got {value!r}") from None


def generate(config: GenConfig, quiet: bool = False) -> LoadManifest:
    """Generate ``config.sessions`` sessions into every target store."""
    targets = config.targets or DEFAULT_TARGETS
    stores = [create_store(key, config.data_dir, config.overwrite) for key in targets]
    if not config.overwrite:
        existing = [s.path for s in stores if os.path.exists(s.path)]
        if existing:
            raise FileExistsError(
                f"Refusing to overwrite existing dataset(s): {', '.join(existing)}"
            )
    gen = EventGenerator(seed=config.seed, start=parse_start(config.start))

    def progress(i, total):
        if not quiet:
            print(f"#{i}/{total}: Inserting session", file=sys.stderr)

    if not quiet:
        print(section_banner(
            "Event Dataset Generator",
            f"Sessions:   {config.sessions:,}",
            f"Seed:       {config.seed}",
            f"Output:     {config.data_dir}",
            f"Targets:    {', '.join(targets)}",
            width=60,
        ), file=sys.stderr)

    start = time.time()
    with ExitStack() as stack:
        for store in stores:
            stack.enter_context(store)

        written = load_events(
            gen.iter_events(config.sessions, progress=progress),
            stores,
            batch_size=config.batch_size,
        )
        elapsed = time.time() - start

        manifest = LoadManifest(
            sessions=config.sessions,
            seed=config.seed,
            batch_size=config.batch_size,
            events=written,
            elapsed_seconds=round(elapsed, 2),
        )
        for store in stores:
            if not quiet:
                print(f"Count {store.name}", file=sys.stderr)
            manifest.rows[store.key] = store.count()

    for store in stores:
        manifest.files[store.key] = store.path
        manifest.sizes_mb[store.key] = round(store.size_mb(), 2)

    return manifest


def print_manifest(manifest: LoadManifest):
    rows = [
        (STORES[key].name, count, manifest.sizes_mb.get(key, 0.0))
        for key, count in manifest.rows.items()
    ]
    print(format_table(["store", "rows", "size_mb"], rows))
    print(f"{manifest.events:,} events from {manifest.sessions:,} sessions "
          f"in {manifest.elapsed_seconds:.1f}s")


def write_manifest(manifest: LoadManifest, path: str):
    text = json.dumps(manifest.to_dict(), indent=2)
    if path == "-":
        print(text)
        return
    with open(path, "w") as f:
        f.write(text + "\n")
    print(f"Manifest: {path}", file=sys.stderr)


def make_parser(description: str, default_sessions: int = 100_000) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=description,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config", "-c",
        help="YAML file with a 'generate:' section"
    )
    parser.add_argument(
        "--data-dir", "-d",
        help="Output directory for the datasets (default: ./data)"
    )
    parser.add_argument(
        "--sessions", "-n",
        type=int,
        help=f"Number of sessions to generate (default: {default_sessions:,})"
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Random seed (default: 42)"
    )
    parser.add_argument(
        "--start",
        help="ISO-8601 timestamp of the first session (default: now, UTC)"
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        help="Events per batch written to the stores (default: 10000)"
    )
    parser.add_argument(
        "--no-overwrite",
        action="store_true",
        help="Fail instead of replacing existing datasets"
    )
    parser.add_argument(
        "--manifest",
        help="Write the load manifest as JSON to this path ('-' for stdout)"
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress progress output"
    )
    return parser


def build_config(args, generate_defaults: dict | None = None,
                 targets: list[str] | None = None) -> GenConfig:
    """Merge defaults, the YAML ``generate:`` section and CLI flags.

    *targets*, when given, pins the stores regardless of the config file.
    """
    config, _ = load_config(args.config, generate_defaults=generate_defaults)
    apply_overrides(
        config,
        data_dir=args.data_dir,
        sessions=args.sessions,
        seed=args.seed,
        start=args.start,
        batch_size=args.batch_size,
        overwrite=False if args.no_overwrite else None,
    )
    if targets is not None:
        config.targets = targets
    unknown = [key for key in config.targets or [] if key not in STORES]
    if unknown:
        raise ConfigError(
            f"Unknown target(s): {', '.join(unknown)}. Choose from: {', '.join(STORES)}"
        )
    parse_start(config.start)
    return config


def _run(argv, description: str, generate_defaults: dict, targets: list[str] | None):
    parser = make_parser(description, generate_defaults.get("sessions", 100_000))
    args = parser.parse_args(argv)

    try:
        config = build_config(args, generate_defaults, targets)
    except (ConfigError, OSError) as e:
        parser.error(str(e))

    try:
        manifest = generate(config, quiet=args.quiet)
    except FileExistsError as e:
        parser.error(str(e))
    if args.manifest != "-":
        print_manifest(manifest)
    if args.manifest:
        write_manifest(manifest, args.manifest)
    return 0


def main(argv: list[str] | None = None):
    return _run(argv, "Generate the event datasets (SQLite, DuckDB, Parquet)",
                {}, None)


def main_normalized(argv: list[str] | None = None):
    return _run(argv, "Generate the normalised SQLite event dataset",
                {"sessions": NORMALIZED_SESSIONS}, NORMALIZED_TARGETS)


if __name__ == "__main__":
    sys.exit(main())
