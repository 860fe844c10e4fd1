#!/usr/bin/env python3
"""
Event Query Benchmark Runner

Asks every engine the same battery of questions about the generated events,
prints each answer as a table together with its latency, and produces a
structured report.

Usage:
  # All engines, all queries, data generated with compare-olap-gen
  compare-olap-bench --data-dir ./data

  # A subset
  compare-olap-bench --engines duckdb polars --queries Q1 Q4 --runs 5

  # Settings from a YAML file (command-line flags still win)
  compare-olap-bench --config bench.yaml
"""

import argparse
import json
import math
import os
import platform
import sys
import time
from dataclasses import dataclass, field, asdict
from statistics import median, mean

import psutil

from compare_olap.config import ConfigError, apply_overrides, load_config
from compare_olap.display import format_table, section_banner
from compare_olap.engines import ENGINES, BenchmarkEngine, create_engine
from compare_olap.queries import QUERY_IDS, BenchmarkQuery, load_battery


# ----------------------------------------------------------------
# Data classes for structured results
# ----------------------------------------------------------------

@dataclass
class QueryResult:
    """Result of a single query execution."""
    query_id: str
    engine: str
    run_number: int
    wall_clock_ms: float
    rows_returned: int = 0
    peak_memory_mb: float = 0.0
    error: str | None = None
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = time.strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class QuerySummary:
    """Aggregated results across runs for one (query, engine) pair."""
    query_id: str
    engine: str
    runs: int
    median_ms: float
    mean_ms: float
    best_ms: float
    worst_ms: float
    rows_returned: int
    peak_memory_mb: float
    all_times_ms: list[float] = field(default_factory=list)
    error: str | None = None


@dataclass
class BenchmarkReport:
    """Complete benchmark report."""
    suite: str
    data_dir: str
    engines: dict
    hardware: dict
    queries: list[QuerySummary]
    total_time_ms: float
    setup_errors: dict = field(default_factory=dict)
    timestamp: str = ""
    config: dict = field(default_factory=dict)

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = time.strftime("%Y-%m-%dT%H:%M:%SZ")

    def summary(self, query_id: str, engine: str) -> QuerySummary | None:
        for q in self.queries:
            if q.query_id == query_id and q.engine == engine:
                return q
        return None

    def query_ids(self) -> list[str]:
        return list(dict.fromkeys(q.query_id for q in self.queries))


# ----------------------------------------------------------------
# System info collection
# ----------------------------------------------------------------

def collect_system_info() -> dict:
    """Collect hardware and OS information for reproducibility."""
    info = {
        "platform": platform.platform(),
        "processor": platform.processor(),
        "architecture": platform.machine(),
        "python_version": platform.python_version(),
        "hostname": platform.node(),
    }

    mem = psutil.virtual_memory()
    info["ram_total_gb"] = round(mem.total / (1024**3), 2)
    info["ram_available_gb"] = round(mem.available / (1024**3), 2)
    info["cpu_count_physical"] = psutil.cpu_count(logical=False)
    info["cpu_count_logical"] = psutil.cpu_count(logical=True)

    # Detect Raspberry Pi and similar boards
    try:
        with open("/proc/device-tree/model") as f:
            info["device_model"] = f.read().strip().rstrip("\x00")
    except OSError:
        pass

    return info


# ----------------------------------------------------------------
# Query execution
# ----------------------------------------------------------------

def summarise(query_id: str, engine: str,
              results: list[QueryResult]) -> QuerySummary:
    """Fold the timed runs of one (query, engine) pair into a summary."""
    ok = [r for r in results if r.error is None]
    times = [r.wall_clock_ms for r in ok]
    if times:
        return QuerySummary(
            query_id=query_id,
            engine=engine,
            runs=len(times),
            median_ms=round(median(times), 2),
            mean_ms=round(mean(times), 2),
            best_ms=round(min(times), 2),
            worst_ms=round(max(times), 2),
            rows_returned=ok[0].rows_returned,
            peak_memory_mb=max(r.peak_memory_mb for r in ok),
            all_times_ms=times,
        )

    errors = [r.error for r in results if r.error]
    return QuerySummary(
        query_id=query_id, engine=engine, runs=0,
        median_ms=0, mean_ms=0, best_ms=0, worst_ms=0,
        rows_returned=0, peak_memory_mb=0,
        error=errors[-1] if errors else None,
    )


def run_query(engine: BenchmarkEngine, query: BenchmarkQuery,
              runs: int = 3, warmup: int = 1,
              show_results: bool = True) -> QuerySummary:
    """Warm up, then time *runs* executions of the engine's variant.

    The first successful answer is printed as a table followed by
    "<engine> took <ms>ms". Failing runs are recorded, not raised.
    """
    variant = query.variant(engine.dialect)
    proc = psutil.Process()

    for w in range(warmup):
        try:
            engine.execute(variant)
        except Exception as e:
            print(f"  {engine.name} warmup {w+1}/{warmup}: ERROR - {e}",
                  file=sys.stderr)

    results: list[QueryResult] = []
    shown = not show_results

    for r in range(runs):
        try:
            mem_before = proc.memory_info().rss
            start = time.perf_counter()
            output = engine.execute(variant)
            elapsed_ms = (time.perf_counter() - start) * 1000
            peak_mem = max(0, proc.memory_info().rss - mem_before) / (1024 * 1024)

            results.append(QueryResult(
                query_id=query.query_id,
                engine=engine.key,
                run_number=r + 1,
                wall_clock_ms=round(elapsed_ms, 2),
                rows_returned=output.row_count,
                peak_memory_mb=round(peak_mem, 2),
            ))

            if not shown:
                print(format_table(output.columns, output.rows))
                print(f"{engine.name} took {elapsed_ms:.0f}ms")
                print()
                shown = True

        except Exception as e:
            results.append(QueryResult(
                query_id=query.query_id,
                engine=engine.key,
                run_number=r + 1,
                wall_clock_ms=0,
                error=f"{type(e).__name__}: {e}",
            ))
            print(f"  {engine.name} run {r+1}/{runs}: ERROR - {e}",
                  file=sys.stderr)

    return summarise(query.query_id, engine.key, results)


def run_suite(
    engines: list[BenchmarkEngine],
    battery: list[BenchmarkQuery],
    data_dir: str = "./data",
    runs: int = 3,
    warmup: int = 1,
    show_results: bool = True,
) -> BenchmarkReport:
    """Run the whole battery against every engine and return the report.

    An engine whose setup fails is recorded in ``setup_errors`` and left
    out of the remaining queries.
    """
    print(section_banner(
        f"Running: events ({len(battery)} queries × {len(engines)} engines "
        f"× {runs} runs)",
        f"Data:    {data_dir}",
    ), file=sys.stderr)

    active: list[BenchmarkEngine] = []
    setup_errors: dict[str, str] = {}
    for engine in engines:
        try:
            engine.setup(data_dir)
            active.append(engine)
            print(f"  {engine.name} {engine.version}: ready", file=sys.stderr)
        except Exception as e:
            setup_errors[engine.key] = f"{type(e).__name__}: {e}"
            print(f"  {engine.name}: SETUP FAILED - {e}", file=sys.stderr)

    summaries: list[QuerySummary] = []
    total_start = time.time()

    try:
        for query in battery:
            print(section_banner(query.title, *query.description))
            for engine in active:
                if query.variant(engine.dialect) is None:
                    print(f"  {engine.name}: no variant for {query.query_id}",
                          file=sys.stderr)
                    continue
                summaries.append(
                    run_query(engine, query, runs, warmup, show_results)
                )
    finally:
        for engine in active:
            engine.teardown()

    total_ms = (time.time() - total_start) * 1000

    return BenchmarkReport(
        suite="events",
        data_dir=str(data_dir),
        engines={e.key: {"name": e.name, "version": e.version} for e in engines},
        hardware=collect_system_info(),
        queries=summaries,
        total_time_ms=round(total_ms, 2),
        setup_errors=setup_errors,
        config={"runs": runs, "warmup": warmup,
                "queries": [q.query_id for q in battery]},
    )


# ----------------------------------------------------------------
# Reporting
# ----------------------------------------------------------------

def geomean(values: list[float]) -> float:
    """Geometric mean of the positive *values* (0.0 if there are none)."""
    valid = [v for v in values if v > 0]
    if not valid:
        return 0.0
    return math.exp(sum(math.log(v) for v in valid) / len(valid))


def print_report(report: BenchmarkReport):
    """Print the median latency matrix (query × engine) to stdout."""
    engine_keys = list(report.engines)

    print(f"\n{'='*72}")
    print(f"BENCHMARK REPORT: {report.suite}")
    print(f"{'='*72}")
    print(f"Data:         {report.data_dir}")
    print(f"Platform:     {report.hardware.get('platform', 'unknown')}")
    if "device_model" in report.hardware:
        print(f"Device:       {report.hardware['device_model']}")
    print(f"RAM:          {report.hardware.get('ram_total_gb', '?')} GB")
    print(f"CPUs:         {report.hardware.get('cpu_count_logical', '?')}")
    for key in engine_keys:
        info = report.engines[key]
        print(f"Engine:       {info['name']} {info['version']}")
    print(f"{'='*72}")

    header = f"{'Query':<8}" + "".join(f"{k:>18}" for k in engine_keys)
    print(f"\nMedian ms\n{header}")
    print("-" * len(header))

    for qid in report.query_ids():
        cells = []
        for key in engine_keys:
            s = report.summary(qid, key)
            if s is None:
                cells.append(f"{'-':>18}")
            elif s.runs == 0:
                cells.append(f"{'ERR':>18}")
            else:
                cells.append(f"{s.median_ms:>18.1f}")
        print(f"{qid:<8}" + "".join(cells))

    print("-" * len(header))
    geo_cells, total_cells = [], []
    for key in engine_keys:
        medians = [q.median_ms for q in report.queries
                   if q.engine == key and q.runs > 0]
        geo_cells.append(f"{geomean(medians):>18.1f}")
        total_cells.append(f"{sum(medians):>18.1f}")
    print(f"{'GeoMean':<8}" + "".join(geo_cells))
    print(f"{'Total':<8}" + "".join(total_cells))

    if report.setup_errors:
        print("\nSetup failures:")
        for key, error in report.setup_errors.items():
            print(f"  {key}: {error}")

    failures = [q for q in report.queries if q.runs == 0]
    if failures:
        print("\nQuery failures:")
        for q in failures:
            print(f"  {q.query_id} on {q.engine}: {q.error}")

    print(f"\nWall clock: {report.total_time_ms/1000:.1f}s")
    print(f"{'='*72}\n")


def save_report(report: BenchmarkReport, output_dir: str) -> str:
    """Save report as JSON."""
    os.makedirs(output_dir, exist_ok=True)
    stamp = report.timestamp.replace(":", "").replace("-", "")
    filename = f"{report.suite}_{stamp}.json"
    filepath = os.path.join(output_dir, filename)

    with open(filepath, "w") as f:
        json.dump(asdict(report), f, indent=2, default=str)

    print(f"Report saved: {filepath}", file=sys.stderr)
    return filepath


# ----------------------------------------------------------------
# CLI
# ----------------------------------------------------------------

def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(
        description="Run the event query battery across engines",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config", "-c",
        help="YAML file with a 'bench:' section"
    )
    parser.add_argument(
        "--data-dir", "-d",
        help="Directory holding the generated datasets (default: ./data)"
    )
    parser.add_argument(
        "--engines", "-e",
        nargs="+", choices=list(ENGINES),
        help="Engines to benchmark (default: all but sqlite_normalized)"
    )
    parser.add_argument(
        "--queries", "-q",
        nargs="+",
        help=f"Query IDs to run (default: {' '.join(QUERY_IDS)})"
    )
    parser.add_argument(
        "--runs", "-r",
        type=int,
        help="Number of timed runs per query (default: 3)"
    )
    parser.add_argument(
        "--warmup", "-w",
        type=int,
        help="Number of warmup runs (default: 1)"
    )
    parser.add_argument(
        "--output", "-o",
        help="Output directory for the JSON report (default: ./results)"
    )
    parser.add_argument(
        "--no-results",
        action="store_true",
        help="Do not print query answers, only timings"
    )

    args = parser.parse_args(argv)

    try:
        _, config = load_config(args.config)
        apply_overrides(
            config,
            data_dir=args.data_dir,
            engines=args.engines,
            queries=args.queries,
            runs=args.runs,
            warmup=args.warmup,
            output=args.output,
            show_results=False if args.no_results else None,
        )
        engines = [create_engine(key) for key in config.engines]
        battery = load_battery(
            dialects=sorted({e.dialect for e in engines}),
            query_ids=config.queries,
        )
    except (ConfigError, OSError) as e:
        parser.error(str(e))

    report = run_suite(
        engines, battery,
        data_dir=config.data_dir,
        runs=config.runs,
        warmup=config.warmup,
        show_results=config.show_results,
    )

    print_report(report)
    save_report(report, config.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
