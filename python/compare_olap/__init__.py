"""compare-olap: the same analytical questions asked of SQLite, DuckDB, Polars and DataFusion.

Usage:
    from compare_olap import EventGenerator, create_engine, load_battery, run_suite

    gen = EventGenerator(seed=42)
    events = list(gen.iter_events(100))
    report = run_suite([create_engine("duckdb")], load_battery(), data_dir="./data")
"""

from compare_olap.events import Event, EventGenerator
from compare_olap.engines import ENGINES, create_engine
from compare_olap.queries import load_battery
from compare_olap.runner import run_suite

__version__ = "0.1.0"

__all__ = [
    "Event",
    "EventGenerator",
    "ENGINES",
    "create_engine",
    "load_battery",
    "run_suite",
]
