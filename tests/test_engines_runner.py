"""
Tests for the engines and the benchmark runner.

Runs the real engines in-process against the shared 40-session dataset
and checks their answers against values computed from the events.
"""

import json
import os
import tempfile
from collections import Counter
from statistics import mean

import pytest

from compare_olap.config import ConfigError
from compare_olap.engines import ENGINES, BenchmarkEngine, QueryOutput, create_engine
from compare_olap.queries import BenchmarkQuery, load_battery
from compare_olap.runner import (
    BenchmarkReport,
    QueryResult,
    QuerySummary,
    collect_system_info,
    geomean,
    print_report,
    run_query,
    run_suite,
    save_report,
    summarise,
)
from compare_olap.vocabulary import FEEDBACK, FORM_SUBMIT, PAGE_LOAD


def _answer(key, data_dir, query_id):
    engine = create_engine(key)
    query = load_battery(dialects=[engine.dialect], query_ids=[query_id])[0]
    engine.setup(data_dir)
    try:
        return engine.execute(query.variant(engine.dialect))
    finally:
        engine.teardown()


@pytest.mark.parametrize("key", list(ENGINES))
def test_count_by_event_type(event_data, key):
    data_dir, events = event_data
    output = _answer(key, data_dir, "Q1")
    assert output.columns == ["event_type", "count"]
    assert dict(output.rows) == Counter(e.event_type for e in events)
    counts = [count for _, count in output.rows]
    assert counts == sorted(counts, reverse=True)


@pytest.mark.parametrize("key", list(ENGINES))
def test_page_loads_per_session(event_data, key):
    data_dir, events = event_data
    loads = Counter(e.session_id for e in events if e.event_type == PAGE_LOAD)
    output = _answer(key, data_dir, "Q2")
    assert output.columns == ["average", "minimum", "maximum"]
    average, minimum, maximum = output.rows[0]
    assert float(average) == pytest.approx(mean(loads.values()))
    assert (minimum, maximum) == (min(loads.values()), max(loads.values()))


@pytest.mark.parametrize("key", list(ENGINES))
def test_average_feedback_score(event_data, key):
    data_dir, events = event_data
    scores = [int(e.field_value("score")) for e in events if e.form_type == FEEDBACK]
    output = _answer(key, data_dir, "Q3")
    assert float(output.rows[0][0]) == pytest.approx(mean(scores))


@pytest.mark.parametrize("key", list(ENGINES))
def test_top_pages(event_data, key):
    data_dir, events = event_data
    paths = Counter(e.payload["path"] for e in events if e.event_type == PAGE_LOAD)
    output = _answer(key, data_dir, "Q4")
    assert output.row_count == min(5, len(paths))
    for path, count in output.rows:
        assert paths[path] == count
    assert [c for _, c in output.rows] == sorted(paths.values(), reverse=True)[:5]


@pytest.mark.parametrize("key", list(ENGINES))
def test_page_loads_per_day(event_data, key):
    data_dir, events = event_data
    days = Counter(e.naive_timestamp().strftime("%Y-%m-%d")
                   for e in events if e.event_type == PAGE_LOAD)
    output = _answer(key, data_dir, "Q5")
    assert [(str(d)[:10], c) for d, c in output.rows] == sorted(days.items())[:10]


@pytest.mark.parametrize("key", list(ENGINES))
def test_form_submissions(event_data, key):
    data_dir, events = event_data
    forms = [(e.form_type, e.session_id) for e in events if e.event_type == FORM_SUBMIT]
    expected = sorted(
        (form_type, len({s for f, s in forms if f == form_type}),
         sum(1 for f, _ in forms if f == form_type))
        for form_type in {f for f, _ in forms}
    )
    output = _answer(key, data_dir, "Q6")
    assert output.columns == ["form_type", "unique_sessions", "total"]
    assert [tuple(r) for r in output.rows] == expected


@pytest.mark.parametrize("key", list(ENGINES))
def test_form_submissions_on_after(event_data, key):
    data_dir, events = event_data
    page_paths = {e.page_id: e.payload["path"] for e in events if e.event_type == PAGE_LOAD}
    expected = Counter(e.form_type for e in events
                       if e.event_type == FORM_SUBMIT and page_paths[e.page_id] == "/after")
    output = _answer(key, data_dir, "Q7")
    assert {(f, p): c for f, p, c in output.rows} == {
        (f, "/after"): c for f, c in expected.items()
    }


def test_missing_dataset_raises_file_not_found():
    with tempfile.TemporaryDirectory() as tmpdir:
        engine = create_engine("sqlite")
        with pytest.raises(FileNotFoundError):
            engine.setup(tmpdir)


def test_execute_before_setup_raises():
    with pytest.raises(RuntimeError):
        create_engine("duckdb").execute("SELECT 1")


def test_create_engine_unknown():
    with pytest.raises(ConfigError):
        create_engine("clickhouse")


def test_query_output_row_count():
    assert QueryOutput(["a"], [(1,), (2,)]).row_count == 2


# ----------------------------------------------------------------
# Runner
# ----------------------------------------------------------------

def test_run_suite_all_engines(event_data, capsys):
    data_dir, _ = event_data
    engines = [create_engine(key) for key in ENGINES]
    battery = load_battery(query_ids=["Q1", "Q4"])

    report = run_suite(engines, battery, data_dir=data_dir, runs=2, warmup=1)

    assert report.setup_errors == {}
    assert len(report.queries) == 2 * len(ENGINES)
    q1 = [s for s in report.queries if s.query_id == "Q1"]
    assert all(s.runs == 2 and s.error is None for s in q1)
    assert all(s.rows_returned == 3 for s in q1)
    assert report.summary("Q1", "duckdb").best_ms <= report.summary("Q1", "duckdb").worst_ms

    out = capsys.readouterr().out
    assert "Count by event_type" in out
    assert "DuckDB (Typed) took" in out
    assert "| event_type" in out


def test_run_suite_records_setup_failure(capsys):
    with tempfile.TemporaryDirectory() as tmpdir:
        report = run_suite([create_engine("sqlite")], load_battery(query_ids=["Q1"]),
                           data_dir=tmpdir, runs=1, warmup=0)
    assert "sqlite" in report.setup_errors
    assert "FileNotFoundError" in report.setup_errors["sqlite"]
    assert report.queries == []


def test_run_query_records_errors(event_data):
    data_dir, _ = event_data
    engine = create_engine("sqlite")
    bad = BenchmarkQuery("Q9", "Broken", variants={"sqlite": "SELECT * FROM nope"})
    engine.setup(data_dir)
    try:
        summary = run_query(engine, bad, runs=2, warmup=1, show_results=False)
    finally:
        engine.teardown()
    assert summary.runs == 0
    assert "no such table" in summary.error


def test_run_suite_skips_missing_variant(event_data):
    data_dir, _ = event_data
    query = BenchmarkQuery("Q9", "DuckDB only", variants={"duckdb": "SELECT 1 AS one"})
    report = run_suite([create_engine("sqlite"), create_engine("duckdb")], [query],
                       data_dir=data_dir, runs=1, warmup=0, show_results=False)
    assert [(s.query_id, s.engine) for s in report.queries] == [("Q9", "duckdb")]


class _FlakyEngine(BenchmarkEngine):
    key = "flaky"
    dialect = "sqlite"

    def __init__(self):
        super().__init__("Flaky", "0")
        self.calls = 0

    def setup(self, data_dir, **kwargs):
        pass

    def execute(self, query):
        self.calls += 1
        if self.calls % 2 == 0:
            raise ValueError("every other call fails")
        return QueryOutput(["x"], [(1,)])


def test_run_query_summarises_successful_runs_only():
    engine = _FlakyEngine()
    query = BenchmarkQuery("Q1", "t", variants={"sqlite": "SELECT 1"})
    summary = run_query(engine, query, runs=4, warmup=0, show_results=False)
    assert engine.calls == 4
    assert summary.runs == 2
    assert summary.rows_returned == 1
    assert len(summary.all_times_ms) == 2


def test_summarise_without_success_keeps_last_error():
    results = [
        QueryResult("Q1", "sqlite", 1, 0, error="first"),
        QueryResult("Q1", "sqlite", 2, 0, error="second"),
    ]
    summary = summarise("Q1", "sqlite", results)
    assert summary.runs == 0
    assert summary.error == "second"


def test_geomean():
    assert geomean([]) == 0.0
    assert geomean([0.0, -1]) == 0.0
    assert geomean([2.0, 8.0]) == pytest.approx(4.0)


def test_collect_system_info():
    info = collect_system_info()
    assert info["cpu_count_logical"] >= 1
    assert info["ram_total_gb"] > 0
    assert "platform" in info


def _tiny_report():
    return BenchmarkReport(
        suite="events",
        data_dir="./data",
        engines={"sqlite": {"name": "SQLite", "version": "3"},
                 "duckdb": {"name": "DuckDB", "version": "1"}},
        hardware={"platform": "test"},
        queries=[
            QuerySummary("Q1", "sqlite", 3, 4.0, 4.0, 3.0, 5.0, 3, 0.1, [3.0, 4.0, 5.0]),
            QuerySummary("Q1", "duckdb", 0, 0, 0, 0, 0, 0, 0, error="boom"),
        ],
        total_time_ms=12.0,
        setup_errors={"polars": "FileNotFoundError: x"},
    )


def test_print_report(capsys):
    print_report(_tiny_report())
    out = capsys.readouterr().out
    assert "BENCHMARK REPORT: events" in out
    assert "ERR" in out
    assert "GeoMean" in out
    assert "Q1 on duckdb: boom" in out
    assert "polars: FileNotFoundError" in out


def test_save_report():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = save_report(_tiny_report(), tmpdir)
        assert os.path.basename(path).startswith("events_")
        with open(path) as f:
            data = json.load(f)
    assert data["queries"][0]["median_ms"] == 4.0
    assert data["setup_errors"] == {"polars": "FileNotFoundError: x"}
