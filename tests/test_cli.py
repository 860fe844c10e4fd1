"""End-to-end tests for the generate / bench / report commands."""

import json
import os
import sqlite3
import tempfile

import pytest

from compare_olap import gen_data, report, runner
from compare_olap.stores import NORMALIZED_FILENAME, PARQUET_FILENAME, SQLITE_FILENAME


def test_generate_bench_report(capsys):
    with tempfile.TemporaryDirectory() as tmpdir:
        data_dir = os.path.join(tmpdir, "data")
        manifest_path = os.path.join(tmpdir, "manifest.json")

        assert gen_data.main([
            "--data-dir", data_dir, "--sessions", "15", "--seed", "5",
            "--start", "2023-04-16T10:00:00", "--batch-size", "50",
            "--manifest", manifest_path, "--quiet",
        ]) == 0

        with open(manifest_path) as f:
            manifest = json.load(f)
        assert manifest["sessions"] == 15
        assert set(manifest["rows"]) == {"sqlite", "duckdb", "duckdb_typed", "parquet"}
        assert set(manifest["rows"].values()) == {manifest["events"]}
        assert os.path.exists(os.path.join(data_dir, SQLITE_FILENAME))
        assert os.path.exists(os.path.join(data_dir, PARQUET_FILENAME))
        assert "| store" in capsys.readouterr().out

        results = os.path.join(tmpdir, "results")
        assert runner.main([
            "--data-dir", data_dir, "--engines", "sqlite", "duckdb", "polars",
            "--queries", "Q1", "Q2", "--runs", "1", "--warmup", "0",
            "--output", results, "--no-results",
        ]) == 0
        out = capsys.readouterr().out
        assert "BENCHMARK REPORT: events" in out
        assert "took" not in out

        [report_file] = os.listdir(results)
        with open(os.path.join(results, report_file)) as f:
            saved = json.load(f)
        assert {(q["query_id"], q["engine"]) for q in saved["queries"]} == {
            (qid, engine) for qid in ("Q1", "Q2") for engine in ("sqlite", "duckdb", "polars")
        }
        assert all(q["runs"] == 1 for q in saved["queries"])

        html_path = os.path.join(tmpdir, "site", "index.html")
        assert report.main([os.path.join(results, report_file), "--output", html_path]) == 0
        assert os.path.exists(html_path)


def test_generate_normalized():
    with tempfile.TemporaryDirectory() as tmpdir:
        assert gen_data.main_normalized([
            "--data-dir", tmpdir, "--sessions", "5", "--quiet", "--manifest", "-",
        ]) == 0
        with sqlite3.connect(os.path.join(tmpdir, NORMALIZED_FILENAME)) as conn:
            assert conn.execute("SELECT count(*) FROM event_types").fetchone()[0] >= 1


def test_generate_refuses_overwrite():
    with tempfile.TemporaryDirectory() as tmpdir:
        args = ["--data-dir", tmpdir, "--sessions", "2", "--quiet"]
        gen_data.main(args)
        sqlite_path = os.path.join(tmpdir, SQLITE_FILENAME)
        os.remove(sqlite_path)

        with pytest.raises(SystemExit):
            gen_data.main(args + ["--no-overwrite"])
        assert not os.path.exists(sqlite_path)


def _write_config(tmpdir, text):
    path = os.path.join(tmpdir, "config.yaml")
    with open(path, "w") as f:
        f.write(text)
    return path


def test_generate_reads_unquoted_start_from_yaml():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = _write_config(
            tmpdir,
            f"generate:\n  data_dir: {tmpdir}\n  sessions: 3\n"
            f"  start: 2023-04-16T10:00:00\n  targets: [sqlite]\n",
        )
        assert gen_data.main(["--config", config, "--quiet"]) == 0
        with sqlite3.connect(os.path.join(tmpdir, SQLITE_FILENAME)) as conn:
            first = conn.execute("SELECT min(timestamp) FROM events").fetchone()[0]
        assert first.startswith("2023-04-16 10:00:00")


def test_generate_honours_yaml_targets():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = _write_config(
            tmpdir,
            f"generate:\n  data_dir: {tmpdir}\n  sessions: 2\n  targets: [parquet]\n",
        )
        assert gen_data.main(["--config", config, "--quiet"]) == 0
        assert os.path.exists(os.path.join(tmpdir, PARQUET_FILENAME))
        assert not os.path.exists(os.path.join(tmpdir, SQLITE_FILENAME))


def test_generate_rejects_unknown_yaml_target():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = _write_config(tmpdir, "generate:\n  targets: [mysql]\n")
        with pytest.raises(SystemExit):
            gen_data.main(["--config", config, "--data-dir", tmpdir, "--quiet"])
        assert os.listdir(tmpdir) == ["config.yaml"]


def test_normalized_defaults_when_config_omits_sessions():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = _write_config(tmpdir, "generate:\n  seed: 3\n  targets: [sqlite]\n")
        args = gen_data.make_parser("gen").parse_args(["--config", config])
        resolved = gen_data.build_config(
            args, {"sessions": gen_data.NORMALIZED_SESSIONS}, gen_data.NORMALIZED_TARGETS,
        )
        assert resolved.sessions == 1_000_000
        assert resolved.targets == ["sqlite_normalized"]
        assert resolved.seed == 3

        plain = gen_data.build_config(args)
        assert plain.sessions == 100_000
        assert plain.targets == ["sqlite"]


@pytest.mark.parametrize("argv", [
    ["--sessions", "0"],
    ["--start", "yesterday"],
    ["--config", "/nonexistent/config.yaml"],
])
def test_generate_rejects_bad_arguments(argv):
    with pytest.raises(SystemExit):
        gen_data.main(argv + ["--quiet"])


@pytest.mark.parametrize("argv", [
    ["--queries", "Q42"],
    ["--runs", "0"],
    ["--engines", "mysql"],
])
def test_bench_rejects_bad_arguments(argv):
    with pytest.raises(SystemExit):
        runner.main(argv)


def test_bench_reads_yaml_config(capsys):
    with tempfile.TemporaryDirectory() as tmpdir:
        gen_data.main(["--data-dir", tmpdir, "--sessions", "3", "--quiet"])
        config = os.path.join(tmpdir, "bench.yaml")
        with open(config, "w") as f:
            f.write(f"bench:\n  data_dir: {tmpdir}\n  engines: [duckdb_typed]\n"
                    f"  queries: [Q3]\n  runs: 1\n  warmup: 0\n"
                    f"  output: {os.path.join(tmpdir, 'out')}\n")
        assert runner.main(["--config", config]) == 0
        out = capsys.readouterr().out
        assert "Average feedback score" in out
        assert os.listdir(os.path.join(tmpdir, "out"))
