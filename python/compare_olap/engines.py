"""
Query engines under comparison.

Every engine reads the dataset written by the matching store and answers
the query variant written in its ``dialect``:

  key                 dataset                 dialect
  sqlite              eventsqlite.db          sqlite
  sqlite_normalized   normalqlite.db          sqlite_normalized
  duckdb              eventsduck.db           duckdb
  duckdb_typed        eventsduck-typed.db     duckdb_typed
  polars              events-typed.parquet    polars   (LazyFrame -> LazyFrame)
  datafusion          events-typed.parquet    datafusion
"""

import sqlite3
from dataclasses import dataclass, field
from pathlib import Path

import duckdb

from .config import ConfigError
from .stores import (
    DUCKDB_FILENAME, DUCKDB_TYPED_FILENAME, NORMALIZED_FILENAME,
    PARQUET_FILENAME, SQLITE_FILENAME,
)


@dataclass
class QueryOutput:
    """Column names and materialised rows of one query execution."""
    columns: list[str]
    rows: list[tuple] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


class BenchmarkEngine:
    """Base class for benchmark execution engines.

    Subclasses set ``key`` (config name), ``dialect`` (which query variant
    they run) and ``filename`` (dataset inside the data directory).
    """

    key = ""
    dialect = ""
    filename = ""

    def __init__(self, name: str, version: str = "unknown"):
        self.name = name
        self.version = version

    def data_path(self, data_dir: str) -> Path:
        path = Path(data_dir) / self.filename
        if not path.exists():
            raise FileNotFoundError(f"Dataset for {self.name} not found: {path}")
        return path

    def setup(self, data_dir: str, **kwargs):
        """Open the dataset."""
        raise NotImplementedError

    def execute(self, query) -> QueryOutput:
        """Run *query* and materialise every row."""
        raise NotImplementedError

    def teardown(self):
        """Clean up engine resources."""
        pass

    def _require_setup(self, handle):
        if handle is None:
            raise RuntimeError(f"{self.name} not set up. Call setup() first.")


class SQLiteEngine(BenchmarkEngine):
    key = "sqlite"
    dialect = "sqlite"
    filename = SQLITE_FILENAME

    def __init__(self, name: str = "SQLite"):
        super().__init__(name, sqlite3.sqlite_version)
        self.conn = None

    def setup(self, data_dir: str, **kwargs):
        self.conn = sqlite3.connect(str(self.data_path(data_dir)))

    def execute(self, sql: str) -> QueryOutput:
        self._require_setup(self.conn)
        cursor = self.conn.execute(sql)
        columns = [d[0] for d in cursor.description]
        return QueryOutput(columns, cursor.fetchall())

    def teardown(self):
        if self.conn is not None:
            self.conn.close()
            self.conn = None


class NormalizedSQLiteEngine(SQLiteEngine):
    key = "sqlite_normalized"
    dialect = "sqlite_normalized"
    filename = NORMALIZED_FILENAME

    def __init__(self):
        super().__init__("SQLite (Normalized)")


class DuckDBEngine(BenchmarkEngine):
    """DuckDB over the JSON-payload database, opened read-only."""

    key = "duckdb"
    dialect = "duckdb"
    filename = DUCKDB_FILENAME

    def __init__(self, name: str = "DuckDB"):
        super().__init__(name, duckdb.__version__)
        self.conn = None

    def setup(self, data_dir: str, **kwargs):
        self.conn = duckdb.connect(str(self.data_path(data_dir)), read_only=True)

    def execute(self, sql: str) -> QueryOutput:
        self._require_setup(self.conn)
        cursor = self.conn.execute(sql)
        columns = [d[0] for d in cursor.description]
        return QueryOutput(columns, cursor.fetchall())

    def teardown(self):
        if self.conn is not None:
            self.conn.close()
            self.conn = None


class DuckDBTypedEngine(DuckDBEngine):
    key = "duckdb_typed"
    dialect = "duckdb_typed"
    filename = DUCKDB_TYPED_FILENAME

    def __init__(self):
        super().__init__("DuckDB (Typed)")


class PolarsEngine(BenchmarkEngine):
    """Polars lazy scan of the typed Parquet export.

    Queries are callables taking the scan and returning a LazyFrame.
    """

    key = "polars"
    dialect = "polars"
    filename = PARQUET_FILENAME

    def __init__(self):
        import polars as pl
        super().__init__("Polars", pl.__version__)
        self.frame = None

    def setup(self, data_dir: str, **kwargs):
        import polars as pl
        self.frame = pl.scan_parquet(self.data_path(data_dir))
        return self.frame.collect_schema()

    def execute(self, query) -> QueryOutput:
        self._require_setup(self.frame)
        df = query(self.frame).collect()
        return QueryOutput(df.columns, df.rows())

    def teardown(self):
        self.frame = None


class DataFusionEngine(BenchmarkEngine):
    """Execute SQL via DataFusion Python bindings over the Parquet export."""

    key = "datafusion"
    dialect = "datafusion"
    filename = PARQUET_FILENAME

    def __init__(self):
        import datafusion
        super().__init__("DataFusion", getattr(datafusion, "__version__", "unknown"))
        self.ctx = None

    def setup(self, data_dir: str, **kwargs):
        import datafusion
        path = self.data_path(data_dir)
        self.ctx = datafusion.SessionContext()
        self.ctx.register_parquet("events", str(path))

    def execute(self, sql: str) -> QueryOutput:
        self._require_setup(self.ctx)
        table = self.ctx.sql(sql).to_arrow_table()
        rows = list(zip(*(column.to_pylist() for column in table.columns)))
        return QueryOutput(table.column_names, rows)

    def teardown(self):
        self.ctx = None


ENGINES = {
    cls.key: cls
    for cls in (SQLiteEngine, NormalizedSQLiteEngine, DuckDBEngine,
                DuckDBTypedEngine, PolarsEngine, DataFusionEngine)
}


def create_engine(key: str) -> BenchmarkEngine:
    """Instantiate the engine registered as *key*."""
    try:
        cls = ENGINES[key]
    except KeyError:
        raise ConfigError(
            f"Unknown engine '{key}'. Choose from: {', '.join(ENGINES)}"
        ) from None
    return cls()
