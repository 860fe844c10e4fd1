"""
Event stores: write generated events into each engine's on-disk format.

  eventsqlite.db        SQLite, payload as JSON text
  eventsduck.db         DuckDB, payload as JSON
  eventsduck-typed.db   DuckDB, payload as STRUCT
  events-typed.parquet  Parquet, payload as STRUCT (read by Polars and DataFusion)
  normalqlite.db        SQLite, normalised schema with lookup tables

Every store takes whole batches of events; ``load_events`` fans one batch
out to all stores before generating the next.
"""

import os
import sqlite3
import time
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Iterable

import duckdb
import pyarrow as pa
import pyarrow.parquet as pq

from .config import ConfigError
from .events import EVENT_SCHEMA, Event, to_json_record_batch, to_record_batch
from .vocabulary import CONTACT_US, FEEDBACK, PAGE_LOAD

SQLITE_FILENAME = "eventsqlite.db"
DUCKDB_FILENAME = "eventsduck.db"
DUCKDB_TYPED_FILENAME = "eventsduck-typed.db"
PARQUET_FILENAME = "events-typed.parquet"
NORMALIZED_FILENAME = "normalqlite.db"

# Sidecar files the engines leave next to a database
_SIDECAR_SUFFIXES = ("-wal", "-shm", "-journal", ".wal")


def _prepare_path(path: str, overwrite: bool):
    """Create the parent directory; remove (or refuse) an existing file."""
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    if os.path.exists(path):
        if not overwrite:
            raise FileExistsError(f"Refusing to overwrite existing dataset: {path}")
        os.remove(path)
    for suffix in _SIDECAR_SUFFIXES:
        if os.path.exists(path + suffix):
            os.remove(path + suffix)


def sqlite_timestamp(event: Event) -> str:
    """Text form used for SQLite TEXT timestamps: '2023-04-16 23:05:40.123456+00:00'."""
    return event.naive_timestamp().strftime("%Y-%m-%d %H:%M:%S.%f") + "+00:00"


class EventStore:
    """Base class for a dataset written from generated events."""

    key = ""
    name = ""
    filename = ""

    def __init__(self, path: str, overwrite: bool = True):
        self.path = str(path)
        self.overwrite = overwrite
        self.rows_written = 0

    def open(self):
        _prepare_path(self.path, self.overwrite)
        self._open()
        return self

    def _open(self):
        raise NotImplementedError

    def write_batch(self, events: list[Event]):
        raise NotImplementedError

    def flush(self):
        """Make everything written so far visible to count() and readers."""
        pass

    def count(self) -> int:
        raise NotImplementedError

    def close(self):
        pass

    def size_mb(self) -> float:
        if not os.path.exists(self.path):
            return 0.0
        return os.path.getsize(self.path) / (1024 * 1024)

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc_info):
        self.close()
        return False


# ----------------------------------------------------------------
# SQLite (JSON text payload)
# ----------------------------------------------------------------

SQLITE_SCHEMA = """
CREATE TABLE events (
  id TEXT NOT NULL,
  session_id TEXT NOT NULL,
  page_id TEXT NOT NULL,
  timestamp TEXT NOT NULL,
  event_type TEXT NOT NULL,
  payload TEXT
);
CREATE INDEX events_timestamp ON events(timestamp);
CREATE INDEX events_event_type ON events(event_type);
"""

SQLITE_INSERT = """
INSERT INTO events (id, session_id, page_id, timestamp, event_type, payload)
  VALUES (?, ?, ?, ?, ?, ?)
"""


class SQLiteEventStore(EventStore):
    key = "sqlite"
    name = "SQLite"
    filename = SQLITE_FILENAME

    def __init__(self, path: str, overwrite: bool = True):
        super().__init__(path, overwrite)
        self.conn = None

    def _open(self):
        self.conn = sqlite3.connect(self.path)
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.executescript(SQLITE_SCHEMA)

    def write_batch(self, events: list[Event]):
        with self.conn:
            self.conn.executemany(SQLITE_INSERT, [
                (e.id, e.session_id, e.page_id, sqlite_timestamp(e),
                 e.event_type, e.payload_json())
                for e in events
            ])
        self.rows_written += len(events)

    def count(self) -> int:
        return self.conn.execute("SELECT count(*) FROM events").fetchone()[0]

    def close(self):
        if self.conn is not None:
            self.conn.close()
            self.conn = None


# ----------------------------------------------------------------
# DuckDB (JSON payload and STRUCT payload)
# ----------------------------------------------------------------

DUCKDB_SCHEMA = """
CREATE TABLE events (
  id VARCHAR NOT NULL,
  session_id VARCHAR NOT NULL,
  page_id VARCHAR NOT NULL,
  timestamp TIMESTAMP NOT NULL,
  event_type VARCHAR NOT NULL,
  payload JSON
)
"""

DUCKDB_TYPED_SCHEMA = """
CREATE TABLE events (
  id VARCHAR NOT NULL,
  session_id VARCHAR NOT NULL,
  page_id VARCHAR NOT NULL,
  timestamp TIMESTAMP NOT NULL,
  event_type VARCHAR NOT NULL,
  payload STRUCT(
    path VARCHAR,
    user_agent VARCHAR,
    text VARCHAR,
    form_type VARCHAR,
    fields STRUCT(name VARCHAR, value VARCHAR)[]
  )
)
"""


class DuckDBEventStore(EventStore):
    """DuckDB table with the payload in a JSON column.

    Batches are handed over as Arrow tables registered on the connection.
    """

    key = "duckdb"
    name = "DuckDB"
    filename = DUCKDB_FILENAME
    schema_sql = DUCKDB_SCHEMA
    insert_sql = """
INSERT INTO events
  SELECT id, session_id, page_id, timestamp, event_type, payload::JSON
    FROM incoming
"""

    def __init__(self, path: str, overwrite: bool = True):
        super().__init__(path, overwrite)
        self.conn = None

    def _open(self):
        self.conn = duckdb.connect(self.path)
        self.conn.execute(self.schema_sql)

    def _to_arrow(self, events: list[Event]) -> pa.Table:
        return pa.Table.from_batches([to_json_record_batch(events)])

    def write_batch(self, events: list[Event]):
        if not events:
            return
        incoming = self._to_arrow(events)
        self.conn.register("incoming", incoming)
        try:
            self.conn.execute(self.insert_sql)
        finally:
            self.conn.unregister("incoming")
        self.rows_written += len(events)

    def flush(self):
        self.conn.execute("CHECKPOINT")

    def count(self) -> int:
        return self.conn.execute("SELECT count(*) FROM events").fetchone()[0]

    def close(self):
        if self.conn is not None:
            self.conn.close()
            self.conn = None


class DuckDBTypedEventStore(DuckDBEventStore):
    key = "duckdb_typed"
    name = "DuckDB (Typed)"
    filename = DUCKDB_TYPED_FILENAME
    schema_sql = DUCKDB_TYPED_SCHEMA
    insert_sql = """
INSERT INTO events
  SELECT id, session_id, page_id, timestamp, event_type, payload
    FROM incoming
"""

    def _to_arrow(self, events: list[Event]) -> pa.Table:
        return pa.Table.from_batches([to_record_batch(events)])


# ----------------------------------------------------------------
# Parquet (typed payload, read by Polars and DataFusion)
# ----------------------------------------------------------------

class ParquetEventStore(EventStore):
    """Single Parquet file, one row group per written batch."""

    key = "parquet"
    name = "Parquet"
    filename = PARQUET_FILENAME

    def __init__(self, path: str, overwrite: bool = True,
                 compression: str = "snappy"):
        super().__init__(path, overwrite)
        self.compression = compression
        self.writer = None

    def _open(self):
        self.writer = pq.ParquetWriter(
            self.path, EVENT_SCHEMA,
            compression=self.compression if self.compression != "none" else None,
            use_dictionary=True,
            write_statistics=True,
        )

    def write_batch(self, events: list[Event]):
        if not events:
            return
        self.writer.write_table(pa.Table.from_batches([to_record_batch(events)]))
        self.rows_written += len(events)

    def flush(self):
        # The footer is only written on close; a Parquet file cannot be read
        # back before that.
        if self.writer is not None:
            self.writer.close()
            self.writer = None

    def count(self) -> int:
        if self.writer is not None:
            return self.rows_written
        return pq.ParquetFile(self.path).metadata.num_rows

    def close(self):
        self.flush()


# ----------------------------------------------------------------
# SQLite, normalised schema
# ----------------------------------------------------------------

NORMALIZED_SCHEMA = """
CREATE TABLE event_types (
  event_id INTEGER PRIMARY KEY,
  event_type TEXT NOT NULL UNIQUE
);

CREATE TABLE form_types (
  form_id INTEGER PRIMARY KEY,
  form_type TEXT NOT NULL UNIQUE
);

CREATE TABLE path_cache (
  path_id INTEGER PRIMARY KEY,
  path TEXT NOT NULL UNIQUE
);

CREATE TABLE user_agents (
  user_agent_id INTEGER PRIMARY KEY,
  user_agent TEXT NOT NULL UNIQUE
);

CREATE TABLE events (
  id INTEGER PRIMARY KEY,
  session_id BLOB NOT NULL,
  page_id BLOB NOT NULL,
  timestamp INT NOT NULL,
  event_id INT NOT NULL REFERENCES event_types (event_id),
  path_id INT REFERENCES path_cache (path_id),
  user_agent_id INT REFERENCES user_agents (user_agent_id),
  text TEXT,
  form_id INT REFERENCES form_types (form_id),
  name TEXT,
  email TEXT,
  score INT
);

CREATE INDEX events_timestamp ON events(timestamp);
CREATE INDEX events_event_type ON events(event_id, form_id);
CREATE INDEX event_paths ON events(path_id);
"""

NORMALIZED_INSERT = """
INSERT INTO events (session_id, page_id, timestamp, event_id, path_id,
                    user_agent_id, text, form_id, name, email, score)
  VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

# lookup table -> (id column, value column)
LOOKUP_TABLES = {
    "event_types": ("event_id", "event_type"),
    "form_types": ("form_id", "form_type"),
    "path_cache": ("path_id", "path"),
    "user_agents": ("user_agent_id", "user_agent"),
}


class NormalizedSQLiteStore(EventStore):
    """Normalised SQLite layout: repeated strings live in lookup tables.

    Each lookup value is inserted once; ids are cached in memory for the
    lifetime of the store.
    """

    key = "sqlite_normalized"
    name = "SQLite (Normalized)"
    filename = NORMALIZED_FILENAME

    def __init__(self, path: str, overwrite: bool = True):
        super().__init__(path, overwrite)
        self.conn = None
        self.lookups: dict[str, dict[str, int]] = {t: {} for t in LOOKUP_TABLES}

    def _open(self):
        self.conn = sqlite3.connect(self.path)
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.executescript(NORMALIZED_SCHEMA)

    def lookup_id(self, table: str, value: str) -> int:
        """Return the id of *value* in lookup *table*, inserting it if new."""
        cache = self.lookups[table]
        if value in cache:
            return cache[value]

        _, column = LOOKUP_TABLES[table]
        cursor = self.conn.execute(
            f"INSERT INTO {table} ({column}) VALUES (?)", (value,)
        )
        cache[value] = cursor.lastrowid
        return cursor.lastrowid

    def _row(self, e: Event) -> tuple:
        path_id = user_agent_id = text = form_id = name = email = score = None

        if e.event_type == PAGE_LOAD:
            path_id = self.lookup_id("path_cache", e.payload["path"])
            user_agent_id = self.lookup_id("user_agents", e.payload["user_agent"])
        elif e.form_type == FEEDBACK:
            form_id = self.lookup_id("form_types", FEEDBACK)
            score = int(e.field_value("score"))
        elif e.form_type == CONTACT_US:
            form_id = self.lookup_id("form_types", CONTACT_US)
            name = e.field_value("name")
            email = e.field_value("email")
        else:
            text = e.payload.get("text")

        return (
            e.session_id, e.page_id, int(e.timestamp.timestamp()),
            self.lookup_id("event_types", e.event_type),
            path_id, user_agent_id, text, form_id, name, email, score,
        )

    def write_batch(self, events: list[Event]):
        with self.conn:
            self.conn.executemany(NORMALIZED_INSERT, [self._row(e) for e in events])
        self.rows_written += len(events)

    def count(self) -> int:
        return self.conn.execute("SELECT count(*) FROM events").fetchone()[0]

    def close(self):
        if self.conn is not None:
            self.conn.close()
            self.conn = None


# ----------------------------------------------------------------
# Registry and fan-out loading
# ----------------------------------------------------------------

STORES = {
    cls.key: cls
    for cls in (SQLiteEventStore, DuckDBEventStore, DuckDBTypedEventStore,
                ParquetEventStore, NormalizedSQLiteStore)
}

DEFAULT_TARGETS = ["sqlite", "duckdb", "duckdb_typed", "parquet"]


def create_store(key: str, data_dir: str, overwrite: bool = True) -> EventStore:
    """Instantiate the store registered as *key* inside *data_dir*."""
    try:
        cls = STORES[key]
    except KeyError:
        raise ConfigError(
            f"Unknown store '{key}'. Choose from: {', '.join(STORES)}"
        ) from None
    return cls(str(Path(data_dir) / cls.filename), overwrite=overwrite)


@dataclass
class LoadManifest:
    """What a generation run produced."""
    sessions: int
    seed: int | None
    batch_size: int
    events: int
    elapsed_seconds: float
    rows: dict[str, int] = field(default_factory=dict)
    files: dict[str, str] = field(default_factory=dict)
    sizes_mb: dict[str, float] = field(default_factory=dict)
    generated_at: str = ""

    def __post_init__(self):
        if not self.generated_at:
            self.generated_at = time.strftime("%Y-%m-%dT%H:%M:%SZ")

    def to_dict(self) -> dict:
        return asdict(self)


def load_events(events: Iterable[Event], stores: list[EventStore],
                batch_size: int = 10_000) -> int:
    """Write *events* to every store in batches of *batch_size*.

    Stores must already be open. Returns the number of events written.
    """
    if batch_size <= 0:
        raise ConfigError(f"batch_size must be positive, got {batch_size}")

    written = 0
    batch: list[Event] = []

    for event in events:
        batch.append(event)
        if len(batch) >= batch_size:
            for store in stores:
                store.write_batch(batch)
            written += len(batch)
            batch = []

    if batch:
        for store in stores:
            store.write_batch(batch)
        written += len(batch)

    for store in stores:
        store.flush()

    return written
