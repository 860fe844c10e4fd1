"""
The fixed query battery.

Each query is asked once per dialect. SQL dialects live in ``<dialect>.sql``
next to this module, one query per block introduced by a comment such as

  -- Q4: Top pages
  SELECT ...;

The Polars dialect is a set of functions in ``polars_queries``.
"""

import re
from dataclasses import dataclass, field
from importlib import resources

from compare_olap.config import ConfigError
from compare_olap.queries.polars_queries import POLARS_QUERIES

SQL_DIALECTS = ["sqlite", "sqlite_normalized", "duckdb", "duckdb_typed", "datafusion"]
DIALECTS = SQL_DIALECTS + ["polars"]

# query id -> (title, description lines printed under the title)
QUERY_TITLES = {
    "Q1": ("Count by event_type", []),
    "Q2": ("Average page loads per session", []),
    "Q3": ("Average feedback score", []),
    "Q4": ("Top pages", []),
    "Q5": ("Page loads per day", []),
    "Q6": ("Form submissions", [
        "Unique: count submission once per session id",
        "Total: count all submission",
    ]),
    "Q7": ("Form submissions by page", []),
}
QUERY_IDS = list(QUERY_TITLES)

_QUERY_ID_RE = re.compile(r'^--\s+(Q[\d.]+)[:\s]')


@dataclass
class BenchmarkQuery:
    """One question of the battery with its variant per dialect."""
    query_id: str
    title: str
    description: list[str] = field(default_factory=list)
    variants: dict = field(default_factory=dict)

    def variant(self, dialect: str):
        """SQL text or Polars callable for *dialect*, or None."""
        return self.variants.get(dialect)

    def describe_variant(self, dialect: str) -> str:
        variant = self.variant(dialect)
        if variant is None:
            return ""
        if callable(variant):
            return f"{variant.__module__}.{variant.__name__}"
        return variant


def parse_sql(content: str) -> list[tuple[str, str]]:
    """Parse SQL text into (query_id, query_text) pairs.

    Pure comment lines are dropped; a trailing semicolon is stripped.
    """
    queries = []
    current_id = None
    current_sql = []

    for line in content.split("\n"):
        stripped = line.strip()

        id_match = _QUERY_ID_RE.match(stripped)
        if id_match:
            if current_id and current_sql:
                sql = "\n".join(current_sql).strip().rstrip(";")
                if sql:
                    queries.append((current_id, sql))
            current_id = id_match.group(1)
            current_sql = []
            continue

        if stripped.startswith("--"):
            continue

        if current_id is not None:
            current_sql.append(line)

    if current_id and current_sql:
        sql = "\n".join(current_sql).strip().rstrip(";")
        if sql:
            queries.append((current_id, sql))

    return queries


def parse_sql_file(filepath: str) -> list[tuple[str, str]]:
    with open(filepath) as f:
        return parse_sql(f.read())


def dialect_queries(dialect: str) -> dict:
    """All variants of one dialect, keyed by query id."""
    if dialect == "polars":
        return dict(POLARS_QUERIES)
    if dialect not in SQL_DIALECTS:
        raise ConfigError(
            f"Unknown dialect '{dialect}'. Choose from: {', '.join(DIALECTS)}"
        )
    content = resources.files(__name__).joinpath(f"{dialect}.sql").read_text()
    return dict(parse_sql(content))


def load_battery(dialects: list[str] | None = None,
                 query_ids: list[str] | None = None) -> list[BenchmarkQuery]:
    """Build the battery in Q1..Q7 order.

    *dialects* limits which variants are loaded (default: all);
    *query_ids* limits which queries are kept (default: all).
    """
    if query_ids:
        unknown = [qid for qid in query_ids if qid not in QUERY_TITLES]
        if unknown:
            raise ConfigError(
                f"Unknown query id(s): {', '.join(unknown)}. "
                f"Choose from: {', '.join(QUERY_IDS)}"
            )
    selected = [qid for qid in QUERY_IDS if not query_ids or qid in query_ids]

    by_dialect = {d: dialect_queries(d) for d in (dialects or DIALECTS)}

    battery = []
    for qid in selected:
        title, description = QUERY_TITLES[qid]
        variants = {d: queries[qid] for d, queries in by_dialect.items() if qid in queries}
        battery.append(BenchmarkQuery(qid, title, list(description), variants))
    return battery
