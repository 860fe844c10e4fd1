"""Event battery as Polars lazy queries over the typed Parquet scan."""

import polars as pl

from compare_olap.vocabulary import FEEDBACK, FORM_SUBMIT, PAGE_LOAD


def _payload(name: str) -> pl.Expr:
    return pl.col("payload").struct.field(name)


def count_by_event_type(events: pl.LazyFrame) -> pl.LazyFrame:
    return (
        events
        .group_by("event_type")
        .agg(pl.len().alias("count"))
        .sort("count", descending=True)
    )


def page_loads_per_session(events: pl.LazyFrame) -> pl.LazyFrame:
    return (
        events
        .filter(pl.col("event_type") == PAGE_LOAD)
        .group_by("session_id")
        .agg(pl.len().alias("page_loads"))
        .select(
            pl.col("page_loads").mean().alias("average"),
            pl.col("page_loads").min().alias("minimum"),
            pl.col("page_loads").max().alias("maximum"),
        )
    )


def average_feedback_score(events: pl.LazyFrame) -> pl.LazyFrame:
    # '$.fields[0].value'
    score = (
        _payload("fields").list.first().struct.field("value")
        .cast(pl.Int32, strict=False)
    )
    return (
        events
        .filter(
            (pl.col("event_type") == FORM_SUBMIT)
            & (_payload("form_type") == FEEDBACK)
        )
        .select(score.mean().alias("average"))
    )


def top_pages(events: pl.LazyFrame) -> pl.LazyFrame:
    return (
        events
        .filter(pl.col("event_type") == PAGE_LOAD)
        .select(_payload("path").alias("path"))
        .group_by("path")
        .agg(pl.len().alias("count"))
        .sort("count", descending=True)
        .limit(5)
    )


def page_loads_per_day(events: pl.LazyFrame) -> pl.LazyFrame:
    return (
        events
        .filter(pl.col("event_type") == PAGE_LOAD)
        .select(pl.col("timestamp").dt.date().alias("date"))
        .group_by("date")
        .agg(pl.len().alias("count"))
        .sort("date")
        .limit(10)
    )


def form_submissions(events: pl.LazyFrame) -> pl.LazyFrame:
    return (
        events
        .filter(pl.col("event_type") == FORM_SUBMIT)
        .select(_payload("form_type").alias("form_type"), "session_id")
        .group_by("form_type", "session_id")
        .agg(pl.len().alias("submit_count"))
        .group_by("form_type")
        .agg(
            pl.len().alias("unique_sessions"),
            pl.col("submit_count").sum().alias("total"),
        )
        .sort("form_type")
    )


def form_submissions_by_page(events: pl.LazyFrame) -> pl.LazyFrame:
    forms = (
        events
        .filter(pl.col("event_type") == FORM_SUBMIT)
        .select(_payload("form_type").alias("form_type"), "page_id")
    )
    paths = (
        events
        .filter(pl.col("event_type") == PAGE_LOAD)
        .select(_payload("path").alias("path"), "page_id")
    )
    return (
        forms
        .join(paths, on="page_id", how="left")
        .filter(pl.col("path") == "/after")
        .group_by("form_type", "path")
        .agg(pl.len().alias("count"))
        .sort("form_type")
    )


POLARS_QUERIES = {
    "Q1": count_by_event_type,
    "Q2": page_loads_per_session,
    "Q3": average_feedback_score,
    "Q4": top_pages,
    "Q5": page_loads_per_day,
    "Q6": form_submissions,
    "Q7": form_submissions_by_page,
}
