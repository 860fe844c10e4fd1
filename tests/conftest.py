"""Shared tiny dataset: 40 sessions written to every store."""

from contextlib import ExitStack
from datetime import datetime, timezone

import pytest

from compare_olap.events import EventGenerator
from compare_olap.stores import STORES, create_store, load_events

START = datetime(2023, 4, 16, 23, 58, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def event_data(tmp_path_factory):
    """(data_dir, events) with eventsqlite.db, eventsduck*.db, parquet and normalqlite.db."""
    data_dir = tmp_path_factory.mktemp("events")
    events = list(EventGenerator(seed=7, start=START).iter_events(40))

    stores = [create_store(key, str(data_dir)) for key in STORES]
    with ExitStack() as stack:
        for store in stores:
            stack.enter_context(store)
        load_events(events, stores, batch_size=97)

    return str(data_dir), events
