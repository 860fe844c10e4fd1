"""
Synthetic Web-Analytics Event Generator.

Models visitors browsing a small site:

  - a SESSION is one visitor; it loads 1, 2, 4, 8 or 12 pages
    (40% / 30% / 20% / 8% / 2%)
  - every PAGE LOAD is followed by 0-19 interactions on that page:
      70%  chat_message   {"text": "<1-29 words>"}
      15%  form_submit    contact-us form (name + e-mail fields)
      15%  form_submit    feedback form (score 0-100, stored as a string)
    only the first form submission of a page is kept
  - sessions start a few seconds apart (0-128s); every event of a session
    carries the session's timestamp

All randomness, UUIDs included, comes from one seeded numpy Generator so a
(seed, start) pair always reproduces the same stream.
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator

import numpy as np
import pyarrow as pa

from .vocabulary import (
    BROWSERS, CHAT_MESSAGE, CONTACT_US, FEEDBACK, FORM_SUBMIT, PAGE_LOAD,
    PATH_WORDS, WORDS,
)


PAGE_LOAD_CHOICES = np.array([1, 2, 4, 8, 12])
PAGE_LOAD_WEIGHTS = np.array([40, 30, 20, 8, 2]) / 100

MAX_PAGE_EVENTS = 20    # exclusive
MAX_TEXT_WORDS = 30     # exclusive
MAX_SESSION_GAP_SECONDS = 128

CHAT_MESSAGE_CHANCE = 0.70
CONTACT_US_CHANCE = 0.85

PROGRESS_EVERY = 10_000


# ----------------------------------------------------------------
# Arrow schema for the typed (STRUCT payload) representation
# ----------------------------------------------------------------

FORM_FIELD_TYPE = pa.struct([
    pa.field("name", pa.string()),
    pa.field("value", pa.string()),
])

PAYLOAD_TYPE = pa.struct([
    pa.field("path", pa.string()),
    pa.field("user_agent", pa.string()),
    pa.field("text", pa.string()),
    pa.field("form_type", pa.string()),
    pa.field("fields", pa.list_(FORM_FIELD_TYPE)),
])

PAYLOAD_KEYS = [f.name for f in PAYLOAD_TYPE]

EVENT_SCHEMA = pa.schema([
    pa.field("id", pa.string(), nullable=False),
    pa.field("session_id", pa.string(), nullable=False),
    pa.field("page_id", pa.string(), nullable=False),
    pa.field("timestamp", pa.timestamp("us"), nullable=False),
    pa.field("event_type", pa.string(), nullable=False),
    pa.field("payload", PAYLOAD_TYPE),
])

JSON_EVENT_SCHEMA = pa.schema([
    pa.field("id", pa.string(), nullable=False),
    pa.field("session_id", pa.string(), nullable=False),
    pa.field("page_id", pa.string(), nullable=False),
    pa.field("timestamp", pa.timestamp("us"), nullable=False),
    pa.field("event_type", pa.string(), nullable=False),
    pa.field("payload", pa.string()),
])


@dataclass
class Event:
    """A single tracked event. ``timestamp`` is timezone-aware UTC."""
    id: str
    session_id: str
    page_id: str
    timestamp: datetime
    event_type: str
    payload: dict = field(default_factory=dict)

    @property
    def form_type(self) -> str | None:
        return self.payload.get("form_type")

    def field_value(self, name: str) -> str | None:
        """Value of the named form field, or None."""
        for form_field in self.payload.get("fields", []):
            if form_field["name"] == name:
                return form_field["value"]
        return None

    def payload_json(self) -> str:
        return json.dumps(self.payload, separators=(",", ":"), ensure_ascii=False)

    def naive_timestamp(self) -> datetime:
        """UTC wall-clock time without tzinfo (TIMESTAMP columns)."""
        return self.timestamp.astimezone(timezone.utc).replace(tzinfo=None)


class EventGenerator:
    """Generate correlated session / page / interaction events."""

    def __init__(self, seed: int | None = 42, start: datetime | None = None):
        self.seed = seed
        self.rng = np.random.default_rng(seed)
        if start is None:
            start = datetime.now(timezone.utc)
        elif start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self.start = start

    # ----------------------------------------------------------------
    # Random primitives
    # ----------------------------------------------------------------

    def new_id(self) -> str:
        return str(uuid.UUID(bytes=self.rng.bytes(16), version=4))

    def random_path(self) -> str:
        return PATH_WORDS[self.rng.integers(0, len(PATH_WORDS))]

    def random_word(self) -> str:
        return WORDS[self.rng.integers(0, len(WORDS))]

    def random_text(self) -> str:
        n_words = self.rng.integers(1, MAX_TEXT_WORDS)
        indices = self.rng.integers(0, len(WORDS), size=n_words)
        return " ".join(WORDS[i] for i in indices)

    def random_browser(self) -> str:
        return BROWSERS[self.rng.integers(0, len(BROWSERS))]

    def page_loads_for_session(self) -> int:
        return int(self.rng.choice(PAGE_LOAD_CHOICES, p=PAGE_LOAD_WEIGHTS))

    # ----------------------------------------------------------------
    # Events
    # ----------------------------------------------------------------

    def generate_page_load(self, session_id: str, timestamp: datetime) -> Event:
        return Event(
            id=self.new_id(),
            session_id=session_id,
            page_id=self.new_id(),
            timestamp=timestamp,
            event_type=PAGE_LOAD,
            payload={
                "path": f"/{self.random_path()}",
                "user_agent": self.random_browser(),
            },
        )

    def generate_event(self, page: Event, timestamp: datetime) -> Event:
        """Generate one interaction on the page *page*."""
        event_id = self.new_id()
        chance = self.rng.random()

        if chance < CHAT_MESSAGE_CHANCE:
            event_type = CHAT_MESSAGE
            payload = {"text": self.random_text()}
        elif chance < CONTACT_US_CHANCE:
            event_type = FORM_SUBMIT
            email = f"{self.random_word()}@{self.random_word()}"
            payload = {
                "form_type": CONTACT_US,
                "fields": [
                    {"name": "name", "value": self.random_word()},
                    {"name": "email", "value": email},
                ],
            }
        else:
            event_type = FORM_SUBMIT
            score = int(self.rng.integers(0, 101))
            payload = {
                "form_type": FEEDBACK,
                "fields": [{"name": "score", "value": str(score)}],
            }

        return Event(
            id=event_id,
            session_id=page.session_id,
            page_id=page.page_id,
            timestamp=timestamp,
            event_type=event_type,
            payload=payload,
        )

    def iter_session(self, timestamp: datetime) -> Iterator[Event]:
        """Yield every event of one session."""
        session_id = self.new_id()

        for _ in range(self.page_loads_for_session()):
            page_load = self.generate_page_load(session_id, timestamp)
            yield page_load

            forms = 0
            for _ in range(self.rng.integers(0, MAX_PAGE_EVENTS)):
                event = self.generate_event(page_load, timestamp)
                if event.event_type == FORM_SUBMIT:
                    forms += 1
                    if forms > 1:
                        continue
                yield event

    def iter_events(self, max_sessions: int,
                    progress: Callable[[int, int], None] | None = None
                    ) -> Iterator[Event]:
        """Yield the events of *max_sessions* consecutive sessions.

        *progress(i, max_sessions)* is called every PROGRESS_EVERY sessions.
        """
        now = self.start
        for i in range(max_sessions):
            timestamp = now
            gap = self.rng.integers(-MAX_SESSION_GAP_SECONDS, MAX_SESSION_GAP_SECONDS)
            now += timedelta(seconds=abs(int(gap)))

            if progress is not None and i % PROGRESS_EVERY == 0:
                progress(i, max_sessions)

            yield from self.iter_session(timestamp)


# ----------------------------------------------------------------
# Columnar conversion
# ----------------------------------------------------------------

def typed_payload(payload: dict) -> dict:
    """Project a payload dict onto every PAYLOAD_TYPE field (missing → None)."""
    return {key: payload.get(key) for key in PAYLOAD_KEYS}


def to_record_batch(events: list[Event]) -> pa.RecordBatch:
    """Events as a batch with a STRUCT payload column (EVENT_SCHEMA)."""
    return pa.RecordBatch.from_pylist([
        {
            "id": e.id,
            "session_id": e.session_id,
            "page_id": e.page_id,
            "timestamp": e.naive_timestamp(),
            "event_type": e.event_type,
            "payload": typed_payload(e.payload),
        }
        for e in events
    ], schema=EVENT_SCHEMA)


def to_json_record_batch(events: list[Event]) -> pa.RecordBatch:
    """Events as a batch with the payload serialised to JSON text."""
    return pa.RecordBatch.from_pylist([
        {
            "id": e.id,
            "session_id": e.session_id,
            "page_id": e.page_id,
            "timestamp": e.naive_timestamp(),
            "event_type": e.event_type,
            "payload": e.payload_json(),
        }
        for e in events
    ], schema=JSON_EVENT_SCHEMA)
