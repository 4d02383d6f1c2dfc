"""Append/sort engine for metric readings.

Readings are only ever appended; after each append the metric's whole
sequence is re-sorted by date so it stays non-decreasing.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import replace
from datetime import date as date_type
from datetime import datetime, timezone
from typing import Callable

from phr.domains.records.errors import InvalidRecord, MetricNotFoundError
from phr.domains.records.models import MetricReading, MetricsDocument, require_number

ReadingIdFactory = Callable[[str], str]


def timestamp_reading_id(metric_key: str) -> str:
    """``{metricKey}{epoch milliseconds}``; unique only for a single writer."""
    return f"{metric_key}{time.time_ns() // 1_000_000}"


def uuid_reading_id(metric_key: str) -> str:
    """Random 128-bit identifier, safe across devices."""
    return str(uuid.uuid4())


def reading_date_key(value: str) -> datetime:
    """Sort key for a reading date. Unparseable dates sort first."""
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return datetime.min
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _reading_date_text(value: str | date_type) -> str:
    if isinstance(value, date_type):  # datetime is a date subclass
        return value.isoformat()
    if not isinstance(value, str):
        raise InvalidRecord(f"Reading date must be ISO 8601 text, got {type(value).__name__}")
    try:
        datetime.fromisoformat(value)
    except ValueError as exc:
        raise InvalidRecord(f"Reading date is not ISO 8601: {value!r}") from exc
    return value


def add_reading(
    document: MetricsDocument,
    metric_key: str,
    date: str | date_type,
    value: float,
    *,
    id_factory: ReadingIdFactory = timestamp_reading_id,
) -> MetricsDocument:
    """Return a new document with one reading appended to ``metric_key``.

    The input document is never modified.

    Raises:
        MetricNotFoundError: ``metric_key`` is not declared in ``document``.
        InvalidRecord: ``date`` is not ISO 8601 or ``value`` is not a number.
    """
    series = document.get(metric_key)
    if series is None:
        raise MetricNotFoundError(metric_key)

    reading = MetricReading(
        id=id_factory(metric_key),
        date=_reading_date_text(date),
        value=require_number("value", value),
    )
    # sorted() is stable: equal dates keep insertion order
    readings = sorted(
        [*series.readings, reading], key=lambda r: reading_date_key(r.date)
    )

    updated = dict(document)
    updated[metric_key] = replace(series, readings=readings)
    return updated
