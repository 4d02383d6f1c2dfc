"""Metrics channel: longitudinal readings stored as one encoded document."""

from __future__ import annotations

import logging
from datetime import date as date_type

from phr.core.notifications.sink import NotificationSink
from phr.core.session.identity import IdentityProvider
from phr.core.storage.store import RecordStore
from phr.domains.records.channels.base import RecordChannel
from phr.domains.records.codec import decode_metrics, encode_metrics
from phr.domains.records.domain_logic.metric_series import (
    ReadingIdFactory,
    add_reading,
    timestamp_reading_id,
)
from phr.domains.records.errors import MetricNotFoundError, RecordSyncError, WriteFailed
from phr.domains.records.models import MetricsDocument, default_metrics

logger = logging.getLogger(__name__)


class MetricsChannel(RecordChannel[MetricsDocument]):
    """Holds the user's metrics document.

    The declared metric keys are the defaults plus whatever keys the stored
    document carries; readings can only be added to declared keys.
    """

    table = "health_metrics"
    login_prompt = "add health metrics"

    def __init__(
        self,
        identity: IdentityProvider,
        store: RecordStore,
        notifier: NotificationSink,
        *,
        reading_id_factory: ReadingIdFactory = timestamp_reading_id,
    ) -> None:
        super().__init__(identity, store, notifier)
        self._reading_id_factory = reading_id_factory

    def default(self) -> MetricsDocument:
        return default_metrics()

    @property
    def metric_keys(self) -> list[str]:
        return list(self._cache)

    async def _load(self, user_id: str) -> None:
        row = await self._fetch_one(user_id)
        if row is None or row.get("metrics") in (None, ""):
            return
        decoded = decode_metrics(row["metrics"])
        self._cache = {**default_metrics(), **decoded}

    async def add_reading(self, metric_key: str, date: str | date_type, value: float) -> bool:
        """Append a reading to ``metric_key`` and persist the whole document.

        Returns True on success. An undeclared key fails with
        :class:`MetricNotFoundError` before any store call.
        """
        try:
            user_id = self._require_user()
            async with self._lock:
                document = add_reading(
                    self._cache, metric_key, date, value,
                    id_factory=self._reading_id_factory,
                )
                try:
                    payload = encode_metrics(document)
                except (TypeError, ValueError) as exc:
                    raise WriteFailed(f"Could not encode metrics: {exc}") from exc
                await self._upsert_row(user_id, {"metrics": payload})
                self._cache = document
        except MetricNotFoundError as exc:
            return self._fail(exc, "Invalid metric", "The specified metric type does not exist")
        except RecordSyncError as exc:
            return self._fail(exc, "Update failed", "Could not save metric reading")

        logger.info("Added %s reading for user %s", metric_key, user_id)
        return self._succeed(
            "Reading added", f"New {document[metric_key].name} reading has been added"
        )
