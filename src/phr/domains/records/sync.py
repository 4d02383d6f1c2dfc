"""Record synchronization layer: the five channels wired to one session."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from typing import Any

from phr.core.notifications.sink import NotificationSink
from phr.core.session.identity import IdentityProvider
from phr.core.storage.store import RecordStore
from phr.domains.records.channels.base import RecordChannel
from phr.domains.records.channels.lab_reports import LabReportsChannel
from phr.domains.records.channels.lifestyle import LifestyleChannel
from phr.domains.records.channels.metrics import MetricsChannel
from phr.domains.records.channels.personal import PersonalInfoChannel
from phr.domains.records.channels.vitals import VitalsChannel
from phr.domains.records.domain_logic.metric_series import (
    ReadingIdFactory,
    timestamp_reading_id,
)

logger = logging.getLogger(__name__)


class RecordSyncLayer:
    """Owns every record channel for one session.

    Loads all channels once each time a user becomes active. Caches are
    reset to their defaults before any reload so nothing of a previous
    user's records stays visible.

    Usage::

        identity = SessionIdentity()
        layer = RecordSyncLayer(identity, store, RecordingNotificationSink())
        await identity.sign_in("user-123")      # loads all five channels
        await layer.vitals.update({"weight": 70})
    """

    def __init__(
        self,
        identity: IdentityProvider,
        store: RecordStore,
        notifier: NotificationSink,
        *,
        reading_id_factory: ReadingIdFactory = timestamp_reading_id,
    ) -> None:
        self._identity = identity
        self.personal_info = PersonalInfoChannel(identity, store, notifier)
        self.vitals = VitalsChannel(identity, store, notifier)
        self.lifestyle = LifestyleChannel(identity, store, notifier)
        self.metrics = MetricsChannel(
            identity, store, notifier, reading_id_factory=reading_id_factory
        )
        self.lab_reports = LabReportsChannel(identity, store, notifier)
        # User the caches were last loaded for, and whether that load is current
        self._cache_owner: str | None = None
        self._loaded_for: str | None = None
        # Bumped on sign-out so a load finishing afterwards is not marked current
        self._generation = 0
        self._load_lock = asyncio.Lock()
        self._unsubscribe = identity.subscribe(self._on_identity_change)

    @property
    def channels(self) -> tuple[RecordChannel[Any], ...]:
        return (
            self.personal_info,
            self.vitals,
            self.lifestyle,
            self.metrics,
            self.lab_reports,
        )

    @property
    def is_loading(self) -> bool:
        return any(channel.is_loading for channel in self.channels)

    async def ensure_loaded(self) -> None:
        """Load every channel for the current user unless already done.

        Concurrent callers for the same user share one load: the layer lock
        is held until every channel has finished, so no caller returns (and
        writes onto a default cache) while that load is still in flight.
        """
        user_id = self._identity.user_id
        if user_id is None:
            for channel in self.channels:
                await channel.load()  # clears the loading flag only
            return
        if self._loaded_for == user_id:
            return
        async with self._load_lock:
            user_id = self._identity.user_id
            if user_id is None or self._loaded_for == user_id:
                return
            if self._cache_owner is not None:
                self._reset()
            self._cache_owner = user_id
            generation = self._generation
            logger.info("Loading health records for user %s", user_id)
            await asyncio.gather(*(channel.load() for channel in self.channels))
            if generation == self._generation and self._identity.user_id == user_id:
                self._loaded_for = user_id

    async def _on_identity_change(self, previous: str | None, current: str | None) -> None:
        if current is None:
            # Caches are kept until the next sign-in; the next one reloads
            self._loaded_for = None
            self._generation += 1
            return
        await self.ensure_loaded()

    def _reset(self) -> None:
        for channel in self.channels:
            channel.reset()

    def close(self) -> None:
        """Stop following identity changes."""
        self._unsubscribe()

    def snapshot(self) -> dict[str, Any]:
        """JSON-ready view of every cache."""
        return {
            "user_id": self._identity.user_id,
            "is_loading": self.is_loading,
            "personal_info": asdict(self.personal_info.cache),
            "vitals": asdict(self.vitals.cache),
            "lifestyle": asdict(self.lifestyle.cache),
            "metrics": {key: asdict(series) for key, series in self.metrics.cache.items()},
            "lab_reports": [asdict(report) for report in self.lab_reports.cache],
        }
