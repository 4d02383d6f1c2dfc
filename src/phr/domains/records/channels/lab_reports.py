"""Lab reports channel: a per-user collection with add and delete."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from phr.core.storage.store import Row, StoreError
from phr.domains.records.channels.base import RecordChannel
from phr.domains.records.codec import decode_test_results, encode_test_results
from phr.domains.records.domain_logic.lab_status import normalize_status
from phr.domains.records.errors import (
    DecodeError,
    InvalidRecord,
    ReadFailed,
    RecordSyncError,
    WriteFailed,
)
from phr.domains.records.models import LAB_STATUSES, LabReport, require_text

logger = logging.getLogger(__name__)


def report_from_row(row: Any) -> LabReport:
    """Build a LabReport from an untrusted store row.

    The status is normalized; an unreadable ``testresults`` payload is
    logged and dropped rather than discarding the whole report.

    Raises:
        DecodeError: If the row lacks an id, name or date.
    """
    if not isinstance(row, dict):
        raise DecodeError(f"Expected a row object, got {type(row).__name__}")
    row_id = row.get("id")
    if row_id is None or row_id == "":
        raise DecodeError("Lab report row has no id")
    for key in ("name", "date"):
        if not isinstance(row.get(key), str):
            raise DecodeError(f"Lab report {row_id} has no valid {key!r}")
    file_url = row.get("fileurl")
    if file_url is not None and not isinstance(file_url, str):
        raise DecodeError(f"Lab report {row_id} has a non-text fileurl")

    try:
        test_results = decode_test_results(row.get("testresults"))
    except DecodeError as exc:
        logger.warning("Dropping unreadable test results of lab report %s: %s", row_id, exc)
        test_results = None

    return LabReport(
        id=str(row_id),
        name=row["name"],
        date=row["date"],
        status=normalize_status(row.get("status")),
        file_url=file_url or None,
        test_results=test_results,
    )


def report_to_row(report: LabReport) -> Row:
    """Wire columns for a report (``id`` and ``user_id`` excluded)."""
    return {
        "name": report.name,
        "date": report.date,
        "status": report.status,
        "fileurl": report.file_url or None,
        "testresults": encode_test_results(report.test_results),
    }


class LabReportsChannel(RecordChannel[list[LabReport]]):
    """Lab reports are additions and deletions, never merges."""

    table = "health_lab_reports"
    login_prompt = "add lab reports"

    def default(self) -> list[LabReport]:
        return []

    async def _load(self, user_id: str) -> None:
        try:
            rows = await self._store.find_all(self.table, user_id)
        except StoreError as exc:
            raise ReadFailed(f"Could not read {self.table}: {exc}") from exc

        reports = []
        for row in rows:
            try:
                reports.append(report_from_row(row))
            except DecodeError as exc:
                logger.warning("Skipping malformed lab report row: %s", exc)
        self._cache = reports

    def get(self, report_id: str) -> LabReport | None:
        return next((r for r in self._cache if r.id == report_id), None)

    async def add(self, report: LabReport) -> bool:
        """Insert a new report; the store assigns its id.

        The report's status must already be one of the known values; the
        cached copy is not re-normalized.
        """
        try:
            user_id = self._require_user()
            self._validate(report)
            try:
                row = report_to_row(report)
            except (TypeError, ValueError) as exc:
                raise WriteFailed(f"Could not encode test results: {exc}") from exc

            async with self._lock:
                try:
                    stored = await self._store.insert(self.table, {**row, "user_id": user_id})
                except StoreError as exc:
                    raise WriteFailed(f"Could not save lab report: {exc}") from exc
                if not stored or stored.get("id") in (None, ""):
                    raise WriteFailed("Store did not return an id for the new lab report")
                self._cache = [*self._cache, replace(report, id=str(stored["id"]))]
        except RecordSyncError as exc:
            return self._fail(exc, "Update failed", "Could not save lab report")

        logger.info("Added lab report %s for user %s", stored["id"], user_id)
        return self._succeed(
            "Lab report added", f"{report.name} has been added to your lab reports"
        )

    async def delete(self, report_id: str) -> bool:
        """Delete one report, scoped to the active user as well as its id."""
        try:
            user_id = self._require_user()
            async with self._lock:
                try:
                    removed = await self._store.delete(self.table, report_id, user_id)
                except StoreError as exc:
                    raise WriteFailed(f"Could not delete lab report: {exc}") from exc
                if not removed:
                    raise WriteFailed(f"No lab report {report_id} owned by this user")
                self._cache = [r for r in self._cache if r.id != report_id]
        except RecordSyncError as exc:
            return self._fail(exc, "Delete failed", "Could not remove lab report")

        logger.info("Deleted lab report %s for user %s", report_id, user_id)
        return self._succeed(
            "Lab report removed", "The lab report has been removed from your records"
        )

    @staticmethod
    def _validate(report: LabReport) -> None:
        require_text("name", report.name)
        require_text("date", report.date)
        if report.status not in LAB_STATUSES:
            raise InvalidRecord(
                f"Lab report status must be one of {LAB_STATUSES}, got {report.status!r}"
            )
