"""MCP tools for viewing and editing the personal health record.

Every tool works on the record sync layer of the server's session: reads
come from the channel caches (loaded on first use), writes go through the
channels' insert-or-update coordination and report the resulting
notification back to the caller.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from phr.domains.records.codec import decode_test_results
from phr.domains.records.errors import DecodeError
from phr.domains.records.models import LabReport

if TYPE_CHECKING:
    from phr.core.notifications.sink import RecordingNotificationSink
    from phr.core.session.identity import SessionIdentity
    from phr.domains.records.sync import RecordSyncLayer

logger = logging.getLogger(__name__)

_SECTIONS = ("personal_info", "vitals", "lifestyle", "metrics", "lab_reports")


def register_record_tools(
    mcp: FastMCP,
    layer: RecordSyncLayer,
    identity: SessionIdentity,
    notifications: RecordingNotificationSink,
) -> None:
    """Register record tools on the MCP server."""

    def _outcome(ok: bool, **extra: Any) -> str:
        notice = notifications.last
        return json.dumps({
            "status": "saved" if ok else "failed",
            "notification": notice.to_dict() if notice else None,
            **extra,
        })

    def _changes(**fields: Any) -> dict[str, Any]:
        return {name: value for name, value in fields.items() if value is not None}

    @mcp.tool
    async def sign_in(ctx: Context, user_id: str) -> str:
        """Make ``user_id`` the active user and load their health record.

        Args:
            user_id: Identity of the authenticated user.
        """
        try:
            await identity.sign_in(user_id)
        except ValueError as exc:
            return json.dumps({"status": "error", "message": str(exc)})
        await layer.ensure_loaded()
        return json.dumps({
            "status": "signed_in",
            "user_id": user_id,
            "is_loading": layer.is_loading,
        })

    @mcp.tool
    async def sign_out(ctx: Context) -> str:
        """Clear the active user."""
        await identity.sign_out()
        return json.dumps({"status": "signed_out"})

    @mcp.tool
    async def get_health_record(ctx: Context, section: str = "all") -> str:
        """Show the cached health record of the active user.

        Args:
            section: 'personal_info', 'vitals', 'lifestyle', 'metrics',
                'lab_reports' or 'all'.
        """
        if section != "all" and section not in _SECTIONS:
            return json.dumps({
                "status": "error",
                "message": f"Unknown section {section!r}. Valid: {', '.join(_SECTIONS)}, all",
            })
        await layer.ensure_loaded()
        record = layer.snapshot()
        if section != "all":
            record = {
                "user_id": record["user_id"],
                "is_loading": record["is_loading"],
                section: record[section],
            }
        return json.dumps({"status": "ok", **record}, indent=2)

    @mcp.tool
    async def update_personal_info(
        ctx: Context,
        full_name: str | None = None,
        age: int | None = None,
        gender: str | None = None,
        address: str | None = None,
        marital_status: str | None = None,
        children: int | None = None,
    ) -> str:
        """Update personal details. Only the supplied fields change.

        Args:
            full_name: Full name.
            age: Age in years (0 or more).
            gender: Gender.
            address: Postal address.
            marital_status: Marital status.
            children: Number of children.
        """
        await layer.ensure_loaded()
        ok = await layer.personal_info.update(_changes(
            full_name=full_name, age=age, gender=gender, address=address,
            marital_status=marital_status, children=children,
        ))
        return _outcome(ok)

    @mcp.tool
    async def update_vitals(
        ctx: Context,
        height: float | None = None,
        weight: float | None = None,
        blood_group: str | None = None,
    ) -> str:
        """Update vitals. BMI is recalculated from height and weight.

        Args:
            height: Height in centimetres.
            weight: Weight in kilograms.
            blood_group: Blood group, e.g. 'A+'.
        """
        await layer.ensure_loaded()
        ok = await layer.vitals.update(_changes(
            height=height, weight=weight, blood_group=blood_group,
        ))
        return _outcome(ok, bmi=layer.vitals.cache.bmi)

    @mcp.tool
    async def update_lifestyle(
        ctx: Context,
        activity_level: str | None = None,
        smoking_status: str | None = None,
        alcohol_consumption: str | None = None,
    ) -> str:
        """Update lifestyle answers. Only the supplied fields change.

        Args:
            activity_level: e.g. 'Sedentary', 'Moderate', 'Active'.
            smoking_status: e.g. 'Never', 'Former', 'Current'.
            alcohol_consumption: e.g. 'Never', 'Occasionally', 'Regularly'.
        """
        await layer.ensure_loaded()
        ok = await layer.lifestyle.update(_changes(
            activity_level=activity_level,
            smoking_status=smoking_status,
            alcohol_consumption=alcohol_consumption,
        ))
        return _outcome(ok)

    @mcp.tool
    async def add_metric_reading(
        ctx: Context,
        metric_key: str,
        value: float,
        date: str = "",
    ) -> str:
        """Record a reading for one of the tracked metrics.

        Args:
            metric_key: One of the declared metrics, e.g. 'heartRate',
                'bloodPressure', 'glucose', 'weight'.
            value: Numeric reading.
            date: Date of the reading (ISO 8601). Defaults to today.
        """
        if not date:
            date = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        await layer.ensure_loaded()
        ok = await layer.metrics.add_reading(metric_key, date, value)
        return _outcome(ok, metric_key=metric_key, metric_keys=layer.metrics.metric_keys)

    @mcp.tool
    async def add_lab_report(
        ctx: Context,
        name: str,
        date: str,
        status: str = "pending",
        file_url: str = "",
        test_results: list[dict[str, Any]] | None = None,
    ) -> str:
        """Add a lab report, optionally with its individual test results.

        Args:
            name: Report name (e.g. 'Lipid Panel').
            date: Report date (ISO 8601).
            status: 'normal', 'abnormal' or 'pending'.
            file_url: Optional link to the report document.
            test_results: Optional list of results, each with id, testId,
                testName, value, unit, isAbnormal and optionally
                referenceRange / loincCode.
        """
        try:
            results = decode_test_results(test_results) if test_results else None
        except DecodeError as exc:
            return json.dumps({"status": "error", "message": str(exc)})

        await layer.ensure_loaded()
        ok = await layer.lab_reports.add(LabReport(
            name=name,
            date=date,
            status=status,  # type: ignore[arg-type]  # validated by the channel
            file_url=file_url or None,
            test_results=results,
        ))
        report_id = layer.lab_reports.cache[-1].id if ok else None
        return _outcome(ok, report_id=report_id)

    @mcp.tool
    async def delete_lab_report(ctx: Context, report_id: str) -> str:
        """Remove one of your lab reports.

        Args:
            report_id: Id of the report to remove.
        """
        await layer.ensure_loaded()
        ok = await layer.lab_reports.delete(report_id)
        return _outcome(ok, report_id=report_id)

    @mcp.tool
    async def recent_notifications(ctx: Context, limit: int = 10) -> str:
        """List the most recent record notifications, newest last.

        Args:
            limit: Maximum number of notifications to return.
        """
        items = notifications.recent(limit)
        return json.dumps({
            "status": "ok",
            "count": len(items),
            "notifications": [item.to_dict() for item in items],
        })
