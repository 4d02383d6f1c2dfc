"""Text codecs for the semi-structured record columns.

The store keeps the metrics document (``health_metrics.metrics``) and a lab
report's result list (``health_lab_reports.testresults``) as opaque text.
Encoding always produces a JSON string. Decoding accepts either that string
or a value the store already parsed (JSON-typed columns), then validates the
structure field by field. Every decoding problem surfaces as
:class:`DecodeError`.
"""

from __future__ import annotations

import json
from typing import Any

from phr.domains.records.errors import DecodeError
from phr.domains.records.models import (
    LabTestResult,
    MetricReading,
    MetricSeries,
    MetricsDocument,
    NormalRange,
)

_SEPARATORS = (",", ":")


def _dumps(data: Any) -> str:
    # allow_nan=False: NaN/Infinity are not valid JSON for the store
    return json.dumps(data, separators=_SEPARATORS, allow_nan=False)


def _parse(payload: Any, what: str) -> Any:
    """Parse textual payloads; pass already-structured values through."""
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"{what} is not valid UTF-8") from exc
    if isinstance(payload, str):
        try:
            return json.loads(payload)
        except json.JSONDecodeError as exc:
            raise DecodeError(f"Invalid JSON in {what}: {exc.msg}") from exc
    return payload


def _expect(value: Any, kind: type | tuple[type, ...], where: str) -> Any:
    if isinstance(value, bool) and bool not in (kind if isinstance(kind, tuple) else (kind,)):
        raise DecodeError(f"{where}: expected {kind}, got bool")
    if not isinstance(value, kind):
        raise DecodeError(f"{where}: unexpected type {type(value).__name__}")
    return value


def _optional_text(data: dict[str, Any], key: str, where: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    return _expect(value, str, f"{where}.{key}")


# ---------------------------------------------------------------------------
# Metrics document
# ---------------------------------------------------------------------------

def _series_to_dict(series: MetricSeries) -> dict[str, Any]:
    data: dict[str, Any] = {"name": series.name, "unit": series.unit}
    if series.normal_range is not None:
        data["normal_range"] = {
            "min": series.normal_range.min,
            "max": series.normal_range.max,
        }
    data["readings"] = [
        {"id": r.id, "date": r.date, "value": r.value} for r in series.readings
    ]
    return data


def _series_from_dict(key: str, data: Any) -> MetricSeries:
    where = f"metrics[{key!r}]"
    _expect(data, dict, where)

    normal_range = None
    raw_range = data.get("normal_range")
    if raw_range is not None:
        _expect(raw_range, dict, f"{where}.normal_range")
        normal_range = NormalRange(
            min=_expect(raw_range.get("min"), (int, float), f"{where}.normal_range.min"),
            max=_expect(raw_range.get("max"), (int, float), f"{where}.normal_range.max"),
        )

    readings = []
    for index, item in enumerate(_expect(data.get("readings") or [], list, f"{where}.readings")):
        item_where = f"{where}.readings[{index}]"
        _expect(item, dict, item_where)
        readings.append(MetricReading(
            id=_expect(item.get("id"), str, f"{item_where}.id"),
            date=_expect(item.get("date"), str, f"{item_where}.date"),
            value=_expect(item.get("value"), (int, float), f"{item_where}.value"),
        ))

    return MetricSeries(
        name=_expect(data.get("name"), str, f"{where}.name"),
        unit=_expect(data.get("unit"), str, f"{where}.unit"),
        readings=readings,
        normal_range=normal_range,
    )


def encode_metrics(document: MetricsDocument) -> str:
    """Serialize a metrics document to the text stored in ``metrics``.

    Raises:
        ValueError: If a value cannot be represented in JSON (e.g. NaN).
    """
    return _dumps({key: _series_to_dict(series) for key, series in document.items()})


def decode_metrics(payload: Any) -> MetricsDocument:
    """Parse and validate a stored metrics document.

    Raises:
        DecodeError: If the payload is malformed or has the wrong shape.
    """
    data = _expect(_parse(payload, "metrics"), dict, "metrics")
    return {
        _expect(key, str, "metrics key"): _series_from_dict(key, value)
        for key, value in data.items()
    }


# ---------------------------------------------------------------------------
# Lab test results
# ---------------------------------------------------------------------------

def _result_to_dict(result: LabTestResult) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": result.id,
        "testId": result.test_id,
        "testName": result.test_name,
        "value": result.value,
        "unit": result.unit,
        "isAbnormal": result.is_abnormal,
    }
    if result.reference_range is not None:
        data["referenceRange"] = result.reference_range
    if result.loinc_code is not None:
        data["loincCode"] = result.loinc_code
    return data


def _result_from_dict(index: int, data: Any) -> LabTestResult:
    where = f"testresults[{index}]"
    _expect(data, dict, where)

    value = data.get("value")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)

    is_abnormal = data.get("isAbnormal", False)
    return LabTestResult(
        id=_expect(data.get("id"), str, f"{where}.id"),
        test_id=_expect(data.get("testId"), str, f"{where}.testId"),
        test_name=_expect(data.get("testName"), str, f"{where}.testName"),
        value=_expect(value, str, f"{where}.value"),
        unit=_expect(data.get("unit"), str, f"{where}.unit"),
        is_abnormal=_expect(is_abnormal, bool, f"{where}.isAbnormal"),
        reference_range=_optional_text(data, "referenceRange", where),
        loinc_code=_optional_text(data, "loincCode", where),
    )


def encode_test_results(results: list[LabTestResult] | None) -> str | None:
    """Serialize a result list to the text stored in ``testresults``.

    ``None`` (no results attached) stays ``None`` so the column is null.
    """
    if results is None:
        return None
    return _dumps([_result_to_dict(result) for result in results])


def decode_test_results(payload: Any) -> list[LabTestResult] | None:
    """Parse and validate a stored result list; empty/null gives ``None``.

    Raises:
        DecodeError: If the payload is malformed or has the wrong shape.
    """
    if payload is None or payload == "":
        return None
    data = _expect(_parse(payload, "testresults"), list, "testresults")
    return [_result_from_dict(index, item) for index, item in enumerate(data)]
