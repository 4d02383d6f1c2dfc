"""Record entities held in channel caches.

Single-row entities (personal info, vitals, lifestyle) map one-to-one onto
store rows through ``from_row`` / ``to_row``; ``from_row`` validates the
untrusted row and raises :class:`DecodeError` instead of trusting its shape.
Metrics and lab report entities are nested structures that reach the store
through :mod:`phr.domains.records.codec`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Literal

from phr.domains.records.errors import DecodeError, InvalidRecord

LabStatus = Literal["normal", "abnormal", "pending"]
LAB_STATUSES: tuple[str, ...] = ("normal", "abnormal", "pending")


# ---------------------------------------------------------------------------
# Field validation helpers
# ---------------------------------------------------------------------------

def require_text(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise InvalidRecord(f"{name} must be text, got {type(value).__name__}")
    return value


def require_int(name: str, value: Any, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRecord(f"{name} must be an integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        raise InvalidRecord(f"{name} must be >= {minimum}, got {value}")
    return value


def require_number(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidRecord(f"{name} must be a number, got {type(value).__name__}")
    return value


def _row_value(row: dict[str, Any], key: str, default: Any, kind: type) -> Any:
    """Read ``key`` from a store row, coercing numeric strings.

    Missing and null values fall back to ``default``.
    """
    value = row.get(key)
    if value is None:
        return default
    if kind is str:
        if isinstance(value, str):
            return value
    elif isinstance(value, bool):
        pass
    elif isinstance(value, (int, float)):
        if kind is int:
            if float(value).is_integer():
                return int(value)
        else:
            return float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            pass
        else:
            if kind is float:
                return number
            if number.is_integer():
                return int(number)
    raise DecodeError(f"Field {key!r} has unexpected value of type {type(value).__name__}")


class _SingleRowRecord:
    """Shared row mapping for one-row-per-user entities."""

    WIRE_FIELDS: ClassVar[tuple[str, ...]] = ()
    _FIELD_KINDS: ClassVar[dict[str, type]] = {}

    @classmethod
    def from_row(cls, row: Any):
        if not isinstance(row, dict):
            raise DecodeError(f"Expected a row object, got {type(row).__name__}")
        defaults = cls()
        values = {
            name: _row_value(row, name, getattr(defaults, name), cls._FIELD_KINDS[name])
            for name in cls.WIRE_FIELDS
        }
        row_id = row.get("id")
        user_id = row.get("user_id")
        try:
            return cls(
                **values,
                id=str(row_id) if row_id is not None else None,
                user_id=str(user_id) if user_id is not None else None,
            )
        except InvalidRecord as exc:
            raise DecodeError(str(exc)) from exc

    def to_row(self) -> dict[str, Any]:
        """Return the wire columns (without ``id`` / ``user_id``)."""
        return {name: getattr(self, name) for name in self.WIRE_FIELDS}

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls))  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Single-row entities
# ---------------------------------------------------------------------------

@dataclass
class PersonalInfo(_SingleRowRecord):
    """Identity details; every field defaults to empty/zero."""

    WIRE_FIELDS: ClassVar[tuple[str, ...]] = (
        "full_name", "age", "gender", "address", "marital_status", "children",
    )
    _FIELD_KINDS: ClassVar[dict[str, type]] = {
        "full_name": str, "age": int, "gender": str,
        "address": str, "marital_status": str, "children": int,
    }

    full_name: str = ""
    age: int = 0
    gender: str = ""
    address: str = ""
    marital_status: str = ""
    children: int = 0
    id: str | None = None
    user_id: str | None = None

    def __post_init__(self) -> None:
        require_text("full_name", self.full_name)
        require_int("age", self.age, minimum=0)
        require_text("gender", self.gender)
        require_text("address", self.address)
        require_text("marital_status", self.marital_status)
        require_int("children", self.children, minimum=0)


@dataclass
class VitalsInfo(_SingleRowRecord):
    """Height (cm), weight (kg), derived BMI and blood group."""

    WIRE_FIELDS: ClassVar[tuple[str, ...]] = ("height", "weight", "bmi", "blood_group")
    _FIELD_KINDS: ClassVar[dict[str, type]] = {
        "height": float, "weight": float, "bmi": float, "blood_group": str,
    }

    height: float = 170
    weight: float = 68
    bmi: float = 23.5
    blood_group: str = "A+"
    id: str | None = None
    user_id: str | None = None

    def __post_init__(self) -> None:
        require_number("height", self.height)
        require_number("weight", self.weight)
        require_number("bmi", self.bmi)
        require_text("blood_group", self.blood_group)


@dataclass
class LifestyleInfo(_SingleRowRecord):
    """Free-form lifestyle answers."""

    WIRE_FIELDS: ClassVar[tuple[str, ...]] = (
        "activity_level", "smoking_status", "alcohol_consumption",
    )
    _FIELD_KINDS: ClassVar[dict[str, type]] = {
        "activity_level": str, "smoking_status": str, "alcohol_consumption": str,
    }

    activity_level: str = "Moderate"
    smoking_status: str = "Never"
    alcohol_consumption: str = "Occasionally"
    id: str | None = None
    user_id: str | None = None

    def __post_init__(self) -> None:
        for name in self.WIRE_FIELDS:
            require_text(name, getattr(self, name))


# ---------------------------------------------------------------------------
# Metrics document
# ---------------------------------------------------------------------------

@dataclass
class NormalRange:
    min: float
    max: float


@dataclass
class MetricReading:
    id: str
    date: str  # ISO 8601 date or datetime
    value: float


@dataclass
class MetricSeries:
    """One declared metric and its chronologically ordered readings."""

    name: str
    unit: str
    readings: list[MetricReading] = field(default_factory=list)
    normal_range: NormalRange | None = None


MetricsDocument = dict[str, MetricSeries]


def default_metrics() -> MetricsDocument:
    """The metric keys declared for every new user."""
    return {
        "bloodPressure": MetricSeries(
            name="Blood Pressure", unit="mmHg", normal_range=NormalRange(min=90, max=120)
        ),
        "heartRate": MetricSeries(
            name="Heart Rate", unit="bpm", normal_range=NormalRange(min=60, max=100)
        ),
        "glucose": MetricSeries(
            name="Blood Glucose", unit="mg/dL", normal_range=NormalRange(min=70, max=100)
        ),
        "weight": MetricSeries(name="Weight", unit="kg"),
    }


# ---------------------------------------------------------------------------
# Lab reports
# ---------------------------------------------------------------------------

@dataclass
class LabTestResult:
    """One analyte inside a lab report."""

    id: str
    test_id: str
    test_name: str
    value: str
    unit: str
    is_abnormal: bool = False
    reference_range: str | None = None
    loinc_code: str | None = None


@dataclass
class LabReport:
    """A lab report; ``id`` is assigned by the store on insert."""

    name: str
    date: str
    status: LabStatus = "pending"
    id: str | None = None
    file_url: str | None = None
    test_results: list[LabTestResult] | None = None
