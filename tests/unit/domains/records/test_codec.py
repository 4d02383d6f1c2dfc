"""Tests for the metrics and test-result text codecs."""

from __future__ import annotations

import json
import math

import pytest

from phr.domains.records.codec import (
    decode_metrics,
    decode_test_results,
    encode_metrics,
    encode_test_results,
)
from phr.domains.records.errors import DecodeError
from phr.domains.records.models import (
    LabTestResult,
    MetricReading,
    MetricSeries,
    NormalRange,
    default_metrics,
)


class TestMetricsEncoding:
    def test_encodes_wire_shape(self):
        doc = {
            "heartRate": MetricSeries(
                name="Heart Rate",
                unit="bpm",
                normal_range=NormalRange(min=60, max=100),
                readings=[MetricReading(id="heartRate1", date="2024-03-01", value=72)],
            ),
            "weight": MetricSeries(name="Weight", unit="kg"),
        }
        data = json.loads(encode_metrics(doc))
        assert data["heartRate"] == {
            "name": "Heart Rate",
            "unit": "bpm",
            "normal_range": {"min": 60, "max": 100},
            "readings": [{"id": "heartRate1", "date": "2024-03-01", "value": 72}],
        }
        assert "normal_range" not in data["weight"]

    def test_defaults_survive_a_store_trip(self):
        assert decode_metrics(encode_metrics(default_metrics())) == default_metrics()

    def test_populated_document_survives_a_store_trip(self):
        doc = {
            **default_metrics(),
            "heartRate": MetricSeries(
                name="Heart Rate",
                unit="bpm",
                normal_range=NormalRange(min=60, max=100.5),
                readings=[
                    MetricReading(id="heartRate1", date="2024-03-01", value=72),
                    MetricReading(id="heartRate2", date="2024-03-02T08:30:00Z", value=68.5),
                ],
            ),
            "cholesterol": MetricSeries(
                name="Cholesterol",
                unit="mg/dL",
                readings=[MetricReading(id="cholesterol1", date="2024-02-10", value=189.25)],
            ),
        }
        decoded = decode_metrics(encode_metrics(doc))
        assert decoded == doc
        assert list(decoded) == list(doc)
        assert isinstance(decoded["heartRate"].readings[0].value, int)
        assert isinstance(decoded["heartRate"].readings[1].value, float)

    def test_nan_cannot_be_encoded(self):
        doc = {"weight": MetricSeries(
            name="Weight", unit="kg",
            readings=[MetricReading(id="w1", date="2024-03-01", value=math.nan)],
        )}
        with pytest.raises(ValueError):
            encode_metrics(doc)


class TestMetricsDecoding:
    def test_accepts_already_parsed_objects(self):
        doc = decode_metrics({"weight": {"name": "Weight", "unit": "kg"}})
        assert doc["weight"].readings == []
        assert doc["weight"].normal_range is None

    def test_accepts_bytes(self):
        doc = decode_metrics(b'{"weight": {"name": "Weight", "unit": "kg", "readings": []}}')
        assert doc["weight"].unit == "kg"

    def test_custom_keys_are_kept(self):
        doc = decode_metrics('{"cholesterol": {"name": "Cholesterol", "unit": "mg/dL"}}')
        assert list(doc) == ["cholesterol"]

    @pytest.mark.parametrize(
        "payload",
        [
            "{not json",
            "[]",
            '{"weight": []}',
            '{"weight": {"name": "Weight"}}',
            '{"weight": {"name": "Weight", "unit": "kg", "readings": {"w1": 70}}}',
            '{"weight": {"name": "Weight", "unit": "kg", "readings": [{"id": "w1", "date": "2024-03-01", "value": "70"}]}}',
            '{"weight": {"name": "Weight", "unit": "kg", "readings": [{"id": "w1", "date": "2024-03-01", "value": true}]}}',
            '{"weight": {"name": "Weight", "unit": "kg", "normal_range": {"min": 1}}}',
        ],
    )
    def test_malformed_documents_raise(self, payload):
        with pytest.raises(DecodeError):
            decode_metrics(payload)


class TestTestResults:
    def test_none_stays_none(self):
        assert encode_test_results(None) is None
        assert decode_test_results(None) is None
        assert decode_test_results("") is None

    def test_encodes_camel_case_keys(self):
        results = [LabTestResult(
            id="t1", test_id="ldl", test_name="LDL", value="130", unit="mg/dL",
            is_abnormal=True, loinc_code="13457-7",
        )]
        data = json.loads(encode_test_results(results))
        assert data == [{
            "id": "t1",
            "testId": "ldl",
            "testName": "LDL",
            "value": "130",
            "unit": "mg/dL",
            "isAbnormal": True,
            "loincCode": "13457-7",
        }]

    def test_decodes_and_fills_defaults(self):
        results = decode_test_results(
            '[{"id": "t1", "testId": "hb", "testName": "Hemoglobin", "value": 13.5, "unit": "g/dL"}]'
        )
        assert results == [LabTestResult(
            id="t1", test_id="hb", test_name="Hemoglobin", value="13.5", unit="g/dL",
        )]

    def test_empty_list_is_kept(self):
        assert decode_test_results("[]") == []

    @pytest.mark.parametrize(
        "payload",
        [
            "nope",
            '{"id": "t1"}',
            "[1]",
            '[{"id": "t1", "testId": "hb", "testName": "Hb", "value": "1", "unit": "g"'
            ', "isAbnormal": "yes"}]',
            '[{"id": "t1", "testName": "Hb", "value": "1", "unit": "g"}]',
        ],
    )
    def test_malformed_results_raise(self, payload):
        with pytest.raises(DecodeError):
            decode_test_results(payload)

    def test_results_survive_a_store_trip(self):
        results = [
            LabTestResult(
                id="t1", test_id="ldl", test_name="LDL", value="130", unit="mg/dL",
                is_abnormal=True, reference_range="< 100", loinc_code="13457-7",
            ),
            LabTestResult(
                id="t2", test_id="hb", test_name="Hemoglobin", value="13.5", unit="g/dL",
            ),
        ]
        encoded = encode_test_results(results)
        data = json.loads(encoded)
        assert "referenceRange" not in data[1]
        assert "loincCode" not in data[1]
        assert decode_test_results(encoded) == results
