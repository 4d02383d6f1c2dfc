"""Tests for lab report status normalization."""

from __future__ import annotations

import pytest

from phr.domains.records.domain_logic.lab_status import normalize_status


@pytest.mark.parametrize("status", ["normal", "abnormal", "pending"])
def test_known_statuses_survive(status):
    assert normalize_status(status) == status


@pytest.mark.parametrize("raw", [None, "", "Normal", "ABNORMAL", "done", 1, " normal"])
def test_everything_else_is_pending(raw):
    assert normalize_status(raw) == "pending"
