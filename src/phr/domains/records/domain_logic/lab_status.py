"""Lab report status normalization."""

from __future__ import annotations

from typing import Any

from phr.domains.records.models import LabStatus


def normalize_status(raw: Any) -> LabStatus:
    """Coerce an untrusted status into ``normal`` / ``abnormal`` / ``pending``.

    Only the exact strings ``"normal"`` and ``"abnormal"`` survive; anything
    else (empty, None, other casing, unknown words) becomes ``"pending"``.
    """
    if raw == "normal":
        return "normal"
    if raw == "abnormal":
        return "abnormal"
    return "pending"
