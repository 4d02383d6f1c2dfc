"""Vitals channel: height, weight, blood group and the derived BMI."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Mapping

from phr.core.storage.store import Row
from phr.domains.records.channels.base import SingleRowChannel
from phr.domains.records.domain_logic.bmi import compute_bmi
from phr.domains.records.models import VitalsInfo

logger = logging.getLogger(__name__)


class VitalsChannel(SingleRowChannel[VitalsInfo]):
    """BMI is never taken from the caller or the store; it is always
    recomputed from the merged height and weight.
    """

    table = "health_vitals"
    model = VitalsInfo
    login_prompt = "save vitals information"
    success_title = "Vitals information updated"
    success_description = "Your vitals have been updated successfully"
    failure_description = "Could not save vitals information"

    def _merge(self, changes: Mapping[str, Any]) -> VitalsInfo:
        if "bmi" in changes:
            logger.debug("Ignoring caller-supplied bmi; it is derived from height/weight")
            changes = {k: v for k, v in changes.items() if k != "bmi"}
        merged = super()._merge(changes)
        return replace(merged, bmi=compute_bmi(merged.height, merged.weight))

    def _from_row(self, row: Row) -> VitalsInfo:
        vitals = super()._from_row(row)
        if vitals.height > 0:
            vitals = replace(vitals, bmi=compute_bmi(vitals.height, vitals.weight))
        return vitals
