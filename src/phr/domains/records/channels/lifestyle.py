"""Lifestyle channel."""

from __future__ import annotations

from phr.domains.records.channels.base import SingleRowChannel
from phr.domains.records.models import LifestyleInfo


class LifestyleChannel(SingleRowChannel[LifestyleInfo]):
    table = "health_lifestyle"
    model = LifestyleInfo
    login_prompt = "save lifestyle information"
    success_title = "Lifestyle information updated"
    success_description = "Your lifestyle information has been saved"
    failure_description = "Could not save lifestyle information"
