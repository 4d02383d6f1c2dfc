"""Personal information channel."""

from __future__ import annotations

from phr.domains.records.channels.base import SingleRowChannel
from phr.domains.records.models import PersonalInfo


class PersonalInfoChannel(SingleRowChannel[PersonalInfo]):
    table = "health_personal_info"
    model = PersonalInfo
    login_prompt = "save personal information"
    success_title = "Personal information updated"
    success_description = "Your personal details have been saved"
    failure_description = "Could not save personal information"
