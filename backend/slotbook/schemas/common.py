# backend/slotbook/schemas/common.py

import re
from datetime import date

from pydantic import BaseModel

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def check_time_format(value: str) -> str:
    """Validate "HH:MM" (24h)."""
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM format")
    return value


class GenerationWarningRead(BaseModel):
    rule_id: int | None = None
    date: date
    message: str

    model_config = {"from_attributes": True}
