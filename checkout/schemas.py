import re
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, field_validator

INTEGER_RE = re.compile(r"[+-]?[0-9]+")

# Largest key a signed 64-bit INTEGER/BIGINT column can hold.
MAX_ID = 2 ** 63 - 1


def parse_id(raw: str) -> Optional[int]:
    """Decimal primary key from a path segment, or None if it can't be one."""
    if not INTEGER_RE.fullmatch(raw):
        return None
    value = int(raw)
    if not 0 < value <= MAX_ID:
        return None
    return value


class PaymentIntentRequest(BaseModel):
    currency: str = ""
    amount: str = ""


class MacResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    price: int
    description: str
    inventory_level: int
    image: str = ""
    created_at: datetime
    updated_at: datetime

    @field_validator("image", mode="before")
    @classmethod
    def empty_image(cls, v):
        return v or ""


class ErrorResponse(BaseModel):
    ok: bool = False
    message: str
