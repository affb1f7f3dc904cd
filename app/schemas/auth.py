"""Authentication related schemas."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class TokenPayload(BaseModel):
    """Payload data extracted from bearer tokens.

    ``access`` tokens identify dashboard staff, ``beneficiary`` tokens identify
    a program member's mobile client.
    """

    sub: uuid.UUID
    exp: datetime
    type: Literal["access", "beneficiary"]
