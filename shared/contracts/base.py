from datetime import UTC, datetime
from typing import Literal
import uuid

from pydantic import BaseModel, ConfigDict, Field


class BaseMessage(BaseModel):
    """Envelope fields carried by every stream message.

    Unknown fields are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    version: Literal["1"] = "1"
    correlation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
