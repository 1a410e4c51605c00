"""Push delivery gateway contract."""

from dataclasses import dataclass
from typing import Protocol

from pydantic import BaseModel, Field, field_validator


class PushMessage(BaseModel):
    """One multicast push: the same payload to many device tokens.

    Attributes:
        tokens: Device tokens to deliver to.
        data: String key/value data handed to the app on the device.
        title: Visible notification title.
        body: Visible notification body.
        collapse_key: Devices replace an earlier push with the same key.
    """

    tokens: list[str]
    data: dict[str, str] = Field(default_factory=dict)
    title: str
    body: str
    collapse_key: str | None = None

    model_config = {"frozen": True}

    @field_validator("tokens")
    @classmethod
    def validate_tokens(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("tokens must not be empty")
        return v


@dataclass(frozen=True)
class MulticastResult:
    success_count: int
    failure_count: int


class PushGateway(Protocol):
    async def send_multicast(self, message: PushMessage) -> MulticastResult:
        """Attempt delivery to every token and report aggregate counts."""
        ...
