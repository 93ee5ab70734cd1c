"""Inbound message shapes.

Every payload the coordinator accepts is exactly one of these models; anything
else fails validation and is dropped by the caller.
"""

from __future__ import annotations

from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

_TOPIC_RESERVED: Final = frozenset("/+#")


def _topic_safe(device_id: str) -> str:
    if bad := sorted(_TOPIC_RESERVED.intersection(device_id)):
        msg = f"device id must not contain {' '.join(bad)}"
        raise ValueError(msg)
    return device_id


class ConnectMessage(BaseModel):
    """Fleet-wide connect announcement (optionally a restart request)."""

    model_config = ConfigDict(extra="ignore")  # Allow firmware to add fields without breaking.

    id: str = Field(min_length=1)
    name: str = ""
    hp: int | None = Field(default=None, ge=1)
    restart: bool = False

    @field_validator("id")
    @classmethod
    def check_id(cls, v: str) -> str:
        return _topic_safe(v)

    @property
    def display_name(self) -> str:
        return self.name or self.id


class DisconnectMessage(BaseModel):
    """Fleet-wide disconnect announcement."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)

    @field_validator("id")
    @classmethod
    def check_id(cls, v: str) -> str:
        return _topic_safe(v)


class AckMessage(BaseModel):
    """Device confirms receipt of a challenge."""

    model_config = ConfigDict(extra="forbid")

    ack: int


class GuessMessage(BaseModel):
    """Device answers a challenge.

    The guess is deliberately unbounded here; range checking happens only once
    the sequence has been matched.
    """

    model_config = ConfigDict(extra="forbid")

    guess: int
    sequence: int


type ResponseMessage = AckMessage | GuessMessage

_RESPONSE: Final = TypeAdapter(AckMessage | GuessMessage)


def parse_connect(data: Any) -> ConnectMessage:  # noqa: ANN401
    return ConnectMessage.model_validate(data)


def parse_disconnect(data: Any) -> DisconnectMessage:  # noqa: ANN401
    return DisconnectMessage.model_validate(data)


def parse_response(data: Any) -> ResponseMessage:  # noqa: ANN401
    """Parse a per-device response into an ack or a guess.

    Raises:
        pydantic.ValidationError: payload is neither shape (or both)
    """
    return _RESPONSE.validate_python(data)
