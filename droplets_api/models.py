"""Request bodies for the HTTP API."""

from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_core import PydanticCustomError


def _not_blank(value: Any, field: str) -> Any:
    if not isinstance(value, str):
        return value
    if not value.strip():
        raise PydanticCustomError(
            f"empty_{field}", f"{field.capitalize()} cannot be empty", {"input": value}
        )
    return value.strip()


class SignupRequest(BaseModel):
    """Account creation with proof of wallet ownership."""

    username: str = Field(..., min_length=3, max_length=32)
    password: str = Field(..., min_length=6, max_length=128)
    solana_address: str = Field(..., min_length=32, max_length=44)
    signed_message: str = Field("", max_length=1000)
    signature: str = Field(..., min_length=1, max_length=200)

    @field_validator("username", mode="before")
    @classmethod
    def validate_username(cls, value: str) -> str:
        """Reject blank usernames and surrounding whitespace."""
        return _not_blank(value, "username")


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=32)
    password: str = Field(..., min_length=1, max_length=128)


class WalletVerifyRequest(BaseModel):
    signed_message: str = Field(..., min_length=1, max_length=1000)
    signature: str = Field(..., min_length=1, max_length=200)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=6, max_length=128)


class CreationRequest(BaseModel):
    """Body of ``POST /api/creations``. Every field is optional."""

    level: int = 1
    wallet: str | None = Field(None, max_length=64)

    @field_validator("level", mode="before")
    @classmethod
    def validate_level(cls, value: Any) -> int:
        """Only levels 1, 2 and 3 can be generated."""
        if isinstance(value, bool) or value not in (1, 2, 3):
            raise PydanticCustomError("invalid_level", "Level must be 1, 2, or 3", {"input": value})
        return int(value)


class RenameRequest(BaseModel):
    name: str = Field(..., max_length=50)

    @field_validator("name", mode="before")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _not_blank(value, "name")


class LoreRequest(BaseModel):
    body: str = Field(..., max_length=500)

    @field_validator("body", mode="before")
    @classmethod
    def validate_body(cls, value: str) -> str:
        return _not_blank(value, "body")


class SeasonRequest(BaseModel):
    season: str | None = None
    phase: str | None = None


class BroadcastRequest(BaseModel):
    """Event relayed from another instance to the local world room."""

    type: str = Field(..., min_length=1, max_length=50)
    payload: dict[str, Any] = Field(default_factory=dict)
