"""Pydantic schemas for the /identify wire format.

Field names are camelCase on the wire to stay compatible with existing
clients of the identify endpoint.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from contact_identity.resolution.consolidation import ConsolidatedContact


def _coerce_phone_number(v: Any) -> str | None:
    """Accept numeric phone numbers.

    Clients often send ``"phoneNumber": 123456`` instead of a string. Booleans
    are rejected because ``True`` is an ``int``.
    """
    if v is None or isinstance(v, str):
        return v
    if isinstance(v, int) and not isinstance(v, bool):
        return str(v)
    msg = "phoneNumber must be a string or an integer"
    raise ValueError(msg)


class IdentifyRequest(BaseModel):
    """Body of POST /api/identify."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email: str | None = Field(default=None, description="Email address, matched exactly")
    phone_number: Annotated[str | None, BeforeValidator(_coerce_phone_number)] = Field(
        default=None,
        alias="phoneNumber",
        description="Phone number, matched exactly as a string",
    )


class ContactView(BaseModel):
    """Consolidated identity graph."""

    model_config = ConfigDict(populate_by_name=True)

    primary_contact_id: int = Field(alias="primaryContactId")
    emails: list[str]
    phone_numbers: list[str] = Field(alias="phoneNumbers")
    secondary_contact_ids: list[int] = Field(alias="secondaryContactIds")


class IdentifyResponse(BaseModel):
    """Response of POST /api/identify."""

    contact: ContactView

    @classmethod
    def from_consolidated(cls, consolidated: ConsolidatedContact) -> IdentifyResponse:
        return cls(
            contact=ContactView(
                primary_contact_id=consolidated.primary_contact_id,
                emails=consolidated.emails,
                phone_numbers=consolidated.phone_numbers,
                secondary_contact_ids=consolidated.secondary_contact_ids,
            )
        )


class ErrorResponse(BaseModel):
    """Error envelope returned for every non-2xx response."""

    model_config = ConfigDict(populate_by_name=True)

    error: str
    message: str
    status_code: int = Field(alias="statusCode")
