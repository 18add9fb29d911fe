"""Pydantic schemas for AI responses."""

import re
from decimal import Decimal, InvalidOperation

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

_NUMBER_RE = re.compile(r"\d+(?:[.,]\d+)*")


class AIExtractedTaskFields(BaseModel):
    """Structured fields the extraction model may report for one chat turn."""
    model_config = ConfigDict(extra="ignore")

    client_name: str | None = Field(
        default=None, validation_alias=AliasChoices("client_name", "clientName")
    )
    client_email: str | None = Field(
        default=None, validation_alias=AliasChoices("client_email", "clientEmail")
    )
    product_name: str | None = Field(
        default=None, validation_alias=AliasChoices("product_name", "productName")
    )
    product_description: str | None = Field(
        default=None,
        validation_alias=AliasChoices("product_description", "productDescription"),
    )
    deadline: str | None = None
    estimated_price: Decimal | None = Field(
        default=None, validation_alias=AliasChoices("estimated_price", "estimatedPrice")
    )

    @field_validator(
        "client_name", "client_email", "product_name", "product_description", "deadline",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        if not value or value.lower() in ("null", "none", "n/a", "unknown"):
            return None
        return value

    @field_validator("estimated_price", mode="before")
    @classmethod
    def _parse_price(cls, value):
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float, Decimal)):
            return Decimal(str(value)) if value > 0 else None
        match = _NUMBER_RE.search(str(value))
        if not match:
            return None
        raw = match.group(0).replace(",", "")
        try:
            amount = Decimal(raw)
        except InvalidOperation:
            return None
        return amount if amount > 0 else None


class AIBrandAnalysisOutput(BaseModel):
    """Sections pulled out of the brand-guidelines document."""
    model_config = ConfigDict(extra="ignore")

    product_type: str | None = None
    sections: dict[str, str] = Field(default_factory=dict)
