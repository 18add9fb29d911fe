"""Pydantic schemas for products and the provider catalog."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, model_validator


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    website_url: HttpUrl
    organization_id: UUID | None = None


class ProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_user_id: UUID
    organization_id: UUID | None
    name: str
    website_url: str
    product_type: str | None
    brand_guidelines: str | None
    analysis_data: dict | None
    status: str
    created_at: datetime
    updated_at: datetime


class ProductListItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    website_url: str
    product_type: str | None
    status: str
    created_at: datetime


class PricingRuleBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    category: str = Field(..., min_length=1, max_length=100)
    base_price: Decimal = Field(..., ge=0)
    min_price: Decimal | None = Field(None, ge=0)
    max_price: Decimal | None = Field(None, ge=0)
    description: str | None = None
    is_active: bool = True

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValueError("min_price must not exceed max_price")
        return self


class PricingRuleCreate(PricingRuleBase):
    pass


class PricingRuleUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    category: str | None = Field(None, min_length=1, max_length=100)
    base_price: Decimal | None = Field(None, ge=0)
    min_price: Decimal | None = Field(None, ge=0)
    max_price: Decimal | None = Field(None, ge=0)
    description: str | None = None
    is_active: bool | None = None


class PricingRuleRead(PricingRuleBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    created_at: datetime


class ServiceBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    keywords: list[str] = Field(default_factory=list)
    is_active: bool = True


class ServiceCreate(ServiceBase):
    pass


class ServiceUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    keywords: list[str] | None = None
    is_active: bool | None = None


class ServiceRead(ServiceBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    created_at: datetime
