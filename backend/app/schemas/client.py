"""Pydantic schemas for Client CRUD operations."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from app.schemas.validators import validate_email


class ClientCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str
    company_name: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None
    notes: str | None = None

    @field_validator("email")
    @classmethod
    def valid_email(cls, v: str) -> str:
        return validate_email(v)


class ClientUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    email: str | None = None
    company_name: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None
    notes: str | None = None

    @field_validator("email")
    @classmethod
    def valid_email(cls, v: str | None) -> str | None:
        return validate_email(v) if v is not None else v


class ClientOut(BaseModel):
    id: str
    name: str
    email: str
    company_name: str | None
    phone: str | None
    address: str | None
    city: str | None
    state: str | None
    postal_code: str | None
    country: str | None
    notes: str | None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
