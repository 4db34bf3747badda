"""Request bodies accepted by the HTTP API."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class RegisterIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=6)

    @field_validator("email")
    @classmethod
    def _email_shape(cls, value: str) -> str:
        value = value.strip().lower()
        if "@" not in value or value.startswith("@") or value.endswith("@"):
            raise ValueError("email must be a valid address")
        return value


class VerifyOtpIn(BaseModel):
    userId: int
    otpCode: str = Field(min_length=1)


class ResendOtpIn(BaseModel):
    userId: int


class LoginIn(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class ProfileUpdateIn(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=6)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str | None) -> str | None:
        return value.strip().lower() if value else value


class VehicleIn(BaseModel):
    plate_number: str = Field(min_length=1, max_length=32)
    vehicle_type: str = Field(min_length=1, max_length=64)
    size: str = Field(min_length=1, max_length=32)
    other_attributes: Optional[dict[str, Any]] = None


class VehicleUpdateIn(BaseModel):
    plate_number: Optional[str] = Field(default=None, min_length=1, max_length=32)
    vehicle_type: Optional[str] = Field(default=None, min_length=1, max_length=64)
    size: Optional[str] = Field(default=None, min_length=1, max_length=32)
    other_attributes: Optional[dict[str, Any]] = None


class SlotIn(BaseModel):
    slot_number: str = Field(min_length=1, max_length=32)
    size: str = Field(min_length=1, max_length=32)
    vehicle_type: str = Field(min_length=1, max_length=64)
    location: Optional[str] = None


class SlotBulkIn(BaseModel):
    slots: list[SlotIn] = Field(min_length=1)


class SlotUpdateIn(BaseModel):
    slot_number: Optional[str] = Field(default=None, min_length=1, max_length=32)
    size: Optional[str] = Field(default=None, min_length=1, max_length=32)
    vehicle_type: Optional[str] = Field(default=None, min_length=1, max_length=64)
    location: Optional[str] = None
    status: Optional[Literal["available", "unavailable"]] = None


class SlotRequestIn(BaseModel):
    vehicle_id: int


class RejectIn(BaseModel):
    reason: Optional[str] = None
