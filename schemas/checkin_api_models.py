from __future__ import annotations

from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from checkin_engine.models import (
    AssetDocumentType,
    BookingCheckin,
    BookingGuest,
    CheckinRequest,
    DocumentSide,
    DocumentTypeCatalog,
    DocumentTypeDescriptor,
    IdentityAsset,
    IdentityProfile,
    Reservation,
)

PROFILE_WIRE_NAMES = {"birth_date": "date_of_birth"}


class ApiCredentials(BaseModel):
    """Base URL and bearer token of the booking API."""

    model_config = ConfigDict(extra="forbid")

    base_url: str = Field(min_length=1)
    token: str | None = None
    operator_code: str | None = None


class WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class AssetUploadResponse(WireModel):
    key: str = Field(min_length=1)

    @property
    def job_key(self) -> str:
        return self.key


class AssetStatusResponse(WireModel):
    status: str
    validation_error: str | None = None
    key: str | None = None


class DocumentTypesResponse(WireModel):
    """``document_types`` is a list of ``[id, name]`` pairs, front first."""

    document_types: list[tuple[int, str]] = Field(default_factory=list)

    def to_domain(self, *, default_front_type_id: int = 116, default_back_type_id: int = 117) -> DocumentTypeCatalog:
        entries = [
            DocumentTypeDescriptor(side_role=side, type_id=type_id)
            for side, (type_id, _name) in zip(DocumentSide, self.document_types)
        ]
        return DocumentTypeCatalog(
            entries=entries,
            default_front_type_id=default_front_type_id,
            default_back_type_id=default_back_type_id,
        )


class AssetDocumentTypeResponse(WireModel):
    id: int | None = None
    name: str | None = None
    slug: str | None = None
    requires_back: bool = False


class AssetResponse(WireModel):
    type: int
    key: str | None = None
    validation_status: str | None = None
    validation_error: str | None = None
    file: str | None = None
    document_type: AssetDocumentTypeResponse | None = None

    def to_domain(self) -> IdentityAsset:
        data = self.model_dump(exclude={"document_type"})
        if self.document_type is not None:
            data["document_type"] = AssetDocumentType(**self.document_type.model_dump())
        return IdentityAsset(**data)


class ProfileResponse(WireModel):
    first_name: str | None = None
    last_name: str | None = None
    gender: str | None = None
    email: str | None = None
    email_address: str | None = None
    date_of_birth: str | None = None
    address: str | None = None
    country: str | None = None
    mobile: str | None = None
    assets: list[AssetResponse] = Field(default_factory=list)

    @field_validator("country", mode="before")
    @classmethod
    def country_code(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return value.get("code")
        return value

    def to_domain(self) -> IdentityProfile:
        return IdentityProfile(
            first_name=self.first_name,
            last_name=self.last_name,
            gender=self.gender,
            email=self.email_address or self.email,
            birth_date=self.date_of_birth,
            address=self.address,
            country=self.country,
            mobile=self.mobile,
            assets=[asset.to_domain() for asset in self.assets],
        )


class GuestResponse(WireModel):
    name: str | None = None
    mobile: str | None = None
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class CheckinUserResponse(WireModel):
    mobile: str | None = None


class CheckinEntryResponse(WireModel):
    user: CheckinUserResponse = Field(default_factory=CheckinUserResponse)


class OperatorResponse(WireModel):
    code: str | None = None


class ReservationResponse(WireModel):
    code: str
    checkin: date
    checkout: date
    operator: OperatorResponse | None = None
    guests: list[GuestResponse] = Field(default_factory=list)
    checkins: list[CheckinEntryResponse] = Field(default_factory=list)

    def to_domain(self) -> Reservation:
        return Reservation(
            code=self.code,
            operator_code=self.operator.code if self.operator else None,
            checkin=self.checkin,
            checkout=self.checkout,
            guests=[BookingGuest(**guest.model_dump()) for guest in self.guests],
            checkins=[BookingCheckin(mobile=entry.user.mobile) for entry in self.checkins],
        )


def profile_patch_payload(fields: dict[str, str]) -> dict[str, str]:
    return {PROFILE_WIRE_NAMES.get(name, name): value for name, value in fields.items()}


def checkin_payload(request: CheckinRequest) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "booking_code": request.booking_code,
        "arrival_time": request.arrival_time,
        "next_destination": request.next_destination,
        "coming_from": request.coming_from,
        "arrival_on": request.checkin_date.isoformat(),
        "departure_on": request.checkout_date.isoformat(),
    }
    if request.email:
        payload["email_address"] = request.email
    return payload
