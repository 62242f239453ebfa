from __future__ import annotations

from datetime import date as date_type
from datetime import time
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class CheckinBaseModel(BaseModel):
    """Base model with forbidden unknown fields."""

    model_config = ConfigDict(extra="forbid")


class FrozenCheckinModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class DocumentSide(str, Enum):
    FRONT = "front"
    BACK = "back"


class CaptureSource(str, Enum):
    CAMERA = "camera"
    GALLERY = "gallery"


class CaptureMode(str, Enum):
    EDIT = "edit"
    PREVIEW = "preview"


class ValidationStatus(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    VALIDATED = "Validated"
    REJECTED = "Rejected"

    @classmethod
    def from_server(cls, value: str | None) -> ValidationStatus:
        """Unknown server statuses are terminal and count as rejections."""
        for member in cls:
            if member.value == value:
                return member
        return cls.REJECTED

    @property
    def is_terminal(self) -> bool:
        return self in {ValidationStatus.VALIDATED, ValidationStatus.REJECTED}


class RecoveryAffordance(str, Enum):
    RETRY_UPLOAD = "retry_upload"
    TECHNICAL_ERROR = "technical_error"
    VALIDATION_MESSAGE = "validation_message"
    VALIDATION_TIMEOUT = "validation_timeout"
    RESUBMIT = "resubmit"


class NavigationResult(str, Enum):
    STAY = "stay"
    EXIT = "exit"


class PersonalInfo(CheckinBaseModel):
    first_name: str | None = None
    last_name: str | None = None
    gender: str | None = None
    email: str | None = None
    birth_date: str | None = None
    address: str | None = None
    country: str | None = None


class CaptureSlot(FrozenCheckinModel):
    file_path: str = Field(min_length=1)
    source: CaptureSource


class UploadState(CheckinBaseModel):
    side: DocumentSide
    is_uploading: bool = False
    failure_count: int = Field(default=0, ge=0)


class ValidationJob(CheckinBaseModel):
    job_key: str = Field(min_length=1)
    attempts_made: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=10, ge=1)
    status: ValidationStatus = ValidationStatus.PENDING
    validation_error: str | None = None


class ArrivalSchedule(CheckinBaseModel):
    date: date_type = Field(default_factory=date_type.today)
    arrival_time: time = time(11, 0)
    coming_from: str = ""
    next_destination: str = ""


class CheckinRequest(FrozenCheckinModel):
    booking_code: str = Field(min_length=1)
    arrival_time: str
    coming_from: str = Field(min_length=1)
    next_destination: str = Field(min_length=1)
    checkin_date: date_type
    checkout_date: date_type
    email: str | None = None
    operator_code: str | None = None


class CheckinRecord(FrozenCheckinModel):
    booking_code: str
    record_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)


class DocumentTypeDescriptor(FrozenCheckinModel):
    side_role: DocumentSide
    type_id: int
    requires_back_side: bool = False


class DocumentTypeCatalog(CheckinBaseModel):
    entries: list[DocumentTypeDescriptor] = Field(default_factory=list)
    default_front_type_id: int = 116
    default_back_type_id: int = 117

    def descriptor(self, side: DocumentSide) -> DocumentTypeDescriptor | None:
        for entry in self.entries:
            if entry.side_role is side:
                return entry
        return None

    def type_id(self, side: DocumentSide) -> int:
        entry = self.descriptor(side)
        if entry is not None:
            return entry.type_id
        return self.default_front_type_id if side is DocumentSide.FRONT else self.default_back_type_id

    @property
    def requires_back(self) -> bool:
        front = self.descriptor(DocumentSide.FRONT)
        return bool(front and front.requires_back_side)


class AssetDocumentType(CheckinBaseModel):
    id: int | None = None
    name: str | None = None
    slug: str | None = None
    requires_back: bool = False


class IdentityAsset(CheckinBaseModel):
    type: int
    key: str | None = None
    validation_status: str | None = None
    validation_error: str | None = None
    file: str | None = None
    document_type: AssetDocumentType | None = None

    @property
    def is_validated(self) -> bool:
        return self.validation_status == ValidationStatus.VALIDATED.value


class IdentityProfile(CheckinBaseModel):
    first_name: str | None = None
    last_name: str | None = None
    gender: str | None = None
    email: str | None = None
    birth_date: str | None = None
    address: str | None = None
    country: str | None = None
    mobile: str | None = None
    assets: list[IdentityAsset] = Field(default_factory=list)

    def asset_for(self, type_id: int) -> IdentityAsset | None:
        for asset in self.assets:
            if asset.type == type_id:
                return asset
        return None

    def personal_info(self) -> PersonalInfo:
        return PersonalInfo(
            first_name=self.first_name,
            last_name=self.last_name,
            gender=self.gender,
            email=self.email,
            birth_date=self.birth_date,
            address=self.address,
            country=self.country,
        )


class BookingGuest(CheckinBaseModel):
    name: str | None = None
    mobile: str | None = None
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class BookingCheckin(CheckinBaseModel):
    mobile: str | None = None


class Reservation(CheckinBaseModel):
    code: str = Field(min_length=1)
    operator_code: str | None = None
    checkin: date_type
    checkout: date_type
    guests: list[BookingGuest] = Field(default_factory=list)
    checkins: list[BookingCheckin] = Field(default_factory=list)


class PersonalInfoStep(FrozenCheckinModel):
    kind: Literal["personal_info"] = "personal_info"


class DocumentCaptureStep(FrozenCheckinModel):
    kind: Literal["document_capture"] = "document_capture"
    side: DocumentSide = DocumentSide.FRONT
    mode: CaptureMode = CaptureMode.EDIT


class ArrivalScheduleStep(FrozenCheckinModel):
    kind: Literal["arrival_schedule"] = "arrival_schedule"


class DoneStep(FrozenCheckinModel):
    kind: Literal["done"] = "done"
    record: CheckinRecord | None = None


WizardStep = Annotated[
    Union[PersonalInfoStep, DocumentCaptureStep, ArrivalScheduleStep, DoneStep],
    Field(discriminator="kind"),
]


class UploadResult(FrozenCheckinModel):
    side: DocumentSide
    job: ValidationJob | None = None


class CaptureOutcome(FrozenCheckinModel):
    step: WizardStep
    side: DocumentSide
    succeeded: bool
    affordance: RecoveryAffordance | None = None
    message: str | None = None
    stale: bool = False


class SubmitOutcome(FrozenCheckinModel):
    step: WizardStep
    record: CheckinRecord | None = None
    affordance: RecoveryAffordance | None = None
    message: str | None = None
    suppressed: bool = False
