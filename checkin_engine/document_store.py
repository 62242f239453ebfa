from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from .exceptions import ValidationInFlightError, WizardFinishedError
from .models import (
    CaptureSlot,
    DocumentSide,
    DocumentTypeCatalog,
    IdentityAsset,
    IdentityProfile,
    UploadState,
    ValidationJob,
    ValidationStatus,
)


def _per_side(factory):
    return field(default_factory=lambda: {side: factory(side) for side in DocumentSide})


@dataclass
class IdentityDocumentStore:
    """Capture, upload and validation state of one wizard instance.

    Failure counters live here for the whole session and are never reset; a
    new wizard instance gets a new store.
    """

    catalog: DocumentTypeCatalog
    _slots: dict[DocumentSide, CaptureSlot | None] = _per_side(lambda side: None)
    _uploads: dict[DocumentSide, UploadState] = _per_side(lambda side: UploadState(side=side))
    _uploaded: dict[DocumentSide, bool] = _per_side(lambda side: False)
    _locks: dict[DocumentSide, asyncio.Lock] = _per_side(lambda side: asyncio.Lock())
    _assets: dict[DocumentSide, IdentityAsset] = field(default_factory=dict)
    _job: ValidationJob | None = None
    _job_in_flight: bool = False
    _released: bool = False

    def capture(self, side: DocumentSide) -> CaptureSlot | None:
        return self._slots[side]

    def upload_state(self, side: DocumentSide) -> UploadState:
        return self._uploads[side].model_copy()

    def failure_count(self, side: DocumentSide) -> int:
        return self._uploads[side].failure_count

    def is_uploading(self, side: DocumentSide) -> bool:
        return self._uploads[side].is_uploading

    def upload_lock(self, side: DocumentSide) -> asyncio.Lock:
        return self._locks[side]

    @property
    def current_job(self) -> ValidationJob | None:
        return self._job

    @property
    def released(self) -> bool:
        return self._released

    def put_capture(self, side: DocumentSide, slot: CaptureSlot) -> None:
        self._ensure_open()
        self._slots[side] = slot
        self._uploaded[side] = False
        if side is DocumentSide.FRONT:
            self._forget_front_validation()

    def discard_capture(self, side: DocumentSide) -> None:
        self._ensure_open()
        self._slots[side] = None
        self._uploaded[side] = False
        self._assets.pop(side, None)
        if side is DocumentSide.FRONT:
            self._forget_front_validation()

    def set_uploading(self, side: DocumentSide, is_uploading: bool) -> None:
        self._uploads[side].is_uploading = is_uploading

    def mark_uploaded(self, side: DocumentSide) -> None:
        self._ensure_open()
        self._uploaded[side] = True

    def record_failure(self, side: DocumentSide) -> int:
        state = self._uploads[side]
        state.failure_count += 1
        return state.failure_count

    def begin_validation(self, job_key: str, *, max_attempts: int) -> ValidationJob:
        self._ensure_open()
        if self._job_in_flight:
            raise ValidationInFlightError(f"Validation job {self._job.job_key if self._job else '?'} is still running")
        self._job = ValidationJob(job_key=job_key, max_attempts=max_attempts)
        self._job_in_flight = True
        return self._job

    def finish_validation(self, job: ValidationJob) -> None:
        if self._job is job:
            self._job_in_flight = False

    def apply_profile(self, profile: IdentityProfile) -> None:
        if self._released:
            return
        for side in DocumentSide:
            asset = profile.asset_for(self.catalog.type_id(side))
            if asset is None:
                self._assets.pop(side, None)
            else:
                self._assets[side] = asset

    def asset(self, side: DocumentSide) -> IdentityAsset | None:
        return self._assets.get(side)

    @property
    def front_status(self) -> ValidationStatus | None:
        if self._job is not None:
            return self._job.status
        asset = self._assets.get(DocumentSide.FRONT)
        if asset is None or asset.validation_status is None:
            return None
        return ValidationStatus.from_server(asset.validation_status)

    @property
    def front_validated(self) -> bool:
        return self.front_status is ValidationStatus.VALIDATED

    @property
    def front_settled(self) -> bool:
        return not self._job_in_flight

    @property
    def requires_back(self) -> bool:
        asset = self._assets.get(DocumentSide.FRONT)
        if asset is not None and asset.document_type is not None:
            return asset.document_type.requires_back
        return self.catalog.requires_back

    @property
    def back_present(self) -> bool:
        if self._uploaded[DocumentSide.BACK]:
            return True
        asset = self._assets.get(DocumentSide.BACK)
        return bool(asset and asset.file)

    @property
    def document_complete(self) -> bool:
        return self.front_validated and (not self.requires_back or self.back_present)

    def release(self) -> None:
        self._slots = {side: None for side in DocumentSide}
        self._released = True

    def _forget_front_validation(self) -> None:
        if not self._job_in_flight:
            self._job = None
        self._assets.pop(DocumentSide.FRONT, None)

    def _ensure_open(self) -> None:
        if self._released:
            raise WizardFinishedError("Check-in is finished; identity documents can no longer change")
