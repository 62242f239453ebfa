from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import httpx
import structlog

from . import metrics
from .document_store import IdentityDocumentStore
from .exceptions import CheckinApiError, UploadFailure
from .models import (
    CaptureSlot,
    CaptureSource,
    DocumentSide,
    IdentityProfile,
    RecoveryAffordance,
    UploadResult,
)
from .poller import DocumentValidationPoller


class AssetUpload(Protocol):
    job_key: str


class AssetGateway(Protocol):
    async def upload_asset(self, type_id: int, file_path: str) -> AssetUpload: ...

    async def get_profile(self) -> IdentityProfile: ...


def escalate(failure_count: int, *, technical_error_after: int = 2) -> RecoveryAffordance:
    """First failures offer retake/reupload; from the threshold on only abandoning is offered."""
    if failure_count >= technical_error_after:
        return RecoveryAffordance.TECHNICAL_ERROR
    return RecoveryAffordance.RETRY_UPLOAD


@dataclass
class UploadCoordinator:
    store: IdentityDocumentStore
    api: AssetGateway
    poller: DocumentValidationPoller
    max_poll_attempts: int = 10
    technical_error_after: int = 2

    def __post_init__(self) -> None:
        self._logger = structlog.get_logger("checkin.upload")

    async def submit_capture(self, side: DocumentSide, file_path: str, source: CaptureSource) -> UploadResult:
        lock = self.store.upload_lock(side)
        if lock.locked():
            self._logger.info("upload_waiting_for_previous_attempt", side=side.value)
        async with lock:
            self.store.put_capture(side, CaptureSlot(file_path=file_path, source=source))
            self.store.set_uploading(side, True)
            try:
                return await self._upload_and_validate(side, file_path)
            finally:
                self.store.set_uploading(side, False)
                await self.refresh_profile()

    def discard_capture(self, side: DocumentSide) -> None:
        self.store.discard_capture(side)
        self._logger.info("capture_discarded", side=side.value)

    def sync_profile(self, profile: IdentityProfile) -> None:
        self.store.apply_profile(profile)

    async def refresh_profile(self) -> IdentityProfile | None:
        try:
            profile = await self.api.get_profile()
        except (httpx.HTTPError, CheckinApiError) as exc:
            self._logger.warning("profile_refresh_failed", error=str(exc))
            return None
        self.sync_profile(profile)
        return profile

    async def _upload_and_validate(self, side: DocumentSide, file_path: str) -> UploadResult:
        type_id = self.store.catalog.type_id(side)
        try:
            upload = await self.api.upload_asset(type_id, file_path)
        except (httpx.HTTPError, CheckinApiError, OSError) as exc:
            failure_count = self.store.record_failure(side)
            affordance = escalate(failure_count, technical_error_after=self.technical_error_after)
            self._logger.warning(
                "upload_failed",
                side=side.value,
                type_id=type_id,
                failure_count=failure_count,
                affordance=affordance.value,
                error=str(exc),
            )
            metrics.inc("checkin.upload.failure")
            if affordance is RecoveryAffordance.TECHNICAL_ERROR:
                metrics.inc("checkin.upload.escalated")
            raise UploadFailure(side, failure_count, affordance) from exc

        self._logger.info("upload_succeeded", side=side.value, type_id=type_id, job_key=upload.job_key)
        if side is DocumentSide.BACK:
            self.store.mark_uploaded(side)
            return UploadResult(side=side)

        job = self.store.begin_validation(upload.job_key, max_attempts=self.max_poll_attempts)
        try:
            await self.poller.poll(job)
        finally:
            self.store.finish_validation(job)
        self.store.mark_uploaded(side)
        return UploadResult(side=side, job=job)
