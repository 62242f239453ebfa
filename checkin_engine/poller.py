from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol

import httpx
import structlog

from . import metrics
from .exceptions import CheckinApiError, DocumentValidationError, ValidationTimeout
from .models import ValidationJob, ValidationStatus

DEFAULT_REJECTION_MESSAGE = "ID validation failed"


class AssetStatus(Protocol):
    status: str
    validation_error: str | None


class AssetStatusSource(Protocol):
    async def get_asset_status(self, job_key: str) -> AssetStatus: ...


@dataclass
class DocumentValidationPoller:
    """Drives one validation job to a terminal state.

    Each status check is scheduled only after the previous response arrived,
    so a job never has two requests in flight.
    """

    api: AssetStatusSource
    base_delay_seconds: float = 6.0
    delay_increment_seconds: float = 1.0

    def __post_init__(self) -> None:
        self._logger = structlog.get_logger("checkin.poller")

    def delay_for(self, attempt: int) -> float:
        return self.base_delay_seconds + self.delay_increment_seconds * attempt

    async def poll(self, job: ValidationJob) -> ValidationJob:
        if job.attempts_made >= job.max_attempts:
            self._logger.warning("validation_timeout", job_key=job.job_key, attempts=job.attempts_made)
            metrics.inc("checkin.validation.timeout")
            raise ValidationTimeout()

        job.attempts_made += 1
        try:
            response = await self.api.get_asset_status(job.job_key)
        except (httpx.HTTPError, CheckinApiError) as exc:
            self._logger.warning(
                "validation_status_check_failed",
                job_key=job.job_key,
                attempt=job.attempts_made,
                error=str(exc),
            )
            return await self._reschedule(job)

        job.status = ValidationStatus.from_server(response.status)
        if job.status in {ValidationStatus.PENDING, ValidationStatus.PROCESSING}:
            return await self._reschedule(job)

        if job.status is ValidationStatus.VALIDATED:
            self._logger.info("validation_succeeded", job_key=job.job_key, attempts=job.attempts_made)
            return job

        job.validation_error = response.validation_error or DEFAULT_REJECTION_MESSAGE
        self._logger.info(
            "validation_rejected",
            job_key=job.job_key,
            attempts=job.attempts_made,
            server_status=response.status,
            reason=job.validation_error,
        )
        metrics.inc("checkin.validation.rejected")
        raise DocumentValidationError(job.validation_error)

    async def _reschedule(self, job: ValidationJob) -> ValidationJob:
        delay = self.delay_for(job.attempts_made)
        self._logger.debug("validation_pending", job_key=job.job_key, attempt=job.attempts_made, next_check_in=delay)
        await asyncio.sleep(delay)
        return await self.poll(job)
