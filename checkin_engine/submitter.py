from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import httpx
import structlog

from . import metrics
from .exceptions import CheckinApiError, SubmissionError
from .logging import mask_email
from .models import ArrivalSchedule, CheckinRecord, CheckinRequest, Reservation


class CheckinGateway(Protocol):
    async def checkin(self, request: CheckinRequest) -> CheckinRecord: ...


def format_arrival_time(schedule: ArrivalSchedule) -> str:
    return schedule.arrival_time.strftime("%H:%M:00")


@dataclass
class CheckinSubmitter:
    """Builds the check-in payload and sends it at most once at a time."""

    api: CheckinGateway

    def __post_init__(self) -> None:
        self._logger = structlog.get_logger("checkin.submitter")
        self._pending: CheckinRequest | None = None

    @property
    def is_pending(self) -> bool:
        return self._pending is not None

    @staticmethod
    def build_request(reservation: Reservation, schedule: ArrivalSchedule, email: str | None) -> CheckinRequest:
        return CheckinRequest(
            booking_code=reservation.code,
            arrival_time=format_arrival_time(schedule),
            coming_from=schedule.coming_from.strip(),
            next_destination=schedule.next_destination.strip(),
            checkin_date=reservation.checkin,
            checkout_date=reservation.checkout,
            email=email or None,
            operator_code=reservation.operator_code,
        )

    async def submit(self, request: CheckinRequest) -> CheckinRecord | None:
        """Returns ``None`` when a submission is already in flight."""
        if self._pending is not None:
            self._logger.info("checkin_submit_suppressed", booking_code=request.booking_code)
            return None

        self._pending = request
        try:
            record = await self.api.checkin(request)
        except (httpx.HTTPError, CheckinApiError) as exc:
            self._logger.warning(
                "checkin_submit_failed",
                booking_code=request.booking_code,
                email=mask_email(request.email),
                error=str(exc),
            )
            metrics.inc("checkin.submit.failure")
            raise SubmissionError(f"Check-in for booking {request.booking_code} failed") from exc
        finally:
            self._pending = None

        self._logger.info("checkin_submitted", booking_code=request.booking_code, record_id=record.record_id)
        metrics.inc("checkin.submit.success")
        return record
