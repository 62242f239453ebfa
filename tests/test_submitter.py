import asyncio
from datetime import date, time

import httpx
import pytest

from checkin_engine.exceptions import SubmissionError
from checkin_engine.models import ArrivalSchedule, CheckinRecord, CheckinRequest, Reservation
from checkin_engine.submitter import CheckinSubmitter, format_arrival_time


class FakeCheckinApi:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.requests: list[CheckinRequest] = []
        self.release = asyncio.Event()

    async def checkin(self, request: CheckinRequest) -> CheckinRecord:
        self.requests.append(request)
        await self.release.wait()
        if self.fail:
            raise httpx.ConnectError("gateway timeout")
        return CheckinRecord(booking_code=request.booking_code, record_id=str(len(self.requests)))


def _reservation() -> Reservation:
    return Reservation(
        code="ZO-1234",
        operator_code="GOA01",
        checkin=date(2026, 11, 2),
        checkout=date(2026, 11, 5),
    )


def _request() -> CheckinRequest:
    schedule = ArrivalSchedule(
        date=date(2026, 11, 2),
        arrival_time=time(14, 30),
        coming_from=" Mumbai ",
        next_destination="Hampi",
    )
    return CheckinSubmitter.build_request(_reservation(), schedule, "guest@example.com")


def test_build_request_maps_reservation_and_schedule():
    request = _request()

    assert request.booking_code == "ZO-1234"
    assert request.operator_code == "GOA01"
    assert request.arrival_time == "14:30:00"
    assert request.coming_from == "Mumbai"
    assert request.checkin_date == date(2026, 11, 2)
    assert request.checkout_date == date(2026, 11, 5)
    assert request.email == "guest@example.com"


def test_default_arrival_time_format():
    assert format_arrival_time(ArrivalSchedule()) == "11:00:00"


def test_concurrent_submit_creates_exactly_one_record():
    async def _run():
        api = FakeCheckinApi()
        submitter = CheckinSubmitter(api=api)
        first = asyncio.create_task(submitter.submit(_request()))
        await asyncio.sleep(0)
        assert submitter.is_pending
        second = await submitter.submit(_request())
        api.release.set()
        return api, await first, second

    api, first, second = asyncio.run(_run())

    assert len(api.requests) == 1
    assert first.record_id == "1"
    assert second is None


def test_failed_submit_raises_and_allows_resubmit():
    async def _run():
        api = FakeCheckinApi(fail=True)
        api.release.set()
        submitter = CheckinSubmitter(api=api)
        with pytest.raises(SubmissionError):
            await submitter.submit(_request())
        assert not submitter.is_pending
        api.fail = False
        return api, await submitter.submit(_request())

    api, record = asyncio.run(_run())

    assert len(api.requests) == 2
    assert record.booking_code == "ZO-1234"
