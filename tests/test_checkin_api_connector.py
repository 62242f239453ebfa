import asyncio
import json
from collections import deque
from datetime import date

import httpx
import pytest

from checkin_engine.exceptions import CheckinApiError, ReservationNotFoundError
from checkin_engine.models import CheckinRequest, DocumentSide
from connectors.checkin_api import CheckinApiConnector
from schemas.checkin_api_models import ApiCredentials


def _credentials() -> ApiCredentials:
    return ApiCredentials(base_url="https://api.example/", token="secret-token", operator_code="DEFAULT01")


def _connector(handler) -> CheckinApiConnector:
    return CheckinApiConnector(
        _credentials(),
        correlation_id="corr-12345678",
        backoff_base_seconds=0.0,
        transport=httpx.MockTransport(handler),
    )


def _call(connector: CheckinApiConnector, coro_factory):
    async def _run():
        try:
            return await coro_factory(connector)
        finally:
            await connector.aclose()

    return asyncio.run(_run())


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    async def fake_sleep(delay: float) -> None:
        return None

    monkeypatch.setattr("connectors.checkin_api.asyncio.sleep", fake_sleep)


def test_get_reservation_maps_guests_checkins_and_operator():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["headers"] = dict(request.headers)
        return httpx.Response(
            200,
            json={
                "code": "ZO-1234",
                "checkin": "2026-11-02",
                "checkout": "2026-11-05",
                "status": "confirmed",
                "operator": {"code": "GOA01", "name": "Zostel Goa"},
                "guests": [{"name": "Ravi Kumar", "first_name": "Ravi", "mobile": "+91980000002", "gender": 1}],
                "checkins": [{"user": {"mobile": "+91980000002", "email": "ravi@example.com"}, "approved": True}],
            },
        )

    reservation = _call(_connector(handler), lambda c: c.get_reservation("ZO-1234"))

    assert captured["url"] == "https://api.example/api/v2/stay/bookings/ZO-1234/"
    assert captured["headers"]["authorization"] == "Bearer secret-token"
    assert captured["headers"]["x-correlation-id"] == "corr-12345678"
    assert reservation.operator_code == "GOA01"
    assert reservation.checkin == date(2026, 11, 2)
    assert reservation.guests[0].first_name == "Ravi"
    assert reservation.checkins[0].mobile == "+91980000002"


def test_missing_reservation_raises_not_found():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"detail": "Not found."})

    with pytest.raises(ReservationNotFoundError):
        _call(_connector(handler), lambda c: c.get_reservation("NOPE"))


def test_get_requests_retry_on_server_errors_and_rate_limits():
    responses = deque(
        [
            httpx.Response(503),
            httpx.Response(429, headers={"Retry-After": "0"}),
            httpx.Response(200, json={"status": "Processing", "validation_error": None, "key": "k-1"}),
        ]
    )
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return responses.popleft()

    status = _call(_connector(handler), lambda c: c.get_asset_status("k-1"))

    assert status.status == "Processing"
    assert calls == ["/api/v1/profile/me/assets/status/k-1/"] * 3


def test_post_requests_are_not_retried(tmp_path):
    image = tmp_path / "front.jpg"
    image.write_bytes(b"\xff\xd8fake-jpeg")
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.method)
        return httpx.Response(502)

    with pytest.raises(CheckinApiError) as exc_info:
        _call(_connector(handler), lambda c: c.upload_asset(116, str(image)))

    assert exc_info.value.status_code == 502
    assert calls == ["POST"]


def test_upload_asset_sends_multipart_file(tmp_path):
    image = tmp_path / "front.jpg"
    image.write_bytes(b"\xff\xd8fake-jpeg")
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["content_type"] = request.headers["content-type"]
        captured["body"] = request.read()
        return httpx.Response(201, json={"key": "asset-key-1"})

    upload = _call(_connector(handler), lambda c: c.upload_asset(116, str(image)))

    assert upload.job_key == "asset-key-1"
    assert captured["path"] == "/api/v1/profile/me/assets/116/upload/"
    assert captured["content_type"].startswith("multipart/form-data")
    assert b'name="file"; filename="front.jpg"' in captured["body"]
    assert b"fake-jpeg" in captured["body"]


def test_missing_capture_file_raises_os_error(tmp_path):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(OSError):
        _call(_connector(handler), lambda c: c.upload_asset(116, str(tmp_path / "missing.jpg")))


def test_profile_maps_assets_and_wire_names():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "first_name": "Asha",
                "last_name": "Rao",
                "email": "asha@example.com",
                "mobile": "+919800000001",
                "date_of_birth": "1994-03-02",
                "country": {"code": "IN", "name": "India"},
                "assets": [
                    {
                        "type": 116,
                        "key": "asset-1",
                        "validation_status": "Validated",
                        "file": "https://cdn.example/front.jpg",
                        "document_type": {"id": 4, "name": "Passport", "slug": "passport", "requires_back": True},
                        "time_create": "2026-10-01T10:00:00Z",
                    }
                ],
            },
        )

    profile = _call(_connector(handler), lambda c: c.get_profile())

    assert profile.birth_date == "1994-03-02"
    assert profile.country == "IN"
    assert profile.assets[0].is_validated
    assert profile.assets[0].document_type.requires_back


def test_update_profile_sends_only_given_fields_with_wire_names():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["method"] = request.method
        captured["json"] = json.loads(request.read())
        return httpx.Response(200, json={})

    _call(_connector(handler), lambda c: c.update_profile({"birth_date": "1994-03-02", "address": "Goa"}))

    assert captured["method"] == "PATCH"
    assert captured["json"] == {"date_of_birth": "1994-03-02", "address": "Goa"}


def test_document_types_build_catalog_in_front_back_order():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"document_types": [[201, "ID front"], [202, "ID back"]]})

    catalog = _call(_connector(handler), lambda c: c.get_document_types())

    assert catalog.type_id(DocumentSide.FRONT) == 201
    assert catalog.type_id(DocumentSide.BACK) == 202


def test_checkin_posts_payload_to_operator():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["json"] = json.loads(request.read())
        return httpx.Response(201, json={"id": 991, "approved": False})

    request = CheckinRequest(
        booking_code="ZO-1234",
        arrival_time="14:30:00",
        coming_from="Mumbai",
        next_destination="Hampi",
        checkin_date=date(2026, 11, 2),
        checkout_date=date(2026, 11, 5),
        email="asha@example.com",
        operator_code="GOA01",
    )
    record = _call(_connector(handler), lambda c: c.checkin(request))

    assert captured["path"] == "/api/v1/stay/operators/GOA01/checkin/"
    assert captured["json"] == {
        "booking_code": "ZO-1234",
        "arrival_time": "14:30:00",
        "next_destination": "Hampi",
        "coming_from": "Mumbai",
        "arrival_on": "2026-11-02",
        "departure_on": "2026-11-05",
        "email_address": "asha@example.com",
    }
    assert record.record_id == "991"


def test_error_payload_raises_api_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error": "email already registered"})

    with pytest.raises(CheckinApiError):
        _call(_connector(handler), lambda c: c.add_email("asha@example.com"))
