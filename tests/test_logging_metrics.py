import asyncio

import httpx
import pytest

from checkin_engine import metrics, upload
from checkin_engine.document_store import IdentityDocumentStore
from checkin_engine.exceptions import UploadFailure
from checkin_engine.logging import mask_email, mask_sensitive
from checkin_engine.models import CaptureSource, DocumentSide, DocumentTypeCatalog, IdentityProfile
from checkin_engine.poller import DocumentValidationPoller


class FailingApi:
    async def upload_asset(self, type_id: int, file_path: str):
        raise httpx.ConnectError("network down")

    async def get_asset_status(self, job_key: str):
        raise AssertionError("not polled")

    async def get_profile(self) -> IdentityProfile:
        return IdentityProfile()


class FakeStatsd:
    def __init__(self) -> None:
        self.calls: list[tuple[str, int]] = []

    def incr(self, name: str, value: int) -> None:
        self.calls.append((name, value))


def test_masking_hides_personal_values():
    assert mask_email("asha.rao@example.com") == "as***ao@example.com"
    assert mask_email("ab@example.com") == "**@example.com"
    assert mask_email(None) is None
    assert mask_sensitive("1994-03-02") == "19***02"


def test_metrics_disabled_is_noop(monkeypatch):
    client = FakeStatsd()
    monkeypatch.setattr(metrics.config, "CHECKIN_METRICS_ENABLED", False)
    monkeypatch.setattr(metrics, "_init_statsd", lambda: client)

    metrics.inc("checkin.upload.failure")

    assert client.calls == []


def test_metrics_statsd_backend(monkeypatch):
    client = FakeStatsd()
    monkeypatch.setattr(metrics.config, "CHECKIN_METRICS_ENABLED", True)
    monkeypatch.setattr(metrics.config, "CHECKIN_METRICS_BACKEND", "statsd")
    monkeypatch.setattr(metrics, "_init_statsd", lambda: client)

    metrics.inc("checkin.submit.success", 2)

    assert client.calls == [("checkin.submit.success", 2)]


def test_upload_escalation_emits_metrics(monkeypatch):
    calls = []

    def fake_inc(name: str, value: int = 1):
        calls.append(name)

    monkeypatch.setattr(upload.metrics, "inc", fake_inc)
    api = FailingApi()
    coordinator = upload.UploadCoordinator(
        store=IdentityDocumentStore(catalog=DocumentTypeCatalog()),
        api=api,
        poller=DocumentValidationPoller(api=api),
    )

    async def _run() -> None:
        for _ in range(2):
            with pytest.raises(UploadFailure):
                await coordinator.submit_capture(DocumentSide.BACK, "/tmp/back.jpg", CaptureSource.CAMERA)

    asyncio.run(_run())

    assert calls == ["checkin.upload.failure", "checkin.upload.failure", "checkin.upload.escalated"]


def test_every_emitted_counter_is_declared():
    assert metrics.prometheus_name("checkin.validation.timeout") == "checkin_validation_timeout_total"
    with pytest.raises(KeyError):
        metrics.inc("checkin.upload.retried")


def test_broken_backend_never_fails_the_caller(monkeypatch):
    class BrokenStatsd:
        def incr(self, name: str, value: int) -> None:
            raise ConnectionError("statsd unreachable")

    monkeypatch.setattr(metrics.config, "CHECKIN_METRICS_ENABLED", True)
    monkeypatch.setattr(metrics.config, "CHECKIN_METRICS_BACKEND", "statsd")
    monkeypatch.setattr(metrics, "_init_statsd", lambda: BrokenStatsd())

    metrics.inc("checkin.submit.failure")
