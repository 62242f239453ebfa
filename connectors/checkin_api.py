from __future__ import annotations

import asyncio
import mimetypes
import random
from pathlib import Path
from typing import Any

import httpx
import structlog

from checkin_engine.exceptions import CheckinApiError, ReservationNotFoundError
from checkin_engine.logging import mask_email
from checkin_engine.models import CheckinRecord, CheckinRequest, DocumentTypeCatalog, IdentityProfile, Reservation
from schemas.checkin_api_models import (
    ApiCredentials,
    AssetStatusResponse,
    AssetUploadResponse,
    DocumentTypesResponse,
    ProfileResponse,
    ReservationResponse,
    checkin_payload,
    profile_patch_payload,
)

RETRYABLE_METHODS = frozenset({"GET"})


class CheckinApiConnector:
    def __init__(
        self,
        credentials: ApiCredentials,
        *,
        timeout_seconds: float = 15.0,
        max_retries: int = 3,
        backoff_base_seconds: float = 0.2,
        backoff_max_seconds: float = 5.0,
        correlation_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._credentials = credentials
        self._max_retries = max_retries
        self._backoff_base_seconds = backoff_base_seconds
        self._backoff_max_seconds = backoff_max_seconds
        self._correlation_id = correlation_id
        self._logger = structlog.get_logger("checkin_api_connector")
        headers = {"Accept": "application/json"}
        if credentials.token:
            headers["Authorization"] = f"Bearer {credentials.token}"
        self._client = httpx.AsyncClient(
            base_url=credentials.base_url.rstrip("/"),
            timeout=timeout_seconds,
            transport=transport,
            headers=headers,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_reservation(self, booking_code: str) -> Reservation:
        try:
            payload = await self._request("GET", f"/api/v2/stay/bookings/{booking_code}/", operation="get_reservation")
        except CheckinApiError as exc:
            if exc.status_code == 404:
                raise ReservationNotFoundError(f"Booking {booking_code} not found") from exc
            raise
        return ReservationResponse.model_validate(payload).to_domain()

    async def get_document_types(
        self,
        *,
        default_front_type_id: int = 116,
        default_back_type_id: int = 117,
    ) -> DocumentTypeCatalog:
        payload = await self._request("GET", "/api/v1/profile/document-types/", operation="get_document_types")
        return DocumentTypesResponse.model_validate(payload).to_domain(
            default_front_type_id=default_front_type_id,
            default_back_type_id=default_back_type_id,
        )

    async def upload_asset(self, type_id: int, file_path: str) -> AssetUploadResponse:
        path = Path(file_path)
        content = path.read_bytes()
        content_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
        payload = await self._request(
            "POST",
            f"/api/v1/profile/me/assets/{type_id}/upload/",
            operation="upload_asset",
            files={"file": (path.name, content, content_type)},
        )
        return AssetUploadResponse.model_validate(payload)

    async def get_asset_status(self, job_key: str) -> AssetStatusResponse:
        payload = await self._request(
            "GET",
            f"/api/v1/profile/me/assets/status/{job_key}/",
            operation="get_asset_status",
        )
        return AssetStatusResponse.model_validate(payload)

    async def get_profile(self) -> IdentityProfile:
        payload = await self._request("GET", "/api/v1/profile/me/", operation="get_profile")
        return ProfileResponse.model_validate(payload).to_domain()

    async def update_profile(self, fields: dict[str, str]) -> None:
        await self._request(
            "PATCH",
            "/api/v1/profile/me/",
            operation="update_profile",
            json=profile_patch_payload(fields),
        )

    async def add_email(self, address: str) -> None:
        await self._request(
            "POST",
            "/api/v1/auth/user/email/create/",
            operation="add_email",
            json={"email_address": address},
        )

    async def checkin(self, request: CheckinRequest) -> CheckinRecord:
        operator_code = request.operator_code or self._credentials.operator_code
        if not operator_code:
            raise CheckinApiError(f"No operator code for booking {request.booking_code}")
        body = checkin_payload(request)
        payload = await self._request(
            "POST",
            f"/api/v1/stay/operators/{operator_code}/checkin/",
            operation="checkin",
            json=body,
        )
        record_id = payload.get("id") if isinstance(payload, dict) else None
        return CheckinRecord(
            booking_code=request.booking_code,
            record_id=str(record_id) if record_id is not None else None,
            payload=payload if isinstance(payload, dict) else {},
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        json: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
    ) -> Any:
        headers = {}
        if self._correlation_id:
            headers["X-Correlation-ID"] = self._correlation_id
        retries = self._max_retries if method in RETRYABLE_METHODS else 0

        for attempt in range(retries + 1):
            try:
                resp = await self._client.request(method, path, json=json, files=files, headers=headers)
            except httpx.HTTPError as exc:
                if attempt >= retries:
                    raise
                await self._sleep_before_retry(attempt, retry_after=None)
                self._logger.warning(
                    "checkin_api_retry_network_error",
                    error=str(exc),
                    attempt=attempt + 1,
                    operation=operation,
                    correlation_id=self._correlation_id,
                )
                continue

            if resp.status_code == 429 and attempt < retries:
                retry_after = self._parse_retry_after(resp.headers.get("Retry-After"))
                await self._sleep_before_retry(attempt, retry_after=retry_after)
                self._logger.warning(
                    "checkin_api_retry_rate_limited",
                    attempt=attempt + 1,
                    operation=operation,
                    correlation_id=self._correlation_id,
                    retry_after_seconds=retry_after,
                )
                continue

            if 500 <= resp.status_code <= 599 and attempt < retries:
                await self._sleep_before_retry(attempt, retry_after=None)
                self._logger.warning(
                    "checkin_api_retry_server_error",
                    attempt=attempt + 1,
                    operation=operation,
                    correlation_id=self._correlation_id,
                    status_code=resp.status_code,
                )
                continue

            if resp.is_error:
                self._logger.warning(
                    "checkin_api_request_failed",
                    operation=operation,
                    status_code=resp.status_code,
                    correlation_id=self._correlation_id,
                )
                raise CheckinApiError(
                    f"{operation} failed with HTTP {resp.status_code}",
                    status_code=resp.status_code,
                )

            payload = resp.json() if resp.content else {}
            if isinstance(payload, dict) and payload.get("error"):
                raise CheckinApiError(f"Check-in API error: {payload['error']}", status_code=resp.status_code)

            self._logger.info(
                "checkin_api_request_success",
                operation=operation,
                method=method,
                correlation_id=self._correlation_id,
                payload=self._mask_payload(json) if json else None,
            )
            return payload

        raise RuntimeError("Unreachable retry loop end")

    async def _sleep_before_retry(self, attempt: int, *, retry_after: float | None) -> None:
        if retry_after is not None:
            await asyncio.sleep(max(0.0, retry_after))
            return
        base = min(self._backoff_max_seconds, self._backoff_base_seconds * (2**attempt))
        jitter = random.uniform(0.0, base / 4 if base > 0 else 0.001)
        await asyncio.sleep(min(self._backoff_max_seconds, base + jitter))

    @staticmethod
    def _parse_retry_after(value: str | None) -> float | None:
        if value is None:
            return None
        try:
            return float(value)
        except ValueError:
            return None

    @staticmethod
    def _mask_payload(payload: dict[str, Any]) -> dict[str, Any]:
        masked = dict(payload)
        if "email_address" in masked:
            masked["email_address"] = mask_email(masked["email_address"])
        for name in ("date_of_birth", "address"):
            if name in masked:
                masked[name] = "***"
        return masked
