from __future__ import annotations

from typing import Protocol
from uuid import uuid4

import httpx
import structlog
from aiogram.fsm.context import FSMContext

from .document_store import IdentityDocumentStore
from .exceptions import CheckinApiError
from .models import DocumentTypeCatalog, IdentityProfile, Reservation
from .poller import AssetStatusSource, DocumentValidationPoller
from .settings import CheckinSettings
from .state_machine import CaptureProvider, ProfileWriter, StepStateMachine
from .submitter import CheckinGateway, CheckinSubmitter
from .upload import AssetGateway, UploadCoordinator
from .validators import EmailDebouncer


class CheckinApi(AssetGateway, AssetStatusSource, CheckinGateway, ProfileWriter, Protocol):
    async def get_reservation(self, booking_code: str) -> Reservation: ...

    async def get_document_types(
        self,
        *,
        default_front_type_id: int = 116,
        default_back_type_id: int = 117,
    ) -> DocumentTypeCatalog: ...


def build_wizard(
    api: CheckinApi,
    state: FSMContext,
    reservation: Reservation,
    catalog: DocumentTypeCatalog,
    *,
    settings: CheckinSettings | None = None,
    capture_provider: CaptureProvider | None = None,
    correlation_id: str | None = None,
) -> StepStateMachine:
    settings = settings or CheckinSettings()
    store = IdentityDocumentStore(catalog=catalog)
    poller = DocumentValidationPoller(
        api=api,
        base_delay_seconds=settings.poll_base_delay_seconds,
        delay_increment_seconds=settings.poll_delay_increment_seconds,
    )
    coordinator = UploadCoordinator(
        store=store,
        api=api,
        poller=poller,
        max_poll_attempts=settings.max_poll_attempts,
        technical_error_after=settings.upload_failures_before_technical_error,
    )
    return StepStateMachine(
        state=state,
        reservation=reservation,
        coordinator=coordinator,
        submitter=CheckinSubmitter(api=api),
        profile_api=api,
        capture_provider=capture_provider,
        email_debouncer=EmailDebouncer(quiet_period=settings.email_debounce_seconds),
        default_arrival_hour=settings.default_arrival_hour,
        correlation_id=correlation_id or str(uuid4()),
    )


async def start_checkin(
    api: CheckinApi,
    booking_code: str,
    state: FSMContext,
    *,
    settings: CheckinSettings | None = None,
    capture_provider: CaptureProvider | None = None,
    correlation_id: str | None = None,
) -> StepStateMachine:
    """Loads the booking, document types and profile, then opens the first step.

    Raises ``ReservationNotFoundError`` for an unknown booking code.
    """
    settings = settings or CheckinSettings()
    correlation_id = correlation_id or str(uuid4())
    logger = structlog.get_logger("checkin.wizard").bind(booking_code=booking_code, correlation_id=correlation_id)

    reservation = await api.get_reservation(booking_code)
    try:
        catalog = await api.get_document_types(
            default_front_type_id=settings.default_front_type_id,
            default_back_type_id=settings.default_back_type_id,
        )
    except (httpx.HTTPError, CheckinApiError) as exc:
        logger.warning("document_types_unavailable", error=str(exc))
        catalog = DocumentTypeCatalog(
            default_front_type_id=settings.default_front_type_id,
            default_back_type_id=settings.default_back_type_id,
        )
    profile: IdentityProfile = await api.get_profile()

    wizard = build_wizard(
        api,
        state,
        reservation,
        catalog,
        settings=settings,
        capture_provider=capture_provider,
        correlation_id=correlation_id,
    )
    step = await wizard.initialize(profile)
    logger.info("checkin_started", step=step.kind, assets=len(profile.assets))
    return wizard
