from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import time
from typing import Any, Coroutine, Protocol
from uuid import uuid4

import httpx
import structlog
from aiogram.fsm.context import FSMContext

from .document_store import IdentityDocumentStore
from .exceptions import (
    CheckinApiError,
    DocumentValidationError,
    SubmissionError,
    TransitionRefusedError,
    UploadFailure,
    WizardFinishedError,
)
from .fsm_states import STEP_STATES
from .logging import mask_email
from .models import (
    ArrivalSchedule,
    ArrivalScheduleStep,
    CaptureMode,
    CaptureOutcome,
    CaptureSource,
    DocumentCaptureStep,
    DocumentSide,
    DoneStep,
    IdentityProfile,
    NavigationResult,
    PersonalInfo,
    PersonalInfoStep,
    RecoveryAffordance,
    Reservation,
    SubmitOutcome,
    WizardStep,
)
from .submitter import CheckinSubmitter
from .upload import UploadCoordinator
from .validators import (
    ArrivalInfoValidator,
    EmailDebouncer,
    EmailValidity,
    PersonalInfoCheck,
    PersonalInfoValidator,
    is_profile_complete,
)

PROFILE_FIELDS = ("first_name", "last_name", "gender", "birth_date", "address", "country")


class CaptureProvider(Protocol):
    """Opens the camera or the gallery; ``None`` means the user cancelled."""

    async def capture(self, side: DocumentSide, source: CaptureSource) -> str | None: ...


class ProfileWriter(Protocol):
    async def update_profile(self, fields: dict[str, str]) -> None: ...

    async def add_email(self, address: str) -> None: ...


@dataclass
class StepStateMachine:
    """Top-level controller of one check-in wizard instance.

    The active step is mirrored into the aiogram FSM context so the chat
    front-end routes messages by it.
    """

    state: FSMContext
    reservation: Reservation
    coordinator: UploadCoordinator
    submitter: CheckinSubmitter
    profile_api: ProfileWriter
    capture_provider: CaptureProvider | None = None
    email_debouncer: EmailDebouncer = field(default_factory=EmailDebouncer)
    default_arrival_hour: int = 11
    correlation_id: str = field(default_factory=lambda: str(uuid4()))

    def __post_init__(self) -> None:
        self._step: WizardStep = PersonalInfoStep()
        self._epoch = 0
        self._initialized = False
        self._profile = IdentityProfile()
        self._personal = PersonalInfo()
        self._arrival = ArrivalSchedule(arrival_time=time(self.default_arrival_hour, 0))
        self._background: set[asyncio.Task[Any]] = set()
        self._logger = structlog.get_logger("checkin.wizard").bind(
            correlation_id=self.correlation_id,
            booking_code=self.reservation.code,
        )

    @property
    def step(self) -> WizardStep:
        return self._step

    @property
    def profile(self) -> IdentityProfile:
        return self._profile

    @property
    def store(self) -> IdentityDocumentStore:
        return self.coordinator.store

    @property
    def is_done(self) -> bool:
        return isinstance(self._step, DoneStep)

    @property
    def personal_info(self) -> PersonalInfo:
        return self._personal.model_copy()

    @property
    def arrival(self) -> ArrivalSchedule:
        return self._arrival.model_copy()

    @property
    def known_email(self) -> str | None:
        return self._profile.email

    @property
    def checkin_email(self) -> str | None:
        return self._personal.email or self._profile.email

    def personal_info_check(self) -> PersonalInfoCheck:
        return PersonalInfoValidator.check(
            self._personal,
            known_email=self.known_email,
            email_validity=self.email_debouncer.status(),
        )

    def arrival_is_valid(self) -> bool:
        return ArrivalInfoValidator.is_valid(self._arrival)

    async def initialize(self, profile: IdentityProfile) -> WizardStep:
        if self._initialized:
            return self._step
        self._initialized = True
        self._profile = profile
        self._personal = profile.personal_info()
        self.coordinator.sync_profile(profile)

        if self.store.document_complete and is_profile_complete(profile):
            await self._enter(ArrivalScheduleStep())
        else:
            await self._enter(PersonalInfoStep())
        return self._step

    def update_personal_info(self, **fields: str | None) -> PersonalInfo:
        self._ensure_not_done()
        email = fields.pop("email", None)
        self._personal = PersonalInfo.model_validate({**self._personal.model_dump(), **fields})
        if email is not None:
            self.edit_email(email)
        return self.personal_info

    def edit_email(self, address: str) -> EmailValidity:
        self._ensure_not_done()
        self._personal = self._personal.model_copy(update={"email": address})
        self.email_debouncer.edit(address)
        return self.email_debouncer.status()

    async def complete_personal_info(self) -> WizardStep:
        self._ensure_step(PersonalInfoStep)
        check = self.personal_info_check()
        if not check.is_valid:
            self._logger.info("personal_info_refused", missing=list(check.missing_fields), email=check.email.value)
            raise TransitionRefusedError(f"Personal info is incomplete: {', '.join(check.missing_fields)}")

        self._save_profile(check)
        await self._enter(self._document_step())
        return self._step

    async def edit_personal_info(self) -> WizardStep:
        self._ensure_step(ArrivalScheduleStep)
        await self._enter(PersonalInfoStep())
        return self._step

    async def review_documents(self) -> WizardStep:
        self._ensure_step(ArrivalScheduleStep)
        await self._enter(DocumentCaptureStep(side=DocumentSide.FRONT, mode=CaptureMode.PREVIEW))
        return self._step

    async def submit_capture(self, side: DocumentSide, file_path: str, source: CaptureSource) -> CaptureOutcome:
        current = self._ensure_step(DocumentCaptureStep)
        self._ensure_side_reachable(side)
        if current.side is not side:
            await self._enter(current.model_copy(update={"side": side}))

        epoch = self._epoch
        try:
            await self.coordinator.submit_capture(side, file_path, source)
        except UploadFailure as exc:
            return self._capture_outcome(side, epoch, succeeded=False, affordance=exc.affordance, message=str(exc))
        except DocumentValidationError as exc:
            return self._capture_outcome(side, epoch, succeeded=False, affordance=exc.affordance, message=exc.message)
        except WizardFinishedError:
            self._logger.info("capture_result_ignored", side=side.value, succeeded=False, step=self._step.kind)
            return CaptureOutcome(step=self._step, side=side, succeeded=False, stale=True)

        if epoch != self._epoch:
            return self._capture_outcome(side, epoch, succeeded=True)
        await self._advance_after_capture(side)
        return CaptureOutcome(step=self._step, side=side, succeeded=True)

    async def request_recapture(self, side: DocumentSide, source: CaptureSource) -> CaptureOutcome:
        """Retake (camera) or reupload (gallery) one side of the document."""
        current = self._ensure_step(DocumentCaptureStep)
        self._ensure_side_reachable(side)
        if self.capture_provider is None:
            raise TransitionRefusedError("No capture provider is configured")

        self.coordinator.discard_capture(side)
        await self._enter(DocumentCaptureStep(side=side, mode=current.mode))
        file_path = await self.capture_provider.capture(side, source)
        if not file_path:
            self._logger.info("capture_cancelled", side=side.value, source=source.value)
            return CaptureOutcome(step=self._step, side=side, succeeded=False)
        return await self.submit_capture(side, file_path, source)

    async def confirm_document(self) -> WizardStep:
        current = self._ensure_step(DocumentCaptureStep)
        if not self.store.front_validated:
            raise TransitionRefusedError("Front side of the document is not validated")
        if current.side is DocumentSide.FRONT and self.store.requires_back:
            await self._enter(DocumentCaptureStep(side=DocumentSide.BACK, mode=current.mode))
        elif self.store.document_complete:
            await self._enter(ArrivalScheduleStep())
        else:
            raise TransitionRefusedError("Back side of the document is missing")
        return self._step

    def update_arrival(self, **fields: Any) -> ArrivalSchedule:
        self._ensure_not_done()
        self._arrival = ArrivalSchedule.model_validate({**self._arrival.model_dump(), **fields})
        return self.arrival

    async def finish_checkin(self) -> SubmitOutcome:
        self._ensure_step(ArrivalScheduleStep)
        if not self.arrival_is_valid():
            raise TransitionRefusedError("Arrival details are incomplete")
        if not self.store.document_complete:
            raise TransitionRefusedError("Identity document is not complete")
        if any(self.store.is_uploading(side) for side in DocumentSide):
            raise TransitionRefusedError("A document upload is still in progress")

        request = self.submitter.build_request(self.reservation, self._arrival, self.checkin_email)
        try:
            record = await self.submitter.submit(request)
        except SubmissionError as exc:
            return SubmitOutcome(step=self._step, affordance=RecoveryAffordance.RESUBMIT, message=str(exc))
        if record is None:
            return SubmitOutcome(step=self._step, suppressed=True)

        await self._enter(DoneStep(record=record))
        self.store.release()
        return SubmitOutcome(step=self._step, record=record)

    async def go_back(self) -> NavigationResult:
        step = self._step
        if isinstance(step, DocumentCaptureStep) and step.mode is CaptureMode.PREVIEW:
            await self._enter(ArrivalScheduleStep())
            return NavigationResult.STAY
        self._logger.info("checkin_exited", step=step.kind)
        return NavigationResult.EXIT

    async def flush(self) -> None:
        """Waits for background profile and email updates."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _document_step(self) -> WizardStep:
        if not self.store.front_validated:
            return DocumentCaptureStep(side=DocumentSide.FRONT)
        if self.store.requires_back and not self.store.back_present:
            return DocumentCaptureStep(side=DocumentSide.BACK)
        return ArrivalScheduleStep()

    async def _advance_after_capture(self, side: DocumentSide) -> None:
        current = self._step
        mode = current.mode if isinstance(current, DocumentCaptureStep) else CaptureMode.EDIT
        if side is DocumentSide.FRONT and self.store.requires_back and not self.store.back_present:
            await self._enter(DocumentCaptureStep(side=DocumentSide.BACK, mode=mode))
        elif self.store.document_complete:
            await self._enter(ArrivalScheduleStep())

    def _capture_outcome(
        self,
        side: DocumentSide,
        epoch: int,
        *,
        succeeded: bool,
        affordance: RecoveryAffordance | None = None,
        message: str | None = None,
    ) -> CaptureOutcome:
        if epoch != self._epoch:
            self._logger.info("capture_result_ignored", side=side.value, succeeded=succeeded, step=self._step.kind)
            return CaptureOutcome(step=self._step, side=side, succeeded=succeeded, stale=True)
        return CaptureOutcome(step=self._step, side=side, succeeded=succeeded, affordance=affordance, message=message)

    def _save_profile(self, check: PersonalInfoCheck) -> None:
        changed = {
            name: value
            for name in PROFILE_FIELDS
            if (value := getattr(self._personal, name)) and value != getattr(self._profile, name)
        }
        if changed:
            self._spawn(self._patch_profile(changed))
        if check.email_is_fresh and check.email is EmailValidity.VALID and self._personal.email:
            self._spawn(self._add_email(self._personal.email))

    async def _patch_profile(self, fields: dict[str, str]) -> None:
        try:
            await self.profile_api.update_profile(fields)
        except (httpx.HTTPError, CheckinApiError) as exc:
            self._logger.warning("profile_update_failed", fields=sorted(fields), error=str(exc))
            return
        self._profile = self._profile.model_copy(update=fields)
        self._logger.info("profile_updated", fields=sorted(fields))

    async def _add_email(self, address: str) -> None:
        try:
            await self.profile_api.add_email(address)
        except (httpx.HTTPError, CheckinApiError) as exc:
            self._logger.warning("email_update_failed", email=mask_email(address), error=str(exc))
            return
        self._profile = self._profile.model_copy(update={"email": address})
        self._logger.info("email_updated", email=mask_email(address))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _enter(self, step: WizardStep) -> None:
        self._step = step
        self._epoch += 1
        await self.state.set_state(STEP_STATES[step.kind])
        await self.state.update_data(
            checkin_step=step.model_dump(mode="json"),
            correlation_id=self.correlation_id,
            booking_code=self.reservation.code,
        )
        self._logger.info(
            "checkin_step_entered",
            step=step.kind,
            side=getattr(step, "side", None),
            mode=getattr(step, "mode", None),
        )

    def _ensure_side_reachable(self, side: DocumentSide) -> None:
        if side is DocumentSide.BACK and not self.store.front_validated:
            raise TransitionRefusedError("Back side is unavailable until the front side is validated")

    def _ensure_step(self, expected: type) -> Any:
        self._ensure_not_done()
        if not isinstance(self._step, expected):
            raise TransitionRefusedError(f"Operation requires step {expected.__name__}, current step is {self._step.kind}")
        return self._step

    def _ensure_not_done(self) -> None:
        if isinstance(self._step, DoneStep):
            raise WizardFinishedError("Check-in is already finished")
