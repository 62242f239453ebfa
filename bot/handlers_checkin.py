from __future__ import annotations

import asyncio
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import structlog
from aiogram import Bot, F, Router
from aiogram.filters import CommandObject, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.types import Message, ReplyKeyboardMarkup, ReplyKeyboardRemove
from pydantic import ValidationError

from bot.keyboards.checkin_kb import (
    ABANDON_TEXT,
    BACK_TEXT,
    CONTINUE_TEXT,
    EDIT_INFO_TEXT,
    FINISH_TEXT,
    LOOKS_GOOD_TEXT,
    RESUBMIT_TEXT,
    RETAKE_TEXT,
    REVIEW_DOCS_TEXT,
    REUPLOAD_TEXT,
    affordance_keyboard,
    arrival_keyboard,
    document_keyboard,
    personal_info_keyboard,
    remove_keyboard,
)
from checkin_engine.exceptions import CheckinError, ReservationNotFoundError, TransitionRefusedError
from checkin_engine.fsm_states import CheckinFSM
from checkin_engine.guest_summary import summarize_checkins
from checkin_engine.models import (
    ArrivalScheduleStep,
    CaptureMode,
    CaptureOutcome,
    CaptureSource,
    DocumentCaptureStep,
    DocumentSide,
    DoneStep,
    NavigationResult,
    PersonalInfoStep,
    RecoveryAffordance,
    SubmitOutcome,
)
from checkin_engine.settings import CheckinSettings
from checkin_engine.state_machine import StepStateMachine
from checkin_engine.wizard import CheckinApi, start_checkin

logger = structlog.get_logger("checkin.bot")

FIELD_ALIASES = {
    "dob": "birth_date",
    "date_of_birth": "birth_date",
    "email_address": "email",
    "from": "coming_from",
    "next": "next_destination",
    "time": "arrival_time",
}

AFFORDANCE_TEXT = {
    RecoveryAffordance.RETRY_UPLOAD: "Upload failed. Retake the photo or reupload it from your gallery.",
    RecoveryAffordance.TECHNICAL_ERROR: "We are facing a technical issue with ID uploads. Please try again later.",
    RecoveryAffordance.VALIDATION_TIMEOUT: "ID validation is taking too long. Please retake or reupload the photo.",
    RecoveryAffordance.RESUBMIT: "Check-in could not be submitted. Please try again.",
}


def parse_fields(text: str) -> dict[str, str]:
    """Reads ``field: value`` lines; lines without a colon are ignored."""
    fields: dict[str, str] = {}
    for line in text.splitlines():
        name, sep, value = line.partition(":")
        if not sep:
            continue
        key = name.strip().lower().replace(" ", "_")
        fields[FIELD_ALIASES.get(key, key)] = value.strip()
    return fields


@dataclass
class ChatPhotoCapture:
    """Capture provider fed by the next photo the guest sends to the chat."""

    timeout_seconds: float = 300.0
    _pending: asyncio.Future | None = None

    async def capture(self, side: DocumentSide, source: CaptureSource) -> str | None:
        self._pending = asyncio.get_running_loop().create_future()
        try:
            return await asyncio.wait_for(self._pending, self.timeout_seconds)
        except asyncio.TimeoutError:
            return None
        finally:
            self._pending = None

    def deliver(self, file_path: str) -> bool:
        if self._pending is None or self._pending.done():
            return False
        self._pending.set_result(file_path)
        return True

    def cancel(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.set_result(None)


@dataclass
class CheckinSession:
    wizard: StepStateMachine
    capture: ChatPhotoCapture
    files: list[str] = field(default_factory=list)

    def close(self) -> None:
        self.capture.cancel()
        for path in self.files:
            Path(path).unlink(missing_ok=True)
        self.files.clear()


DONE_SUMMARY_KEY = "checkin_summary"
DONE_FALLBACK_TEXT = "You finished web check-in."


def done_message(wizard: StepStateMachine) -> str:
    summary = summarize_checkins(wizard.reservation, wizard.profile.mobile, checked_in=True)
    return "\n".join(filter(None, [summary.finished_message, summary.reminder_message])) or DONE_FALLBACK_TEXT


async def finished_reply(state: FSMContext) -> str:
    """Answer for a chat whose wizard already finished; needs no live session."""
    data = await state.get_data()
    return data.get(DONE_SUMMARY_KEY) or DONE_FALLBACK_TEXT


@dataclass
class SessionRegistry:
    """Live wizard sessions keyed by chat id. Finished wizards are dropped."""

    _sessions: dict[int, CheckinSession] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, chat_id: int) -> CheckinSession | None:
        return self._sessions.get(chat_id)

    def open(self, chat_id: int, session: CheckinSession) -> None:
        self._sessions[chat_id] = session

    async def end(self, chat_id: int) -> None:
        session = self._sessions.pop(chat_id, None)
        if session is not None:
            await session.wizard.flush()
            session.close()

    async def finish(self, chat_id: int, state: FSMContext) -> str:
        session = self._sessions.pop(chat_id)
        text = done_message(session.wizard)
        await state.update_data({DONE_SUMMARY_KEY: text})
        await session.wizard.flush()
        session.close()
        return text


def step_prompt(wizard: StepStateMachine) -> tuple[str, ReplyKeyboardMarkup | ReplyKeyboardRemove]:
    step = wizard.step
    if isinstance(step, PersonalInfoStep):
        check = wizard.personal_info_check()
        missing = ", ".join(check.missing_fields) or "nothing"
        return (
            "Send your details as `field: value` lines "
            "(first_name, last_name, gender, birth_date, address, email).\n"
            f"Missing: {missing}",
            personal_info_keyboard(),
        )
    if isinstance(step, DocumentCaptureStep):
        return (f"Send a photo of the {step.side.value} side of your ID.", document_keyboard(step.mode))
    if isinstance(step, ArrivalScheduleStep):
        arrival = wizard.arrival
        return (
            "When do you arrive? Send `arrival_time: HH:MM`, `coming_from: ...` and `next_destination: ...`.\n"
            f"Arrival: {arrival.date.isoformat()} {arrival.arrival_time.strftime('%H:%M')}",
            arrival_keyboard(),
        )
    return (DONE_FALLBACK_TEXT, remove_keyboard())


def capture_reply(outcome: CaptureOutcome) -> tuple[str, ReplyKeyboardMarkup | ReplyKeyboardRemove] | None:
    if outcome.stale:
        return None
    mode = outcome.step.mode if isinstance(outcome.step, DocumentCaptureStep) else CaptureMode.EDIT
    if outcome.affordance is RecoveryAffordance.VALIDATION_MESSAGE:
        return (outcome.message or "ID validation failed", affordance_keyboard(outcome.affordance, mode))
    if outcome.affordance is not None:
        return (AFFORDANCE_TEXT[outcome.affordance], affordance_keyboard(outcome.affordance, mode))
    if not outcome.succeeded:
        return ("No photo received.", document_keyboard(mode))
    return None


def create_checkin_router(
    api: CheckinApi,
    *,
    settings: CheckinSettings | None = None,
    capture_dir: str | None = None,
    capture_timeout_seconds: float = 300.0,
    sessions: SessionRegistry | None = None,
) -> Router:
    router = Router(name="checkin")
    settings = settings or CheckinSettings()
    sessions = sessions if sessions is not None else SessionRegistry()

    async def answer_step(message: Message, wizard: StepStateMachine) -> None:
        if isinstance(wizard.step, DoneStep):
            await message.answer(done_message(wizard), reply_markup=remove_keyboard())
            return
        text, keyboard = step_prompt(wizard)
        await message.answer(text, reply_markup=keyboard)

    async def answer_capture(message: Message, session: CheckinSession, outcome: CaptureOutcome) -> None:
        reply = capture_reply(outcome)
        if reply is None:
            if not outcome.stale:
                await answer_step(message, session.wizard)
            return
        text, keyboard = reply
        await message.answer(text, reply_markup=keyboard)

    async def end_session(message: Message, state: FSMContext) -> None:
        await sessions.end(message.chat.id)
        await state.clear()

    async def current_session(message: Message, state: FSMContext) -> CheckinSession | None:
        session = sessions.get(message.chat.id)
        if session is None:
            await state.clear()
            await message.answer("Your check-in session expired. Send /start <booking code> again.")
        return session

    async def download_photo(message: Message, bot: Bot, session: CheckinSession) -> tuple[str, CaptureSource]:
        if message.photo:
            file_id, source, suffix = message.photo[-1].file_id, CaptureSource.CAMERA, ".jpg"
        else:
            file_id, source = message.document.file_id, CaptureSource.GALLERY
            suffix = Path(message.document.file_name or "capture.jpg").suffix or ".jpg"
        fd, path = tempfile.mkstemp(prefix="checkin_", suffix=suffix, dir=capture_dir or None)
        os.close(fd)
        await bot.download(file_id, destination=path)
        session.files.append(path)
        return path, source

    @router.message(CommandStart(deep_link=True))
    async def cmd_start(message: Message, state: FSMContext, command: CommandObject) -> None:
        await end_session(message, state)
        booking_code = (command.args or "").strip()
        capture = ChatPhotoCapture(timeout_seconds=capture_timeout_seconds)
        try:
            wizard = await start_checkin(api, booking_code, state, settings=settings, capture_provider=capture)
        except ReservationNotFoundError:
            await message.answer(f"Booking {booking_code} was not found.")
            return
        except CheckinError as exc:
            logger.warning("checkin_start_failed", booking_code=booking_code, error=str(exc))
            await message.answer("Could not load your booking. Please try again later.")
            return
        sessions.open(message.chat.id, CheckinSession(wizard=wizard, capture=capture))
        await answer_step(message, wizard)

    @router.message(CommandStart())
    async def cmd_start_without_code(message: Message) -> None:
        await message.answer("Send /start <booking code> to begin web check-in.")

    @router.message(F.text == ABANDON_TEXT)
    async def on_abandon(message: Message, state: FSMContext) -> None:
        await end_session(message, state)
        await message.answer("Check-in abandoned.", reply_markup=remove_keyboard())

    @router.message(CheckinFSM.PERSONAL_INFO, F.text)
    async def on_personal_info(message: Message, state: FSMContext) -> None:
        session = await current_session(message, state)
        if session is None:
            return
        wizard = session.wizard
        if message.text == CONTINUE_TEXT:
            try:
                await wizard.complete_personal_info()
            except TransitionRefusedError as exc:
                await message.answer(str(exc), reply_markup=personal_info_keyboard())
                return
            await answer_step(message, wizard)
            return
        try:
            wizard.update_personal_info(**parse_fields(message.text or ""))
        except ValidationError:
            await message.answer("Unknown field. Use first_name, last_name, gender, birth_date, address, country or email.")
            return
        await answer_step(message, wizard)

    @router.message(CheckinFSM.DOCUMENT_CAPTURE, F.photo | F.document)
    async def on_document_photo(message: Message, state: FSMContext, bot: Bot) -> None:
        session = await current_session(message, state)
        if session is None:
            return
        path, source = await download_photo(message, bot, session)
        if session.capture.deliver(path):
            return
        step = session.wizard.step
        side = step.side if isinstance(step, DocumentCaptureStep) else DocumentSide.FRONT
        await message.answer("Checking your ID, this may take a minute...")
        try:
            outcome = await session.wizard.submit_capture(side, path, source)
        except TransitionRefusedError as exc:
            await message.answer(str(exc))
            return
        await answer_capture(message, session, outcome)

    @router.message(CheckinFSM.DOCUMENT_CAPTURE, F.text.in_({RETAKE_TEXT, REUPLOAD_TEXT}))
    async def on_recapture(message: Message, state: FSMContext) -> None:
        session = await current_session(message, state)
        if session is None:
            return
        step = session.wizard.step
        side = step.side if isinstance(step, DocumentCaptureStep) else DocumentSide.FRONT
        source = CaptureSource.CAMERA if message.text == RETAKE_TEXT else CaptureSource.GALLERY
        await message.answer(f"Send a new photo of the {side.value} side.")
        try:
            outcome = await session.wizard.request_recapture(side, source)
        except TransitionRefusedError as exc:
            await message.answer(str(exc))
            return
        await answer_capture(message, session, outcome)

    @router.message(CheckinFSM.DOCUMENT_CAPTURE, F.text == LOOKS_GOOD_TEXT)
    async def on_confirm_document(message: Message, state: FSMContext) -> None:
        session = await current_session(message, state)
        if session is None:
            return
        try:
            await session.wizard.confirm_document()
        except TransitionRefusedError as exc:
            await message.answer(str(exc))
            return
        await answer_step(message, session.wizard)

    @router.message(F.text == BACK_TEXT)
    async def on_back(message: Message, state: FSMContext) -> None:
        session = await current_session(message, state)
        if session is None:
            return
        if await session.wizard.go_back() is NavigationResult.EXIT:
            await end_session(message, state)
            await message.answer("Check-in closed.", reply_markup=remove_keyboard())
            return
        await answer_step(message, session.wizard)

    @router.message(CheckinFSM.ARRIVAL_SCHEDULE, F.text.in_({FINISH_TEXT, RESUBMIT_TEXT}))
    async def on_finish(message: Message, state: FSMContext) -> None:
        session = await current_session(message, state)
        if session is None:
            return
        try:
            outcome: SubmitOutcome = await session.wizard.finish_checkin()
        except TransitionRefusedError as exc:
            await message.answer(str(exc), reply_markup=arrival_keyboard())
            return
        if outcome.suppressed:
            return
        if outcome.affordance is not None:
            await message.answer(AFFORDANCE_TEXT[outcome.affordance], reply_markup=affordance_keyboard(outcome.affordance))
            return
        text = await sessions.finish(message.chat.id, state)
        await message.answer(text, reply_markup=remove_keyboard())

    @router.message(CheckinFSM.ARRIVAL_SCHEDULE, F.text == REVIEW_DOCS_TEXT)
    async def on_review_documents(message: Message, state: FSMContext) -> None:
        session = await current_session(message, state)
        if session is None:
            return
        await session.wizard.review_documents()
        await answer_step(message, session.wizard)

    @router.message(CheckinFSM.ARRIVAL_SCHEDULE, F.text == EDIT_INFO_TEXT)
    async def on_edit_personal_info(message: Message, state: FSMContext) -> None:
        session = await current_session(message, state)
        if session is None:
            return
        await session.wizard.edit_personal_info()
        await answer_step(message, session.wizard)

    @router.message(CheckinFSM.ARRIVAL_SCHEDULE, F.text)
    async def on_arrival_fields(message: Message, state: FSMContext) -> None:
        session = await current_session(message, state)
        if session is None:
            return
        try:
            session.wizard.update_arrival(**parse_fields(message.text or ""))
        except ValidationError:
            await message.answer("Could not read that. Use arrival_time: HH:MM, date: YYYY-MM-DD, coming_from, next_destination.")
            return
        await answer_step(message, session.wizard)

    @router.message(CheckinFSM.DONE)
    async def on_done(message: Message, state: FSMContext) -> None:
        await message.answer(await finished_reply(state), reply_markup=remove_keyboard())

    return router
