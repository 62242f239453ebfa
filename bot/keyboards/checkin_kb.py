from aiogram.types import KeyboardButton, ReplyKeyboardMarkup, ReplyKeyboardRemove

from checkin_engine.models import CaptureMode, RecoveryAffordance

CONTINUE_TEXT = "Continue"
RETAKE_TEXT = "📷 Retake"
REUPLOAD_TEXT = "🖼 Reupload"
LOOKS_GOOD_TEXT = "Looks good"
ABANDON_TEXT = "❌ Abandon check-in"
RESUBMIT_TEXT = "🔁 Resubmit"
FINISH_TEXT = "Finish check-in"
REVIEW_DOCS_TEXT = "Review ID"
EDIT_INFO_TEXT = "Edit personal info"
BACK_TEXT = "⬅ Back"


def _keyboard(rows: list[list[str]]) -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text=text) for text in row] for row in rows],
        resize_keyboard=True,
    )


def personal_info_keyboard() -> ReplyKeyboardMarkup:
    return _keyboard([[CONTINUE_TEXT], [ABANDON_TEXT]])


def document_keyboard(mode: CaptureMode) -> ReplyKeyboardMarkup:
    rows = [[RETAKE_TEXT, REUPLOAD_TEXT], [LOOKS_GOOD_TEXT]]
    if mode is CaptureMode.PREVIEW:
        rows.append([BACK_TEXT])
    rows.append([ABANDON_TEXT])
    return _keyboard(rows)


def arrival_keyboard() -> ReplyKeyboardMarkup:
    return _keyboard([[FINISH_TEXT], [REVIEW_DOCS_TEXT, EDIT_INFO_TEXT], [ABANDON_TEXT]])


def affordance_keyboard(affordance: RecoveryAffordance, mode: CaptureMode = CaptureMode.EDIT) -> ReplyKeyboardMarkup:
    if affordance is RecoveryAffordance.TECHNICAL_ERROR:
        return _keyboard([[ABANDON_TEXT]])
    if affordance is RecoveryAffordance.RESUBMIT:
        return _keyboard([[RESUBMIT_TEXT], [ABANDON_TEXT]])
    return document_keyboard(mode)


def remove_keyboard() -> ReplyKeyboardRemove:
    return ReplyKeyboardRemove()
