from aiogram.fsm.state import State, StatesGroup


class CheckinFSM(StatesGroup):
    PERSONAL_INFO = State()
    DOCUMENT_CAPTURE = State()
    ARRIVAL_SCHEDULE = State()
    DONE = State()


STEP_STATES = {
    "personal_info": CheckinFSM.PERSONAL_INFO,
    "document_capture": CheckinFSM.DOCUMENT_CAPTURE,
    "arrival_schedule": CheckinFSM.ARRIVAL_SCHEDULE,
    "done": CheckinFSM.DONE,
}
