from .document_store import IdentityDocumentStore
from .exceptions import (
    CheckinApiError,
    CheckinError,
    DocumentValidationError,
    ReservationNotFoundError,
    SubmissionError,
    TransitionRefusedError,
    UploadFailure,
    ValidationInFlightError,
    ValidationTimeout,
    WizardFinishedError,
)
from .guest_summary import GuestCheckinSummary, summarize_checkins
from .models import (
    ArrivalSchedule,
    CaptureOutcome,
    CaptureSource,
    CheckinRecord,
    CheckinRequest,
    DocumentSide,
    DocumentTypeCatalog,
    IdentityProfile,
    NavigationResult,
    PersonalInfo,
    RecoveryAffordance,
    Reservation,
    SubmitOutcome,
    ValidationJob,
    ValidationStatus,
)
from .poller import DocumentValidationPoller
from .settings import CheckinSettings
from .state_machine import StepStateMachine
from .submitter import CheckinSubmitter
from .upload import UploadCoordinator
from .validators import ArrivalInfoValidator, EmailDebouncer, PersonalInfoValidator
from .wizard import build_wizard, start_checkin

__all__ = [
    "IdentityDocumentStore",
    "CheckinApiError",
    "CheckinError",
    "DocumentValidationError",
    "ReservationNotFoundError",
    "SubmissionError",
    "TransitionRefusedError",
    "UploadFailure",
    "ValidationInFlightError",
    "ValidationTimeout",
    "WizardFinishedError",
    "GuestCheckinSummary",
    "summarize_checkins",
    "ArrivalSchedule",
    "CaptureOutcome",
    "CaptureSource",
    "CheckinRecord",
    "CheckinRequest",
    "DocumentSide",
    "DocumentTypeCatalog",
    "IdentityProfile",
    "NavigationResult",
    "PersonalInfo",
    "RecoveryAffordance",
    "Reservation",
    "SubmitOutcome",
    "ValidationJob",
    "ValidationStatus",
    "DocumentValidationPoller",
    "CheckinSettings",
    "StepStateMachine",
    "CheckinSubmitter",
    "UploadCoordinator",
    "ArrivalInfoValidator",
    "EmailDebouncer",
    "PersonalInfoValidator",
    "build_wizard",
    "start_checkin",
]
