from __future__ import annotations

from .models import DocumentSide, RecoveryAffordance


class CheckinError(Exception):
    """Base class for every check-in wizard failure."""


class UploadFailure(CheckinError):
    """Raised when a capture could not be transferred to the asset endpoint."""

    def __init__(self, side: DocumentSide, failure_count: int, affordance: RecoveryAffordance) -> None:
        self.side = side
        self.failure_count = failure_count
        self.affordance = affordance
        super().__init__(f"Upload of {side.value} side failed (attempt {failure_count})")


class DocumentValidationError(CheckinError):
    """Raised when the validation service rejects an uploaded document."""

    affordance = RecoveryAffordance.VALIDATION_MESSAGE

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationTimeout(DocumentValidationError):
    """Raised when a validation job never reached a terminal status."""

    affordance = RecoveryAffordance.VALIDATION_TIMEOUT

    def __init__(self, message: str = "timeout") -> None:
        super().__init__(message)


class ValidationInFlightError(CheckinError):
    """Raised when a second validation job is started while one is running."""


class SubmissionError(CheckinError):
    """Raised when the final check-in request was not accepted."""


class TransitionRefusedError(CheckinError):
    """Raised when a wizard step transition is not allowed."""


class WizardFinishedError(CheckinError):
    """Raised when a finished wizard is asked to change its data."""


class ReservationNotFoundError(CheckinError):
    """Raised when no reservation matches the booking code."""


class CheckinApiError(CheckinError):
    """Raised when the check-in API answers with an error payload or status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
