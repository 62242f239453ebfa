from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from .models import ArrivalSchedule, IdentityProfile, PersonalInfo

EMAIL_RE = re.compile(r"^\w+([.-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,3})+$")

REQUIRED_PERSONAL_FIELDS = ("first_name", "last_name", "gender", "birth_date", "address")


def is_valid_string(value: str | None) -> bool:
    return isinstance(value, str) and value.strip() != ""


def is_valid_email(value: str | None) -> bool:
    return is_valid_string(value) and EMAIL_RE.match(value or "") is not None


class EmailValidity(str, Enum):
    UNKNOWN = "unknown"
    VALID = "valid"
    INVALID = "invalid"


@dataclass
class EmailDebouncer:
    """Format check that only settles after the input has been quiet for a while.

    Until ``quiet_period`` seconds have passed since the last edit the result is
    ``UNKNOWN``: not yet validated, which callers must not confuse with invalid.
    """

    quiet_period: float = 1.5
    clock: Callable[[], float] = time.monotonic
    _value: str = field(default="", init=False)
    _edited_at: float | None = field(default=None, init=False)

    def edit(self, value: str | None) -> None:
        self._value = value or ""
        self._edited_at = self.clock()

    @property
    def value(self) -> str:
        return self._value

    def remaining(self) -> float:
        if self._edited_at is None:
            return 0.0
        return max(0.0, self.quiet_period - (self.clock() - self._edited_at))

    def status(self) -> EmailValidity:
        if not self._value.strip():
            return EmailValidity.INVALID
        if self.remaining() > 0:
            return EmailValidity.UNKNOWN
        return EmailValidity.VALID if is_valid_email(self._value) else EmailValidity.INVALID


@dataclass(frozen=True)
class PersonalInfoCheck:
    is_valid: bool
    missing_fields: tuple[str, ...]
    email: EmailValidity
    email_is_fresh: bool


class PersonalInfoValidator:
    """Gate for leaving the personal info step."""

    @staticmethod
    def check(info: PersonalInfo, *, known_email: str | None, email_validity: EmailValidity) -> PersonalInfoCheck:
        missing = tuple(name for name in REQUIRED_PERSONAL_FIELDS if not is_valid_string(getattr(info, name)))

        entered = (info.email or "").strip()
        known = (known_email or "").strip()
        fresh = bool(entered) and entered != known
        if fresh:
            email_state = email_validity
        elif known:
            email_state = EmailValidity.VALID
        else:
            email_state = EmailValidity.INVALID
        if email_state is not EmailValidity.VALID:
            missing = missing + ("email",)

        return PersonalInfoCheck(
            is_valid=not missing,
            missing_fields=missing,
            email=email_state,
            email_is_fresh=fresh,
        )

    @classmethod
    def is_valid(cls, info: PersonalInfo, *, known_email: str | None, email_validity: EmailValidity) -> bool:
        return cls.check(info, known_email=known_email, email_validity=email_validity).is_valid


class ArrivalInfoValidator:
    @staticmethod
    def is_valid(schedule: ArrivalSchedule) -> bool:
        return is_valid_string(schedule.coming_from) and is_valid_string(schedule.next_destination)


def is_profile_complete(profile: IdentityProfile) -> bool:
    """Whether the stored profile alone is enough to skip the personal info step."""
    return all(is_valid_string(getattr(profile, name)) for name in REQUIRED_PERSONAL_FIELDS) and is_valid_email(
        profile.email
    )
