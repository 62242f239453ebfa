from datetime import time

import pytest

from checkin_engine.models import ArrivalSchedule, IdentityProfile, PersonalInfo
from checkin_engine.validators import (
    ArrivalInfoValidator,
    EmailDebouncer,
    EmailValidity,
    PersonalInfoValidator,
    is_profile_complete,
    is_valid_email,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _info(**overrides) -> PersonalInfo:
    data = {
        "first_name": "Asha",
        "last_name": "Rao",
        "gender": "female",
        "birth_date": "1994-03-02",
        "address": "12 Lake Road, Pune",
        "email": None,
    }
    data.update(overrides)
    return PersonalInfo(**data)


@pytest.mark.parametrize(
    "value,expected",
    [
        ("guest@example.com", True),
        ("first.last@mail.example.org", True),
        ("guest@example", False),
        ("guest.example.com", False),
        ("", False),
        (None, False),
    ],
)
def test_email_format(value, expected):
    assert is_valid_email(value) is expected


def test_debouncer_reports_unknown_until_quiet_period_passes():
    clock = FakeClock()
    debouncer = EmailDebouncer(quiet_period=1.5, clock=clock)

    debouncer.edit("guest@example.com")
    assert debouncer.status() is EmailValidity.UNKNOWN

    clock.now += 1.0
    assert debouncer.status() is EmailValidity.UNKNOWN
    assert debouncer.remaining() == pytest.approx(0.5)

    clock.now += 0.5
    assert debouncer.status() is EmailValidity.VALID


def test_debouncer_restarts_on_every_edit():
    clock = FakeClock()
    debouncer = EmailDebouncer(quiet_period=1.5, clock=clock)

    debouncer.edit("guest@exa")
    clock.now += 1.0
    debouncer.edit("guest@example.com")
    clock.now += 1.0
    assert debouncer.status() is EmailValidity.UNKNOWN

    clock.now += 0.5
    assert debouncer.status() is EmailValidity.VALID


def test_debouncer_settles_invalid_and_empty_values():
    clock = FakeClock()
    debouncer = EmailDebouncer(quiet_period=1.5, clock=clock)

    assert debouncer.status() is EmailValidity.INVALID
    debouncer.edit("not-an-email")
    clock.now += 2
    assert debouncer.status() is EmailValidity.INVALID


def test_personal_info_gate_accepts_known_email_without_debounce():
    check = PersonalInfoValidator.check(
        _info(email="guest@example.com"),
        known_email="guest@example.com",
        email_validity=EmailValidity.UNKNOWN,
    )

    assert check.is_valid
    assert check.email is EmailValidity.VALID
    assert not check.email_is_fresh


def test_personal_info_gate_falls_back_to_known_email_when_field_is_empty():
    check = PersonalInfoValidator.check(_info(), known_email="guest@example.com", email_validity=EmailValidity.INVALID)

    assert check.is_valid


def test_personal_info_gate_requires_settled_fresh_email():
    info = _info(email="new@example.com")

    pending = PersonalInfoValidator.check(info, known_email="old@example.com", email_validity=EmailValidity.UNKNOWN)
    settled = PersonalInfoValidator.check(info, known_email="old@example.com", email_validity=EmailValidity.VALID)

    assert not pending.is_valid
    assert pending.missing_fields == ("email",)
    assert pending.email_is_fresh
    assert settled.is_valid


def test_personal_info_gate_lists_missing_fields():
    check = PersonalInfoValidator.check(
        _info(last_name="  ", address=None),
        known_email=None,
        email_validity=EmailValidity.INVALID,
    )

    assert not check.is_valid
    assert check.missing_fields == ("last_name", "address", "email")
    assert not PersonalInfoValidator.is_valid(_info(), known_email=None, email_validity=EmailValidity.VALID)


def test_arrival_requires_origin_and_destination():
    assert not ArrivalInfoValidator.is_valid(ArrivalSchedule(arrival_time=time(11, 0)))
    assert not ArrivalInfoValidator.is_valid(ArrivalSchedule(coming_from="Goa", next_destination=" "))
    assert ArrivalInfoValidator.is_valid(ArrivalSchedule(coming_from="Goa", next_destination="Hampi"))


def test_profile_completeness_needs_valid_email():
    profile = IdentityProfile(
        first_name="Asha",
        last_name="Rao",
        gender="female",
        birth_date="1994-03-02",
        address="12 Lake Road, Pune",
        email="guest@example.com",
    )

    assert is_profile_complete(profile)
    assert not is_profile_complete(profile.model_copy(update={"email": "guest@"}))
    assert not is_profile_complete(profile.model_copy(update={"gender": ""}))
