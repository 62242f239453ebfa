from datetime import date

import pytest

from checkin_engine.guest_summary import finished_message, reminder_message, summarize_checkins
from checkin_engine.models import BookingCheckin, BookingGuest, Reservation

SELF_MOBILE = "+919800000001"


def _guest(first_name: str, mobile: str) -> BookingGuest:
    return BookingGuest(name=f"{first_name} Guest", first_name=first_name, mobile=mobile)


def _reservation(guests, checked_in_mobiles=()) -> Reservation:
    return Reservation(
        code="ZO-1234",
        checkin=date(2026, 11, 2),
        checkout=date(2026, 11, 5),
        guests=guests,
        checkins=[BookingCheckin(mobile=mobile) for mobile in checked_in_mobiles],
    )


def test_summary_splits_other_guests_by_checkin():
    reservation = _reservation(
        [
            _guest("Asha", SELF_MOBILE),
            _guest("Ravi", "+2"),
            _guest("Meera", "+3"),
            BookingGuest(name=None, mobile="+4"),
        ],
        checked_in_mobiles=[SELF_MOBILE, "+2"],
    )

    summary = summarize_checkins(reservation, SELF_MOBILE)

    assert summary.self_checked_in
    assert [g.first_name for g in summary.other_guests] == ["Ravi", "Meera"]
    assert summary.finished_message == "You & Ravi finished web check-in."
    assert summary.reminder_message == "Ask Meera to finish web check-in!"


def test_summary_without_any_checkin():
    summary = summarize_checkins(_reservation([_guest("Ravi", "+2")]), SELF_MOBILE)

    assert not summary.self_checked_in
    assert summary.finished_message == ""
    assert summary.reminder_message == "Ask Ravi to finish web check-in!"


def test_checked_in_flag_overrides_booking_checkins():
    summary = summarize_checkins(_reservation([]), SELF_MOBILE, checked_in=True)

    assert summary.finished_message == "You finished web check-in."
    assert summary.reminder_message == ""


@pytest.mark.parametrize(
    "names,expected",
    [
        (["Ravi", "Meera"], "You, Ravi & Meera finished web check-in."),
        (["Ravi", "Meera", "Kabir"], "You, Ravi & 2 more finished web check-in."),
    ],
)
def test_finished_message_with_self(names, expected):
    guests = [_guest(name, f"+{i}") for i, name in enumerate(names)]
    assert finished_message(True, guests) == expected


@pytest.mark.parametrize(
    "names,expected",
    [
        (["Ravi"], "Ravi finished web check-in."),
        (["Ravi", "Meera"], "Ravi & Meera finished web check-in."),
        (["Ravi", "Meera", "Kabir"], "Ravi, Meera & Kabir finished web check-in."),
        (["Ravi", "Meera", "Kabir", "Tara"], "Ravi, Meera & 2 more finished web check-in."),
    ],
)
def test_finished_message_without_self(names, expected):
    guests = [_guest(name, f"+{i}") for i, name in enumerate(names)]
    assert finished_message(False, guests) == expected


@pytest.mark.parametrize(
    "names,expected",
    [
        (["Ravi", "Meera"], "Ask Ravi & Meera to finish web check-in!"),
        (["Ravi", "Meera", "Kabir"], "Ask Ravi, Meera & Kabir to finish web check-in!"),
        (["Ravi", "Meera", "Kabir", "Tara"], "Ask Ravi, Meera & 2 more friends to finish web check-in!"),
    ],
)
def test_reminder_message(names, expected):
    guests = [_guest(name, f"+{i}") for i, name in enumerate(names)]
    assert reminder_message(guests) == expected
