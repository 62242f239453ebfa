from __future__ import annotations

from pydantic import Field

from .models import BookingGuest, FrozenCheckinModel, Reservation


class GuestCheckinSummary(FrozenCheckinModel):
    other_guests: list[BookingGuest] = Field(default_factory=list)
    checked_in_guests: list[BookingGuest] = Field(default_factory=list)
    pending_guests: list[BookingGuest] = Field(default_factory=list)
    self_checked_in: bool = False
    finished_message: str = ""
    reminder_message: str = ""


def _display_name(guest: BookingGuest) -> str:
    return guest.first_name or (guest.name or "").split(" ")[0]


def finished_message(self_checked_in: bool, guests: list[BookingGuest]) -> str:
    names = [_display_name(guest) for guest in guests]
    if not names:
        return "You finished web check-in." if self_checked_in else ""

    if self_checked_in:
        if len(names) == 1:
            return f"You & {names[0]} finished web check-in."
        if len(names) == 2:
            return f"You, {names[0]} & {names[1]} finished web check-in."
        return f"You, {names[0]} & {len(names) - 1} more finished web check-in."

    if len(names) == 1:
        return f"{names[0]} finished web check-in."
    if len(names) == 2:
        return f"{names[0]} & {names[1]} finished web check-in."
    if len(names) == 3:
        return f"{names[0]}, {names[1]} & {names[2]} finished web check-in."
    return f"{names[0]}, {names[1]} & {len(names) - 2} more finished web check-in."


def reminder_message(guests: list[BookingGuest]) -> str:
    names = [_display_name(guest) for guest in guests]
    if not names:
        return ""
    if len(names) == 1:
        return f"Ask {names[0]} to finish web check-in!"
    if len(names) == 2:
        return f"Ask {names[0]} & {names[1]} to finish web check-in!"
    if len(names) == 3:
        return f"Ask {names[0]}, {names[1]} & {names[2]} to finish web check-in!"
    rest = len(names) - 2
    return f"Ask {names[0]}, {names[1]} & {rest} more {'friend' if rest == 1 else 'friends'} to finish web check-in!"


def summarize_checkins(
    reservation: Reservation,
    mobile: str | None,
    *,
    checked_in: bool = False,
) -> GuestCheckinSummary:
    """Who on the booking has finished web check-in, seen from the guest with ``mobile``."""
    checked_mobiles = {entry.mobile for entry in reservation.checkins if entry.mobile}
    others = [guest for guest in reservation.guests if guest.mobile != mobile and guest.name]
    done = [guest for guest in others if guest.mobile in checked_mobiles]
    pending = [guest for guest in others if guest.mobile not in checked_mobiles]
    self_checked_in = checked_in or (mobile is not None and mobile in checked_mobiles)

    return GuestCheckinSummary(
        other_guests=others,
        checked_in_guests=done,
        pending_guests=pending,
        self_checked_in=self_checked_in,
        finished_message=finished_message(self_checked_in, done),
        reminder_message=reminder_message(pending),
    )
