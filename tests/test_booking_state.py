import pytest

from errors import StateError
from models.booking import ALLOWED_TRANSITIONS, Booking, BookingStatus


def _booking(status):
    return Booking(status=status)


@pytest.mark.parametrize("source, target", [
    (BookingStatus.PENDING, BookingStatus.CONFIRMED),
    (BookingStatus.PENDING, BookingStatus.CANCELLED),
    (BookingStatus.CONFIRMED, BookingStatus.RESCHEDULED),
    (BookingStatus.CONFIRMED, BookingStatus.COMPLETED),
    (BookingStatus.RESCHEDULED, BookingStatus.RESCHEDULED),
    (BookingStatus.RESCHEDULED, BookingStatus.CONFIRMED),
    (BookingStatus.SCHEDULED, BookingStatus.CANCELLED),
])
def test_allowed_transitions(source, target):
    booking = _booking(source)
    booking.transition_to(target)
    assert booking.status == target


@pytest.mark.parametrize("source, target", [
    (BookingStatus.CANCELLED, BookingStatus.CONFIRMED),
    (BookingStatus.CANCELLED, BookingStatus.CANCELLED),
    (BookingStatus.COMPLETED, BookingStatus.CANCELLED),
    (BookingStatus.PENDING, BookingStatus.COMPLETED),
    (BookingStatus.CONFIRMED, BookingStatus.PENDING),
])
def test_forbidden_transitions(source, target):
    booking = _booking(source)
    with pytest.raises(StateError) as info:
        booking.transition_to(target)
    assert info.value.code == "INVALID_TRANSITION"
    assert booking.status == source


def test_terminal_states_have_no_exits():
    for status in BookingStatus.TERMINAL:
        assert ALLOWED_TRANSITIONS[status] == set()


def test_cancel_stamps_cancelled_at():
    booking = _booking(BookingStatus.CONFIRMED)
    booking.transition_to(BookingStatus.CANCELLED)
    assert booking.cancelled_at is not None
    assert not booking.is_occupying
