from .booking import (
    Booking,
    BookingCancel,
    BookingConfirmed,
    BookingCreate,
    BookingList,
    BookingReject,
    GuestContact,
)
