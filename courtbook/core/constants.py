"""Common application-wide constants."""

from datetime import timedelta

# Name shared by the PostgreSQL exclusion constraint and the SQLite guard triggers
BOOKING_OVERLAP_CONSTRAINT = "booking_no_overlap"

# Reason written on pending bookings rejected because a competing one was confirmed
CASCADE_REJECTION_REASON = "another booking was confirmed for this slot"

# Post-stay survey window, measured back from a booking's end time
SURVEY_COOLDOWN = timedelta(hours=1)
SURVEY_LOOKBACK = timedelta(hours=24)

DEFAULT_PAGE_SIZE = 10
BRANCH_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


__all__ = [
    "BOOKING_OVERLAP_CONSTRAINT",
    "CASCADE_REJECTION_REASON",
    "SURVEY_COOLDOWN",
    "SURVEY_LOOKBACK",
    "DEFAULT_PAGE_SIZE",
    "BRANCH_PAGE_SIZE",
    "MAX_PAGE_SIZE",
]
