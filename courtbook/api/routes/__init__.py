from . import bookings, misc

__all__ = ["bookings", "misc"]
