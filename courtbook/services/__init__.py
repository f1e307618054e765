from . import (
    authorization,
    booking_service,
    booking_store,
    claimant_service,
    discount_service,
    notification_service,
    pricing_service,
    survey_service,
)
__all__ = [
    "authorization",
    "booking_service",
    "booking_store",
    "claimant_service",
    "discount_service",
    "notification_service",
    "pricing_service",
    "survey_service",
]
