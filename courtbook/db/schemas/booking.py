from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, EmailStr, Field

from ..models.booking import BookingSource, BookingStatus


class GuestContact(BaseModel):
    email: EmailStr
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: str | None = Field(default=None, max_length=20)


class BookingCreate(BaseModel):
    resource_id: int = Field(gt=0)
    start_at: datetime
    end_at: datetime
    source: BookingSource = BookingSource.web
    notes: str | None = None
    guest: GuestContact | None = None
    promo_code: str | None = Field(default=None, max_length=50)


class BookingCancel(BaseModel):
    reason: str | None = None


class BookingReject(BaseModel):
    reason: str | None = None


class Booking(BaseModel):
    id: int
    tenant_id: int
    branch_id: int
    resource_id: int
    user_id: int | None = None
    guest_id: int | None = None
    start_at: datetime
    end_at: datetime
    status: BookingStatus
    source: BookingSource
    original_price: Decimal
    total_price: Decimal
    currency: str
    notes: str | None = None
    rejection_reason: str | None = None
    discount_id: int | None = None
    survey_sent: bool = False
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class BookingConfirmed(Booking):
    rejected_count: int


class BookingList(BaseModel):
    data: list[Booking]
    page: int
    limit: int
    total: int
    total_pages: int
