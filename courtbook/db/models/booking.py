from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from sqlalchemy import (
    CHAR,
    DDL,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    event,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base


class BookingStatus(str, PyEnum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"
    completed = "completed"
    no_show = "no_show"
    rejected = "rejected"


class BookingSource(str, PyEnum):
    web = "web"
    app = "app"
    phone = "phone"
    walk_in = "walk_in"


# Statuses that hold a slot; the overlap guard only looks at these
ACTIVE_STATUSES = (BookingStatus.pending, BookingStatus.confirmed)


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) <> (guest_id IS NULL)", name="ck_booking_single_claimant"
        ),
        CheckConstraint("start_at < end_at", name="ck_booking_time_range"),
        Index("ix_booking_resource_window", "resource_id", "start_at", "end_at"),
        Index("ix_booking_tenant_branch", "tenant_id", "branch_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="RESTRICT"))
    branch_id: Mapped[int] = mapped_column(ForeignKey("branches.id", ondelete="RESTRICT"))
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id", ondelete="RESTRICT"))
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), index=True
    )
    guest_id: Mapped[int | None] = mapped_column(
        ForeignKey("guests.id", ondelete="SET NULL"), index=True
    )
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[BookingStatus] = mapped_column(Enum(BookingStatus), default=BookingStatus.pending)
    source: Mapped[BookingSource] = mapped_column(Enum(BookingSource), default=BookingSource.web)
    original_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(CHAR(3), default="CLP")
    notes: Mapped[str | None] = mapped_column(Text)
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    discount_id: Mapped[int | None] = mapped_column(ForeignKey("discounts.id", ondelete="SET NULL"))
    survey_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    tenant = relationship("Tenant")
    branch = relationship("Branch")
    resource = relationship("Resource")
    user = relationship("User")
    guest = relationship("Guest")
    discount = relationship("Discount")
    cancellation = relationship("BookingCancellation", back_populates="booking", uselist=False)

    @property
    def claimant_email(self) -> str | None:
        claimant = self.user or self.guest
        return claimant.email if claimant else None

    @property
    def claimant_name(self) -> str | None:
        claimant = self.user or self.guest
        if not claimant:
            return None
        return f"{claimant.first_name} {claimant.last_name}"


# The no-overlap rule lives in the store so concurrent inserts cannot both
# commit. PostgreSQL gets a gist exclusion constraint; SQLite (local runs and
# tests) gets triggers raising an error under the same name.
_active = "('pending', 'confirmed')"

event.listen(
    Booking.__table__,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    Booking.__table__,
    "after_create",
    DDL(
        "ALTER TABLE bookings ADD CONSTRAINT booking_no_overlap "
        "EXCLUDE USING gist (resource_id WITH =, tstzrange(start_at, end_at, '[)') WITH &&) "
        f"WHERE (status IN {_active})"
    ).execute_if(dialect="postgresql"),
)
event.listen(
    Booking.__table__,
    "after_create",
    DDL(
        "CREATE TRIGGER booking_no_overlap_insert BEFORE INSERT ON bookings "
        f"WHEN NEW.status IN {_active} "
        "BEGIN "
        "SELECT RAISE(ABORT, 'booking_no_overlap') WHERE EXISTS ("
        "SELECT 1 FROM bookings WHERE resource_id = NEW.resource_id "
        f"AND status IN {_active} "
        "AND start_at < NEW.end_at AND end_at > NEW.start_at); "
        "END"
    ).execute_if(dialect="sqlite"),
)
event.listen(
    Booking.__table__,
    "after_create",
    DDL(
        "CREATE TRIGGER booking_no_overlap_update "
        "BEFORE UPDATE OF status, start_at, end_at, resource_id ON bookings "
        f"WHEN NEW.status IN {_active} "
        "BEGIN "
        "SELECT RAISE(ABORT, 'booking_no_overlap') WHERE EXISTS ("
        "SELECT 1 FROM bookings WHERE resource_id = NEW.resource_id AND id <> NEW.id "
        f"AND status IN {_active} "
        "AND start_at < NEW.end_at AND end_at > NEW.start_at); "
        "END"
    ).execute_if(dialect="sqlite"),
)
