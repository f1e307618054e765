from datetime import datetime, time
from decimal import Decimal
from enum import Enum as PyEnum
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Time,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base


class DiscountType(str, PyEnum):
    percentage = "percentage"
    fixed_amount = "fixed_amount"


class DiscountConditionType(str, PyEnum):
    promo_code = "promo_code"
    time_based = "time_based"


discount_resources = Table(
    "discount_resources",
    Base.metadata,
    Column("discount_id", ForeignKey("discounts.id", ondelete="CASCADE"), primary_key=True),
    Column("resource_id", ForeignKey("resources.id", ondelete="CASCADE"), primary_key=True),
)


class Discount(Base):
    __tablename__ = "discounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    # NULL means every branch of the tenant
    branch_id: Mapped[int | None] = mapped_column(ForeignKey("branches.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str | None] = mapped_column(String(50), index=True)
    type: Mapped[DiscountType] = mapped_column(Enum(DiscountType))
    value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    condition_type: Mapped[DiscountConditionType] = mapped_column(Enum(DiscountConditionType))
    # 0 = Sunday ... 6 = Saturday
    days_of_week: Mapped[list[int] | None] = mapped_column(JSON)
    start_time: Mapped[time | None] = mapped_column(Time)
    end_time: Mapped[time | None] = mapped_column(Time)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    # Empty means every resource in the discount's scope
    resources = relationship("Resource", secondary=discount_resources)
