from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
    )

    op.create_table(
        "branches",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), index=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("timezone", sa.String(length=64), server_default="America/Santiago"),
        sa.Column("requires_approval", sa.Boolean(), server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
    )

    op.create_table(
        "resources",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id", ondelete="CASCADE"), index=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("price_per_hour", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.CHAR(length=3), server_default="CLP"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    role_name = postgresql.ENUM("super_admin", "tenant_admin", "branch_admin", "staff", name="rolename", create_type=False)
    role_name.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "user_roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), index=True),
        sa.Column("role", role_name),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE")),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id", ondelete="CASCADE")),
    )

    op.create_table(
        "guests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="RESTRICT")),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("phone", sa.String(length=20)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "email", name="uq_guest_tenant_email"),
    )

    discount_type = postgresql.ENUM("percentage", "fixed_amount", name="discounttype", create_type=False)
    discount_type.create(op.get_bind(), checkfirst=True)
    condition_type = postgresql.ENUM("promo_code", "time_based", name="discountconditiontype", create_type=False)
    condition_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "discounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), index=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id", ondelete="CASCADE")),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=50), index=True),
        sa.Column("type", discount_type),
        sa.Column("value", sa.Numeric(10, 2), nullable=False),
        sa.Column("condition_type", condition_type),
        sa.Column("days_of_week", sa.JSON()),
        sa.Column("start_time", sa.Time()),
        sa.Column("end_time", sa.Time()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "discount_resources",
        sa.Column(
            "discount_id", sa.Integer(), sa.ForeignKey("discounts.id", ondelete="CASCADE"), primary_key=True
        ),
        sa.Column(
            "resource_id", sa.Integer(), sa.ForeignKey("resources.id", ondelete="CASCADE"), primary_key=True
        ),
    )

    booking_status = postgresql.ENUM(
        "pending",
        "confirmed",
        "cancelled",
        "completed",
        "no_show",
        "rejected",
        name="bookingstatus",
        create_type=False,
    )
    booking_status.create(op.get_bind(), checkfirst=True)
    booking_source = postgresql.ENUM("web", "app", "phone", "walk_in", name="bookingsource", create_type=False)
    booking_source.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="RESTRICT")),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id", ondelete="RESTRICT")),
        sa.Column("resource_id", sa.Integer(), sa.ForeignKey("resources.id", ondelete="RESTRICT")),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), index=True),
        sa.Column("guest_id", sa.Integer(), sa.ForeignKey("guests.id", ondelete="SET NULL"), index=True),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", booking_status, server_default="pending"),
        sa.Column("source", booking_source, server_default="web"),
        sa.Column("original_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.CHAR(length=3), server_default="CLP"),
        sa.Column("notes", sa.Text()),
        sa.Column("rejection_reason", sa.Text()),
        sa.Column("discount_id", sa.Integer(), sa.ForeignKey("discounts.id", ondelete="SET NULL")),
        sa.Column("survey_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("(user_id IS NULL) <> (guest_id IS NULL)", name="ck_booking_single_claimant"),
        sa.CheckConstraint("start_at < end_at", name="ck_booking_time_range"),
    )
    op.create_index("ix_booking_resource_window", "bookings", ["resource_id", "start_at", "end_at"])
    op.create_index("ix_booking_tenant_branch", "bookings", ["tenant_id", "branch_id"])
    op.execute(
        "ALTER TABLE bookings ADD CONSTRAINT booking_no_overlap "
        "EXCLUDE USING gist (resource_id WITH =, tstzrange(start_at, end_at, '[)') WITH &&) "
        "WHERE (status IN ('pending', 'confirmed'))"
    )

    op.create_table(
        "booking_cancellations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "booking_id",
            sa.Integer(),
            sa.ForeignKey("bookings.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("cancelled_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("reason", sa.Text()),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "survey_responses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "booking_id",
            sa.Integer(),
            sa.ForeignKey("bookings.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("survey_responses")
    op.drop_table("booking_cancellations")
    op.execute("ALTER TABLE bookings DROP CONSTRAINT IF EXISTS booking_no_overlap")
    op.drop_index("ix_booking_tenant_branch", table_name="bookings")
    op.drop_index("ix_booking_resource_window", table_name="bookings")
    op.drop_table("bookings")
    op.drop_table("discount_resources")
    op.drop_table("discounts")
    op.drop_table("guests")
    op.drop_table("user_roles")
    op.drop_table("users")
    op.drop_table("resources")
    op.drop_table("branches")
    op.drop_table("tenants")
    for enum_name in (
        "bookingsource",
        "bookingstatus",
        "discountconditiontype",
        "discounttype",
        "rolename",
    ):
        postgresql.ENUM(name=enum_name).drop(op.get_bind(), checkfirst=True)
