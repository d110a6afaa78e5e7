# backend/alembic/versions/001_reservation_engine.py
"""Reservation engine - classes, subscriptions, bookings, waitlist, credit balances

Revision ID: 001_reservation_engine
Revises:
Create Date: 2025-01-06 00:00:00.000000

Bookings carry a durable ``funded`` flag that decides whether a cancellation
refunds a credit. A partial unique index allows one live (non-cancelled)
booking per user and class while keeping cancelled rows for reuse. Waitlist
positions are unique per class so concurrent joins collide instead of
duplicating a position.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_reservation_engine"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create reservation engine tables."""
    print("Creating reservation engine tables...")

    op.create_table(
        "classes",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("instructor_id", sa.String(26), nullable=True),
        # Studio-local schedule
        sa.Column("class_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("room", sa.String(100), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(20), nullable=False, server_default="group"),
        sa.Column("equipment_type", sa.String(20), nullable=False, server_default="mat"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("capacity > 0", name="ck_classes_capacity_positive"),
        sa.CheckConstraint("category IN ('group', 'personal')", name="ck_classes_category"),
        sa.CheckConstraint(
            "equipment_type IN ('mat', 'reformer', 'both')", name="ck_classes_equipment_type"
        ),
        sa.CheckConstraint("status IN ('active', 'cancelled')", name="ck_classes_status"),
    )
    op.create_index("ix_classes_id", "classes", ["id"])
    op.create_index("ix_classes_instructor_id", "classes", ["instructor_id"])
    op.create_index("ix_classes_class_date", "classes", ["class_date"])
    op.create_index("ix_classes_status", "classes", ["status"])

    op.create_table(
        "user_subscriptions",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("user_id", sa.String(26), nullable=False),
        sa.Column("plan_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("category", sa.String(20), nullable=False, server_default="group"),
        sa.Column("personal_party_size", sa.Integer(), nullable=True),
        sa.Column("equipment_access", sa.String(20), nullable=False, server_default="mat"),
        # NULL = unlimited plan
        sa.Column("remaining_credits", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("status IN ('active', 'expired')", name="ck_subscriptions_status"),
        sa.CheckConstraint("category IN ('group', 'personal')", name="ck_subscriptions_category"),
        sa.CheckConstraint(
            "equipment_access IN ('mat', 'reformer', 'both')",
            name="ck_subscriptions_equipment_access",
        ),
        sa.CheckConstraint(
            "personal_party_size IS NULL OR personal_party_size IN (1, 2, 3)",
            name="ck_subscriptions_party_size",
        ),
        sa.CheckConstraint(
            "remaining_credits IS NULL OR remaining_credits >= 0",
            name="ck_subscriptions_remaining_non_negative",
        ),
    )
    op.create_index("ix_user_subscriptions_id", "user_subscriptions", ["id"])
    op.create_index("ix_user_subscriptions_user_id", "user_subscriptions", ["user_id"])
    op.create_index("ix_user_subscriptions_status", "user_subscriptions", ["status"])

    op.create_table(
        "user_credit_balances",
        sa.Column("user_id", sa.String(26), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("user_id"),
        sa.CheckConstraint("credits >= 0", name="ck_user_credit_balances_non_negative"),
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("user_id", sa.String(26), nullable=False),
        sa.Column("class_id", sa.String(26), nullable=False),
        sa.Column("subscription_id", sa.String(26), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="confirmed"),
        # Whether a credit was spent for this booking; drives refund on cancel
        sa.Column("funded", sa.Boolean(), nullable=False, server_default=sa.false()),
        # Incremented whenever a cancelled row is reused for a new seat
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("checked_in", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("check_in_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(20), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["class_id"], ["classes.id"]),
        sa.ForeignKeyConstraint(["subscription_id"], ["user_subscriptions.id"]),
        sa.CheckConstraint(
            "status IN ('confirmed', 'cancelled', 'completed', 'no_show')",
            name="ck_bookings_status",
        ),
        sa.CheckConstraint(
            "cancelled_by IS NULL OR cancelled_by IN ('user', 'studio', 'reception')",
            name="ck_bookings_cancelled_by",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_class_id", "bookings", ["class_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_class_status", "bookings", ["class_id", "status"])
    # One live booking per (user, class); cancelled rows are exempt
    op.create_index(
        "uq_bookings_user_class_live",
        "bookings",
        ["user_id", "class_id"],
        unique=True,
        sqlite_where=sa.text("status <> 'cancelled'"),
        postgresql_where=sa.text("status <> 'cancelled'"),
    )

    op.create_table(
        "waitlist",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("user_id", sa.String(26), nullable=False),
        sa.Column("class_id", sa.String(26), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["class_id"], ["classes.id"]),
        sa.UniqueConstraint("class_id", "position", name="uq_waitlist_class_position"),
        sa.UniqueConstraint("user_id", "class_id", name="uq_waitlist_user_class"),
        sa.CheckConstraint("position >= 1", name="ck_waitlist_position_positive"),
    )
    op.create_index("ix_waitlist_id", "waitlist", ["id"])
    op.create_index("ix_waitlist_user_id", "waitlist", ["user_id"])
    op.create_index("ix_waitlist_class_id", "waitlist", ["class_id"])

    print("Reservation engine tables created")


def downgrade() -> None:
    """Drop reservation engine tables."""
    print("Dropping reservation engine tables...")

    op.drop_index("ix_waitlist_class_id", table_name="waitlist")
    op.drop_index("ix_waitlist_user_id", table_name="waitlist")
    op.drop_index("ix_waitlist_id", table_name="waitlist")
    op.drop_table("waitlist")

    op.drop_index("uq_bookings_user_class_live", table_name="bookings")
    op.drop_index("ix_bookings_class_status", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_class_id", table_name="bookings")
    op.drop_index("ix_bookings_user_id", table_name="bookings")
    op.drop_index("ix_bookings_id", table_name="bookings")
    op.drop_table("bookings")

    op.drop_table("user_credit_balances")

    op.drop_index("ix_user_subscriptions_status", table_name="user_subscriptions")
    op.drop_index("ix_user_subscriptions_user_id", table_name="user_subscriptions")
    op.drop_index("ix_user_subscriptions_id", table_name="user_subscriptions")
    op.drop_table("user_subscriptions")

    op.drop_index("ix_classes_status", table_name="classes")
    op.drop_index("ix_classes_class_date", table_name="classes")
    op.drop_index("ix_classes_instructor_id", table_name="classes")
    op.drop_index("ix_classes_id", table_name="classes")
    op.drop_table("classes")

    print("Reservation engine tables dropped")
