"""add bookings, blocked_slots and slot_claims

Revision ID: 8b4e0d6c5a21
Revises: 3f1a9c2d7e10
Create Date: 2025-05-14 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "8b4e0d6c5a21"
down_revision = "3f1a9c2d7e10"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("service_type", sa.String(length=40), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time", sa.String(length=5), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("payment_status", sa.String(length=20), nullable=True),
        sa.Column("payment_method", sa.String(length=20), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=True),
        sa.Column("stripe_session_id", sa.String(length=255), nullable=True),
        sa.Column("stripe_payment_intent_id", sa.String(length=255), nullable=True),
        sa.Column("payment_started_at", sa.DateTime(), nullable=True),
        sa.Column("cancellation_request", sa.String(length=20), nullable=True),
        sa.Column("cancellation_requested_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled')",
            name="ck_bookings_status",
        ),
        sa.CheckConstraint(
            "payment_status IS NULL OR payment_status IN ('pending', 'paid', 'failed')",
            name="ck_bookings_payment_status",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("bookings", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_bookings_user_id"), ["user_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_bookings_date"), ["date"], unique=False)
        batch_op.create_index("ix_bookings_date_time", ["date", "time"], unique=False)
        batch_op.create_index(batch_op.f("ix_bookings_stripe_session_id"), ["stripe_session_id"], unique=True)
        batch_op.create_index(batch_op.f("ix_bookings_created_at"), ["created_at"], unique=False)

    op.create_table(
        "blocked_slots",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time", sa.String(length=5), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("date", "time", name="uq_blocked_slot_date_time"),
    )
    with op.batch_alter_table("blocked_slots", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_blocked_slots_date"), ["date"], unique=False)

    # one row per occupied slot; the unique key arbitrates concurrent claims
    op.create_table(
        "slot_claims",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time", sa.String(length=5), nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=True),
        sa.Column("blocked_slot_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "(booking_id IS NULL) <> (blocked_slot_id IS NULL)",
            name="ck_slot_claim_single_holder",
        ),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"]),
        sa.ForeignKeyConstraint(["blocked_slot_id"], ["blocked_slots.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("booking_id"),
        sa.UniqueConstraint("blocked_slot_id"),
        sa.UniqueConstraint("date", "time", name="uq_slot_claim_once"),
    )


def downgrade():
    op.drop_table("slot_claims")

    with op.batch_alter_table("blocked_slots", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_blocked_slots_date"))
    op.drop_table("blocked_slots")

    with op.batch_alter_table("bookings", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_bookings_created_at"))
        batch_op.drop_index(batch_op.f("ix_bookings_stripe_session_id"))
        batch_op.drop_index("ix_bookings_date_time")
        batch_op.drop_index(batch_op.f("ix_bookings_date"))
        batch_op.drop_index(batch_op.f("ix_bookings_user_id"))
    op.drop_table("bookings")
