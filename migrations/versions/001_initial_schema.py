"""Initial schema: rides, ride offers, the ride event log and driver availability.

Revision ID: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

RIDE_STATUSES = (
    "requested",
    "offer_pending",
    "accepted",
    "in_progress",
    "completed",
    "cancelled",
)
OFFER_STATUSES = ("pending", "accepted", "rejected", "expired")
RIDE_TIMINGS = ("instant", "scheduled")


def upgrade() -> None:
    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("user_id", sa.Uuid, nullable=False),
        sa.Column("driver_id", sa.Uuid, nullable=True),
        sa.Column(
            "status",
            sa.Enum(*RIDE_STATUSES, name="ride_status"),
            server_default="requested",
            nullable=False,
        ),
        sa.Column(
            "ride_timing",
            sa.Enum(*RIDE_TIMINGS, name="ride_timing"),
            server_default="instant",
            nullable=False,
        ),
        sa.Column("service_type", sa.String(30), server_default="taxi", nullable=False),
        sa.Column("pickup_address", sa.Text, nullable=True),
        sa.Column("pickup_lat", sa.Float, nullable=True),
        sa.Column("pickup_lng", sa.Float, nullable=True),
        sa.Column("dropoff_address", sa.Text, nullable=True),
        sa.Column("dropoff_lat", sa.Float, nullable=True),
        sa.Column("dropoff_lng", sa.Float, nullable=True),
        sa.Column("fare", sa.Float, nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_user", "rides", ["user_id"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])

    # ── ride_offers ───────────────────────────────────────────────────
    op.create_table(
        "ride_offers",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("ride_id", sa.Uuid, sa.ForeignKey("rides.id"), nullable=False),
        sa.Column("driver_id", sa.Uuid, nullable=False),
        sa.Column(
            "status",
            sa.Enum(*OFFER_STATUSES, name="offer_status"),
            server_default="pending",
            nullable=False,
        ),
        sa.Column("quoted_price", sa.Float, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("ride_id", "driver_id", name="uq_ride_offers_ride_driver"),
    )
    op.create_index(
        "idx_ride_offers_ride_status", "ride_offers", ["ride_id", "status"]
    )
    op.create_index("idx_ride_offers_expires", "ride_offers", ["expires_at"])

    # ── ride_events ───────────────────────────────────────────────────
    op.create_table(
        "ride_events",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("ride_id", sa.Uuid, sa.ForeignKey("rides.id"), nullable=False),
        sa.Column("event_type", sa.String(40), nullable=False),
        sa.Column("actor_role", sa.String(20), nullable=False),
        sa.Column("actor_id", sa.Uuid, nullable=True),
        sa.Column("from_status", sa.String(20), nullable=True),
        sa.Column("to_status", sa.String(20), nullable=True),
        sa.Column("payload", sa.JSON, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_ride_events_ride", "ride_events", ["ride_id"])

    # ── driver_availability ───────────────────────────────────────────
    op.create_table(
        "driver_availability",
        sa.Column("driver_id", sa.Uuid, primary_key=True),
        sa.Column(
            "active_ride_id", sa.Uuid, sa.ForeignKey("rides.id"), nullable=True
        ),
        sa.Column(
            "is_available", sa.Boolean, server_default=sa.true(), nullable=False
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    op.drop_table("driver_availability")
    op.drop_table("ride_events")
    op.drop_table("ride_offers")
    op.drop_table("rides")
    op.execute("DROP TYPE IF EXISTS offer_status")
    op.execute("DROP TYPE IF EXISTS ride_timing")
    op.execute("DROP TYPE IF EXISTS ride_status")
