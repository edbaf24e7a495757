"""Initial schema: users, vehicles, rides, bookings and reviews.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

LIVE_BOOKING = sa.text("status IN ('pending', 'accepted')")


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("university", sa.String(120), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── vehicles ──────────────────────────────────────────────────────
    op.create_table(
        "vehicles",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "owner_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("make", sa.String(60), nullable=False),
        sa.Column("model", sa.String(60), nullable=False),
        sa.Column("color", sa.String(30), nullable=True),
        sa.Column("license_plate", sa.String(20), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_vehicles_owner", "vehicles", ["owner_id"])

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "driver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "vehicle_id", sa.Integer, sa.ForeignKey("vehicles.id"), nullable=False
        ),
        sa.Column("origin", sa.String(255), nullable=False),
        sa.Column("destination", sa.String(255), nullable=False),
        sa.Column("origin_lat", sa.Float, nullable=True),
        sa.Column("origin_lng", sa.Float, nullable=True),
        sa.Column("destination_lat", sa.Float, nullable=True),
        sa.Column("destination_lng", sa.Float, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("date_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("price_per_seat", sa.Float, nullable=False),
        sa.Column("seats_total", sa.Integer, nullable=False),
        sa.Column("seats_available", sa.Integer, nullable=False),
        sa.Column(
            "status",
            sa.Enum("upcoming", "completed", "cancelled", name="ride_status"),
            default="upcoming",
            nullable=False,
        ),
        sa.Column("luggage", sa.Boolean, default=True, nullable=False),
        sa.Column("pets", sa.Boolean, default=False, nullable=False),
        sa.Column("smoking", sa.Boolean, default=False, nullable=False),
        sa.Column("music", sa.Boolean, default=True, nullable=False),
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
        sa.CheckConstraint("price_per_seat >= 0", name="ck_rides_price"),
        sa.CheckConstraint("seats_total >= 1", name="ck_rides_seats_total"),
        sa.CheckConstraint(
            "seats_available >= 0 AND seats_available <= seats_total",
            name="ck_rides_seats_available",
        ),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])
    op.create_index("idx_rides_date_time", "rides", ["date_time"])

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("ride_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=False),
        sa.Column(
            "passenger_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "status",
            sa.Enum(
                "pending",
                "accepted",
                "declined",
                "cancelled",
                "completed",
                name="booking_status",
            ),
            default="pending",
            nullable=False,
        ),
        sa.Column(
            "payment_status",
            sa.Enum("none", "held", "released", "refunded", name="payment_status"),
            default="none",
            nullable=False,
        ),
        sa.Column("payment_amount", sa.Float, nullable=False, default=0.0),
        sa.Column("payment_token", sa.String(64), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refund_amount", sa.Float, nullable=True),
        sa.Column("payout_amount", sa.Float, nullable=True),
        sa.Column(
            "escrow_pending",
            sa.Boolean,
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirm_deadline", sa.DateTime(timezone=True), nullable=True),
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
    op.create_index(
        "uq_bookings_live_passenger",
        "bookings",
        ["ride_id", "passenger_id"],
        unique=True,
        postgresql_where=LIVE_BOOKING,
    )
    op.create_index("idx_bookings_ride", "bookings", ["ride_id"])
    op.create_index("idx_bookings_passenger", "bookings", ["passenger_id"])
    op.create_index(
        "idx_bookings_deadline", "bookings", ["status", "confirm_deadline"]
    )
    op.create_index("idx_bookings_escrow_pending", "bookings", ["escrow_pending"])

    # ── reviews ───────────────────────────────────────────────────────
    op.create_table(
        "reviews",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "booking_id", sa.Integer, sa.ForeignKey("bookings.id"), nullable=False
        ),
        sa.Column(
            "reviewer_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "reviewee_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("rating", sa.Integer, nullable=False),
        sa.Column("comment", sa.Text, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "booking_id", "reviewer_id", "reviewee_id", name="uq_reviews_direction"
        ),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating"),
    )
    op.create_index("idx_reviews_reviewee", "reviews", ["reviewee_id"])


def downgrade() -> None:
    op.drop_table("reviews")
    op.drop_table("bookings")
    op.drop_table("rides")
    op.drop_table("vehicles")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS payment_status")
    op.execute("DROP TYPE IF EXISTS booking_status")
    op.execute("DROP TYPE IF EXISTS ride_status")
