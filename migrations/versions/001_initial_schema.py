"""Initial schema: identities, fleet, rides, tracking and payments.

Revision ID: 001
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

ROLES = ("patient", "driver", "admin")
VEHICLE_TYPES = ("car", "van", "wheelchair-accessible", "stretcher-enabled")
RIDE_STATUSES = ("pending", "accepted", "in-progress", "completed", "canceled")
PAYMENT_METHODS = ("credit_card", "debit_card", "cash", "insurance")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")


def _timestamps() -> list:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
    ]


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("phone", sa.String(32), unique=True, nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.Enum(*ROLES, name="userrole"), nullable=False),
        *_timestamps(),
    )
    op.create_index("idx_users_role", "users", ["role"])

    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            unique=True,
            nullable=False,
        ),
        sa.Column("license_number", sa.String(64), unique=True, nullable=False),
        sa.Column(
            "vehicle_type",
            sa.Enum(*VEHICLE_TYPES, name="vehicletype"),
            nullable=False,
        ),
        sa.Column("availability", sa.Boolean, default=True, nullable=False),
        sa.Column("rating", sa.Float, default=5.0, nullable=False),
        *_timestamps(),
    )
    op.create_index("idx_drivers_availability", "drivers", ["availability"])
    op.create_index("idx_drivers_vehicle_type", "drivers", ["vehicle_type"])

    # ── vehicles ──────────────────────────────────────────────────────
    op.create_table(
        "vehicles",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "driver_id",
            sa.Integer,
            sa.ForeignKey("drivers.id", ondelete="CASCADE"),
            unique=True,
            nullable=True,
        ),
        sa.Column("license_plate", sa.String(32), unique=True, nullable=False),
        sa.Column("capacity", sa.Integer, nullable=False),
        sa.Column("vehicle_make", sa.String(64), nullable=False),
        sa.Column("vehicle_model", sa.String(64), nullable=False),
        sa.Column("vehicle_year", sa.Integer, nullable=False),
        sa.Column("availability", sa.Boolean, default=True, nullable=False),
        *_timestamps(),
    )

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "driver_id",
            sa.Integer,
            sa.ForeignKey("drivers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "vehicle_id",
            sa.Integer,
            sa.ForeignKey("vehicles.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("start_location", sa.Text, nullable=False),
        sa.Column("end_location", sa.Text, nullable=False),
        sa.Column("start_latitude", sa.Float, nullable=True),
        sa.Column("start_longitude", sa.Float, nullable=True),
        sa.Column("end_latitude", sa.Float, nullable=True),
        sa.Column("end_longitude", sa.Float, nullable=True),
        sa.Column("ride_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*RIDE_STATUSES, name="ridestatus"),
            default="pending",
            nullable=False,
        ),
        sa.Column("fare", sa.Float, nullable=True),
        sa.Column("distance", sa.Float, nullable=True),
        sa.Column("duration_minutes", sa.Integer, nullable=True),
        sa.Column("special_requirements", sa.String(500), nullable=True),
        sa.Column("emergency_contact", sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_user", "rides", ["user_id"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])

    # ── ride_tracking ─────────────────────────────────────────────────
    op.create_table(
        "ride_tracking",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("ride_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=False),
        sa.Column("latitude", sa.Float, nullable=False),
        sa.Column("longitude", sa.Float, nullable=False),
        sa.Column("speed", sa.Float, nullable=True),
        sa.Column("heading", sa.Float, nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_ride_tracking_ride_ts", "ride_tracking", ["ride_id", "timestamp"]
    )

    # ── payments ──────────────────────────────────────────────────────
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("ride_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=False),
        sa.Column(
            "user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("amount", sa.Float, nullable=False),
        sa.Column(
            "method",
            sa.Enum(*PAYMENT_METHODS, name="paymentmethod"),
            default="credit_card",
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum(*PAYMENT_STATUSES, name="paymentstatus"),
            default="pending",
            nullable=False,
        ),
        sa.Column("external_reference", sa.String(255), unique=True, nullable=False),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_payments_ride", "payments", ["ride_id"])
    op.create_index("idx_payments_user", "payments", ["user_id"])

    # ── payment_events ────────────────────────────────────────────────
    op.create_table(
        "payment_events",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.String(255), unique=True, nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column(
            "received_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
    )


def downgrade() -> None:
    op.drop_table("payment_events")
    op.drop_table("payments")
    op.drop_table("ride_tracking")
    op.drop_table("rides")
    op.drop_table("vehicles")
    op.drop_table("drivers")
    op.drop_table("users")
    for enum_name in (
        "paymentstatus",
        "paymentmethod",
        "ridestatus",
        "vehicletype",
        "userrole",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
