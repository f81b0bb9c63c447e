"""create masjid core tables

Revision ID: 0001_create_masjid_core
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_create_masjid_core"
down_revision = None
branch_labels = None
depends_on = None


masjid_status = sa.Enum("active", "inactive", name="masjid_status")
membership_role = sa.Enum("imam", "admin", name="membership_role")
prayer_name = sa.Enum("Fajr", "Dhuhr", "Jummah", "Asr", "Maghrib", "Isha", name="prayer_name")
notification_category = sa.Enum("Prayer Times", "Donations", "Events", "General", name="notification_category")
notification_source = sa.Enum("manual", "prayer_time_change", name="notification_source")
event_status = sa.Enum("active", "deleted", name="event_status")
question_status = sa.Enum("new", "replied", name="question_status")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _category_toggles() -> list[sa.Column]:
    return [
        sa.Column(name, sa.Boolean(), nullable=False, server_default=sa.true())
        for name in (
            "prayer_times_notifications",
            "events_notifications",
            "donations_notifications",
            "general_notifications",
            "questions_notifications",
        )
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("hashed_password", sa.String(length=255), nullable=True),
        sa.Column("auth_provider", sa.String(length=32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_super_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "masajids",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("location", sa.Text(), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("state", sa.String(length=100), nullable=True),
        sa.Column("country", sa.String(length=100), nullable=True),
        sa.Column("postal_code", sa.String(length=20), nullable=True),
        sa.Column("contact_email", sa.String(length=255), nullable=True),
        sa.Column("contact_phone", sa.String(length=50), nullable=True),
        sa.Column("status", masjid_status, nullable=False, server_default="active"),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
    )

    # Capability columns have no server default on purpose: every insert seeds them.
    op.create_table(
        "masjid_memberships",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("masjid_id", sa.Integer(), sa.ForeignKey("masajids.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", membership_role, nullable=False),
        sa.Column("can_view_complaints", sa.Boolean(), nullable=False),
        sa.Column("can_answer_complaints", sa.Boolean(), nullable=False),
        sa.Column("can_view_questions", sa.Boolean(), nullable=False),
        sa.Column("can_answer_questions", sa.Boolean(), nullable=False),
        sa.Column("can_change_prayer_times", sa.Boolean(), nullable=False),
        sa.Column("can_create_events", sa.Boolean(), nullable=False),
        sa.Column("can_create_notifications", sa.Boolean(), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("assigned_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "masjid_id", "role", name="uq_masjid_membership_user_masjid_role"),
    )
    op.create_index("ix_masjid_memberships_user_id", "masjid_memberships", ["user_id"])
    op.create_index("ix_masjid_memberships_masjid_id", "masjid_memberships", ["masjid_id"])
    op.create_index("ix_masjid_memberships_masjid_role", "masjid_memberships", ["masjid_id", "role"])

    op.create_table(
        "masjid_subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("masjid_id", sa.Integer(), sa.ForeignKey("masajids.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("device_id", sa.String(length=64), nullable=True),
        sa.Column("fcm_token", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint(
            "(user_id IS NULL) <> (device_id IS NULL)",
            name="ck_masjid_subscriptions_single_recipient",
        ),
    )
    op.create_index("ix_masjid_subscriptions_user_id", "masjid_subscriptions", ["user_id"])
    op.create_index("ix_masjid_subscriptions_device_id", "masjid_subscriptions", ["device_id"])
    op.create_index("ix_masjid_subscriptions_fcm_token", "masjid_subscriptions", ["fcm_token"])
    op.create_index("ix_masjid_subscriptions_masjid_active", "masjid_subscriptions", ["masjid_id", "is_active"])

    op.create_table(
        "user_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        *_category_toggles(),
        *_timestamps(),
    )
    op.create_table(
        "device_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("device_id", sa.String(length=64), nullable=False, unique=True),
        *_category_toggles(),
        *_timestamps(),
    )

    op.create_table(
        "prayer_times",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("masjid_id", sa.Integer(), sa.ForeignKey("masajids.id", ondelete="CASCADE"), nullable=False),
        sa.Column("prayer_name", prayer_name, nullable=False),
        sa.Column("prayer_time", sa.Time(), nullable=False),
        sa.Column("effective_date", sa.Date(), nullable=False, server_default=sa.func.current_date()),
        sa.Column("notify_users", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("updated_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "masjid_id", "prayer_name", "effective_date", name="uq_prayer_times_masjid_prayer_date"
        ),
    )
    op.create_index("ix_prayer_times_masjid_id", "prayer_times", ["masjid_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("masjid_id", sa.Integer(), sa.ForeignKey("masajids.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", notification_category, nullable=False),
        sa.Column("source", notification_source, nullable=False, server_default="manual"),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_notifications_masjid_id", "notifications", ["masjid_id"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("masjid_id", sa.Integer(), sa.ForeignKey("masajids.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("event_date", sa.Date(), nullable=False),
        sa.Column("event_time", sa.Time(), nullable=False),
        sa.Column("location", sa.Text(), nullable=True),
        sa.Column("status", event_status, nullable=False, server_default="active"),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_events_masjid_id", "events", ["masjid_id"])
    op.create_index("ix_events_event_date", "events", ["event_date"])

    op.create_table(
        "questions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("masjid_id", sa.Integer(), sa.ForeignKey("masajids.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("device_id", sa.String(length=64), nullable=True),
        sa.Column("user_name", sa.String(length=255), nullable=False),
        sa.Column("user_email", sa.String(length=255), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("status", question_status, nullable=False, server_default="new"),
        sa.Column("reply", sa.Text(), nullable=True),
        sa.Column("replied_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("replied_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_questions_masjid_id", "questions", ["masjid_id"])
    op.create_index("ix_questions_device_id", "questions", ["device_id"])
    op.create_index("ix_questions_status", "questions", ["status"])

    op.create_table(
        "favorite_masajids",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("masjid_id", sa.Integer(), sa.ForeignKey("masajids.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("device_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "masjid_id", name="uq_favorite_masajids_user"),
        sa.UniqueConstraint("device_id", "masjid_id", name="uq_favorite_masajids_device"),
        sa.CheckConstraint("(user_id IS NULL) <> (device_id IS NULL)", name="ck_favorite_masajids_single_owner"),
    )
    op.create_index("ix_favorite_masajids_user_id", "favorite_masajids", ["user_id"])
    op.create_index("ix_favorite_masajids_device_id", "favorite_masajids", ["device_id"])


def downgrade() -> None:
    op.drop_table("favorite_masajids")
    op.drop_table("questions")
    op.drop_table("events")
    op.drop_table("notifications")
    op.drop_table("prayer_times")
    op.drop_table("device_settings")
    op.drop_table("user_settings")
    op.drop_table("masjid_subscriptions")
    op.drop_table("masjid_memberships")
    op.drop_table("masajids")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in (
        question_status,
        event_status,
        notification_source,
        notification_category,
        prayer_name,
        membership_role,
        masjid_status,
    ):
        enum.drop(bind, checkfirst=True)
