"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-12 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


_TRANSACTION_TYPES = ("BALANCE_INCOME", "BALANCE_OUTCOME", "EVENT_INCOME", "EVENT_OUTCOME", "GIFT")
_EVENT_TYPES = ("DONATION", "FUNDRAISING", "JACKPOT")
_EVENT_STATUSES = ("PENDING", "IN_PROGRESS", "COMPLETED", "FAILED", "CANCELLED")
_CONDITION_PARAMETERS = ("bank", "people", "time")
_CONDITION_OPERATORS = ("EQUALS", "GREATER", "LESS", "GREATER_EQUALS", "LESS_EQUALS")
_CRITERION_TYPES = (
    "EVENT_COUNT_ALL", "EVENT_COUNT_CREATED", "EVENT_COUNT_COMPLETED",
    "EVENT_BANK_COMPLETED", "EVENT_PEOPLE_COMPLETED", "EVENT_TIME_COMPLETED",
    "EVENT_INCOME_ONETIME", "EVENT_INCOME_ALL", "USER_ACTIVITY", "USER_BANK",
)


def upgrade() -> None:
    # --- ENUM types ---
    for values, name in (
        (_TRANSACTION_TYPES, "transaction_type_enum"),
        (_EVENT_TYPES, "event_type_enum"),
        (_EVENT_STATUSES, "event_status_enum"),
        (_CONDITION_PARAMETERS, "condition_parameter_enum"),
        (_CONDITION_OPERATORS, "condition_operator_enum"),
        (_CRITERION_TYPES, "criterion_type_enum"),
    ):
        sa.Enum(*values, name=name).create(op.get_bind(), checkfirst=True)

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("email", sa.String(256), nullable=False),
        sa.Column("balance", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_id", "users", ["id"])

    # --- events ---
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("event_type", sa.Enum(*_EVENT_TYPES, name="event_type_enum", create_type=False), nullable=False),
        sa.Column("status", sa.Enum(*_EVENT_STATUSES, name="event_status_enum", create_type=False), nullable=False),
        sa.Column("bank_amount", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("creator_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("recipient_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("winner_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_status", "events", ["status"])
    op.create_index("ix_events_creator_id", "events", ["creator_id"])

    # --- transactions ---
    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="SET NULL"), nullable=True),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("tx_type", sa.Enum(*_TRANSACTION_TYPES, name="transaction_type_enum", create_type=False), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_transactions_id", "transactions", ["id"])
    op.create_index("ix_transactions_user_id", "transactions", ["user_id"])
    op.create_index("ix_transactions_event_id", "transactions", ["event_id"])

    # --- participations ---
    op.create_table(
        "participations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("deposit", sa.Numeric(18, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_participations_id", "participations", ["id"])
    op.create_index("ix_participations_event_id", "participations", ["event_id"])
    op.create_index("ix_participations_user_id", "participations", ["user_id"])

    # --- end_condition_groups ---
    op.create_table(
        "end_condition_groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_failed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_end_condition_groups_id", "end_condition_groups", ["id"])
    op.create_index("ix_end_condition_groups_event_id", "end_condition_groups", ["event_id"])

    # --- conditions ---
    op.create_table(
        "conditions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("end_condition_groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("parameter_name", sa.Enum(*_CONDITION_PARAMETERS, name="condition_parameter_enum", create_type=False), nullable=False),
        sa.Column("operator", sa.Enum(*_CONDITION_OPERATORS, name="condition_operator_enum", create_type=False), nullable=False),
        sa.Column("value", sa.String(64), nullable=False),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_conditions_id", "conditions", ["id"])
    op.create_index("ix_conditions_group_id", "conditions", ["group_id"])
    op.create_index("ix_conditions_parameter_name", "conditions", ["parameter_name"])
    op.create_index("ix_conditions_is_completed", "conditions", ["is_completed"])

    # --- achievements ---
    op.create_table(
        "achievements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("icon", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_index("ix_achievements_id", "achievements", ["id"])

    op.create_table(
        "achievement_criteria",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("achievement_id", sa.Integer(), sa.ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False),
        sa.Column("criterion_type", sa.Enum(*_CRITERION_TYPES, name="criterion_type_enum", create_type=False), nullable=False),
        sa.Column("value", sa.Numeric(18, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_achievement_criteria_id", "achievement_criteria", ["id"])
    op.create_index("ix_achievement_criteria_achievement_id", "achievement_criteria", ["achievement_id"])
    op.create_index("ix_achievement_criteria_criterion_type", "achievement_criteria", ["criterion_type"])

    # --- user_achievements ---
    op.create_table(
        "user_achievements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("achievement_id", sa.Integer(), sa.ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False),
        sa.Column("unlocked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("unlocked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )
    op.create_index("ix_user_achievements_id", "user_achievements", ["id"])
    op.create_index("ix_user_achievements_user_id", "user_achievements", ["user_id"])
    op.create_index("ix_user_achievements_achievement_id", "user_achievements", ["achievement_id"])

    op.create_table(
        "user_criterion_progress",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_achievement_id", sa.Integer(), sa.ForeignKey("user_achievements.id", ondelete="CASCADE"), nullable=False),
        sa.Column("criterion_id", sa.Integer(), sa.ForeignKey("achievement_criteria.id", ondelete="CASCADE"), nullable=False),
        sa.Column("current_value", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_achievement_id", "criterion_id", name="uq_user_criterion_progress"),
    )
    op.create_index("ix_user_criterion_progress_id", "user_criterion_progress", ["id"])
    op.create_index("ix_user_criterion_progress_user_achievement_id", "user_criterion_progress", ["user_achievement_id"])
    op.create_index("ix_user_criterion_progress_criterion_id", "user_criterion_progress", ["criterion_id"])

    # --- notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(64), nullable=False),
        sa.Column("subject_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("dedupe_key", sa.String(128), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("dedupe_key", name="uq_notification_dedupe_key"),
    )
    op.create_index("ix_notifications_id", "notifications", ["id"])
    op.create_index("ix_notifications_kind", "notifications", ["kind"])
    op.create_index("ix_notifications_subject_id", "notifications", ["subject_id"])
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("user_criterion_progress")
    op.drop_table("user_achievements")
    op.drop_table("achievement_criteria")
    op.drop_table("achievements")
    op.drop_table("conditions")
    op.drop_table("end_condition_groups")
    op.drop_table("participations")
    op.drop_table("transactions")
    op.drop_table("events")
    op.drop_table("users")

    op.execute("DROP TYPE IF EXISTS criterion_type_enum")
    op.execute("DROP TYPE IF EXISTS condition_operator_enum")
    op.execute("DROP TYPE IF EXISTS condition_parameter_enum")
    op.execute("DROP TYPE IF EXISTS event_status_enum")
    op.execute("DROP TYPE IF EXISTS event_type_enum")
    op.execute("DROP TYPE IF EXISTS transaction_type_enum")
