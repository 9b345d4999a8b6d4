"""create absences, notifications and activity logs

Revision ID: 20261017_0002
Revises: 20261017_0001
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261017_0002"
down_revision = "20261017_0001"
branch_labels = None
depends_on = None


absence_status_enum = sa.Enum("unexcused", "pending", "excused", "rejected", name="absence_status")
notification_type_enum = sa.Enum(
    "absence_warning",
    "elimination_risk",
    "excuse_submitted",
    "excuse_reviewed",
    name="notification_type",
)


def upgrade() -> None:
    op.create_table(
        "absences",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("student_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "timetable_slot_id",
            sa.String(length=36),
            sa.ForeignKey("timetable_slots.id"),
            nullable=False,
        ),
        sa.Column("recorded_by_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("status", absence_status_enum, nullable=False, server_default="unexcused"),
        sa.Column("excuse_reason", sa.Text(), nullable=True),
        sa.Column("excuse_document_ref", sa.String(length=500), nullable=True),
        sa.Column("excuse_submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("student_id", "timetable_slot_id", name="uq_absences_student_slot"),
    )
    op.create_index("ix_absences_student_id", "absences", ["student_id"], unique=False)
    op.create_index("ix_absences_timetable_slot_id", "absences", ["timetable_slot_id"], unique=False)
    op.create_index("ix_absences_status", "absences", ["status"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("notification_type", notification_type_enum, nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"], unique=False)
    op.create_index("ix_activity_logs_entity", "activity_logs", ["entity_type", "entity_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_activity_logs_entity", table_name="activity_logs")
    op.drop_index("ix_activity_logs_user_id", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_absences_status", table_name="absences")
    op.drop_index("ix_absences_timetable_slot_id", table_name="absences")
    op.drop_index("ix_absences_student_id", table_name="absences")
    op.drop_table("absences")

    bind = op.get_bind()
    notification_type_enum.drop(bind, checkfirst=True)
    absence_status_enum.drop(bind, checkfirst=True)
