"""create campus reference tables, users and timetable slots

Revision ID: 20261017_0001
Revises: None
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


user_role_enum = sa.Enum("admin", "department_head", "teacher", "student", name="user_role")
user_status_enum = sa.Enum("active", "inactive", "suspended", "eliminated", name="user_status")
room_type_enum = sa.Enum("amphitheater", "classroom", "lab", name="room_type")
day_of_week_enum = sa.Enum(
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday", name="day_of_week"
)
session_type_enum = sa.Enum("lecture", "td", "tp", "exam", "makeup", name="session_type")


def upgrade() -> None:
    op.create_table(
        "departments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=20), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_departments_code", "departments", ["code"], unique=True)

    op.create_table(
        "specialties",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=20), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column(
            "department_id",
            sa.String(length=36),
            sa.ForeignKey("departments.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    op.create_index("ix_specialties_code", "specialties", ["code"], unique=True)
    op.create_index("ix_specialties_department_id", "specialties", ["department_id"], unique=False)

    op.create_table(
        "levels",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=20), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column(
            "specialty_id",
            sa.String(length=36),
            sa.ForeignKey("specialties.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    op.create_index("ix_levels_specialty_id", "levels", ["specialty_id"], unique=False)

    op.create_table(
        "groups",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=20), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("max_capacity", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("level_id", sa.String(length=36), sa.ForeignKey("levels.id", ondelete="CASCADE"), nullable=False),
    )
    op.create_index("ix_groups_code", "groups", ["code"], unique=True)
    op.create_index("ix_groups_level_id", "groups", ["level_id"], unique=False)

    op.create_table(
        "subjects",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=20), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("department_id", sa.String(length=36), sa.ForeignKey("departments.id"), nullable=True),
    )
    op.create_index("ix_subjects_code", "subjects", ["code"], unique=True)

    op.create_table(
        "rooms",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("building", sa.String(length=200), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("type", room_type_enum, nullable=False, server_default="classroom"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_rooms_name", "rooms", ["name"], unique=True)

    op.create_table(
        "semesters",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_semesters_code", "semesters", ["code"], unique=True)

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", user_role_enum, nullable=False),
        sa.Column("status", user_status_enum, nullable=False, server_default="active"),
        sa.Column("department_id", sa.String(length=36), sa.ForeignKey("departments.id"), nullable=True),
        sa.Column("group_id", sa.String(length=36), sa.ForeignKey("groups.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_department_id", "users", ["department_id"], unique=False)
    op.create_index("ix_users_group_id", "users", ["group_id"], unique=False)

    op.create_table(
        "timetable_slots",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "semester_id",
            sa.String(length=36),
            sa.ForeignKey("semesters.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("day_of_week", day_of_week_enum, nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("subject_id", sa.String(length=36), sa.ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("teacher_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("room_id", sa.String(length=36), sa.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("group_id", sa.String(length=36), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("session_type", session_type_enum, nullable=False, server_default="lecture"),
        sa.Column("is_cancelled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_timetable_slots_semester_day_teacher",
        "timetable_slots",
        ["semester_id", "day_of_week", "teacher_id"],
        unique=False,
    )
    op.create_index(
        "ix_timetable_slots_semester_day_room",
        "timetable_slots",
        ["semester_id", "day_of_week", "room_id"],
        unique=False,
    )
    op.create_index(
        "ix_timetable_slots_semester_day_group",
        "timetable_slots",
        ["semester_id", "day_of_week", "group_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_timetable_slots_semester_day_group", table_name="timetable_slots")
    op.drop_index("ix_timetable_slots_semester_day_room", table_name="timetable_slots")
    op.drop_index("ix_timetable_slots_semester_day_teacher", table_name="timetable_slots")
    op.drop_table("timetable_slots")

    op.drop_index("ix_users_group_id", table_name="users")
    op.drop_index("ix_users_department_id", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    op.drop_index("ix_semesters_code", table_name="semesters")
    op.drop_table("semesters")
    op.drop_index("ix_rooms_name", table_name="rooms")
    op.drop_table("rooms")
    op.drop_index("ix_subjects_code", table_name="subjects")
    op.drop_table("subjects")
    op.drop_index("ix_groups_level_id", table_name="groups")
    op.drop_index("ix_groups_code", table_name="groups")
    op.drop_table("groups")
    op.drop_index("ix_levels_specialty_id", table_name="levels")
    op.drop_table("levels")
    op.drop_index("ix_specialties_department_id", table_name="specialties")
    op.drop_index("ix_specialties_code", table_name="specialties")
    op.drop_table("specialties")
    op.drop_index("ix_departments_code", table_name="departments")
    op.drop_table("departments")

    bind = op.get_bind()
    session_type_enum.drop(bind, checkfirst=True)
    day_of_week_enum.drop(bind, checkfirst=True)
    room_type_enum.drop(bind, checkfirst=True)
    user_status_enum.drop(bind, checkfirst=True)
    user_role_enum.drop(bind, checkfirst=True)
