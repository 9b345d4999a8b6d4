from __future__ import annotations

import logging

from sqlalchemy import inspect

import app.models  # noqa: F401
from app.db.base import Base
from app.db.session import engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "users": {"id", "email", "role", "status", "department_id", "group_id"},
    "groups": {"id", "code", "level_id"},
    "semesters": {"id", "code", "is_active"},
    "timetable_slots": {
        "id",
        "semester_id",
        "day_of_week",
        "start_time",
        "end_time",
        "teacher_id",
        "room_id",
        "group_id",
        "is_cancelled",
    },
    "absences": {"id", "student_id", "timetable_slot_id", "status", "version"},
    "notifications": {"id", "user_id", "notification_type", "is_read"},
}


def missing_schema_items() -> tuple[list[str], dict[str, list[str]]]:
    with engine.connect() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing_tables = sorted(name for name in REQUIRED_COLUMNS if name not in table_names)
        missing_columns: dict[str, list[str]] = {}
        for table_name, required in REQUIRED_COLUMNS.items():
            if table_name not in table_names:
                continue
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            missing = sorted(required - existing)
            if missing:
                missing_columns[table_name] = missing
    return missing_tables, missing_columns


def _assert_required_columns() -> None:
    missing_tables, missing_columns = missing_schema_items()
    if missing_tables:
        raise RuntimeError(f"Missing required tables: {', '.join(missing_tables)}")
    if missing_columns:
        flattened = [f"{table}.{column}" for table, columns in missing_columns.items() for column in columns]
        raise RuntimeError(f"Missing required columns: {', '.join(flattened)}")


def ensure_runtime_schema() -> None:
    try:
        # Alembic owns the schema in deployed environments; create_all only fills gaps.
        Base.metadata.create_all(bind=engine)
        _assert_required_columns()
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema bootstrap failed")
        raise RuntimeError("Runtime schema bootstrap failed") from exc
