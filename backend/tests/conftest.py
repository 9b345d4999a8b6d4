import os

# Must be set before app modules build the engine from settings.
os.environ["DATABASE_URL"] = "sqlite+pysqlite://"

from datetime import date, timedelta  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.api.deps import get_db  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.main import app  # noqa: E402
from app.models.academic import Department, Group, Level, Specialty, Subject  # noqa: E402
from app.models.room import Room, RoomType  # noqa: E402
from app.models.semester import Semester  # noqa: E402
from app.models.timetable import DayOfWeek, TimetableSlot  # noqa: E402
from app.models.user import User, UserRole  # noqa: E402


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def build_campus(db) -> SimpleNamespace:
    """Two departments; CS has groups G1 and G2, MATH has G3."""
    cs = Department(code="CS", name="Computer Science")
    math = Department(code="MATH", name="Mathematics")
    db.add_all([cs, math])
    db.flush()

    cs_specialty = Specialty(code="CS-SE", name="Software Engineering", department_id=cs.id)
    math_specialty = Specialty(code="MA-AP", name="Applied Mathematics", department_id=math.id)
    db.add_all([cs_specialty, math_specialty])
    db.flush()

    cs_level = Level(code="L2", name="Licence 2", specialty_id=cs_specialty.id)
    math_level = Level(code="L1", name="Licence 1", specialty_id=math_specialty.id)
    db.add_all([cs_level, math_level])
    db.flush()

    g1 = Group(code="G1", name="Group 1", level_id=cs_level.id)
    g2 = Group(code="G2", name="Group 2", level_id=cs_level.id)
    g3 = Group(code="G3", name="Group 3", level_id=math_level.id)
    algorithms = Subject(code="ALG", name="Algorithms", department_id=cs.id)
    databases = Subject(code="DB", name="Databases", department_id=cs.id)
    amphi = Room(name="A1", building="Main", capacity=200, type=RoomType.amphitheater)
    classroom = Room(name="B12", building="Main", capacity=40, type=RoomType.classroom)
    lab = Room(name="LAB3", building="Annex", capacity=24, type=RoomType.lab)
    today = date.today()
    semester = Semester(
        code="S1",
        name="Fall semester",
        start_date=today - timedelta(days=30),
        end_date=today + timedelta(days=90),
        is_active=True,
    )
    archived = Semester(
        code="S0",
        name="Previous semester",
        start_date=today - timedelta(days=200),
        end_date=today - timedelta(days=60),
        is_active=False,
    )
    db.add_all([g1, g2, g3, algorithms, databases, amphi, classroom, lab, semester, archived])
    db.flush()

    def user(name, role, department=None, group=None):
        record = User(
            name=name,
            email=f"{name.lower().replace(' ', '.')}@campus.test",
            role=role,
            department_id=department.id if department else None,
            group_id=group.id if group else None,
        )
        db.add(record)
        return record

    campus = SimpleNamespace(
        cs=cs,
        math=math,
        g1=g1,
        g2=g2,
        g3=g3,
        algorithms=algorithms,
        databases=databases,
        amphi=amphi,
        classroom=classroom,
        lab=lab,
        semester=semester,
        archived=archived,
        admin=user("Ada Admin", UserRole.admin),
        head=user("Hugo Head", UserRole.department_head, department=cs),
        math_head=user("Mia Head", UserRole.department_head, department=math),
        teacher=user("Tess Teacher", UserRole.teacher, department=cs),
        other_teacher=user("Omar Teacher", UserRole.teacher, department=cs),
        student=user("Sam Student", UserRole.student, group=g1),
        classmate=user("Cleo Student", UserRole.student, group=g1),
        math_student=user("Max Student", UserRole.student, group=g3),
    )
    db.commit()
    return campus


@pytest.fixture()
def campus(db_session):
    return build_campus(db_session)


def make_slot(db, campus, **overrides) -> TimetableSlot:
    values = {
        "semester_id": campus.semester.id,
        "day_of_week": DayOfWeek.monday,
        "start_time": "08:00",
        "end_time": "10:00",
        "subject_id": campus.algorithms.id,
        "teacher_id": campus.teacher.id,
        "room_id": campus.amphi.id,
        "group_id": campus.g1.id,
    }
    values.update(overrides)
    slot = TimetableSlot(**values)
    db.add(slot)
    db.commit()
    return slot


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
