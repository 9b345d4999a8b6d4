from app.models.absence import Absence, AbsenceStatus  # noqa: F401
from app.models.academic import Department, Group, Level, Specialty, Subject  # noqa: F401
from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.notification import Notification, NotificationType  # noqa: F401
from app.models.room import Room, RoomType  # noqa: F401
from app.models.semester import Semester  # noqa: F401
from app.models.timetable import DayOfWeek, SessionType, TimetableSlot  # noqa: F401
from app.models.user import User, UserRole, UserStatus  # noqa: F401
