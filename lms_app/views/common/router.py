"""
Role-gated screen lookup

Maps (role, view) to the screen class that renders it. Views a role may not
open resolve to that role's dashboard.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from lms_app.database.models import Role, UserProfile
from lms_app.utils import permissions
from lms_app.utils.permissions import DASHBOARD, CLASSES, QUESTION_BANK, EXAMS, RESULTS
from lms_app.views.admin.class_management import ClassManagement
from lms_app.views.common.dashboard import AdminDashboard, TeacherDashboard, StudentDashboard
from lms_app.views.common.results_view import ResultsView
from lms_app.views.student.class_view import StudentClassView
from lms_app.views.student.exam_list import ExamListView
from lms_app.views.teacher.class_materials import TeacherClassesView
from lms_app.views.teacher.exam_management import ExamManagementView
from lms_app.views.teacher.question_bank import QuestionBankView


@dataclass
class ScreenContext:
    """What a screen needs from the app shell"""
    session_manager: Any
    user: UserProfile
    data_client: Any
    navigate: Callable[[str], None] = None
    # Replaces the whole shell, e.g. with the exam-taking screen; None restores it
    take_over: Callable[[Optional[Any]], None] = None
    extras: dict = field(default_factory=dict)


SCREENS = {
    (Role.ADMIN, DASHBOARD): AdminDashboard,
    (Role.ADMIN, CLASSES): ClassManagement,
    (Role.ADMIN, RESULTS): ResultsView,
    (Role.GURU, DASHBOARD): TeacherDashboard,
    (Role.GURU, CLASSES): TeacherClassesView,
    (Role.GURU, QUESTION_BANK): QuestionBankView,
    (Role.GURU, EXAMS): ExamManagementView,
    (Role.GURU, RESULTS): ResultsView,
    (Role.SISWA, DASHBOARD): StudentDashboard,
    (Role.SISWA, CLASSES): StudentClassView,
    (Role.SISWA, EXAMS): ExamListView,
    (Role.SISWA, RESULTS): ResultsView,
}


def screen_for(role, view: Optional[str]):
    """Screen class for a role and requested view"""
    role = Role.parse(role)
    return SCREENS[(role, permissions.resolve_view(role, view))]


def build_screen(context: ScreenContext, view: Optional[str]):
    return screen_for(context.user.role, view)(context)
