import logging

import flet as ft

from lms_app.config import COLORS
from lms_app.utils.dashboard_stats import DashboardStats
from lms_app.utils.errors import DataError
from lms_app.views.common.widgets import page_title, stat_card

logger = logging.getLogger(__name__)


class _Dashboard(ft.Column):
    title = "Dashboard"

    def __init__(self, context):
        super().__init__(spacing=20, scroll=ft.ScrollMode.AUTO, expand=True)
        self.context = context
        self.stats = DashboardStats(context.data_client)
        self.cards = ft.ResponsiveRow(spacing=20, run_spacing=20)
        self.error_text = ft.Text("", color=COLORS['error'], visible=False)
        self.controls = [
            page_title(self.title, f"Signed in as {context.user.nama}"),
            self.error_text,
            self.cards
        ]
        self.load()

    def load(self):
        try:
            self.cards.controls = self.build_cards()
        except DataError as e:
            logger.error("Dashboard load failed: %s", e)
            self.error_text.value = f"Could not load statistics: {e}"
            self.error_text.visible = True

    def build_cards(self):
        return []


class AdminDashboard(_Dashboard):
    title = "Admin Dashboard"

    def build_cards(self):
        stats = self.stats.admin_stats()
        return [
            stat_card("Total Students", stats['students'], ft.Icons.PEOPLE),
            stat_card("Total Teachers", stats['teachers'], ft.Icons.PERSON, COLORS['info']),
            stat_card("Total Classes", stats['classes'], ft.Icons.SCHOOL, COLORS['success']),
            stat_card("Exams", stats['exams'], ft.Icons.ASSIGNMENT, COLORS['warning']),
        ]


class TeacherDashboard(_Dashboard):
    title = "Teacher Dashboard"

    def build_cards(self):
        stats = self.stats.teacher_stats(self.context.user)
        return [
            stat_card("My Classes", stats['classes'], ft.Icons.SCHOOL),
            stat_card("Upcoming Exams", stats['upcoming_exams'], ft.Icons.EVENT, COLORS['info']),
            stat_card("Grading Needed", f"{stats['essays_to_grade']} essays", ft.Icons.GRADING, COLORS['warning']),
        ]


class StudentDashboard(_Dashboard):
    title = "Student Dashboard"

    def build_cards(self):
        stats = self.stats.student_stats(self.context.user)
        recent = stats['recent_score']
        return [
            stat_card("Enrolled Class", stats['class_name'] or "Not assigned", ft.Icons.SCHOOL),
            stat_card("Exams", stats['exams'], ft.Icons.ASSIGNMENT, COLORS['info']),
            stat_card("Recent Grade", f"{float(recent):g}" if recent is not None else "-", ft.Icons.GRADE, COLORS['success']),
        ]
