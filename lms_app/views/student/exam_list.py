import logging

import flet as ft

from lms_app.config import COLORS
from lms_app.utils.attempt_engine import ExamAttemptEngine
from lms_app.utils.errors import AttemptCreationError, DataError
from lms_app.utils.exam_catalog import Availability, ExamCatalog
from lms_app.views.common.widgets import empty_state, format_datetime, page_title, show_snack
from lms_app.views.student.exam_interface import ExamInterface

logger = logging.getLogger(__name__)

AVAILABILITY_LABELS = {
    Availability.START: ("Start exam", COLORS['primary']),
    Availability.RESUME: ("Resume exam", COLORS['warning']),
    Availability.DONE: ("Completed", COLORS['success']),
    Availability.NOT_YET_OPEN: ("Not open yet", COLORS['secondary']),
    Availability.UNAVAILABLE: ("Unavailable", COLORS['secondary']),
}


class ExamListView(ft.Column):
    """Student: exams of their class with start / resume actions"""

    def __init__(self, context):
        super().__init__(spacing=16, scroll=ft.ScrollMode.AUTO, expand=True)
        self.context = context
        self.catalog = ExamCatalog(context.data_client)
        self.cards = ft.Column(spacing=12)
        self.controls = [page_title("Exams", "Exams scheduled for your class"), self.cards]
        self.load()

    def load(self):
        try:
            listings = self.catalog.list_for_student(self.context.user)
        except DataError as e:
            self.cards.controls = [ft.Text(f"Could not load exams: {e}", color=COLORS['error'])]
            return
        self.cards.controls = [self.exam_card(listing) for listing in listings] or [
            empty_state("No exams for your class yet", ft.Icons.ASSIGNMENT)]

    def exam_card(self, listing):
        exam = listing.exam
        label, color = AVAILABILITY_LABELS[listing.availability]
        actionable = listing.availability in (Availability.START, Availability.RESUME)
        details = [
            f"{len(exam.questions)} questions",
            f"{exam.duration_minutes} minutes",
            f"opens {format_datetime(exam.scheduled_start)}" if exam.scheduled_start else "open",
        ]
        if listing.score is not None:
            details.append(f"score {float(listing.score):g}")

        return ft.Container(
            content=ft.Row([
                ft.Column([
                    ft.Text(exam.title, size=18, weight=ft.FontWeight.BOLD, color=COLORS['text_primary']),
                    ft.Text(exam.description or "", color=COLORS['text_secondary'], visible=bool(exam.description)),
                    ft.Text(" | ".join(details), size=12, color=COLORS['text_secondary']),
                ], spacing=4, expand=True),
                ft.ElevatedButton(
                    label,
                    disabled=not actionable,
                    on_click=lambda e, item=listing: self.open_exam(item),
                    style=ft.ButtonStyle(bgcolor=color, color=ft.Colors.WHITE) if actionable else None
                )
            ]),
            bgcolor=COLORS['surface'],
            padding=20,
            border_radius=10
        )

    def open_exam(self, listing):
        engine = ExamAttemptEngine(
            data_client=self.context.data_client,
            registry=self.context.session_manager.attempts
        )
        try:
            if listing.availability is Availability.RESUME:
                engine.resume(listing.exam, listing.open_attempt, self.context.user)
            else:
                engine.start(listing.exam, self.context.user)
        except AttemptCreationError as ex:
            show_snack(self.page, str(ex), error=True)
            self.load()
            self.update()
            return

        self.context.take_over(ExamInterface(engine, on_exit=lambda: self.context.take_over(None)))
