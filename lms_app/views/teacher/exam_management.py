import logging
from datetime import datetime

import flet as ft

from lms_app.config import COLORS, DEFAULT_EXAM_DURATION
from lms_app.database.models import parse_timestamp
from lms_app.utils.classroom import ClassroomService
from lms_app.utils.errors import DataError
from lms_app.utils.exam_catalog import ExamCatalog
from lms_app.utils.logging_config import get_audit_logger
from lms_app.utils.question_bank import QuestionBank
from lms_app.views.common.widgets import empty_state, format_datetime, page_title, show_snack

logger = logging.getLogger(__name__)

DATETIME_INPUT_FORMAT = '%Y-%m-%d %H:%M'


class ExamManagementView(ft.Column):
    """Teacher: create exams from bank questions and list existing ones"""

    def __init__(self, context):
        super().__init__(spacing=16, scroll=ft.ScrollMode.AUTO, expand=True)
        self.context = context
        self.catalog = ExamCatalog(context.data_client)
        self.classroom = ClassroomService(context.data_client)
        self.bank = QuestionBank(context.data_client)
        self.audit = get_audit_logger()
        self.selected_questions = set()

        self.title_field = ft.TextField(label="Title", width=320)
        self.class_dropdown = ft.Dropdown(label="Class", width=220)
        self.description_field = ft.TextField(label="Description", multiline=True, width=560)
        self.start_field = ft.TextField(label="Starts at (YYYY-MM-DD HH:MM)", width=260,
                                        hint_text="empty = open now")
        self.duration_field = ft.TextField(label="Duration (minutes)", value=str(DEFAULT_EXAM_DURATION),
                                           width=160, keyboard_type=ft.KeyboardType.NUMBER)
        self.random_switch = ft.Switch(label="Shuffle question order", value=False)
        self.question_list = ft.Column(spacing=2, scroll=ft.ScrollMode.AUTO, height=260)
        self.selection_text = ft.Text("0 questions selected", color=COLORS['text_secondary'])
        self.exams_container = ft.Container()

        self.controls = [
            page_title("Exams", "Schedule exams for your classes"),
            ft.Container(
                content=ft.Column([
                    ft.Row([self.title_field, self.class_dropdown]),
                    self.description_field,
                    ft.Row([self.start_field, self.duration_field, self.random_switch]),
                    ft.Row([ft.Text("Questions", weight=ft.FontWeight.BOLD), self.selection_text]),
                    self.question_list,
                    ft.ElevatedButton("Create exam", icon=ft.Icons.SAVE, on_click=self.create_clicked,
                                      style=ft.ButtonStyle(bgcolor=COLORS['primary'], color=ft.Colors.WHITE))
                ], spacing=10),
                bgcolor=COLORS['surface'], padding=15, border_radius=10
            ),
            ft.Text("Existing exams", size=18, weight=ft.FontWeight.BOLD),
            self.exams_container
        ]
        self.load_form()
        self.load_exams()

    def load_form(self):
        try:
            classes = self.classroom.list_classes()
            questions = self.bank.list_questions()
        except DataError as e:
            self.question_list.controls = [ft.Text(f"Could not load form data: {e}", color=COLORS['error'])]
            return
        self.class_dropdown.options = [ft.dropdown.Option(str(c['id']), c.get('nama', '')) for c in classes]
        self.question_list.controls = [
            ft.Checkbox(
                label=f"[{q.get('mapel', '')} | {q.get('tipe')}] {q.get('pertanyaan', '')[:100]}",
                on_change=lambda e, qid=q['id']: self.toggle_question(qid, e.control.value)
            ) for q in questions
        ] or [ft.Text("The question bank is empty", color=COLORS['text_secondary'])]

    def toggle_question(self, question_id, checked):
        if checked:
            self.selected_questions.add(question_id)
        else:
            self.selected_questions.discard(question_id)
        self.selection_text.value = f"{len(self.selected_questions)} questions selected"
        self.selection_text.update()

    def load_exams(self):
        try:
            exams = self.catalog.list_author_exams(self.context.user.id)
        except DataError as e:
            self.exams_container.content = ft.Text(f"Could not load exams: {e}", color=COLORS['error'])
            return
        if not exams:
            self.exams_container.content = empty_state("No exams yet")
            return
        self.exams_container.content = ft.DataTable(
            columns=[ft.DataColumn(ft.Text(h)) for h in ("Title", "Class", "Starts", "Minutes", "Questions", "Shuffled")],
            rows=[
                ft.DataRow(cells=[
                    ft.DataCell(ft.Text(row.get('judul', ''))),
                    ft.DataCell(ft.Text(row.get('kelas_nama', ''))),
                    ft.DataCell(ft.Text(format_datetime(parse_timestamp(row.get('waktu_mulai'))))),
                    ft.DataCell(ft.Text(str(row.get('durasi_menit', '')))),
                    ft.DataCell(ft.Text(str(row['question_count']))),
                    ft.DataCell(ft.Icon(ft.Icons.CHECK if row.get('aturan_random') else ft.Icons.REMOVE)),
                ]) for row in exams
            ]
        )

    def _parse_start(self):
        text = (self.start_field.value or '').strip()
        if not text:
            return None
        try:
            # Entered in local time
            return datetime.strptime(text, DATETIME_INPUT_FORMAT).astimezone()
        except ValueError:
            raise ValueError("Start time must look like 2025-01-31 08:00")

    def create_clicked(self, e):
        try:
            duration = int(self.duration_field.value or 0)
            exam = self.catalog.create_exam(
                author_id=self.context.user.id,
                class_id=int(self.class_dropdown.value) if self.class_dropdown.value else None,
                title=self.title_field.value,
                duration_minutes=duration,
                question_ids=sorted(self.selected_questions),
                description=self.description_field.value or '',
                scheduled_start=self._parse_start(),
                randomize=bool(self.random_switch.value)
            )
        except ValueError as ex:
            show_snack(self.page, str(ex), error=True)
            return
        except DataError as ex:
            show_snack(self.page, f"Could not create exam: {ex}", error=True)
            return

        self.audit.log_exam_create(self.context.user.id, exam['id'], exam.get('judul', ''), len(self.selected_questions))
        show_snack(self.page, "Exam created")
        self.title_field.value = ""
        self.description_field.value = ""
        self.start_field.value = ""
        self.selected_questions.clear()
        self.load_form()
        self.load_exams()
        self.selection_text.value = "0 questions selected"
        self.update()
