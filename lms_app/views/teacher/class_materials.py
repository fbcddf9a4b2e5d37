import logging

import flet as ft

from lms_app.config import COLORS
from lms_app.utils.classroom import ClassroomService
from lms_app.utils.errors import DataError
from lms_app.utils.logging_config import get_audit_logger
from lms_app.views.common.widgets import empty_state, page_title, show_snack
from lms_app.views.student.class_view import material_card

logger = logging.getLogger(__name__)


class TeacherClassesView(ft.Column):
    """Teacher: own classes, their students and posted materials"""

    def __init__(self, context):
        super().__init__(spacing=16, scroll=ft.ScrollMode.AUTO, expand=True)
        self.context = context
        self.classroom = ClassroomService(context.data_client)
        self.audit = get_audit_logger()

        self.class_dropdown = ft.Dropdown(label="Class", width=300, on_change=lambda e: self.load_class())
        self.title_field = ft.TextField(label="Material title", width=500)
        self.content_field = ft.TextField(label="Content", multiline=True, min_lines=4, max_lines=10, width=500)
        self.file_field = ft.TextField(label="File link (optional)", width=500)
        self.students_column = ft.Column(spacing=4)
        self.materials_column = ft.Column(spacing=10)

        self.controls = [
            page_title("My Classes", "Post materials for the classes you teach"),
            self.class_dropdown,
            ft.Row([
                ft.Container(
                    content=ft.Column([
                        ft.Text("New material", weight=ft.FontWeight.BOLD),
                        self.title_field,
                        self.content_field,
                        self.file_field,
                        ft.ElevatedButton("Post material", icon=ft.Icons.SEND, on_click=self.post_clicked,
                                          style=ft.ButtonStyle(bgcolor=COLORS['primary'], color=ft.Colors.WHITE))
                    ], spacing=8),
                    bgcolor=COLORS['surface'], padding=15, border_radius=10
                ),
                ft.Container(
                    content=ft.Column([ft.Text("Students", weight=ft.FontWeight.BOLD), self.students_column]),
                    bgcolor=COLORS['surface'], padding=15, border_radius=10, width=260
                )
            ], vertical_alignment=ft.CrossAxisAlignment.START, spacing=16),
            ft.Text("Materials", size=18, weight=ft.FontWeight.BOLD),
            self.materials_column
        ]
        self.load_classes()

    def load_classes(self):
        try:
            classes = self.classroom.list_classes(teacher_id=self.context.user.id)
        except DataError as e:
            self.materials_column.controls = [ft.Text(f"Could not load classes: {e}", color=COLORS['error'])]
            return
        self.class_dropdown.options = [ft.dropdown.Option(str(c['id']), c.get('nama', '')) for c in classes]
        if classes:
            self.class_dropdown.value = str(classes[0]['id'])
            self.load_class()
        else:
            self.materials_column.controls = [empty_state("You are not homeroom teacher of any class yet")]

    def selected_class_id(self):
        return int(self.class_dropdown.value) if self.class_dropdown.value else None

    def load_class(self):
        class_id = self.selected_class_id()
        if class_id is None:
            return
        try:
            students = self.classroom.list_students(class_id)
            materials = self.classroom.list_materials(class_id)
        except DataError as e:
            self.materials_column.controls = [ft.Text(f"Could not load class: {e}", color=COLORS['error'])]
        else:
            self.students_column.controls = [ft.Text(s.get('nama', '')) for s in students] or [
                ft.Text("No students", color=COLORS['text_secondary'])]
            self.materials_column.controls = [material_card(m) for m in materials] or [
                empty_state("No materials posted yet")]
        if self.page:
            self.update()

    def post_clicked(self, e):
        class_id = self.selected_class_id()
        if class_id is None:
            show_snack(self.page, "Choose a class first", error=True)
            return
        try:
            row = self.classroom.post_material(
                self.context.user.id, class_id, self.title_field.value,
                self.content_field.value, (self.file_field.value or '').strip() or None
            )
        except ValueError as ex:
            show_snack(self.page, str(ex), error=True)
            return
        except DataError as ex:
            show_snack(self.page, f"Could not post material: {ex}", error=True)
            return
        self.audit.log_material_create(self.context.user.id, row.get('id'), class_id, row.get('judul', ''))
        self.title_field.value = ""
        self.content_field.value = ""
        self.file_field.value = ""
        show_snack(self.page, "Material posted")
        self.load_class()
