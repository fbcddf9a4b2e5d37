import logging

import flet as ft

from lms_app.config import COLORS
from lms_app.utils.classroom import ClassroomService
from lms_app.utils.errors import DataError
from lms_app.utils.logging_config import get_audit_logger
from lms_app.views.common.widgets import empty_state, page_title, show_snack

logger = logging.getLogger(__name__)

NO_TEACHER = 'none'


class ClassManagement(ft.Column):
    """Admin: create classes and assign homeroom teachers"""

    def __init__(self, context):
        super().__init__(spacing=20, scroll=ft.ScrollMode.AUTO, expand=True)
        self.context = context
        self.classroom = ClassroomService(context.data_client)
        self.audit = get_audit_logger()
        self.teachers = []

        self.name_field = ft.TextField(label="Class name", width=250, on_submit=self.create_clicked)
        self.teacher_dropdown = ft.Dropdown(label="Homeroom teacher", width=250)
        self.table_container = ft.Container()

        self.controls = [
            page_title("Manage Classes", "Create classes and assign homeroom teachers"),
            ft.Row([
                self.name_field,
                self.teacher_dropdown,
                ft.ElevatedButton("Add class", icon=ft.Icons.ADD, on_click=self.create_clicked,
                                  style=ft.ButtonStyle(bgcolor=COLORS['primary'], color=ft.Colors.WHITE))
            ], spacing=10),
            self.table_container
        ]
        self.load_data()

    def _teacher_options(self):
        return [ft.dropdown.Option(NO_TEACHER, "No teacher")] + [
            ft.dropdown.Option(str(t['id']), t.get('nama') or t.get('email', '')) for t in self.teachers
        ]

    def load_data(self):
        try:
            self.teachers = self.classroom.list_teachers()
            classes = self.classroom.list_classes()
        except DataError as e:
            self.table_container.content = ft.Text(f"Could not load classes: {e}", color=COLORS['error'])
            return

        self.teacher_dropdown.options = self._teacher_options()
        if not classes:
            self.table_container.content = empty_state("No classes yet")
            return

        rows = []
        for row in classes:
            current = row.get('wali_kelas_id')
            rows.append(ft.DataRow(cells=[
                ft.DataCell(ft.Text(row.get('nama', ''))),
                ft.DataCell(ft.Dropdown(
                    value=str(current) if current is not None else NO_TEACHER,
                    options=self._teacher_options(),
                    width=220,
                    dense=True,
                    on_change=lambda e, class_id=row['id']: self.assign_teacher(class_id, e.control.value)
                )),
            ]))
        self.table_container.content = ft.DataTable(
            columns=[ft.DataColumn(ft.Text("Class")), ft.DataColumn(ft.Text("Homeroom teacher"))],
            rows=rows
        )

    def _selected_teacher(self, value):
        return None if not value or value == NO_TEACHER else int(value)

    def create_clicked(self, e):
        try:
            row = self.classroom.create_class(self.name_field.value, self._selected_teacher(self.teacher_dropdown.value))
        except ValueError as ex:
            show_snack(self.page, str(ex), error=True)
            return
        except DataError as ex:
            show_snack(self.page, f"Could not create class: {ex}", error=True)
            return
        self.audit.log_class_create(self.context.user.id, row.get('id'), row.get('nama', ''))
        self.name_field.value = ""
        self.load_data()
        show_snack(self.page, "Class created")
        self.update()

    def assign_teacher(self, class_id, value):
        try:
            self.classroom.assign_homeroom_teacher(class_id, self._selected_teacher(value))
        except DataError as ex:
            show_snack(self.page, f"Could not update class: {ex}", error=True)
            return
        self.audit.log_content_action(self.context.user.id, "UPDATE", "kelas", class_id,
                                      {"wali_kelas_id": value})
        show_snack(self.page, "Homeroom teacher updated")
