import logging

import flet as ft

from lms_app.config import COLORS
from lms_app.database.models import Role
from lms_app.utils.errors import DataError
from lms_app.utils.logging_config import get_audit_logger
from lms_app.utils.pdf_generator import ResultsPDFGenerator
from lms_app.utils.results_report import ResultsService, export_results_csv, summarize
from lms_app.views.common.widgets import empty_state, format_datetime, page_title, show_snack

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    'in_progress': ("In progress", COLORS['warning']),
    'submitted': ("Awaiting grade", COLORS['info']),
    'graded': ("Graded", COLORS['success']),
}


def _score(value) -> str:
    try:
        return f"{float(value):g}"
    except (TypeError, ValueError):
        return "-"


def status_chip(status):
    label, color = STATUS_LABELS.get(status, (status or '-', COLORS['secondary']))
    return ft.Container(
        content=ft.Text(label, color=ft.Colors.WHITE, size=12),
        bgcolor=color,
        padding=ft.padding.symmetric(horizontal=8, vertical=3),
        border_radius=10
    )


class ResultsView(ft.Column):
    """Own attempts for students; all visible attempts with summary and export for staff"""

    def __init__(self, context):
        super().__init__(spacing=16, scroll=ft.ScrollMode.AUTO, expand=True)
        self.context = context
        self.results = ResultsService(context.data_client)
        self.audit = get_audit_logger()
        self.frame = None
        self.summary = None

        if context.user.role is Role.SISWA:
            self.build_student()
        else:
            self.build_staff()

    def build_student(self):
        header = page_title("My Results", "Your exam attempts")
        try:
            rows = self.results.student_results(self.context.user.id)
        except DataError as e:
            self.controls = [header, ft.Text(f"Could not load results: {e}", color=COLORS['error'])]
            return
        if not rows:
            self.controls = [header, empty_state("You have not taken any exams yet", ft.Icons.ASSESSMENT)]
            return
        self.controls = [header, ft.DataTable(
            columns=[ft.DataColumn(ft.Text(h)) for h in ("Exam", "Date", "Score", "Status")],
            rows=[
                ft.DataRow(cells=[
                    ft.DataCell(ft.Text(row['exam'])),
                    ft.DataCell(ft.Text(format_datetime(row['start_time']))),
                    ft.DataCell(ft.Text(_score(row['score']))),
                    ft.DataCell(status_chip(row['status'])),
                ]) for row in rows
            ]
        )]

    def build_staff(self):
        title = "All Results" if self.context.user.role is Role.ADMIN else "Results"
        header = ft.Row([
            page_title(title, "Attempts on the exams you can see"),
            ft.Row([
                ft.OutlinedButton("Export CSV", icon=ft.Icons.TABLE_VIEW, on_click=self.export_csv),
                ft.OutlinedButton("Export PDF", icon=ft.Icons.PICTURE_AS_PDF, on_click=self.export_pdf),
            ])
        ], alignment=ft.MainAxisAlignment.SPACE_BETWEEN)

        try:
            self.frame = self.results.staff_results(self.context.user)
        except DataError as e:
            self.controls = [header, ft.Text(f"Could not load results: {e}", color=COLORS['error'])]
            return
        if self.frame.empty:
            self.controls = [header, empty_state("No attempts yet", ft.Icons.ASSESSMENT)]
            return

        self.summary = summarize(self.frame)
        summary_table = ft.DataTable(
            columns=[ft.DataColumn(ft.Text(h)) for h in ("Exam", "Attempts", "Graded", "Average", "Highest", "Lowest", "Pass %")],
            rows=[
                ft.DataRow(cells=[
                    ft.DataCell(ft.Text(str(row.exam))),
                    ft.DataCell(ft.Text(str(row.attempts))),
                    ft.DataCell(ft.Text(str(row.graded))),
                    ft.DataCell(ft.Text(_score(row.average))),
                    ft.DataCell(ft.Text(_score(row.highest))),
                    ft.DataCell(ft.Text(_score(row.lowest))),
                    ft.DataCell(ft.Text(_score(row.pass_rate))),
                ]) for row in self.summary.itertuples(index=False)
            ]
        )
        attempts_table = ft.DataTable(
            columns=[ft.DataColumn(ft.Text(h)) for h in ("Exam", "Student", "Started", "Score", "Status")],
            rows=[
                ft.DataRow(cells=[
                    ft.DataCell(ft.Text(str(row.exam))),
                    ft.DataCell(ft.Text(str(row.student))),
                    ft.DataCell(ft.Text(format_datetime(row.start_time))),
                    ft.DataCell(ft.Text(_score(row.score))),
                    ft.DataCell(status_chip(row.status)),
                ]) for row in self.frame.itertuples(index=False)
            ]
        )
        self.controls = [
            header,
            ft.Text("Summary per exam", size=18, weight=ft.FontWeight.BOLD),
            summary_table,
            ft.Text("Attempts", size=18, weight=ft.FontWeight.BOLD),
            attempts_table
        ]

    def export_csv(self, e):
        if self.frame is None or self.frame.empty:
            show_snack(self.page, "Nothing to export", error=True)
            return
        try:
            path = export_results_csv(self.frame)
        except OSError as ex:
            show_snack(self.page, f"Export failed: {ex}", error=True)
            return
        self.audit.log_export(self.context.user.id, 'csv', path, len(self.frame))
        show_snack(self.page, f"Saved to {path}")

    def export_pdf(self, e):
        if self.frame is None or self.frame.empty:
            show_snack(self.page, "Nothing to export", error=True)
            return
        try:
            path = ResultsPDFGenerator().generate_results_report(self.frame, self.summary)
        except OSError as ex:
            show_snack(self.page, f"Export failed: {ex}", error=True)
            return
        self.audit.log_export(self.context.user.id, 'pdf', path, len(self.frame))
        show_snack(self.page, f"Saved to {path}")
