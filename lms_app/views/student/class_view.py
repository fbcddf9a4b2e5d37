import html
import re

import flet as ft

from lms_app.config import COLORS
from lms_app.database.models import parse_timestamp
from lms_app.utils.classroom import ClassroomService
from lms_app.utils.errors import DataError
from lms_app.views.common.widgets import empty_state, format_datetime, page_title

TAG_RE = re.compile(r'<[^>]+>')


def html_to_text(content: str) -> str:
    """Plain-text rendering of material HTML"""
    text = re.sub(r'<\s*(br|/p|/div|/li)\s*/?>', '\n', content or '', flags=re.IGNORECASE)
    return html.unescape(TAG_RE.sub('', text)).strip()


def material_card(row):
    controls = [
        ft.Text(row.get('judul', ''), size=16, weight=ft.FontWeight.BOLD, color=COLORS['text_primary']),
        ft.Text(format_datetime(parse_timestamp(row.get('publish_date'))), size=12, color=COLORS['text_secondary']),
    ]
    body = html_to_text(row.get('konten_html'))
    if body:
        controls.append(ft.Text(body, selectable=True))
    if row.get('file_url'):
        controls.append(ft.TextButton("Open attachment", icon=ft.Icons.ATTACH_FILE, url=row['file_url']))
    return ft.Container(
        content=ft.Column(controls, spacing=6),
        bgcolor=COLORS['surface'],
        padding=15,
        border_radius=10,
        border=ft.border.all(1, ft.Colors.with_opacity(0.1, ft.Colors.BLACK))
    )


class StudentClassView(ft.Column):
    """Student: own class and its materials"""

    def __init__(self, context):
        super().__init__(spacing=16, scroll=ft.ScrollMode.AUTO, expand=True)
        self.context = context
        self.classroom = ClassroomService(context.data_client)
        user = context.user

        if user.kelas_id is None:
            self.controls = [page_title("My Class"), empty_state("You are not enrolled in a class yet")]
            return

        try:
            kelas = self.classroom.get_class(user.kelas_id) or {}
            materials = self.classroom.list_materials(user.kelas_id)
        except DataError as e:
            self.controls = [page_title("My Class"), ft.Text(f"Could not load your class: {e}", color=COLORS['error'])]
            return

        self.controls = [
            page_title(kelas.get('nama') or "My Class", "Learning materials from your teachers"),
            *([material_card(m) for m in materials] or [empty_state("No materials posted yet")])
        ]
