import flet as ft

from lms_app.config import COLORS


def show_snack(page, message: str, error: bool = False):
    if not page:
        return
    page.open(ft.SnackBar(
        ft.Text(message, color=ft.Colors.WHITE),
        bgcolor=COLORS['error'] if error else COLORS['success']
    ))


def page_title(text: str, subtitle: str = None):
    controls = [ft.Text(text, size=24, weight=ft.FontWeight.BOLD, color=COLORS['text_primary'])]
    if subtitle:
        controls.append(ft.Text(subtitle, size=14, color=COLORS['text_secondary']))
    return ft.Column(controls, spacing=2)


def stat_card(title: str, value, icon, color: str = None):
    return ft.Container(
        content=ft.Row([
            ft.Container(
                content=ft.Icon(icon, color=ft.Colors.WHITE, size=24),
                bgcolor=color or COLORS['primary'],
                border_radius=30,
                padding=12
            ),
            ft.Column([
                ft.Text(title, size=13, color=COLORS['text_secondary']),
                ft.Text(str(value), size=24, weight=ft.FontWeight.BOLD, color=COLORS['text_primary'])
            ], spacing=2)
        ], spacing=15),
        bgcolor=COLORS['surface'],
        border_radius=10,
        padding=20,
        col={"sm": 12, "md": 6, "lg": 4},
        shadow=ft.BoxShadow(blur_radius=6, color=ft.Colors.with_opacity(0.08, ft.Colors.BLACK))
    )


def empty_state(message: str, icon=ft.Icons.INBOX):
    return ft.Container(
        content=ft.Column([
            ft.Icon(icon, size=48, color=COLORS['text_secondary']),
            ft.Text(message, color=COLORS['text_secondary'])
        ], horizontal_alignment=ft.CrossAxisAlignment.CENTER),
        alignment=ft.alignment.center,
        padding=40
    )


def format_datetime(value) -> str:
    # NaT compares unequal to itself
    if not value or value != value:
        return "-"
    if hasattr(value, 'astimezone'):
        return value.astimezone().strftime('%d %b %Y %H:%M')
    return str(value)
