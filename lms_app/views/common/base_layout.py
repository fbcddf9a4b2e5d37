import logging

import flet as ft

from lms_app.config import APP_NAME, COLORS
from lms_app.database.models import Role
from lms_app.utils import permissions
from lms_app.views.common.router import ScreenContext, build_screen
from lms_app.views.common.widgets import show_snack

logger = logging.getLogger(__name__)

ROLE_LABELS = {
    Role.ADMIN: "Administrator",
    Role.GURU: "Teacher",
    Role.SISWA: "Student",
}


class AppLayout(ft.Column):
    """Navigation rail, top bar and the content area for the signed-in user"""

    def __init__(self, session_manager, user, data_client, logout_callback):
        super().__init__(spacing=0, expand=True)
        self.session_manager = session_manager
        self.user = user
        self.data_client = data_client
        self.logout_callback = logout_callback
        self.current_view = permissions.DASHBOARD

        self.nav_items = permissions.nav_items_for(user.role)

        self.nav_rail = ft.NavigationRail(
            selected_index=0,
            label_type=ft.NavigationRailLabelType.ALL,
            min_width=100,
            min_extended_width=200,
            destinations=[
                ft.NavigationRailDestination(
                    icon=getattr(ft.Icons, item.icon, ft.Icons.CIRCLE),
                    label=item.label
                ) for item in self.nav_items
            ],
            on_change=self.nav_changed,
            bgcolor=COLORS['surface']
        )

        self.content_area = ft.Container(
            expand=True,
            padding=ft.padding.all(20),
            bgcolor=COLORS['background']
        )

        self.shell = ft.Column([
            self.create_top_bar(),
            ft.Row([
                self.nav_rail,
                ft.VerticalDivider(width=1),
                self.content_area
            ], spacing=0, expand=True)
        ], spacing=0, expand=True)

        self.controls = [self.shell]
        self.context = ScreenContext(
            session_manager=session_manager,
            user=user,
            data_client=data_client,
            navigate=self.show_view,
            take_over=self.take_over
        )
        self.show_view(permissions.DASHBOARD)

    def create_top_bar(self):
        return ft.Container(
            content=ft.Row([
                ft.Text(APP_NAME, size=20, weight=ft.FontWeight.BOLD, color=COLORS['text_primary']),
                ft.Row([
                    ft.Icon(ft.Icons.PERSON, color=COLORS['text_secondary']),
                    ft.Text(
                        f"Welcome, {self.user.nama} ({ROLE_LABELS.get(self.user.role, '')})",
                        color=COLORS['text_secondary']
                    ),
                    ft.IconButton(
                        icon=ft.Icons.LOGOUT,
                        tooltip="Logout",
                        on_click=self.logout_clicked,
                        icon_color=COLORS['error']
                    )
                ], spacing=10)
            ], alignment=ft.MainAxisAlignment.SPACE_BETWEEN),
            padding=ft.padding.symmetric(horizontal=20, vertical=15),
            bgcolor=COLORS['surface'],
            border=ft.border.only(bottom=ft.BorderSide(1, COLORS['secondary']))
        )

    def nav_changed(self, e):
        index = e.control.selected_index
        self.show_view(self.nav_items[index].view)

    def show_view(self, view):
        view = permissions.resolve_view(self.user.role, view)
        self.current_view = view
        views = [item.view for item in self.nav_items]
        self.nav_rail.selected_index = views.index(view)
        try:
            self.content_area.content = build_screen(self.context, view)
        except Exception as ex:
            logger.exception("Failed to open view %s", view)
            self.content_area.content = ft.Text(f"Could not open this page: {ex}", color=COLORS['error'])
            show_snack(self.page, str(ex), error=True)
        if self.page:
            self.update()

    def take_over(self, control):
        """Show `control` instead of the shell (None brings the shell back)"""
        if control is None:
            self.controls = [self.shell]
            self.show_view(self.current_view)
            return
        self.controls = [control]
        if self.page:
            self.update()

    def logout_clicked(self, e):
        self.logout_callback()
