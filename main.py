import logging
import os
import sys

import flet as ft

sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from lms_app.config import APP_NAME, TABLE_CLASSES
from lms_app.database.client import get_data_client
from lms_app.utils.errors import AuthError, DataError
from lms_app.utils.logging_config import setup_logging
from lms_app.utils.session import SessionManager
from lms_app.views.auth.login_view import LoginView
from lms_app.views.common.base_layout import AppLayout

logger = logging.getLogger(__name__)


class LmsApp:
    def __init__(self, session_manager=None, data_client=None):
        self.data_client = data_client or get_data_client()
        self.session_manager = session_manager or SessionManager()
        self.page = None
        self.current_view = None
        self._unsubscribe = None

    def main(self, page: ft.Page):
        self.page = page
        page.title = APP_NAME
        page.theme_mode = ft.ThemeMode.LIGHT
        page.window.width = 1200
        page.window.height = 800
        page.window.min_width = 800
        page.window.min_height = 600
        page.padding = 0
        page.spacing = 0
        page.theme = ft.Theme(color_scheme_seed=ft.Colors.INDIGO, use_material3=True)
        page.on_disconnect = lambda e: self.shutdown()

        self._unsubscribe = self.session_manager.subscribe(self.identity_changed)
        self.session_manager.bind_auth_events()

        try:
            identity = self.session_manager.restore()
        except DataError as e:
            logger.warning("Could not restore previous session: %s", e)
            identity = None

        if identity is None:
            self.show_login()

    def identity_changed(self, identity):
        """Session listener: signed-in users get their layout, everyone else the login screen"""
        if self.page is None:
            return
        if identity is None:
            self.show_login()
        else:
            self.show_layout(identity)

    def _load_classes(self):
        return self.data_client.select(TABLE_CLASSES, order='nama', columns='id, nama')

    def show_login(self):
        self.page.clean()
        self.current_view = LoginView(self.session_manager, classes_loader=self._load_classes)
        self.page.add(self.current_view)
        self.page.update()

    def show_layout(self, identity):
        logger.info("Showing %s layout for %s", identity.role.value, identity.email)
        self.page.clean()
        self.current_view = AppLayout(self.session_manager, identity, self.data_client, self.logout)
        self.page.add(self.current_view)
        self.page.update()

    def logout(self):
        """Sign out; the identity listener shows the login screen"""
        try:
            self.session_manager.logout()
        except AuthError as e:
            logger.warning("Remote sign-out failed: %s", e)

    def shutdown(self):
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        self.session_manager.close()


def main(page: ft.Page):
    app = LmsApp()
    app.main(page)


def run_app():
    setup_logging()
    ft.app(target=main)


if __name__ == "__main__":
    run_app()
