import logging

import flet as ft

from lms_app.config import APP_NAME, COLORS
from lms_app.database.models import Role
from lms_app.utils.errors import AuthError, DataError

logger = logging.getLogger(__name__)


class LoginView(ft.Container):
    """Sign-in card with a sign-up mode.

    A successful sign-in changes the session's identity; the app switches
    screens through its session subscription, not through this view.
    """

    def __init__(self, session_manager, classes_loader=None):
        super().__init__(expand=True, bgcolor=COLORS['background'], alignment=ft.alignment.center)
        self.session_manager = session_manager
        self.classes_loader = classes_loader
        self.sign_up_mode = False

        self.email_field = ft.TextField(
            label="Email",
            prefix_icon=ft.Icons.EMAIL,
            border_radius=8,
            filled=True,
            width=320,
            on_submit=self.submit_clicked
        )

        self.password_field = ft.TextField(
            label="Password",
            prefix_icon=ft.Icons.LOCK,
            password=True,
            can_reveal_password=True,
            border_radius=8,
            filled=True,
            width=320,
            on_submit=self.submit_clicked
        )

        self.name_field = ft.TextField(
            label="Full name",
            prefix_icon=ft.Icons.PERSON,
            border_radius=8,
            filled=True,
            width=320,
            visible=False
        )

        self.role_dropdown = ft.Dropdown(
            label="Role",
            width=320,
            value=Role.SISWA.value,
            options=[
                ft.dropdown.Option(Role.SISWA.value, "Student"),
                ft.dropdown.Option(Role.GURU.value, "Teacher"),
            ],
            visible=False
        )

        self.class_dropdown = ft.Dropdown(label="Class (students)", width=320, visible=False)

        self.submit_button = ft.ElevatedButton(
            text="Sign in",
            width=320,
            height=45,
            style=ft.ButtonStyle(
                bgcolor=COLORS['primary'],
                color=ft.Colors.WHITE,
                shape=ft.RoundedRectangleBorder(radius=8)
            ),
            on_click=self.submit_clicked
        )

        self.mode_button = ft.TextButton("No account yet? Sign up", on_click=self.toggle_mode)

        self.error_text = ft.Text("", color=COLORS['error'], size=14, visible=False)
        self.info_text = ft.Text("", color=COLORS['success'], size=14, visible=False)
        self.loading_ring = ft.ProgressRing(width=16, height=16, visible=False)

        self.content = ft.Container(
            content=ft.Column([
                ft.Icon(ft.Icons.SCHOOL_ROUNDED, size=70, color=COLORS['primary']),
                ft.Container(height=10),
                ft.Text(APP_NAME, size=28, weight=ft.FontWeight.BOLD, color=COLORS['text_primary']),
                ft.Text("Sign in to continue", size=14, color=COLORS['text_secondary']),
                ft.Container(height=20),
                self.name_field,
                self.email_field,
                self.password_field,
                self.role_dropdown,
                self.class_dropdown,
                ft.Container(content=self.error_text, alignment=ft.alignment.center),
                ft.Container(content=self.info_text, alignment=ft.alignment.center),
                ft.Row([self.submit_button, self.loading_ring],
                       alignment=ft.MainAxisAlignment.CENTER, spacing=10),
                self.mode_button
            ], horizontal_alignment=ft.CrossAxisAlignment.CENTER, spacing=8, tight=True),
            width=420,
            padding=ft.padding.all(35),
            bgcolor=COLORS['surface'],
            border_radius=16,
            shadow=ft.BoxShadow(
                spread_radius=1,
                blur_radius=30,
                color=ft.Colors.with_opacity(0.2, ft.Colors.BLACK),
                offset=ft.Offset(0, 10)
            )
        )

    def toggle_mode(self, e):
        self.sign_up_mode = not self.sign_up_mode
        for control in (self.name_field, self.role_dropdown, self.class_dropdown):
            control.visible = self.sign_up_mode
        self.submit_button.text = "Create account" if self.sign_up_mode else "Sign in"
        self.mode_button.text = "Already registered? Sign in" if self.sign_up_mode else "No account yet? Sign up"
        if self.sign_up_mode and not self.class_dropdown.options:
            self._load_classes()
        self.hide_messages()

    def _load_classes(self):
        if not self.classes_loader:
            return
        try:
            self.class_dropdown.options = [
                ft.dropdown.Option(str(row['id']), row.get('nama', '')) for row in self.classes_loader()
            ]
        except DataError as ex:
            # Sign-up still works without a class
            logger.warning("Could not load classes for sign-up: %s", ex)

    def submit_clicked(self, e):
        self.hide_messages()
        email = (self.email_field.value or '').strip()
        password = self.password_field.value or ''
        if not email or not password:
            self.show_error("Please enter your email and password")
            return

        self.show_loading(True)
        try:
            if self.sign_up_mode:
                role = self.role_dropdown.value or Role.SISWA.value
                kelas_id = None
                if role == Role.SISWA.value and self.class_dropdown.value:
                    kelas_id = int(self.class_dropdown.value)
                self.session_manager.sign_up(
                    email, password, self.name_field.value,
                    role=role,
                    kelas_id=kelas_id
                )
                self.show_loading(False)
                self.toggle_mode(None)
                self.show_info("Account created. Check your email to confirm it, then sign in.")
            else:
                self.session_manager.login(email, password)
                # The identity listener swaps this view out
        except AuthError as ex:
            self.show_loading(False)
            self.show_error(str(ex))
        except Exception as ex:
            logger.exception("Login error")
            self.show_loading(False)
            self.show_error(f"Login error: {type(ex).__name__}: {ex}")

    def show_error(self, message: str):
        self.error_text.value = message
        self.error_text.visible = True
        self._refresh()

    def show_info(self, message: str):
        self.info_text.value = message
        self.info_text.visible = True
        self._refresh()

    def hide_messages(self):
        self.error_text.visible = False
        self.info_text.visible = False
        self._refresh()

    def show_loading(self, show: bool):
        self.loading_ring.visible = show
        self.submit_button.disabled = show
        self._refresh()

    def _refresh(self):
        if self.page:
            self.update()
