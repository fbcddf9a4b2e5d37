import logging

import flet as ft

from lms_app.config import COLORS
from lms_app.database.models import AttemptStatus, QuestionKind
from lms_app.utils.errors import DataError, InvalidAnswerError
from lms_app.utils.exam_timer import format_remaining
from lms_app.views.common.widgets import show_snack

logger = logging.getLogger(__name__)

EXAM_COLORS = {
    'primary': COLORS['primary'],
    'warning': COLORS['warning'],
    'danger': COLORS['error'],
    'answered': COLORS['success'],
    'unanswered': '#e2e8f0',
    'text_primary': COLORS['text_primary'],
    'text_secondary': COLORS['text_secondary'],
}

KIND_HINTS = {
    QuestionKind.MCQ: "Choose one answer",
    QuestionKind.TRUE_FALSE: "True or false?",
    QuestionKind.ISIAN: "Fill in the blank",
    QuestionKind.ESAI: "Write your answer",
}


class ExamInterface(ft.Container):
    """Exam-taking screen bound to a started (or resumed) ExamAttemptEngine.

    Every selection and every edit of a typed answer is recorded with the
    engine, whose save queue coalesces bursts of typing.
    """

    def __init__(self, engine, on_exit):
        super().__init__(expand=True, bgcolor=COLORS['background'], padding=20)
        self.engine = engine
        self.on_exit = on_exit
        self._confirm_dialog = None
        self._exited = False

        self.timer_text = ft.Text(
            format_remaining(engine.remaining_seconds),
            size=22,
            weight=ft.FontWeight.BOLD,
            color=EXAM_COLORS['primary']
        )
        self.warning_text = ft.Text("", color=ft.Colors.WHITE, weight=ft.FontWeight.W_500)
        self.warning_banner = ft.Container(
            content=ft.Row([ft.Icon(ft.Icons.TIMER, color=ft.Colors.WHITE), self.warning_text]),
            bgcolor=EXAM_COLORS['warning'],
            padding=10,
            border_radius=8,
            visible=False
        )
        self.body = ft.Container(expand=True)
        self.palette = ft.Row(wrap=True, spacing=6, run_spacing=6, width=220)
        self.palette_panel = ft.Container(
            content=ft.Column([ft.Text("Questions", weight=ft.FontWeight.BOLD), self.palette]),
            bgcolor=COLORS['surface'],
            padding=15,
            border_radius=10
        )

        self.content = ft.Column([
            ft.Row([
                ft.Text(engine.exam.title, size=22, weight=ft.FontWeight.BOLD, color=EXAM_COLORS['text_primary']),
                ft.Row([ft.Icon(ft.Icons.TIMER_OUTLINED, color=EXAM_COLORS['primary']), self.timer_text])
            ], alignment=ft.MainAxisAlignment.SPACE_BETWEEN),
            self.warning_banner,
            ft.Row([self.body, self.palette_panel], vertical_alignment=ft.CrossAxisAlignment.START, expand=True)
        ], spacing=15, expand=True)

        engine.add_finished_listener(self._on_finished)
        engine.add_time_warning_listener(self._on_warning)

        if engine.result is not None:
            self.show_result(engine.result)
        else:
            self.render_question()

    # ---- lifecycle -----------------------------------------------------------

    def did_mount(self):
        if self.engine.result is None:
            try:
                self.engine.start_timer(self._on_tick)
            except RuntimeError as e:
                logger.warning("Timer not started: %s", e)

    def will_unmount(self):
        if self.engine.result is None:
            self.engine.close()

    def _refresh(self):
        if self.page:
            self.update()

    # ---- timer ---------------------------------------------------------------

    def _on_tick(self, remaining):
        self.timer_text.value = format_remaining(remaining)
        if remaining <= 60:
            self.timer_text.color = EXAM_COLORS['danger']
        elif remaining <= 300:
            self.timer_text.color = EXAM_COLORS['warning']
        try:
            if self.page:
                self.timer_text.update()
        except Exception as e:
            # The countdown keeps running even if one repaint fails
            logger.debug("[TIMER] Display update failed: %s", e)

    def _on_warning(self, threshold):
        minutes = threshold // 60
        self.warning_text.value = f"Warning: {minutes} minute{'s' if minutes != 1 else ''} remaining!"
        self.warning_banner.bgcolor = EXAM_COLORS['danger'] if threshold <= 60 else EXAM_COLORS['warning']
        self.warning_banner.visible = True
        self._refresh()

    # ---- questions -----------------------------------------------------------

    def render_question(self):
        engine = self.engine
        question = engine.current_question
        index = engine.current_question_index
        total = len(engine.questions)

        if question.kind in (QuestionKind.MCQ, QuestionKind.TRUE_FALSE):
            if question.kind is QuestionKind.MCQ:
                choices = [ft.Radio(value=opt.key, label=f"{opt.key}. {opt.text}") for opt in question.options]
            else:
                choices = [ft.Radio(value='true', label="True"), ft.Radio(value='false', label="False")]
            answer_control = ft.RadioGroup(
                value=engine.answers.get(question.id),
                content=ft.Column(choices, spacing=8),
                on_change=lambda e, qid=question.id: self.record(qid, e.control.value)
            )
        else:
            essay = question.kind is QuestionKind.ESAI
            answer_control = ft.TextField(
                label="Your essay response" if essay else "Your answer",
                value=engine.answers.get(question.id, ''),
                multiline=essay,
                min_lines=6 if essay else 1,
                max_lines=12 if essay else 3,
                on_change=lambda e, qid=question.id: self.type_answer(qid, e.control.value)
            )
        self.answer_control = answer_control

        previous_button = ft.OutlinedButton(
            "Previous", icon=ft.Icons.ARROW_BACK, disabled=engine.is_first_question,
            on_click=lambda e: self.move(-1)
        )
        if engine.is_last_question:
            forward_button = ft.ElevatedButton(
                "Submit", icon=ft.Icons.SEND, on_click=self.submit_clicked,
                style=ft.ButtonStyle(bgcolor=EXAM_COLORS['answered'], color=ft.Colors.WHITE)
            )
        else:
            forward_button = ft.ElevatedButton(
                "Next", icon=ft.Icons.ARROW_FORWARD, on_click=lambda e: self.move(1),
                style=ft.ButtonStyle(bgcolor=EXAM_COLORS['primary'], color=ft.Colors.WHITE)
            )

        self.body.content = ft.Container(
            content=ft.Column([
                ft.Row([
                    ft.Text(f"Question {index + 1} of {total}", size=18, weight=ft.FontWeight.BOLD),
                    ft.Text(f"{engine.answered_count} answered", color=EXAM_COLORS['text_secondary'])
                ], alignment=ft.MainAxisAlignment.SPACE_BETWEEN),
                ft.Text(KIND_HINTS[question.kind], size=13, color=EXAM_COLORS['text_secondary']),
                ft.Text(question.prompt, size=18, color=EXAM_COLORS['text_primary'], selectable=True),
                ft.Container(content=answer_control, padding=ft.padding.only(top=10)),
                ft.Container(expand=True),
                ft.Row([previous_button, forward_button], alignment=ft.MainAxisAlignment.SPACE_BETWEEN)
            ], spacing=12, expand=True),
            bgcolor=COLORS['surface'],
            padding=25,
            border_radius=10,
            expand=True
        )
        self.render_palette()

    def render_palette(self):
        engine = self.engine
        buttons = []
        for position, question in enumerate(engine.questions):
            answered = engine.is_answered(question.id)
            current = position == engine.current_question_index
            buttons.append(ft.Container(
                content=ft.Text(str(position + 1), color=ft.Colors.WHITE if answered else EXAM_COLORS['text_primary']),
                width=36,
                height=36,
                alignment=ft.alignment.center,
                border_radius=6,
                bgcolor=EXAM_COLORS['answered'] if answered else EXAM_COLORS['unanswered'],
                border=ft.border.all(2, EXAM_COLORS['primary']) if current else None,
                on_click=lambda e, i=position: self.jump(i),
                tooltip=f"Question {position + 1}"
            ))
        self.palette.controls = buttons

    def record(self, question_id, value):
        try:
            if not self.engine.record_answer(question_id, value):
                return
        except InvalidAnswerError as ex:
            show_snack(self.page, str(ex), error=True)
            return
        if self.engine.result is None:
            self.render_palette()
            self._refresh()

    def type_answer(self, question_id, text):
        was_answered = self.engine.is_answered(question_id)
        try:
            if not self.engine.record_answer(question_id, text):
                return
        except InvalidAnswerError as ex:
            logger.warning("Answer for question %s rejected: %s", question_id, ex)
            return
        if self.engine.is_answered(question_id) != was_answered:
            self.render_palette()
            self._refresh()

    def move(self, delta):
        if self.engine.result is not None:
            return
        self.engine.navigate(delta)
        self.render_question()
        self._refresh()

    def jump(self, index):
        if self.engine.result is not None:
            return
        self.engine.go_to(index)
        self.render_question()
        self._refresh()

    # ---- submit --------------------------------------------------------------

    def submit_clicked(self, e):
        if self.engine.result is not None:
            return
        total = len(self.engine.questions)
        answered = self.engine.answered_count
        unanswered = total - answered

        if unanswered > 0:
            content_text = (f"You have answered {answered} out of {total} questions.\n\n"
                            f"{unanswered} questions remain unanswered.\n\n"
                            "Are you sure you want to submit your exam?")
            title_text, title_color, title_icon = "Submit Exam - Unanswered Questions", EXAM_COLORS['warning'], ft.Icons.WARNING
        else:
            content_text = f"You have answered all {total} questions.\n\nAre you sure you want to submit your exam?"
            title_text, title_color, title_icon = "Submit Exam", EXAM_COLORS['primary'], ft.Icons.SEND

        def confirm(ev):
            self._close_confirm()
            self.engine.submit()

        self._confirm_dialog = ft.AlertDialog(
            modal=True,
            title=ft.Row([
                ft.Icon(title_icon, color=title_color, size=24),
                ft.Text(title_text, color=title_color, weight=ft.FontWeight.BOLD)
            ], spacing=8),
            content=ft.Text(content_text, size=16),
            actions=[
                ft.TextButton("Cancel", on_click=lambda ev: self._close_confirm()),
                ft.ElevatedButton(
                    "Submit Exam",
                    on_click=confirm,
                    style=ft.ButtonStyle(bgcolor=EXAM_COLORS['primary'], color=ft.Colors.WHITE)
                )
            ]
        )
        self.page.open(self._confirm_dialog)

    def _close_confirm(self):
        dialog = self._confirm_dialog
        self._confirm_dialog = None
        if dialog is not None and self.page:
            self.page.close(dialog)

    def _on_finished(self, result):
        self._close_confirm()
        self.show_result(result)
        self._refresh()

    def show_result(self, result):
        self.palette_panel.visible = False
        self.warning_banner.visible = False
        self.timer_text.value = format_remaining(0) if result.forced else self.timer_text.value

        lines = [
            ft.Icon(ft.Icons.TIMER_OFF if result.forced else ft.Icons.CHECK_CIRCLE, size=64,
                    color=EXAM_COLORS['warning'] if result.forced else EXAM_COLORS['answered']),
            ft.Text("Time's up! Your exam was submitted automatically." if result.forced else "Exam submitted",
                    size=22, weight=ft.FontWeight.BOLD),
            ft.Text(f"You answered {result.answered} of {result.total_questions} questions."),
        ]
        if result.unsaved_question_ids:
            lines.append(ft.Text(
                f"{len(result.unsaved_question_ids)} answer(s) could not be saved because of a connection problem.",
                color=EXAM_COLORS['danger']
            ))
        if result.grading_error is not None:
            lines.append(ft.Text(str(result.grading_error), color=EXAM_COLORS['danger']))
        else:
            lines.append(ft.Text("Objective questions are graded automatically; essays are graded by your teacher.",
                                 color=EXAM_COLORS['text_secondary']))

        self.score_text = ft.Text("", size=16, weight=ft.FontWeight.W_500)
        lines += [
            self.score_text,
            ft.Row([
                ft.OutlinedButton("Check score", icon=ft.Icons.REFRESH, on_click=self.check_score),
                ft.ElevatedButton("Back to exams", icon=ft.Icons.ARROW_BACK, on_click=lambda e: self._exit(),
                                  style=ft.ButtonStyle(bgcolor=EXAM_COLORS['primary'], color=ft.Colors.WHITE))
            ], alignment=ft.MainAxisAlignment.CENTER)
        ]
        self.body.content = ft.Container(
            content=ft.Column(lines, horizontal_alignment=ft.CrossAxisAlignment.CENTER, spacing=12),
            bgcolor=COLORS['surface'],
            padding=40,
            border_radius=10,
            alignment=ft.alignment.center,
            expand=True
        )

    def check_score(self, e):
        try:
            status = self.engine.refresh_status()
        except DataError as ex:
            show_snack(self.page, f"Could not refresh: {ex}", error=True)
            return
        if status is AttemptStatus.GRADED and self.engine.score is not None:
            self.score_text.value = f"Your score: {float(self.engine.score):g}"
        else:
            self.score_text.value = "Grading is still in progress."
        self._refresh()

    def _exit(self):
        if self._exited:
            return
        self._exited = True
        self.on_exit()
