import logging

import flet as ft

from lms_app.config import COLORS, AI_MAX_QUESTIONS
from lms_app.database.models import Difficulty, QuestionKind
from lms_app.utils.ai_generator import QuestionGenerator
from lms_app.utils.bulk_import import BulkImporter
from lms_app.utils.errors import DataError, QuestionGenerationError
from lms_app.utils.logging_config import get_audit_logger
from lms_app.utils.permissions import can_edit_content
from lms_app.utils.question_bank import QuestionBank
from lms_app.views.common.widgets import empty_state, page_title, show_snack

logger = logging.getLogger(__name__)

KIND_LABELS = {
    QuestionKind.MCQ: "Multiple choice",
    QuestionKind.TRUE_FALSE: "True / False",
    QuestionKind.ISIAN: "Fill in the blank",
    QuestionKind.ESAI: "Essay",
}

DIFFICULTY_LABELS = {
    Difficulty.MUDAH: "Easy",
    Difficulty.SEDANG: "Medium",
    Difficulty.SULIT: "Hard",
}

OPTION_LETTERS = 'abcd'


def kind_dropdown(**kwargs):
    return ft.Dropdown(
        label="Type",
        value=QuestionKind.MCQ.value,
        options=[ft.dropdown.Option(k.value, label) for k, label in KIND_LABELS.items()],
        **kwargs
    )


def difficulty_dropdown(**kwargs):
    return ft.Dropdown(
        label="Difficulty",
        value=Difficulty.SEDANG.value,
        options=[ft.dropdown.Option(d.value, label) for d, label in DIFFICULTY_LABELS.items()],
        **kwargs
    )


class QuestionBankView(ft.Column):
    """Teacher: browse the question bank, add questions by hand, with AI, or from a file"""

    def __init__(self, context):
        super().__init__(spacing=16, scroll=ft.ScrollMode.AUTO, expand=True)
        self.context = context
        self.bank = QuestionBank(context.data_client)
        self.importer = BulkImporter(context.data_client)
        self.generator = context.extras.get('question_generator') or QuestionGenerator()
        self.audit = get_audit_logger()
        self.drafts = []

        self.only_mine = ft.Checkbox(label="Only my questions", value=True, on_change=lambda e: self.refresh())
        self.table_container = ft.Container()
        self.import_picker = ft.FilePicker(on_result=self.import_file_picked)

        self.controls = [
            ft.Row([
                page_title("Question Bank", "Questions available for your exams"),
                ft.Row([
                    ft.ElevatedButton("Add question", icon=ft.Icons.ADD, on_click=self.open_add_dialog,
                                      style=ft.ButtonStyle(bgcolor=COLORS['primary'], color=ft.Colors.WHITE)),
                    ft.OutlinedButton("Generate with AI", icon=ft.Icons.AUTO_AWESOME, on_click=self.open_ai_dialog),
                    ft.OutlinedButton("Import file", icon=ft.Icons.UPLOAD_FILE, on_click=self.import_clicked),
                ], spacing=8)
            ], alignment=ft.MainAxisAlignment.SPACE_BETWEEN, wrap=True),
            self.only_mine,
            self.table_container
        ]
        self.load_questions()

    def did_mount(self):
        self.page.overlay.append(self.import_picker)
        self.page.update()

    def will_unmount(self):
        if self.import_picker in self.page.overlay:
            self.page.overlay.remove(self.import_picker)

    # ---- list ----------------------------------------------------------------

    def load_questions(self):
        owner = self.context.user.id if self.only_mine.value else None
        try:
            questions = self.bank.list_questions(created_by=owner)
        except DataError as e:
            self.table_container.content = ft.Text(f"Could not load questions: {e}", color=COLORS['error'])
            return
        if not questions:
            self.table_container.content = empty_state("No questions yet")
            return

        rows = []
        for q in questions:
            kind = QuestionKind(q.get('tipe') or QuestionKind.ESAI.value)
            actions = []
            if can_edit_content(q.get('created_by'), self.context.user):
                actions.append(ft.IconButton(
                    icon=ft.Icons.DELETE, icon_color=COLORS['error'], tooltip="Delete",
                    on_click=lambda e, qid=q['id']: self.delete_question(qid)
                ))
            rows.append(ft.DataRow(cells=[
                ft.DataCell(ft.Text(q.get('mapel', ''))),
                ft.DataCell(ft.Text(KIND_LABELS[kind])),
                ft.DataCell(ft.Text(q.get('pertanyaan', ''), max_lines=2, overflow=ft.TextOverflow.ELLIPSIS, width=420)),
                ft.DataCell(ft.Text(q.get('tingkat_kesulitan') or '-')),
                ft.DataCell(ft.Row(actions)),
            ]))
        self.table_container.content = ft.DataTable(
            columns=[ft.DataColumn(ft.Text(h)) for h in ("Subject", "Type", "Question", "Difficulty", "")],
            rows=rows
        )

    def refresh(self):
        self.load_questions()
        if self.page:
            self.update()

    def delete_question(self, question_id):
        try:
            self.bank.delete_question(question_id)
        except DataError as ex:
            # Questions used by an exam are protected by the backend
            show_snack(self.page, f"Could not delete question: {ex}", error=True)
            return
        self.audit.log_content_action(self.context.user.id, "DELETE", "bank_soal", question_id)
        show_snack(self.page, "Question deleted")
        self.refresh()

    def save_drafts(self, drafts, source):
        try:
            saved = self.bank.add_questions(drafts, created_by=self.context.user.id)
        except ValueError as ex:
            show_snack(self.page, str(ex), error=True)
            return False
        except DataError as ex:
            show_snack(self.page, f"Could not save questions: {ex}", error=True)
            return False
        self.audit.log_question_create(self.context.user.id, len(saved), source)
        show_snack(self.page, f"{len(saved)} question(s) saved")
        self.refresh()
        return True

    # ---- manual --------------------------------------------------------------

    def open_add_dialog(self, e):
        subject = ft.TextField(label="Subject", width=200)
        kind = kind_dropdown(width=200)
        difficulty = difficulty_dropdown(width=200)
        prompt = ft.TextField(label="Question", multiline=True, min_lines=2, max_lines=5, width=620)
        option_fields = [ft.TextField(label=f"Option {letter}", width=300) for letter in OPTION_LETTERS]
        mcq_key = ft.Dropdown(label="Correct option", width=200,
                              options=[ft.dropdown.Option(letter) for letter in OPTION_LETTERS])
        tf_key = ft.RadioGroup(content=ft.Row([ft.Radio(value='true', label="True"),
                                               ft.Radio(value='false', label="False")]), visible=False)
        text_key = ft.TextField(label="Answer key / expected points", multiline=True, width=620, visible=False)
        options_block = ft.Column([ft.Row(option_fields[:2]), ft.Row(option_fields[2:]), mcq_key])

        def kind_changed(ev=None):
            selected = QuestionKind(kind.value)
            options_block.visible = selected is QuestionKind.MCQ
            tf_key.visible = selected is QuestionKind.TRUE_FALSE
            text_key.visible = selected in (QuestionKind.ISIAN, QuestionKind.ESAI)
            dialog.update()

        kind.on_change = kind_changed

        def save(ev):
            selected = QuestionKind(kind.value)
            draft = {
                'mapel': subject.value,
                'tipe': selected.value,
                'pertanyaan': prompt.value,
                'tingkat_kesulitan': difficulty.value,
            }
            if selected is QuestionKind.MCQ:
                draft['opsi_json'] = [{'value': letter, 'text': field.value}
                                      for letter, field in zip(OPTION_LETTERS, option_fields)]
                draft['kunci_jawaban'] = mcq_key.value
            elif selected is QuestionKind.TRUE_FALSE:
                draft['kunci_jawaban'] = tf_key.value
            else:
                draft['kunci_jawaban'] = text_key.value
            if self.save_drafts([draft], 'manual'):
                self.page.close(dialog)

        dialog = ft.AlertDialog(
            modal=True,
            title=ft.Text("Add question"),
            content=ft.Column([ft.Row([subject, kind, difficulty]), prompt, options_block, tf_key, text_key],
                              tight=True, scroll=ft.ScrollMode.AUTO, width=640),
            actions=[
                ft.TextButton("Cancel", on_click=lambda ev: self.page.close(dialog)),
                ft.ElevatedButton("Save", on_click=save)
            ]
        )
        self.page.open(dialog)

    # ---- AI ------------------------------------------------------------------

    def open_ai_dialog(self, e):
        topic = ft.TextField(label="Topic", width=300)
        kind = kind_dropdown(width=200)
        difficulty = difficulty_dropdown(width=200)
        count = ft.TextField(label="How many", value="5", width=120, keyboard_type=ft.KeyboardType.NUMBER)
        status = ft.Text("", color=COLORS['error'])
        progress = ft.ProgressRing(width=18, height=18, visible=False)
        preview = ft.Column(spacing=6, scroll=ft.ScrollMode.AUTO, height=300)
        save_button = ft.ElevatedButton("Save all", disabled=True)

        def generate(ev):
            status.value = ""
            progress.visible = True
            preview.controls = []
            save_button.disabled = True
            dialog.update()
            try:
                self.drafts = self.generator.generate(topic.value, kind.value, difficulty.value, count.value)
            except QuestionGenerationError as ex:
                self.drafts = []
                status.value = str(ex)
            except ValueError:
                self.drafts = []
                status.value = f"Enter a number between 1 and {AI_MAX_QUESTIONS}"
            progress.visible = False
            for index, draft in enumerate(self.drafts, start=1):
                lines = [ft.Text(f"{index}. {draft['pertanyaan']}", weight=ft.FontWeight.W_500)]
                for option in draft.get('opsi_json') or []:
                    lines.append(ft.Text(f"   {option['value']}) {option['text']}"))
                lines.append(ft.Text(f"Answer: {draft['kunci_jawaban']}", color=COLORS['success'], size=12))
                preview.controls.append(ft.Column(lines, spacing=2))
            save_button.disabled = not self.drafts
            dialog.update()

        def save(ev):
            if self.save_drafts(self.drafts, 'ai'):
                self.drafts = []
                self.page.close(dialog)

        save_button.on_click = save
        dialog = ft.AlertDialog(
            modal=True,
            title=ft.Text("Generate questions with AI"),
            content=ft.Column([
                ft.Row([topic, count]),
                ft.Row([kind, difficulty]),
                ft.Row([ft.ElevatedButton("Generate", icon=ft.Icons.AUTO_AWESOME, on_click=generate), progress]),
                status,
                preview
            ], tight=True, width=640),
            actions=[ft.TextButton("Close", on_click=lambda ev: self.page.close(dialog)), save_button]
        )
        self.page.open(dialog)

    # ---- import --------------------------------------------------------------

    def import_clicked(self, e):
        self.import_picker.pick_files(
            dialog_title="Import questions",
            allowed_extensions=['csv', 'xlsx', 'xls'],
            allow_multiple=False
        )

    def import_file_picked(self, e):
        if not e.files:
            return
        path = e.files[0].path
        result = self.importer.import_questions(path, created_by=self.context.user.id)
        if not result['success']:
            show_snack(self.page, result.get('error') or "Import failed", error=True)
            return
        self.audit.log_question_create(self.context.user.id, result['imported_count'], 'import')
        message = f"Imported {result['imported_count']} question(s)"
        if result['skipped_count']:
            message += f", skipped {result['skipped_count']}: " + "; ".join(result['errors'][:3])
        show_snack(self.page, message)
        self.refresh()
