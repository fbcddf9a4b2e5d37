import logging
from typing import Dict, List, Optional

from lms_app.config import TABLE_QUESTION_BANK
from lms_app.database.client import DataClient, get_data_client
from lms_app.database.models import Difficulty, QuestionKind

logger = logging.getLogger(__name__)


def normalize_question(draft: Dict, created_by: Optional[int] = None) -> Dict:
    """Validate a manual or AI-drafted question and return a bank_soal row.

    Raises ValueError with a message suitable for the form.
    """
    prompt = (draft.get('pertanyaan') or '').strip()
    if not prompt:
        raise ValueError("Question text is required")
    try:
        kind = QuestionKind(draft.get('tipe'))
    except ValueError:
        raise ValueError(f"Unknown question type: {draft.get('tipe')}")
    difficulty = draft.get('tingkat_kesulitan') or Difficulty.SEDANG.value
    if difficulty not in [d.value for d in Difficulty]:
        raise ValueError(f"Unknown difficulty: {difficulty}")
    answer = str(draft.get('kunci_jawaban') or '').strip()

    options = None
    if kind is QuestionKind.MCQ:
        options = [
            {'value': str(opt.get('value')).strip().lower(), 'text': str(opt.get('text') or '').strip()}
            for opt in (draft.get('opsi_json') or [])
            if opt and str(opt.get('text') or '').strip()
        ]
        if len(options) < 2:
            raise ValueError("Multiple-choice questions need at least 2 options")
        keys = [opt['value'] for opt in options]
        if len(set(keys)) != len(keys):
            raise ValueError("Option keys must be unique")
        answer = answer.lower()
        if answer not in keys:
            raise ValueError("The answer key must be one of the options")
    elif kind is QuestionKind.TRUE_FALSE:
        answer = answer.lower()
        if answer not in ('true', 'false'):
            raise ValueError("The answer must be true or false")
    elif kind is QuestionKind.ISIAN and not answer:
        raise ValueError("Fill-in-the-blank questions need an answer key")

    return {
        'mapel': (draft.get('mapel') or '').strip() or 'Umum',
        'tipe': kind.value,
        'pertanyaan': prompt,
        'opsi_json': options,
        'kunci_jawaban': answer,
        'tingkat_kesulitan': difficulty,
        'created_by': created_by,
    }


class QuestionBank:
    def __init__(self, data_client: Optional[DataClient] = None):
        self.data = data_client or get_data_client()

    def list_questions(self, created_by: Optional[int] = None, subject: Optional[str] = None) -> List[Dict]:
        filters = {}
        if created_by is not None:
            filters['created_by'] = created_by
        if subject:
            filters['mapel'] = subject
        return self.data.select(TABLE_QUESTION_BANK, filters or None, order=('id', True))

    def add_questions(self, drafts: List[Dict], created_by: Optional[int] = None) -> List[Dict]:
        """Validate every draft first, then insert them together"""
        rows = [normalize_question(draft, created_by) for draft in drafts]
        if not rows:
            return []
        saved = self.data.insert(TABLE_QUESTION_BANK, rows)
        logger.info("Saved %d question(s) to the bank", len(saved))
        return saved

    def delete_question(self, question_id: int) -> None:
        self.data.delete(TABLE_QUESTION_BANK, {'id': question_id})
