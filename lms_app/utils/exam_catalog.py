"""
Exam catalog

Loads exams with their questions and works out, per student, whether each
exam can be started, resumed, is finished or is not open yet. Also holds the
teacher-side exam creation.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from lms_app.config import (
    TABLE_EXAMS, TABLE_EXAM_QUESTIONS, TABLE_ATTEMPTS, EXAM_MAX_ATTEMPTS, ENFORCE_EXAM_SCHEDULE
)
from lms_app.database.client import DataClient, get_data_client
from lms_app.database.models import Attempt, AttemptStatus, ExamDefinition
from lms_app.utils.errors import DataError

logger = logging.getLogger(__name__)

EXAM_WITH_QUESTIONS = '*, ujian_soal(bank_soal(*))'


class Availability(str, Enum):
    START = 'start'
    RESUME = 'resume'
    DONE = 'done'
    NOT_YET_OPEN = 'not_yet_open'
    UNAVAILABLE = 'unavailable'


@dataclass
class ExamListing:
    exam: ExamDefinition
    availability: Availability
    open_attempt: Optional[Dict] = None
    latest_attempt: Optional[Attempt] = None

    @property
    def score(self) -> Optional[float]:
        return self.latest_attempt.score if self.latest_attempt else None


def exam_availability(exam: ExamDefinition, attempts: Iterable[Attempt], now: datetime,
                      max_attempts: int = EXAM_MAX_ATTEMPTS,
                      enforce_schedule: bool = ENFORCE_EXAM_SCHEDULE) -> Availability:
    """What the student may do with an exam given their attempts so far"""
    attempts = list(attempts)
    if any(a.status is AttemptStatus.IN_PROGRESS for a in attempts):
        return Availability.RESUME
    finished = [a for a in attempts if a.status in (AttemptStatus.SUBMITTED, AttemptStatus.GRADED)]
    if max_attempts and len(finished) >= max_attempts:
        return Availability.DONE
    if not exam.questions or exam.duration_minutes <= 0:
        return Availability.UNAVAILABLE
    if enforce_schedule and exam.scheduled_start and exam.scheduled_start > now:
        return Availability.NOT_YET_OPEN
    return Availability.START


class ExamCatalog:
    def __init__(self, data_client: Optional[DataClient] = None, clock: Callable[[], datetime] = None):
        self.data = data_client or get_data_client()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # ---- reading -------------------------------------------------------------

    def load_exam(self, exam_id: int) -> Optional[ExamDefinition]:
        row = self.data.select_one(TABLE_EXAMS, {'id': exam_id}, columns=EXAM_WITH_QUESTIONS)
        return ExamDefinition.from_row(row) if row else None

    def list_class_exams(self, class_id: int) -> List[ExamDefinition]:
        rows = self.data.select(TABLE_EXAMS, {'kelas_id': class_id},
                                order=('waktu_mulai', False), columns=EXAM_WITH_QUESTIONS)
        return [ExamDefinition.from_row(row) for row in rows]

    def list_author_exams(self, author_id: Optional[int] = None) -> List[Dict]:
        """Exam rows with their class name and question count (for staff lists)"""
        filters = {'author_id': author_id} if author_id is not None else None
        rows = self.data.select(TABLE_EXAMS, filters, order=('waktu_mulai', True),
                                columns='*, kelas(nama), ujian_soal(soal_id)')
        for row in rows:
            row['question_count'] = len(row.get('ujian_soal') or [])
            row['kelas_nama'] = (row.get('kelas') or {}).get('nama', '')
        return rows

    def student_attempts(self, student_id: int, exam_ids: Optional[List[int]] = None) -> Dict[int, List[Dict]]:
        """Attempt rows grouped by exam id, newest first"""
        filters = {'user_id': student_id}
        if exam_ids is not None:
            if not exam_ids:
                return {}
            filters['ujian_id'] = list(exam_ids)
        grouped: Dict[int, List[Dict]] = {}
        for row in self.data.select(TABLE_ATTEMPTS, filters, order=('start_time', True)):
            grouped.setdefault(row['ujian_id'], []).append(row)
        return grouped

    def list_for_student(self, student) -> List[ExamListing]:
        """Exams of the student's class with what the student may do for each"""
        class_id = getattr(student, 'kelas_id', None)
        if class_id is None:
            return []
        exams = self.list_class_exams(class_id)
        attempts = self.student_attempts(student.id, [exam.id for exam in exams])
        now = self.clock()

        listings = []
        for exam in exams:
            rows = attempts.get(exam.id, [])
            parsed = [Attempt.from_row(row) for row in rows]
            open_row = next((row for row, a in zip(rows, parsed) if a.status is AttemptStatus.IN_PROGRESS), None)
            listings.append(ExamListing(
                exam=exam,
                availability=exam_availability(exam, parsed, now),
                open_attempt=open_row,
                latest_attempt=parsed[0] if parsed else None,
            ))
        return listings

    # ---- authoring -----------------------------------------------------------

    def create_exam(self, author_id: int, class_id: int, title: str, duration_minutes: int,
                    question_ids: List[int], description: str = '',
                    scheduled_start: Optional[datetime] = None, randomize: bool = False) -> Dict:
        """Create an exam and link its questions; returns the exam row.

        Raises ValueError for invalid input and DataError for backend failures.
        """
        title = (title or '').strip()
        if not title:
            raise ValueError("Exam title is required")
        if class_id is None:
            raise ValueError("Please choose a class")
        if int(duration_minutes) <= 0:
            raise ValueError("Duration must be a positive number of minutes")
        question_ids = list(dict.fromkeys(question_ids))
        if not question_ids:
            raise ValueError("Select at least one question")

        exam_row = self.data.insert(TABLE_EXAMS, {
            'kelas_id': class_id,
            'judul': title,
            'deskripsi': description or '',
            'waktu_mulai': scheduled_start.isoformat() if scheduled_start else None,
            'durasi_menit': int(duration_minutes),
            'aturan_random': bool(randomize),
            'author_id': author_id,
        })
        try:
            self.data.insert(TABLE_EXAM_QUESTIONS, [
                {'ujian_id': exam_row['id'], 'soal_id': question_id} for question_id in question_ids
            ])
        except DataError:
            # Don't leave an exam without questions behind
            logger.error("Linking questions to exam %s failed, removing it", exam_row['id'])
            try:
                self.data.delete(TABLE_EXAMS, {'id': exam_row['id']})
            except DataError as cleanup_error:
                logger.error("Could not remove exam %s: %s", exam_row['id'], cleanup_error)
            raise
        logger.info("Exam %s '%s' created with %d questions", exam_row['id'], title, len(question_ids))
        return exam_row
