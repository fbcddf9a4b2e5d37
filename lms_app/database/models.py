"""Domain models for rows read from the LMS backend."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Role(str, Enum):
    ADMIN = 'admin'
    GURU = 'guru'
    SISWA = 'siswa'

    @classmethod
    def parse(cls, value) -> 'Role':
        try:
            return cls(value)
        except ValueError:
            # Unknown roles get the least privileged view
            return cls.SISWA


class QuestionKind(str, Enum):
    MCQ = 'mcq'
    TRUE_FALSE = 'truefalse'
    ISIAN = 'isian'
    ESAI = 'esai'

    @property
    def is_objective(self) -> bool:
        return self in (QuestionKind.MCQ, QuestionKind.TRUE_FALSE, QuestionKind.ISIAN)


class Difficulty(str, Enum):
    MUDAH = 'mudah'
    SEDANG = 'sedang'
    SULIT = 'sulit'


class AttemptStatus(str, Enum):
    NOT_STARTED = 'not_started'
    IN_PROGRESS = 'in_progress'
    SUBMITTED = 'submitted'
    GRADED = 'graded'

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self is AttemptStatus.GRADED

    def can_advance_to(self, other: 'AttemptStatus') -> bool:
        """Status only ever moves forward: in_progress -> submitted -> graded"""
        return other.rank > self.rank


_STATUS_ORDER = [
    AttemptStatus.NOT_STARTED,
    AttemptStatus.IN_PROGRESS,
    AttemptStatus.SUBMITTED,
    AttemptStatus.GRADED,
]


def parse_timestamp(value) -> Optional[datetime]:
    """Parse a backend timestamp (ISO 8601, possibly with 'Z') into an aware datetime"""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class QuestionOption:
    key: str
    text: str


@dataclass(frozen=True)
class QuestionRef:
    """A question bank entry as referenced by an exam"""

    id: int
    subject: str
    kind: QuestionKind
    prompt: str
    options: Tuple[QuestionOption, ...] = ()
    answer_key: Optional[str] = None
    difficulty: Optional[Difficulty] = None

    @property
    def option_keys(self) -> Tuple[str, ...]:
        return tuple(option.key for option in self.options)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'QuestionRef':
        options = tuple(
            QuestionOption(key=str(opt.get('value')), text=str(opt.get('text', '')))
            for opt in (row.get('opsi_json') or [])
            if opt and opt.get('value') is not None
        )
        difficulty = row.get('tingkat_kesulitan')
        return cls(
            id=row['id'],
            subject=row.get('mapel') or '',
            kind=QuestionKind(row.get('tipe') or QuestionKind.ESAI.value),
            prompt=row.get('pertanyaan') or '',
            options=options,
            answer_key=row.get('kunci_jawaban'),
            difficulty=Difficulty(difficulty) if difficulty else None,
        )


@dataclass(frozen=True)
class ExamDefinition:
    """Exam template an attempt is taken against; immutable during the attempt"""

    id: int
    title: str
    duration_minutes: int
    questions: Tuple[QuestionRef, ...]
    description: str = ''
    scheduled_start: Optional[datetime] = None
    randomize: bool = False
    class_id: Optional[int] = None

    @property
    def duration_seconds(self) -> int:
        return int(self.duration_minutes) * 60

    def question_ids(self) -> List[int]:
        return [question.id for question in self.questions]

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'ExamDefinition':
        """Build from an `ujian` row joined with its questions.

        Accepts either a flat `bank_soal` list or the nested
        `ujian_soal -> bank_soal` shape returned by the backend join.
        """
        question_rows = row.get('bank_soal')
        if question_rows is None:
            question_rows = [
                link.get('bank_soal') for link in (row.get('ujian_soal') or [])
            ]
        questions = tuple(
            QuestionRef.from_row(q) for q in question_rows if q
        )
        return cls(
            id=row['id'],
            title=row.get('judul') or '',
            description=row.get('deskripsi') or '',
            scheduled_start=parse_timestamp(row.get('waktu_mulai')),
            duration_minutes=int(row.get('durasi_menit') or 0),
            randomize=bool(row.get('aturan_random')),
            class_id=row.get('kelas_id'),
            questions=questions,
        )


@dataclass
class Attempt:
    id: int
    exam_id: int
    student_id: int
    status: AttemptStatus
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    score: Optional[float] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Attempt':
        return cls(
            id=row['id'],
            exam_id=row.get('ujian_id'),
            student_id=row.get('user_id'),
            status=AttemptStatus(row.get('status') or AttemptStatus.IN_PROGRESS.value),
            start_time=parse_timestamp(row.get('start_time')),
            end_time=parse_timestamp(row.get('end_time')),
            score=row.get('score'),
        )


@dataclass
class Answer:
    attempt_id: int
    question_id: int
    response: str
    is_correct: Optional[bool] = None
    score: Optional[float] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            'attempt_id': self.attempt_id,
            'soal_id': self.question_id,
            'jawaban_user': self.response,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Answer':
        return cls(
            attempt_id=row['attempt_id'],
            question_id=row['soal_id'],
            response=row.get('jawaban_user') or '',
            is_correct=row.get('is_correct'),
            score=row.get('skor'),
        )


@dataclass
class UserProfile:
    """Row of the `users` table for the signed-in identity"""

    id: int
    nama: str
    email: str
    role: Role
    kelas_id: Optional[int] = None
    auth_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'UserProfile':
        known = {'id', 'nama', 'email', 'role', 'kelas_id', 'auth_id'}
        return cls(
            id=row['id'],
            nama=row.get('nama') or '',
            email=row.get('email') or '',
            role=Role.parse(row.get('role')),
            kelas_id=row.get('kelas_id'),
            auth_id=row.get('auth_id'),
            extra={k: v for k, v in row.items() if k not in known},
        )
