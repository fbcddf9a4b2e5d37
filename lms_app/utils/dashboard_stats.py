from datetime import datetime, timezone
from typing import Dict, Optional

from lms_app.config import (
    TABLE_USERS, TABLE_CLASSES, TABLE_EXAMS, TABLE_ANSWERS, TABLE_ATTEMPTS
)
from lms_app.database.client import DataClient, Op, get_data_client, not_null
from lms_app.database.models import AttemptStatus, Role


class DashboardStats:
    """Headline numbers for the role dashboards"""

    def __init__(self, data_client: Optional[DataClient] = None, clock=None):
        self.data = data_client or get_data_client()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def admin_stats(self) -> Dict:
        return {
            'students': self.data.count(TABLE_USERS, {'role': Role.SISWA.value}),
            'teachers': self.data.count(TABLE_USERS, {'role': Role.GURU.value}),
            'classes': self.data.count(TABLE_CLASSES),
            'exams': self.data.count(TABLE_EXAMS),
        }

    def teacher_stats(self, teacher) -> Dict:
        now = self.clock().isoformat()
        return {
            'classes': self.data.count(TABLE_CLASSES, {'wali_kelas_id': teacher.id}),
            'upcoming_exams': self.data.count(TABLE_EXAMS, {
                'author_id': teacher.id,
                'waktu_mulai': Op('gte', now),
            }),
            # Essay answers on this teacher's questions that have no score yet
            'essays_to_grade': self.data.count(
                TABLE_ANSWERS,
                {'skor': None, 'bank_soal.tipe': 'esai', 'bank_soal.created_by': teacher.id},
                columns='id, bank_soal!inner(tipe, created_by)'
            ),
        }

    def student_stats(self, student) -> Dict:
        class_name = None
        exam_count = 0
        if student.kelas_id is not None:
            row = self.data.select_one(TABLE_CLASSES, {'id': student.kelas_id}, columns='nama')
            class_name = row.get('nama') if row else None
            exam_count = self.data.count(TABLE_EXAMS, {'kelas_id': student.kelas_id})

        latest = self.data.select_one(
            TABLE_ATTEMPTS,
            {'user_id': student.id, 'status': AttemptStatus.GRADED.value, 'score': not_null()},
            order=('end_time', True),
            columns='score, ujian(judul)'
        )
        return {
            'class_name': class_name,
            'exams': exam_count,
            'recent_score': latest.get('score') if latest else None,
            'recent_exam': (latest.get('ujian') or {}).get('judul') if latest else None,
        }
