"""
Exam results: loading attempts for students and staff, per-exam summaries
and CSV export.
"""

import logging
import os
from datetime import datetime
from typing import Dict, List, Optional

import pandas as pd

from lms_app.config import TABLE_ATTEMPTS, EXPORT_DIR, PASSING_SCORE
from lms_app.database.client import DataClient, get_data_client
from lms_app.database.models import Role, parse_timestamp

logger = logging.getLogger(__name__)

RESULT_COLUMNS = [
    'attempt_id', 'exam_id', 'exam', 'student_id', 'student', 'status',
    'score', 'start_time', 'end_time', 'duration_minutes'
]

SUMMARY_COLUMNS = ['exam', 'attempts', 'graded', 'average', 'highest', 'lowest', 'pass_rate']


def _flatten(row: Dict) -> Dict:
    exam = row.get('ujian') or {}
    student = row.get('users') or {}
    start = parse_timestamp(row.get('start_time'))
    end = parse_timestamp(row.get('end_time'))
    duration = round((end - start).total_seconds() / 60, 1) if start and end else None
    return {
        'attempt_id': row.get('id'),
        'exam_id': row.get('ujian_id'),
        'exam': exam.get('judul', ''),
        'student_id': row.get('user_id'),
        'student': student.get('nama', ''),
        'status': row.get('status'),
        'score': row.get('score'),
        'start_time': start,
        'end_time': end,
        'duration_minutes': duration,
    }


def results_frame(rows: List[Dict]) -> pd.DataFrame:
    """Attempt rows (with embedded ujian/users) as a flat table"""
    df = pd.DataFrame([_flatten(row) for row in rows], columns=RESULT_COLUMNS)
    df['score'] = pd.to_numeric(df['score'], errors='coerce')
    return df


def summarize(df: pd.DataFrame, passing_score: float = PASSING_SCORE) -> pd.DataFrame:
    """Per-exam statistics over scored attempts"""
    if df.empty:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)

    grouped = df.groupby('exam', sort=True)
    summary = pd.DataFrame({
        'attempts': grouped['attempt_id'].count(),
        'graded': grouped['score'].count(),
        'average': grouped['score'].mean().round(1),
        'highest': grouped['score'].max(),
        'lowest': grouped['score'].min(),
        'pass_rate': grouped['score'].apply(
            lambda scores: round(100.0 * (scores.dropna() >= passing_score).mean(), 1)
            if scores.notna().any() else None
        ),
    }).reset_index()
    return summary[SUMMARY_COLUMNS]


class ResultsService:
    """Reads attempts for the results screen, scoped by role"""

    def __init__(self, data_client: Optional[DataClient] = None):
        self.data = data_client or get_data_client()

    def student_results(self, student_id: int) -> List[Dict]:
        rows = self.data.select(TABLE_ATTEMPTS, {'user_id': student_id},
                                order=('start_time', True), columns='*, ujian(judul)')
        return [_flatten(row) for row in rows]

    def staff_results(self, user) -> pd.DataFrame:
        """All attempts visible to an admin, or to a teacher for their own exams"""
        filters = {}
        if user.role is Role.GURU:
            filters['ujian.author_id'] = user.id
        elif user.role is not Role.ADMIN:
            raise PermissionError("Only staff can view all results")
        rows = self.data.select(TABLE_ATTEMPTS, filters or None, order=('start_time', True),
                                columns='*, ujian!inner(judul, author_id), users(nama)')
        return results_frame(rows)


def export_results_csv(df: pd.DataFrame, file_path: Optional[str] = None) -> str:
    """Write the results table to CSV and return its path"""
    if file_path is None:
        os.makedirs(EXPORT_DIR, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        file_path = os.path.join(EXPORT_DIR, f"results_{timestamp}.csv")

    export = df.copy()
    for column in ('start_time', 'end_time'):
        if column in export:
            export[column] = export[column].map(lambda v: v.strftime('%Y-%m-%d %H:%M') if pd.notna(v) else '')
    export.to_csv(file_path, index=False)
    logger.info("Exported %d result rows to %s", len(export), file_path)
    return file_path
