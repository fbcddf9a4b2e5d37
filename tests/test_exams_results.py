"""
Tests for exam availability, exam authoring and result reporting
"""

import os
import shutil
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pandas as pd

from fakes import FakeClock, FakeDataClient
from lms_app.database.models import (
    Attempt, AttemptStatus, ExamDefinition, QuestionKind, QuestionRef, Role
)
from lms_app.utils.errors import DataError
from lms_app.utils.exam_catalog import Availability, ExamCatalog, exam_availability
from lms_app.utils.pdf_generator import ResultsPDFGenerator
from lms_app.utils.results_report import (
    ResultsService, export_results_csv, results_frame, summarize
)

NOW = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)


def exam(scheduled_start=None, questions=1, duration=30):
    return ExamDefinition(
        id=1, title='UTS IPA', duration_minutes=duration, scheduled_start=scheduled_start,
        questions=tuple(QuestionRef(id=i, subject='IPA', kind=QuestionKind.ESAI, prompt='Q')
                        for i in range(questions))
    )


def attempt(status, attempt_id=1):
    return Attempt(id=attempt_id, exam_id=1, student_id=7, status=AttemptStatus(status))


class TestExamAvailability(unittest.TestCase):

    def test_fresh_exam_can_start(self):
        self.assertEqual(exam_availability(exam(), [], NOW, max_attempts=1), Availability.START)

    def test_open_attempt_is_resumed(self):
        self.assertEqual(exam_availability(exam(), [attempt('in_progress')], NOW), Availability.RESUME)

    def test_finished_attempts_use_up_the_limit(self):
        self.assertEqual(exam_availability(exam(), [attempt('submitted')], NOW, max_attempts=1),
                         Availability.DONE)
        self.assertEqual(exam_availability(exam(), [attempt('graded')], NOW, max_attempts=2),
                         Availability.START)
        self.assertEqual(exam_availability(exam(), [attempt('graded')] * 5, NOW, max_attempts=0),
                         Availability.START, "0 means unlimited attempts")

    def test_schedule(self):
        later = exam(scheduled_start=NOW + timedelta(hours=1))
        self.assertEqual(exam_availability(later, [], NOW, enforce_schedule=True), Availability.NOT_YET_OPEN)
        self.assertEqual(exam_availability(later, [], NOW, enforce_schedule=False), Availability.START)

    def test_empty_exam_is_unavailable(self):
        self.assertEqual(exam_availability(exam(questions=0), [], NOW), Availability.UNAVAILABLE)
        self.assertEqual(exam_availability(exam(duration=0), [], NOW), Availability.UNAVAILABLE)


class TestExamCatalog(unittest.TestCase):

    def setUp(self):
        self.data = FakeDataClient()
        self.catalog = ExamCatalog(self.data, clock=FakeClock(NOW))

    def seed_exam(self, exam_id, class_id=3, **extra):
        row = {
            'id': exam_id, 'kelas_id': class_id, 'judul': f'Ujian {exam_id}', 'durasi_menit': 30,
            'waktu_mulai': None,
            'ujian_soal': [{'bank_soal': {'id': 50, 'tipe': 'mcq', 'pertanyaan': 'Q',
                                          'opsi_json': [{'value': 'a', 'text': 'A'}, {'value': 'b', 'text': 'B'}]}}],
        }
        row.update(extra)
        self.data.seed('ujian', row)

    def test_list_for_student(self):
        self.seed_exam(1)
        self.seed_exam(2)
        self.seed_exam(3, class_id=4)
        self.data.seed('attempt',
                       {'id': 90, 'ujian_id': 1, 'user_id': 7, 'status': 'in_progress',
                        'start_time': NOW.isoformat()},
                       {'id': 91, 'ujian_id': 2, 'user_id': 7, 'status': 'graded', 'score': 80,
                        'start_time': (NOW - timedelta(days=1)).isoformat()})

        student = SimpleNamespace(id=7, kelas_id=3)
        listings = {item.exam.id: item for item in self.catalog.list_for_student(student)}

        self.assertEqual(set(listings), {1, 2}, "Only exams of the student's class are listed")
        self.assertEqual(listings[1].availability, Availability.RESUME)
        self.assertEqual(listings[1].open_attempt['id'], 90)
        self.assertEqual(listings[2].availability, Availability.DONE)
        self.assertEqual(listings[2].score, 80)
        self.assertEqual(listings[1].exam.questions[0].option_keys, ('a', 'b'))

    def test_student_without_class_sees_nothing(self):
        self.assertEqual(self.catalog.list_for_student(SimpleNamespace(id=7, kelas_id=None)), [])
        self.assertEqual(self.catalog.student_attempts(7, []), {})

    def test_create_exam_links_questions(self):
        start = NOW + timedelta(days=1)
        row = self.catalog.create_exam(4, 3, ' UTS ', 45, [10, 11, 10], scheduled_start=start, randomize=True)

        self.assertEqual(row['judul'], 'UTS')
        self.assertEqual(row['waktu_mulai'], start.isoformat())
        self.assertTrue(row['aturan_random'])
        links = self.data.tables['ujian_soal']
        self.assertEqual([(l['ujian_id'], l['soal_id']) for l in links], [(row['id'], 10), (row['id'], 11)])

    def test_create_exam_validation(self):
        for args in [(4, 3, '', 30, [1]), (4, None, 'UTS', 30, [1]), (4, 3, 'UTS', 0, [1]), (4, 3, 'UTS', 30, [])]:
            with self.assertRaises(ValueError, msg=str(args)):
                self.catalog.create_exam(*args)
        self.assertEqual(self.data.calls_for('insert'), [])

    def test_failed_question_link_removes_exam(self):
        self.data.fail('insert', 'ujian_soal')
        with self.assertRaises(DataError):
            self.catalog.create_exam(4, 3, 'UTS', 30, [1, 2])
        self.assertEqual(self.data.tables['ujian'], [], "No exam without questions may remain")


RESULT_ROWS = [
    {'id': 1, 'ujian_id': 1, 'user_id': 7, 'status': 'graded', 'score': 90,
     'start_time': '2025-03-01T08:00:00+00:00', 'end_time': '2025-03-01T08:30:00+00:00',
     'ujian': {'judul': 'UTS IPA', 'author_id': 4}, 'users': {'nama': 'Ani'}},
    {'id': 2, 'ujian_id': 1, 'user_id': 8, 'status': 'graded', 'score': 60,
     'start_time': '2025-03-01T08:05:00Z', 'end_time': None,
     'ujian': {'judul': 'UTS IPA', 'author_id': 4}, 'users': {'nama': 'Budi'}},
    {'id': 3, 'ujian_id': 2, 'user_id': 7, 'status': 'submitted', 'score': None,
     'start_time': '2025-03-02T08:00:00Z', 'end_time': None,
     'ujian': {'judul': 'UTS IPS', 'author_id': 5}, 'users': {'nama': 'Ani'}},
]


class TestResults(unittest.TestCase):

    def setUp(self):
        self.data = FakeDataClient()
        self.data.seed('attempt', *RESULT_ROWS)
        self.service = ResultsService(self.data)
        self.tmp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def test_frame_flattens_rows(self):
        df = results_frame(RESULT_ROWS)
        self.assertEqual(list(df['student']), ['Ani', 'Budi', 'Ani'])
        self.assertEqual(df.loc[0, 'duration_minutes'], 30.0)
        self.assertTrue(pd.isna(df.loc[2, 'score']))

    def test_summary_per_exam(self):
        summary = summarize(results_frame(RESULT_ROWS), passing_score=70).set_index('exam')

        ipa = summary.loc['UTS IPA']
        self.assertEqual(ipa['attempts'], 2)
        self.assertEqual(ipa['graded'], 2)
        self.assertEqual(ipa['average'], 75.0)
        self.assertEqual(ipa['highest'], 90)
        self.assertEqual(ipa['lowest'], 60)
        self.assertEqual(ipa['pass_rate'], 50.0)
        self.assertEqual(summary.loc['UTS IPS', 'graded'], 0)

    def test_empty_summary(self):
        self.assertTrue(summarize(results_frame([])).empty)

    def test_teacher_sees_only_own_exams(self):
        teacher = SimpleNamespace(id=4, role=Role.GURU)
        df = self.service.staff_results(teacher)
        self.assertEqual(set(df['exam']), {'UTS IPA'})

    def test_admin_sees_everything(self):
        df = self.service.staff_results(SimpleNamespace(id=1, role=Role.ADMIN))
        self.assertEqual(len(df), 3)

    def test_students_cannot_load_staff_results(self):
        with self.assertRaises(PermissionError):
            self.service.staff_results(SimpleNamespace(id=7, role=Role.SISWA))

    def test_student_results(self):
        rows = self.service.student_results(7)
        self.assertEqual([row['exam'] for row in rows], ['UTS IPS', 'UTS IPA'], "Newest first")

    def test_pdf_report(self):
        df = results_frame(RESULT_ROWS)
        path = os.path.join(self.tmp_dir, 'results.pdf')
        self.assertEqual(ResultsPDFGenerator().generate_results_report(df, summarize(df), path), path)
        with open(path, 'rb') as f:
            self.assertEqual(f.read(5), b"%PDF-")

    def test_csv_export(self):
        path = os.path.join(self.tmp_dir, 'results.csv')
        self.assertEqual(export_results_csv(results_frame(RESULT_ROWS), path), path)

        exported = pd.read_csv(path)
        self.assertEqual(len(exported), 3)
        self.assertEqual(exported.loc[0, 'start_time'], '2025-03-01 08:00')
        self.assertTrue(pd.isna(exported.loc[1, 'end_time']))


if __name__ == '__main__':
    unittest.main()
