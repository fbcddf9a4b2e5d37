"""
Tests for classes, materials and dashboard numbers
"""

import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from fakes import FakeClock, FakeDataClient
from lms_app.utils.classroom import ClassroomService
from lms_app.utils.dashboard_stats import DashboardStats

NOW = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)


class TestClassroomService(unittest.TestCase):

    def setUp(self):
        self.data = FakeDataClient()
        self.service = ClassroomService(self.data)
        self.data.seed('users',
                       {'id': 4, 'nama': 'Pak Budi', 'role': 'guru'},
                       {'id': 5, 'nama': 'Bu Sari', 'role': 'guru'},
                       {'id': 7, 'nama': 'Ani', 'role': 'siswa', 'kelas_id': 3},
                       {'id': 8, 'nama': 'Citra', 'role': 'siswa', 'kelas_id': 2})

    def test_create_and_assign_class(self):
        row = self.service.create_class('  X IPA 1 ', homeroom_teacher_id=4)
        self.assertEqual(row['nama'], 'X IPA 1')

        self.service.assign_homeroom_teacher(row['id'], 5)
        self.assertEqual([c['nama'] for c in self.service.list_classes(teacher_id=5)], ['X IPA 1'])
        self.assertEqual(self.service.list_classes(teacher_id=4), [])

    def test_class_name_required(self):
        with self.assertRaises(ValueError):
            self.service.create_class('   ')

    def test_people_lists(self):
        self.assertEqual([t['nama'] for t in self.service.list_teachers()], ['Bu Sari', 'Pak Budi'])
        self.assertEqual([s['id'] for s in self.service.list_students(3)], [7])

    def test_materials_newest_first(self):
        self.service.post_material(4, 3, 'Bab 1', '<p>Sel</p>', publish_date=NOW - timedelta(days=2))
        self.service.post_material(4, 3, 'Bab 2', file_url='https://example.org/bab2.pdf', publish_date=NOW)
        self.service.post_material(4, 2, 'Lain', 'x', publish_date=NOW)

        materials = self.service.list_materials(3)
        self.assertEqual([m['judul'] for m in materials], ['Bab 2', 'Bab 1'])
        self.assertIsNone(materials[1]['file_url'])
        self.assertEqual(materials[0]['konten_html'], '')

    def test_material_validation(self):
        with self.assertRaises(ValueError):
            self.service.post_material(4, 3, '', 'content')
        with self.assertRaises(ValueError):
            self.service.post_material(4, 3, 'Judul', '  ')
        self.assertEqual(self.data.calls_for('insert'), [])


class TestDashboardStats(unittest.TestCase):

    def setUp(self):
        self.data = FakeDataClient()
        self.stats = DashboardStats(self.data, clock=FakeClock(NOW))
        self.data.seed('users',
                       {'id': 1, 'role': 'admin'},
                       {'id': 4, 'role': 'guru'},
                       {'id': 7, 'role': 'siswa', 'kelas_id': 3},
                       {'id': 8, 'role': 'siswa', 'kelas_id': 3})
        self.data.seed('kelas', {'id': 3, 'nama': 'X IPA 1', 'wali_kelas_id': 4})
        self.data.seed('ujian',
                       {'id': 10, 'kelas_id': 3, 'author_id': 4, 'waktu_mulai': (NOW + timedelta(days=1)).isoformat()},
                       {'id': 11, 'kelas_id': 3, 'author_id': 4, 'waktu_mulai': (NOW - timedelta(days=1)).isoformat()})

    def test_admin_counts(self):
        self.assertEqual(self.stats.admin_stats(), {'students': 2, 'teachers': 1, 'classes': 1, 'exams': 2})

    def test_teacher_counts(self):
        self.data.seed('jawaban',
                       {'skor': None, 'bank_soal': {'tipe': 'esai', 'created_by': 4}},
                       {'skor': 8, 'bank_soal': {'tipe': 'esai', 'created_by': 4}},
                       {'skor': None, 'bank_soal': {'tipe': 'mcq', 'created_by': 4}},
                       {'skor': None, 'bank_soal': {'tipe': 'esai', 'created_by': 5}})
        stats = self.stats.teacher_stats(SimpleNamespace(id=4))
        self.assertEqual(stats, {'classes': 1, 'upcoming_exams': 1, 'essays_to_grade': 1})

    def test_student_summary(self):
        self.data.seed('attempt',
                       {'user_id': 7, 'status': 'graded', 'score': 70, 'end_time': '2025-02-01T09:00:00+00:00',
                        'ujian': {'judul': 'UH 1'}},
                       {'user_id': 7, 'status': 'graded', 'score': 85, 'end_time': '2025-02-20T09:00:00+00:00',
                        'ujian': {'judul': 'UH 2'}},
                       {'user_id': 7, 'status': 'submitted', 'score': None, 'end_time': '2025-02-28T09:00:00+00:00',
                        'ujian': {'judul': 'UTS'}})
        stats = self.stats.student_stats(SimpleNamespace(id=7, kelas_id=3))
        self.assertEqual(stats, {'class_name': 'X IPA 1', 'exams': 2, 'recent_score': 85, 'recent_exam': 'UH 2'})

    def test_student_without_class(self):
        stats = self.stats.student_stats(SimpleNamespace(id=9, kelas_id=None))
        self.assertEqual(stats, {'class_name': None, 'exams': 0, 'recent_score': None, 'recent_exam': None})


if __name__ == '__main__':
    unittest.main()
