import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from lms_app.config import TABLE_CLASSES, TABLE_MATERIALS, TABLE_USERS
from lms_app.database.client import DataClient, get_data_client
from lms_app.database.models import Role

logger = logging.getLogger(__name__)


class ClassroomService:
    """Classes, their homeroom teachers and posted materials"""

    def __init__(self, data_client: Optional[DataClient] = None):
        self.data = data_client or get_data_client()

    def list_classes(self, teacher_id: Optional[int] = None) -> List[Dict]:
        """All classes, or only those a teacher is homeroom teacher of"""
        filters = {'wali_kelas_id': teacher_id} if teacher_id is not None else None
        return self.data.select(TABLE_CLASSES, filters, order='nama',
                                columns='*, wali_kelas:users!wali_kelas_id(nama)')

    def get_class(self, class_id: int) -> Optional[Dict]:
        return self.data.select_one(TABLE_CLASSES, {'id': class_id})

    def list_teachers(self) -> List[Dict]:
        return self.data.select(TABLE_USERS, {'role': Role.GURU.value}, order='nama', columns='id, nama, email')

    def list_students(self, class_id: int) -> List[Dict]:
        return self.data.select(TABLE_USERS, {'role': Role.SISWA.value, 'kelas_id': class_id},
                                order='nama', columns='id, nama, email')

    def create_class(self, name: str, homeroom_teacher_id: Optional[int] = None) -> Dict:
        name = (name or '').strip()
        if not name:
            raise ValueError("Class name is required")
        row = self.data.insert(TABLE_CLASSES, {'nama': name, 'wali_kelas_id': homeroom_teacher_id})
        logger.info("Class %s '%s' created", row.get('id'), name)
        return row

    def assign_homeroom_teacher(self, class_id: int, teacher_id: Optional[int]) -> None:
        self.data.update(TABLE_CLASSES, {'id': class_id}, {'wali_kelas_id': teacher_id})

    def list_materials(self, class_id: int) -> List[Dict]:
        return self.data.select(TABLE_MATERIALS, {'kelas_id': class_id}, order=('publish_date', True))

    def post_material(self, author_id: int, class_id: int, title: str, content_html: str = '',
                      file_url: Optional[str] = None, publish_date: Optional[datetime] = None) -> Dict:
        title = (title or '').strip()
        if not title:
            raise ValueError("Material title is required")
        if not (content_html or '').strip() and not file_url:
            raise ValueError("Add some content or a file link")
        publish_date = publish_date or datetime.now(timezone.utc)
        return self.data.insert(TABLE_MATERIALS, {
            'kelas_id': class_id,
            'author_id': author_id,
            'judul': title,
            'konten_html': content_html or '',
            'file_url': file_url or None,
            'publish_date': publish_date.isoformat(),
        })
