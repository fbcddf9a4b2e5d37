import logging
import os
from typing import Dict, List, Optional, Tuple

import pandas as pd

from lms_app.config import TABLE_QUESTION_BANK
from lms_app.database.client import DataClient, get_data_client
from lms_app.database.models import Difficulty, QuestionKind
from lms_app.utils.errors import DataError

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ['pertanyaan', 'tipe', 'kunci_jawaban']
OPTION_COLUMNS = [f'opsi_{letter}' for letter in 'abcdef']
VALID_KINDS = [kind.value for kind in QuestionKind]
TRUE_VALUES = ('true', 't', 'yes', 'ya', 'benar', '1')
FALSE_VALUES = ('false', 'f', 'no', 'tidak', 'salah', '0')


class BulkImporter:
    def __init__(self, data_client: Optional[DataClient] = None):
        self.data = data_client or get_data_client()
        self.supported_formats = ['.csv', '.xlsx', '.xls']

    def safe_str_strip(self, value, default=''):
        """Safely convert value to string and strip, handling None and numeric types"""
        if value is None or pd.isna(value):
            return default
        return str(value).strip()

    def validate_file(self, file_path: str) -> Tuple[bool, str]:
        """Validate if file exists and has supported format"""
        if not os.path.exists(file_path):
            return False, "File does not exist"

        file_ext = os.path.splitext(file_path)[1].lower()
        if file_ext not in self.supported_formats:
            return False, f"Unsupported file format. Supported: {', '.join(self.supported_formats)}"

        return True, "Valid file"

    def read_file(self, file_path: str) -> Tuple[Optional[pd.DataFrame], str]:
        """Read data from Excel or CSV file"""
        try:
            file_ext = os.path.splitext(file_path)[1].lower()

            if file_ext == '.csv':
                df = pd.read_csv(file_path)
            elif file_ext in ['.xlsx', '.xls']:
                df = pd.read_excel(file_path)
            else:
                return None, "Unsupported file format"

            df.columns = [str(col).strip().lower() for col in df.columns]
            return df, "Success"

        except Exception as e:
            return None, f"Error reading file: {str(e)}"

    def validate_questions_data(self, df: pd.DataFrame) -> Tuple[bool, List[str]]:
        """Validate the structure of the sheet (row problems are reported per row on import)"""
        errors = []

        missing_columns = [col for col in REQUIRED_COLUMNS if col not in df.columns]
        if missing_columns:
            errors.append(f"Missing required columns: {', '.join(missing_columns)}")
            return False, errors

        if df.empty:
            errors.append("The file contains no questions")

        kinds = df['tipe'].map(lambda v: self.safe_str_strip(v).lower())
        invalid_types = sorted(set(kinds[~kinds.isin(VALID_KINDS)].tolist()))
        if invalid_types:
            errors.append(f"Invalid question types: {invalid_types}. Valid types: {VALID_KINDS}")

        return len(errors) == 0, errors

    def build_row(self, row, created_by: Optional[int]) -> Dict:
        """Convert one sheet row into a bank_soal row; raises ValueError when unusable"""
        question_text = self.safe_str_strip(row.get('pertanyaan'))
        if not question_text:
            raise ValueError("empty question text")

        kind = QuestionKind(self.safe_str_strip(row.get('tipe')).lower())
        answer = self.safe_str_strip(row.get('kunci_jawaban'))

        difficulty = self.safe_str_strip(row.get('tingkat_kesulitan'), Difficulty.SEDANG.value).lower()
        if difficulty not in [d.value for d in Difficulty]:
            difficulty = Difficulty.SEDANG.value

        options = None
        if kind is QuestionKind.MCQ:
            options = []
            for column in OPTION_COLUMNS:
                text = self.safe_str_strip(row.get(column))
                if text:
                    options.append({'value': column[-1], 'text': text})
            if len(options) < 2:
                raise ValueError("multiple-choice question needs at least 2 options")
            keys = [opt['value'] for opt in options]
            answer = answer.lower()
            if answer not in keys:
                # Accept the option text as the key too
                by_text = [opt['value'] for opt in options if opt['text'] == self.safe_str_strip(row.get('kunci_jawaban'))]
                if not by_text:
                    raise ValueError(f"answer key '{answer}' is not one of the options {keys}")
                answer = by_text[0]
        elif kind is QuestionKind.TRUE_FALSE:
            lowered = answer.lower()
            if lowered in TRUE_VALUES:
                answer = 'true'
            elif lowered in FALSE_VALUES:
                answer = 'false'
            else:
                raise ValueError(f"true/false answer must be true or false, got '{answer}'")
        elif not answer and kind is QuestionKind.ISIAN:
            raise ValueError("fill-in-the-blank question needs an answer key")

        return {
            'mapel': self.safe_str_strip(row.get('mapel'), 'Umum'),
            'tipe': kind.value,
            'pertanyaan': question_text,
            'opsi_json': options,
            'kunci_jawaban': answer,
            'tingkat_kesulitan': difficulty,
            'created_by': created_by,
        }

    def import_questions(self, file_path: str, created_by: Optional[int] = None) -> Dict:
        """Import questions from file into the question bank"""
        is_valid, message = self.validate_file(file_path)
        if not is_valid:
            return {'success': False, 'error': message, 'imported_count': 0, 'skipped_count': 0, 'errors': [message]}

        df, read_message = self.read_file(file_path)
        if df is None:
            return {'success': False, 'error': read_message, 'imported_count': 0, 'skipped_count': 0,
                    'errors': [read_message]}

        is_valid_data, validation_errors = self.validate_questions_data(df)
        if not is_valid_data:
            return {'success': False, 'error': "\n".join(validation_errors), 'imported_count': 0,
                    'skipped_count': 0, 'errors': validation_errors}

        rows = []
        errors = []
        skipped_count = 0
        for idx, row in df.iterrows():
            # Spreadsheet row number (header is row 1)
            line = idx + 2
            try:
                rows.append(self.build_row(row, created_by))
            except ValueError as e:
                skipped_count += 1
                errors.append(f"Row {line}: {e}")

        if not rows:
            return {'success': False, 'error': "No questions were imported", 'imported_count': 0,
                    'skipped_count': skipped_count, 'errors': errors}

        try:
            self.data.insert(TABLE_QUESTION_BANK, rows)
        except DataError as e:
            logger.error("Bulk import of %d questions failed: %s", len(rows), e)
            return {'success': False, 'error': f"Error during import: {e}", 'imported_count': 0,
                    'skipped_count': skipped_count, 'errors': errors + [str(e)]}

        logger.info("Imported %d questions from %s (%d skipped)", len(rows), file_path, skipped_count)
        return {
            'success': True,
            'imported_count': len(rows),
            'skipped_count': skipped_count,
            'errors': errors,
            'total': len(df)
        }

    def get_sample_template(self) -> pd.DataFrame:
        """Generate a sample template for question import"""
        sample_data = {
            'pertanyaan': [
                'Ibu kota Indonesia adalah?',
                'Air mendidih pada suhu 100 derajat Celsius di permukaan laut.',
                'Hasil dari 7 x 8 adalah ...',
                'Jelaskan proses fotosintesis secara singkat.'
            ],
            'tipe': ['mcq', 'truefalse', 'isian', 'esai'],
            'mapel': ['Geografi', 'Fisika', 'Matematika', 'Biologi'],
            'tingkat_kesulitan': ['mudah', 'mudah', 'sedang', 'sulit'],
            'kunci_jawaban': [
                'a',
                'true',
                '56',
                'Tumbuhan mengubah cahaya, air dan CO2 menjadi glukosa dan oksigen'
            ],
            'opsi_a': ['Jakarta', '', '', ''],
            'opsi_b': ['Bandung', '', '', ''],
            'opsi_c': ['Surabaya', '', '', ''],
            'opsi_d': ['Medan', '', '', ''],
        }

        return pd.DataFrame(sample_data)

    def export_sample_template(self, file_path: str) -> bool:
        """Export a sample template to file"""
        try:
            df = self.get_sample_template()

            file_ext = os.path.splitext(file_path)[1].lower()
            if file_ext == '.csv':
                df.to_csv(file_path, index=False)
            elif file_ext in ['.xlsx', '.xls']:
                df.to_excel(file_path, index=False)
            else:
                return False

            return True

        except Exception as e:
            logger.error("Error exporting template: %s", e)
            return False
