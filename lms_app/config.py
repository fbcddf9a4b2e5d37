import os
import sys

def get_base_path():
    """Get base path for both development and packaged executable"""
    if getattr(sys, 'frozen', False):
        # Running as compiled executable
        return os.path.dirname(sys.executable)
    return os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _env_int(name, default):
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_flag(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


BASE_PATH = get_base_path()

# Backend (Supabase) configuration
SUPABASE_URL = (os.getenv("SUPABASE_URL") or "").strip()
SUPABASE_ANON_KEY = (os.getenv("SUPABASE_ANON_KEY") or "").strip()

# Remote collections and procedures
TABLE_USERS = 'users'
TABLE_CLASSES = 'kelas'
TABLE_MATERIALS = 'materi'
TABLE_QUESTION_BANK = 'bank_soal'
TABLE_EXAMS = 'ujian'
TABLE_EXAM_QUESTIONS = 'ujian_soal'
TABLE_ATTEMPTS = 'attempt'
TABLE_ANSWERS = 'jawaban'
ANSWER_CONFLICT_KEY = 'attempt_id,soal_id'
GRADING_PROCEDURE = 'grade_objective_attempt'
SERVER_TIME_PROCEDURE = 'server_now'

# AI question generation
GEMINI_API_KEY = (os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY") or "").strip()
GEMINI_MODEL = (os.getenv("GEMINI_MODEL") or "gemini-2.5-flash").strip()
AI_MAX_QUESTIONS = 20

# Logging
LOG_DIR = os.getenv("LMS_LOG_DIR") or os.path.join(BASE_PATH, 'logs')
LOG_LEVEL = (os.getenv("LMS_LOG_LEVEL") or "INFO").upper()

# Exam settings
DEFAULT_EXAM_DURATION = 60  # minutes
EXAM_MAX_ATTEMPTS = _env_int("EXAM_MAX_ATTEMPTS", 1)
TIMER_INTERVAL_SECONDS = 1.0
TIME_WARNINGS = (600, 300, 60)  # seconds remaining
AUTOSAVE_IDLE_SECONDS = 5.0  # background retry interval while answers are pending
ENFORCE_EXAM_SCHEDULE = _env_flag("ENFORCE_EXAM_SCHEDULE", True)
PASSING_SCORE = 70.0  # percent, used in result summaries

# Exports
EXPORT_DIR = os.getenv("LMS_EXPORT_DIR") or os.path.join(BASE_PATH, 'exports')

# UI Settings
APP_NAME = "SmartLMS"
COLORS = {
    'primary': '#4f46e5',
    'secondary': '#64748b',
    'success': '#10b981',
    'warning': '#f59e0b',
    'error': '#ef4444',
    'info': '#3b82f6',
    'background': '#f8fafc',
    'surface': '#ffffff',
    'text_primary': '#1e293b',
    'text_secondary': '#64748b'
}
