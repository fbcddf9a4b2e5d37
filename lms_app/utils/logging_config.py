"""
Logging and audit trail for the LMS portal

Configures file + console logging once per process and records user actions
(authentication, exam activity, content changes) as structured audit lines.
"""

import logging
import os
import json
from datetime import datetime
from typing import Optional, Dict, Any

from lms_app.config import LOG_DIR, LOG_LEVEL

_configured = False


def setup_logging(log_dir: Optional[str] = None, level: Optional[str] = None) -> Optional[str]:
    """Configure root logging with a daily file and the console. Idempotent.

    Returns the log file path, or None when logging was already configured.
    """
    global _configured
    if _configured:
        return None

    log_dir = log_dir or LOG_DIR
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, f'lms_app_{datetime.now().strftime("%Y%m%d")}.log')

    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler()
        ]
    )
    _configured = True
    return log_file


class AuditLogger:
    """Centralized audit logging"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('lms_app.audit')

    def log_user_action(self, user_id: Optional[int], action: str, table_name: Optional[str] = None,
                        record_id: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        """
        Log a user action to the audit trail

        Args:
            user_id: ID of user performing action (None for anonymous)
            action: Action name (e.g., 'LOGIN_SUCCESS', 'EXAM_START')
            table_name: Backend collection affected
            record_id: Row ID affected
            details: Extra values, written as JSON
        """
        log_msg = f"[AUDIT] User:{user_id} Action:{action}"
        if table_name:
            log_msg += f" Table:{table_name}"
        if record_id is not None:
            log_msg += f" RecordID:{record_id}"
        if details:
            log_msg += f" Details:{json.dumps(details, default=str, sort_keys=True)}"
        self.logger.info(log_msg)

    # === Authentication Logging ===

    def log_login(self, email: str, user_id: Optional[int], success: bool, reason: Optional[str] = None):
        """Log login attempts"""
        action = "LOGIN_SUCCESS" if success else "LOGIN_FAILED"
        details = {"email": email}
        if reason:
            details["reason"] = reason
        self.log_user_action(user_id if success else None, action, details=details)

    def log_sign_up(self, email: str, role: str, success: bool, reason: Optional[str] = None):
        details = {"email": email, "role": role}
        if reason:
            details["reason"] = reason
        self.log_user_action(None, "SIGN_UP" if success else "SIGN_UP_FAILED", "users", details=details)

    def log_logout(self, user_id: int, email: str):
        self.log_user_action(user_id, "LOGOUT", details={"email": email})

    # === Exam Attempt Logging ===

    def log_exam_start(self, user_id: int, exam_id: int, attempt_id: int, exam_title: str, resumed: bool = False):
        self.log_user_action(
            user_id,
            "EXAM_RESUME" if resumed else "EXAM_START",
            "attempt",
            attempt_id,
            {"exam_id": exam_id, "exam_title": exam_title}
        )

    def log_exam_submit(self, user_id: int, exam_id: int, attempt_id: int,
                        duration_seconds: int, answered: int, forced: bool):
        self.log_user_action(
            user_id,
            "EXAM_AUTO_SUBMIT" if forced else "EXAM_SUBMIT",
            "attempt",
            attempt_id,
            {"exam_id": exam_id, "duration_seconds": duration_seconds, "answered": answered}
        )

    def log_answer_save(self, user_id: int, attempt_id: int, question_id: int, question_type: str):
        """Log answer persistence (called per upsert)"""
        self.log_user_action(
            user_id,
            "ANSWER_SAVE",
            "jawaban",
            question_id,
            {"attempt_id": attempt_id, "question_type": question_type}
        )

    def log_grading_failure(self, user_id: int, attempt_id: int, error: str):
        self.log_user_action(user_id, "GRADING_DISPATCH_FAILED", "attempt", attempt_id, {"error": error})

    # === Content Logging (teachers/admins) ===

    def log_content_action(self, user_id: int, action: str, target_table: str,
                           target_id: Optional[int] = None, changes: Optional[Dict[str, Any]] = None):
        """
        Log content changes made by teachers and admins

        Args:
            user_id: ID of acting user
            action: Action type (CREATE, UPDATE, DELETE, IMPORT, GENERATE)
            target_table: Collection being modified
            target_id: Row being modified
            changes: Dict of changes made
        """
        self.log_user_action(user_id, f"CONTENT_{action}", target_table, target_id, changes)

    def log_question_create(self, user_id: int, count: int, source: str):
        self.log_content_action(user_id, "CREATE_QUESTIONS", "bank_soal", changes={"count": count, "source": source})

    def log_exam_create(self, user_id: int, exam_id: int, title: str, question_count: int):
        self.log_content_action(user_id, "CREATE_EXAM", "ujian", exam_id,
                                {"title": title, "question_count": question_count})

    def log_material_create(self, user_id: int, material_id: int, class_id: int, title: str):
        self.log_content_action(user_id, "CREATE_MATERIAL", "materi", material_id,
                                {"kelas_id": class_id, "title": title})

    def log_class_create(self, user_id: int, class_id: int, name: str):
        self.log_content_action(user_id, "CREATE_CLASS", "kelas", class_id, {"name": name})

    def log_export(self, user_id: int, kind: str, path: str, rows: int):
        self.log_content_action(user_id, "EXPORT", "attempt", changes={"kind": kind, "path": path, "rows": rows})


# Global logger instance - singleton pattern
_audit_logger_instance = None

def get_audit_logger() -> AuditLogger:
    """Get or create the global audit logger instance"""
    global _audit_logger_instance
    if _audit_logger_instance is None:
        _audit_logger_instance = AuditLogger()
    return _audit_logger_instance
