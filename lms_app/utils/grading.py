"""
Server-side grading dispatch

Objective questions are scored by a backend procedure, not on the student's
machine. The client only asks for an attempt to be graded and later re-reads
the attempt row for the score.
"""

from typing import Optional

from lms_app.config import GRADING_PROCEDURE
from lms_app.database.client import DataClient, get_data_client


class GradingClient:
    """Invokes the backend procedure that scores objective answers.

    The procedure sets the attempt's score and status; callers observe the
    effect by re-reading the attempt row.
    """

    def __init__(self, data_client: Optional[DataClient] = None, procedure: str = GRADING_PROCEDURE):
        self.data = data_client or get_data_client()
        self.procedure = procedure

    def grade_objective(self, attempt_id: int) -> None:
        """Raises DataError when the call fails"""
        self.data.rpc(self.procedure, {'p_attempt_id': attempt_id})
