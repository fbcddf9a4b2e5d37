"""
Exam attempt engine

Drives one student's timed pass through one exam: creates (or resumes) the
attempt row, keeps the countdown honest against the wall clock, validates and
autosaves answers, and finalizes the attempt by dispatching server-side
grading.

Lifecycle: not_started -> in_progress -> submitted -> (backend) graded.
Only in_progress -> submitted is performed here.
"""

import logging
import math
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from lms_app.config import (
    TABLE_ATTEMPTS, TABLE_ANSWERS, ANSWER_CONFLICT_KEY, TIME_WARNINGS, SERVER_TIME_PROCEDURE
)
from lms_app.database.client import DataClient, get_data_client
from lms_app.database.models import (
    Answer, Attempt, AttemptStatus, ExamDefinition, QuestionKind, QuestionRef, parse_timestamp
)
from lms_app.utils.autosave import AnswerQueue, AutosaveWorker
from lms_app.utils.errors import (
    AttemptCreationError, DataError, GradingDispatchError, InvalidAnswerError, PersistenceError
)
from lms_app.utils.exam_timer import ExamTimer
from lms_app.utils.grading import GradingClient
from lms_app.utils.logging_config import get_audit_logger
from lms_app.utils.question_selector import order_questions_for_attempt
from lms_app.utils.session import AttemptRegistry

logger = logging.getLogger(__name__)

TRUE_FALSE_VALUES = ('true', 'false')


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def validate_response(question: QuestionRef, response) -> str:
    """Normalize a response for a question or raise InvalidAnswerError"""
    text = '' if response is None else str(response)

    if question.kind is QuestionKind.MCQ:
        key = text.strip()
        if key not in question.option_keys:
            raise InvalidAnswerError(
                f"'{key}' is not one of the options for this question",
                question_id=question.id,
                response=response
            )
        return key

    if question.kind is QuestionKind.TRUE_FALSE:
        value = text.strip().lower()
        if value not in TRUE_FALSE_VALUES:
            raise InvalidAnswerError(
                "Answer must be true or false",
                question_id=question.id,
                response=response
            )
        return value

    # Fill-in-the-blank and essays take free text as typed
    return text


@dataclass
class SubmissionResult:
    """Outcome of finishing an attempt. The student's session is over either way."""

    attempt_id: int
    status: AttemptStatus
    answered: int
    total_questions: int
    forced: bool = False
    duration_seconds: int = 0
    unsaved_question_ids: List[int] = field(default_factory=list)
    grading_error: Optional[GradingDispatchError] = None

    @property
    def finished(self) -> bool:
        return True

    @property
    def grading_dispatched(self) -> bool:
        return self.grading_error is None


class ExamAttemptEngine:
    """State machine for one exam attempt.

    All state transitions run under one re-entrant lock, so timer ticks, UI
    handlers and autosave callbacks arriving on different threads are applied
    one at a time. Network calls for answers and grading happen outside it.
    """

    def __init__(self, data_client: Optional[DataClient] = None, grader: Optional[GradingClient] = None,
                 registry: Optional[AttemptRegistry] = None, clock: Callable[[], datetime] = None,
                 rng=None, background_autosave: bool = True, audit=None,
                 time_warnings=TIME_WARNINGS):
        self.data = data_client or get_data_client()
        self.grader = grader or GradingClient(self.data)
        self.registry = registry if registry is not None else AttemptRegistry()
        self.clock = clock or _utc_now
        self.rng = rng
        self.audit = audit or get_audit_logger()
        self.background_autosave = background_autosave
        self.time_warnings = tuple(sorted(time_warnings, reverse=True))

        self._lock = threading.RLock()
        self._submit_lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._queue = AnswerQueue()
        self._worker: Optional[AutosaveWorker] = None
        self._timer: Optional[ExamTimer] = None
        self._finished_listeners: List[Callable[[SubmissionResult], None]] = []
        self._warning_listeners: List[Callable[[int], None]] = []
        self._warnings_issued = set()

        self.exam: Optional[ExamDefinition] = None
        self.student_id: Optional[int] = None
        self.attempt_id: Optional[int] = None
        self.questions: List[QuestionRef] = []
        self._questions_by_id: Dict[int, QuestionRef] = {}
        self.current_question_index = 0
        self.remaining_seconds = 0
        self.answers: Dict[int, str] = {}
        self.status = AttemptStatus.NOT_STARTED
        self.score: Optional[float] = None
        self.started_at: Optional[datetime] = None
        self._clock_offset = timedelta(0)
        self._result: Optional[SubmissionResult] = None

    # ---- listeners -----------------------------------------------------------

    def add_finished_listener(self, listener: Callable[[SubmissionResult], None]):
        """Called once with the SubmissionResult, for manual and forced submits"""
        self._finished_listeners.append(listener)

    def add_time_warning_listener(self, listener: Callable[[int], None]):
        """Called with the threshold (seconds) when remaining time crosses it"""
        self._warning_listeners.append(listener)

    # ---- start / resume ------------------------------------------------------

    def start(self, exam: ExamDefinition, student) -> int:
        """Create the attempt row and enter in_progress. Returns the attempt id.

        Raises AttemptCreationError when the attempt cannot be created; the
        caller must not open the taking screen in that case.
        """
        student_id = getattr(student, 'id', student)
        self._check_can_begin(exam)

        if not self.registry.claim(student_id, exam.id):
            raise AttemptCreationError("This exam is already open in your session")

        try:
            existing = self.data.select(
                TABLE_ATTEMPTS,
                {
                    'ujian_id': exam.id,
                    'user_id': student_id,
                    'status': [AttemptStatus.IN_PROGRESS.value, AttemptStatus.SUBMITTED.value]
                },
                limit=1
            )
            if existing:
                raise AttemptCreationError("You already have an unfinished attempt for this exam")

            requested_at = self.clock()
            row = self.data.insert(TABLE_ATTEMPTS, {
                'ujian_id': exam.id,
                'user_id': student_id,
                'status': AttemptStatus.IN_PROGRESS.value,
            })
            received_at = self.clock()
        except AttemptCreationError:
            self.registry.release(student_id, exam.id)
            raise
        except DataError as e:
            self.registry.release(student_id, exam.id)
            logger.error("Failed to start exam attempt for exam %s: %s", exam.id, e)
            raise AttemptCreationError(f"Could not start the exam: {e}", cause=e) from e

        local_mid = requested_at + (received_at - requested_at) / 2
        server_start = parse_timestamp(row.get('start_time'))
        if server_start is None:
            logger.warning("Attempt %s has no server start time; using local clock", row.get('id'))
            server_start = local_mid
        self._clock_offset = server_start - local_mid

        self._begin(exam, student_id, row['id'], server_start, {})
        self.audit.log_exam_start(student_id, exam.id, self.attempt_id, exam.title)
        logger.info("Attempt %s started for exam %s (%d questions, %d min)",
                    self.attempt_id, exam.id, len(self.questions), exam.duration_minutes)
        return self.attempt_id

    def resume(self, exam: ExamDefinition, attempt_row: Dict, student) -> int:
        """Re-enter an in_progress attempt with its saved answers.

        Remaining time is derived from the persisted start time and the
        backend's current time; if it has already run out the attempt is
        submitted immediately.
        """
        student_id = getattr(student, 'id', student)
        self._check_can_begin(exam)
        attempt = Attempt.from_row(attempt_row)
        if attempt.exam_id != exam.id or attempt.student_id != student_id:
            raise AttemptCreationError("This attempt does not belong to you or to this exam")
        if attempt.status is not AttemptStatus.IN_PROGRESS:
            raise AttemptCreationError("This attempt has already been submitted")
        if attempt.start_time is None:
            raise AttemptCreationError("This attempt has no start time and cannot be resumed")

        # The local clock may have been changed since the attempt started
        try:
            clock_offset = self._measure_clock_offset()
        except DataError as e:
            logger.error("Could not read the server clock to resume attempt %s: %s", attempt.id, e)
            raise AttemptCreationError(f"Could not resume the exam: {e}", cause=e) from e

        if not self.registry.claim(student_id, exam.id):
            raise AttemptCreationError("This exam is already open in your session")

        member_ids = set(exam.question_ids())
        saved: Dict[int, str] = {}
        try:
            for row in self.data.select(TABLE_ANSWERS, {'attempt_id': attempt.id}):
                answer = Answer.from_row(row)
                if answer.question_id in member_ids:
                    saved[answer.question_id] = answer.response
        except DataError as e:
            logger.warning("Could not load saved answers for attempt %s: %s", attempt.id, e)

        self._clock_offset = clock_offset
        self._begin(exam, student_id, attempt.id, attempt.start_time, saved)
        self.audit.log_exam_start(student_id, exam.id, attempt.id, exam.title, resumed=True)
        logger.info("Attempt %s resumed with %d saved answers, %ss left",
                    attempt.id, len(saved), self.remaining_seconds)

        if self.remaining_seconds <= 0:
            self.submit(forced=True)
        return self.attempt_id

    def _check_can_begin(self, exam: ExamDefinition):
        if self.status is not AttemptStatus.NOT_STARTED:
            raise AttemptCreationError("This exam session has already been used")
        if not exam.questions:
            raise AttemptCreationError("This exam has no questions yet")
        if exam.duration_minutes <= 0:
            raise AttemptCreationError("This exam has no duration configured")

    def _begin(self, exam: ExamDefinition, student_id: int, attempt_id: int,
               started_at: datetime, saved_answers: Dict[int, str]):
        with self._lock:
            self.exam = exam
            self.student_id = student_id
            self.attempt_id = attempt_id
            self.started_at = started_at
            self.questions = order_questions_for_attempt(exam, attempt_id, started_at, self.rng)
            self._questions_by_id = {q.id: q for q in self.questions}
            self.answers = dict(saved_answers)
            self.current_question_index = 0
            self.status = AttemptStatus.IN_PROGRESS
            self.remaining_seconds = self._compute_remaining()
            # Thresholds already behind us at (re)start are not announced
            self._warnings_issued = {t for t in self.time_warnings if self.remaining_seconds <= t}
        self.registry.bind(student_id, exam.id, attempt_id)

        if self.background_autosave:
            self._worker = AutosaveWorker(self.flush_answers, name=f'autosave-{attempt_id}')
            self._worker.start()

    # ---- time ----------------------------------------------------------------

    def _measure_clock_offset(self) -> timedelta:
        """Backend clock minus local clock, read at the midpoint of one round-trip.

        Raises DataError when the backend cannot be asked for its time.
        """
        requested_at = self.clock()
        value = self.data.rpc(SERVER_TIME_PROCEDURE)
        received_at = self.clock()
        server_now = parse_timestamp(value)
        if server_now is None:
            raise DataError(f"{SERVER_TIME_PROCEDURE} returned no timestamp")
        return server_now - (requested_at + (received_at - requested_at) / 2)

    def _now(self) -> datetime:
        """Current time on the backend's clock"""
        return self.clock() + self._clock_offset

    def _compute_remaining(self) -> int:
        duration = self.exam.duration_seconds
        deadline = self.started_at + timedelta(seconds=duration)
        return min(duration, max(0, math.ceil((deadline - self._now()).total_seconds())))

    def elapsed_seconds(self) -> int:
        if self.started_at is None:
            return 0
        return max(0, int((self._now() - self.started_at).total_seconds()))

    def tick(self) -> bool:
        """Advance the countdown; returns False once the attempt is no longer running.

        Remaining time is recomputed from the start timestamp rather than
        decremented, so a suspended process cannot gain extra time.
        """
        warnings = []
        with self._lock:
            if self.status is not AttemptStatus.IN_PROGRESS:
                return False
            self.remaining_seconds = self._compute_remaining()
            expired = self.remaining_seconds <= 0
            if not expired:
                for threshold in self.time_warnings:
                    if self.remaining_seconds <= threshold and threshold not in self._warnings_issued:
                        self._warnings_issued.add(threshold)
                        warnings.append(threshold)

        for threshold in warnings:
            logger.info("Attempt %s: %d minute(s) remaining", self.attempt_id, threshold // 60)
            for listener in list(self._warning_listeners):
                try:
                    listener(threshold)
                except Exception:
                    logger.exception("Time warning listener failed")

        if expired:
            logger.info("Time's up for attempt %s, auto-submitting", self.attempt_id)
            self.submit(forced=True)
            return False
        return True

    def start_timer(self, on_tick: Optional[Callable[[int], None]] = None) -> ExamTimer:
        """Run `tick` every second on a background thread"""
        with self._lock:
            if self.status is not AttemptStatus.IN_PROGRESS:
                raise RuntimeError("Timer can only run while the attempt is in progress")
            if self._timer is None:
                self._timer = ExamTimer(self.tick, lambda: self.remaining_seconds, on_tick)
                self._timer.start()
            return self._timer

    def _stop_timer(self):
        timer = self._timer
        self._timer = None
        if timer is not None:
            timer.stop()

    # ---- navigation ----------------------------------------------------------

    @property
    def current_question(self) -> Optional[QuestionRef]:
        with self._lock:
            if not self.questions:
                return None
            return self.questions[self.current_question_index]

    @property
    def is_first_question(self) -> bool:
        return self.current_question_index == 0

    @property
    def is_last_question(self) -> bool:
        return self.current_question_index >= len(self.questions) - 1

    def navigate(self, delta: int) -> int:
        """Move one question back (-1) or forward (+1); no-op at either end"""
        if delta not in (-1, 1):
            raise ValueError("delta must be -1 or +1")
        return self.go_to(self.current_question_index + delta)

    def go_to(self, index: int) -> int:
        """Jump to a question by position; out-of-range positions are ignored"""
        with self._lock:
            if 0 <= index < len(self.questions):
                self.current_question_index = index
            return self.current_question_index

    # ---- answers -------------------------------------------------------------

    def record_answer(self, question_id: int, response) -> bool:
        """Keep the response and queue it for saving.

        Returns False when the edit is ignored because the attempt is no
        longer running. Raises InvalidAnswerError for responses that fail
        validation; nothing is queued in that case.
        """
        expired = False
        with self._lock:
            if self.status is not AttemptStatus.IN_PROGRESS:
                logger.info("Ignoring answer for question %s: attempt %s is %s",
                            question_id, self.attempt_id, self.status.value)
                return False

            if self._compute_remaining() <= 0:
                expired = True
            else:
                question = self._questions_by_id.get(question_id)
                if question is None:
                    raise InvalidAnswerError(
                        f"Question {question_id} is not part of this exam",
                        question_id=question_id,
                        response=response
                    )
                value = validate_response(question, response)
                self.answers[question_id] = value
                self._queue.put(question_id, Answer(self.attempt_id, question_id, value).to_row())

        if expired:
            # The timer thread may lag behind a suspended clock
            self.submit(forced=True)
            return False

        self._request_flush()
        return True

    def is_answered(self, question_id: int) -> bool:
        value = self.answers.get(question_id)
        return value is not None and str(value).strip() != ''

    @property
    def answered_count(self) -> int:
        return sum(1 for qid in self.answers if self.is_answered(qid))

    @property
    def pending_answer_ids(self) -> List[int]:
        return self._queue.pending_ids()

    def _request_flush(self):
        worker = self._worker
        if worker is not None and worker.running:
            worker.wake()
        else:
            self.flush_answers()

    def flush_answers(self) -> List[int]:
        """Upsert every queued answer; returns question ids that failed and stay queued"""
        failed = []
        with self._flush_lock:
            for question_id, version, row in self._queue.snapshot():
                try:
                    self.data.upsert(TABLE_ANSWERS, row, on_conflict=ANSWER_CONFLICT_KEY)
                except DataError as e:
                    error = PersistenceError(
                        f"Could not save answer for question {question_id}",
                        question_id=question_id,
                        cause=e
                    )
                    logger.warning("[AUTOSAVE] %s (attempt %s): %s - will retry",
                                   error, self.attempt_id, e)
                    failed.append(question_id)
                    continue
                self._queue.discard(question_id, version)
                question = self._questions_by_id.get(question_id)
                self.audit.log_answer_save(
                    self.student_id, self.attempt_id, question_id,
                    question.kind.value if question else 'unknown'
                )
        return failed

    def _stop_worker(self):
        worker = self._worker
        self._worker = None
        if worker is not None:
            worker.stop()

    # ---- submit / close ------------------------------------------------------

    def submit(self, forced: bool = False) -> SubmissionResult:
        """Finish the attempt: stop the clock, save answers, dispatch grading.

        Idempotent; later calls return the first result. A grading failure
        does not prevent finishing; it is carried on `result.grading_error`.
        """
        with self._submit_lock:
            if self._result is not None:
                return self._result

            with self._lock:
                if self.status is AttemptStatus.NOT_STARTED:
                    raise RuntimeError("No attempt has been started")
                if self.status is AttemptStatus.IN_PROGRESS:
                    self.status = AttemptStatus.SUBMITTED
                self.remaining_seconds = self._compute_remaining()
                answered = self.answered_count
                duration = min(self.elapsed_seconds(), self.exam.duration_seconds)
                ended_at = self._now()

            self._stop_timer()
            self._stop_worker()

            unsaved = self.flush_answers()
            if unsaved:
                logger.error("Attempt %s submitted with %d unsaved answer(s): %s",
                             self.attempt_id, len(unsaved), unsaved)

            try:
                self.data.update(
                    TABLE_ATTEMPTS,
                    {'id': self.attempt_id},
                    {'status': AttemptStatus.SUBMITTED.value, 'end_time': ended_at.isoformat()}
                )
            except DataError as e:
                logger.warning("Could not mark attempt %s as submitted: %s", self.attempt_id, e)

            grading_error = None
            try:
                self.grader.grade_objective(self.attempt_id)
            except Exception as e:
                grading_error = GradingDispatchError(
                    "Your exam was submitted, but it could not be sent for grading. "
                    "Please contact your supervisor.",
                    attempt_id=self.attempt_id,
                    cause=e
                )
                logger.error("Grading dispatch failed for attempt %s: %s", self.attempt_id, e)
                self.audit.log_grading_failure(self.student_id, self.attempt_id, str(e))

            result = SubmissionResult(
                attempt_id=self.attempt_id,
                status=self.status,
                answered=answered,
                total_questions=len(self.questions),
                forced=forced,
                duration_seconds=duration,
                unsaved_question_ids=unsaved,
                grading_error=grading_error,
            )
            self._result = result
            self.registry.release(self.student_id, self.exam.id)
            self.audit.log_exam_submit(self.student_id, self.exam.id, self.attempt_id,
                                       duration, answered, forced)

        for listener in list(self._finished_listeners):
            try:
                listener(result)
            except Exception:
                logger.exception("Finished listener failed for attempt %s", self.attempt_id)
        return result

    @property
    def result(self) -> Optional[SubmissionResult]:
        return self._result

    def close(self):
        """Leave the taking screen without submitting.

        Stops the timer and autosave thread, saves what is queued, and
        leaves the attempt in_progress on the backend so it can be resumed.
        """
        self._stop_timer()
        self._stop_worker()
        with self._lock:
            still_running = self.status is AttemptStatus.IN_PROGRESS
        if still_running:
            unsaved = self.flush_answers()
            if unsaved:
                logger.warning("Attempt %s closed with %d unsaved answer(s)", self.attempt_id, len(unsaved))
            self.registry.release(self.student_id, self.exam.id)
            logger.info("Attempt %s closed without submitting", self.attempt_id)

    def refresh_status(self) -> AttemptStatus:
        """Re-read the attempt row to observe grading (status and score)"""
        if self.attempt_id is None:
            return self.status
        row = self.data.select_one(TABLE_ATTEMPTS, {'id': self.attempt_id})
        if not row:
            return self.status
        remote = AttemptStatus(row.get('status') or self.status.value)
        with self._lock:
            if self.status.can_advance_to(remote):
                self.status = remote
            if row.get('score') is not None:
                self.score = row.get('score')
            return self.status
