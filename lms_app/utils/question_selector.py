"""
Question ordering for exam attempts

Randomized exams are shuffled once per attempt. The shuffle is seeded from
the attempt's identity, so re-opening the same attempt shows the same order
while two different attempts get independent orders.
"""

import random
from typing import List, Optional, Sequence

from lms_app.database.models import ExamDefinition, QuestionRef


def attempt_seed(attempt_id, start_time=None) -> str:
    """Seed string for one attempt's question order"""
    stamp = start_time.isoformat() if hasattr(start_time, 'isoformat') else (start_time or '')
    return f"attempt:{attempt_id}:{stamp}"


def shuffle_questions(questions: Sequence[QuestionRef], seed) -> List[QuestionRef]:
    """Return a shuffled copy; the input order is left untouched"""
    ordered = list(questions)
    random.Random(seed).shuffle(ordered)
    return ordered


def order_questions_for_attempt(exam: ExamDefinition, attempt_id,
                                start_time=None, rng: Optional[random.Random] = None) -> List[QuestionRef]:
    """
    Questions in the order they will be presented for one attempt.

    Args:
        exam: Exam definition with its question set
        attempt_id: Attempt the order belongs to
        start_time: Attempt start timestamp (part of the seed)
        rng: Explicit random source; overrides the attempt seed

    Returns:
        The exam's questions, shuffled when the exam has `aturan_random` set
    """
    questions = list(exam.questions)
    if not exam.randomize or len(questions) < 2:
        return questions
    if rng is not None:
        rng.shuffle(questions)
        return questions
    return shuffle_questions(questions, attempt_seed(attempt_id, start_time))
