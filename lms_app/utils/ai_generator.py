"""
AI-assisted question drafting with Gemini

Drafts come back in the question bank's row shape so the teacher can review
them and save them with a single insert.
"""

import json
import logging
from typing import Dict, List, Optional

from lms_app.config import GEMINI_API_KEY, GEMINI_MODEL, AI_MAX_QUESTIONS
from lms_app.database.models import Difficulty, QuestionKind
from lms_app.utils.errors import QuestionGenerationError

logger = logging.getLogger(__name__)

KIND_DESCRIPTIONS = {
    QuestionKind.MCQ: "Multiple Choice Question with 4 options (a, b, c, d). One is correct.",
    QuestionKind.TRUE_FALSE: "A statement that is either true or false.",
    QuestionKind.ISIAN: "Fill-in-the-blank question where a short answer is expected.",
    QuestionKind.ESAI: "Essay question that requires a detailed explanation.",
}

# Errors whose message is more useful to the teacher than a generic one
PASSTHROUGH_MARKERS = ('API key', 'permission')


def build_prompt(topic: str, kind: QuestionKind, difficulty: Difficulty, count: int) -> str:
    return (
        f"Generate {count} {KIND_DESCRIPTIONS[kind]} questions about \"{topic}\" "
        f"with a difficulty level of \"{difficulty.value}\". "
        "For multiple choice, provide four distinct options labeled a, b, c, d and indicate "
        "the correct answer key. For true/false, provide the correct answer. For "
        "fill-in-the-blank, provide the correct short answer. For essays, the answer key "
        "should be a brief summary of expected points.\n"
        "Respond ONLY with a JSON array. Each item has the keys \"pertanyaan\" (question text), "
        "\"opsi\" (list of option texts for multiple choice, otherwise null) and "
        "\"kunci_jawaban\" (the option letter for multiple choice, 'true' or 'false' for "
        "true/false, otherwise the expected answer)."
    )


def _strip_fences(text: str) -> str:
    text = (text or '').strip()
    if text.startswith("```json"):
        text = text[len("```json"):]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def parse_drafts(text: str, topic: str, kind: QuestionKind, difficulty: Difficulty) -> List[Dict]:
    """Turn the model's JSON reply into bank_soal-shaped drafts"""
    payload = json.loads(_strip_fences(text))
    if isinstance(payload, dict):
        # Some replies wrap the list, e.g. {"questions": [...]}
        payload = next((v for v in payload.values() if isinstance(v, list)), None)
    if not isinstance(payload, list):
        raise ValueError("Expected a JSON array of questions")

    drafts = []
    for item in payload:
        if not isinstance(item, dict) or not item.get('pertanyaan') or item.get('kunci_jawaban') is None:
            raise ValueError("Every question needs 'pertanyaan' and 'kunci_jawaban'")
        options = item.get('opsi') or None
        answer = str(item['kunci_jawaban']).strip()
        if kind in (QuestionKind.MCQ, QuestionKind.TRUE_FALSE):
            answer = answer.lower()
        draft = {
            'pertanyaan': str(item['pertanyaan']).strip(),
            'opsi_json': [
                {'value': chr(97 + index), 'text': str(option)}
                for index, option in enumerate(options)
            ] if options else None,
            'kunci_jawaban': answer,
            'mapel': topic,
            'tipe': kind.value,
            'tingkat_kesulitan': difficulty.value,
        }
        drafts.append(draft)
    return drafts


class QuestionGenerator:
    """Request/response wrapper around a Gemini generative model"""

    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None, model=None):
        self.api_key = api_key if api_key is not None else GEMINI_API_KEY
        self.model_name = model_name or GEMINI_MODEL
        self._model = model

    @property
    def model(self):
        if self._model is None:
            if not self.api_key:
                raise QuestionGenerationError("GEMINI_API_KEY is not set; AI generation is unavailable")
            import google.generativeai as genai
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(
                self.model_name,
                generation_config={"response_mime_type": "application/json"}
            )
        return self._model

    def generate(self, topic: str, kind, difficulty, count: int) -> List[Dict]:
        """
        Generate question drafts

        Args:
            topic: Subject/topic; also used as the drafts' `mapel`
            kind: QuestionKind or its value
            difficulty: Difficulty or its value
            count: Number of questions (1..AI_MAX_QUESTIONS)

        Returns:
            List of dicts with pertanyaan, opsi_json, kunci_jawaban, mapel, tipe, tingkat_kesulitan
        """
        topic = (topic or '').strip()
        if not topic:
            raise QuestionGenerationError("Please enter a topic")
        try:
            kind = QuestionKind(kind)
            difficulty = Difficulty(difficulty)
            count = int(count)
        except ValueError as e:
            raise QuestionGenerationError(f"Invalid generation settings: {e}") from e
        if not 1 <= count <= AI_MAX_QUESTIONS:
            raise QuestionGenerationError(f"Number of questions must be between 1 and {AI_MAX_QUESTIONS}")

        prompt = build_prompt(topic, kind, difficulty, count)
        try:
            response = self.model.generate_content(prompt)
            drafts = parse_drafts(response.text, topic, kind, difficulty)
        except QuestionGenerationError:
            raise
        except Exception as e:
            logger.error("Error generating questions with AI: %s", e)
            message = str(e)
            if any(marker in message for marker in PASSTHROUGH_MARKERS):
                raise QuestionGenerationError(message, cause=e) from e
            raise QuestionGenerationError(
                "Failed to parse AI response. The model may have returned an invalid format "
                "or the request was blocked.",
                cause=e
            ) from e

        logger.info("Generated %d %s question draft(s) about %r", len(drafts), kind.value, topic)
        return drafts
