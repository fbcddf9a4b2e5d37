"""
Tests for question drafting, validation, bank storage and attempt ordering
"""

import json
import random
import unittest
from datetime import datetime, timezone
from types import SimpleNamespace

from fakes import FakeDataClient
from lms_app.database.models import Difficulty, ExamDefinition, QuestionKind, QuestionRef
from lms_app.utils.ai_generator import QuestionGenerator, build_prompt, parse_drafts
from lms_app.utils.errors import QuestionGenerationError
from lms_app.utils.question_bank import QuestionBank, normalize_question
from lms_app.utils.question_selector import attempt_seed, order_questions_for_attempt


class FakeModel:
    """Stands in for a Gemini GenerativeModel"""

    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.prompts = []

    def generate_content(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return SimpleNamespace(text=self.text)


MCQ_REPLY = json.dumps([
    {"pertanyaan": "Organel tempat fotosintesis?", "opsi": ["Mitokondria", "Kloroplas", "Ribosom", "Inti"],
     "kunci_jawaban": "B"},
    {"pertanyaan": "Hasil fotosintesis selain glukosa?", "opsi": ["Oksigen", "Nitrogen", "Air", "Karbon"],
     "kunci_jawaban": "a"},
])


class TestQuestionGenerator(unittest.TestCase):

    def test_mcq_drafts_get_lettered_options(self):
        model = FakeModel(MCQ_REPLY)
        drafts = QuestionGenerator(model=model).generate("Fotosintesis", 'mcq', 'mudah', 2)

        self.assertEqual(len(drafts), 2)
        first = drafts[0]
        self.assertEqual([o['value'] for o in first['opsi_json']], ['a', 'b', 'c', 'd'])
        self.assertEqual(first['opsi_json'][1]['text'], 'Kloroplas')
        self.assertEqual(first['kunci_jawaban'], 'b')
        self.assertEqual(first['mapel'], 'Fotosintesis')
        self.assertEqual(first['tipe'], 'mcq')
        self.assertEqual(first['tingkat_kesulitan'], 'mudah')
        self.assertIn('"Fotosintesis"', model.prompts[0])

    def test_fenced_and_wrapped_replies_are_accepted(self):
        reply = "```json\n" + json.dumps({"questions": [
            {"pertanyaan": "Air mendidih pada 100 C di permukaan laut.", "opsi": None, "kunci_jawaban": "True"}
        ]}) + "\n```"
        drafts = parse_drafts(reply, "Fisika", QuestionKind.TRUE_FALSE, Difficulty.SEDANG)
        self.assertEqual(drafts[0]['kunci_jawaban'], 'true')
        self.assertIsNone(drafts[0]['opsi_json'])

    def test_essay_answer_keeps_case(self):
        reply = json.dumps([{"pertanyaan": "Jelaskan siklus air.", "kunci_jawaban": "Evaporasi, Kondensasi"}])
        drafts = parse_drafts(reply, "Geografi", QuestionKind.ESAI, Difficulty.SULIT)
        self.assertEqual(drafts[0]['kunci_jawaban'], "Evaporasi, Kondensasi")

    def test_invalid_json_gives_generic_message(self):
        generator = QuestionGenerator(model=FakeModel("not json at all"))
        with self.assertRaises(QuestionGenerationError) as ctx:
            generator.generate("Fotosintesis", 'mcq', 'mudah', 2)
        self.assertIn("Failed to parse AI response", str(ctx.exception))

    def test_missing_fields_are_rejected(self):
        generator = QuestionGenerator(model=FakeModel(json.dumps([{"pertanyaan": "Tanpa kunci"}])))
        with self.assertRaises(QuestionGenerationError):
            generator.generate("Fotosintesis", 'isian', 'mudah', 1)

    def test_api_key_errors_pass_through(self):
        generator = QuestionGenerator(model=FakeModel(error=RuntimeError("API key not valid")))
        with self.assertRaises(QuestionGenerationError) as ctx:
            generator.generate("Fotosintesis", 'mcq', 'mudah', 1)
        self.assertEqual(str(ctx.exception), "API key not valid")

    def test_settings_are_validated_before_calling_model(self):
        model = FakeModel(MCQ_REPLY)
        generator = QuestionGenerator(model=model)
        for topic, kind, difficulty, count in [("", 'mcq', 'mudah', 1),
                                               ("Topik", 'pilihan', 'mudah', 1),
                                               ("Topik", 'mcq', 'ekstrem', 1),
                                               ("Topik", 'mcq', 'mudah', 0),
                                               ("Topik", 'mcq', 'mudah', 21)]:
            with self.assertRaises(QuestionGenerationError, msg=f"{topic!r} {kind} {difficulty} {count}"):
                generator.generate(topic, kind, difficulty, count)
        self.assertEqual(model.prompts, [])

    def test_missing_api_key_is_reported(self):
        with self.assertRaises(QuestionGenerationError):
            QuestionGenerator(api_key='').generate("Topik", 'mcq', 'mudah', 1)

    def test_prompt_mentions_count_and_difficulty(self):
        prompt = build_prompt("Sel", QuestionKind.ISIAN, Difficulty.SULIT, 3)
        self.assertTrue(prompt.startswith("Generate 3 Fill-in-the-blank"))
        self.assertIn('"sulit"', prompt)


class TestNormalizeQuestion(unittest.TestCase):

    def mcq(self, **overrides):
        draft = {
            'pertanyaan': 'Ibu kota Indonesia?',
            'tipe': 'mcq',
            'mapel': 'IPS',
            'opsi_json': [{'value': 'a', 'text': 'Jakarta'}, {'value': 'b', 'text': 'Bandung'}],
            'kunci_jawaban': 'A',
        }
        draft.update(overrides)
        return draft

    def test_valid_mcq(self):
        row = normalize_question(self.mcq(), created_by=4)
        self.assertEqual(row['kunci_jawaban'], 'a')
        self.assertEqual(row['tingkat_kesulitan'], 'sedang')
        self.assertEqual(row['created_by'], 4)

    def test_mcq_rules(self):
        with self.assertRaises(ValueError):
            normalize_question(self.mcq(kunci_jawaban='c'))
        with self.assertRaises(ValueError):
            normalize_question(self.mcq(opsi_json=[{'value': 'a', 'text': 'Jakarta'}]))
        with self.assertRaises(ValueError):
            normalize_question(self.mcq(opsi_json=[{'value': 'a', 'text': 'X'}, {'value': 'a', 'text': 'Y'}]))

    def test_other_kinds(self):
        self.assertEqual(normalize_question({'pertanyaan': 'Bumi bulat.', 'tipe': 'truefalse',
                                             'kunci_jawaban': 'TRUE'})['kunci_jawaban'], 'true')
        with self.assertRaises(ValueError):
            normalize_question({'pertanyaan': '2 + 2 = ...', 'tipe': 'isian', 'kunci_jawaban': ''})
        essay = normalize_question({'pertanyaan': 'Jelaskan.', 'tipe': 'esai'})
        self.assertEqual(essay['mapel'], 'Umum')
        self.assertIsNone(essay['opsi_json'])
        with self.assertRaises(ValueError):
            normalize_question({'pertanyaan': ' ', 'tipe': 'esai'})
        with self.assertRaises(ValueError):
            normalize_question({'pertanyaan': 'Q', 'tipe': 'esai', 'tingkat_kesulitan': 'ekstrem'})


class TestQuestionBank(unittest.TestCase):

    def setUp(self):
        self.data = FakeDataClient()
        self.bank = QuestionBank(self.data)

    def test_invalid_draft_aborts_whole_batch(self):
        drafts = [{'pertanyaan': 'Ok?', 'tipe': 'esai'}, {'pertanyaan': '', 'tipe': 'esai'}]
        with self.assertRaises(ValueError):
            self.bank.add_questions(drafts, created_by=4)
        self.assertEqual(self.data.calls_for('insert'), [])

    def test_add_list_and_delete(self):
        saved = self.bank.add_questions([
            {'pertanyaan': 'Q1', 'tipe': 'esai', 'mapel': 'IPA'},
            {'pertanyaan': 'Q2', 'tipe': 'esai', 'mapel': 'IPS'},
        ], created_by=4)
        self.assertEqual(len(self.data.calls_for('insert', 'bank_soal')), 1, "Drafts are saved in one batch")

        self.assertEqual([q['pertanyaan'] for q in self.bank.list_questions(created_by=4, subject='IPA')], ['Q1'])
        self.bank.delete_question(saved[0]['id'])
        self.assertEqual([q['pertanyaan'] for q in self.bank.list_questions(created_by=4)], ['Q2'])
        self.assertEqual(self.bank.add_questions([]), [])


class TestQuestionOrdering(unittest.TestCase):

    def make_exam(self, randomize, count=10):
        questions = tuple(QuestionRef(id=i, subject='IPA', kind=QuestionKind.ESAI, prompt=f'Q{i}')
                          for i in range(1, count + 1))
        return ExamDefinition(id=1, title='UTS', duration_minutes=30, questions=questions, randomize=randomize)

    def test_same_attempt_same_order(self):
        exam = self.make_exam(True)
        start = datetime(2025, 3, 1, 8, tzinfo=timezone.utc)
        first = [q.id for q in order_questions_for_attempt(exam, 12, start)]
        again = [q.id for q in order_questions_for_attempt(exam, 12, start)]
        self.assertEqual(first, again)
        self.assertEqual(sorted(first), list(range(1, 11)))
        self.assertEqual([q.id for q in exam.questions], list(range(1, 11)), "Exam order must not change")

    def test_explicit_rng_overrides_seed(self):
        exam = self.make_exam(True)
        expected = list(exam.questions)
        random.Random(5).shuffle(expected)
        self.assertEqual(order_questions_for_attempt(exam, 1, rng=random.Random(5)), expected)

    def test_non_random_exam_keeps_order(self):
        exam = self.make_exam(False)
        self.assertEqual([q.id for q in order_questions_for_attempt(exam, 1)], list(range(1, 11)))

    def test_seed_includes_attempt_and_start(self):
        start = datetime(2025, 3, 1, 8, tzinfo=timezone.utc)
        self.assertNotEqual(attempt_seed(1, start), attempt_seed(2, start))
        self.assertEqual(attempt_seed(1), "attempt:1:")


if __name__ == '__main__':
    unittest.main()
