"""
Tests for the answer queue, the autosave worker and the countdown timer
"""

import threading
import unittest

from lms_app.utils.autosave import AnswerQueue, AutosaveWorker
from lms_app.utils.exam_timer import ExamTimer, format_remaining


class TestAnswerQueue(unittest.TestCase):

    def test_latest_edit_wins(self):
        queue = AnswerQueue()
        queue.put(1, {'jawaban_user': 'a'})
        queue.put(2, {'jawaban_user': 'x'})
        queue.put(1, {'jawaban_user': 'b'})

        snapshot = queue.snapshot()
        self.assertEqual([qid for qid, _, _ in snapshot], [2, 1], "Re-edited question moves to the back")
        self.assertEqual(snapshot[1][2], {'jawaban_user': 'b'})
        self.assertEqual(len(queue), 2)

    def test_discard_keeps_newer_edit(self):
        """An edit made while a save is in flight must not be dropped"""
        queue = AnswerQueue()
        queue.put(1, {'jawaban_user': 'a'})
        (_, version, _), = queue.snapshot()
        queue.put(1, {'jawaban_user': 'b'})

        self.assertFalse(queue.discard(1, version))
        self.assertEqual(queue.pending_ids(), [1])

        (_, newest, _), = queue.snapshot()
        self.assertTrue(queue.discard(1, newest))
        self.assertEqual(queue.pending_ids(), [])


class TestAutosaveWorker(unittest.TestCase):

    def test_wake_runs_flush(self):
        flushed = threading.Event()

        def flush():
            flushed.set()
            return []

        worker = AutosaveWorker(flush, retry_interval=0.05, name='autosave-test')
        worker.start()
        try:
            self.assertTrue(worker.running)
            worker.wake()
            self.assertTrue(flushed.wait(2), "Flush should run after wake()")
        finally:
            worker.stop()
        self.assertFalse(worker.running)

    def test_failed_flush_is_retried_without_new_edits(self):
        calls = []
        done = threading.Event()

        def flush():
            calls.append(1)
            if len(calls) >= 3:
                done.set()
                return []
            return [42]

        worker = AutosaveWorker(flush, retry_interval=0.01)
        worker.start()
        try:
            worker.wake()
            self.assertTrue(done.wait(2), "Pending answers should be retried periodically")
        finally:
            worker.stop()
        self.assertGreaterEqual(len(calls), 3)


class TestFormatRemaining(unittest.TestCase):

    def test_formats(self):
        self.assertEqual(format_remaining(0), "00:00")
        self.assertEqual(format_remaining(59), "00:59")
        self.assertEqual(format_remaining(300), "05:00")
        self.assertEqual(format_remaining(3725), "1:02:05")
        self.assertEqual(format_remaining(-5), "00:00")
        self.assertEqual(format_remaining(None), "00:00")


class TestExamTimer(unittest.TestCase):

    def test_timer_stops_when_tick_returns_false(self):
        remaining = [3]
        shown = []
        stopped = threading.Event()

        def tick():
            remaining[0] -= 1
            return remaining[0] > 0

        def on_tick(value):
            shown.append(value)
            if value == 0:
                stopped.set()

        timer = ExamTimer(tick, lambda: remaining[0], on_tick, interval=0.01)
        timer.start()
        self.assertTrue(stopped.wait(2))
        timer.stop()

        self.assertEqual(shown, [2, 1, 0])
        self.assertFalse(timer.running)

    def test_display_failure_stops_timer(self):
        ticks = []

        def tick():
            ticks.append(1)
            return True

        def on_tick(value):
            raise RuntimeError("page closed")

        timer = ExamTimer(tick, lambda: 10, on_tick, interval=0.01)
        timer.start()
        timer._thread.join(2)
        self.assertFalse(timer.running)
        self.assertEqual(len(ticks), 1)


if __name__ == '__main__':
    unittest.main()
