"""
Exam countdown timer

A daemon thread that asks the attempt engine to recompute the remaining time
once per interval and hands the value to the UI clock. The engine decides when
time is up; the timer only stops when told to or when a tick reports the
attempt is over.
"""

import logging
import threading
from typing import Callable, Optional

from lms_app.config import TIMER_INTERVAL_SECONDS

logger = logging.getLogger(__name__)


def format_remaining(seconds) -> str:
    """MM:SS, or H:MM:SS for exams of an hour or longer"""
    seconds = max(0, int(seconds or 0))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


class ExamTimer:
    """Calls `tick` once per interval on a daemon thread until stopped.

    `tick` returns False when the countdown is over (attempt no longer in
    progress); the timer then stops by itself. `on_tick` receives the value
    returned by `remaining` after every tick, for the UI clock.
    """

    def __init__(self, tick: Callable[[], bool], remaining: Callable[[], int] = None,
                 on_tick: Optional[Callable[[int], None]] = None,
                 interval: float = TIMER_INTERVAL_SECONDS):
        self._tick = tick
        self._remaining = remaining
        self._on_tick = on_tick
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name='exam-timer', daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0):
        """Stop the loop; safe to call from the timer thread itself"""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self):
        try:
            while not self._stop_event.wait(self._interval):
                keep_running = self._tick()
                if self._on_tick and self._remaining:
                    try:
                        self._on_tick(self._remaining())
                    except Exception as e:
                        # Page closed or unavailable - stop timer gracefully
                        logger.warning("[TIMER] Display update failed, stopping timer: %s", e)
                        break
                if not keep_running:
                    break
        except Exception:
            logger.exception("[TIMER] Timer thread error")
        finally:
            self._stop_event.set()
            logger.debug("[TIMER] Timer thread stopped cleanly")
