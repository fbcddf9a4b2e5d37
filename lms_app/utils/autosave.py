"""
Answer autosave: a keyed queue of pending upserts and the background worker
that drains it.

The queue keeps only the latest response per question, so a burst of edits
to one question costs one upsert.
"""

import logging
import threading
from collections import OrderedDict
from typing import Callable, Dict, List, Optional, Tuple

from lms_app.config import AUTOSAVE_IDLE_SECONDS

logger = logging.getLogger(__name__)


class AnswerQueue:
    """Pending answer rows keyed by question id (last write wins)"""

    def __init__(self):
        self._lock = threading.Lock()
        self._pending: "OrderedDict[int, Tuple[int, Dict]]" = OrderedDict()
        self._version = 0

    def put(self, question_id: int, row: Dict):
        with self._lock:
            self._version += 1
            self._pending.pop(question_id, None)
            self._pending[question_id] = (self._version, row)

    def snapshot(self) -> List[Tuple[int, int, Dict]]:
        """[(question_id, version, row), ...] in enqueue order"""
        with self._lock:
            return [(qid, version, row) for qid, (version, row) in self._pending.items()]

    def discard(self, question_id: int, version: int) -> bool:
        """Drop an entry once saved, unless a newer edit replaced it meanwhile"""
        with self._lock:
            current = self._pending.get(question_id)
            if current is not None and current[0] == version:
                del self._pending[question_id]
                return True
            return False

    def pending_ids(self) -> List[int]:
        with self._lock:
            return list(self._pending.keys())

    def __len__(self):
        with self._lock:
            return len(self._pending)


class AutosaveWorker:
    """Daemon thread that runs `flush` whenever it is woken.

    While answers remain pending after a failed flush it retries every
    `retry_interval` seconds, in addition to the retry on the next edit.
    """

    def __init__(self, flush: Callable[[], List[int]], retry_interval: float = AUTOSAVE_IDLE_SECONDS,
                 name: str = 'autosave'):
        self._flush = flush
        self._retry_interval = retry_interval
        self._wake = threading.Event()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._name = name

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            return
        self._stopped.clear()
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def wake(self):
        self._wake.set()

    def stop(self, timeout: float = 2.0):
        self._stopped.set()
        self._wake.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def _run(self):
        failed: List[int] = []
        while not self._stopped.is_set():
            woke = self._wake.wait(self._retry_interval if failed else None)
            if self._stopped.is_set():
                break
            self._wake.clear()
            if not woke and not failed:
                continue
            try:
                failed = self._flush()
            except Exception:
                logger.exception("[AUTOSAVE] Unexpected flush failure")
        logger.debug("[AUTOSAVE] Worker %s stopped", self._name)
