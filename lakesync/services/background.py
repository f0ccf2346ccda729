"""
Background collaborators

Search indexing, thumbnailing and notifications run after a mutation has been
committed. Jobs go through an in-process queue drained by a daemon worker. A
failing job is retried with backoff, then logged and dropped; it never reaches
the request that queued it.
"""
import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from lakesync.core.config import BACKGROUND_MAX_ATTEMPTS

logger = logging.getLogger(__name__)

JOB_KINDS = ("index", "unindex", "thumbnail", "purge_thumbnails", "notify")
# Cap on the backoff between attempts, in seconds
MAX_RETRY_DELAY = 10.0

Handler = Callable[[Dict[str, Any]], None]


@dataclass
class Job:
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)


class BackgroundQueue:
    def __init__(self, max_attempts: int = BACKGROUND_MAX_ATTEMPTS, retry_delay: float = 1.0):
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self._jobs: "queue.Queue[Optional[Job]]" = queue.Queue()
        self._handlers: Dict[str, List[Handler]] = {}
        self._stop_event = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self.processed = 0
        self.failed = 0

    def register(self, kind: str, handler: Handler) -> None:
        if kind not in JOB_KINDS:
            raise ValueError(f"Unknown job kind: {kind}")
        self._handlers.setdefault(kind, []).append(handler)

    def enqueue(self, kind: str, **payload) -> None:
        """Queue a job. Never raises."""
        try:
            self._jobs.put_nowait(Job(kind=kind, payload=payload))
        except Exception:
            logger.exception(f"Dropping {kind} job {payload}")

    def pending(self) -> int:
        return self._jobs.qsize()

    def run_pending(self) -> int:
        """Drain the queue on the calling thread. Returns the number of jobs run."""
        count = 0
        while True:
            try:
                job = self._jobs.get_nowait()
            except queue.Empty:
                return count
            if job is not None:
                self._process(job)
                count += 1

    def _process(self, job: Job) -> None:
        handlers = self._handlers.get(job.kind)
        if not handlers:
            logger.warning(f"No handler for {job.kind} job, dropping it")
            return
        for handler in handlers:
            self._run_handler(job, handler)

    def _run_handler(self, job: Job, handler: Handler) -> None:
        """Run one handler, retrying with exponential backoff up to max_attempts."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                handler(job.payload)
                self.processed += 1
                return
            except Exception:
                if attempt == self.max_attempts:
                    self.failed += 1
                    logger.exception(f"Background {job.kind} job failed after {attempt} attempts: {job.payload}")
                    return
                delay = min(self.retry_delay * 2 ** (attempt - 1), MAX_RETRY_DELAY)
                logger.warning(
                    f"Background {job.kind} job failed (attempt {attempt}/{self.max_attempts}), retrying in {delay}s",
                    exc_info=True
                )
                self._stop_event.wait(delay)

    def start(self) -> None:
        if self._worker is not None and self._worker.is_alive():
            return
        self._stop_event.clear()
        self._worker = threading.Thread(target=self._worker_loop, name="lakesync_background", daemon=True)
        self._worker.start()
        logger.info("Background worker started")

    def shutdown(self, timeout: float = 5.0) -> None:
        if self._worker is None:
            return
        # Jobs queued before the sentinel are still processed
        self._jobs.put(None)
        self._worker.join(timeout=timeout)
        self._stop_event.set()
        self._worker = None
        logger.info("Background worker stopped")

    def _worker_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                job = self._jobs.get(timeout=0.5)
            except queue.Empty:
                continue
            if job is None:
                break
            self._process(job)


# Stand-ins for the external indexer, thumbnailer and notifier

def _log_index(payload):
    logger.info(f"Index {payload.get('entity_type')} {payload.get('entity_id')}")


def _log_unindex(payload):
    logger.info(f"Unindex {payload.get('entity_type')} {payload.get('entity_id')}")


def _log_thumbnail(payload):
    logger.info(f"Thumbnail requested for file {payload.get('file_id')}")


def _log_purge_thumbnails(payload):
    logger.info(f"Thumbnails purged for file {payload.get('file_id')}")


def _log_notify(payload):
    logger.info(f"Notify {payload.get('event')} for {payload.get('entity_id')}")


def register_default_handlers(background: BackgroundQueue) -> BackgroundQueue:
    background.register("index", _log_index)
    background.register("unindex", _log_unindex)
    background.register("thumbnail", _log_thumbnail)
    background.register("purge_thumbnails", _log_purge_thumbnails)
    background.register("notify", _log_notify)
    return background


_background_queue: Optional[BackgroundQueue] = None


def get_background_queue() -> BackgroundQueue:
    """Process-wide queue, used as a FastAPI dependency"""
    global _background_queue
    if _background_queue is None:
        _background_queue = register_default_handlers(BackgroundQueue())
    return _background_queue
