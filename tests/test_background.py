"""
Tests for the background job queue.
"""
import logging

import pytest

from lakesync.core.exceptions import Conflict
from lakesync.services.background import BackgroundQueue


class TestBackgroundQueue:
    """Test job dispatch and failure isolation."""

    def test_jobs_run_in_order(self):
        """Queued jobs reach their handlers in enqueue order."""
        seen = []
        background = BackgroundQueue()
        background.register("index", lambda payload: seen.append(payload["entity_id"]))
        background.enqueue("index", entity_id=1)
        background.enqueue("index", entity_id=2)

        assert background.pending() == 2
        assert background.run_pending() == 2
        assert seen == [1, 2]
        assert background.processed == 2

    def test_failing_handler_is_logged_not_raised(self, caplog):
        """A failing job is logged and counted; later jobs still run."""
        seen = []

        def boom(payload):
            raise RuntimeError("indexer down")

        background = BackgroundQueue(retry_delay=0)
        background.register("thumbnail", boom)
        background.register("notify", lambda payload: seen.append(payload))
        background.enqueue("thumbnail", file_id="f")
        background.enqueue("notify", event="created")

        with caplog.at_level(logging.ERROR):
            assert background.run_pending() == 2
        assert background.failed == 1
        assert seen == [{"event": "created"}]
        assert "indexer down" in caplog.text

    def test_flaky_handler_is_retried(self):
        """A handler that fails once succeeds on the next attempt."""
        calls = []

        def flaky(payload):
            calls.append(payload["file_id"])
            if len(calls) == 1:
                raise ConnectionError("thumbnailer busy")

        background = BackgroundQueue(retry_delay=0)
        background.register("thumbnail", flaky)
        background.enqueue("thumbnail", file_id="f")

        background.run_pending()
        assert calls == ["f", "f"]
        assert background.processed == 1
        assert background.failed == 0

    def test_attempts_are_bounded(self):
        """A handler that keeps failing is tried max_attempts times, then dropped."""
        calls = []

        def down(payload):
            calls.append(payload)
            raise RuntimeError("indexer down")

        background = BackgroundQueue(max_attempts=3, retry_delay=0)
        background.register("index", down)
        background.enqueue("index", entity_id=1)

        background.run_pending()
        assert len(calls) == 3
        assert background.failed == 1
        assert background.pending() == 0

    def test_unknown_kind_rejected(self):
        """Only known job kinds accept handlers."""
        with pytest.raises(ValueError):
            BackgroundQueue().register("transcode", lambda payload: None)

    def test_jobs_only_after_commit(self, store, background, alice):
        """A rolled back mutation queues nothing."""
        store.create_file(alice.user_id, "a.txt", b"a")
        background.run_pending()

        with pytest.raises(Conflict):
            store.create_file(alice.user_id, "a.txt", b"b")
        assert background.pending() == 0

    def test_worker_thread_drains_queue(self):
        """The worker thread processes jobs until shut down."""
        seen = []
        background = BackgroundQueue()
        background.register("index", lambda payload: seen.append(payload["n"]))
        background.start()
        for n in range(3):
            background.enqueue("index", n=n)
        background.shutdown(timeout=5)
        assert seen == [0, 1, 2]
