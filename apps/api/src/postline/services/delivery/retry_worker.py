from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from threading import Event, Lock, Thread, current_thread
from time import sleep as _sleep
from typing import Callable

from sqlalchemy.engine import Engine

from postline.models import PostRecord
from postline.services.delivery.publisher import PublisherClient
from postline.services.delivery.retry_scheduler import (
    RetryQueueStatus,
    add_to_retry_queue,
    get_retry_queue_status,
)
from postline.services.delivery.store import (
    claim_posts_due_for_retry,
    get_client,
    mark_post_sent,
    release_post_claim,
    utcnow,
)


@dataclass(frozen=True)
class WorkerStatus:
    running: bool
    processing: bool
    queue: RetryQueueStatus


class RetryWorker:
    """Periodically re-delivers posts whose retry time has come.

    One instance owns its thread, stop event and in-flight flag; whoever creates
    it (the API app or the worker process) controls its lifetime.  A tick that
    starts while another is in flight is skipped, not queued.  Due posts are
    claimed in the database before delivery, so several workers can share one
    queue without sending a post twice.
    """

    def __init__(
        self,
        engine: Engine,
        publisher: PublisherClient,
        *,
        interval_seconds: float = 15.0,
        batch_size: int = 5,
        delay_between_posts_seconds: float = 1.0,
        join_timeout_seconds: float = 60.0,
        sleep: Callable[[float], None] = _sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._engine = engine
        self._publisher = publisher
        self._interval_seconds = interval_seconds
        self._batch_size = batch_size
        self._delay_between_posts_seconds = delay_between_posts_seconds
        self._sleep = sleep
        self._clock = clock
        self._join_timeout_seconds = join_timeout_seconds

        self._thread: Thread | None = None
        self._stop_event = Event()
        self._processing = False
        self._processing_lock = Lock()

    def start(self) -> None:
        if self._thread is not None:
            print("[retry-worker] already running", flush=True)
            return

        print(f"[retry-worker] starting interval={self._interval_seconds}s", flush=True)
        self._stop_event = Event()
        self._thread = Thread(
            target=self.run,
            args=(self._stop_event,),
            name="retry-worker",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        thread, self._thread = self._thread, None
        # Let an in-flight tick finish so nothing runs after stop returns.
        if thread is not current_thread():
            thread.join(timeout=self._join_timeout_seconds)
        print("[retry-worker] stopped", flush=True)

    def is_running(self) -> bool:
        return self._thread is not None

    def run(self, stop_event: Event) -> None:
        """Tick immediately, then once per interval until ``stop_event`` is set."""
        while not stop_event.is_set():
            try:
                self.process_queue()
            except Exception as exc:
                print(f"[retry-worker] tick failed error={exc!r}", flush=True)
            stop_event.wait(self._interval_seconds)

    def process_queue(self) -> int | None:
        """Run one tick; returns the number of posts attempted, or ``None`` if skipped."""
        with self._processing_lock:
            if self._processing:
                return None
            self._processing = True

        try:
            posts = claim_posts_due_for_retry(
                self._engine,
                limit=self._batch_size,
                now=self._clock(),
            )
            if not posts:
                return 0

            print(f"[retry-worker] processing count={len(posts)}", flush=True)
            for index, post in enumerate(posts):
                try:
                    self._retry_post(post)
                except Exception:
                    for unfinished in posts[index:]:
                        release_post_claim(self._engine, unfinished.id, now=self._clock())
                    raise
                if index < len(posts) - 1:
                    self._sleep(self._delay_between_posts_seconds)
            return len(posts)
        finally:
            with self._processing_lock:
                self._processing = False

    def trigger_now(self) -> int | None:
        if not self.is_running():
            print("[retry-worker] not running, starting", flush=True)
            self.start()
            return None

        print("[retry-worker] immediate retry triggered", flush=True)
        return self.process_queue()

    def status(self) -> WorkerStatus:
        return WorkerStatus(
            running=self.is_running(),
            processing=self._processing,
            queue=get_retry_queue_status(self._engine),
        )

    def _retry_post(self, post: PostRecord) -> None:
        client = get_client(self._engine, post.client_id)
        if client is None:
            print(
                f"[retry-worker] client not found post_id={post.id} client_id={post.client_id}",
                flush=True,
            )
            add_to_retry_queue(
                self._engine,
                post.id,
                f"Client not found: {post.client_id}",
                now=self._clock(),
            )
            return

        print(f"[retry-worker] retrying post_id={post.id} attempt={post.retry_count + 1}", flush=True)
        try:
            result = self._publisher.deliver(
                post.processed_content,
                api_key=client.api_key,
                scheduled_time=post.scheduled_time,
            )
        except Exception as exc:
            print(f"[retry-worker] retry raised post_id={post.id} error={exc}", flush=True)
            add_to_retry_queue(self._engine, post.id, f"Exception: {exc}", now=self._clock())
            return

        if result.ok:
            mark_post_sent(self._engine, post.id, result.body or "Success", now=self._clock())
            print(f"[retry-worker] sent post_id={post.id}", flush=True)
            return

        detail = result.failure_detail()
        print(f"[retry-worker] retry failed post_id={post.id} error={detail}", flush=True)
        add_to_retry_queue(self._engine, post.id, detail, now=self._clock())
