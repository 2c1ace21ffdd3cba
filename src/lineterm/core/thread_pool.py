"""
=============================================================================
SESSION WORKER POOL
=============================================================================

A bounded pool of worker threads. Each accepted connection becomes one
task; a worker runs that session from the first prompt until the client
leaves.

=============================================================================
WHY BOUND IT?
=============================================================================

The naive design spawns a detached thread per connection:

    for conn in accept_connections():
        threading.Thread(target=run_session, args=(conn,)).start()

Nothing stops a flood of connections from creating thousands of threads,
each with its own stack. A terminal session is LONG-LIVED (minutes or
hours), so they pile up fast. The pool makes the limit explicit:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Admission Control                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   accept() ──► submit()                                              │
    │                    │                                                 │
    │                    ├── queue has room → queued, a worker picks it up │
    │                    │                    (scale up to max_workers)    │
    │                    │                                                 │
    │                    └── queue full → rejected: caller tells the       │
    │                                     client "busy" and closes         │
    │                                                                      │
    │   At most max_workers sessions run at once;                          │
    │   at most queue_size connections wait for a worker.                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WORKER LIFECYCLE
=============================================================================

    def run(self):
        while not shutdown:
            task = queue.get()      ← BLOCKS until task available
            if task is None:        ← "Poison pill" signals shutdown
                break
            task.func(*task.args)   ← runs a whole session
            queue.task_done()

A task that raises is logged and the worker carries on; one broken
session never takes a worker down with it.

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """Worker thread states, for monitoring."""
    IDLE = "idle"        # Waiting for a task
    BUSY = "busy"        # Running a session
    STOPPED = "stopped"  # Thread exited


@dataclass
class Task:
    """
    A deferred call: "run this function with these arguments later".

    Attributes:
        func: The function to execute.
        args: Positional arguments.
        kwargs: Keyword arguments.
        submitted_at: Time of submission (queue wait is logged).
    """
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Worker thread that processes tasks from the queue.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Worker Loop                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. Wait for task from queue (with idle timeout)                   │
    │   2. None → exit                                                    │
    │   3. Run it; log any exception, never crash                         │
    │   4. task_done(), back to 1                                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(
        self,
        task_queue: queue.Queue,
        worker_id: int,
        idle_timeout: float = 1.0,
        on_task_done: Optional[Callable[[], None]] = None
    ):
        """
        Initialize the worker.

        Args:
            task_queue: Queue to pull tasks from.
            worker_id: Unique identifier for this worker (for logging).
            idle_timeout: Seconds to wait for a task before re-checking
                          the shutdown flag.
            on_task_done: Called after every task, success or failure.
        """
        # daemon=True: a session stuck on a silent peer must not keep
        # the process alive after shutdown
        super().__init__(name=f"Worker-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout
        self.on_task_done = on_task_done

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            if task is None:
                self.task_queue.task_done()
                break

            try:
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        """
        Execute a single task.

        Wrapped with state tracking, timing and exception handling.
        """
        self.state = WorkerState.BUSY
        start_time = time.time()
        waited = start_time - task.submitted_at
        if waited > 1.0:
            logger.info(f"Worker {self.worker_id} picked up task after {waited:.1f}s in queue")

        try:
            task.func(*task.args, **task.kwargs)

            elapsed = time.time() - start_time
            logger.debug(f"Worker {self.worker_id} completed task in {elapsed:.3f}s")
            self.tasks_completed += 1

        except Exception as e:
            # Don't let one bad session kill the worker
            elapsed = time.time() - start_time
            logger.exception(
                f"Worker {self.worker_id} task failed after {elapsed:.3f}s: {e}"
            )
            self.tasks_failed += 1

        finally:
            self.state = WorkerState.IDLE
            if self.on_task_done is not None:
                self.on_task_done()

    def shutdown(self):
        """Signal the worker to stop."""
        self._shutdown.set()


class ThreadPool:
    """
    Bounded thread pool.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      ThreadPool Usage                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   pool = ThreadPool(min_workers=4, max_workers=16, queue_size=16)    │
    │   pool.start()                                                       │
    │                                                                      │
    │   if not pool.submit(run_session, args=(lease,)):                    │
    │       reject(lease)              # over capacity                     │
    │                                                                      │
    │   print(pool.stats)                                                  │
    │   pool.shutdown(wait=True, timeout=5.0)                              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 16,
        queue_size: int = 16,
        idle_timeout: float = 1.0
    ):
        """
        Initialize the thread pool.

        Args:
            min_workers: Workers created at startup.
            max_workers: Hard limit on workers (and concurrent sessions).
            queue_size: Maximum tasks waiting for a worker.
            idle_timeout: Seconds between shutdown checks for idle workers.
        """
        if min_workers < 1 or max_workers < min_workers:
            raise ValueError("need 1 <= min_workers <= max_workers")

        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queue_size = queue_size
        self.idle_timeout = idle_timeout

        # queue.Queue is thread-safe: no manual locking for put/get
        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=queue_size)

        self._workers: list[Worker] = []
        self._lock = threading.Lock()  # Protects _workers list
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0
        self._outstanding = 0  # Queued + running tasks, protected by _lock
        self.tasks_rejected = 0

    @property
    def is_running(self) -> bool:
        return self._started and not self._shutdown

    def start(self):
        """Start the pool with min_workers threads."""
        if self._started:
            return

        logger.info(f"Starting thread pool with {self.min_workers} workers")
        self._shutdown = False
        with self._lock:
            for _ in range(self.min_workers):
                self._add_worker()

        self._started = True

    def _add_worker(self) -> Worker:
        """Create and start one worker. Caller holds self._lock."""
        worker = Worker(
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            idle_timeout=self.idle_timeout,
            on_task_done=self._task_done
        )
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
    ) -> bool:
        """
        Submit a task for execution.

        Never blocks: the accept loop must not stall because the pool
        is saturated.

        Args:
            func: The function to execute.
            args: Positional arguments for the function.
            kwargs: Keyword arguments for the function.

        Returns:
            True if accepted, False if the queue was full.

        Raises:
            RuntimeError: If the pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")

        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {})

        with self._lock:
            self._outstanding += 1
        try:
            self._task_queue.put_nowait(task)
        except queue.Full:
            with self._lock:
                self._outstanding -= 1
            self.tasks_rejected += 1
            return False

        self._maybe_scale_up()
        return True

    def _task_done(self):
        with self._lock:
            self._outstanding -= 1

    def _maybe_scale_up(self):
        """
        Add workers while there are more outstanding tasks than workers.

        A session holds its worker until the client leaves, so every
        queued or running task needs a worker of its own, up to
        max_workers.
        """
        with self._lock:
            while self._outstanding > len(self._workers) and len(self._workers) < self.max_workers:
                logger.debug(
                    f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
                )
                self._add_worker()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Shutdown the thread pool.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    shutdown() Flow                               │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   1. Reject new tasks                                            │
        │   2. Poison pill per worker (queued behind pending tasks)        │
        │   3. Join workers, up to timeout in total                        │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Sessions end when their sockets close, so callers close the
        sockets (registry sweep) BEFORE shutting the pool down.

        Args:
            wait: Whether to join the workers.
            timeout: Maximum total seconds to wait for workers.
        """
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        self._shutdown = True

        with self._lock:
            workers = list(self._workers)

        for worker in workers:
            worker.shutdown()
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                pass  # Worker will notice the shutdown flag instead

        if wait:
            deadline = time.time() + timeout if timeout else None
            for worker in workers:
                remaining = None if deadline is None else max(0.0, deadline - time.time())
                worker.join(timeout=remaining)
                if worker.is_alive():
                    logger.warning(f"Worker {worker.worker_id} did not stop in time")

        with self._lock:
            self._workers.clear()
        self._started = False

        logger.info("Thread pool shutdown complete")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def active_workers(self) -> int:
        """Get count of active (non-stopped) workers."""
        return sum(1 for w in self._workers if w.state != WorkerState.STOPPED)

    @property
    def busy_workers(self) -> int:
        """Get count of busy workers."""
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        """Get count of idle workers."""
        return sum(1 for w in self._workers if w.state == WorkerState.IDLE)

    @property
    def queue_size(self) -> int:
        """Get current task queue size."""
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        """Worker and task counts for monitoring."""
        total_completed = sum(w.tasks_completed for w in self._workers)
        total_failed = sum(w.tasks_failed for w in self._workers)

        return {
            "workers": {
                "total": len(self._workers),
                "active": self.active_workers,
                "busy": self.busy_workers,
                "idle": self.idle_workers,
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "outstanding": self._outstanding,
                "completed": total_completed,
                "failed": total_failed,
                "rejected": self.tasks_rejected,
            },
        }
