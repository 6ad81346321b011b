import queue
import threading
from typing import Any, Callable, Optional, Tuple

from stockclient.errors import DispatchError
from stockclient.utils.logger import get_logger

logger = get_logger("inbound.dispatcher")

Job = Tuple[Callable[..., Any], Tuple[Any, ...]]


class Dispatcher:
    """
    Runs inbound handlers off the request thread so the HTTP ack never
    waits on application code. One daemon worker drains a bounded queue.
    """

    def __init__(self, on_error: Callable[[BaseException], None], maxsize: int = 1000):
        self.on_error = on_error
        self.jobs: "queue.Queue[Job]" = queue.Queue(maxsize=maxsize)
        self.stop_evt = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def _ensure_worker(self) -> None:
        with self._lock:
            # A worker still registered here has not exited yet; un-stopping it keeps a single consumer
            self.stop_evt.clear()
            if self._worker is None:
                self._worker = threading.Thread(target=self._loop, name="stockclient-dispatch", daemon=True)
                self._worker.start()

    def _loop(self) -> None:
        while True:
            with self._lock:
                if self.stop_evt.is_set():
                    if self._worker is threading.current_thread():
                        self._worker = None
                    return
            try:
                fn, args = self.jobs.get(timeout=0.5)
            except queue.Empty:
                continue
            try:
                fn(*args)
            except Exception as e:
                self._report(e)
            finally:
                self.jobs.task_done()

    def _report(self, err: Exception) -> None:
        try:
            self.on_error(err)
        except Exception:
            logger.exception("error handler raised while reporting %r", err)

    def submit(self, fn: Callable[..., Any], *args: Any) -> bool:
        """
        Queues `fn(*args)`. When the queue is full the job is dropped, the
        error handler receives a DispatchError and False is returned.
        """
        self._ensure_worker()
        try:
            self.jobs.put_nowait((fn, args))
            return True
        except queue.Full:
            name = getattr(fn, "__name__", repr(fn))
            logger.warning("dispatch queue full (%d), dropping %s", self.jobs.maxsize, name)
            self._report(DispatchError(f"Handler queue full ({self.jobs.maxsize}), dropped {name}"))
            return False

    def join(self) -> None:
        """Blocks until every queued job has run."""
        self.jobs.join()

    def stop(self, timeout: float = 1.0) -> None:
        """Asks the worker to exit and waits up to `timeout` for it."""
        with self._lock:
            self.stop_evt.set()
            worker = self._worker
        if worker is not None:
            worker.join(timeout=timeout)
