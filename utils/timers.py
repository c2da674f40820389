import logging
import threading

logger = logging.getLogger(__name__)


class RepeatingTimer:
    """Calls ``function`` every ``interval`` seconds on a daemon thread until cancelled.

    Exceptions raised by ``function`` are logged and the timer keeps running;
    callers that want a failure to stop the timer call ``cancel()`` themselves.
    """

    def __init__(self, interval, function, name=None):
        self.interval = interval
        self.function = function
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name or "repeating-timer", daemon=True)

    def start(self):
        self._thread.start()
        return self

    def cancel(self):
        self._stopped.set()

    @property
    def cancelled(self):
        return self._stopped.is_set()

    def _run(self):
        while not self._stopped.wait(self.interval):
            try:
                self.function()
            except Exception:
                logger.exception("Timer %s callback failed", self._thread.name)
