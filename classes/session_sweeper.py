import logging

from utils.timers import RepeatingTimer

logger = logging.getLogger(__name__)


class SessionSweeper:
    """Periodically deletes expired session rows.

    Housekeeping only: ``AuthService.validate`` rejects expired tokens on its
    own, so a failed run is logged and retried on the next tick.
    """

    def __init__(self, app, auth_service, interval):
        self.app = app
        self.auth_service = auth_service
        self.interval = interval
        self._timer = None

    def run_once(self):
        with self.app.app_context():
            try:
                return self.auth_service.sweep_expired_sessions()
            except Exception:
                logger.exception("Error during expired session cleanup")
                return 0

    def start(self):
        if self._timer is None and self.interval:
            self._timer = RepeatingTimer(self.interval, self.run_once, name="session-sweeper").start()
            logger.info("Session sweeper running every %ss", self.interval)
        return self

    def stop(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @property
    def running(self):
        return self._timer is not None
