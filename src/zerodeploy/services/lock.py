"""Advisory lock serializing deployments of one application root."""

import fcntl
import os
from pathlib import Path
from typing import Optional

from zerodeploy.errors import LockError
from zerodeploy.errors_catalog import actionable_error


class DeployLock:
    """Holds an exclusive ``flock`` on ``<app_root>.zerodeploy.lock`` for a whole run.

    Every release deployed to the same live root contends for the same lock.
    """

    def __init__(self, app_root: Path, logger):
        app_root = Path(app_root)
        self.lock_path = app_root.with_name(f"{app_root.name}.zerodeploy.lock")
        self.logger = logger
        self._fd: Optional[int] = None

    def acquire(self):
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            os.close(fd)
            raise LockError(actionable_error("deployment_locked", lock_path=str(self.lock_path))) from exc

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode("ascii"))
        self._fd = fd
        self.logger.debug("Acquired deployment lock %s", self.lock_path)

    def release(self):
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        self.logger.debug("Released deployment lock %s", self.lock_path)

    def __enter__(self) -> "DeployLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
