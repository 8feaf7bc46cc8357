"""Cross-process lock that serializes package compilation."""
import fcntl
import logging
import threading
import time
from pathlib import Path
from typing import IO

from bundler.errors import LockError

logger = logging.getLogger(__name__)


class SingleFlightLock:
    """Exclusive lock on a file, shared by every process of the application.

    ``acquire()`` makes timeout-bounded attempts and then applies the wait
    policy: in blocking mode it sleeps ``retry_interval`` seconds and tries
    again until it succeeds, otherwise it gives up after the first timeout so
    the caller can serve uncompressed files instead.

    The lock is re-entrant for the thread holding it.
    """

    # Polling interval while waiting inside one attempt
    POLL_INTERVAL = 0.05

    def __init__(
        self,
        path: str | Path,
        timeout: float = 15,
        blocking: bool = True,
        retry_interval: float = 1,
    ):
        """Initialize lock.

        Args:
            path: Lock file path
            timeout: Maximum seconds a single attempt waits for the holder
            blocking: Retry forever (True) or give up after one attempt (False)
            retry_interval: Seconds to sleep between attempts in blocking mode
        """
        self.path = Path(path)
        self.timeout = timeout
        self.blocking = blocking
        self.retry_interval = retry_interval
        self._handle: IO[str] | None = None
        self._owner: int | None = None
        self._depth = 0

    @property
    def locked(self) -> bool:
        """Whether this instance currently holds the lock."""
        return self._depth > 0

    def _open(self) -> IO[str]:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            return self.path.open("a+", encoding="utf-8")
        except OSError as e:
            raise LockError(f"Cannot open lock file {self.path}: {e}") from e

    def try_acquire(self, timeout: float | None = None) -> bool:
        """Make one attempt to take the lock, waiting at most timeout seconds.

        Returns:
            True if the lock is now held

        Raises:
            LockError: If the lock file cannot be opened
        """
        if self._depth and self._owner == threading.get_ident():
            self._depth += 1
            return True

        timeout = self.timeout if timeout is None else timeout
        handle = self._open()
        deadline = time.monotonic() + timeout
        while True:
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    handle.close()
                    return False
                time.sleep(self.POLL_INTERVAL)
            except OSError as e:
                handle.close()
                raise LockError(f"Cannot lock {self.path}: {e}") from e

        self._handle = handle
        self._owner = threading.get_ident()
        self._depth = 1
        return True

    def acquire(self) -> bool:
        """Take the lock according to the wait policy.

        Returns:
            True if the lock is held, False if a non-blocking caller timed out
        """
        while not self.try_acquire():
            if not self.blocking:
                logger.info(f"Lock {self.path} busy, giving up")
                return False
            logger.info(f"Lock {self.path} busy, retrying in {self.retry_interval}s")
            time.sleep(self.retry_interval)
        return True

    def release(self) -> None:
        """Release one level of the lock."""
        if not self._depth:
            return
        self._depth -= 1
        if self._depth:
            return

        handle, self._handle, self._owner = self._handle, None, None
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()
