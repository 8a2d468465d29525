"""Local state locking."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import IO, TYPE_CHECKING

from lattice_provisioner.engine.errors import StateLockError

if TYPE_CHECKING:
    from types import TracebackType

try:
    import fcntl  # type: ignore[attr-defined]
except ImportError:  # pragma: no cover
    fcntl = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 30.0
_POLL_INTERVAL = 0.2


class StateLock:
    """Exclusive advisory lock on ``<state>.lock``.

    Acquisition is retried until *timeout* seconds have passed, so a second
    ``apply`` against the same state fails fast instead of hanging forever.
    """

    def __init__(self, state_path: Path, *, timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self._lock_path = Path(str(state_path) + ".lock")
        self._timeout = timeout
        self._file: IO[str] | None = None

    def __enter__(self) -> StateLock:
        if fcntl is None:  # pragma: no cover
            raise StateLockError("State locking is not supported on this platform")

        # Keep fd open for lifetime of the lock.
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self._lock_path.open("a+", encoding="utf-8")
        try:
            self._acquire()
        except BaseException:
            self._file.close()
            self._file = None
            raise
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._file is None:
            return
        try:
            fcntl.flock(self._file.fileno(), fcntl.LOCK_UN)
        finally:
            self._file.close()
            self._file = None

    def _acquire(self) -> None:
        assert self._file is not None
        deadline = time.monotonic() + self._timeout
        while True:
            try:
                fcntl.flock(self._file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                return
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise StateLockError(
                        f"Timed out after {self._timeout:g}s waiting for {self._lock_path}; "
                        "is another run in progress?"
                    ) from None
                logger.debug("State lock %s is held, retrying", self._lock_path)
                time.sleep(_POLL_INTERVAL)
            except OSError as e:
                raise StateLockError(str(e)) from e
