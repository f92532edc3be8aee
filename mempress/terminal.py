import atexit
import logging
import os
import termios
from typing import Optional

logger = logging.getLogger(__name__)


class RawMode:
    """Keep a terminal in non-canonical, no-echo mode while active.

    Keys are delivered one at a time without waiting for Enter and are not
    echoed back. The original attributes are restored on exit, and also at
    interpreter exit in case the context was never left. Non-terminal file
    descriptors are left alone.
    """

    def __init__(self, fd: int):
        self.fd = fd
        self._saved: Optional[list] = None

    @property
    def active(self) -> bool:
        return self._saved is not None

    def enable(self):
        if self.active:
            return
        if not os.isatty(self.fd):
            logger.debug('fd %d is not a terminal, not switching to raw mode.', self.fd)
            return
        self._saved = termios.tcgetattr(self.fd)
        atexit.register(self.restore)

        raw = termios.tcgetattr(self.fd)
        raw[3] &= ~(termios.ICANON | termios.ECHO)
        termios.tcsetattr(self.fd, termios.TCSAFLUSH, raw)

    def restore(self):
        if self._saved is None:
            return
        termios.tcsetattr(self.fd, termios.TCSAFLUSH, self._saved)
        self._saved = None
        atexit.unregister(self.restore)

    def __enter__(self):
        self.enable()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.restore()


def read_char(fd: int) -> str:
    """Read a single key from `fd`, or '' at end of input."""
    return os.read(fd, 1).decode('latin-1')
