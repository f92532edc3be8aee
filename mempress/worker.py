import collections
import logging
import mmap
import os
import signal
import threading
import time
from typing import Annotated, List, Optional

import typer

from mempress import console
from mempress.config import MB_SIZE, PressureConfig
from mempress.exception import AllocationError
from mempress.plan import get_step_ranges

logger = logging.getLogger(__name__)

# Largest slice written in one go while touching memory.
TOUCH_CHUNK_SIZE = MB_SIZE


class PauseState:
    """Pause flag of a single worker, flipped from a signal handler.

    The handler only flips the flag, queues the new value and wakes the
    main flow up. Acknowledgements are printed by whoever calls `drain`.
    """

    def __init__(self, paused: bool = False):
        self.paused = paused
        self._acks = collections.deque()
        self._wakeup = threading.Event()

    def toggle(self, signum=None, frame=None):
        self.paused = not self.paused
        self._acks.append(self.paused)
        self._wakeup.set()

    def drain(self) -> List[bool]:
        self._wakeup.clear()
        acks = []
        while self._acks:
            acks.append(self._acks.popleft())
        return acks

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._wakeup.wait(timeout)


def allocate_block(size: int) -> mmap.mmap:
    try:
        return mmap.mmap(-1, size, flags=mmap.MAP_PRIVATE)
    except (OSError, OverflowError, ValueError) as e:
        logger.debug('Could not map %d bytes: %s', size, e)
        with AllocationError() as err:
            err.print('[error]Memory allocation failed.[/error]')


def touch(block: mmap.mmap, start: int, end: int, fill_byte: int = 0xAA):
    """Write `fill_byte` over block[start:end], one bounded chunk at a time."""
    chunk = memoryview(bytes([fill_byte]) * min(TOUCH_CHUNK_SIZE, end - start))
    pos = start
    while pos < end:
        n = min(len(chunk), end - pos)
        block[pos : pos + n] = chunk[:n]
        pos += n


class Worker:
    def __init__(
        self,
        memory_mb: int,
        steps: int,
        delay_ms: int,
        config: Optional[PressureConfig] = None,
        state: Optional[PauseState] = None,
    ):
        self.memory_mb = memory_mb
        self.steps = steps
        self.delay_ms = delay_ms
        self.config = config or PressureConfig()
        self.state = state or PauseState()
        self.pid = os.getpid()
        self.block: Optional[mmap.mmap] = None

    def install_handlers(self):
        pause_signal = self.config.get_pause_signal()
        signal.signal(pause_signal, self.state.toggle)
        # Ctrl-C reaches the whole foreground group, but only the controller
        # decides when workers go away.
        signal.signal(signal.SIGINT, signal.SIG_IGN)
        # The controller spawns us with the pause signal blocked. A toggle sent
        # while we were starting up is delivered to the handler right here.
        signal.pthread_sigmask(signal.SIG_UNBLOCK, {pause_signal})

    def acknowledge(self):
        for paused in self.state.drain():
            status = 'Paused' if paused else 'Resumed'
            console.console.print(f'Process {self.pid}: {status}')

    def wait_while_paused(self):
        self.acknowledge()
        while self.state.paused:
            self.state.wait()
            self.acknowledge()

    def sleep(self, seconds: float):
        deadline = time.monotonic() + seconds
        while True:
            self.acknowledge()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            self.state.wait(remaining)

    def report_step(self, index: int):
        percent = 100.0 * (index + 1) / self.steps
        console.console.print(
            f'Process {self.pid}: Allocated {self.memory_mb // self.steps} MB of memory '
            f'in step {index + 1}/{self.steps} ({percent:.2f}% of total).'
        )

    def allocate(self):
        self.block = allocate_block(self.memory_mb * MB_SIZE)
        ranges = get_step_ranges(self.memory_mb, self.steps)
        logger.debug(
            'Worker %d touching %d bytes in %d steps of %d bytes.',
            self.pid,
            len(self.block),
            self.steps,
            ranges[0][1] - ranges[0][0],
        )
        for index, (start, end) in enumerate(ranges):
            self.wait_while_paused()
            touch(self.block, start, end, self.config.fill_byte)
            self.report_step(index)
            self.sleep(self.delay_ms / 1000)

    def idle(self):
        while True:
            self.sleep(self.config.idle_interval)

    def run(self):
        self.allocate()
        logger.debug('Worker %d done allocating, idling.', self.pid)
        self.idle()


app = typer.Typer(add_completion=False)


@app.command()
def main(
    memory_mb: Annotated[
        int, typer.Argument(min=1, help='Memory to allocate, in MB.')
    ],
    steps: Annotated[
        int, typer.Argument(min=1, help='Number of steps to allocate it in.')
    ],
    delay_ms: Annotated[
        int, typer.Argument(min=0, help='Delay between steps, in milliseconds.')
    ],
    pause_signal: Annotated[
        str,
        typer.Option('--pause-signal', help='Signal that toggles pause/resume.'),
    ] = 'SIGUSR1',
):
    """Gradually allocate and touch memory until terminated."""
    worker = Worker(
        memory_mb, steps, delay_ms, PressureConfig(pause_signal=pause_signal)
    )
    worker.install_handlers()
    try:
        worker.run()
    except AllocationError as e:
        print(str(e), end='', flush=True)
        raise typer.Exit(1) from None


if __name__ == '__main__':
    app()
