import dataclasses
import logging
import os
import resource
import signal
import subprocess
import sys
from typing import Iterable, List, Optional

from mempress.config import PressureConfig
from mempress.plan import AllocationPlan

logger = logging.getLogger(__name__)


def get_worker_command(plan: AllocationPlan, config: PressureConfig) -> List[str]:
    return [
        sys.executable,
        '-m',
        'mempress.worker',
        str(plan.memory_per_process),
        str(plan.steps),
        str(plan.delay_ms),
        '--pause-signal',
        config.pause_signal,
    ]


def get_preexec_fn(blocked_signals: Iterable[int]):
    signums = set(blocked_signals)

    def preexec_fn():
        # Held pending across exec until the worker has installed its handlers.
        signal.pthread_sigmask(signal.SIG_BLOCK, signums)

    return preexec_fn


def get_peak_memory(ru: resource.struct_rusage) -> int:
    """Get the peak resident set size in bytes from resource usage statistics.

    ru.ru_maxrss is reported in bytes on macOS and in kilobytes on Linux.
    """
    if sys.platform == 'darwin':
        return ru.ru_maxrss
    return ru.ru_maxrss * 1024


@dataclasses.dataclass
class WorkerResult:
    index: int
    pid: int
    exitcode: int
    peak_memory: int  # bytes
    killing_signal: Optional[int] = None

    def describe(self) -> str:
        if self.killing_signal is not None:
            try:
                return f'killed by {signal.Signals(self.killing_signal).name}'
            except ValueError:
                return f'killed by signal {self.killing_signal}'
        return f'exited with {self.exitcode}'


class WorkerProcess:
    """Handle the controller keeps for one spawned worker."""

    def __init__(
        self, index: int, command: List[str], blocked_signals: Iterable[int] = ()
    ):
        self.index = index
        self.command = command
        self.blocked_signals = set(blocked_signals)
        self.popen: Optional[subprocess.Popen] = None
        self.result: Optional[WorkerResult] = None

    @property
    def pid(self) -> int:
        assert self.popen is not None
        return self.popen.pid

    def start(self):
        # Workers share our stdout/stderr, but never read the operator's keys.
        self.popen = subprocess.Popen(
            self.command,
            stdin=subprocess.DEVNULL,
            preexec_fn=get_preexec_fn(self.blocked_signals),
        )
        logger.debug('Spawned worker #%d with pid %d.', self.index, self.pid)

    def send_signal(self, signum: int) -> bool:
        if self.popen is None or self.result is not None:
            return False
        try:
            os.kill(self.pid, signum)
        except ProcessLookupError:
            logger.debug('Worker #%d (pid %d) is already gone.', self.index, self.pid)
            return False
        return True

    def wait(self) -> WorkerResult:
        assert self.popen is not None
        if self.result is not None:
            return self.result
        _, exitstatus, ru = os.wait4(self.pid, 0)
        exitcode = os.waitstatus_to_exitcode(exitstatus)
        # Keep Popen in sync, otherwise it believes the child is still running.
        self.popen.returncode = exitcode
        self.result = WorkerResult(
            index=self.index,
            pid=self.pid,
            exitcode=exitcode,
            peak_memory=get_peak_memory(ru),
            killing_signal=-exitcode if exitcode < 0 else None,
        )
        logger.debug('Reaped worker #%d: %s.', self.index, self.result.describe())
        return self.result
