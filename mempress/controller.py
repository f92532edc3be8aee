import contextlib
import logging
import signal
import sys
from typing import Callable, Iterator, List, Optional

import psutil
import rich.table
from rich.filesize import decimal

from mempress import console, terminal
from mempress.config import MB_SIZE, PressureConfig
from mempress.plan import AllocationPlan
from mempress.process import WorkerProcess, WorkerResult, get_worker_command

logger = logging.getLogger(__name__)

PAUSE_KEYS = ('p', 'P')
EXIT_KEY = '\n'
SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)


def get_available_memory_mb() -> int:
    return (psutil.virtual_memory().available + psutil.swap_memory().free) // MB_SIZE


def warn_about_plan(plan: AllocationPlan):
    if plan.dropped_mb > 0:
        console.console.print(
            f'[warning]{plan.total_memory_mb} MB do not split evenly across '
            f'{plan.num_processes} processes, {plan.dropped_mb} MB will not be allocated.[/warning]'
        )
    available = get_available_memory_mb()
    if plan.total_memory_mb > available:
        console.console.print(
            f'[warning]Requesting {plan.total_memory_mb} MB but only {available} MB of '
            'memory and swap are available, expect the OOM killer to step in.[/warning]'
        )


def print_summary(results: List[WorkerResult]):
    if not results:
        return
    table = rich.table.Table()
    table.add_column('#', justify='right')
    table.add_column('PID', justify='right')
    table.add_column('Status')
    table.add_column('Peak memory', justify='right')
    for result in results:
        table.add_row(
            str(result.index),
            str(result.pid),
            result.describe(),
            decimal(result.peak_memory),
        )
    console.console.print(table)


class Controller:
    def __init__(self, plan: AllocationPlan, config: Optional[PressureConfig] = None):
        self.plan = plan
        self.config = config or PressureConfig()
        self.workers: List[WorkerProcess] = []

    def spawn(self):
        console.console.print(
            f'Creating [item]{self.plan.num_processes}[/item] processes, each gradually '
            f'allocating [item]{self.plan.memory_per_process}[/item] MB of memory...'
        )
        command = get_worker_command(self.plan, self.config)
        for index in range(self.plan.num_processes):
            worker = WorkerProcess(
                index, command, blocked_signals={self.config.get_pause_signal()}
            )
            worker.start()
            self.workers.append(worker)

    def toggle_pause(self) -> int:
        """Ask every worker to flip its pause state.

        Returns how many workers the signal was delivered to. Nothing is
        waited for, workers acknowledge on their own.
        """
        signum = self.config.get_pause_signal()
        delivered = 0
        for worker in self.workers:
            if worker.send_signal(signum):
                delivered += 1
        logger.debug('Pause toggle delivered to %d workers.', delivered)
        return delivered

    def handle_key(self, key: str) -> bool:
        """Act on a single key. Returns whether the control loop should go on."""
        if not key or key == EXIT_KEY:
            return False
        if key in PAUSE_KEYS:
            self.toggle_pause()
        return True

    def control_loop(self, read_key: Callable[[], str]):
        console.console.print(
            "Press [item]'p'[/item] to pause/resume allocation. Press [item]Enter[/item] to exit."
        )
        while self.handle_key(read_key()):
            pass

    def shutdown(self) -> List[WorkerResult]:
        signum = self.config.get_terminate_signal()
        results = []
        # A second Ctrl-C must not leave the remaining workers running.
        with handled_by(signal.SIG_IGN, *SHUTDOWN_SIGNALS):
            for worker in self.workers:
                worker.send_signal(signum)
                results.append(worker.wait())
        print_summary(results)
        console.console.print('[success]All processes terminated.[/success]')
        return results


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt


@contextlib.contextmanager
def handled_by(handler, *signums: int) -> Iterator[None]:
    previous = {signum: signal.signal(signum, handler) for signum in signums}
    try:
        yield
    finally:
        for signum, previous_handler in previous.items():
            signal.signal(signum, previous_handler)


def interrupt_on(*signums: int):
    return handled_by(_raise_interrupt, *signums)


def run(
    plan: AllocationPlan,
    config: Optional[PressureConfig] = None,
    fd: Optional[int] = None,
) -> List[WorkerResult]:
    if fd is None:
        fd = sys.stdin.fileno()
    controller = Controller(plan, config)
    warn_about_plan(plan)

    with terminal.RawMode(fd), interrupt_on(signal.SIGTERM, signal.SIGHUP):
        try:
            controller.spawn()
            controller.control_loop(lambda: terminal.read_char(fd))
        finally:
            results = controller.shutdown()
    return results
