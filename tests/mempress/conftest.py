import os
import pathlib
import select
import signal
import subprocess
import sys
import time
from typing import Callable, Iterator, List

import pytest
from rich.console import Console

REPO_ROOT = pathlib.Path(__file__).parents[2]


class SpawnedCommand:
    """A mempress process whose merged output can be read with a deadline."""

    def __init__(self, args: List[str]):
        self.popen = subprocess.Popen(
            [sys.executable, '-m', *args],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            cwd=REPO_ROOT,
            bufsize=0,
        )
        self.output = ''

    @property
    def pid(self) -> int:
        return self.popen.pid

    def read_until(self, predicate: Callable[[str], bool], timeout: float = 15.0) -> str:
        assert self.popen.stdout is not None
        deadline = time.monotonic() + timeout
        while not predicate(self.output):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise AssertionError(f'Timed out waiting for output, got:\n{self.output}')
            ready, _, _ = select.select([self.popen.stdout], [], [], remaining)
            if not ready:
                continue
            data = os.read(self.popen.stdout.fileno(), 4096)
            if not data:
                raise AssertionError(f'Output closed early, got:\n{self.output}')
            self.output += data.decode('utf-8', errors='replace')
        return self.output

    def send(self, data: bytes):
        assert self.popen.stdin is not None
        self.popen.stdin.write(data)
        self.popen.stdin.flush()

    def finish(self, timeout: float = 15.0) -> int:
        assert self.popen.stdout is not None
        returncode = self.popen.wait(timeout=timeout)
        self.output += self.popen.stdout.read().decode('utf-8', errors='replace')
        return returncode

    def kill(self):
        if self.popen.poll() is None:
            # SIGTERM lets a controller reap its own workers first.
            self.popen.terminate()
            try:
                self.popen.wait(timeout=10)
            except subprocess.TimeoutExpired:
                self.popen.kill()
                self.popen.wait()
        for pipe in (self.popen.stdin, self.popen.stdout):
            if pipe is not None:
                pipe.close()


@pytest.fixture
def spawn() -> Iterator[Callable[..., SpawnedCommand]]:
    spawned: List[SpawnedCommand] = []

    def _spawn(*args: str) -> SpawnedCommand:
        command = SpawnedCommand(list(args))
        spawned.append(command)
        return command

    yield _spawn

    for command in spawned:
        command.kill()


@pytest.fixture
def restore_signal_handlers() -> Iterator[None]:
    signums = [signal.SIGINT, signal.SIGTERM, signal.SIGHUP, signal.SIGUSR1]
    previous = {signum: signal.getsignal(signum) for signum in signums}
    previous_mask = signal.pthread_sigmask(signal.SIG_BLOCK, [])
    yield
    signal.pthread_sigmask(signal.SIG_SETMASK, previous_mask)
    for signum, handler in previous.items():
        signal.signal(signum, handler)


@pytest.fixture(scope='session')
def monkeysession():
    from _pytest.monkeypatch import MonkeyPatch

    mpatch = MonkeyPatch()
    yield mpatch
    mpatch.undo()


@pytest.fixture(autouse=True, scope='session')
def rich_no_markup(monkeysession):
    monkeysession.setattr(
        'mempress.console.console', Console(soft_wrap=True, no_color=True)
    )
