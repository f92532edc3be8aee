import atexit
import os
import pty
import termios
from unittest import mock

import pytest

from mempress.terminal import RawMode, read_char


@pytest.fixture
def pty_fds():
    master, slave = pty.openpty()
    yield master, slave
    os.close(master)
    os.close(slave)


class TestRawMode:
    """Test switching a terminal to raw mode and back."""

    def test_switches_and_restores(self, pty_fds):
        _, slave = pty_fds
        original = termios.tcgetattr(slave)
        assert original[3] & termios.ICANON

        with RawMode(slave) as raw_mode:
            assert raw_mode.active
            lflag = termios.tcgetattr(slave)[3]
            assert not lflag & termios.ICANON
            assert not lflag & termios.ECHO

        assert not raw_mode.active
        assert termios.tcgetattr(slave) == original

    def test_restores_on_error(self, pty_fds):
        _, slave = pty_fds
        original = termios.tcgetattr(slave)

        with pytest.raises(RuntimeError):
            with RawMode(slave):
                raise RuntimeError('boom')

        assert termios.tcgetattr(slave) == original

    def test_registers_exit_fallback(self, pty_fds):
        _, slave = pty_fds
        raw_mode = RawMode(slave)

        with mock.patch.object(atexit, 'register') as register, mock.patch.object(
            atexit, 'unregister'
        ) as unregister:
            raw_mode.enable()
            register.assert_called_once_with(raw_mode.restore)
            raw_mode.restore()
            unregister.assert_called_once_with(raw_mode.restore)

    def test_enable_twice_keeps_original(self, pty_fds):
        _, slave = pty_fds
        original = termios.tcgetattr(slave)

        raw_mode = RawMode(slave)
        raw_mode.enable()
        raw_mode.enable()
        raw_mode.restore()
        raw_mode.restore()

        assert termios.tcgetattr(slave) == original

    def test_not_a_terminal(self):
        read_fd, write_fd = os.pipe()
        try:
            with RawMode(read_fd) as raw_mode:
                assert not raw_mode.active
        finally:
            os.close(read_fd)
            os.close(write_fd)


def test_read_char():
    read_fd, write_fd = os.pipe()
    try:
        os.write(write_fd, b'pP\n')
        os.close(write_fd)

        assert [read_char(read_fd) for _ in range(4)] == ['p', 'P', '\n', '']
    finally:
        os.close(read_fd)


def test_read_char_from_terminal(pty_fds):
    master, slave = pty_fds
    with RawMode(slave):
        os.write(master, b'p')
        assert read_char(slave) == 'p'
