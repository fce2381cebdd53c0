"""Tests for the subprocess runner with watchdog and cancellation."""

import sys
import threading
import time

import pytest

from skillmesh.errors import CommandCancelledError, CommandTimeoutError
from skillmesh.process import CancelToken, CommandResult, run_command

PY = sys.executable


class TestRunCommand:
    def test_captures_output(self):
        result = run_command([PY, "-c", "print('hello')"], timeout=30)
        assert result.ok
        assert result.stdout.strip() == "hello"
        assert result.raw_stdout.strip() == b"hello"

    def test_nonzero_exit_is_not_raised(self):
        result = run_command(
            [PY, "-c", "import sys; sys.stderr.write('bad'); sys.exit(3)"], timeout=30
        )
        assert not result.ok
        assert result.returncode == 3
        assert result.stderr == "bad"

    def test_input_is_sent_on_stdin(self):
        result = run_command(
            [PY, "-c", "import sys; print(sys.stdin.read().upper())"], timeout=30, input="abc"
        )
        assert result.stdout.strip() == "ABC"

    def test_env_is_layered(self):
        result = run_command(
            [PY, "-c", "import os; print(os.environ['MESH_TEST'], 'PATH' in os.environ)"],
            timeout=30,
            env={"MESH_TEST": "yes"},
        )
        assert result.stdout.split() == ["yes", "True"]

    def test_cwd(self, tmp_path):
        result = run_command([PY, "-c", "import os; print(os.getcwd())"], 30, cwd=str(tmp_path))
        assert result.stdout.strip() == str(tmp_path)

    def test_missing_program(self):
        with pytest.raises(FileNotFoundError):
            run_command(["definitely-not-a-real-program-xyz"], timeout=5)

    def test_timeout_kills_child(self):
        started = time.monotonic()
        with pytest.raises(CommandTimeoutError) as exc_info:
            run_command(
                [PY, "-c", "import sys, time; sys.stderr.write('partial'); sys.stderr.flush(); time.sleep(30)"],
                timeout=1,
                poll_interval=0.05,
            )
        assert time.monotonic() - started < 15
        assert exc_info.value.timeout == 1

    def test_cancel_before_start(self):
        token = CancelToken()
        token.cancel()
        with pytest.raises(CommandCancelledError):
            run_command([PY, "-c", "print(1)"], timeout=30, cancel=token)

    def test_cancel_while_running(self):
        token = CancelToken()
        timer = threading.Timer(0.3, token.cancel)
        timer.start()
        started = time.monotonic()
        try:
            with pytest.raises(CommandCancelledError):
                run_command(
                    [PY, "-c", "import time; time.sleep(30)"],
                    timeout=60,
                    cancel=token,
                    poll_interval=0.05,
                )
        finally:
            timer.cancel()
        assert time.monotonic() - started < 15


class TestCancelToken:
    def test_flag(self):
        token = CancelToken()
        assert not token.cancelled
        token.raise_if_cancelled()
        token.cancel()
        assert token.cancelled
        with pytest.raises(CommandCancelledError):
            token.raise_if_cancelled()


class TestCommandResult:
    def test_ok(self):
        assert CommandResult(0, "", "").ok
        assert not CommandResult(1, "", "").ok
