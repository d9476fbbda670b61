"""Child-process primitive for non-local environments.

:class:`ProcessExecutor` spawns a command, waits for it with an
optional deadline, and captures exit code and output. It is the only
place codecbench starts processes, which makes it the single point of
cancellation: :meth:`ProcessExecutor.terminate_all` terminates every
child that is still running, from any thread.

Deadline semantics:
    A command that outlives its timeout is killed and reported with
    ``timed_out=True``. The caller decides what that means; runners turn
    it into an environment failure.

Missing binaries:
    A command whose executable does not exist is reported with exit
    code 127 (the shell convention) instead of raising, so a host
    without Docker or asdf produces an ordinary environment failure.

Thread safety:
    ``run`` may be called concurrently from worker threads. The set of
    active children is guarded by a lock.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import threading
import time
from pathlib import Path
from typing import Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field

logger: logging.Logger = logging.getLogger(__name__)

EXIT_COMMAND_NOT_FOUND: int = 127
EXIT_CANCELLED: int = -15


class CommandResult(BaseModel):
    """Outcome of one child process.

    Attributes:
        args: Command line that was run.
        returncode: Exit code (127 when the executable is missing,
            negative when killed by a signal).
        stdout: Captured standard output.
        stderr: Captured standard error.
        timed_out: True if the deadline expired and the child was
            killed.
        cancelled: True if the child was terminated through
            :meth:`ProcessExecutor.terminate_all` or never started
            because the executor was already cancelled.
        duration: Wall time in seconds.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    cancelled: bool = False
    duration: float = Field(default=0.0, ge=0.0)

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0 and not self.timed_out and not self.cancelled

    @property
    def command_line(self) -> str:
        return shlex.join(self.args)

    def tail(self, lines: int = 20) -> str:
        """Last ``lines`` lines of stderr, or of stdout if stderr is empty."""
        text: str = self.stderr.strip() or self.stdout.strip()
        return "\n".join(text.splitlines()[-lines:])


class ProcessExecutor:
    """Runs child processes and can terminate all of them at once.

    Args:
        default_timeout: Timeout applied when ``run`` gets none.
            ``None`` waits forever.
    """

    def __init__(self, default_timeout: float | None = None) -> None:
        self._default_timeout: float | None = default_timeout
        self._active: set[subprocess.Popen[str]] = set()
        self._lock: threading.Lock = threading.Lock()
        self._cancelled: threading.Event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | str | None = None,
        extra_env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        log_path: Path | None = None,
    ) -> CommandResult:
        """Run ``args`` to completion.

        Args:
            args: Command and arguments, no shell involved.
            cwd: Working directory.
            extra_env: Variables layered over the current environment.
            timeout: Deadline in seconds, ``default_timeout`` if None.
            log_path: File the command line and output are appended to.

        Returns:
            :class:`CommandResult`. Never raises for a failing child.
        """
        argv: list[str] = [str(a) for a in args]
        effective_timeout: float | None = (
            timeout if timeout is not None else self._default_timeout
        )

        if self._cancelled.is_set():
            return CommandResult(
                args=argv, returncode=EXIT_CANCELLED, cancelled=True,
                stderr="executor cancelled before start",
            )

        env: dict[str, str] | None = None
        if extra_env:
            env = dict(os.environ)
            env.update(extra_env)

        logger.debug("Running: %s", shlex.join(argv))
        start: float = time.perf_counter()
        try:
            proc: subprocess.Popen[str] = subprocess.Popen(
                argv,
                cwd=cwd,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except FileNotFoundError as exc:
            result: CommandResult = CommandResult(
                args=argv,
                returncode=EXIT_COMMAND_NOT_FOUND,
                stderr=str(exc),
                duration=time.perf_counter() - start,
            )
            self._append_log(log_path, result)
            return result

        with self._lock:
            self._active.add(proc)
            cancelled_while_starting: bool = self._cancelled.is_set()
        if cancelled_while_starting:
            # terminate_all ran between the check above and registration.
            proc.terminate()

        timed_out: bool = False
        try:
            try:
                stdout, stderr = proc.communicate(timeout=effective_timeout)
            except subprocess.TimeoutExpired:
                timed_out = True
                logger.warning(
                    "Command exceeded %.0fs deadline, killing: %s",
                    effective_timeout, shlex.join(argv),
                )
                proc.kill()
                stdout, stderr = proc.communicate()
        finally:
            with self._lock:
                self._active.discard(proc)

        result = CommandResult(
            args=argv,
            returncode=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            timed_out=timed_out,
            cancelled=self._cancelled.is_set() and proc.returncode != 0,
            duration=time.perf_counter() - start,
        )
        self._append_log(log_path, result)
        return result

    def terminate_all(self) -> int:
        """Terminate every running child and refuse new ones.

        Returns:
            Number of children signalled.
        """
        with self._lock:
            self._cancelled.set()
            running: list[subprocess.Popen[str]] = list(self._active)
        for proc in running:
            try:
                proc.terminate()
            except ProcessLookupError:
                logger.debug("Child %d already exited", proc.pid)
        if running:
            logger.warning("Terminated %d running child process(es)", len(running))
        return len(running)

    def reset(self) -> None:
        """Accept new commands again after :meth:`terminate_all`."""
        self._cancelled.clear()

    @staticmethod
    def _append_log(log_path: Path | None, result: CommandResult) -> None:
        if log_path is None:
            return
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with log_path.open("a", encoding="utf-8") as f:
            f.write(f"$ {result.command_line}\n")
            if result.stdout:
                f.write(result.stdout)
                if not result.stdout.endswith("\n"):
                    f.write("\n")
            if result.stderr:
                f.write(result.stderr)
                if not result.stderr.endswith("\n"):
                    f.write("\n")
            f.write(
                f"# exit={result.returncode} timed_out={result.timed_out} "
                f"duration={result.duration:.1f}s\n"
            )
