"""Bounded adb command execution."""

from __future__ import annotations

import logging
import signal
import subprocess
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_BUFFER = 10 * 1024 * 1024  # 10MB


@dataclass
class BridgeResult:
    """Output of a successful adb command."""

    stdout: str
    stderr: str


class BridgeError(Exception):
    """adb command failed, timed out, or was killed.

    Attributes:
        exit_code: Process exit code when known. A process killed by a
            signal reports 128 + signal number, as a shell would.
        signal: Termination signal name (e.g. "SIGKILL") when known.
    """

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        signal: str | None = None,
        args: list[str] | None = None,
        device_id: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code
        self.signal = signal
        self.adb_args = list(args or [])
        self.device_id = device_id

    def __str__(self) -> str:
        if self.exit_code is None and self.signal is None:
            return self.message
        return f"{self.message} (code: {self.exit_code if self.exit_code is not None else '?'}, signal: {self.signal or '?'})"


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"SIG{signum}"


class DeviceBridge:
    """Issue adb commands with per-call timeouts."""

    def __init__(self, adb_path: str = "adb"):
        """Initialize bridge.

        Args:
            adb_path: adb executable name or path
        """
        self._adb_path = adb_path

    def command(
        self,
        args: list[str],
        device_id: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_buffer_bytes: int = DEFAULT_MAX_BUFFER,
        silent: bool = False,
    ) -> BridgeResult:
        """Execute adb command.

        Args:
            args: Command arguments (without 'adb -s device')
            device_id: Target device serial, or None for adb's default
            timeout: Seconds before the process is killed
            max_buffer_bytes: Maximum accepted stdout size
            silent: Do not log failures

        Returns:
            Stripped stdout/stderr

        Raises:
            BridgeError: On nonzero exit, timeout, oversize output or
                missing adb binary.
        """
        cmd = [self._adb_path]
        if device_id:
            cmd += ["-s", device_id]
        cmd += list(args)

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            raise self._fail(
                f"adb command timed out after {timeout}s: {' '.join(args)}",
                args, device_id, silent,
            ) from None
        except OSError as e:
            raise self._fail(
                f"adb command could not start: {e}", args, device_id, silent
            ) from e

        stdout = result.stdout or ""
        stderr = result.stderr or ""

        if result.returncode != 0:
            exit_code: int | None = result.returncode
            sig_name: str | None = None
            if result.returncode < 0:
                # Killed by signal: report the shell-style code as well
                sig_name = _signal_name(-result.returncode)
                exit_code = 128 - result.returncode
            message = (stderr or stdout).strip() or "Unknown error"
            raise self._fail(
                f"adb command failed: {message}",
                args, device_id, silent,
                exit_code=exit_code, sig_name=sig_name,
            )

        if len(stdout.encode("utf-8", errors="replace")) > max_buffer_bytes:
            raise self._fail(
                f"adb output exceeded {max_buffer_bytes} bytes", args, device_id, silent
            )

        return BridgeResult(stdout=stdout.strip(), stderr=stderr.strip())

    def pull(
        self,
        remote_path: str,
        local_path: str,
        device_id: str | None = None,
        timeout: float = 10.0,
    ) -> BridgeResult:
        """Copy a device file to local storage."""
        return self.command(["pull", remote_path, local_path], device_id=device_id, timeout=timeout)

    def _fail(
        self,
        message: str,
        args: list[str],
        device_id: str | None,
        silent: bool,
        exit_code: int | None = None,
        sig_name: str | None = None,
    ) -> BridgeError:
        error = BridgeError(
            message, exit_code=exit_code, signal=sig_name, args=args, device_id=device_id
        )
        if not silent:
            logger.warning("adb %s failed: %s", " ".join(args), error)
        return error
