"""Interchangeable ways of fetching the current UI hierarchy.

Each strategy either returns sanitized hierarchy XML or raises
RetrievalError. The controller walks them in order until one succeeds.
"""

from __future__ import annotations

import logging
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import requests

from uilocator.core.device_bridge import BridgeError, DeviceBridge
from uilocator.core.hierarchy_parser import has_hierarchy_root, sanitize_hierarchy_xml

logger = logging.getLogger(__name__)

DEFAULT_DUMP_PATH = "/sdcard/view.xml"
FALLBACK_DUMP_PATH = "/sdcard/window_dump.xml"
TTY_SINK = "/dev/tty"

DUMP_TIMEOUT = 15.0
READ_TIMEOUT = 10.0
CLEANUP_TIMEOUT = 3.0

_DUMPED_TO_RE = re.compile(r"dumped to:\s*(/[\w/.\-]+\.xml)", re.IGNORECASE)


# uiautomator is SIGKILLed when UiAutomation is already registered by
# another client (typically a live Appium/UiAutomator2 session).
INSPECTOR_CRASH_EXIT_CODE = 137
INSPECTOR_CRASH_SIGNAL = "SIGKILL"


class RetrievalError(Exception):
    """A strategy could not produce a usable hierarchy.

    Carries the exit code / signal of the underlying adb failure, if any,
    so the controller can recognise a crashing inspector.
    """

    def __init__(self, message: str, exit_code: int | None = None, signal: str | None = None):
        super().__init__(message)
        self.exit_code = exit_code
        self.signal = signal

    @classmethod
    def from_bridge(cls, prefix: str, error: BridgeError) -> RetrievalError:
        return cls(f"{prefix}: {error}", exit_code=error.exit_code, signal=error.signal)


def _is_crash(error: BridgeError | RetrievalError) -> bool:
    return error.exit_code == INSPECTOR_CRASH_EXIT_CODE or error.signal == INSPECTOR_CRASH_SIGNAL


def _keep_crash(previous: BridgeError | None, error: BridgeError) -> BridgeError:
    """Pick the error to report, never masking an earlier crash signature."""
    if previous is not None and _is_crash(previous):
        return previous
    return error


class RetrievalStrategy(ABC):
    """One way of obtaining hierarchy XML."""

    name: str = "strategy"

    @abstractmethod
    def attempt(self, device_id: str | None) -> str:
        """Fetch hierarchy XML.

        Args:
            device_id: Target device serial, or None for adb's default

        Returns:
            Sanitized XML containing the hierarchy root

        Raises:
            RetrievalError: When no valid hierarchy could be obtained
        """


def _valid_capture(raw: str | None) -> str | None:
    xml = sanitize_hierarchy_xml(raw)
    return xml if has_hierarchy_root(xml) else None


class ExecOutDumpStrategy(RetrievalStrategy):
    """Stream the dump straight to stdout via exec-out and /dev/tty.

    Avoids any dependency on device storage.
    """

    name = "exec-out"

    def __init__(self, bridge: DeviceBridge, timeout: float = DUMP_TIMEOUT):
        self._bridge = bridge
        self._timeout = timeout

    def attempt(self, device_id: str | None) -> str:
        last_error: BridgeError | None = None
        variants = (
            ["exec-out", "uiautomator", "dump", TTY_SINK],
            ["exec-out", "uiautomator", "dump", "--compressed", TTY_SINK],
        )
        for args in variants:
            try:
                result = self._bridge.command(
                    args, device_id=device_id, timeout=self._timeout, silent=True
                )
            except BridgeError as e:
                last_error = _keep_crash(last_error, e)
                logger.debug("exec-out dump %s failed: %s", args[3:], e)
                continue

            xml = _valid_capture(result.stdout)
            if xml:
                return xml
            logger.debug("exec-out dump %s returned no hierarchy", args[3:])

        if last_error is not None:
            raise RetrievalError.from_bridge("exec-out dump failed", last_error)
        raise RetrievalError("exec-out returned empty or invalid XML")


class FileDumpStrategy(RetrievalStrategy):
    """Dump to a device file, then pull it (or cat it in place)."""

    name = "file-dump"

    def __init__(
        self,
        bridge: DeviceBridge,
        dump_path: str = DEFAULT_DUMP_PATH,
        fallback_path: str = FALLBACK_DUMP_PATH,
        temp_dir: Path | None = None,
    ):
        self._bridge = bridge
        self._dump_path = dump_path
        self._fallback_path = fallback_path
        self._temp_dir = temp_dir

    def attempt(self, device_id: str | None) -> str:
        self._remove_stale_dump(device_id)
        dump_path = self._run_dump(device_id)

        candidates: list[str] = []
        for path in (dump_path, self._fallback_path):
            if path and path not in candidates:
                candidates.append(path)

        last_error: RetrievalError | None = None
        for path in candidates:
            try:
                return self._read_via_pull(path, device_id)
            except RetrievalError as pull_error:
                last_error = pull_error
                logger.debug("Pull of %s failed, falling back to cat: %s", path, pull_error)
            try:
                return self._read_via_cat(path, device_id)
            except RetrievalError as cat_error:
                last_error = cat_error
                logger.debug("Cat of %s failed: %s", path, cat_error)

        raise last_error or RetrievalError("Failed to read UI hierarchy dump")

    def _remove_stale_dump(self, device_id: str | None) -> None:
        """Delete the previous dump so a stale file is never read back."""
        try:
            self._bridge.command(
                ["shell", "rm", self._dump_path],
                device_id=device_id,
                timeout=CLEANUP_TIMEOUT,
                silent=True,
            )
        except BridgeError:
            pass  # Missing file is fine

    def _run_dump(self, device_id: str | None) -> str:
        """Run uiautomator dump, retrying once with --compressed.

        Returns:
            Device path the tool reports writing to, or the default path
        """
        try:
            result = self._bridge.command(
                ["shell", "uiautomator", "dump", self._dump_path],
                device_id=device_id,
                timeout=DUMP_TIMEOUT,
                silent=True,
            )
        except BridgeError as e:
            logger.debug("Standard uiautomator dump failed: %s. Retrying with --compressed", e)
            try:
                result = self._bridge.command(
                    ["shell", "uiautomator", "dump", "--compressed", self._dump_path],
                    device_id=device_id,
                    timeout=DUMP_TIMEOUT,
                    silent=True,
                )
            except BridgeError as retry_error:
                error = _keep_crash(e, retry_error)
                raise RetrievalError.from_bridge("uiautomator dump failed", error) from retry_error

        combined = "\n".join(part for part in (result.stdout, result.stderr) if part)
        return parse_dump_path(combined) or self._dump_path

    def _read_via_pull(self, remote_path: str, device_id: str | None) -> str:
        with tempfile.NamedTemporaryFile(
            prefix="ui_view_", suffix=".xml", dir=self._temp_dir, delete=False
        ) as tmp:
            local_path = Path(tmp.name)

        try:
            try:
                self._bridge.pull(remote_path, str(local_path), device_id=device_id, timeout=READ_TIMEOUT)
            except BridgeError as e:
                raise RetrievalError.from_bridge(f"pull {remote_path} failed", e) from e

            if not local_path.exists():
                raise RetrievalError("Failed to pull UI hierarchy file")

            xml = _valid_capture(local_path.read_text(encoding="utf-8", errors="replace"))
            if not xml:
                raise RetrievalError("Retrieved XML is empty or invalid")
            return xml
        finally:
            local_path.unlink(missing_ok=True)

    def _read_via_cat(self, remote_path: str, device_id: str | None) -> str:
        try:
            result = self._bridge.command(
                ["shell", "cat", remote_path],
                device_id=device_id,
                timeout=READ_TIMEOUT,
                silent=True,
            )
        except BridgeError as e:
            raise RetrievalError.from_bridge(f"cat {remote_path} failed", e) from e

        xml = _valid_capture(result.stdout)
        if not xml:
            raise RetrievalError("adb cat returned empty or invalid XML")
        return xml


def parse_dump_path(output: str | None) -> str | None:
    """Extract the path from uiautomator's "dumped to: /path.xml" report."""
    if not output:
        return None
    match = _DUMPED_TO_RE.search(output)
    return match.group(1) if match else None


class SessionPageSourceStrategy(RetrievalStrategy):
    """Ask an already-running Appium session for its page source.

    A live UiAutomator2 session usually holds the inspection service, which
    is exactly when the device-side dumps crash.
    """

    name = "appium-session"

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 4723,
        session: requests.Session | None = None,
        sessions_timeout: float = 2.0,
        source_timeout: float = 3.0,
    ):
        self._base_urls = [f"http://{host}:{port}/wd/hub", f"http://{host}:{port}"]
        self._http = session or requests.Session()
        self._sessions_timeout = sessions_timeout
        self._source_timeout = source_timeout

    def attempt(self, device_id: str | None) -> str:
        for base in self._base_urls:
            sessions = self._fetch_json(f"{base}/sessions", self._sessions_timeout)
            session_id = _first_session_id(sessions)
            if not session_id:
                continue

            source = self._fetch_json(f"{base}/session/{session_id}/source", self._source_timeout)
            raw = None
            if isinstance(source, dict):
                raw = source.get("value") or source.get("source")
            if raw and len(str(raw)) > 20:
                xml = _valid_capture(str(raw))
                if xml:
                    return xml

        raise RetrievalError("No active Appium session page source available")

    def _fetch_json(self, url: str, timeout: float) -> Any:
        try:
            response = self._http.get(url, timeout=timeout)
        except requests.RequestException as e:
            logger.debug("Appium request %s failed: %s", url, e)
            return None
        if not response.ok:
            return None
        try:
            return response.json()
        except ValueError:
            return None


def _first_session_id(payload: Any) -> str | None:
    """Pick the first session id from the shapes Appium versions return."""
    candidates: Any = []
    if isinstance(payload, dict):
        value = payload.get("value")
        if isinstance(value, dict) and isinstance(value.get("sessions"), list):
            candidates = value["sessions"]
        elif isinstance(value, list):
            candidates = value
        elif isinstance(payload.get("sessions"), list):
            candidates = payload["sessions"]
    elif isinstance(payload, list):
        candidates = payload

    for entry in candidates:
        if isinstance(entry, dict):
            session_id = entry.get("id") or entry.get("sessionId")
            if session_id:
                return str(session_id)
    return None


def default_strategies(
    bridge: DeviceBridge,
    appium_host: str = "127.0.0.1",
    appium_port: int = 4723,
) -> list[RetrievalStrategy]:
    """Standard retrieval chain: exec-out, file dump, Appium session."""
    return [
        ExecOutDumpStrategy(bridge),
        FileDumpStrategy(bridge),
        SessionPageSourceStrategy(appium_host, appium_port),
    ]
