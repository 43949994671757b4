"""Per-device UI hierarchy acquisition with singleflight, cache and backoff."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass

from uilocator.core.config import HierarchySettings, hierarchy_settings_from_env
from uilocator.core.device_bridge import DeviceBridge
from uilocator.core.hierarchy_parser import has_hierarchy_root, sanitize_hierarchy_xml
from uilocator.core.retrieval_strategies import (
    INSPECTOR_CRASH_EXIT_CODE,
    INSPECTOR_CRASH_SIGNAL,
    RetrievalError,
    RetrievalStrategy,
    default_strategies,
)

logger = logging.getLogger(__name__)

DEFAULT_DEVICE_KEY = "__default__"


@dataclass
class CacheEntry:
    """Last good capture for a device."""

    xml: str
    captured_at: float


@dataclass
class FailureRecord:
    """Last failed acquisition for a device."""

    failed_at: float
    exit_code: int | None = None
    signal: str | None = None


class HierarchyState:
    """Process-wide acquisition state, keyed by device.

    All maps are read and written only while holding ``lock``.
    """

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self._cache: dict[str, CacheEntry] = {}
        self._failures: dict[str, FailureRecord] = {}
        self._disabled_until: dict[str, float] = {}
        self._in_flight: dict[str, Future[str | None]] = {}

    def cache_entry(self, key: str) -> CacheEntry | None:
        return self._cache.get(key)

    def cached_xml(self, key: str) -> str | None:
        entry = self._cache.get(key)
        return entry.xml if entry else None

    def failure(self, key: str) -> FailureRecord | None:
        return self._failures.get(key)

    def disabled_until(self, key: str) -> float:
        return self._disabled_until.get(key, 0.0)

    def in_flight(self, key: str) -> Future[str | None] | None:
        return self._in_flight.get(key)

    def begin(self, key: str) -> Future[str | None]:
        future: Future[str | None] = Future()
        self._in_flight[key] = future
        return future

    def finish(self, key: str) -> None:
        self._in_flight.pop(key, None)

    def record_success(self, key: str, xml: str, now: float) -> None:
        self._cache[key] = CacheEntry(xml=xml, captured_at=now)
        self._failures.pop(key, None)

    def record_failure(self, key: str, record: FailureRecord) -> None:
        self._failures[key] = record

    def disable(self, key: str, until: float) -> None:
        self._disabled_until[key] = until


def is_inspector_crash(error: RetrievalError) -> bool:
    """Check for the "UiAutomation already registered" kill signature."""
    return error.exit_code == INSPECTOR_CRASH_EXIT_CODE or error.signal == INSPECTOR_CRASH_SIGNAL


class HierarchyController:
    """Fetch the current UI hierarchy without ever raising.

    Usage:
        controller = HierarchyController(DeviceBridge())
        xml = controller.acquire("emulator-5554")
        if xml is None:
            ...  # fall back to raw coordinates
    """

    def __init__(
        self,
        bridge: DeviceBridge | None = None,
        strategies: list[RetrievalStrategy] | None = None,
        settings: HierarchySettings | Callable[[], HierarchySettings] | None = None,
        state: HierarchyState | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize controller.

        Args:
            bridge: adb bridge used by the default strategies
            strategies: Retrieval chain, tried in order
            settings: Fixed settings, or a callable read on every acquire.
                Defaults to reading UILOC_DUMP_* environment variables.
            state: Shared state object (a fresh one if None)
            clock: Seconds source, injectable for tests
        """
        self._bridge = bridge or DeviceBridge()
        self._strategies = (
            strategies if strategies is not None else default_strategies(self._bridge)
        )
        if settings is None:
            self._settings: Callable[[], HierarchySettings] = hierarchy_settings_from_env
        elif isinstance(settings, HierarchySettings):
            fixed = settings
            self._settings = lambda: fixed
        else:
            self._settings = settings
        self.state = state or HierarchyState()
        self._clock = clock

    @property
    def strategies(self) -> list[RetrievalStrategy]:
        return list(self._strategies)

    def acquire(self, device_id: str | None = None) -> str | None:
        """Get hierarchy XML for a device.

        Args:
            device_id: adb serial, or None for adb's default device

        Returns:
            Sanitized XML, a stale cached capture, or None.
        """
        key = device_id or DEFAULT_DEVICE_KEY
        settings = self._read_settings()

        with self.state.lock:
            now = self._clock()

            if now < self.state.disabled_until(key):
                return self.state.cached_xml(key)

            pending = self.state.in_flight(key)
            owner = pending is None
            if owner:
                if settings.cache_ttl_ms > 0:
                    entry = self.state.cache_entry(key)
                    if entry and (now - entry.captured_at) * 1000 <= settings.cache_ttl_ms:
                        return entry.xml

                last_fail = self.state.failure(key)
                if last_fail and (now - last_fail.failed_at) * 1000 < settings.fail_backoff_ms:
                    return self.state.cached_xml(key)

                pending = self.state.begin(key)

        if not owner:
            # Singleflight: share the running acquisition's result
            return pending.result()

        xml: str | None = None
        last_error: RetrievalError | None = None
        crashed = False
        result: str | None = None
        try:
            try:
                xml, last_error, crashed = self._run_strategies(device_id, settings)
            except Exception as e:
                logger.error("Unexpected error while acquiring hierarchy: %s", e, exc_info=True)

            with self.state.lock:
                try:
                    result = self._settle(key, xml, last_error, crashed, settings)
                except Exception as e:
                    logger.error("Failed to record hierarchy outcome: %s", e, exc_info=True)
                    result = xml if xml is not None else self.state.cached_xml(key)
                finally:
                    self.state.finish(key)
        finally:
            # Waiters must never block on an unresolved request
            pending.set_result(result)

        return result

    def _read_settings(self) -> HierarchySettings:
        try:
            return self._settings()
        except Exception as e:
            logger.warning("Invalid hierarchy settings, using defaults: %s", e)
            return HierarchySettings()

    def _run_strategies(
        self,
        device_id: str | None,
        settings: HierarchySettings,
    ) -> tuple[str | None, RetrievalError | None, bool]:
        """Try each strategy in order, first valid capture wins.

        Returns:
            (xml or None, last retrieval error, whether the inspector crash
            signature was seen)
        """
        verbose = settings.verbose
        last_error: RetrievalError | None = None
        crashed = False

        for strategy in self._strategies:
            if verbose:
                logger.info("Hierarchy attempt via %s", strategy.name)
            try:
                raw = strategy.attempt(device_id)
            except RetrievalError as e:
                last_error = e
                if verbose:
                    logger.info("Strategy %s failed: %s", strategy.name, e)
                if is_inspector_crash(e) and not crashed:
                    crashed = True
                    logger.warning(
                        "UI hierarchy dump is crashing (exit %s). UiAutomation is likely "
                        "already registered by another automation session. Stop other "
                        "sessions, reconnect USB debugging, or reboot the device.",
                        e.exit_code if e.exit_code is not None else e.signal,
                    )
                continue
            except Exception as e:
                last_error = RetrievalError(f"{strategy.name} raised: {e}")
                if verbose:
                    logger.info("Strategy %s raised unexpectedly: %s", strategy.name, e)
                continue

            xml = sanitize_hierarchy_xml(raw)
            if has_hierarchy_root(xml):
                if verbose:
                    logger.info("Hierarchy acquired via %s (%d chars)", strategy.name, len(xml))
                return xml, last_error, crashed

            last_error = RetrievalError(f"{strategy.name} returned no hierarchy root")
            if verbose:
                logger.info("Strategy %s returned no hierarchy root", strategy.name)

        return None, last_error, crashed

    def _settle(
        self,
        key: str,
        xml: str | None,
        last_error: RetrievalError | None,
        crashed: bool,
        settings: HierarchySettings,
    ) -> str | None:
        """Record the outcome. Caller holds the state lock."""
        now = self._clock()

        if crashed:
            self.state.disable(key, now + settings.disable_window_ms / 1000)

        if xml is not None:
            self.state.record_success(key, xml, now)
            return xml

        self.state.record_failure(key, FailureRecord(
            failed_at=now,
            exit_code=last_error.exit_code if last_error else None,
            signal=last_error.signal if last_error else None,
        ))
        if settings.verbose:
            logger.warning(
                "Failed to get UI hierarchy for %s (will fall back to coordinates): %s",
                key,
                last_error or "no strategy succeeded",
            )
        return self.state.cached_xml(key)
