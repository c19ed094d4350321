"""Fail-open policy shared by every external dependency of the pipeline."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from chatguard.obs import metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DependencyUnavailable(RuntimeError):
    """Raised inside a guarded call when the dependency cannot answer."""


@dataclass
class DependencyGuard:
    """Time-box, retry and circuit-break calls to one external dependency.

    ``call`` never raises: timeouts, transport errors and an open circuit all
    resolve to the caller-supplied fallback. ``failure_threshold``
    consecutive failures open the circuit for ``reset_after`` seconds. After
    that window a single trial call is let through while concurrent callers
    keep getting the fallback; its outcome closes or reopens the circuit.
    """

    name: str
    timeout: float
    retries: int = 0
    backoff_base: float = 0.1
    failure_threshold: int = 5
    reset_after: float = 30.0
    clock: Callable[[], float] = time.monotonic
    _failures: int = field(default=0, init=False, repr=False)
    _opened_at: float | None = field(default=None, init=False, repr=False)
    _trial_running: bool = field(default=False, init=False, repr=False)

    @property
    def is_open(self) -> bool:
        if self._opened_at is None:
            return False
        return self.clock() - self._opened_at < self.reset_after

    async def call(self, factory: Callable[[], Awaitable[T]], fallback: T) -> T:
        if self.is_open or self._trial_running:
            metrics.inc_dependency_call(self.name, "short_circuit")
            return fallback
        if self._opened_at is None:
            return await self._attempt(factory, fallback)
        self._trial_running = True
        try:
            return await self._attempt(factory, fallback)
        finally:
            self._trial_running = False

    async def _attempt(self, factory: Callable[[], Awaitable[T]], fallback: T) -> T:
        attempts = self.retries + 1
        for attempt in range(attempts):
            try:
                result = await asyncio.wait_for(factory(), timeout=self.timeout)
            except asyncio.TimeoutError:
                outcome = "timeout"
                logger.warning("%s lookup timed out after %.2fs", self.name, self.timeout)
            except Exception as exc:
                outcome = "error"
                logger.warning("%s lookup failed: %s", self.name, exc.__class__.__name__)
            else:
                metrics.inc_dependency_call(self.name, "ok")
                self._record_success()
                return result
            metrics.inc_dependency_call(self.name, outcome)
            if attempt + 1 < attempts:
                await asyncio.sleep(self.backoff_base * (2**attempt))
        self._record_failure()
        return fallback

    def reset(self) -> None:
        self._failures = 0
        self._opened_at = None
        metrics.set_circuit_open(self.name, False)

    def _record_success(self) -> None:
        if self._failures or self._opened_at is not None:
            self.reset()

    def _record_failure(self) -> None:
        self._failures += 1
        if self._failures >= self.failure_threshold:
            if not self.is_open:
                logger.warning("%s circuit opened after %d consecutive failures", self.name, self._failures)
            self._opened_at = self.clock()
            metrics.set_circuit_open(self.name, True)
