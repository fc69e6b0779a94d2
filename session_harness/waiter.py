"""Assertion/wait engine for Session Harness.

Polls a condition until it holds or a deadline passes, yielding to the
event loop between polls instead of sleeping the thread:
- Returns on the first satisfied evaluation (no extra polls)
- Never reports a timeout before the full timeout has elapsed
- Distinguishes "never true" (AssertionTimeoutError) from
  "raised every time" (PredicateError)
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from .errors import AssertionTimeoutError, PredicateError


# Cypress defaultCommandTimeout (4s)
DEFAULT_TIMEOUT = 4.0
DEFAULT_POLL_INTERVAL = 0.05


class WaitState(str, Enum):
    """Lifecycle of a single wait."""

    PENDING = "pending"
    SATISFIED = "satisfied"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self is not WaitState.PENDING


@dataclass
class WaitCondition:
    """A probe over observable state plus its timing contract."""

    probe: Callable[[], Any]
    timeout: float = DEFAULT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    description: str = ""
    accept: Callable[[Any], bool] = bool

    def __post_init__(self):
        if self.timeout < 0:
            raise ValueError(f"timeout must be >= 0, got {self.timeout}")
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {self.poll_interval}")
        if not self.description:
            self.description = getattr(self.probe, "__name__", "condition")


@dataclass
class WaitResult:
    """Outcome of a satisfied wait."""

    state: WaitState
    value: Any = None
    attempts: int = 0
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.state is WaitState.SATISFIED


@dataclass
class Waiter:
    """Runs one WaitCondition through PENDING -> SATISFIED | TIMED_OUT | ERRORED."""

    condition: WaitCondition
    state: WaitState = WaitState.PENDING
    attempts: int = 0
    last_value: Any = None
    last_error: Optional[BaseException] = field(default=None, repr=False)

    async def _evaluate(self) -> Any:
        value = self.condition.probe()
        if inspect.isawaitable(value):
            value = await value
        return value

    async def run(self) -> WaitResult:
        """Poll until the condition is accepted or the deadline passes.

        Returns:
            WaitResult in the SATISFIED state.

        Raises:
            AssertionTimeoutError: Condition never accepted.
            PredicateError: Probe raised on every attempt.
        """
        if self.state.is_terminal:
            raise RuntimeError(f"Wait already finished ({self.state.value})")

        cond = self.condition
        loop = asyncio.get_running_loop()
        start = loop.time()
        deadline = start + cond.timeout
        observed = False

        while True:
            self.attempts += 1
            try:
                value = await self._evaluate()
            except Exception as exc:
                self.last_error = exc
            else:
                observed = True
                self.last_value = value
                if cond.accept(value):
                    self.state = WaitState.SATISFIED
                    return WaitResult(
                        state=self.state,
                        value=value,
                        attempts=self.attempts,
                        elapsed=loop.time() - start,
                    )

            now = loop.time()
            if now >= deadline:
                break
            try:
                await asyncio.sleep(min(cond.poll_interval, deadline - now))
            except asyncio.CancelledError:
                # Scenario budget ran out around this wait
                self.state = WaitState.TIMED_OUT
                raise

        elapsed = loop.time() - start
        if not observed and self.last_error is not None:
            self.state = WaitState.ERRORED
            raise PredicateError(
                cond.description, self.last_error, self.attempts
            ) from self.last_error

        self.state = WaitState.TIMED_OUT
        raise AssertionTimeoutError(
            cond.description,
            cond.timeout,
            last_value=self.last_value,
            attempts=self.attempts,
            elapsed=elapsed,
        )


async def expect_eventually(
    predicate: Callable[[], Any],
    timeout: Optional[float] = None,
    poll_interval: Optional[float] = None,
    description: Optional[str] = None,
) -> WaitResult:
    """Wait until ``predicate()`` is truthy.

    The predicate may be sync or return an awaitable.

    Args:
        predicate: Zero-argument callable probing some state.
        timeout: Seconds before giving up.
        poll_interval: Seconds between evaluations.
        description: Label used in failure messages.

    Returns:
        WaitResult holding the truthy value and attempt count.
    """
    condition = WaitCondition(
        probe=predicate,
        timeout=DEFAULT_TIMEOUT if timeout is None else timeout,
        poll_interval=DEFAULT_POLL_INTERVAL if poll_interval is None else poll_interval,
        description=description or "",
    )
    return await Waiter(condition).run()


async def expect_equal(
    getter: Callable[[], Any],
    expected: Any,
    timeout: Optional[float] = None,
    poll_interval: Optional[float] = None,
    description: Optional[str] = None,
) -> WaitResult:
    """Wait until ``getter()`` equals ``expected``; failures report the last value seen."""
    condition = WaitCondition(
        probe=getter,
        timeout=DEFAULT_TIMEOUT if timeout is None else timeout,
        poll_interval=DEFAULT_POLL_INTERVAL if poll_interval is None else poll_interval,
        description=description or f"value == {expected!r}",
        accept=lambda value: value == expected,
    )
    return await Waiter(condition).run()


async def expect_contains(
    getter: Callable[[], Any],
    fragment: Any,
    timeout: Optional[float] = None,
    poll_interval: Optional[float] = None,
    description: Optional[str] = None,
) -> WaitResult:
    """Wait until ``fragment in getter()``; a None value never matches."""
    condition = WaitCondition(
        probe=getter,
        timeout=DEFAULT_TIMEOUT if timeout is None else timeout,
        poll_interval=DEFAULT_POLL_INTERVAL if poll_interval is None else poll_interval,
        description=description or f"value containing {fragment!r}",
        accept=lambda value: value is not None and fragment in value,
    )
    return await Waiter(condition).run()
