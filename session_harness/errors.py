"""Error taxonomy for Session Harness.

Every failure surfaced to a scenario carries the last state the harness
observed (response body, predicate value or exception) so a failing test
explains itself without re-running.
"""

from typing import Any, Optional

from .formatting import format_body, truncate_text


class HarnessError(Exception):
    """Base class for all harness errors."""


class ConfigError(HarnessError):
    """Invalid harness configuration."""


class AuthError(HarnessError):
    """Programmatic login did not produce a session."""

    def __init__(self, status: int, body: Any = None, reason: str = ""):
        self.status = status
        self.body = body
        self.reason = reason or "login rejected"
        super().__init__(
            f"Authentication failed ({status}): {self.reason}; "
            f"body={format_body(body)}"
        )


class ExchangeTimeoutError(HarnessError, TimeoutError):
    """No matching exchange was recorded before the deadline."""

    def __init__(self, description: str, timeout: float, seen: int = 0):
        self.description = description
        self.timeout = timeout
        self.seen = seen
        super().__init__(
            f"Timed out after {timeout:.2f}s waiting for {description} "
            f"({seen} exchange(s) already consumed)"
        )


class AssertionTimeoutError(HarnessError, AssertionError):
    """A wait predicate never became truthy before its timeout."""

    def __init__(
        self,
        description: str,
        timeout: float,
        last_value: Any = None,
        attempts: int = 0,
        elapsed: float = 0.0,
    ):
        self.description = description
        self.timeout = timeout
        self.last_value = last_value
        self.attempts = attempts
        self.elapsed = elapsed
        super().__init__(
            f"Expected {description} within {timeout:.2f}s "
            f"({attempts} attempts); last value: {format_body(last_value)}"
        )


class PredicateError(HarnessError):
    """A wait predicate raised on every attempt."""

    def __init__(self, description: str, last_error: BaseException, attempts: int = 0):
        self.description = description
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(
            f"{description} raised on all {attempts} attempts: "
            f"{type(last_error).__name__}: {truncate_text(str(last_error), 200)}"
        )


class StubNetworkError(HarnessError):
    """A forwarded request matched by a stub rule failed at the network layer."""

    def __init__(self, rule_label: str, original: BaseException):
        self.rule_label = rule_label
        self.original = original
        super().__init__(f"Network error forwarding {rule_label}: {original}")


class ScenarioTimeoutError(HarnessError, TimeoutError):
    """A scenario step ran past the scenario budget."""

    def __init__(self, scenario: str, budget: float):
        self.scenario = scenario
        self.budget = budget
        super().__init__(f"Scenario '{scenario}' exceeded its {budget:.2f}s budget")


class ScenarioClosedError(HarnessError):
    """The scenario was used after teardown."""

    def __init__(self, scenario: str, last_command: Optional[str] = None):
        self.scenario = scenario
        message = f"Scenario '{scenario}' has already ended"
        if last_command:
            message += f" (last command: {last_command})"
        super().__init__(message)
