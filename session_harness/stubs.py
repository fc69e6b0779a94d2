"""Network stub controller for Session Harness.

Holds the per-scenario interception rules and the exchanges they capture:
- StubRule: method + path pattern and the scripted response
- StubHandle: what registration returns; collects matched exchanges
- StubRegistry: newest-first matching, "once" consumption, alias lookup
  and waiting for the next exchange on a handle

The registry is transport-agnostic; ``transport.StubTransport`` applies it
to httpx and ``playwright_routes`` applies it to a browser.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from fnmatch import fnmatchcase
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Pattern, Tuple, Union
from urllib.parse import parse_qsl

from .errors import AssertionTimeoutError, ExchangeTimeoutError, StubNetworkError
from .waiter import DEFAULT_POLL_INTERVAL, expect_eventually


# Cypress requestTimeout default
DEFAULT_EXCHANGE_TIMEOUT = 5.0

PathPattern = Union[str, Pattern[str]]


class StubScope(str, Enum):
    """How many exchanges a rule may match."""

    ONCE = "once"
    ALWAYS = "always"


# --- Body codecs ---


def encode_body(body: Any) -> Tuple[bytes, Optional[str]]:
    """Encode a scripted response body.

    Returns:
        (content bytes, default content type or None for empty bodies).
    """
    if body is None:
        return b"", None
    if isinstance(body, bytes):
        return body, "application/octet-stream"
    if isinstance(body, str):
        return body.encode("utf-8"), "text/plain; charset=utf-8"
    return json.dumps(body).encode("utf-8"), "application/json"


def decode_body(content: Union[bytes, str, None], content_type: str = "") -> Any:
    """Decode a captured body the way a test would want to assert on it.

    JSON becomes Python data, form-encoded bodies become a dict and
    everything else stays text. Empty bodies decode to None.
    """
    if not content:
        return None
    text = content.decode("utf-8", errors="replace") if isinstance(content, bytes) else content
    media_type = content_type.split(";")[0].strip().lower()

    if media_type == "application/x-www-form-urlencoded":
        return dict(parse_qsl(text, keep_blank_values=True))

    if media_type.endswith("json") or not media_type:
        try:
            return json.loads(text)
        except ValueError:
            return text
    return text


# --- Data Classes ---


@dataclass(frozen=True, eq=False)
class StubRule:
    """An interception rule: what to match and how to answer.

    Headers are copied into a read-only mapping; rules hash by identity.
    """

    method: str = "*"
    path: PathPattern = "*"
    status: int = 200
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    passthrough: bool = False
    delay: float = 0.0

    def __post_init__(self):
        if not 100 <= self.status <= 599:
            raise ValueError(f"Invalid stub status: {self.status}")
        if self.delay < 0:
            raise ValueError(f"Stub delay must be >= 0, got {self.delay}")
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    @property
    def label(self) -> str:
        path = self.path.pattern if isinstance(self.path, re.Pattern) else self.path
        return f"{self.method.upper()} {path}"

    def matches(self, method: str, path: str) -> bool:
        """Check if this rule matches a request method and URL path."""
        if self.method != "*" and self.method.upper() != method.upper():
            return False

        if isinstance(self.path, re.Pattern):
            return self.path.search(path) is not None
        if "*" in self.path:
            return fnmatchcase(path, self.path)
        return path == self.path

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "path": self.label.split(" ", 1)[1],
            "status": self.status,
            "body": self.body,
            "headers": dict(self.headers),
            "passthrough": self.passthrough,
            "delay": self.delay,
        }


@dataclass(frozen=True)
class CapturedExchange:
    """One completed request/response pair seen through a rule."""

    request_method: str
    request_path: str
    request_body: Any
    response_status: int
    response_body: Any
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    request_headers: Dict[str, str] = field(default_factory=dict)
    response_headers: Dict[str, str] = field(default_factory=dict)
    stubbed: bool = True
    alias: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "request_method": self.request_method,
            "request_path": self.request_path,
            "request_body": self.request_body,
            "response_status": self.response_status,
            "response_body": self.response_body,
            "timestamp": self.timestamp.isoformat(),
            "stubbed": self.stubbed,
            "alias": self.alias,
        }


class StubHandle:
    """Registration receipt for a rule; collects the exchanges it matched."""

    def __init__(
        self,
        rule: StubRule,
        scope: StubScope = StubScope.ALWAYS,
        alias: Optional[str] = None,
        sequence: int = 0,
    ):
        self.rule = rule
        self.scope = StubScope(scope)
        self.alias = alias
        self.sequence = sequence
        self.exchanges: List[CapturedExchange] = []
        self.errors: List[StubNetworkError] = []
        self.consumed = False
        self._cursor = 0

    @property
    def label(self) -> str:
        if self.alias:
            return f"@{self.alias} ({self.rule.label})"
        return self.rule.label

    @property
    def active(self) -> bool:
        """Whether the rule can still match new requests."""
        return not (self.scope is StubScope.ONCE and self.consumed)

    @property
    def cursor(self) -> int:
        """Index of the next exchange ``wait_for`` will return."""
        return self._cursor

    def __repr__(self) -> str:
        return (
            f"StubHandle({self.label!r}, scope={self.scope.value}, "
            f"exchanges={len(self.exchanges)})"
        )


# --- Registry ---


class StubRegistry:
    """Per-scenario set of stub rules and the exchange log they feed."""

    def __init__(
        self,
        exchange_timeout: float = DEFAULT_EXCHANGE_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.exchange_timeout = exchange_timeout
        self.poll_interval = poll_interval
        self._handles: List[StubHandle] = []
        self._aliases: Dict[str, StubHandle] = {}
        self._exchanges: List[CapturedExchange] = []
        self._sequence = 0

    @property
    def handles(self) -> List[StubHandle]:
        return list(self._handles)

    @property
    def exchanges(self) -> List[CapturedExchange]:
        """All recorded exchanges, in completion order."""
        return list(self._exchanges)

    def register(
        self,
        rule: StubRule,
        scope: Union[StubScope, str] = StubScope.ALWAYS,
        alias: Optional[str] = None,
    ) -> StubHandle:
        """Install a rule. Later registrations take precedence over earlier ones.

        Args:
            rule: The rule to install.
            scope: "once" or "always".
            alias: Optional name for ``get``/``wait_for`` lookups.

        Returns:
            Handle collecting the rule's exchanges.
        """
        self._sequence += 1
        handle = StubHandle(rule, StubScope(scope), alias=alias, sequence=self._sequence)
        self._handles.append(handle)
        if alias:
            # Re-aliasing points the name at the newest rule
            self._aliases[alias] = handle
        return handle

    def match(self, method: str, path: str) -> Optional[StubHandle]:
        """Find the rule for a request, newest first.

        Matching a "once" rule consumes it.
        """
        for handle in reversed(self._handles):
            if handle.active and handle.rule.matches(method, path):
                if handle.scope is StubScope.ONCE:
                    handle.consumed = True
                return handle
        return None

    def record(self, handle: StubHandle, exchange: CapturedExchange) -> None:
        """Attach a completed exchange to its handle and the scenario log."""
        handle.exchanges.append(exchange)
        self._exchanges.append(exchange)

    def record_error(self, handle: StubHandle, error: StubNetworkError) -> None:
        """Park a failed passthrough on its handle for the next ``wait_for``.

        Used where the request runs in a task nobody awaits (browser routes).
        """
        handle.errors.append(error)

    def get(self, alias: str) -> StubHandle:
        """Look up a handle by alias.

        Raises:
            KeyError: Unknown alias.
        """
        alias = alias.lstrip("@")
        if alias not in self._aliases:
            raise KeyError(f"No stub registered with alias '{alias}'")
        return self._aliases[alias]

    def _resolve(self, handle: Union[StubHandle, str]) -> StubHandle:
        if isinstance(handle, str):
            return self.get(handle)
        return handle

    async def wait_for(
        self,
        handle: Union[StubHandle, str],
        timeout: Optional[float] = None,
    ) -> CapturedExchange:
        """Wait for the next exchange on a handle that hasn't been waited on.

        Args:
            handle: StubHandle or alias.
            timeout: Seconds to wait (defaults to the registry's exchange timeout).

        Returns:
            The next unconsumed CapturedExchange.

        Raises:
            ExchangeTimeoutError: Nothing arrived in time.
            StubNetworkError: A passthrough on this handle failed instead.
        """
        target = self._resolve(handle)
        timeout = self.exchange_timeout if timeout is None else timeout
        index = target.cursor

        try:
            await expect_eventually(
                lambda: len(target.exchanges) > index or bool(target.errors),
                timeout=timeout,
                poll_interval=self.poll_interval,
                description=f"exchange on {target.label}",
            )
        except AssertionTimeoutError:
            raise ExchangeTimeoutError(target.label, timeout, seen=index) from None

        if len(target.exchanges) <= index:
            raise target.errors.pop(0)
        target._cursor += 1
        return target.exchanges[index]

    def reset(self) -> None:
        """Drop all rules, aliases and recorded exchanges."""
        self._handles.clear()
        self._aliases.clear()
        self._exchanges.clear()
        self._sequence = 0
