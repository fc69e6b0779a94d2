"""Scenario context and harness factory.

A Scenario is the explicit context value a test passes around: it owns the
stub registry, the token store, the exchange log, the HTTP client and the
command log for exactly one test case. Nothing is shared between scenarios.
"""

import asyncio
import inspect
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Union

import httpx

from .command_log import CommandLog
from .config import HarnessConfig, load_harness_config
from .errors import (
    AssertionTimeoutError,
    ExchangeTimeoutError,
    HarnessError,
    PredicateError,
    ScenarioClosedError,
    ScenarioTimeoutError,
    StubNetworkError,
)
from .formatting import describe_exchange
from .session import SessionBootstrapper, SessionToken, TokenStore
from .stubs import (
    CapturedExchange,
    PathPattern,
    StubHandle,
    StubRegistry,
    StubRule,
    StubScope,
)
from .transport import HarnessResponse, build_client, send
from .waiter import WaitResult, expect_contains, expect_equal, expect_eventually


TransportFactory = Callable[[], httpx.AsyncBaseTransport]


class Scenario:
    """Isolated harness state for one test case."""

    def __init__(
        self,
        name: str,
        config: HarnessConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize a scenario; call ``on_scenario_start`` before use.

        Args:
            name: Scenario name for logs and errors.
            config: Harness configuration.
            transport: Underlying transport for the HTTP client (real network if None).
        """
        self.name = name
        self.config = config
        self.log = CommandLog(scenario=name, verbose=config.verbose)
        self.registry = StubRegistry(
            exchange_timeout=config.exchange_timeout,
            poll_interval=config.poll_interval,
        )
        self.tokens = TokenStore()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._session: Optional[SessionBootstrapper] = None
        self._started_at: Optional[float] = None
        self._closed = False

    # --- Lifecycle ---

    async def on_scenario_start(self) -> "Scenario":
        """Create the client and session layer and start the scenario clock."""
        if self._closed:
            raise ScenarioClosedError(self.name)
        if self._started_at is not None:
            return self

        self._client = build_client(
            self.config.base_url,
            self.registry,
            inner=self._transport,
            on_exchange=self.log_exchange,
        )
        self._session = SessionBootstrapper(
            self._client, self.config, store=self.tokens, log=self.log
        )
        self._started_at = asyncio.get_running_loop().time()
        self.log.add("scenario", f"start {self.name}", "info")
        return self

    async def on_scenario_end(self) -> None:
        """Reset the stub registry, token store and exchange log; close the client."""
        if self._closed:
            return
        self._closed = True

        self.registry.reset()
        self.tokens.clear()
        if self._client is not None:
            await self._client.aclose()

        self.log.add("scenario", f"end {self.name}", "info")
        if self.config.verbose and self.log.failures():
            self.log.render()

    async def __aenter__(self) -> "Scenario":
        return await self.on_scenario_start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.on_scenario_end()

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_active(self) -> None:
        if self._closed:
            last = str(self.log.entries[-1]) if self.log.entries else None
            raise ScenarioClosedError(self.name, last)
        if self._started_at is None:
            raise HarnessError(f"Scenario '{self.name}' has not been started")

    # --- Timing ---

    def remaining(self) -> float:
        """Seconds left in the scenario budget."""
        self._ensure_active()
        elapsed = asyncio.get_running_loop().time() - self._started_at
        return max(0.0, self.config.scenario_timeout - elapsed)

    def _cap(self, timeout: float) -> float:
        return min(timeout, self.remaining())

    async def run(self, step: Awaitable[Any]) -> Any:
        """Run a step bounded by the remaining scenario budget.

        Raises:
            ScenarioTimeoutError: Step outlived the scenario.
        """
        budget = self.remaining()
        if budget <= 0:
            if inspect.iscoroutine(step):
                step.close()
            raise ScenarioTimeoutError(self.name, self.config.scenario_timeout)
        try:
            return await asyncio.wait_for(step, timeout=budget)
        except asyncio.TimeoutError:
            self.log.add("scenario", "budget exhausted", "fail")
            raise ScenarioTimeoutError(self.name, self.config.scenario_timeout) from None

    # --- Session ---

    @property
    def client(self) -> httpx.AsyncClient:
        self._ensure_active()
        return self._client

    @property
    def token(self) -> Optional[SessionToken]:
        return self.tokens.current

    async def authenticate(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        encoding: Optional[str] = None,
    ) -> SessionToken:
        """Programmatic login; see ``SessionBootstrapper.authenticate``."""
        self._ensure_active()
        return await self._session.authenticate(username, password, encoding)

    def logout(self) -> Optional[SessionToken]:
        self._ensure_active()
        return self._session.logout()

    def get_cookie(self, name: Optional[str] = None) -> Optional[str]:
        """Value of a cookie in the harness jar (session cookie by default)."""
        self._ensure_active()
        return self._client.cookies.get(name or self.config.session_cookie)

    # --- Stubs ---

    def register_stub(
        self,
        method: str,
        path: PathPattern,
        response: Any = None,
        status: int = 200,
        headers: Optional[Dict[str, str]] = None,
        scope: Union[StubScope, str] = StubScope.ALWAYS,
        alias: Optional[str] = None,
        passthrough: bool = False,
        delay: float = 0.0,
    ) -> StubHandle:
        """Install an interception rule for this scenario.

        Args:
            method: HTTP method or "*".
            path: Exact path, glob or compiled regex.
            response: Scripted body (ignored for passthrough rules).
            status: Scripted status code.
            headers: Scripted response headers.
            scope: "once" or "always".
            alias: Name for ``wait_for``.
            passthrough: Forward to the real server and record instead of stubbing.
            delay: Seconds to hold a scripted response.

        Returns:
            StubHandle collecting matched exchanges.
        """
        self._ensure_active()
        rule = StubRule(
            method=method,
            path=path,
            status=status,
            body=response,
            headers=dict(headers or {}),
            passthrough=passthrough,
            delay=delay,
        )
        handle = self.registry.register(rule, scope=scope, alias=alias)
        kind = "spy" if passthrough else f"-> {status}"
        self.log.add("stub", f"{handle.label} {kind} ({handle.scope.value})", "info")
        return handle

    def route(
        self,
        method: str,
        path: PathPattern,
        alias: Optional[str] = None,
        scope: Union[StubScope, str] = StubScope.ALWAYS,
    ) -> StubHandle:
        """Record matching calls without changing their responses."""
        return self.register_stub(method, path, scope=scope, alias=alias, passthrough=True)

    async def wait_for(
        self,
        handle: Union[StubHandle, str],
        timeout: Optional[float] = None,
    ) -> CapturedExchange:
        """Wait for the next exchange on a handle or alias."""
        self._ensure_active()
        timeout = self._cap(self.config.exchange_timeout if timeout is None else timeout)
        try:
            exchange = await self.registry.wait_for(handle, timeout=timeout)
        except (ExchangeTimeoutError, StubNetworkError) as e:
            self.log.add("wait", str(e), "fail")
            raise
        self.log.add("wait", describe_exchange(exchange))
        return exchange

    @property
    def exchanges(self) -> List[CapturedExchange]:
        return self.registry.exchanges

    def log_exchange(self, exchange: CapturedExchange) -> None:
        self.log.add("xhr", describe_exchange(exchange), "info")

    # --- Assertions ---

    def _wait_args(self, timeout: Optional[float], poll_interval: Optional[float]) -> dict:
        return {
            "timeout": self._cap(self.config.wait_timeout if timeout is None else timeout),
            "poll_interval": self.config.poll_interval if poll_interval is None else poll_interval,
        }

    async def _logged(self, label: str, waiting: Awaitable[WaitResult]) -> WaitResult:
        try:
            result = await waiting
        except (AssertionTimeoutError, PredicateError) as e:
            self.log.add("expect", str(e), "fail")
            raise
        self.log.add("expect", f"{label} ({result.attempts} attempts)")
        return result

    async def expect_eventually(
        self,
        predicate: Callable[[], Any],
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        description: Optional[str] = None,
    ) -> WaitResult:
        """Poll ``predicate`` until truthy, within the scenario budget."""
        self._ensure_active()
        label = description or getattr(predicate, "__name__", "condition")
        return await self._logged(
            label,
            expect_eventually(
                predicate, description=label, **self._wait_args(timeout, poll_interval)
            ),
        )

    async def expect_equal(
        self,
        getter: Callable[[], Any],
        expected: Any,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        description: Optional[str] = None,
    ) -> WaitResult:
        self._ensure_active()
        label = description or f"value == {expected!r}"
        return await self._logged(
            label,
            expect_equal(
                getter, expected, description=label, **self._wait_args(timeout, poll_interval)
            ),
        )

    async def expect_contains(
        self,
        getter: Callable[[], Any],
        fragment: Any,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        description: Optional[str] = None,
    ) -> WaitResult:
        self._ensure_active()
        label = description or f"value containing {fragment!r}"
        return await self._logged(
            label,
            expect_contains(
                getter, fragment, description=label, **self._wait_args(timeout, poll_interval)
            ),
        )

    # --- Requests ---

    async def request(
        self,
        path: str,
        method: str = "GET",
        form: Optional[Dict[str, Any]] = None,
        json: Any = None,
        follow_redirects: bool = True,
        headers: Optional[Dict[str, str]] = None,
    ) -> HarnessResponse:
        """Issue an HTTP request with the scenario's cookies and stubs."""
        self._ensure_active()
        response = await send(
            self._client,
            path,
            method=method,
            form=form,
            json=json,
            headers=headers,
            follow_redirects=follow_redirects,
        )
        detail = f"{method.upper()} {path} -> {response.status}"
        if response.redirected_to_url:
            detail += f" ({response.redirected_to_url})"
        self.log.add("request", detail)
        return response


class Harness:
    """Creates isolated scenarios from one configuration."""

    def __init__(
        self,
        config: Optional[HarnessConfig] = None,
        transport_factory: Optional[TransportFactory] = None,
    ):
        """Initialize the harness.

        Args:
            config: Harness configuration (defaults if None).
            transport_factory: Builds the underlying transport for each scenario.
        """
        self.config = (config or HarnessConfig()).validate()
        self.transport_factory = transport_factory

    def new_scenario(self, name: str = "scenario") -> Scenario:
        transport = self.transport_factory() if self.transport_factory else None
        return Scenario(name, self.config, transport=transport)

    @asynccontextmanager
    async def scenario(self, name: str = "scenario") -> AsyncIterator[Scenario]:
        """Run a block inside a fresh scenario with lifecycle hooks applied."""
        scenario = self.new_scenario(name)
        await scenario.on_scenario_start()
        try:
            yield scenario
        finally:
            await scenario.on_scenario_end()


def get_harness(project_path: str = ".") -> Harness:
    """Get a harness configured from the project's config file.

    Args:
        project_path: Path to project root.

    Returns:
        Harness instance.
    """
    return Harness(load_harness_config(project_path))
