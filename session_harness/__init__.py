"""Session Harness - authenticated-session test harness.

A small async harness for browser and HTTP login tests:
- Session bootstrapping (programmatic login, no UI replay)
- Network stubbing (scripted or recorded responses, aliases, waits)
- Eventually-consistent assertions (poll until true or timeout)
- Per-scenario isolation (fresh stubs, token and exchange log per test)
- Playwright integration (browser routes, shared session cookie)
"""

__version__ = "1.0.0"

from .config import HarnessConfig, load_harness_config, save_harness_config
from .errors import (
    AssertionTimeoutError,
    AuthError,
    ConfigError,
    ExchangeTimeoutError,
    HarnessError,
    PredicateError,
    ScenarioClosedError,
    ScenarioTimeoutError,
    StubNetworkError,
)
from .waiter import (
    WaitCondition,
    WaitResult,
    WaitState,
    expect_contains,
    expect_equal,
    expect_eventually,
)
from .stubs import (
    CapturedExchange,
    StubHandle,
    StubRegistry,
    StubRule,
    StubScope,
)
from .transport import HarnessResponse, StubTransport
from .session import SessionBootstrapper, SessionToken, TokenStore
from .scenario import Harness, Scenario, get_harness

__all__ = [
    # Configuration
    "HarnessConfig",
    "load_harness_config",
    "save_harness_config",
    # Errors
    "HarnessError",
    "AuthError",
    "ConfigError",
    "ExchangeTimeoutError",
    "AssertionTimeoutError",
    "PredicateError",
    "StubNetworkError",
    "ScenarioTimeoutError",
    "ScenarioClosedError",
    # Wait engine
    "WaitCondition",
    "WaitResult",
    "WaitState",
    "expect_eventually",
    "expect_equal",
    "expect_contains",
    # Stubs
    "StubRule",
    "StubScope",
    "StubHandle",
    "StubRegistry",
    "CapturedExchange",
    "StubTransport",
    "HarnessResponse",
    # Sessions
    "SessionToken",
    "TokenStore",
    "SessionBootstrapper",
    # Scenarios
    "Harness",
    "Scenario",
    "get_harness",
]
