"""Playwright integration for Session Harness.

Applies a scenario's stub registry to browser traffic (XHR/fetch included),
hands a programmatic session to a browser context, and provides page
probes for the wait engine.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, Union
from urllib.parse import urlsplit

from playwright.async_api import BrowserContext, Error as PlaywrightError, Page, Route

from .errors import HarnessError, StubNetworkError
from .stubs import CapturedExchange, StubRegistry, decode_body, encode_body


ROUTE_PATTERN = "**/*"

RouteTarget = Union[Page, BrowserContext]


async def install_routes(
    target: RouteTarget,
    registry: StubRegistry,
    on_exchange: Optional[Callable[[CapturedExchange], None]] = None,
) -> Callable[[], Awaitable[None]]:
    """Route browser requests through a stub registry.

    Args:
        target: Playwright Page or BrowserContext.
        registry: Rules to apply and log to record into.
        on_exchange: Called with each recorded exchange.

    Returns:
        Async callable removing the route again.
    """

    async def handler(route: Route) -> None:
        request = route.request
        handle = registry.match(request.method, urlsplit(request.url).path)
        if handle is None:
            await route.fallback()
            return

        rule = handle.rule
        if rule.passthrough:
            try:
                response = await route.fetch()
                content = await response.body()
            except PlaywrightError as e:
                await route.abort("failed")
                # Route handlers run as detached tasks; the waiter re-raises this
                error = StubNetworkError(handle.label, e)
                error.__cause__ = e
                registry.record_error(handle, error)
                return
            status = response.status
            headers = response.headers
            await route.fulfill(response=response)
        else:
            if rule.delay:
                await asyncio.sleep(rule.delay)
            content, content_type = encode_body(rule.body)
            headers = dict(rule.headers)
            if content_type and not any(k.lower() == "content-type" for k in headers):
                headers["Content-Type"] = content_type
            status = rule.status
            await route.fulfill(status=status, headers=headers, body=content)

        lowered = {k.lower(): v for k, v in headers.items()}
        exchange = CapturedExchange(
            request_method=request.method,
            request_path=urlsplit(request.url).path,
            request_body=decode_body(
                request.post_data_buffer, request.headers.get("content-type", "")
            ),
            response_status=status,
            response_body=decode_body(content, lowered.get("content-type", "")),
            request_headers=dict(request.headers),
            response_headers=dict(headers),
            stubbed=not rule.passthrough,
            alias=handle.alias,
        )
        registry.record(handle, exchange)
        if on_exchange:
            on_exchange(exchange)

    await target.route(ROUTE_PATTERN, handler)

    async def uninstall() -> None:
        await target.unroute(ROUTE_PATTERN, handler)

    return uninstall


async def install_scenario_routes(target: RouteTarget, scenario: Any) -> Callable[[], Awaitable[None]]:
    """Route browser traffic through a Scenario's registry and command log."""
    return await install_routes(target, scenario.registry, on_exchange=scenario.log_exchange)


async def share_session(context: BrowserContext, scenario: Any) -> None:
    """Give a browser context the scenario's programmatic session.

    Cookie sessions are copied into the context's cookie store; bearer
    sessions become an extra Authorization header.

    Raises:
        HarnessError: Scenario is not authenticated.
    """
    token = scenario.token
    if token is None:
        raise HarnessError(f"Scenario '{scenario.name}' has no session to share")

    if token.kind == "bearer":
        await context.set_extra_http_headers({"Authorization": f"Bearer {token.value}"})
        return

    await context.add_cookies([
        {
            "name": token.name,
            "value": token.value,
            "url": scenario.config.base_url,
        }
    ])


async def get_browser_cookie(context: BrowserContext, name: str) -> Optional[str]:
    """Value of a cookie in a browser context, or None."""
    for cookie in await context.cookies():
        if cookie.get("name") == name:
            return cookie.get("value")
    return None


# --- Page probes for the wait engine ---


def text_of(page: Page, selector: str) -> Callable[[], Awaitable[Optional[str]]]:
    """Probe returning the first match's text content (None when absent)."""

    async def probe() -> Optional[str]:
        locator = page.locator(selector)
        if await locator.count() == 0:
            return None
        return await locator.first.text_content()

    probe.__name__ = f"text of '{selector}'"
    return probe


def is_visible(page: Page, selector: str) -> Callable[[], Awaitable[bool]]:
    """Probe returning whether the first match is visible."""

    async def probe() -> bool:
        return await page.locator(selector).first.is_visible()

    probe.__name__ = f"'{selector}' visible"
    return probe


def url_contains(page: Page, fragment: str) -> Callable[[], bool]:
    """Probe checking the page URL for a fragment."""

    def probe() -> bool:
        return fragment in page.url

    probe.__name__ = f"url containing '{fragment}'"
    return probe
