"""httpx integration for the stub controller.

StubTransport sits between the harness client and the real network. Every
request is matched against the scenario's StubRegistry; matched requests are
either short-circuited with the scripted response or forwarded, and both
kinds are recorded as CapturedExchanges.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import httpx

from .errors import StubNetworkError
from .stubs import (
    CapturedExchange,
    StubHandle,
    StubRegistry,
    decode_body,
    encode_body,
)


HTTP_TIMEOUT = 30.0


class StubTransport(httpx.AsyncBaseTransport):
    """Async transport applying a StubRegistry to outgoing requests."""

    def __init__(
        self,
        registry: StubRegistry,
        inner: Optional[httpx.AsyncBaseTransport] = None,
        on_exchange: Optional[Callable[[CapturedExchange], None]] = None,
    ):
        """Initialize the transport.

        Args:
            registry: Rules to apply and log to record into.
            inner: Transport used for unmatched and passthrough requests.
            on_exchange: Called with each recorded exchange.
        """
        self.registry = registry
        self.inner = inner or httpx.AsyncHTTPTransport()
        self.on_exchange = on_exchange

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        handle = self.registry.match(request.method, request.url.path)
        if handle is None:
            return await self.inner.handle_async_request(request)

        rule = handle.rule
        if rule.passthrough:
            try:
                response = await self.inner.handle_async_request(request)
                await response.aread()
            except httpx.TransportError as e:
                raise StubNetworkError(handle.label, e) from e
        else:
            if rule.delay:
                await asyncio.sleep(rule.delay)
            response = self._build_stub_response(handle, request)

        await self._record(handle, request, response)
        return response

    @staticmethod
    def _build_stub_response(handle: StubHandle, request: httpx.Request) -> httpx.Response:
        rule = handle.rule
        content, content_type = encode_body(rule.body)
        headers = dict(rule.headers)
        if content_type and not any(k.lower() == "content-type" for k in headers):
            headers["Content-Type"] = content_type
        return httpx.Response(
            rule.status,
            headers=headers,
            content=content,
            request=request,
        )

    async def _record(
        self,
        handle: StubHandle,
        request: httpx.Request,
        response: httpx.Response,
    ) -> None:
        request_content = await request.aread()
        exchange = CapturedExchange(
            request_method=request.method,
            request_path=request.url.path,
            request_body=decode_body(
                request_content, request.headers.get("content-type", "")
            ),
            response_status=response.status_code,
            response_body=decode_body(
                response.content, response.headers.get("content-type", "")
            ),
            request_headers=dict(request.headers),
            response_headers=dict(response.headers),
            stubbed=not handle.rule.passthrough,
            alias=handle.alias,
        )
        self.registry.record(handle, exchange)
        if self.on_exchange:
            self.on_exchange(exchange)

    async def aclose(self) -> None:
        await self.inner.aclose()


@dataclass
class HarnessResponse:
    """Decoded response of a harness request."""

    status: int
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    text: str = ""
    redirected_to_url: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> "HarnessResponse":
        """Build from an httpx response.

        ``redirected_to_url`` is the absolute Location target when the
        response is an unfollowed redirect.
        """
        redirected_to_url = None
        location = response.headers.get("location")
        if location and response.is_redirect:
            redirected_to_url = str(response.url.join(location))

        return cls(
            status=response.status_code,
            url=str(response.url),
            headers=dict(response.headers),
            body=decode_body(response.content, response.headers.get("content-type", "")),
            text=response.text,
            redirected_to_url=redirected_to_url,
        )


def build_client(
    base_url: str,
    registry: StubRegistry,
    inner: Optional[httpx.AsyncBaseTransport] = None,
    on_exchange: Optional[Callable[[CapturedExchange], None]] = None,
) -> httpx.AsyncClient:
    """Create the harness HTTP client with stubbing installed.

    Args:
        base_url: Application base URL; relative paths resolve against it.
        registry: Scenario stub registry.
        inner: Underlying transport (a MockTransport in tests).
        on_exchange: Exchange callback for the command log.

    Returns:
        httpx.AsyncClient with its own cookie jar.
    """
    return httpx.AsyncClient(
        base_url=base_url,
        transport=StubTransport(registry, inner=inner, on_exchange=on_exchange),
        follow_redirects=True,
        timeout=HTTP_TIMEOUT,
    )


async def send(
    client: httpx.AsyncClient,
    path: str,
    method: str = "GET",
    form: Optional[Dict[str, Any]] = None,
    json: Any = None,
    headers: Optional[Dict[str, str]] = None,
    follow_redirects: bool = True,
) -> HarnessResponse:
    """Issue a request through the harness client.

    Args:
        client: Client from ``build_client``.
        path: Path (resolved against base URL) or absolute URL.
        method: HTTP method.
        form: Body sent form-urlencoded.
        json: Body sent as JSON.
        headers: Extra request headers.
        follow_redirects: Follow 3xx responses.

    Returns:
        HarnessResponse.
    """
    if form is not None and json is not None:
        raise ValueError("Pass either form or json, not both")

    response = await client.request(
        method.upper(),
        path,
        data=form,
        json=json,
        headers=headers,
        follow_redirects=follow_redirects,
    )
    return HarnessResponse.from_httpx(response)
