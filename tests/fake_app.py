"""In-process login application for the unit tests.

Mirrors demo_app/app.py as an httpx.MockTransport handler so scenarios run
without a server:
- /login form POST: 302 to /dashboard plus session cookie
- /login JSON POST: 200 {"redirect": "/dashboard"} plus session cookie
- /api/token JSON POST: bearer token in the body
- protected pages redirect to /unauthorized without a session
"""

import asyncio
import json
from typing import List, Optional
from urllib.parse import parse_qsl

import httpx


BASE_URL = "http://app.test"
SESSION_COOKIE = "cypress-session-cookie"
SESSION_VALUE = "1-session-cypress"
BEARER_TOKEN = "token-cypress-123"
USERNAME = "cypress"
PASSWORD = "password123"
ERROR_TEXT = "Username and password incorrect"
UNAUTHORIZED_TEXT = "You are not logged in and cannot access this page"
PROTECTED_PAGES = ("/dashboard", "/users", "/admin")


def _credentials(request: httpx.Request) -> dict:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        return json.loads(request.content or b"{}")
    return dict(parse_qsl(request.content.decode()))


def _valid(credentials: dict) -> bool:
    return credentials.get("username") == USERNAME and credentials.get("password") == PASSWORD


def _session_cookie() -> str:
    return f"{SESSION_COOKIE}={SESSION_VALUE}; Path=/; HttpOnly"


class FakeLoginApp:
    """Login backend answering the harness client's requests."""

    def __init__(self):
        self.requests: List[httpx.Request] = []

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def paths(self) -> List[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/login":
            if request.method == "POST":
                return self._login(request)
            return httpx.Response(200, html=self._login_page())
        if path == "/api/token" and request.method == "POST":
            return self._token(request)
        if path == "/unauthorized":
            return httpx.Response(200, html=f"<h3>{UNAUTHORIZED_TEXT}</h3>")
        if path in PROTECTED_PAGES:
            if not self._authenticated(request):
                return httpx.Response(302, headers={"Location": "/unauthorized"})
            return httpx.Response(200, html=f"<h2>{path[1:]}.html</h2>")
        return httpx.Response(404, text="Not found")

    def _login_page(self, error: str = "") -> str:
        return f'<form method="POST" action="/login"></form><p class="error">{error}</p>'

    def _login(self, request: httpx.Request) -> httpx.Response:
        is_json = request.headers.get("content-type", "").startswith("application/json")
        credentials = _credentials(request)

        if not _valid(credentials):
            if is_json:
                return httpx.Response(401, json={"error": ERROR_TEXT})
            return httpx.Response(401, html=self._login_page(ERROR_TEXT))

        if is_json:
            return httpx.Response(
                200,
                json={"redirect": "/dashboard"},
                headers={"Set-Cookie": _session_cookie()},
            )
        return httpx.Response(
            302,
            headers={"Location": "/dashboard", "Set-Cookie": _session_cookie()},
        )

    def _token(self, request: httpx.Request) -> httpx.Response:
        if not _valid(_credentials(request)):
            return httpx.Response(403, json={"error": "forbidden"})
        return httpx.Response(200, json={"token": BEARER_TOKEN})

    def _authenticated(self, request: httpx.Request) -> bool:
        cookies = request.headers.get("cookie", "")
        if f"{SESSION_COOKIE}={SESSION_VALUE}" in cookies:
            return True
        return request.headers.get("authorization") == f"Bearer {BEARER_TOKEN}"


class LoginPage:
    """Stand-in for the XHR login page's script.

    ``submit`` fires the JSON POST in the background the way a click
    handler would, so tests observe its effects through waits.
    ``redirect`` is the navigation hook tests spy on.
    """

    def __init__(self, scenario):
        self.scenario = scenario
        self.error_text: Optional[str] = None
        self.location = "/login"
        self._pending: Optional[asyncio.Task] = None

    def redirect(self, url: str) -> None:
        self.location = url

    def submit(self, username: str, password: str) -> asyncio.Task:
        self.error_text = None
        self._pending = asyncio.create_task(self._post(username, password))
        return self._pending

    async def _post(self, username: str, password: str) -> None:
        response = await self.scenario.client.post(
            "/login",
            json={"username": username, "password": password},
            follow_redirects=False,
        )
        if response.is_success:
            self.redirect(response.json()["redirect"])
        elif response.status_code == 401:
            self.error_text = ERROR_TEXT
        else:
            self.error_text = (
                f"An error occurred: {response.status_code} {response.reason_phrase}"
            )
