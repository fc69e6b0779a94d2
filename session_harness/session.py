"""Session bootstrapper for Session Harness.

Logs in programmatically (no UI), captures the session credential and
leaves it in the harness client so later requests are authenticated:
- Form-encoded or JSON login bodies
- Session cookie or bearer token credentials
- At most one active token per scenario
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from .command_log import CommandLog
from .config import LOGIN_ENCODINGS, HarnessConfig
from .errors import AuthError, ConfigError
from .stubs import decode_body


TOKEN_KINDS = ("cookie", "bearer")


@dataclass(frozen=True)
class SessionToken:
    """Opaque authenticated-session credential."""

    name: str
    value: str
    kind: str = "cookie"
    issued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not self.value:
            raise ValueError("SessionToken value must not be empty")
        if self.kind not in TOKEN_KINDS:
            raise ValueError(f"Unknown token kind: {self.kind}")

    def __repr__(self) -> str:
        # Keep credentials out of test output
        masked = self.value[:4] + "..." if len(self.value) > 4 else "***"
        return f"SessionToken(name={self.name!r}, kind={self.kind!r}, value={masked!r})"


class TokenStore:
    """Single-slot holder for the scenario's active token."""

    def __init__(self):
        self._token: Optional[SessionToken] = None

    @property
    def current(self) -> Optional[SessionToken]:
        return self._token

    def set(self, token: SessionToken) -> Optional[SessionToken]:
        """Make ``token`` the active one; returns the token it replaced."""
        previous = self._token
        self._token = token
        return previous

    def clear(self) -> Optional[SessionToken]:
        previous = self._token
        self._token = None
        return previous

    def is_authenticated(self) -> bool:
        return self._token is not None


class SessionBootstrapper:
    """Authenticates a harness client against the login endpoint."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: HarnessConfig,
        store: Optional[TokenStore] = None,
        log: Optional[CommandLog] = None,
    ):
        self.client = client
        self.config = config
        self.store = store or TokenStore()
        self.log = log

    def _note(self, message: str, status: str = "ok", name: str = "authenticate") -> None:
        if self.log is not None:
            self.log.add(name, message, status)

    async def authenticate(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        encoding: Optional[str] = None,
    ) -> SessionToken:
        """Log in without the UI and keep the resulting session.

        Args:
            username: Configured username when None; an empty string is sent as is.
            password: Configured password when None; an empty string is sent as is.
            encoding: "form" or "json"; defaults to the configured encoding.

        Returns:
            The new active SessionToken.

        Raises:
            AuthError: Non-2xx/3xx status, or no recognizable credential.
            ConfigError: Unknown encoding.
        """
        username = self.config.username if username is None else username
        password = self.config.password if password is None else password
        encoding = self.config.login_encoding if encoding is None else encoding
        if encoding not in LOGIN_ENCODINGS:
            raise ConfigError(f"Unknown login encoding: {encoding}")

        # A failed attempt must not leave an earlier session behind
        self._drop_credentials()

        credentials = {"username": username, "password": password}
        body_kwargs = {"data": credentials} if encoding == "form" else {"json": credentials}
        response = await self.client.post(
            self.config.login_path,
            follow_redirects=False,
            **body_kwargs,
        )
        body = decode_body(response.content, response.headers.get("content-type", ""))

        if not 200 <= response.status_code < 400:
            self._drop_credentials()
            self._note(f"{username} rejected ({response.status_code})", "fail")
            raise AuthError(response.status_code, body, "login rejected")

        token = self._extract_token(response, body)
        if token is None:
            self._drop_credentials()
            self._note(f"{username}: no session in response", "fail")
            raise AuthError(
                response.status_code,
                body,
                f"no '{self.config.session_cookie}' cookie or bearer token in response",
            )

        if token.kind == "bearer":
            self.client.headers["Authorization"] = f"Bearer {token.value}"

        self.store.set(token)
        self._note(f"{username} via {encoding} ({response.status_code}, {token.kind})")
        return token

    def _extract_token(self, response: httpx.Response, body: Any) -> Optional[SessionToken]:
        cookie = response.cookies.get(self.config.session_cookie)
        if cookie:
            return SessionToken(name=self.config.session_cookie, value=cookie, kind="cookie")

        auth_header = response.headers.get("authorization", "")
        if auth_header.lower().startswith("bearer "):
            value = auth_header[7:].strip()
            if value:
                return SessionToken(name="Authorization", value=value, kind="bearer")

        if isinstance(body, dict):
            value = body.get(self.config.token_field)
            if isinstance(value, str) and value:
                return SessionToken(name="Authorization", value=value, kind="bearer")

        return None

    def _drop_credentials(self) -> None:
        self.client.cookies.delete(self.config.session_cookie)
        if "authorization" in self.client.headers:
            del self.client.headers["authorization"]
        self.store.clear()

    def logout(self) -> Optional[SessionToken]:
        """Invalidate the active session.

        Returns:
            The token that was active, if any.
        """
        token = self.store.current
        self._drop_credentials()
        if token is not None:
            self._note(token.kind, "info", name="logout")
        return token
