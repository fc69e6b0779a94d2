"""Tests for stubs.py - Stub rules, registry and body codecs."""

import asyncio
import re

import pytest

from session_harness.errors import ExchangeTimeoutError, StubNetworkError
from session_harness.stubs import (
    CapturedExchange,
    StubHandle,
    StubRegistry,
    StubRule,
    StubScope,
    decode_body,
    encode_body,
)


def make_exchange(path="/login", status=200, body=None, alias=None):
    return CapturedExchange(
        request_method="POST",
        request_path=path,
        request_body=body,
        response_status=status,
        response_body=None,
        alias=alias,
    )


class TestStubRule:
    """Tests for StubRule matching and validation."""

    def test_exact_path(self):
        rule = StubRule(method="POST", path="/login")
        assert rule.matches("POST", "/login")
        assert not rule.matches("POST", "/login/extra")
        assert not rule.matches("GET", "/login")

    def test_method_case_insensitive(self):
        rule = StubRule(method="post", path="/login")
        assert rule.matches("POST", "/login")

    def test_wildcard_method(self):
        rule = StubRule(method="*", path="/users")
        assert rule.matches("GET", "/users")
        assert rule.matches("DELETE", "/users")

    def test_glob_path(self):
        rule = StubRule(method="GET", path="/api/*")
        assert rule.matches("GET", "/api/users")
        assert not rule.matches("GET", "/users")

    def test_regex_path(self):
        rule = StubRule(method="GET", path=re.compile(r"^/users/\d+$"))
        assert rule.matches("GET", "/users/42")
        assert not rule.matches("GET", "/users/abc")

    def test_label(self):
        assert StubRule(method="post", path="/login").label == "POST /login"
        assert StubRule(method="GET", path=re.compile(r"/u/\d+")).label == r"GET /u/\d+"

    def test_invalid_status(self):
        with pytest.raises(ValueError):
            StubRule(status=99)
        with pytest.raises(ValueError):
            StubRule(status=600)

    def test_negative_delay(self):
        with pytest.raises(ValueError):
            StubRule(delay=-0.1)

    def test_to_dict(self):
        rule = StubRule(method="POST", path="/login", status=503)
        data = rule.to_dict()
        assert data["method"] == "POST"
        assert data["path"] == "/login"
        assert data["status"] == 503
        assert data["passthrough"] is False

    def test_headers_read_only(self):
        rule = StubRule(headers={"X-Trace": "1"})
        with pytest.raises(TypeError):
            rule.headers["X-Trace"] = "2"
        assert rule.to_dict()["headers"] == {"X-Trace": "1"}

    def test_headers_copied_at_construction(self):
        """Test mutating the caller's dict later does not change the rule."""
        headers = {"X-Trace": "1"}
        rule = StubRule(headers=headers)
        headers["X-Trace"] = "2"
        assert rule.headers["X-Trace"] == "1"

    def test_hashable(self):
        first = StubRule(path="/login", headers={"X-Trace": "1"})
        second = StubRule(path="/login", headers={"X-Trace": "1"})
        assert len({first, second}) == 2
        assert first in {first}


class TestStubHandle:
    """Tests for StubHandle."""

    def test_label_with_alias(self):
        handle = StubHandle(StubRule(method="POST", path="/login"), alias="postLogin")
        assert handle.label == "@postLogin (POST /login)"

    def test_scope_from_string(self):
        handle = StubHandle(StubRule(), scope="once")
        assert handle.scope is StubScope.ONCE

    def test_once_inactive_after_consumed(self):
        handle = StubHandle(StubRule(), scope=StubScope.ONCE)
        assert handle.active
        handle.consumed = True
        assert not handle.active

    def test_always_stays_active(self):
        handle = StubHandle(StubRule(), scope=StubScope.ALWAYS)
        handle.consumed = True
        assert handle.active

    def test_invalid_scope(self):
        with pytest.raises(ValueError):
            StubHandle(StubRule(), scope="twice")


class TestStubRegistryMatching:
    """Tests for StubRegistry.match."""

    def test_no_rules(self):
        assert StubRegistry().match("GET", "/") is None

    def test_newest_rule_wins(self):
        """Test the later of two overlapping rules answers."""
        registry = StubRegistry()
        older = registry.register(StubRule(method="POST", path="/login", status=200))
        newer = registry.register(StubRule(method="POST", path="/login", status=503))

        assert registry.match("POST", "/login") is newer
        assert registry.match("POST", "/login") is newer
        assert older.sequence < newer.sequence

    def test_newer_specific_rule_shadows_glob_only_where_it_matches(self):
        registry = StubRegistry()
        catch_all = registry.register(StubRule(method="GET", path="/api/*"))
        specific = registry.register(StubRule(method="GET", path="/api/users"))

        assert registry.match("GET", "/api/users") is specific
        assert registry.match("GET", "/api/orders") is catch_all

    def test_once_matches_exactly_once(self):
        """Test a once rule is consumed by its first match."""
        registry = StubRegistry()
        handle = registry.register(StubRule(method="POST", path="/login"), scope="once")

        assert registry.match("POST", "/login") is handle
        assert registry.match("POST", "/login") is None
        assert handle.consumed

    def test_once_falls_through_to_older_rule(self):
        """Test a consumed once rule uncovers the rule registered before it."""
        registry = StubRegistry()
        base = registry.register(StubRule(method="GET", path="/users", status=200))
        first = registry.register(StubRule(method="GET", path="/users", status=500), scope="once")

        assert registry.match("GET", "/users") is first
        assert registry.match("GET", "/users") is base
        assert registry.match("GET", "/users") is base

    def test_non_matching_once_not_consumed(self):
        registry = StubRegistry()
        handle = registry.register(StubRule(method="POST", path="/login"), scope="once")

        assert registry.match("GET", "/login") is None
        assert handle.active


class TestStubRegistryAliases:
    """Tests for alias lookup."""

    def test_get_by_alias(self):
        registry = StubRegistry()
        handle = registry.register(StubRule(path="/login"), alias="postLogin")
        assert registry.get("postLogin") is handle
        assert registry.get("@postLogin") is handle

    def test_unknown_alias(self):
        with pytest.raises(KeyError):
            StubRegistry().get("missing")

    def test_realias_points_at_newest(self):
        registry = StubRegistry()
        registry.register(StubRule(path="/a"), alias="req")
        newer = registry.register(StubRule(path="/b"), alias="req")
        assert registry.get("req") is newer


class TestStubRegistryRecording:
    """Tests for record, exchanges and reset."""

    def test_record_to_handle_and_log(self):
        registry = StubRegistry()
        handle = registry.register(StubRule(path="/login"))
        exchange = make_exchange()

        registry.record(handle, exchange)

        assert handle.exchanges == [exchange]
        assert registry.exchanges == [exchange]

    def test_exchanges_is_a_copy(self):
        registry = StubRegistry()
        handle = registry.register(StubRule())
        registry.record(handle, make_exchange())
        registry.exchanges.clear()
        assert len(registry.exchanges) == 1

    def test_reset(self):
        registry = StubRegistry()
        handle = registry.register(StubRule(), alias="x")
        registry.record(handle, make_exchange())

        registry.reset()

        assert registry.handles == []
        assert registry.exchanges == []
        assert registry.match("GET", "/") is None
        with pytest.raises(KeyError):
            registry.get("x")


class TestStubRegistryWaitFor:
    """Tests for StubRegistry.wait_for."""

    @pytest.mark.asyncio
    async def test_returns_already_recorded(self):
        registry = StubRegistry()
        handle = registry.register(StubRule(path="/login"))
        exchange = make_exchange()
        registry.record(handle, exchange)

        assert await registry.wait_for(handle, timeout=0.1) is exchange
        assert handle.cursor == 1

    @pytest.mark.asyncio
    async def test_waits_for_next_in_order(self):
        """Test successive waits return successive exchanges."""
        registry = StubRegistry(poll_interval=0.01)
        handle = registry.register(StubRule(path="/login"), alias="postLogin")
        first = make_exchange(body={"n": 1})
        second = make_exchange(body={"n": 2})

        async def record_later():
            registry.record(handle, first)
            await asyncio.sleep(0.03)
            registry.record(handle, second)

        task = asyncio.create_task(record_later())
        assert (await registry.wait_for("postLogin", timeout=1.0)).request_body == {"n": 1}
        assert (await registry.wait_for("@postLogin", timeout=1.0)).request_body == {"n": 2}
        await task

    @pytest.mark.asyncio
    async def test_timeout(self):
        registry = StubRegistry(poll_interval=0.01)
        handle = registry.register(StubRule(method="POST", path="/login"), alias="postLogin")

        with pytest.raises(ExchangeTimeoutError) as exc_info:
            await registry.wait_for(handle, timeout=0.05)

        assert "postLogin" in str(exc_info.value)
        assert exc_info.value.timeout == 0.05
        assert isinstance(exc_info.value, TimeoutError)

    @pytest.mark.asyncio
    async def test_timeout_after_consumed(self):
        """Test an already-returned exchange is not returned twice."""
        registry = StubRegistry(poll_interval=0.01)
        handle = registry.register(StubRule(path="/login"))
        registry.record(handle, make_exchange())
        await registry.wait_for(handle, timeout=0.1)

        with pytest.raises(ExchangeTimeoutError) as exc_info:
            await registry.wait_for(handle, timeout=0.03)
        assert exc_info.value.seen == 1

    @pytest.mark.asyncio
    async def test_default_timeout(self):
        registry = StubRegistry(exchange_timeout=0.03, poll_interval=0.01)
        handle = registry.register(StubRule())
        with pytest.raises(ExchangeTimeoutError) as exc_info:
            await registry.wait_for(handle)
        assert exc_info.value.timeout == 0.03

    @pytest.mark.asyncio
    async def test_recorded_error_raised(self):
        """Test a failed passthrough fails the wait instead of timing out."""
        registry = StubRegistry(poll_interval=0.01)
        handle = registry.register(StubRule(path="/login", passthrough=True))
        original = ConnectionError("refused")

        async def fail_later():
            await asyncio.sleep(0.02)
            registry.record_error(handle, StubNetworkError(handle.label, original))

        task = asyncio.create_task(fail_later())
        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(StubNetworkError) as exc_info:
            await registry.wait_for(handle, timeout=5.0)
        await task

        assert exc_info.value.original is original
        assert loop.time() - started < 1.0
        assert handle.errors == []
        assert handle.cursor == 0

    @pytest.mark.asyncio
    async def test_exchange_returned_before_error(self):
        """Test exchanges already recorded are returned before a later failure."""
        registry = StubRegistry(poll_interval=0.01)
        handle = registry.register(StubRule(path="/login", passthrough=True))
        exchange = make_exchange()
        registry.record(handle, exchange)
        registry.record_error(handle, StubNetworkError(handle.label, OSError("reset")))

        assert await registry.wait_for(handle, timeout=0.1) is exchange
        with pytest.raises(StubNetworkError):
            await registry.wait_for(handle, timeout=0.1)
        with pytest.raises(ExchangeTimeoutError):
            await registry.wait_for(handle, timeout=0.03)


class TestBodyCodecs:
    """Tests for encode_body and decode_body."""

    def test_encode_none(self):
        assert encode_body(None) == (b"", None)

    def test_encode_json(self):
        content, content_type = encode_body({"redirect": "/foobarbaz"})
        assert content == b'{"redirect": "/foobarbaz"}'
        assert content_type == "application/json"

    def test_encode_text(self):
        content, content_type = encode_body("<h2>ok</h2>")
        assert content == b"<h2>ok</h2>"
        assert content_type.startswith("text/plain")

    def test_encode_bytes(self):
        assert encode_body(b"\x00\x01") == (b"\x00\x01", "application/octet-stream")

    def test_decode_empty(self):
        assert decode_body(b"", "application/json") is None
        assert decode_body(None) is None

    def test_decode_json(self):
        assert decode_body(b'{"username": "foo"}', "application/json; charset=utf-8") == {
            "username": "foo"
        }

    def test_decode_form(self):
        body = decode_body(
            b"username=foo&password=bar", "application/x-www-form-urlencoded"
        )
        assert body == {"username": "foo", "password": "bar"}

    def test_decode_html_stays_text(self):
        assert decode_body(b"<h2>admin.html</h2>", "text/html") == "<h2>admin.html</h2>"

    def test_decode_untyped_json(self):
        """Test bodies without a content type are parsed as JSON when they are JSON."""
        assert decode_body(b"[1, 2]") == [1, 2]
        assert decode_body(b"plain words") == "plain words"
