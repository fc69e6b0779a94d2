"""Shared fixtures: scenarios run against the in-process login app."""

import pytest

from fake_app import BASE_URL, FakeLoginApp
from session_harness.config import HarnessConfig


@pytest.fixture
def login_app():
    """Fresh fake login backend."""
    return FakeLoginApp()


@pytest.fixture
def harness_config():
    """Config pointed at the fake app with short waits."""
    return HarnessConfig(
        base_url=BASE_URL,
        wait_timeout=1.0,
        poll_interval=0.01,
        exchange_timeout=1.0,
        scenario_timeout=30.0,
    )


@pytest.fixture
def harness_transport(login_app):
    """Each scenario talks to the fake app."""
    return login_app.transport
