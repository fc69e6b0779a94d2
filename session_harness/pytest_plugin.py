"""pytest fixtures for Session Harness.

Enable in a conftest.py with::

    pytest_plugins = ["session_harness.pytest_plugin"]

Each test using ``scenario`` gets a fresh Scenario; the start/end hooks run
around the test. Override ``harness_transport`` to point scenarios at a
fake backend instead of the network.
"""

from pathlib import Path

import pytest
import pytest_asyncio

from .config import HarnessConfig, load_harness_config
from .scenario import Harness


@pytest.fixture
def harness_config(request) -> HarnessConfig:
    """Configuration loaded from the pytest rootdir's .session-harness/config.json."""
    return load_harness_config(str(Path(request.config.rootpath)))


@pytest.fixture
def harness_transport():
    """Factory for each scenario's underlying transport (None = real network)."""
    return None


@pytest.fixture
def harness(harness_config, harness_transport) -> Harness:
    return Harness(harness_config, transport_factory=harness_transport)


@pytest_asyncio.fixture
async def scenario(harness, request):
    """A started Scenario named after the test; ended on teardown."""
    async with harness.scenario(request.node.name) as active:
        yield active
