"""E2E test configuration for Playwright.

The browser suites run against a live demo_app::

    python demo_app/app.py --mode xhr --port 8083
    SESSION_HARNESS_E2E_BASE_URL=http://localhost:8083 pytest e2e

Without SESSION_HARNESS_E2E_BASE_URL every test here is skipped.
SESSION_HARNESS_E2E_MODE tells the suite which flavor the app serves
("xhr" by default); XHR-only tests skip against a "form" server.
"""

import os

import pytest
import pytest_asyncio
from playwright.async_api import async_playwright

from session_harness.config import HarnessConfig
from session_harness.playwright_routes import install_scenario_routes

E2E_BASE_URL = "SESSION_HARNESS_E2E_BASE_URL"
E2E_MODE = "SESSION_HARNESS_E2E_MODE"


@pytest.fixture
def e2e_base_url():
    url = os.environ.get(E2E_BASE_URL)
    if not url:
        pytest.skip(f"{E2E_BASE_URL} not set")
    return url.rstrip("/")


@pytest.fixture
def xhr_mode():
    """Skip unless the app under test runs the XHR login script."""
    mode = os.environ.get(E2E_MODE, "xhr")
    if mode != "xhr":
        pytest.skip(f"requires an xhr-mode app, running '{mode}'")


@pytest.fixture
def harness_config(e2e_base_url):
    """Harness pointed at the live app; scenarios use the real network."""
    return HarnessConfig(base_url=e2e_base_url).validate()


@pytest_asyncio.fixture
async def browser_context(harness_config):
    """Fresh browser context per test (no cookies carried over)."""
    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=True)
        context = await browser.new_context(
            base_url=harness_config.base_url,
            viewport={
                "width": harness_config.viewport_width,
                "height": harness_config.viewport_height,
            },
        )
        try:
            yield context
        finally:
            await context.close()
            await browser.close()


@pytest_asyncio.fixture
async def page(browser_context, scenario):
    """Page whose traffic goes through the scenario's stubs."""
    page = await browser_context.new_page()
    uninstall = await install_scenario_routes(page, scenario)
    yield page
    await uninstall()
