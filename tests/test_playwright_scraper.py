import asyncio

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from config import ACCEPT_LANGUAGE, LOCALE, USER_AGENT
from extractor import PageSnapshot
from fakes import FakeChromium, FakePlaywright, lockup, make_session, watch_data
from playwright_scraper import render_snapshot


def test_session_is_lazy():
    session, playwright = make_session()

    assert not session.started
    assert playwright.starts == 0
    assert playwright.chromium.browsers == []


def test_concurrent_first_requests_launch_once():
    session, playwright = make_session()

    async def scenario():
        return await asyncio.gather(*(session.acquire_page() for _ in range(5)))

    pages = asyncio.run(scenario())

    assert playwright.starts == 1
    assert len(playwright.chromium.browsers) == 1
    browser = playwright.chromium.browsers[0]
    assert len(browser.contexts) == 1
    assert len({id(page) for page in pages}) == 5
    assert all(page.context is browser.contexts[0] for page in pages)


def test_shared_context_configuration():
    session, playwright = make_session()

    asyncio.run(session.acquire_page())

    browser = playwright.chromium.browsers[0]
    assert browser.options["headless"] is True
    assert "--no-sandbox" in browser.options["args"]

    context = browser.contexts[0]
    assert context.options["user_agent"] == USER_AGENT
    assert context.options["locale"] == LOCALE
    assert context.options["extra_http_headers"] == {"Accept-Language": ACCEPT_LANGUAGE}
    assert {cookie["name"] for cookie in context.cookies} == {"CONSENT", "PREF"}
    assert all(cookie["domain"] == ".youtube.com" for cookie in context.cookies)


def test_page_is_closed_on_error_and_context_kept():
    session, playwright = make_session()

    async def scenario():
        async with session.page() as page:
            raise RuntimeError("page crashed")

    with pytest.raises(RuntimeError):
        asyncio.run(scenario())

    context = playwright.chromium.browsers[0].contexts[0]
    assert context.pages[0].closed
    assert not context.closed


def test_shutdown_without_start_is_safe():
    session, playwright = make_session()

    async def scenario():
        await session.shutdown()
        await session.shutdown()

    asyncio.run(scenario())

    assert playwright.starts == 0


def test_shutdown_closes_and_relaunches_on_demand():
    session, playwright = make_session()

    async def scenario():
        await session.acquire_page()
        await session.shutdown()
        await session.shutdown()
        await session.acquire_page()

    asyncio.run(scenario())

    first, second = playwright.chromium.browsers
    assert first.closed and first.contexts[0].closed
    assert not second.closed
    assert playwright.starts == 2


def test_launch_failure_propagates_and_retries_lazily():
    chromium = FakeChromium(fail=True)
    session, playwright = make_session(FakePlaywright(chromium))

    with pytest.raises(RuntimeError):
        asyncio.run(session.acquire_page())
    assert not session.started

    chromium.fail = False
    asyncio.run(session.acquire_page())

    assert session.started
    assert len(chromium.browsers) == 1


def test_disconnected_browser_is_replaced():
    session, playwright = make_session()

    async def scenario():
        await session.acquire_page()
        playwright.chromium.browsers[0].connected = False
        await session.acquire_page()

    asyncio.run(scenario())

    assert len(playwright.chromium.browsers) == 2


class FakeRenderPage:
    def __init__(self, structured=None, html="<html></html>", nav_timeout=False):
        self.structured = structured
        self.html = html
        self.nav_timeout = nav_timeout
        self.calls = []

    def is_closed(self):
        return False

    async def goto(self, url, **kwargs):
        self.calls.append(("goto", url, kwargs["wait_until"]))
        if self.nav_timeout:
            raise PlaywrightTimeoutError("Timeout 20000ms exceeded.")

    async def wait_for_function(self, script, timeout=None):
        self.calls.append(("wait_for_function",))
        if self.structured is None:
            raise PlaywrightTimeoutError("Timeout 10000ms exceeded.")

    async def evaluate(self, script, arg=None):
        return self.structured

    async def wait_for_selector(self, selector, timeout=None):
        self.calls.append(("wait_for_selector", selector))
        raise PlaywrightTimeoutError("Timeout 10000ms exceeded.")

    async def content(self):
        self.calls.append(("content",))
        return self.html


def test_render_uses_structured_data_without_waiting_for_cards():
    data = watch_data(lockup("abc123XY"))
    page = FakeRenderPage(structured=data)

    snapshot = asyncio.run(render_snapshot(page, "abc123XY"))

    assert snapshot == PageSnapshot(initial_data=data)
    action, url, wait_until = page.calls[0]
    assert url.startswith("https://www.youtube.com/watch?v=abc123XY")
    assert "hl=en" in url
    assert wait_until == "domcontentloaded"
    assert all(call[0] != "wait_for_selector" for call in page.calls)


def test_render_timeouts_fall_back_to_markup():
    page = FakeRenderPage(structured=None, html="<html>cards</html>", nav_timeout=True)

    snapshot = asyncio.run(render_snapshot(page, "abc123XY"))

    assert snapshot == PageSnapshot(initial_data=None, rendered_html="<html>cards</html>")
    assert [call[0] for call in page.calls] == [
        "goto",
        "wait_for_function",
        "wait_for_selector",
        "content",
    ]
