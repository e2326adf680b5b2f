"""Shared fixtures: isolated settings and a scriptable fake Playwright page."""

import base64
from io import BytesIO
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from webclone import capture
from webclone.config import get_settings

SETTINGS_ENV = (
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "LLM_PROVIDER",
    "OPENAI_BASE_URL",
    "MAX_IMAGE_DIMENSION",
    "MAX_SCROLL_STEPS",
    "LAYOUT_ITEM_LIMIT",
)


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Each test starts from default settings with no API keys."""
    for name in SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def png_b64(width: int = 10, height: int = 10) -> str:
    buf = BytesIO()
    Image.new("RGB", (width, height), (200, 30, 30)).save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode()


def element(tag: str, text: str | None = None) -> dict:
    item = {
        "tag": tag,
        "html": f"<{tag}>{text or ''}</{tag}>",
        "styles": {
            "color": "rgb(0, 0, 0)",
            "background": "rgba(0, 0, 0, 0) none repeat scroll 0% 0% / auto padding-box border-box",
            "fontSize": "16px",
            "fontWeight": "400",
            "fontFamily": "Arial",
            "border": "0px none rgb(0, 0, 0)",
            "margin": "0px",
            "padding": "0px",
            "display": "block",
        },
    }
    if text is not None:
        item["text"] = text
    return item


def sample_layout(count: int = 2) -> dict:
    return {
        "navs": [element("nav") for _ in range(count)],
        "sections": [element("section") for _ in range(count)],
        "buttons": [element("button", f"Button {i}") for i in range(count)],
        "headings": [element(f"h{(i % 6) + 1}", f"Heading {i}") for i in range(count)],
        "textBlocks": [element("p", f"Paragraph {i}") for i in range(count)],
    }


class FakePage:
    """
    Stands in for a Playwright page.

    ``heights`` are successive ``document.body.scrollHeight`` readings; the
    last one repeats once the list is exhausted.
    """

    def __init__(
        self,
        heights=(1000,),
        viewport_height=1000,
        html="<html><head></head><body><h1>Hello</h1></body></html>",
        stylesheets=(),
        layout=None,
        fail_on=None,
    ):
        self.heights = list(heights)
        self.viewport_height = viewport_height
        self.layout = layout if layout is not None else sample_layout()
        self.fail_on = fail_on
        self.scroll_positions = []
        self.evaluated = []

        self.goto = AsyncMock()
        self.wait_for_timeout = AsyncMock()
        self.wait_for_load_state = AsyncMock()
        self.content = AsyncMock(return_value=html)
        self.screenshot = AsyncMock(return_value=b"\x89PNG fake")
        self.eval_on_selector_all = AsyncMock(return_value=list(stylesheets))

    def _next_height(self):
        if len(self.heights) > 1:
            return self.heights.pop(0)
        return self.heights[0]

    async def evaluate(self, script, arg=None):
        self.evaluated.append(script)
        if self.fail_on is not None and script == self.fail_on:
            raise RuntimeError("Execution context was destroyed")
        if script == capture.BODY_HEIGHT_JS:
            return self._next_height()
        if script == capture.VIEWPORT_HEIGHT_JS:
            return self.viewport_height
        if script == capture.SCROLL_TO_JS:
            self.scroll_positions.append(arg)
            return None
        if script in (capture.WAIT_FOR_IMAGES_JS, capture.WAIT_FOR_VIDEOS_JS):
            return 0
        if script == capture.LAYOUT_SNAPSHOT_JS:
            return self.layout
        return None

    def waited(self):
        return [c.args[0] for c in self.wait_for_timeout.await_args_list]


@pytest.fixture
def fake_playwright():
    """Patch-ready ``async_playwright`` replacement wired to a given page."""

    def build(page):
        browser = MagicMock()
        browser.close = AsyncMock()
        context = MagicMock()
        context.new_page = AsyncMock(return_value=page)
        browser.new_context = AsyncMock(return_value=context)

        pw = MagicMock()
        pw.chromium.launch = AsyncMock(return_value=browser)

        manager = MagicMock()
        manager.__aenter__ = AsyncMock(return_value=pw)
        manager.__aexit__ = AsyncMock(return_value=False)
        factory = MagicMock(return_value=manager)
        return factory, pw, browser

    return build
