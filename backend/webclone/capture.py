"""
Headless-browser page capture.

Loads a URL in Playwright, lets deferred content settle, then pulls out
everything the clone step needs: the rendered HTML, the linked stylesheets,
a full-page screenshot and a layout summary of key elements with their
computed styles.

Every call launches and tears down its own browser. Nothing is shared
between captures.
"""

import logging
from dataclasses import dataclass

import httpx
from playwright.async_api import async_playwright
from pydantic import ValidationError

from webclone.config import get_settings
from webclone.exceptions import (
    CaptureError,
    CloneError,
    EmptyContentError,
    InvalidRequestError,
    NavigationError,
)
from webclone.image_utils import encode_screenshot
from webclone.models import CaptureRequest, CaptureResult, LayoutSummary

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Sent with every page request to look more like a real browser
EXTRA_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "DNT": "1",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

NETWORK_IDLE = "networkidle"
DOM_CONTENT_LOADED = "domcontentloaded"

FALLBACK_SETTLE_MS = 3000
NO_LAZY_LOAD_WAIT_MS = 1000
LAZY_LOAD_FALLBACK_WAIT_MS = 2000

SCROLL_STEP_RATIO = 0.8  # overlap so no trigger zone is skipped
SCROLL_PAUSE_MS = 500
SCROLL_IDLE_TIMEOUT_MS = 2000
BOTTOM_SETTLE_MS = 1000
FINAL_IDLE_TIMEOUT_MS = 3000
TOP_SETTLE_MS = 500

# Category name -> selector contract for the layout summary
LAYOUT_CATEGORIES = {
    "navs": {"selector": "nav", "text": False},
    "sections": {"selector": "section", "text": False},
    "buttons": {
        "selector": "button, a[role=button], input[type=button], input[type=submit]",
        "text": True,
    },
    "headings": {"selector": "h1, h2, h3, h4, h5, h6", "text": True},
    "textBlocks": {"selector": "p, span, li", "text": True},
}


# ---------------------------------------------------------------------------
# In-page scripts
# ---------------------------------------------------------------------------

BODY_HEIGHT_JS = "() => document.body.scrollHeight"
VIEWPORT_HEIGHT_JS = "() => window.innerHeight"
SCROLL_TO_JS = "(pos) => window.scrollTo(0, pos)"
SCROLL_TO_BOTTOM_JS = "() => window.scrollTo(0, document.body.scrollHeight)"
SCROLL_TO_TOP_JS = "() => window.scrollTo(0, 0)"

WAIT_FOR_IMAGES_JS = """
async () => {
    const images = Array.from(document.querySelectorAll('img'));
    await Promise.all(
        images.map((img) => {
            if (img.complete) return Promise.resolve();
            return new Promise((resolve) => {
                img.addEventListener('load', resolve);
                img.addEventListener('error', resolve);
                setTimeout(resolve, 5000);
            });
        })
    );
    return images.length;
}
"""

WAIT_FOR_VIDEOS_JS = """
async () => {
    const videos = Array.from(document.querySelectorAll('video'));
    await Promise.all(
        videos.map((video) => {
            if (video.readyState >= 1) return Promise.resolve();  // HAVE_METADATA
            return new Promise((resolve) => {
                video.addEventListener('loadedmetadata', resolve);
                video.addEventListener('error', resolve);
                setTimeout(resolve, 3000);
            });
        })
    );
    return videos.length;
}
"""

LAYOUT_SNAPSHOT_JS = """
(categories) => {
    function getStyles(el) {
        const styles = window.getComputedStyle(el);
        return {
            color: styles.color,
            background: styles.background,
            fontSize: styles.fontSize,
            fontWeight: styles.fontWeight,
            fontFamily: styles.fontFamily,
            border: styles.border,
            margin: styles.margin,
            padding: styles.padding,
            display: styles.display,
        };
    }

    function snapshot(selector, withText) {
        return Array.from(document.querySelectorAll(selector)).map(el => {
            const item = {
                tag: el.tagName.toLowerCase(),
                html: el.outerHTML,
                styles: getStyles(el),
            };
            if (withText) item.text = el.innerText || '';
            return item;
        });
    }

    const layout = {};
    for (const [name, category] of Object.entries(categories)) {
        layout[name] = snapshot(category.selector, category.text);
    }
    return layout;
}
"""

STYLESHEET_LINKS_JS = "links => links.map(link => link.href)"


# ---------------------------------------------------------------------------
# Step outcomes
# ---------------------------------------------------------------------------

@dataclass
class StepOutcome:
    ok: bool
    error: Exception | None = None


@dataclass
class NavigationResult:
    strategy: str
    fallback_reason: str | None = None


async def _attempt(awaitable) -> StepOutcome:
    """Await a browser step and report how it went instead of raising."""
    try:
        await awaitable
    except Exception as e:
        return StepOutcome(ok=False, error=e)
    return StepOutcome(ok=True)


async def _wait_for_network_idle(page, timeout_ms: int) -> bool:
    outcome = await _attempt(page.wait_for_load_state(NETWORK_IDLE, timeout=timeout_ms))
    return outcome.ok


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------

async def navigate(page, url: str, timeout_ms: int) -> NavigationResult:
    """
    Load ``url``, waiting for network idle first.

    Plenty of real pages never go idle (polling, analytics beacons) yet are
    fully rendered, so a failed idle wait falls back to DOMContentLoaded
    plus a fixed settle delay. Only a failure of the fallback is fatal.
    """
    first = await _attempt(page.goto(url, wait_until=NETWORK_IDLE, timeout=timeout_ms))
    if first.ok:
        return NavigationResult(strategy=NETWORK_IDLE)

    logger.warning(
        "[capture] networkidle navigation failed, falling back to domcontentloaded: %s",
        first.error,
    )
    second = await _attempt(page.goto(url, wait_until=DOM_CONTENT_LOADED, timeout=timeout_ms))
    if not second.ok:
        raise NavigationError(f"Failed to load {url}: {second.error}")

    await page.wait_for_timeout(FALLBACK_SETTLE_MS)
    return NavigationResult(strategy=DOM_CONTENT_LOADED, fallback_reason=str(first.error))


# ---------------------------------------------------------------------------
# Lazy loading
# ---------------------------------------------------------------------------

async def _scroll_through_page(page, max_steps: int) -> int:
    """Scroll top to bottom in overlapping steps. Returns the number of steps taken."""
    body_height = await page.evaluate(BODY_HEIGHT_JS)
    viewport_height = await page.evaluate(VIEWPORT_HEIGHT_JS)
    logger.info("[lazy-load] Page height: %spx, viewport height: %spx", body_height, viewport_height)

    step = max(int(viewport_height * SCROLL_STEP_RATIO), 1)
    position = 0
    steps = 0

    while position < body_height and steps < max_steps:
        await page.evaluate(SCROLL_TO_JS, position)
        await page.wait_for_timeout(SCROLL_PAUSE_MS)
        await _wait_for_network_idle(page, SCROLL_IDLE_TIMEOUT_MS)

        position += step
        steps += 1

        # Lazy content can grow the page, so the bound is re-measured every step
        new_height = await page.evaluate(BODY_HEIGHT_JS)
        if new_height > body_height:
            logger.info("[lazy-load] Page height increased from %spx to %spx", body_height, new_height)
        body_height = new_height

    if position < body_height:
        logger.warning("[lazy-load] Stopped after %d scroll steps at %spx of %spx", steps, position, body_height)
    return steps


async def _settle_lazy_content(page, max_steps: int) -> None:
    steps = await _scroll_through_page(page, max_steps)

    await page.evaluate(SCROLL_TO_BOTTOM_JS)
    await page.wait_for_timeout(BOTTOM_SETTLE_MS)

    images = await page.evaluate(WAIT_FOR_IMAGES_JS)
    videos = await page.evaluate(WAIT_FOR_VIDEOS_JS)

    await _wait_for_network_idle(page, FINAL_IDLE_TIMEOUT_MS)

    # Back to the top for a clean screenshot
    await page.evaluate(SCROLL_TO_TOP_JS)
    await page.wait_for_timeout(TOP_SETTLE_MS)

    logger.info("[lazy-load] Completed: %s scroll steps, %s images, %s videos", steps, images, videos)


async def trigger_lazy_load(page, max_steps: int | None = None) -> bool:
    """
    Scroll the page to surface deferred content, then wait for media.

    Returns True when the full sequence ran. Any failure along the way drops
    to a flat wait and returns False; it never fails the capture.
    """
    if max_steps is None:
        max_steps = get_settings().max_scroll_steps

    outcome = await _attempt(_settle_lazy_content(page, max_steps))
    if outcome.ok:
        return True

    logger.warning("[lazy-load] Error during lazy loading handling: %s", outcome.error)
    await page.wait_for_timeout(LAZY_LOAD_FALLBACK_WAIT_MS)
    return False


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

async def _fetch_stylesheet(client: httpx.AsyncClient, css_url: str) -> str | None:
    try:
        resp = await client.get(css_url)
        resp.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.debug("[capture] Skipping stylesheet %s: %s", css_url, e)
        return None
    return resp.text


async def _embed_stylesheets(client: httpx.AsyncClient, css_links: list[str], html: str) -> tuple[str, str]:
    combined_css = ""
    for i, css_url in enumerate(css_links):
        if not css_url:
            continue
        css_text = await _fetch_stylesheet(client, css_url)
        if css_text is None:
            continue
        combined_css += f"\n/* {css_url} */\n" + css_text + "\n"
        html = html.replace(css_url, f"./style{i}.css")
    return html, combined_css


async def collect_stylesheets(
    page, html: str, client: httpx.AsyncClient | None = None
) -> tuple[str, str]:
    """
    Download every ``<link rel="stylesheet">`` and point the HTML at local copies.

    Returns ``(html, combined_css)``. A stylesheet that can't be fetched is
    left out and its URL stays as-is in the HTML. The rewrite is a plain
    global string replace, so any other identical occurrence of the URL in
    the document is rewritten too. Uses ``client`` when given, otherwise
    opens one for the duration of the call.
    """
    css_links = await page.eval_on_selector_all('link[rel="stylesheet"]', STYLESHEET_LINKS_JS)

    if client is not None:
        return await _embed_stylesheets(client, css_links, html)

    async with httpx.AsyncClient(
        timeout=get_settings().stylesheet_timeout,
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
    ) as own_client:
        return await _embed_stylesheets(own_client, css_links, html)


async def extract_layout(page) -> LayoutSummary:
    """Snapshot navs, sections, buttons, headings and text blocks in document order."""
    raw = await page.evaluate(LAYOUT_SNAPSHOT_JS, LAYOUT_CATEGORIES)
    return LayoutSummary.model_validate(raw)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def _coerce_request(request) -> CaptureRequest:
    if isinstance(request, CaptureRequest):
        return request
    url = request.get("url") if isinstance(request, dict) else None
    if not isinstance(url, str) or not url.strip():
        raise InvalidRequestError("Invalid URL")
    try:
        return CaptureRequest.model_validate(request)
    except ValidationError as e:
        raise InvalidRequestError(f"Invalid capture request: {e.errors()[0]['msg']}") from e


async def _capture_page(page, request: CaptureRequest) -> CaptureResult:
    nav = await navigate(page, request.url, request.max_wait_time)
    logger.info("[capture] Loaded %s via %s", request.url, nav.strategy)

    if request.wait_for_lazy_load:
        await trigger_lazy_load(page)
    else:
        await page.wait_for_timeout(NO_LAZY_LOAD_WAIT_MS)

    html = await page.content()
    if not html or not html.strip():
        raise EmptyContentError()

    html, css = await collect_stylesheets(page, html)

    screenshot_bytes = await page.screenshot(full_page=True, type="png")
    layout = await extract_layout(page)

    logger.info(
        "[capture] Captured %s: %d chars html, %d chars css, %d headings, %d text blocks",
        request.url, len(html), len(css), len(layout.headings), len(layout.text_blocks),
    )
    return CaptureResult(
        screenshot=encode_screenshot(screenshot_bytes),
        html=html,
        css=css,
        layout=layout,
    )


async def capture_site(request: CaptureRequest | dict) -> CaptureResult:
    """
    Capture the rendered state of a page.

    The URL is validated before any browser work starts. The browser is
    closed on every exit path. Errors other than the service's own are
    reported as a ``CaptureError`` with the underlying message.
    """
    request = _coerce_request(request)
    settings = get_settings()

    logger.info(
        "[capture] Capturing %s (lazy_load=%s, max_wait=%sms)",
        request.url, request.wait_for_lazy_load, request.max_wait_time,
    )

    try:
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=True)
            try:
                context = await browser.new_context(
                    viewport={"width": settings.viewport_width, "height": settings.viewport_height},
                    user_agent=USER_AGENT,
                    extra_http_headers=EXTRA_HEADERS,
                )
                page = await context.new_page()
                return await _capture_page(page, request)
            finally:
                await browser.close()
    except CloneError:
        raise
    except Exception as e:
        logger.exception("[capture] Capture of %s failed", request.url)
        raise CaptureError(str(e) or "Failed to fetch site") from e
