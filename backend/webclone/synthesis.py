"""
Clone synthesis: one multimodal model call that turns a captured layout and
screenshot into HTML + CSS.

The layout is cut down to a handful of elements per category to keep the
prompt small, and the response is split on ``<!-- HTML -->`` / ``<!-- CSS -->``
marker comments.
"""

import json
import logging
import re

import anthropic
import httpx

from webclone.config import get_settings
from webclone.exceptions import (
    MissingCredentialError,
    ProviderError,
    SynthesisError,
)
from webclone.image_utils import fit_screenshot, to_data_url
from webclone.models import LayoutSummary, SynthesisRequest, SynthesisResult

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = "You are a helpful assistant that generates HTML and CSS clones of website layouts."

CLONE_INSTRUCTIONS = (
    "You are a web developer assistant. Given the following website screenshot and a summary "
    "of its layout, generate clean, cloneable HTML and CSS that mimics the site's layout and style.\n"
    "- Only output the code, no explanations.\n"
    "- Separate HTML and CSS clearly, e.g. with <!-- HTML --> and <!-- CSS --> comments.\n"
    "- Use semantic HTML where possible.\n"
    "- Inline images with placeholders if needed.\n\n"
)

HTML_SEGMENT_RE = re.compile(r"<!--\s*HTML\s*-->([\s\S]*?)(?:<!--\s*CSS\s*-->|\Z)", re.IGNORECASE)
CSS_SEGMENT_RE = re.compile(r"<!--\s*CSS\s*-->([\s\S]*)", re.IGNORECASE)

PROVIDER_LABELS = {"openai": "OpenAI", "anthropic": "Anthropic"}


def build_prompt(layout: LayoutSummary) -> str:
    layout_summary = json.dumps(layout.model_dump(by_alias=True, exclude_none=True), indent=2)
    return CLONE_INSTRUCTIONS + "Layout summary:\n" + layout_summary + "\n\nOutput:"


def parse_clone_output(content: str) -> SynthesisResult:
    """
    Split raw model output into HTML and CSS.

    Without an HTML marker the whole output is taken as HTML, so a model that
    ignores the format still yields something usable.
    """
    html_match = HTML_SEGMENT_RE.search(content)
    css_match = CSS_SEGMENT_RE.search(content)
    return SynthesisResult(
        html=html_match.group(1).strip() if html_match else content.strip(),
        css=css_match.group(1).strip() if css_match else "",
        raw=content,
    )


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

def resolve_api_key(explicit: str | None = None) -> str:
    """Per-request key first, then the configured default for the active provider."""
    if explicit:
        return explicit
    settings = get_settings()
    provider = settings.llm_provider.lower()
    key = settings.anthropic_api_key if provider == "anthropic" else settings.openai_api_key
    if not key:
        raise MissingCredentialError(f"Missing {PROVIDER_LABELS.get(provider, 'OpenAI')} API key")
    return key


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

async def call_openai(
    api_key: str,
    prompt: str,
    screenshot_b64: str,
    model: str,
    max_tokens: int = 2048,
    temperature: float = 0.2,
    client: httpx.AsyncClient | None = None,
) -> str:
    """
    Call an OpenAI-compatible chat completions API with text + image, return raw content.

    Uses ``client`` when given, otherwise opens a short-lived one.
    """
    settings = get_settings()

    messages = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": to_data_url(screenshot_b64)}},
            ],
        },
    ]

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    body = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
        "temperature": temperature,
    }

    url = settings.openai_base_url.rstrip("/") + "/chat/completions"
    if client is None:
        async with httpx.AsyncClient(timeout=settings.llm_timeout) as own_client:
            resp = await own_client.post(url, headers=headers, json=body)
    else:
        resp = await client.post(url, headers=headers, json=body)

    try:
        data = resp.json()
    except ValueError:
        raise ProviderError(
            f"OpenAI non-JSON response (HTTP {resp.status_code}): {resp.text[:300]}"
        )

    if resp.status_code != 200:
        err = ""
        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            err = data["error"].get("message", "")
        raise ProviderError(err or f"OpenAI API error ({resp.status_code}): {resp.text[:300]}")

    choices = data.get("choices", []) if isinstance(data, dict) else []
    if not choices:
        raise ProviderError("No choices in OpenAI response")

    return choices[0].get("message", {}).get("content") or ""


def _anthropic_error_message(e: anthropic.APIError) -> str:
    body = getattr(e, "body", None)
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        message = body["error"].get("message")
        if message:
            return message
    return e.message


async def call_anthropic(
    api_key: str,
    prompt: str,
    screenshot_b64: str,
    model: str,
    max_tokens: int = 2048,
    temperature: float = 0.2,
) -> str:
    client = anthropic.AsyncAnthropic(api_key=api_key, timeout=get_settings().llm_timeout)
    content = [
        {
            "type": "image",
            "source": {"type": "base64", "media_type": "image/png", "data": screenshot_b64},
        },
        {"type": "text", "text": prompt},
    ]
    try:
        message = await client.messages.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": content}],
        )
    except anthropic.APIError as e:
        raise ProviderError(_anthropic_error_message(e)) from e

    return "".join(block.text for block in message.content if block.type == "text")


async def call_model(
    api_key: str,
    prompt: str,
    screenshot_b64: str,
    client: httpx.AsyncClient | None = None,
) -> str:
    """Send the single clone request to the configured provider."""
    settings = get_settings()
    provider = settings.llm_provider.lower()

    if provider == "openai":
        return await call_openai(
            api_key, prompt, screenshot_b64,
            model=settings.openai_model,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
            client=client,
        )
    if provider == "anthropic":
        return await call_anthropic(
            api_key, prompt, screenshot_b64,
            model=settings.anthropic_model,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
        )
    raise SynthesisError(f"Unknown LLM provider: {settings.llm_provider}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

async def synthesize_clone(
    request: SynthesisRequest,
    client: httpx.AsyncClient | None = None,
) -> SynthesisResult:
    """
    Generate an HTML/CSS clone from a captured layout and screenshot.

    The credential is resolved before anything else, so a missing key never
    reaches the network. Exactly one model call is made, with no retry.
    """
    settings = get_settings()
    api_key = resolve_api_key(request.api_key)

    layout = request.layout.truncated(settings.layout_item_limit)
    prompt = build_prompt(layout)

    logger.info(
        "[synthesis] Calling %s (%d prompt chars)", settings.llm_provider, len(prompt)
    )
    try:
        screenshot = fit_screenshot(request.screenshot, max_dim=settings.max_image_dimension)
        content = await call_model(api_key, prompt, screenshot, client=client)
    except SynthesisError as e:
        logger.error("[synthesis] Model call failed: %s", e.message)
        raise
    except Exception as e:
        logger.exception("[synthesis] Model call failed")
        raise SynthesisError(str(e) or "Failed to generate code") from e

    result = parse_clone_output(content)
    logger.info("[synthesis] Generated %d chars html, %d chars css", len(result.html), len(result.css))
    return result
