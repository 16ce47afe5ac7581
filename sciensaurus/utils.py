"""Shared utility functions for the Sciensaurus service."""
import json
import re
from typing import Any, Optional, Sequence
from urllib.parse import urlparse

from bs4 import BeautifulSoup

# Probed in order; the first element with enough text wins.
CONTENT_SELECTORS = (
    "article",
    ".article-content",
    ".article-body",
    ".post-content",
    ".entry-content",
    ".content",
    "main",
    "#main",
    "#content",
)

_TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)


def strip_think_blocks(text: str) -> str:
    """Remove <think>...</think> blocks from LLM output (reasoning-model safety net)."""
    return re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL).strip()


def parse_json_response(raw: str) -> Any:
    """Parse JSON from model output, handling code blocks and leading chatter."""
    raw = strip_think_blocks(raw)
    if "```" in raw:
        match = re.search(r"```(?:json)?\s*(.*?)```", raw, re.DOTALL)
        if match:
            raw = match.group(1).strip()
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        match = re.search(r"\{[\s\S]*\}", raw)
        if not match:
            raise
        return json.loads(match.group(0))


def normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def extract_title(html: str) -> Optional[str]:
    """Return the contents of the first <title> tag, or None."""
    match = _TITLE_RE.search(html)
    if not match:
        return None
    title = normalize_whitespace(match.group(1))
    return title or None


def extract_readable_text(
    html: str,
    selectors: Sequence[str] = CONTENT_SELECTORS,
    min_length: int = 200,
) -> str:
    """Extract human-readable body text from raw HTML.

    Probes ``selectors`` in order and returns the text of the first element
    whose text is longer than ``min_length`` characters. Falls back to the
    full <body> text (or the whole document if there is no body).

    Args:
        html: Raw HTML, possibly malformed.
        selectors: CSS selectors to probe, in priority order.
        min_length: Exclusive lower bound on accepted text length.

    Returns:
        Whitespace-normalized text.
    """
    soup = BeautifulSoup(html, "lxml")
    for tag in soup.find_all(["script", "style", "noscript"]):
        tag.decompose()

    for selector in selectors:
        element = soup.select_one(selector)
        if element is None:
            continue
        text = normalize_whitespace(element.get_text(separator=" "))
        if len(text) > min_length:
            return text

    body = soup.body or soup
    return normalize_whitespace(body.get_text(separator=" "))


def truncate(text: str, limit: int, suffix: str = "") -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + suffix


def source_from_url(url: str) -> str:
    """Human-readable source name for an article URL."""
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return "Unknown Source"
    host = host.replace("www.", "")
    if not host:
        return "Unknown Source"
    if "pubmed" in host or "ncbi.nlm.nih.gov" in host:
        return "PubMed"
    if "nature.com" in host:
        return "Nature"
    if "sciencedirect" in host:
        return "ScienceDirect"
    first = host.split(".")[0]
    return first[:1].upper() + first[1:]
