"""
Article content extraction with an ordered source fallback chain:
1. PubMed Central full-text mirror (PubMed URLs only)
2. NCBI EFetch XML record combined with the PubMed page (PubMed URLs only)
3. Generic page fetch with selector-probing text extraction

Each strategy returns Ok(ExtractedContent) or Skip(reason); the first Ok wins.
The extractor never raises: anything left over becomes Err.
"""

import logging
import re
from typing import List, Optional
from urllib.parse import urlparse

import defusedxml.ElementTree as ET
import httpx

from sciensaurus.config import (
    MIN_SELECTOR_TEXT_LENGTH,
    PMC_MIRROR_URL,
    PUBMED_API_KEY,
    PUBMED_BASE_URL,
    SCRAPING_TIMEOUT,
    USER_AGENT,
)
from sciensaurus.pipeline_types import Attempt, Err, ExtractedContent, Ok, Result, Skip
from sciensaurus.tracing import Trace
from sciensaurus.utils import extract_readable_text, extract_title, normalize_whitespace

logger = logging.getLogger(__name__)

_PMID_PATH_RE = re.compile(r"/(\d+)/?$")


def detect_pmid(url: str) -> Optional[str]:
    """Return the PMID of a pubmed.ncbi.nlm.nih.gov article URL, else None."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if "pubmed.ncbi.nlm.nih.gov" not in (parsed.hostname or ""):
        return None
    match = _PMID_PATH_RE.search(parsed.path)
    return match.group(1) if match else None


def extract_xml_title(xml_text: str) -> Optional[str]:
    match = re.search(r"<ArticleTitle>(.*?)</ArticleTitle>", xml_text, re.DOTALL)
    return normalize_whitespace(match.group(1)) if match else None


def extract_text_from_xml(xml_text: str) -> str:
    """Readable text from a PubMed EFetch record (title, abstract, keywords)."""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        logger.warning(f"EFetch XML parse error: {e}")
        return ""
    parts = []
    for elem in root.iter():
        tag = elem.tag.split("}")[-1] if "}" in elem.tag else elem.tag
        if tag in ("ArticleTitle", "AbstractText", "Keyword", "Title"):
            text = normalize_whitespace("".join(elem.itertext()))
            if not text:
                continue
            label = elem.get("Label")
            parts.append(f"{label}: {text}" if label else text)
    return "\n\n".join(parts)


def _ok(title: str, content: str, url: str) -> Ok:
    return Ok(ExtractedContent(title=title, content=content, url=url))


class PmcMirrorStrategy:
    """Full text from the PubMed Central mirror of a PubMed article."""

    name = "pmc"

    async def attempt(self, url: str, http: httpx.AsyncClient) -> Attempt:
        pmid = detect_pmid(url)
        if not pmid:
            return Skip("not a PubMed article URL")
        pmc_url = f"{PMC_MIRROR_URL}/{pmid}/"
        logger.info(f"Attempting to fetch full text from PMC: {pmc_url}")
        try:
            resp = await http.get(pmc_url)
        except httpx.HTTPError as e:
            logger.warning(f"Error fetching from PMC for PMID {pmid}: {e}")
            return Skip(str(e))
        if not resp.is_success:
            return Skip(f"PMC returned {resp.status_code}")
        html = resp.text
        logger.info(f"Fetched PMC content, length: {len(html)} characters")
        return _ok(
            extract_title(html) or pmc_url,
            extract_readable_text(html, min_length=MIN_SELECTOR_TEXT_LENGTH),
            pmc_url,
        )


class EFetchStrategy:
    """Structured EFetch XML record merged with the PubMed abstract page."""

    name = "efetch"

    def __init__(self, api_key: str = PUBMED_API_KEY):
        self.api_key = api_key

    async def attempt(self, url: str, http: httpx.AsyncClient) -> Attempt:
        pmid = detect_pmid(url)
        if not pmid:
            return Skip("not a PubMed article URL")
        params = {"db": "pubmed", "id": pmid, "retmode": "xml"}
        if self.api_key:
            params["api_key"] = self.api_key
        try:
            xml_resp = await http.get(f"{PUBMED_BASE_URL}/efetch.fcgi", params=params)
            if not xml_resp.is_success:
                return Skip(f"EFetch returned {xml_resp.status_code}")
            html_resp = await http.get(url)
            if not html_resp.is_success:
                return Skip(f"PubMed page returned {html_resp.status_code}")
        except httpx.HTTPError as e:
            logger.warning(f"Error fetching from EFetch API for PMID {pmid}: {e}")
            return Skip(str(e))

        xml_text, html = xml_resp.text, html_resp.text
        title = extract_title(html) or extract_xml_title(xml_text) or url
        html_text = extract_readable_text(html, min_length=MIN_SELECTOR_TEXT_LENGTH)
        content = "\n\n".join(p for p in (html_text, extract_text_from_xml(xml_text)) if p)
        return _ok(title, content, url)


class GenericPageStrategy:
    """Plain page fetch; applies to any URL."""

    name = "generic"

    async def attempt(self, url: str, http: httpx.AsyncClient) -> Attempt:
        resp = await http.get(url)
        if not resp.is_success:
            return Skip(f"Failed to fetch article: {resp.status_code} {resp.reason_phrase}")
        html = resp.text
        logger.info(f"Fetched article, length: {len(html)} characters")
        return _ok(
            extract_title(html) or url,
            extract_readable_text(html, min_length=MIN_SELECTOR_TEXT_LENGTH),
            url,
        )


def default_strategies() -> List:
    return [PmcMirrorStrategy(), EFetchStrategy(), GenericPageStrategy()]


class ContentExtractor:
    """Fetch a URL and locate its title and readable body text.

    Usage:
        async with ContentExtractor() as extractor:
            result = await extractor.extract(url)
    """

    def __init__(self, http: Optional[httpx.AsyncClient] = None, strategies: Optional[List] = None):
        self.http = http
        self._should_close = http is None
        self.strategies = strategies if strategies is not None else default_strategies()

    @staticmethod
    def _new_client() -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=SCRAPING_TIMEOUT,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        )

    async def __aenter__(self):
        if self.http is None:
            self.http = self._new_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._should_close and self.http:
            await self.http.aclose()
            self.http = None

    async def extract(self, url: str, trace: Optional[Trace] = None) -> Result:
        logger.info(f"Extracting content from URL: {url}")
        if self.http is not None:
            return await self._run_chain(url, self.http, trace)
        # One client per call when not used as a context manager
        async with self._new_client() as http:
            return await self._run_chain(url, http, trace)

    async def _run_chain(self, url: str, http: httpx.AsyncClient, trace: Optional[Trace] = None) -> Result:
        reason = "No content source succeeded"
        try:
            for strategy in self.strategies:
                outcome = await strategy.attempt(url, http)
                if isinstance(outcome, Ok):
                    logger.info(f"Content extracted via {strategy.name} strategy")
                    if trace:
                        trace.add_event("extract-strategy-succeeded", strategy=strategy.name)
                    return outcome
                logger.info(f"Strategy {strategy.name} skipped: {outcome.reason}")
                if trace:
                    trace.add_event("extract-strategy-skipped", strategy=strategy.name, reason=outcome.reason)
                reason = outcome.reason or reason
        except Exception as e:
            logger.error(f"Error extracting content from {url}: {e}")
            return Err(str(e) or "Failed to extract content", detail={"url": url})
        return Err(reason, detail={"url": url})
