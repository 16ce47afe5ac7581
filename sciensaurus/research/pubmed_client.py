"""PubMed E-utilities search (esearch + esummary, JSON mode)."""

import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from sciensaurus.config import (
    PUBMED_API_KEY,
    PUBMED_ARTICLE_URL,
    PUBMED_BASE_URL,
    PUBMED_TIMEOUT,
    USER_AGENT,
)

logger = logging.getLogger(__name__)


class PubMedUnavailableError(Exception):
    """E-utilities could not be reached or answered with a non-2xx status."""


def _year_from_pubdate(pubdate: str) -> Optional[int]:
    match = re.match(r"(\d{4})", pubdate or "")
    return int(match.group(1)) if match else None


class PubMedClient:
    """Search PubMed via NCBI E-utilities (no API key needed for <3 req/sec)."""

    def __init__(self, http: Optional[httpx.AsyncClient] = None, api_key: str = PUBMED_API_KEY):
        self.http = http
        self.api_key = api_key

    def _params(self, **params) -> dict:
        if self.api_key:
            params["api_key"] = self.api_key
        return params

    async def _get_json(self, http: httpx.AsyncClient, endpoint: str, params: dict) -> dict:
        try:
            resp = await http.get(f"{PUBMED_BASE_URL}/{endpoint}", params=params)
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise PubMedUnavailableError(f"PubMed {endpoint} failed: {e}") from e

    async def search(self, query: str, max_results: int = 10) -> Dict[str, Any]:
        """Run esearch then esummary for ``query``.

        Returns:
            {"count": int, "articles": [record, ...]} in esearch relevance order.
            Each record has pmid, title, authors, journal, pubDate, year, url.

        Raises:
            PubMedUnavailableError: on network error, non-2xx or unreadable JSON.
        """
        if self.http is not None:
            return await self._search(self.http, query, max_results)
        async with httpx.AsyncClient(
            timeout=PUBMED_TIMEOUT, headers={"User-Agent": USER_AGENT}
        ) as http:
            return await self._search(http, query, max_results)

    async def _search(self, http: httpx.AsyncClient, query: str, max_results: int) -> Dict[str, Any]:
        data = await self._get_json(http, "esearch.fcgi", self._params(
            db="pubmed", term=query, retmax=max_results, retmode="json", sort="relevance",
        ))
        search_result = data.get("esearchresult", {})
        id_list = search_result.get("idlist", [])
        try:
            count = int(search_result.get("count", len(id_list)))
        except (TypeError, ValueError):
            count = len(id_list)
        logger.info(f"PubMed esearch returned {len(id_list)} IDs for query: {query[:80]}")
        if not id_list:
            return {"count": count, "articles": []}

        data = await self._get_json(http, "esummary.fcgi", self._params(
            db="pubmed", id=",".join(id_list), retmode="json",
        ))
        result = data.get("result", {})
        articles = []
        for pmid in id_list:
            doc = result.get(pmid)
            if not doc or "error" in doc:
                continue
            articles.append(self._normalize_summary(pmid, doc))
        return {"count": count, "articles": articles}

    @staticmethod
    def _normalize_summary(pmid: str, doc: dict) -> Dict[str, Any]:
        authors = [a.get("name", "") for a in doc.get("authors", []) if a.get("name")]
        pubdate = doc.get("pubdate", "")
        return {
            "pmid": pmid,
            "title": (doc.get("title") or "").strip(),
            "authors": ", ".join(authors) if authors else None,
            "journal": doc.get("fulljournalname") or doc.get("source") or None,
            "pubDate": pubdate or None,
            "year": _year_from_pubdate(pubdate),
            "url": f"{PUBMED_ARTICLE_URL}/{pmid}/",
        }
