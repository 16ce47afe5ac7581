"""
Alternative source search, used when PubMed is unreachable or when a caller
wants a scrapable copy of an article.

Ordered strategy chain, first Ok wins:
1. Tavily web search restricted to academic hosts (needs TAVILY_API_KEY)
2. Curated table of known scrapable sources
3. PMC / DOI identifier patterns in the query
4. Google Scholar search link (always succeeds)

For exact-title lookups the curated table is consulted before Tavily.
"""

import logging
import re
from typing import Dict, List, Optional
from urllib.parse import quote

import httpx

from sciensaurus.config import SEARCH_TIMEOUT, TAVILY_API_KEY, TAVILY_SEARCH_URL
from sciensaurus.pipeline_types import Attempt, Ok, Skip

logger = logging.getLogger(__name__)

ACADEMIC_HOSTS = [
    "ncbi.nlm.nih.gov",
    "pmc.ncbi.nlm.nih.gov",
    "pubmed.ncbi.nlm.nih.gov",
    "sciencedirect.com",
    "springer.com",
    "wiley.com",
    "nature.com",
    "science.org",
    "cell.com",
    "thelancet.com",
    "nejm.org",
    "adsabs.harvard.edu",
    "ui.adsabs.harvard.edu",
    "nasa.gov",
    "biorxiv.org",
    "medrxiv.org",
    "researchgate.net",
    "academia.edu",
    "semanticscholar.org",
    "arxiv.org",
    "journals.plos.org",
    "ssrn.com",
    "agu.org",
    "frontiersin.org",
    "hindawi.com",
    "mdpi.com",
    "sage.com",
    "tand.com",
    "oxford.com",
    "cambridge.org",
]

DOI_RESOLVER_HOSTS = ["doi.org", "dx.doi.org", "crossref.org"]

# Titles mapped to sources known to be scrapable
KNOWN_SOURCES: Dict[str, Dict[str, str]] = {
    "Origin of the Palos Verdes Restraining Bend and Its Implications for the 3D "
    "Geometry of the Fault and Earthquake Hazards in Los Angeles, California": {
        "url": "https://ui.adsabs.harvard.edu/abs/2022BuSSA.112.2689W/abstract",
        "title": "Origin of the Palos Verdes Restraining Bend and Its Implications "
                 "for the 3D Geometry of the Fault...",
    },
}

PMC_ID_RE = re.compile(r"PMC\d+", re.IGNORECASE)
DOI_RE = re.compile(r"10\.\d{4,5}/[a-zA-Z0-9.]+")
_DOI_HINT_RE = re.compile(r"10\.\d{4,5}/")

PARTIAL_MATCH_RATIO = 0.7


def academic_hosts_for(query: str) -> List[str]:
    """Academic host allow-list, extended with DOI resolvers for DOI queries."""
    if "doi:" in query.lower() or _DOI_HINT_RE.search(query):
        return ACADEMIC_HOSTS + DOI_RESOLVER_HOSTS
    return list(ACADEMIC_HOSTS)


def lookup_known_sources(query: str, known: Optional[Dict[str, Dict[str, str]]] = None) -> List[Dict[str, str]]:
    """Curated sources for ``query``: containment match first, then word overlap.

    A partial match needs more than 70% of the query words (counting only
    words longer than three characters as hits) to appear in the title.
    """
    known = KNOWN_SOURCES if known is None else known
    q = query.lower().strip()
    if not q:
        return []
    for title, source in known.items():
        t = title.lower()
        if q == t or q in t or t in q:
            return [{
                "url": source["url"],
                "title": source["title"],
                "content": "This is a curated alternative source for the article.",
            }]

    results = []
    query_words = q.split()
    for title, source in known.items():
        title_words = title.lower().split()
        matches = sum(
            1 for word in query_words
            if len(word) > 3 and any(word in tw for tw in title_words)
        )
        if matches / len(query_words) > PARTIAL_MATCH_RATIO:
            results.append({
                "url": source["url"],
                "title": source["title"],
                "content": "This is a partial match for the requested article.",
            })
    return results


def scholar_link(query: str) -> Dict[str, str]:
    url = query if query.startswith("http") else f"https://scholar.google.com/scholar?q={quote(query, safe='')}"
    return {
        "url": url,
        "title": "Original query or Google Scholar search",
        "content": "No specific alternative source was found, but you can try "
                   "searching Google Scholar for this article.",
    }


class TavilySearchStrategy:
    name = "tavily"

    def __init__(self, http: Optional[httpx.AsyncClient] = None, api_key: str = TAVILY_API_KEY):
        self.http = http
        self.api_key = api_key

    async def attempt(self, query: str, is_exact_title: bool = False) -> Attempt:
        if not self.api_key:
            return Skip("TAVILY_API_KEY not configured")
        payload = {
            "query": f'"{query}"' if is_exact_title else query,
            "search_depth": "advanced",
            "include_domains": academic_hosts_for(query),
            "max_results": 5,
            "include_answer": False,
            "include_raw_content": False,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            if self.http is not None:
                resp = await self.http.post(TAVILY_SEARCH_URL, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=SEARCH_TIMEOUT) as http:
                    resp = await http.post(TAVILY_SEARCH_URL, json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Tavily search failed: {e}")
            return Skip(str(e))

        results = [
            {"url": r.get("url", ""), "title": r.get("title", ""), "content": r.get("content", "")}
            for r in data.get("results", [])
            if r.get("url")
        ]
        if not results:
            return Skip("Tavily returned no results")
        return Ok(results)


class CuratedSourcesStrategy:
    name = "curated"

    def __init__(self, known: Optional[Dict[str, Dict[str, str]]] = None):
        self.known = known

    async def attempt(self, query: str, is_exact_title: bool = False) -> Attempt:
        results = lookup_known_sources(query, self.known)
        return Ok(results) if results else Skip("no curated source")


class IdentifierPatternStrategy:
    name = "identifier"

    async def attempt(self, query: str, is_exact_title: bool = False) -> Attempt:
        results = []
        pmc = PMC_ID_RE.search(query)
        if pmc:
            pmc_id = pmc.group(0)
            results.append({
                "url": f"https://www.ncbi.nlm.nih.gov/pmc/articles/{pmc_id}/",
                "title": f"PubMed Central article {pmc_id}",
                "content": "This is a direct link to the article in PubMed Central.",
            })
        doi = DOI_RE.search(query)
        if doi:
            results.append({
                "url": f"https://doi.org/{doi.group(0)}",
                "title": f"DOI: {doi.group(0)}",
                "content": "This is a direct link to the DOI resolver for this article.",
            })
        return Ok(results) if results else Skip("no PMC or DOI identifier")


class ScholarLinkStrategy:
    name = "scholar"

    async def attempt(self, query: str, is_exact_title: bool = False) -> Attempt:
        return Ok([scholar_link(query)])


class AlternativeSourceFinder:
    """Runs the fallback chain for a free-text or title query."""

    def __init__(self, http: Optional[httpx.AsyncClient] = None, api_key: str = TAVILY_API_KEY,
                 known: Optional[Dict[str, Dict[str, str]]] = None):
        self.tavily = TavilySearchStrategy(http, api_key)
        self.curated = CuratedSourcesStrategy(known)
        self.identifier = IdentifierPatternStrategy()
        self.scholar = ScholarLinkStrategy()

    def strategies(self, is_exact_title: bool) -> List:
        if is_exact_title:
            return [self.curated, self.tavily, self.identifier, self.scholar]
        return [self.tavily, self.curated, self.identifier, self.scholar]

    async def find(self, query: str, is_exact_title: bool = False) -> List[Dict[str, str]]:
        """Return ``[{url, title, content}, ...]``; never empty."""
        logger.info(f"Searching for alternative sources for: {query} (exact title: {is_exact_title})")
        for strategy in self.strategies(is_exact_title):
            outcome = await strategy.attempt(query, is_exact_title)
            if isinstance(outcome, Ok):
                logger.info(f"Alternative sources found via {strategy.name}: {len(outcome.value)}")
                return outcome.value
            logger.info(f"Alternative source strategy {strategy.name} skipped: {outcome.reason}")
        return [scholar_link(query)]
