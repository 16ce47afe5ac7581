"""
Related-Research Finder - keyword search plus bulk stance classification.

Two network phases:
1. Search PubMed (esearch + esummary) with the article keywords. When PubMed
   is unavailable the alternative-source chain supplies candidates instead.
2. One LLM call classifies every candidate as Supporting, Contradictory or
   Neutral relative to the main article's key findings.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from sciensaurus.config import (
    CLASSIFIER_MAX_TOKENS,
    CLASSIFIER_MODEL,
    CLASSIFIER_TEMPERATURE,
    MAX_SEARCH_KEYWORDS,
    RELATED_RESULTS_LIMIT,
)
from sciensaurus.llm import LLMClient
from sciensaurus.pipeline_types import (
    ClassifiedArticle,
    Classification,
    Err,
    Ok,
    RelatedResearch,
    Result,
)
from sciensaurus.research.alternative_sources import AlternativeSourceFinder
from sciensaurus.research.pubmed_client import PubMedClient, PubMedUnavailableError
from sciensaurus.tracing import Trace
from sciensaurus.utils import parse_json_response, source_from_url

logger = logging.getLogger(__name__)

UNAVAILABLE_REASON = "Classification unavailable"
ERROR_REASON = "Error during classification"
FALLBACK_REASON = "Found via alternative source search; not classified"


class EmptyKeywordsError(ValueError):
    """Raised before any network call when no keywords are supplied."""


CLASSIFY_SYSTEM_PROMPT = """You are a scientific research assistant that analyzes research articles to determine if they support, contradict, or are neutral regarding a main article's findings.

For each article, carefully analyze the title, journal and any specific claims that directly relate to the main article's findings.

Then classify each article as:
- "Supporting" - The article's findings directly support or strengthen the main article's conclusions
- "Contradictory" - The article's findings directly contradict or weaken the main article's conclusions
- "Neutral" - The article's findings neither support nor contradict the main article (e.g., different focus, inconclusive, or tangential)

For each article, provide a brief, one-line reason for your classification."""


def build_classification_prompt(main_title: str, main_findings: Sequence[str],
                                candidates: List[ClassifiedArticle]) -> str:
    lines = [
        "Main Article:",
        f"Title: {main_title}",
        "Key Findings: " + "\n".join(main_findings),
        "",
        "Compare the main article with the following articles and classify each "
        "as Supporting, Contradictory, or Neutral:",
    ]
    for i, article in enumerate(candidates, 1):
        lines.append("")
        lines.append(f"Article {i}:")
        lines.append(f"paperId: {article['id']}")
        lines.append(f"Title: {article['title']}")
        lines.append(f"Journal: {article.get('journal') or 'Not available'}")
    lines.append("")
    lines.append(
        'Return a JSON object with an "articles" array in the same order, where each item contains: '
        'paperId, title, classification (exactly one of "Supporting", "Contradictory", "Neutral"), '
        "classificationReason (a brief explanation)."
    )
    return "\n".join(lines)


def _is_main_article(record: Dict[str, Any], main_title: str, main_url: Optional[str]) -> bool:
    if main_url and record.get("url", "").rstrip("/") == main_url.rstrip("/"):
        return True
    title = (record.get("title") or "").strip().rstrip(".").lower()
    return bool(main_title) and title == main_title.strip().rstrip(".").lower()


def _candidate_from_pubmed(record: Dict[str, Any]) -> ClassifiedArticle:
    return ClassifiedArticle(
        id=record["pmid"],
        title=record["title"],
        url=record["url"],
        authors=record.get("authors"),
        journal=record.get("journal"),
        pubDate=record.get("pubDate"),
        year=record.get("year"),
        classification=Classification.NEUTRAL.value,
        classificationReason=UNAVAILABLE_REASON,
    )


def _candidate_from_alternative(source: Dict[str, str]) -> ClassifiedArticle:
    return ClassifiedArticle(
        id=source["url"],
        title=source.get("title") or source["url"],
        url=source["url"],
        authors=None,
        journal=source_from_url(source["url"]),
        pubDate=None,
        year=None,
        classification=Classification.NEUTRAL.value,
        classificationReason=FALLBACK_REASON,
        finding=source.get("content", ""),
    )


def group_by_classification(articles: List[ClassifiedArticle], total: int,
                            keywords: List[str]) -> RelatedResearch:
    return RelatedResearch(
        supporting=[a for a in articles if a["classification"] == Classification.SUPPORTING.value],
        contradictory=[a for a in articles if a["classification"] == Classification.CONTRADICTORY.value],
        neutral=[a for a in articles if a["classification"] == Classification.NEUTRAL.value],
        totalFound=total,
        searchKeywords=list(keywords),
    )


def upstream_status(error: Exception) -> int:
    """HTTP status for an upstream search failure: 504 for timeouts, else 503."""
    cause = error.__cause__ or error
    if isinstance(cause, httpx.TimeoutException):
        return 504
    return 503


class RelatedResearchFinder:
    def __init__(
        self,
        llm: LLMClient,
        pubmed: Optional[PubMedClient] = None,
        alternatives: Optional[AlternativeSourceFinder] = None,
        max_keywords: int = MAX_SEARCH_KEYWORDS,
        max_results: int = RELATED_RESULTS_LIMIT,
    ):
        self.llm = llm
        self.pubmed = pubmed or PubMedClient()
        self.alternatives = alternatives or AlternativeSourceFinder()
        self.max_keywords = max_keywords
        self.max_results = max_results

    async def find(
        self,
        keywords: Sequence[str],
        main_title: str = "",
        main_findings: Sequence[str] = (),
        classify: bool = True,
        main_url: Optional[str] = None,
        trace: Optional[Trace] = None,
    ) -> Result:
        """Search and classify related research.

        Raises:
            EmptyKeywordsError: when ``keywords`` is empty.
        """
        keywords = [k.strip() for k in keywords if k and k.strip()]
        if not keywords:
            raise EmptyKeywordsError("Keywords are required and must be a non-empty list of strings")

        query = " OR ".join(keywords[:self.max_keywords])
        logger.info(f"Searching related research for: {query}")
        if trace:
            trace.add_event("related_search_started", query=query)

        try:
            search = await self.pubmed.search(query, max_results=self.max_results)
            candidates = [
                _candidate_from_pubmed(r) for r in search["articles"]
                if not _is_main_article(r, main_title, main_url)
            ]
            total = search["count"]
            from_fallback = False
        except PubMedUnavailableError as e:
            logger.warning(f"PubMed unavailable, using alternative sources: {e}")
            if trace:
                trace.add_event("pubmed_unavailable", error=str(e))
            try:
                sources = await self.alternatives.find(" ".join(keywords[:self.max_keywords]))
            except Exception as alt_error:
                logger.error(f"Alternative source search failed: {alt_error}")
                return Err(str(e), detail={"status": upstream_status(e), "searchKeywords": keywords})
            candidates = [_candidate_from_alternative(s) for s in sources]
            total = len(candidates)
            from_fallback = True

        if trace:
            trace.add_event("related_search_completed", count=len(candidates), fallback=from_fallback)

        # Alternative-source hits are never classified, authenticated or not:
        # they stay Neutral with FALLBACK_REASON.
        if classify and candidates and not from_fallback:
            candidates = await self.classify(main_title, main_findings, candidates, trace=trace)
            if trace:
                trace.add_event("classification_completed", count=len(candidates))

        return Ok(group_by_classification(candidates, total, keywords))

    async def classify(self, main_title: str, main_findings: Sequence[str],
                       candidates: List[ClassifiedArticle],
                       trace: Optional[Trace] = None) -> List[ClassifiedArticle]:
        """Classify all candidates in one LLM call; never raises."""
        prompt = build_classification_prompt(main_title, main_findings, candidates)
        try:
            raw = await self.llm.complete(
                "article-classification",
                CLASSIFY_SYSTEM_PROMPT,
                prompt,
                max_tokens=CLASSIFIER_MAX_TOKENS,
                temperature=CLASSIFIER_TEMPERATURE,
                json_mode=True,
                model=CLASSIFIER_MODEL,
                trace=trace,
            )
            data = parse_json_response(raw)
            entries = data.get("articles") if isinstance(data, dict) else None
            if not isinstance(entries, list):
                raise ValueError("classification response has no 'articles' array")
        except Exception as e:
            logger.error(f"Error classifying articles: {e}")
            return [self._with_label(c, Classification.NEUTRAL.value, ERROR_REASON) for c in candidates]

        valid = {c.value for c in Classification}
        by_id = {str(e.get("paperId")): e for e in entries if isinstance(e, dict) and e.get("paperId")}
        classified = []
        for i, candidate in enumerate(candidates):
            entry = by_id.get(candidate["id"])
            # Entries without a paperId are matched by position
            if entry is None and i < len(entries) and isinstance(entries[i], dict) \
                    and not entries[i].get("paperId"):
                entry = entries[i]
            label = (entry or {}).get("classification")
            if label in valid:
                reason = entry.get("classificationReason") or UNAVAILABLE_REASON
                classified.append(self._with_label(candidate, label, reason))
            else:
                classified.append(self._with_label(candidate, Classification.NEUTRAL.value, UNAVAILABLE_REASON))
        return classified

    @staticmethod
    def _with_label(candidate: ClassifiedArticle, label: str, reason: str) -> ClassifiedArticle:
        updated = dict(candidate)
        updated["classification"] = label
        updated["classificationReason"] = reason
        return ClassifiedArticle(**updated)
