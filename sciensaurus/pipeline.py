"""
Analysis pipeline - runs the four stages in order and tracks the step cursor.

    extract content -> generate summary -> (keywords) -> related research -> complete

``PipelineState`` is an immutable snapshot; ``advance`` produces the next
snapshot from a stage result and never moves the cursor backwards. A run can
start at any step, with earlier stage outputs supplied by the caller.
"""

import logging
import sqlite3
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from sciensaurus.pipeline_types import (
    AnalysisRequest,
    AnalysisResponse,
    ClassifiedArticle,
    Err,
    Ok,
    RelatedResearch,
    Result,
    StepName,
)
from sciensaurus.research.content_extractor import ContentExtractor
from sciensaurus.research.related_research import RelatedResearchFinder
from sciensaurus.research.summary_generator import SummaryGenerator
from sciensaurus.tracing import Trace, Tracer

logger = logging.getLogger(__name__)

PUBLIC_DEFAULT_FINDING = "Provides related evidence or context to this research."
PUBLIC_DEFAULT_JOURNAL = "Unknown Journal"


@dataclass(frozen=True)
class PipelineState:
    step: StepName = StepName.RETRIEVING_CONTENT
    fields: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_response(self) -> AnalysisResponse:
        response = AnalysisResponse(currentStep=self.step.value, **self.fields)
        if self.error is not None:
            response["error"] = self.error
        return response


def advance(state: PipelineState, result: Result, next_step: StepName) -> PipelineState:
    """Apply a stage result to ``state``.

    Err records the error and keeps the current step. Ok merges its fields
    and moves the cursor to ``next_step`` unless the cursor is already past it.
    """
    if isinstance(result, Err):
        return replace(state, error=result.error)
    step = next_step if next_step.index > state.step.index else state.step
    return replace(state, step=step, fields={**state.fields, **(result.value or {})})


def initial_state(request: AnalysisRequest) -> PipelineState:
    fields = {
        name: value
        for name, value in (
            ("title", request.title),
            ("content", request.content),
            ("summary", request.summary),
            ("keywords", request.keywords),
        )
        if value is not None
    }
    return PipelineState(step=StepName.parse(request.step), fields=fields)


def to_public_research(research: RelatedResearch) -> RelatedResearch:
    """Every article found goes under ``supporting``; ``contradictory`` stays empty."""
    supporting: List[ClassifiedArticle] = []
    for bucket in ("supporting", "contradictory", "neutral"):
        for article in research.get(bucket, []):
            if not (article.get("title") and article.get("url")):
                continue
            supporting.append(ClassifiedArticle(
                title=article["title"],
                url=article["url"],
                journal=article.get("journal") or PUBLIC_DEFAULT_JOURNAL,
                year=article.get("year"),
                finding=article.get("finding") or PUBLIC_DEFAULT_FINDING,
            ))
    return RelatedResearch(
        supporting=supporting,
        contradictory=[],
        totalFound=len(supporting),
        searchKeywords=list(research.get("searchKeywords", [])),
    )


def research_failed(state: PipelineState) -> bool:
    research = state.fields.get("relatedResearch") or {}
    return "error" in research


def key_findings(summary: Optional[Dict[str, Any]]) -> List[str]:
    if not summary:
        return []
    return [p["point"] for p in summary.get("visualSummary", []) if p.get("point")]


def storage_payload(url: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    summary = fields.get("summary") or {}
    return {
        "url": url,
        "title": summary.get("title") or fields.get("title") or url,
        "summary": "\n".join(key_findings(summary)),
        "visual_summary": summary.get("visualSummary", []),
        "keywords": fields.get("keywords", []),
        "study_metadata": summary.get("cohortAnalysis", {}),
        "related_research": fields.get("relatedResearch"),
        "raw_content": fields.get("content"),
    }


class AnalysisPipeline:
    """Wires the stages together; one instance can serve many requests.

    Args:
        extractor: Content Extractor stage.
        summarizer: Summary Generator stage.
        finder: Related-Research Finder stage.
        tracer: Receives one trace per run.
        store: Optional ``ArticleStore``; used only by authenticated runs that
            finish without error.
    """

    def __init__(
        self,
        extractor: ContentExtractor,
        summarizer: SummaryGenerator,
        finder: RelatedResearchFinder,
        tracer: Optional[Tracer] = None,
        store=None,
    ):
        self.extractor = extractor
        self.summarizer = summarizer
        self.finder = finder
        self.tracer = tracer or Tracer()
        self.store = store

    async def run(self, request: AnalysisRequest, public: bool = False,
                  user_id: Optional[str] = None) -> PipelineState:
        trace = self.tracer.start_trace("public-analyze" if public else "analyze")
        trace.add_event("request-received", url=request.url, step=request.step)
        state = initial_state(request)
        start = state.step.index

        try:
            state = await self._run_stages(request, state, start, public, trace)
        except Exception as e:
            logger.error(f"Unexpected pipeline error for {request.url}: {e}")
            trace.end(error=str(e) or "Unknown error")
            return replace(state, error="An unexpected error occurred")

        if state.failed:
            trace.end(error=state.error)
            return state

        if not public and self.store is not None:
            self._persist(request.url, state, user_id, trace)
        trace.end(success=True)
        return state

    async def _run_stages(self, request: AnalysisRequest, state: PipelineState, start: int,
                          public: bool, trace: Trace) -> PipelineState:
        if start <= StepName.RETRIEVING_CONTENT.index:
            trace.add_event("extract-content-started")
            result = await self.extractor.extract(request.url, trace=trace)
            trace.add_event("extract-content-completed", success=isinstance(result, Ok))
            if isinstance(result, Ok):
                result = Ok({"title": result.value["title"], "content": result.value["content"]})
            state = advance(state, result, StepName.GENERATING_SUMMARY)
            if state.failed:
                return state

        if start <= StepName.GENERATING_SUMMARY.index and state.fields.get("content"):
            trace.add_event("generate-summary-started")
            result = await self.summarizer.generate(state.fields["content"], trace=trace)
            trace.add_event("generate-summary-completed", success=isinstance(result, Ok))
            state = advance(state, result, StepName.EXTRACTING_KEYWORDS)
            if state.failed:
                return state

        # Keywords come out of the summary call; this step only moves the cursor.
        if start <= StepName.EXTRACTING_KEYWORDS.index and state.fields.get("keywords") is not None:
            state = advance(state, Ok({}), StepName.SEARCHING_SIMILAR_ARTICLES)

        keywords = state.fields.get("keywords") or []
        if start <= StepName.SEARCHING_SIMILAR_ARTICLES.index and keywords:
            trace.add_event("search-related-research-started")
            summary = state.fields.get("summary") or {}
            result = await self.finder.find(
                keywords,
                main_title=summary.get("title") or state.fields.get("title", ""),
                main_findings=key_findings(summary),
                classify=not public,
                main_url=request.url,
                trace=trace,
            )
            if isinstance(result, Err):
                trace.add_event("search-related-research-failed", error=result.error)
                research = RelatedResearch(error=result.error, searchKeywords=list(keywords))
                return advance(state, Ok({"relatedResearch": research}), StepName.COMPLETE)

            research = to_public_research(result.value) if public else result.value
            trace.add_event("search-related-research-completed", totalFound=research.get("totalFound", 0))
            state = advance(state, Ok({"relatedResearch": research}), StepName.ASSESSING_RESEARCH)

        if start <= StepName.ASSESSING_RESEARCH.index:
            state = advance(state, Ok({}), StepName.COMPLETE)
        return state

    def _persist(self, url: str, state: PipelineState, user_id: Optional[str], trace: Trace) -> None:
        if state.step is not StepName.COMPLETE or "summary" not in state.fields:
            return
        # A failed research stage still completes the response but is not saved
        if research_failed(state):
            trace.add_event("store-article-skipped", reason="related research failed")
            return
        try:
            stored = self.store.store_article_summary(storage_payload(url, state.fields), user_id=user_id)
        except (sqlite3.Error, ValueError) as e:
            logger.error(f"Failed to store article summary for {url}: {e}")
            trace.add_event("store-article-failed", error=str(e))
            return
        trace.add_event("store-article-completed", articleSummaryId=stored["articleSummaryId"])
