"""Type definitions for the Sciensaurus analysis pipeline.

Provides the step cursor enum, the Ok/Err/Skip result types returned across
stage boundaries, and TypedDict interfaces for the JSON payloads exchanged
between pipeline stages and the web layer.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypedDict, TypeVar, Union

T = TypeVar("T")


class StepName(str, Enum):
    """Analysis steps, totally ordered by ``index``."""

    RETRIEVING_CONTENT = "retrievingContent"
    GENERATING_SUMMARY = "generatingSummary"
    EXTRACTING_KEYWORDS = "extractingKeywords"
    SEARCHING_SIMILAR_ARTICLES = "searchingSimilarArticles"
    ASSESSING_RESEARCH = "assessingResearch"
    COMPLETE = "complete"

    @property
    def index(self) -> int:
        return _STEP_INDICES[self]

    @property
    def label(self) -> str:
        return _STEP_LABELS[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> "StepName":
        """Unknown or missing names start from the first step."""
        try:
            return cls(value)
        except ValueError:
            return cls.RETRIEVING_CONTENT


_STEP_INDICES = {step: i for i, step in enumerate(StepName, start=1)}

_STEP_LABELS = {
    StepName.RETRIEVING_CONTENT: "Retrieving article content",
    StepName.GENERATING_SUMMARY: "Generating summary",
    StepName.EXTRACTING_KEYWORDS: "Extracting keywords",
    StepName.SEARCHING_SIMILAR_ARTICLES: "Searching for similar articles",
    StepName.ASSESSING_RESEARCH: "Assessing research quality",
    StepName.COMPLETE: "Analysis complete",
}


def is_step_completed(step: StepName, current: StepName) -> bool:
    return step.index < current.index


def is_current_step(step: StepName, current: StepName) -> bool:
    return step is current


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error: str
    detail: Any = None


@dataclass(frozen=True)
class Skip:
    """Returned by a fallback strategy that does not apply or did not succeed."""

    reason: str = ""


Result = Union[Ok, Err]
Attempt = Union[Ok, Skip]


class Classification(str, Enum):
    SUPPORTING = "Supporting"
    CONTRADICTORY = "Contradictory"
    NEUTRAL = "Neutral"


@dataclass(frozen=True)
class AnalysisRequest:
    """Analyze ``url`` starting at ``step``.

    The optional fields let a client resume a partially completed analysis:
    starting at ``generatingSummary`` needs ``content``, starting at
    ``searchingSimilarArticles`` needs ``keywords``.
    """

    url: str
    step: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    summary: Optional[Dict[str, Any]] = None
    keywords: Optional[List[str]] = None


class ExtractedContent(TypedDict):
    title: str
    content: str
    url: str


class ClassifiedArticle(TypedDict, total=False):
    id: str
    title: str
    url: str
    authors: Optional[str]
    journal: Optional[str]
    pubDate: Optional[str]
    year: Optional[int]
    classification: str
    classificationReason: str
    finding: str


class RelatedResearch(TypedDict, total=False):
    supporting: List[ClassifiedArticle]
    contradictory: List[ClassifiedArticle]
    neutral: List[ClassifiedArticle]
    totalFound: int
    searchKeywords: List[str]
    error: str


class AnalysisResponse(TypedDict, total=False):
    """Cumulative response; ``currentStep`` is always present."""

    currentStep: str
    title: str
    content: str
    summary: Dict[str, Any]
    keywords: List[str]
    relatedResearch: RelatedResearch
    error: str
