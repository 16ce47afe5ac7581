"""
Summary Generator - structured article summaries from a single LLM call.

The model is asked for a JSON object matching ``SummarizedArticle``; the reply
is parsed and validated with pydantic. Anything that fails to parse or
validate becomes ``Err`` so the caller never sees a partially typed summary.
"""

import json
import logging
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError

from sciensaurus.config import (
    SUMMARY_CONTENT_CHAR_LIMIT,
    SUMMARY_MAX_TOKENS,
    SUMMARY_TEMPERATURE,
)
from sciensaurus.llm import LLMClient
from sciensaurus.pipeline_types import Err, Ok, Result
from sciensaurus.tracing import Trace
from sciensaurus.utils import parse_json_response, truncate

logger = logging.getLogger(__name__)

TRUNCATION_SUFFIX = "... [content truncated due to length]"


class VisualPoint(BaseModel):
    emoji: str
    point: str


class GenderSplit(BaseModel):
    male: Optional[float] = None
    female: Optional[float] = None
    other: Optional[float] = None


class AgeRange(BaseModel):
    range: str
    percentage: float


class Demographics(BaseModel):
    gender: Optional[GenderSplit] = None
    ageRanges: Optional[List[AgeRange]] = None


class CohortAnalysis(BaseModel):
    studyType: Optional[str] = None
    duration: Optional[str] = None
    dateRange: Optional[str] = None
    cohortSize: Optional[int] = None
    demographics: Optional[Demographics] = None
    notes: Optional[List[str]] = None


class SummarizedArticle(BaseModel):
    title: str
    visualSummary: List[VisualPoint] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    cohortAnalysis: CohortAnalysis = Field(default_factory=CohortAnalysis)


SYSTEM_PROMPT = """You are an AI research assistant that helps summarize scientific articles.
Extract key information and provide a concise summary of the scientific article.
Structure your output with sections for Visual Summary, Keywords, and Methodology details.
Be objective and accurate in your analysis.

Respond with a single JSON object matching this schema:
{schema}

- visualSummary: 3-6 key findings, each with one relevant emoji and a one-sentence point
- keywords: 5-10 specific search terms (conditions, interventions, outcomes)
- cohortAnalysis: only fields that the article actually reports; omit unknowns
Output JSON only, no commentary."""


def build_system_prompt() -> str:
    schema = json.dumps(SummarizedArticle.model_json_schema(), indent=2)
    return SYSTEM_PROMPT.format(schema=schema)


def prepare_content(content: str, limit: int = SUMMARY_CONTENT_CHAR_LIMIT) -> str:
    return truncate(content, limit, TRUNCATION_SUFFIX)


class SummaryGenerator:
    def __init__(self, llm: LLMClient):
        self.llm = llm

    async def generate(self, content: str, trace: Optional[Trace] = None) -> Result:
        """Summarize ``content``.

        Returns:
            Ok({"summary": dict, "keywords": list}) or Err(message).
        """
        logger.info(f"Generating summary for content of length: {len(content)}")
        user_prompt = (
            "Please analyze and summarize this scientific article content:\n\n"
            f"{prepare_content(content)}"
        )
        try:
            raw = await self.llm.complete(
                "generate-article-summary",
                build_system_prompt(),
                user_prompt,
                max_tokens=SUMMARY_MAX_TOKENS,
                temperature=SUMMARY_TEMPERATURE,
                json_mode=True,
                trace=trace,
            )
            summary = SummarizedArticle.model_validate(parse_json_response(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Summary response did not match schema: {e}")
            return Err(f"Invalid summary format: {e}")
        except Exception as e:
            logger.error(f"Error generating summary: {e}")
            return Err(str(e) or "Failed to generate summary")

        logger.info("Summary generated successfully")
        data = summary.model_dump(exclude_none=True)
        return Ok({"summary": data, "keywords": list(summary.keywords)})
