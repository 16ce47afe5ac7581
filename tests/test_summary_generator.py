"""Tests for sciensaurus/research/summary_generator.py"""

import asyncio
import json

from sciensaurus.pipeline_types import Err, Ok
from sciensaurus.research.summary_generator import (
    TRUNCATION_SUFFIX,
    SummaryGenerator,
    prepare_content,
)


class TestPrepareContent:

    def test_short_content_unchanged(self):
        assert prepare_content("abc", limit=10) == "abc"

    def test_long_content_truncated_with_suffix(self):
        out = prepare_content("x" * 20, limit=10)
        assert out == "x" * 10 + TRUNCATION_SUFFIX


class TestGenerate:

    def test_valid_summary(self, make_llm, summary_payload):
        llm = make_llm(summary_payload)
        result = asyncio.run(SummaryGenerator(llm).generate("article text"))
        assert isinstance(result, Ok)
        assert result.value["keywords"] == summary_payload["keywords"]
        summary = result.value["summary"]
        assert summary["title"] == summary_payload["title"]
        assert summary["visualSummary"][0]["emoji"] == "💪"
        assert summary["cohortAnalysis"]["cohortSize"] == 120

    def test_call_parameters(self, make_llm, summary_payload):
        llm = make_llm(summary_payload)
        asyncio.run(SummaryGenerator(llm).generate("article text"))
        kwargs = llm.client.chat.completions.create.call_args.kwargs
        assert kwargs["temperature"] == 0.5
        assert kwargs["max_tokens"] == 2000
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][0]["role"] == "system"
        assert "visualSummary" in kwargs["messages"][0]["content"]

    def test_long_content_is_truncated_in_prompt(self, make_llm, summary_payload):
        llm = make_llm(summary_payload)
        asyncio.run(SummaryGenerator(llm).generate("y" * 20_000))
        user_prompt = llm.client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        assert user_prompt.endswith("y" * 15_000 + TRUNCATION_SUFFIX)
        assert "y" * 15_001 not in user_prompt

    def test_code_fenced_reply_is_accepted(self, make_llm, summary_payload):
        llm = make_llm("```json\n" + json.dumps(summary_payload) + "\n```")
        result = asyncio.run(SummaryGenerator(llm).generate("text"))
        assert isinstance(result, Ok)

    def test_keywords_are_not_deduplicated(self, make_llm, summary_payload):
        summary_payload["keywords"] = ["elbow", "elbow", "Elbow"]
        result = asyncio.run(SummaryGenerator(make_llm(summary_payload)).generate("text"))
        assert result.value["keywords"] == ["elbow", "elbow", "Elbow"]

    def test_invalid_json_is_err(self, make_llm):
        result = asyncio.run(SummaryGenerator(make_llm("not json at all")).generate("text"))
        assert isinstance(result, Err)

    def test_schema_mismatch_is_err(self, make_llm):
        result = asyncio.run(
            SummaryGenerator(make_llm({"visualSummary": "oops", "keywords": []})).generate("text")
        )
        assert isinstance(result, Err)
        assert "Invalid summary format" in result.error

    def test_llm_failure_is_err(self, make_llm):
        result = asyncio.run(SummaryGenerator(make_llm(RuntimeError("rate limited"))).generate("text"))
        assert isinstance(result, Err)
        assert result.error == "rate limited"

    def test_llm_call_added_to_request_trace(self, make_llm, summary_payload, tracer):
        trace = tracer.start_trace("analyze")
        asyncio.run(SummaryGenerator(make_llm(summary_payload)).generate("text", trace=trace))
        assert trace.event_names() == ["ai-call-completed"]
        assert trace.events[0].data["call"] == "generate-article-summary"
