"""Tests for sciensaurus/research/alternative_sources.py -- fallback chain ordering and lookups."""

import asyncio
import json

import httpx

from sciensaurus.pipeline_types import Ok, Skip
from sciensaurus.research.alternative_sources import (
    ACADEMIC_HOSTS,
    AlternativeSourceFinder,
    IdentifierPatternStrategy,
    academic_hosts_for,
    lookup_known_sources,
    scholar_link,
)

PALOS_TITLE = (
    "Origin of the Palos Verdes Restraining Bend and Its Implications for the 3D "
    "Geometry of the Fault and Earthquake Hazards in Los Angeles, California"
)


class TestAcademicHosts:

    def test_plain_query(self):
        assert academic_hosts_for("tennis elbow") == ACADEMIC_HOSTS

    def test_doi_query_adds_resolvers(self):
        hosts = academic_hosts_for("see 10.1038/nature12373")
        assert hosts[-3:] == ["doi.org", "dx.doi.org", "crossref.org"]

    def test_doi_prefix_adds_resolvers(self):
        assert "doi.org" in academic_hosts_for("DOI: something")


class TestKnownSources:

    def test_exact_title(self):
        results = lookup_known_sources(PALOS_TITLE)
        assert len(results) == 1
        assert results[0]["url"] == "https://ui.adsabs.harvard.edu/abs/2022BuSSA.112.2689W/abstract"

    def test_truncated_title_is_contained(self):
        results = lookup_known_sources("Origin of the Palos Verdes Restraining Bend")
        assert results[0]["content"] == "This is a curated alternative source for the article."

    def test_partial_word_overlap(self):
        results = lookup_known_sources("Palos Verdes restraining geometry earthquake hazards")
        assert len(results) == 1
        assert results[0]["content"] == "This is a partial match for the requested article."

    def test_unrelated_query(self):
        assert lookup_known_sources("tennis elbow shock wave") == []

    def test_empty_query(self):
        assert lookup_known_sources("   ") == []


class TestIdentifierPatterns:

    def test_pmc_id(self):
        outcome = asyncio.run(IdentifierPatternStrategy().attempt("full text PMC1234567 please"))
        assert outcome.value[0]["url"] == "https://www.ncbi.nlm.nih.gov/pmc/articles/PMC1234567/"

    def test_doi(self):
        outcome = asyncio.run(IdentifierPatternStrategy().attempt("DOI: 10.1016/j.cell.2020.01.001"))
        assert outcome.value[0]["url"] == "https://doi.org/10.1016/j.cell.2020.01.001"

    def test_no_identifier_skips(self):
        outcome = asyncio.run(IdentifierPatternStrategy().attempt("tennis elbow"))
        assert isinstance(outcome, Skip)


class TestScholarLink:

    def test_query_is_encoded(self):
        assert scholar_link("tennis elbow")["url"] == "https://scholar.google.com/scholar?q=tennis%20elbow"

    def test_url_query_passed_through(self):
        assert scholar_link("https://example.com/x")["url"] == "https://example.com/x"


class TestFinderChain:

    def test_without_tavily_key_falls_to_scholar(self, make_http):
        http = make_http(lambda r: httpx.Response(500))
        results = asyncio.run(AlternativeSourceFinder(http=http, api_key="").find("tennis elbow"))
        assert len(results) == 1
        assert results[0]["url"].startswith("https://scholar.google.com/")
        assert http.requested == []

    def test_tavily_results_used(self, make_http):
        seen = {}

        def handler(request):
            seen["payload"] = json.loads(request.content)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"results": [
                {"url": "https://www.nature.com/articles/x", "title": "X", "content": "About X"},
            ]})

        finder = AlternativeSourceFinder(http=make_http(handler), api_key="tvly-test")
        results = asyncio.run(finder.find("10.1038/x123 shock wave", is_exact_title=False))

        assert results == [{"url": "https://www.nature.com/articles/x", "title": "X", "content": "About X"}]
        assert seen["auth"] == "Bearer tvly-test"
        assert seen["payload"]["query"] == "10.1038/x123 shock wave"
        assert seen["payload"]["search_depth"] == "advanced"
        assert seen["payload"]["max_results"] == 5
        assert "dx.doi.org" in seen["payload"]["include_domains"]

    def test_exact_title_is_quoted(self, make_http):
        seen = {}

        def handler(request):
            seen["payload"] = json.loads(request.content)
            return httpx.Response(200, json={"results": [{"url": "https://arxiv.org/abs/1", "title": "T"}]})

        finder = AlternativeSourceFinder(http=make_http(handler), api_key="tvly-test")
        asyncio.run(finder.find("Some Paper Title", is_exact_title=True))
        assert seen["payload"]["query"] == '"Some Paper Title"'

    def test_exact_title_checks_curated_before_tavily(self, make_http):
        http = make_http(lambda r: httpx.Response(200, json={"results": []}))
        finder = AlternativeSourceFinder(http=http, api_key="tvly-test")
        results = asyncio.run(finder.find(PALOS_TITLE, is_exact_title=True))
        assert "adsabs" in results[0]["url"]
        assert http.requested == []

    def test_tavily_failure_falls_through_to_identifier(self, make_http):
        http = make_http(lambda r: httpx.Response(502))
        finder = AlternativeSourceFinder(http=http, api_key="tvly-test")
        results = asyncio.run(finder.find("PMC7654321"))
        assert len(http.requested) == 1
        assert results[0]["title"] == "PubMed Central article PMC7654321"

    def test_tavily_empty_results_fall_through(self, make_http):
        http = make_http(lambda r: httpx.Response(200, json={"results": []}))
        finder = AlternativeSourceFinder(http=http, api_key="tvly-test")
        results = asyncio.run(finder.find("obscure topic"))
        assert results[0]["url"].startswith("https://scholar.google.com/")

    def test_strategy_results_are_ok(self):
        outcome = asyncio.run(IdentifierPatternStrategy().attempt("PMC1"))
        assert isinstance(outcome, Ok)
