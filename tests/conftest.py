"""Shared pytest fixtures for the Sciensaurus test suite."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from sciensaurus.llm import LLMClient
from sciensaurus.tracing import Tracer


@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch):
    """Set minimum env vars so modules can be imported without real services."""
    monkeypatch.setenv("MODEL_NAME", "test-model")
    monkeypatch.setenv("LLM_BASE_URL", "http://localhost:9999/v1")
    monkeypatch.setenv("LLM_API_KEY", "NA")
    monkeypatch.setenv("TAVILY_API_KEY", "")
    monkeypatch.setenv("ENABLE_AI_TRACING", "false")


class RecordingTracer(Tracer):
    """Tracer that keeps every trace it starts, for assertions."""

    def __init__(self):
        super().__init__(write_files=False)
        self.traces = []

    def start_trace(self, name):
        trace = super().start_trace(name)
        self.traces.append(trace)
        return trace


@pytest.fixture
def tracer():
    return RecordingTracer()


def llm_response(content):
    """Chat completion object shaped like the openai client's return value."""
    if not isinstance(content, str):
        content = json.dumps(content)
    resp = MagicMock()
    resp.choices = [MagicMock()]
    resp.choices[0].message.content = content
    return resp


@pytest.fixture
def make_llm(tracer):
    """Build an LLMClient whose completions return ``contents`` in order.

    An Exception instance in ``contents`` is raised instead of returned.
    """
    def _make(*contents):
        client = MagicMock()
        effects = [c if isinstance(c, Exception) else llm_response(c) for c in contents]
        client.chat.completions.create = AsyncMock(side_effect=effects)
        return LLMClient(client=client, model="test-model", tracer=tracer)
    return _make


@pytest.fixture
def make_http():
    """Build an httpx.AsyncClient backed by ``handler``; requested URLs are
    recorded on ``client.requested``."""
    def _make(handler):
        requested = []

        def _record(request):
            requested.append(str(request.url))
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(_record))
        client.requested = requested
        return client
    return _make


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


LONG_PARAGRAPH = (
    "Extracorporeal shock wave therapy was compared with corticosteroid injection "
    "in 120 adults with lateral epicondylitis. Pain scores improved in both groups "
    "at six weeks, but only the shock wave group maintained improvement at one year. "
)


@pytest.fixture
def article_html():
    return f"""<html><head><title>Shock Wave Therapy Trial</title>
<script>var tracking = "ignore me";</script></head>
<body>
<nav>Home | About</nav>
<article><h1>Shock Wave Therapy Trial</h1><p>{LONG_PARAGRAPH}</p></article>
<footer>Copyright</footer>
</body></html>"""


@pytest.fixture
def summary_payload():
    return {
        "title": "Shock wave therapy outperforms steroid injection long term",
        "visualSummary": [
            {"emoji": "💪", "point": "Shock wave therapy kept pain low at one year."},
            {"emoji": "💉", "point": "Steroid injection benefits faded after six weeks."},
        ],
        "keywords": ["lateral epicondylitis", "shock wave therapy", "corticosteroid injection"],
        "cohortAnalysis": {
            "studyType": "Randomized controlled trial",
            "duration": "12 months",
            "cohortSize": 120,
            "demographics": {"gender": {"male": 55, "female": 45}},
        },
    }
