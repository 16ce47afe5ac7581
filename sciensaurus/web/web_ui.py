#!/usr/bin/env python3
"""
Web API and dashboard for Sciensaurus.
Exposes the analysis pipeline (public and authenticated), related-research and
alternative-source search, and the per-user article library.
"""
import html
import logging
import os
import secrets
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel

from sciensaurus.llm import LLMClient
from sciensaurus.pipeline import AnalysisPipeline
from sciensaurus.pipeline_types import AnalysisRequest, Err, StepName
from sciensaurus.research.alternative_sources import AlternativeSourceFinder
from sciensaurus.research.content_extractor import ContentExtractor
from sciensaurus.research.related_research import (
    EmptyKeywordsError,
    RelatedResearchFinder,
)
from sciensaurus.research.summary_generator import SummaryGenerator
from sciensaurus.storage.article_store import ArticleStore
from sciensaurus.tracing import Tracer

logger = logging.getLogger(__name__)

# Simple authentication; the username doubles as the user id
USERNAME = os.getenv("SCIENSAURUS_WEB_USER", "admin")
PASSWORD = os.getenv("SCIENSAURUS_WEB_PASSWORD") or secrets.token_urlsafe(16)
if not os.getenv("SCIENSAURUS_WEB_PASSWORD"):
    logger.warning(
        f"SCIENSAURUS_WEB_PASSWORD not set; generated password for {USERNAME!r}: {PASSWORD}"
    )

app = FastAPI(title="Sciensaurus")
security = HTTPBasic()


# --- Request models ---

class AnalyzeRequest(BaseModel):
    url: str = ""
    step: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    summary: Optional[Dict[str, Any]] = None
    keywords: Optional[List[str]] = None

    def to_pipeline_request(self) -> AnalysisRequest:
        return AnalysisRequest(
            url=self.url, step=self.step, title=self.title, content=self.content,
            summary=self.summary, keywords=self.keywords,
        )


class RelatedResearchRequest(BaseModel):
    keywords: List[str] = []
    mainArticleTitle: str = ""
    mainArticleFindings: List[str] = []


class AlternativeSourcesRequest(BaseModel):
    query: str = ""
    isExactTitle: bool = False


class StoreArticleRequest(BaseModel):
    url: str = ""
    title: str = ""
    source: Optional[str] = None
    publish_date: Optional[str] = None
    summary: Optional[str] = None
    visual_summary: Optional[List[Dict[str, Any]]] = None
    keywords: Optional[List[str]] = None
    study_metadata: Optional[Dict[str, Any]] = None
    related_research: Optional[Dict[str, Any]] = None
    raw_content: Optional[str] = None


class ArticleIdRequest(BaseModel):
    articleId: int


# --- Dependencies (overridable in tests) ---

@lru_cache(maxsize=1)
def get_tracer() -> Tracer:
    return Tracer()


@lru_cache(maxsize=1)
def get_store() -> ArticleStore:
    return ArticleStore()


@lru_cache(maxsize=1)
def get_alternative_finder() -> AlternativeSourceFinder:
    return AlternativeSourceFinder()


@lru_cache(maxsize=1)
def get_llm() -> LLMClient:
    return LLMClient(tracer=get_tracer())


def get_finder() -> RelatedResearchFinder:
    return RelatedResearchFinder(get_llm(), alternatives=get_alternative_finder())


def get_pipeline() -> AnalysisPipeline:
    return AnalysisPipeline(
        ContentExtractor(),
        SummaryGenerator(get_llm()),
        get_finder(),
        tracer=get_tracer(),
        store=get_store(),
    )


def get_public_pipeline() -> AnalysisPipeline:
    """Public runs never persist, so no store is opened for them."""
    return AnalysisPipeline(
        ContentExtractor(),
        SummaryGenerator(get_llm()),
        get_finder(),
        tracer=get_tracer(),
    )


def verify_credentials(credentials: HTTPBasicCredentials = Depends(security)):
    """Simple authentication"""
    correct_username = secrets.compare_digest(credentials.username, USERNAME)
    correct_password = secrets.compare_digest(credentials.password, PASSWORD)

    if not (correct_username and correct_password):
        raise HTTPException(
            status_code=401,
            detail="Incorrect credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username


# --- Analysis ---

async def _run_analysis(request: AnalyzeRequest, pipeline: AnalysisPipeline,
                        public: bool, user_id: Optional[str] = None):
    if not request.url:
        return JSONResponse({"error": "URL is required"}, status_code=400)
    state = await pipeline.run(request.to_pipeline_request(), public=public, user_id=user_id)
    status = 500 if state.failed else 200
    return JSONResponse(state.to_response(), status_code=status)


@app.post("/api/public-analyze")
async def public_analyze(request: AnalyzeRequest, pipeline: AnalysisPipeline = Depends(get_public_pipeline)):
    """Unauthenticated analysis; related research is reported as supporting only."""
    return await _run_analysis(request, pipeline, public=True)


@app.post("/api/analyze")
async def analyze(request: AnalyzeRequest, pipeline: AnalysisPipeline = Depends(get_pipeline),
                  username: str = Depends(verify_credentials)):
    """Full analysis with classification; the finished summary is saved for the user."""
    return await _run_analysis(request, pipeline, public=False, user_id=username)


@app.post("/api/related-research")
async def related_research(request: RelatedResearchRequest,
                           finder: RelatedResearchFinder = Depends(get_finder)):
    try:
        result = await finder.find(
            request.keywords,
            main_title=request.mainArticleTitle,
            main_findings=request.mainArticleFindings,
        )
    except EmptyKeywordsError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    if isinstance(result, Err):
        status = (result.detail or {}).get("status", 503)
        return JSONResponse({"error": result.error}, status_code=status)
    return result.value


@app.post("/api/alternative-sources")
async def alternative_sources(request: AlternativeSourcesRequest,
                              finder: AlternativeSourceFinder = Depends(get_alternative_finder)):
    if not request.query:
        return JSONResponse({"error": "Search query is required"}, status_code=400)
    results = await finder.find(request.query, is_exact_title=request.isExactTitle)
    return {"query": request.query, "results": results}


# --- Article library ---

@app.post("/api/store-article-summary")
async def store_article_summary(request: StoreArticleRequest, store: ArticleStore = Depends(get_store),
                                username: str = Depends(verify_credentials)):
    try:
        stored = store.store_article_summary(request.model_dump(), user_id=username)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return {"success": True, **stored}


@app.get("/api/article-summary/{article_id}")
async def article_summary(article_id: int, store: ArticleStore = Depends(get_store),
                          username: str = Depends(verify_credentials)):
    article = store.get_article(article_id)
    if article is None:
        raise HTTPException(status_code=404, detail="Article not found")
    user_article = store.record_interaction(username, article_id)
    return {"success": True, "article": article, "userArticle": user_article}


@app.get("/api/user-articles")
async def user_articles(limit: int = 10, bookmarked: bool = False, store: ArticleStore = Depends(get_store),
                        username: str = Depends(verify_credentials)):
    articles = store.get_user_articles(username, limit=limit, bookmarked_only=bookmarked)
    return {"success": True, "articles": articles}


@app.post("/api/toggle-bookmark")
async def toggle_bookmark(request: ArticleIdRequest, store: ArticleStore = Depends(get_store),
                          username: str = Depends(verify_credentials)):
    try:
        is_bookmarked = store.toggle_bookmark(username, request.articleId)
    except KeyError:
        raise HTTPException(status_code=404, detail="Article not found")
    return {"success": True, "isBookmarked": is_bookmarked}


@app.post("/api/remove-user-article")
async def remove_user_article(request: ArticleIdRequest, store: ArticleStore = Depends(get_store),
                              username: str = Depends(verify_credentials)):
    if not store.remove_user_article(username, request.articleId):
        raise HTTPException(status_code=404, detail="Article not found in user's list")
    return {"success": True}


@app.get("/api/dashboard-stats")
async def dashboard_stats(limit: int = 8, store: ArticleStore = Depends(get_store),
                          username: str = Depends(verify_credentials)):
    stats = store.get_dashboard_stats(username, limit=limit)
    return {"success": True, "stats": {"user": {"id": username}, **stats}}


@app.get("/api/keyword-stats")
async def keyword_stats(store: ArticleStore = Depends(get_store),
                        username: str = Depends(verify_credentials)):
    return {"success": True, "stats": store.get_keyword_stats(username)}


# --- Dashboard ---

@app.get("/", response_class=HTMLResponse)
def home(username: str = Depends(verify_credentials)):
    """Dashboard: submit a URL, follow the steps, browse saved articles."""
    steps = "".join(
        f'<li data-step="{s.value}">{html.escape(s.label)}</li>' for s in StepName
    )
    return DASHBOARD_HTML.replace("{{USERNAME}}", html.escape(username)).replace("{{STEPS}}", steps)


DASHBOARD_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Sciensaurus</title>
<style>
  :root {
    --bg-color: #0f172a;
    --card-bg: rgba(30, 41, 59, 0.7);
    --text-primary: #f8fafc;
    --text-secondary: #94a3b8;
    --accent-primary: #10b981;
    --border-color: rgba(255, 255, 255, 0.1);
    --error-color: #ef4444;
  }
  body { font-family: system-ui, sans-serif; background: var(--bg-color); color: var(--text-primary); margin: 0; }
  main { max-width: 960px; margin: 0 auto; padding: 2rem; }
  .card { background: var(--card-bg); border: 1px solid var(--border-color); border-radius: 12px; padding: 1.5rem; margin-bottom: 1.5rem; }
  input[type=url] { width: 75%; padding: .6rem; border-radius: 8px; border: 1px solid var(--border-color); background: #1e293b; color: inherit; }
  button { padding: .6rem 1.2rem; border: 0; border-radius: 8px; background: var(--accent-primary); color: #fff; cursor: pointer; }
  #steps li { color: var(--text-secondary); }
  #steps li.done { color: var(--accent-primary); }
  #steps li.current { color: var(--text-primary); font-weight: 600; }
  .error { color: var(--error-color); }
  .muted { color: var(--text-secondary); font-size: .9rem; }
  a { color: #38bdf8; }
</style>
</head>
<body>
<main>
  <h1>Sciensaurus</h1>
  <p class="muted">Signed in as {{USERNAME}}</p>

  <div class="card">
    <form id="analyze-form">
      <input type="url" id="url" placeholder="https://pubmed.ncbi.nlm.nih.gov/..." required>
      <button type="submit">Analyze</button>
    </form>
    <ol id="steps">{{STEPS}}</ol>
    <div id="error" class="error"></div>
  </div>

  <div class="card" id="result" hidden>
    <h2 id="result-title"></h2>
    <ul id="visual-summary"></ul>
    <p class="muted" id="keywords"></p>
    <h3>Supporting</h3><ul id="supporting"></ul>
    <h3>Contradictory</h3><ul id="contradictory"></ul>
    <h3>Neutral</h3><ul id="neutral"></ul>
  </div>

  <div class="card">
    <h2>Your articles</h2>
    <p class="muted" id="stats"></p>
    <ul id="library"></ul>
  </div>
</main>
<script>
const ORDER = [...document.querySelectorAll('#steps li')].map(li => li.dataset.step);

function markStep(step) {
  const idx = ORDER.indexOf(step);
  document.querySelectorAll('#steps li').forEach((li, i) => {
    li.className = i < idx ? 'done' : (i === idx ? 'current' : '');
  });
}

function text(el, value) { document.getElementById(el).textContent = value || ''; }

function renderArticles(id, articles) {
  const ul = document.getElementById(id);
  ul.innerHTML = '';
  (articles || []).forEach(a => {
    const li = document.createElement('li');
    const link = document.createElement('a');
    link.href = a.url; link.textContent = a.title; link.target = '_blank';
    li.appendChild(link);
    const note = a.classificationReason || a.finding || a.journal;
    if (note) li.append(' - ' + note);
    ul.appendChild(li);
  });
}

function render(data) {
  markStep(data.currentStep);
  text('error', data.error || (data.relatedResearch && data.relatedResearch.error));
  if (!data.summary) return;
  document.getElementById('result').hidden = false;
  text('result-title', data.summary.title || data.title);
  const vs = document.getElementById('visual-summary');
  vs.innerHTML = '';
  (data.summary.visualSummary || []).forEach(p => {
    const li = document.createElement('li');
    li.textContent = p.emoji + ' ' + p.point;
    vs.appendChild(li);
  });
  text('keywords', (data.keywords || []).join(', '));
  const rr = data.relatedResearch || {};
  renderArticles('supporting', rr.supporting);
  renderArticles('contradictory', rr.contradictory);
  renderArticles('neutral', rr.neutral);
}

async function loadLibrary() {
  const [articles, stats] = await Promise.all([
    fetch('/api/user-articles').then(r => r.json()),
    fetch('/api/dashboard-stats').then(r => r.json()),
  ]);
  renderArticles('library', articles.articles);
  const s = stats.stats.articlesAnalyzed;
  text('stats', `${s.count} analyzed, ${s.savedCount} bookmarked, ${s.growthPercentage}% in the last 30 days`);
}

document.getElementById('analyze-form').addEventListener('submit', async (e) => {
  e.preventDefault();
  markStep(ORDER[0]);
  text('error', '');
  const resp = await fetch('/api/analyze', {
    method: 'POST',
    headers: {'Content-Type': 'application/json'},
    body: JSON.stringify({url: document.getElementById('url').value}),
  });
  render(await resp.json());
  loadLibrary();
});

loadLibrary();
</script>
</body>
</html>
"""


if __name__ == "__main__":
    import uvicorn

    from sciensaurus.config import WEB_HOST, WEB_PORT

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info(f"Starting Sciensaurus on http://{WEB_HOST}:{WEB_PORT}")
    uvicorn.run(app, host=WEB_HOST, port=WEB_PORT)
