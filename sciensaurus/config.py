"""Centralized configuration for the Sciensaurus service."""
import os
from dotenv import load_dotenv

load_dotenv()

# --- Model Configuration ---
SUMMARY_MODEL = os.environ.get("MODEL_NAME", "gpt-4o")
CLASSIFIER_MODEL = os.environ.get("CLASSIFIER_MODEL_NAME", SUMMARY_MODEL)
LLM_BASE_URL = os.environ.get("LLM_BASE_URL", "https://api.openai.com/v1")
LLM_API_KEY = os.environ.get("LLM_API_KEY", os.environ.get("OPENAI_API_KEY", "NA"))

# --- Service URLs ---
PUBMED_BASE_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
PUBMED_ARTICLE_URL = "https://pubmed.ncbi.nlm.nih.gov"
PMC_MIRROR_URL = "https://www.ncbi.nlm.nih.gov/pmc/articles/pmid"
TAVILY_SEARCH_URL = "https://api.tavily.com/search"

# --- API Keys ---
PUBMED_API_KEY = os.environ.get("PUBMED_API_KEY", "")
TAVILY_API_KEY = os.environ.get("TAVILY_API_KEY", "")

# --- Timeouts (seconds) ---
LLM_TIMEOUT = 300
SCRAPING_TIMEOUT = 25.0
PUBMED_TIMEOUT = 15.0
SEARCH_TIMEOUT = 20.0

# --- HTTP ---
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

# --- Pipeline Budgets ---
MIN_SELECTOR_TEXT_LENGTH = 200
SUMMARY_CONTENT_CHAR_LIMIT = 15_000
SUMMARY_TEMPERATURE = 0.5
SUMMARY_MAX_TOKENS = 2000
CLASSIFIER_TEMPERATURE = 0.3
CLASSIFIER_MAX_TOKENS = 3000
MAX_SEARCH_KEYWORDS = 10
RELATED_RESULTS_LIMIT = 10

# --- Storage ---
DB_PATH = os.environ.get(
    "SCIENSAURUS_DB_PATH", os.path.expanduser("~/.local/share/sciensaurus/sciensaurus.db")
)

# --- Tracing ---
ENABLE_AI_TRACING = os.environ.get("ENABLE_AI_TRACING", "false").lower() == "true"
TRACE_LOG_DIR = os.environ.get("TRACE_LOG_DIR", "./logs/ai-traces")

# --- Web ---
WEB_HOST = os.environ.get("SCIENSAURUS_HOST", "0.0.0.0")
WEB_PORT = int(os.environ.get("SCIENSAURUS_PORT", "8000"))
