"""
Centralized configuration — env vars, provider defaults, run constants.
"""
import os


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis (circuit breaker state) ─────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///leaddrip.db')

# ── Run mode: "live" talks to real providers, "simulated" uses canned ones ───
RUN_MODE = os.getenv('RUN_MODE', 'live')
RUN_MODES = ('live', 'simulated')

# ── Generation providers ─────────────────────────────────────────────────────
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o')
OPENAI_FAST_MODEL = os.getenv('OPENAI_FAST_MODEL', 'gpt-4o-mini')

ANTHROPIC_API_KEY = os.getenv('ANTHROPIC_API_KEY')
ANTHROPIC_MODEL = os.getenv('ANTHROPIC_MODEL', 'claude-sonnet-4-20250514')

OLLAMA_URL = os.getenv('OLLAMA_URL', 'http://localhost:11434')
OLLAMA_MODEL = os.getenv('OLLAMA_MODEL', 'llama3.1')

# Default provider for every feature, plus optional fallback.
LLM_PROVIDER = os.getenv('LLM_PROVIDER', 'openai')
LLM_FALLBACK_PROVIDER = os.getenv('LLM_FALLBACK_PROVIDER')

# Per-feature overrides, e.g. LLM_PROVIDER_EXTRACTION=anthropic
GENERATION_FEATURES = ('research', 'outreach', 'scoring', 'extraction', 'general')
FEATURE_PROVIDERS = {
    feature: os.getenv(f'LLM_PROVIDER_{feature.upper()}')
    for feature in GENERATION_FEATURES
    if os.getenv(f'LLM_PROVIDER_{feature.upper()}')
}

# ── Search providers ─────────────────────────────────────────────────────────
SEARCH_PROVIDER = os.getenv('SEARCH_PROVIDER', 'tavily')
TAVILY_API_KEY = os.getenv('TAVILY_API_KEY')
TAVILY_API_URL = 'https://api.tavily.com/search'
SERPAPI_KEY = os.getenv('SERPAPI_KEY')
SERPAPI_URL = 'https://serpapi.com/search.json'

# ── Page fetch ───────────────────────────────────────────────────────────────
FIRECRAWL_API_KEY = os.getenv('FIRECRAWL_API_KEY')
FIRECRAWL_API_URL = 'https://api.firecrawl.dev/v1/scrape'
# "firecrawl", "direct" or "none"
PAGE_FETCHER = os.getenv('PAGE_FETCHER', 'firecrawl' if FIRECRAWL_API_KEY else 'direct')
FETCH_USER_AGENT = 'Mozilla/5.0 (compatible; LeadDrip/1.0; +https://leaddrip.com)'

# ── HTTP timeouts (seconds) ──────────────────────────────────────────────────
GENERATION_TIMEOUT = 60
SEARCH_TIMEOUT = 20
FETCH_TIMEOUT = 10

# ── Run status values ─────────────────────────────────────────────────────────
RUN_STATUSES = [
    'pending',
    'running',
    'completed',
    'failed',
]

RUN_TRANSITIONS = {
    'pending': ('running', 'failed'),
    'running': ('completed', 'failed'),
    'completed': (),
    'failed': (),
}

LEAD_STATUSES = ('new', 'saved', 'contacted', 'skip')
