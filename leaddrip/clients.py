"""
Client construction — Redis, generation gateway, search, page fetcher.

Called once at process start by the composition root (scripts/run_pipeline.py);
the resulting PipelineServices is injected into every run. Nothing here runs
at import time, so importing this module is always safe.
"""
import logging

import anthropic
import redis
from openai import OpenAI

from leaddrip.config import (
    ANTHROPIC_API_KEY, ANTHROPIC_MODEL,
    FEATURE_PROVIDERS,
    FIRECRAWL_API_KEY,
    LLM_FALLBACK_PROVIDER, LLM_PROVIDER,
    OLLAMA_MODEL, OLLAMA_URL,
    OPENAI_API_KEY, OPENAI_MODEL,
    PAGE_FETCHER,
    REDIS_URL,
    RUN_MODES,
    SEARCH_PROVIDER, SERPAPI_KEY, TAVILY_API_KEY,
)
from leaddrip.errors import InvalidConfiguration, ProviderUnavailable
from leaddrip.pipeline.base import PipelineServices
from leaddrip.pipeline.pipeline_config import get_retry_policy
from leaddrip.services.circuit_breaker import get_breaker, init_breakers
from leaddrip.services.fetcher import DirectFetcher, FirecrawlFetcher
from leaddrip.services.generation import AnthropicProvider, GenerationGateway, OllamaProvider, OpenAIProvider
from leaddrip.services.search import SerpApiSearch, TavilySearch
from leaddrip.services.simulated import SimulatedFetcher, SimulatedGenerationProvider, SimulatedSearch

logger = logging.getLogger('leaddrip.clients')


# ── Redis ─────────────────────────────────────────────────────────────────────

def get_redis_client(url: str = None):
    return redis.from_url(url or REDIS_URL, decode_responses=True)


# ── Generation ───────────────────────────────────────────────────────────────

def build_generation_providers():
    """Every provider whose credentials are present, keyed by name."""
    providers = {}
    if OPENAI_API_KEY:
        providers['openai'] = OpenAIProvider(
            OpenAI(api_key=OPENAI_API_KEY), model=OPENAI_MODEL, breaker=get_breaker('openai'),
        )
        logger.info("OpenAI provider initialized (%s)", OPENAI_MODEL)
    else:
        logger.warning("OPENAI_API_KEY not set")

    if ANTHROPIC_API_KEY:
        providers['anthropic'] = AnthropicProvider(
            anthropic.Anthropic(api_key=ANTHROPIC_API_KEY), model=ANTHROPIC_MODEL,
            breaker=get_breaker('anthropic'),
        )
        logger.info("Anthropic provider initialized (%s)", ANTHROPIC_MODEL)

    # Ollama needs no key; it is only wired in when something asks for it.
    wanted = {LLM_PROVIDER, LLM_FALLBACK_PROVIDER, *FEATURE_PROVIDERS.values()}
    if 'ollama' in wanted:
        providers['ollama'] = OllamaProvider(OLLAMA_URL, OLLAMA_MODEL, breaker=get_breaker('ollama'))
        logger.info("Ollama provider initialized (%s at %s)", OLLAMA_MODEL, OLLAMA_URL)
    return providers


def build_generation_gateway(run_mode: str = 'live') -> GenerationGateway:
    if run_mode == 'simulated':
        return GenerationGateway({'simulated': SimulatedGenerationProvider()}, 'simulated',
                                 retry_policy=get_retry_policy())
    return GenerationGateway(
        build_generation_providers(),
        LLM_PROVIDER,
        routing=FEATURE_PROVIDERS,
        fallback_provider=LLM_FALLBACK_PROVIDER,
        retry_policy=get_retry_policy(),
    )


# ── Search / fetch ───────────────────────────────────────────────────────────

def build_search_provider(run_mode: str = 'live', provider: str = None):
    if run_mode == 'simulated':
        return SimulatedSearch()
    provider = provider or SEARCH_PROVIDER
    if provider == 'tavily':
        if not TAVILY_API_KEY:
            raise ProviderUnavailable("TAVILY_API_KEY not set")
        return TavilySearch(TAVILY_API_KEY, breaker=get_breaker('tavily'))
    if provider == 'serpapi':
        if not SERPAPI_KEY:
            raise ProviderUnavailable("SERPAPI_KEY not set")
        return SerpApiSearch(SERPAPI_KEY, breaker=get_breaker('serpapi'))
    raise InvalidConfiguration(f"Unknown search provider '{provider}'")


def build_page_fetcher(run_mode: str = 'live', fetcher: str = None):
    """Configured page fetcher, or None for search-evidence-only runs."""
    if run_mode == 'simulated':
        return SimulatedFetcher()
    fetcher = fetcher or PAGE_FETCHER
    if fetcher == 'none':
        return None
    if fetcher == 'firecrawl':
        if not FIRECRAWL_API_KEY:
            raise ProviderUnavailable("FIRECRAWL_API_KEY not set")
        return FirecrawlFetcher(FIRECRAWL_API_KEY, breaker=get_breaker('firecrawl'))
    if fetcher == 'direct':
        return DirectFetcher()
    raise InvalidConfiguration(f"Unknown page fetcher '{fetcher}'")


def build_services(run_mode: str = 'live', redis_client=None, search_needed: bool = True) -> PipelineServices:
    """
    Build every collaborator a run needs.

    Breakers are registered first when a Redis client is supplied so the live
    providers pick them up. Watch-only callers can pass search_needed=False
    to run without a search key.
    """
    if run_mode not in RUN_MODES:
        raise InvalidConfiguration(f"Unknown run mode '{run_mode}'")
    if redis_client is not None and run_mode == 'live':
        init_breakers(redis_client)

    search = None
    if search_needed or run_mode == 'simulated':
        search = build_search_provider(run_mode)
    elif (SEARCH_PROVIDER == 'tavily' and TAVILY_API_KEY) or (SEARCH_PROVIDER == 'serpapi' and SERPAPI_KEY):
        search = build_search_provider(run_mode)

    services = PipelineServices(
        generation=build_generation_gateway(run_mode),
        search=search,
        fetcher=build_page_fetcher(run_mode),
        run_mode=run_mode,
    )
    logger.info("Services ready (mode=%s, search=%s, fetcher=%s)", run_mode,
                getattr(search, 'name', None), getattr(services.fetcher, 'name', None))
    return services
