"""Shared test fixtures."""
import re
import threading
from types import SimpleNamespace

import pytest
from unittest.mock import patch
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from leaddrip.database import Base
from leaddrip.errors import ProviderRequestError
from leaddrip.models.run import SignalRun
from leaddrip.pipeline import pipeline_config
from leaddrip.pipeline.base import PipelineServices, RunContext
from leaddrip.schemas import ICP, SearchResponse, SearchResult, SignalDefinition, UserConfig
from leaddrip.services.fetcher import PageContent
from leaddrip.services.retry import RetryPolicy
from leaddrip.services.store import LeadStore


NO_RETRY = RetryPolicy(max_attempts=1, base_delay=0, backoff_factor=1)


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created."""
    engine = create_engine('sqlite:///:memory:')
    import leaddrip.models.db_run
    import leaddrip.models.do_not_contact
    import leaddrip.models.lead
    import leaddrip.models.user_config
    import leaddrip.models.watch_list
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """SQLAlchemy session bound to in-memory SQLite. Rolls back after each test."""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def patch_get_session(db_session):
    """Route all get_session() calls to the test session.

    close() is disabled so the store's per-call session.close() doesn't
    invalidate the shared test session.
    """
    _real_close = db_session.close
    db_session.close = lambda: None
    with patch('leaddrip.database.get_session', return_value=db_session):
        yield db_session
    db_session.close = _real_close


@pytest.fixture(autouse=True)
def fresh_pipeline_config():
    """Every test starts from the packaged pipeline_config.yaml."""
    pipeline_config.reset_cache()
    yield
    pipeline_config.reset_cache()


@pytest.fixture
def store():
    return LeadStore()


# ── Config factories ─────────────────────────────────────────────────────────

@pytest.fixture
def make_signal():
    """Factory fixture — SignalDefinition with sensible defaults."""
    def _make(**overrides):
        defaults = dict(
            id='sig_funding',
            name='Recent funding',
            question='Has {account} raised a funding round recently?',
            category='funding_corporate',
            priority='high',
            weight=9,
            query_templates=['{industry} startup raises Series A {geo}'],
        )
        defaults.update(overrides)
        return SignalDefinition(**defaults)
    return _make


@pytest.fixture
def make_config(make_signal):
    """Factory fixture — UserConfig for a SaaS / United States ICP."""
    def _make(signals=None, **icp_overrides):
        icp = dict(industries=['SaaS'], geos=['United States'], target_roles=['VP Sales'])
        icp.update(icp_overrides)
        return UserConfig(
            icp=ICP(**icp),
            signals=signals if signals is not None else [make_signal()],
        )
    return _make


# ── Fake providers ───────────────────────────────────────────────────────────

class FakeGeneration:
    """
    Stands in for GenerationGateway.

    `handler(prompt, schema)` returns a schema instance or raises. Calls are
    recorded so tests can assert on prompts and features.
    """

    def __init__(self, handler=None):
        self.handler = handler
        self.calls = []
        self._lock = threading.Lock()

    def generate_structured(self, prompt, schema, system=None, feature='general', **kwargs):
        with self._lock:
            self.calls.append({'prompt': prompt, 'schema': schema.__name__, 'feature': feature})
        if self.handler is None:
            raise AssertionError(f"Unexpected generation call for {schema.__name__}")
        return self.handler(prompt, schema)

    def usage(self):
        with self._lock:
            return {'fake': {'calls': len(self.calls), 'prompt_tokens': 0, 'completion_tokens': 0}}


class FakeSearch:
    """Returns canned results; a query listed in `failing` raises a non-transient error."""
    name = 'fake'

    def __init__(self, results=None, failing=()):
        self.results = results or []
        self.failing = set(failing)
        self.queries = []
        self._lock = threading.Lock()

    def search(self, query, **kwargs):
        with self._lock:
            self.queries.append(query)
        if query in self.failing:
            raise ProviderRequestError(f"search down for {query}", provider='fake', status_code=400)
        return SearchResponse(query=query, results=list(self.results), total_results=len(self.results))


class FakeFetcher:
    """Serves `pages` (url → text); any domain in `failing` errors on every page."""
    name = 'fake'

    def __init__(self, pages=None, default_text='', failing=()):
        self.pages = pages or {}
        self.default_text = default_text
        self.failing = set(failing)

    def scrape(self, url):
        host = url.split('://', 1)[-1].split('/', 1)[0]
        if host in self.failing:
            raise ProviderRequestError(f"fetch failed for {url}", provider='fake', status_code=404)
        return PageContent(url=url, text=self.pages.get(url, self.default_text), title=host)


EVIDENCE_URL = re.compile(r'^\[\d+\] \S+ \| (\S+)$', re.M)


def cited_urls(prompt):
    """URLs of the evidence items listed in a signal prompt."""
    return EVIDENCE_URL.findall(prompt)


@pytest.fixture
def make_ctx(make_config):
    """Factory fixture — RunContext with fake services and no retry delays."""
    def _make(config=None, generation=None, search=None, fetcher=None, mode='hunt', **overrides):
        run = SignalRun(user_id='user-1', mode=mode)
        run.start()
        services = PipelineServices(
            generation=generation or FakeGeneration(),
            search=search,
            fetcher=fetcher,
        )
        overrides.setdefault('retry_policy', NO_RETRY)
        return RunContext(run, config or make_config(), services, **overrides)
    return _make


@pytest.fixture
def search_result():
    def _make(url='https://acme.io/news/series-a', title='Acme raises Series A',
              snippet='Acme raised a $20 million Series A round led by Sequoia to grow its sales team.'):
        return SearchResult(title=title, url=url, snippet=snippet)
    return _make


@pytest.fixture
def fakes():
    """The fake provider classes, for tests that build their own."""
    return SimpleNamespace(
        Generation=FakeGeneration,
        Search=FakeSearch,
        Fetcher=FakeFetcher,
        cited_urls=cited_urls,
        no_retry=NO_RETRY,
    )
