"""Tests for leaddrip.services.simulated — canned providers and a full simulated run."""
import pytest

from leaddrip.clients import build_generation_gateway
from leaddrip.errors import ProviderRequestError
from leaddrip.pipeline.base import PipelineServices, RunOptions
from leaddrip.pipeline.coordinator import run_pipeline
from leaddrip.pipeline.evaluator import SIGNAL_SYSTEM_PROMPT, build_signal_prompt
from leaddrip.pipeline.evidence import make_chunk
from leaddrip.pipeline.extractor import EXTRACTION_SYSTEM_PROMPT, build_extraction_prompt
from leaddrip.presets import demo_user_config
from leaddrip.schemas import ICP, CandidateCompany, CandidateExtractionResult, SearchResult, SignalAnswer
from leaddrip.services.simulated import MOCK_COMPANIES, SimulatedFetcher, SimulatedSearch


class TestSimulatedSearch:

    def test_mentioned_company(self):
        response = SimulatedSearch().search('"Acme Analytics" acme.io')
        assert len(response.results) == 2
        assert response.results[1].url == 'https://acme.io/news/acme-announcement'
        assert response.results[1].snippet == MOCK_COMPANIES[0]['news']

    def test_generic_query_is_deterministic(self):
        first = SimulatedSearch().search('SaaS startup raises Series A United States 2026')
        second = SimulatedSearch().search('SaaS startup raises Series A United States 2026')
        assert [r.url for r in first.results] == [r.url for r in second.results]
        assert 6 <= len(first.results) <= 10

    def test_max_results(self):
        assert len(SimulatedSearch().search('anything at all', max_results=3).results) == 3


class TestSimulatedFetcher:

    def test_pages_by_path(self):
        fetcher = SimulatedFetcher()
        careers = fetcher.scrape('https://acme.io/careers')
        home = fetcher.scrape('https://acme.io')
        assert careers.text == MOCK_COMPANIES[0]['careers']
        assert MOCK_COMPANIES[0]['about'] in home.text
        assert home.title == 'Acme Analytics'

    def test_unknown_host_gets_generic_text(self):
        page = SimulatedFetcher().scrape('https://unknown-company.com/about')
        assert page.title == 'Unknown-Company'
        assert 'serving customers' in page.text

    def test_unreachable_host(self):
        with pytest.raises(ProviderRequestError) as exc_info:
            SimulatedFetcher(unreachable=['acme.io']).scrape('https://acme.io/about')
        assert exc_info.value.status_code == 404


class TestSimulatedGeneration:

    def test_extraction_returns_mentioned_companies(self):
        gateway = build_generation_gateway('simulated')
        results = [SearchResult(title='Acme Analytics raises Series B', url='https://acme.io/news/x'),
                   SearchResult(title='Unrelated', url='https://example.com/y')]

        result = gateway.generate_structured(build_extraction_prompt(results, ICP(industries=['SaaS'])),
                                             CandidateExtractionResult, system=EXTRACTION_SYSTEM_PROMPT,
                                             feature='extraction')

        assert [c.domain for c in result.candidates] == ['acme.io']
        assert 0.7 <= result.candidates[0].confidence < 1.0
        assert result.total_results_processed == 2
        assert gateway.usage()['simulated']['calls'] == 1

    def test_signal_answer_is_grounded(self, make_signal):
        gateway = build_generation_gateway('simulated')
        candidate = CandidateCompany(company_name='Acme Analytics', domain='acme.io')
        chunk = make_chunk('https://acme.io/news/acme-announcement', MOCK_COMPANIES[0]['news'])

        answer = gateway.generate_structured(build_signal_prompt(make_signal(), candidate, [chunk]),
                                             SignalAnswer, system=SIGNAL_SYSTEM_PROMPT, feature='scoring')

        assert answer.result in ('yes', 'no', 'unknown')
        if answer.result == 'yes':
            assert answer.evidence_urls == ['https://acme.io/news/acme-announcement']

    def test_no_evidence_is_unknown(self, make_signal):
        gateway = build_generation_gateway('simulated')
        candidate = CandidateCompany(company_name='Acme Analytics', domain='acme.io')
        answer = gateway.generate_structured(build_signal_prompt(make_signal(), candidate, []),
                                             SignalAnswer, system=SIGNAL_SYSTEM_PROMPT)
        assert answer.result == 'unknown'


class TestSimulatedRun:

    def _services(self):
        return PipelineServices(generation=build_generation_gateway('simulated'), search=SimulatedSearch(),
                                fetcher=SimulatedFetcher(), run_mode='simulated')

    def test_hunt_run_end_to_end(self, store, fakes):
        result = run_pipeline(store, 'demo', demo_user_config(), RunOptions(mode='hunt'), self._services(),
                              retry_policy=fakes.no_retry)

        assert result.status == 'completed'
        assert result.stats['queries_executed'] > 0
        assert result.stats['candidates_found'] > 0
        assert result.stats['candidates_after_dedup'] <= result.stats['candidates_found']
        assert result.usage['simulated']['calls'] > 0
        for lead in result.leads:
            assert 0 <= lead.score <= 100
            assert lead.triggered_signals
            assert lead.evidence_urls
            assert lead.linkedin_search_url.startswith('https://www.linkedin.com/search/results/people/')

    def test_runs_are_deterministic(self, store, fakes):
        first = run_pipeline(store, 'user-a', demo_user_config(), RunOptions(mode='hunt'), self._services(),
                             retry_policy=fakes.no_retry)
        second = run_pipeline(store, 'user-b', demo_user_config(), RunOptions(mode='hunt'), self._services(),
                              retry_policy=fakes.no_retry)
        assert {(l.domain, l.score) for l in first.leads} == {(l.domain, l.score) for l in second.leads}

    def test_watch_run_with_unreachable_site(self, store, fakes):
        services = self._services()
        services.fetcher = SimulatedFetcher(unreachable=['brightlane.com'])
        domains = [c['domain'] for c in MOCK_COMPANIES[:3]]

        result = run_pipeline(store, 'demo', demo_user_config(), RunOptions(mode='watch', domains=domains),
                              services, retry_policy=fakes.no_retry)

        assert result.status == 'completed'
        assert result.stats['candidates_after_dedup'] == 3
        assert [e['unit'] for e in result.errors if e['kind'] == 'EvidenceFetchFailure'] == ['brightlane.com']
